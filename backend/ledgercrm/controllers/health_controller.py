"""
Health controller.
"""

from ledgercrm.schemas.health import HealthResponse
from ledgercrm.services.health_service import HealthService


class HealthController:
    """Controller for health check operations. Needs neither a session nor an actor."""

    def __init__(self, health_service: HealthService = None):
        self.health_service = health_service or HealthService()

    async def get_health(self) -> HealthResponse:
        return await self.health_service.get_health()
