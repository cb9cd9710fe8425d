"""
Health check response schemas.
"""

from pydantic import BaseModel
from typing import Dict


class HealthResponse(BaseModel):
    """Health check response: overall status plus one entry per dependency."""
    status: str
    version: str
    uptime: str
    checks: Dict[str, str] = {}
