"""
API v1 router that aggregates all endpoint routers.
All routes require an actor except health.
"""

from fastapi import APIRouter, Depends
from ledgercrm.api.v1.middleware import require_actor

from ledgercrm.api.v1.endpoints import (
    health,
    contacts,
    vat,
    whitelist,
    timeline,
)

api_router = APIRouter()

# Public routes
api_router.include_router(health.router, tags=["health"])

# Protected routes; the actor is enforced at the router level as well as per endpoint
api_router.include_router(
    contacts.router,
    tags=["contacts"],
    dependencies=[Depends(require_actor)],
)
api_router.include_router(
    vat.router,
    prefix="/vat",
    tags=["vat"],
    dependencies=[Depends(require_actor)],
)
api_router.include_router(
    whitelist.router,
    prefix="/whitelist",
    tags=["whitelist"],
    dependencies=[Depends(require_actor)],
)
api_router.include_router(
    timeline.router,
    tags=["timeline"],
    dependencies=[Depends(require_actor)],
)
