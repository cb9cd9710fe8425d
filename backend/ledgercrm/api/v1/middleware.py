"""
API middleware for authentication and common concerns.

Authentication happens upstream (API gateway); it forwards the acting user
and organization as headers. Every protected route resolves them through
`require_actor`.
"""

from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, status

from ledgercrm.schemas.common import Actor


def _parse_uuid(value: Optional[str], header: str) -> UUID:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {header} header",
        )
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid {header} header",
        )


async def require_actor(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_organization_id: Optional[str] = Header(None, alias="X-Organization-Id"),
) -> Actor:
    """
    Centralized actor dependency.

    Usage:
        @router.get("/endpoint")
        async def my_endpoint(actor: Actor = Depends(require_actor)):
            ...

    Raises:
        HTTPException: 401 if either header is missing or not a UUID
    """
    return Actor(
        user_id=_parse_uuid(x_user_id, "X-User-Id"),
        organization_id=_parse_uuid(x_organization_id, "X-Organization-Id"),
    )
