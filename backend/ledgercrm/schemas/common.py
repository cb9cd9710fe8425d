"""
Shared schemas.
"""

from pydantic import BaseModel
from uuid import UUID


class Actor(BaseModel):
    """The authenticated user performing an operation and the organization they act for."""
    user_id: UUID
    organization_id: UUID

    class Config:
        frozen = True
