"""
Base controller class.
Controllers are built per request around one session and the acting user,
coordinate services and return Pydantic schemas.
"""

from abc import ABC
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.schemas.common import Actor


class BaseController(ABC):
    """Base controller class for all controllers."""

    def __init__(self, session: AsyncSession, actor: Actor):
        self.session = session
        self.actor = actor
