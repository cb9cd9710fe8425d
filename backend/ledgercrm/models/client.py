"""
Client model. Clients are provisioned elsewhere; this engine only references them.
"""

from sqlalchemy import Column, String, DateTime, Uuid, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
import enum

from ledgercrm.db.base import Base
from ledgercrm.utils.clock import utcnow


class ClientStatus(str, enum.Enum):
    """Client status enumeration."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PROSPECT = "PROSPECT"


class Client(Base):
    """Client (company or person) served by an accounting organization."""

    __tablename__ = "clients"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    nip = Column(String(10), nullable=True, index=True)
    country_code = Column(String(2), nullable=False, default="PL")
    status = Column(SQLEnum(ClientStatus), nullable=False, default=ClientStatus.ACTIVE)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    contacts = relationship("Contact", back_populates="client")
