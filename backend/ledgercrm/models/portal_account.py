"""
Portal account model: the secondary principal derived from a contact.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Uuid, Enum as SQLEnum
import uuid

from ledgercrm.db.base import Base, JSONType
from ledgercrm.models.contact import PortalStatus
from ledgercrm.utils.clock import utcnow


class PortalAccount(Base):
    """
    One portal access cycle of a contact.

    A revoked account is never reactivated; enabling access again creates a
    new row so the history of earlier cycles stays intact.
    """

    __tablename__ = "portal_accounts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    contact_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("contacts.id", ondelete="CASCADE", use_alter=True, name="fk_portal_accounts_contact"),
        nullable=False,
        index=True,
    )
    email = Column(String(255), nullable=False)
    status = Column(SQLEnum(PortalStatus), nullable=False, default=PortalStatus.PENDING)
    permissions = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    invited_at = Column(DateTime, nullable=False, default=utcnow)
    activated_at = Column(DateTime, nullable=True)
    deactivated_at = Column(DateTime, nullable=True)
    deactivation_reason = Column(String(500), nullable=True)
    created_by = Column(Uuid(as_uuid=True), nullable=False)
