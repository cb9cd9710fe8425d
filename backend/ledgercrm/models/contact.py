"""
Contact model for client contact management.
"""

from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    Uuid,
    Enum as SQLEnum,
    text,
)
from sqlalchemy.orm import relationship
import uuid
import enum

from ledgercrm.db.base import Base, JSONType
from ledgercrm.utils.clock import utcnow


class ContactRole(str, enum.Enum):
    """Role a contact person plays for the client."""
    OWNER = "OWNER"
    ACCOUNTANT = "ACCOUNTANT"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"
    AUTHORIZED = "AUTHORIZED"
    OTHER = "OTHER"


class PortalStatus(str, enum.Enum):
    """Client portal access state."""
    NONE = "NONE"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


class Contact(Base):
    """Contact person of a client (many-to-one with Client)."""

    __tablename__ = "contacts"
    __table_args__ = (
        # At most one primary among the non-deleted contacts of a client
        Index(
            "uq_contacts_one_primary_per_client",
            "client_id",
            unique=True,
            postgresql_where=text("is_primary AND deleted_at IS NULL"),
            sqlite_where=text("is_primary = 1 AND deleted_at IS NULL"),
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    mobile = Column(String(50), nullable=True)
    fax = Column(String(50), nullable=True)
    position = Column(String(100), nullable=True)
    department = Column(String(100), nullable=True)

    is_primary = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Portal access sub-state
    has_portal_access = Column(Boolean, nullable=False, default=False)
    portal_status = Column(SQLEnum(PortalStatus), nullable=False, default=PortalStatus.NONE)
    portal_account_id = Column(Uuid(as_uuid=True), ForeignKey("portal_accounts.id"), nullable=True)
    portal_invited_at = Column(DateTime, nullable=True)
    portal_activated_at = Column(DateTime, nullable=True)
    portal_revoked_at = Column(DateTime, nullable=True)
    portal_revoked_reason = Column(String(500), nullable=True)

    communication_preferences = Column(JSONType, nullable=False, default=dict)
    consent = Column(JSONType, nullable=False, default=dict)
    notes = Column(Text, nullable=True)

    created_by = Column(Uuid(as_uuid=True), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_by = Column(Uuid(as_uuid=True), nullable=True)
    updated_at = Column(DateTime, nullable=True)
    deleted_by = Column(Uuid(as_uuid=True), nullable=True)
    deleted_at = Column(DateTime, nullable=True, index=True)

    # Relationships
    client = relationship("Client", back_populates="contacts")
    role_links = relationship(
        "ContactRoleLink",
        back_populates="contact",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ContactRoleLink.role",
    )
    portal_account = relationship("PortalAccount", foreign_keys=[portal_account_id], lazy="selectin")

    @property
    def roles(self) -> list:
        return [link.role for link in self.role_links]

    @roles.setter
    def roles(self, values) -> None:
        wanted = list(dict.fromkeys(ContactRole(v) for v in values))
        current = {link.role: link for link in self.role_links}
        self.role_links = [current.get(role) or ContactRoleLink(role=role) for role in wanted]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ContactRoleLink(Base):
    """Role held by a contact. A contact holds each role at most once."""

    __tablename__ = "contact_roles"
    __table_args__ = (
        UniqueConstraint("contact_id", "role", name="uq_contact_role"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    contact_id = Column(Uuid(as_uuid=True), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SQLEnum(ContactRole), nullable=False, index=True)

    contact = relationship("Contact", back_populates="role_links")
