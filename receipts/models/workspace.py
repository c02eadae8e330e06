import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from receipts.db import Base
from receipts.models.account import Plan


class MemberRole(enum.Enum):
    owner = "owner"
    admin = "admin"
    member = "member"


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


class Workspace(Base):
    __tablename__ = "workspaces"
    __table_args__ = (UniqueConstraint("slug", name="uq_workspaces_slug"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    slug: Mapped[str] = mapped_column(String(80), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    plan: Mapped[Plan] = mapped_column(Enum(Plan), default=Plan.team)
    seat_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Policy flags
    require_recipient_identity: Mapped[bool] = mapped_column(Boolean, default=False)
    require_email_delivery: Mapped[bool] = mapped_column(Boolean, default=False)

    # [{"key": ..., "label": ..., "placeholder": ...}]
    tag_fields: Mapped[list | None] = mapped_column(JSON)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    owner = relationship("Account", foreign_keys=[owner_id])
    members = relationship(
        "WorkspaceMember",
        back_populates="workspace",
        order_by="WorkspaceMember.joined_at",
    )

    @property
    def tag_keys(self) -> set[str]:
        return {
            str(field.get("key"))
            for field in (self.tag_fields or [])
            if isinstance(field, dict) and field.get("key")
        }


class WorkspaceMember(Base):
    __tablename__ = "workspace_members"
    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "account_id", name="uq_workspace_members_ws_account"
        ),
        Index("ix_workspace_members_account_id", "account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id"), nullable=False
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    role: Mapped[MemberRole] = mapped_column(
        Enum(MemberRole), default=MemberRole.member
    )
    license_active: Mapped[bool] = mapped_column(Boolean, default=False)
    can_view_analytics: Mapped[bool] = mapped_column(Boolean, default=False)
    license_assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    license_assigned_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id")
    )
    license_revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    license_revoked_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id")
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    workspace = relationship("Workspace", back_populates="members")
    account = relationship("Account", foreign_keys=[account_id])


# ---------------------------------------------------------------------------
# Address book: contacts and groups
# ---------------------------------------------------------------------------


class Contact(Base):
    __tablename__ = "workspace_contacts"
    __table_args__ = (
        UniqueConstraint("workspace_id", "email", name="uq_workspace_contacts_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class ContactGroup(Base):
    __tablename__ = "contact_groups"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    memberships = relationship(
        "ContactGroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="ContactGroupMember.created_at",
    )

    @property
    def members(self) -> list[dict]:
        return [
            {
                "contact_id": m.contact.id,
                "name": m.contact.name,
                "email": m.contact.email,
            }
            for m in self.memberships
        ]

    @property
    def member_count(self) -> int:
        return len(self.memberships)


class ContactGroupMember(Base):
    __tablename__ = "contact_group_members"
    __table_args__ = (
        UniqueConstraint(
            "group_id", "contact_id", name="uq_contact_group_members_group_contact"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contact_groups.id"), nullable=False
    )
    contact_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspace_contacts.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    group = relationship("ContactGroup", back_populates="memberships")
    contact = relationship("Contact")


# ---------------------------------------------------------------------------
# Reusable document settings
# ---------------------------------------------------------------------------


class WorkspaceTemplate(Base):
    __tablename__ = "workspace_templates"
    __table_args__ = (
        UniqueConstraint("workspace_id", "name", name="uq_workspace_templates_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(String(280))
    # priority, labels, tags, send_emails, require_recipient_identity,
    # password_enabled, max_acknowledgers_enabled, max_acknowledgers
    settings: Mapped[dict | None] = mapped_column(JSON)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id")
    )
    updated_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
