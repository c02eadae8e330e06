import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
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


class DocumentPriority(enum.Enum):
    low = "low"
    normal = "normal"
    high = "high"


class VersionSourceType(enum.Enum):
    upload = "upload"


class RecipientSource(enum.Enum):
    manual = "manual"
    contact = "contact"
    group = "group"


class NotificationMode(enum.Enum):
    ask = "ask"
    always = "always"
    never = "never"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("public_id", name="uq_documents_public_id"),
        Index("ix_documents_owner_id", "owner_id"),
        Index("ix_documents_workspace_id", "workspace_id"),
        Index("ix_documents_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    workspace_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id")
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    public_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Denormalized from the current version; version_number is the
    # compare-and-set field for version creation.
    current_version_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey(
            "document_versions.id",
            use_alter=True,
            name="fk_documents_current_version_id",
        ),
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tags: Mapped[dict | None] = mapped_column(JSON)
    priority: Mapped[DocumentPriority] = mapped_column(
        Enum(DocumentPriority), default=DocumentPriority.normal
    )
    labels: Mapped[list | None] = mapped_column(JSON)

    # Rules
    max_acknowledgers: Mapped[int | None] = mapped_column(Integer)
    require_recipient_identity: Mapped[bool] = mapped_column(Boolean, default=False)
    password_hash: Mapped[str | None] = mapped_column(String(255))

    # Guard counter for the max_acknowledgers rule; status is still derived
    # from completions.
    acknowledgement_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

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
    workspace = relationship("Workspace")
    current_version = relationship("DocumentVersion", foreign_keys=[current_version_id])
    versions = relationship(
        "DocumentVersion",
        foreign_keys="DocumentVersion.document_id",
        back_populates="document",
        order_by="DocumentVersion.version_number.desc()",
    )
    recipients = relationship(
        "Recipient", back_populates="document", order_by="Recipient.created_at"
    )
    completions = relationship("Completion", back_populates="document")

    @property
    def password_protected(self) -> bool:
        return bool(self.password_hash)


# ---------------------------------------------------------------------------
# Document Versions (immutable, no updated_at)
# ---------------------------------------------------------------------------


class DocumentVersion(Base):
    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "version_number",
            name="uq_document_versions_doc_version",
        ),
        UniqueConstraint(
            "document_id",
            "version_label",
            name="uq_document_versions_doc_label",
        ),
        Index("ix_document_versions_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    version_label: Mapped[str] = mapped_column(String(40), nullable=False)
    source_type: Mapped[VersionSourceType] = mapped_column(
        Enum(VersionSourceType), default=VersionSourceType.upload
    )
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    checksum_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    # Immutable, so no updated_at

    document = relationship(
        "Document",
        foreign_keys=[document_id],
        back_populates="versions",
    )


# ---------------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------------


class Recipient(Base):
    __tablename__ = "recipients"
    __table_args__ = (
        UniqueConstraint("document_id", "email", name="uq_recipients_doc_email"),
        Index("ix_recipients_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    name: Mapped[str | None] = mapped_column(String(120))
    email: Mapped[str | None] = mapped_column(String(255))
    source: Mapped[RecipientSource] = mapped_column(
        Enum(RecipientSource), default=RecipientSource.manual
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    document = relationship("Document", back_populates="recipients")


# ---------------------------------------------------------------------------
# Completions (append-only)
# ---------------------------------------------------------------------------


class Completion(Base):
    __tablename__ = "completions"
    __table_args__ = (
        Index("ix_completions_document_ack", "document_id", "acknowledged"),
        Index("ix_completions_submitted_at", "submitted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    document_version_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_versions.id"), nullable=False
    )
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("recipients.id")
    )
    acknowledged: Mapped[bool] = mapped_column(Boolean, default=False)
    max_scroll_percent: Mapped[int] = mapped_column(Integer, default=0)
    time_on_page_seconds: Mapped[int] = mapped_column(Integer, default=0)
    active_seconds: Mapped[int] = mapped_column(Integer, default=0)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    document = relationship("Document", back_populates="completions")
    version = relationship("DocumentVersion")
    recipient = relationship("Recipient")


# ---------------------------------------------------------------------------
# Version notification preference (per document, per account)
# ---------------------------------------------------------------------------


class NotificationPreference(Base):
    __tablename__ = "document_notification_preferences"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "account_id", name="uq_notification_prefs_doc_account"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    mode: Mapped[NotificationMode] = mapped_column(
        Enum(NotificationMode), default=NotificationMode.ask
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


# ---------------------------------------------------------------------------
# Activity feed (written by the background event task)
# ---------------------------------------------------------------------------


class ActivityEvent(Base):
    __tablename__ = "activity_events"
    __table_args__ = (
        Index("ix_activity_events_workspace_id", "workspace_id"),
        Index("ix_activity_events_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    event_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    document_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    workspace_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    payload: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


# ---------------------------------------------------------------------------
# Shared responsibility and per-account activity
# ---------------------------------------------------------------------------


class DocumentResponsibility(Base):
    __tablename__ = "document_responsibilities"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "account_id", name="uq_document_responsibilities_doc_account"
        ),
        Index("ix_document_responsibilities_workspace_id", "workspace_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    coverage_role: Mapped[str] = mapped_column(String(40), default="shared")
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id")
    )

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class DocumentActivity(Base):
    __tablename__ = "document_user_activity"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "document_id", name="uq_document_user_activity_account_doc"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    workspace_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id")
    )
    last_action: Mapped[str] = mapped_column(String(40), default="opened")
    last_opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
