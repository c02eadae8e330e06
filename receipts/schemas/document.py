from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from receipts.models.document import (
    DocumentPriority,
    RecipientSource,
    VersionSourceType,
)
from receipts.schemas.completion import CompletionRead, DocumentStatusRead


# ---------------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------------


class RecipientInput(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    email: str = Field(min_length=1, max_length=320)


class RecipientSelection(BaseModel):
    """One send operation's recipient sources."""

    recipients: list[RecipientInput] = Field(default_factory=list)
    contact_ids: list[str] = Field(default_factory=list)
    contact_group_ids: list[str] = Field(default_factory=list)
    send_email: bool = True


class RecipientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    name: str | None = None
    email: str | None = None
    source: RecipientSource
    created_at: datetime


class EmailSummary(BaseModel):
    sent: int = 0
    failed: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class DocumentRules(BaseModel):
    max_acknowledgers: int | None = Field(default=None, ge=1)
    require_recipient_identity: bool = False
    password: str | None = Field(default=None, min_length=4, max_length=128)


class DocumentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    workspace_id: UUID | None = None
    tags: dict[str, str] = Field(default_factory=dict)
    priority: str = "normal"
    labels: list[str] = Field(default_factory=list)
    rules: DocumentRules = Field(default_factory=DocumentRules)


class DocumentUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    tags: dict[str, str] | None = None
    priority: str | None = None
    labels: list[str] | None = None
    max_acknowledgers: int | None = Field(default=None, ge=1)
    require_recipient_identity: bool | None = None
    password: str | None = Field(default=None, min_length=4, max_length=128)


class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    workspace_id: UUID | None = None
    title: str
    public_id: str
    current_version_id: UUID | None = None
    version_number: int
    tags: dict[str, str] | None = None
    priority: DocumentPriority
    labels: list[str] | None = None
    max_acknowledgers: int | None = None
    require_recipient_identity: bool
    password_protected: bool
    closed_at: datetime | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class DocumentCreated(BaseModel):
    document: DocumentRead
    share_url: str
    recipients: list[RecipientRead] = Field(default_factory=list)
    invalid_recipients: list[str] = Field(default_factory=list)
    email: EmailSummary = Field(default_factory=EmailSummary)


class SendResult(BaseModel):
    recipients: list[RecipientRead]
    invalid_recipients: list[str] = Field(default_factory=list)
    email: EmailSummary = Field(default_factory=EmailSummary)


# ---------------------------------------------------------------------------
# DocumentVersion (immutable, create and read only)
# ---------------------------------------------------------------------------


class DocumentVersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    version_number: int
    version_label: str
    source_type: VersionSourceType
    file_name: str
    file_size: int
    mime_type: str
    checksum_sha256: str
    created_by: UUID
    created_at: datetime


class VersionCreated(BaseModel):
    version: DocumentVersionRead
    version_number: int
    version_label: str
    notify_prompt: bool = False
    email: EmailSummary | None = None


class DownloadURLResponse(BaseModel):
    download_url: str


class NotificationPreferenceUpdate(BaseModel):
    mode: str


class NotificationPreferenceRead(BaseModel):
    document_id: UUID
    mode: str


class DocumentDetail(BaseModel):
    document: DocumentRead
    share_url: str
    current_version: DocumentVersionRead | None = None
    status: DocumentStatusRead
    recipients: list[RecipientRead] = Field(default_factory=list)
    completions: list[CompletionRead] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Responsibilities & activity
# ---------------------------------------------------------------------------


class ResponsibilitiesUpdate(BaseModel):
    account_ids: list[UUID] = Field(default_factory=list)


class ResponsibilityRead(BaseModel):
    account_id: UUID
    email: str | None = None
    role: str
    coverage_role: str
    assigned_at: datetime | None = None


class ResponsibilitiesRead(BaseModel):
    document_id: UUID
    owner_id: UUID
    responsibilities: list[ResponsibilityRead] = Field(default_factory=list)
    can_manage: bool


class DocumentActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_id: UUID
    account_id: UUID
    last_action: str
    last_opened_at: datetime | None = None
