from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from receipts.models.stack import DeliveryStatus
from receipts.schemas.completion import CompletionSubmit
from receipts.schemas.document import EmailSummary, RecipientInput


# ---------------------------------------------------------------------------
# Stacks
# ---------------------------------------------------------------------------


class StackCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)


class StackItemAdd(BaseModel):
    document_id: UUID


class StackRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: UUID
    owner_id: UUID
    name: str
    description: str | None = None
    item_count: int
    document_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------


class DeliveryCreate(BaseModel):
    mode: Literal["full_stack", "selected_documents"] = "full_stack"
    stack_id: UUID | None = None
    document_ids: list[str] = Field(default_factory=list)
    title: str | None = Field(default=None, max_length=200)
    recipients: list[RecipientInput] = Field(default_factory=list)
    send_email: bool = False
    expires_in_days: int | None = Field(default=None, ge=1, le=365)


class DeliveryDocumentRead(BaseModel):
    document_id: UUID
    title: str
    public_id: str
    position: int
    required: bool


class DeliveryRecipientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    name: str | None = None
    acknowledged_documents: int = 0
    completed_at: datetime | None = None
    last_activity_at: datetime | None = None


class DeliveryRead(BaseModel):
    id: UUID
    workspace_id: UUID
    stack_id: UUID | None = None
    title: str
    public_id: str
    share_url: str
    status: DeliveryStatus
    expires_at: datetime | None = None
    document_count: int
    created_by: UUID
    created_at: datetime


class DeliveryCreated(BaseModel):
    delivery: DeliveryRead
    invalid_recipients: list[str] = Field(default_factory=list)
    email: EmailSummary


class DeliveryDetail(BaseModel):
    delivery: DeliveryRead
    documents: list[DeliveryDocumentRead]
    recipients: list[DeliveryRecipientRead]


# ---------------------------------------------------------------------------
# Public stack flow
# ---------------------------------------------------------------------------


class PublicStackDocument(BaseModel):
    title: str
    public_id: str
    position: int
    required: bool
    require_recipient_identity: bool
    password_protected: bool
    acknowledged: bool
    acknowledged_at: datetime | None = None


class PublicStackRead(BaseModel):
    public_id: str
    title: str
    workspace_name: str
    documents: list[PublicStackDocument]
    required_total: int
    required_acknowledged: int
    completed: bool


class StackDocumentSubmit(CompletionSubmit):
    document_public_id: str = Field(min_length=1, max_length=64)
    acknowledged: bool = True


class StackFinalize(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class StackReceiptRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    delivery_id: UUID
    completed_at: datetime
    summary: dict[str, Any] | None = None
    evidence: dict[str, Any] | None = None
    outstanding_count: int
