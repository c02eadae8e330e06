from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CompletionMetrics(BaseModel):
    acknowledged: bool = False
    max_scroll_percent: int = 0
    time_on_page_seconds: int = 0
    active_seconds: int = 0


class CompletionSubmit(CompletionMetrics):
    name: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    version_id: UUID | None = None
    access_token: str | None = None


class CompletionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    document_version_id: UUID
    recipient_id: UUID | None = None
    acknowledged: bool
    max_scroll_percent: int
    time_on_page_seconds: int
    active_seconds: int
    ip: str | None = None
    user_agent: str | None = None
    submitted_at: datetime


class SubmitResult(BaseModel):
    accepted: bool
    completion_id: UUID


class DocumentStatusRead(BaseModel):
    status: str
    acknowledgement_count: int
    latest_acknowledged_at: datetime | None = None
    max_acknowledgers: int | None = None
    closed: bool


class AccessRequest(BaseModel):
    password: str = Field(min_length=1, max_length=128)


class AccessGranted(BaseModel):
    access_token: str


class PublicDocumentRead(BaseModel):
    public_id: str
    title: str
    version_number: int
    version_label: str | None = None
    require_recipient_identity: bool
    password_protected: bool
    closed: bool
