from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from receipts.models.account import Plan
from receipts.models.workspace import MemberRole


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class TagField(BaseModel):
    key: str = Field(min_length=1, max_length=40, pattern=r"^[a-z0-9_]+$")
    label: str = Field(min_length=1, max_length=80)
    placeholder: str | None = Field(default=None, max_length=120)


class WorkspaceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    slug: str = Field(min_length=2, max_length=80, pattern=r"^[a-z0-9][a-z0-9-]*$")
    require_recipient_identity: bool = False
    require_email_delivery: bool = False
    tag_fields: list[TagField] = Field(default_factory=list)


class WorkspaceUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    require_recipient_identity: bool | None = None
    require_email_delivery: bool | None = None
    tag_fields: list[TagField] | None = None


class WorkspaceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    owner_id: UUID
    plan: Plan
    seat_limit: int
    require_recipient_identity: bool
    require_email_delivery: bool
    tag_fields: list[dict[str, Any]] | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Members & licenses
# ---------------------------------------------------------------------------


class MemberCreate(BaseModel):
    account_id: UUID
    role: str = "member"
    license_active: bool = False


class MemberUpdate(BaseModel):
    role: str | None = None
    can_view_analytics: bool | None = None


class LicenseUpdate(BaseModel):
    license_active: bool


class OwnershipTransfer(BaseModel):
    account_id: UUID


class MemberRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: UUID
    role: MemberRole
    license_active: bool
    can_view_analytics: bool
    license_assigned_at: datetime | None = None
    license_assigned_by: UUID | None = None
    license_revoked_at: datetime | None = None
    license_revoked_by: UUID | None = None
    joined_at: datetime


class LicensingSummary(BaseModel):
    workspace_id: UUID
    plan: Plan
    seat_limit: int
    used_seats: int
    available_seats: int


class LicensingRead(BaseModel):
    summary: LicensingSummary
    members: list[MemberRead]


class QuotaRead(BaseModel):
    used: int
    limit: int | None = None
    remaining: int | None = None
    window: str


class BillingPlanUpdate(BaseModel):
    """One message from the billing/plan feed."""

    workspace_id: UUID | None = None
    account_id: UUID | None = None
    plan: str
    seat_limit: int | None = Field(default=None, ge=1)


# ---------------------------------------------------------------------------
# Contacts & groups
# ---------------------------------------------------------------------------


class ContactCreate(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    email: str = Field(min_length=3, max_length=320)


class ContactUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, min_length=3, max_length=320)


class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: UUID
    name: str
    email: str
    created_at: datetime


class ContactGroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None
    contact_ids: list[str] = Field(default_factory=list)


class ContactGroupMembersUpdate(BaseModel):
    contact_ids: list[str]


class ContactGroupMemberRead(BaseModel):
    contact_id: UUID
    name: str
    email: str


class ContactGroupRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: UUID
    name: str
    description: str | None = None
    members: list[ContactGroupMemberRead]
    member_count: int
    created_at: datetime


# ---------------------------------------------------------------------------
# Activity feed
# ---------------------------------------------------------------------------


class ActivityEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_type: str
    entity_type: str
    entity_id: str
    actor_id: UUID | None = None
    document_id: UUID | None = None
    payload: dict[str, Any] | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    settings: dict[str, Any] = Field(default_factory=dict)


class TemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    settings: dict[str, Any] | None = None


class TemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: UUID
    name: str
    description: str | None = None
    settings: dict[str, Any] | None = None
    created_by: UUID | None = None
    updated_by: UUID | None = None
    created_at: datetime
    updated_at: datetime
