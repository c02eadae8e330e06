from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

EVIDENCE_SCHEMA = "receipt.evidence.v1"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class EvidenceRules(_Frozen):
    max_acknowledgers: int | None
    require_recipient_identity: bool
    password_protected: bool


class EvidenceDocument(_Frozen):
    id: str
    title: str
    public_id: str
    owner_id: str
    workspace_id: str | None
    created_at: str
    priority: str
    labels: list[str]
    tags: dict[str, str]
    rules: EvidenceRules
    current_version_id: str | None
    closed_at: str | None


class EvidenceStatus(_Frozen):
    status: str
    acknowledgement_count: int
    latest_acknowledged_at: str | None


class EvidenceVersion(_Frozen):
    id: str
    version_number: int
    version_label: str
    source_type: str
    file_name: str
    file_size: int
    mime_type: str
    sha256: str
    created_by: str
    created_at: str


class EvidenceRecipient(_Frozen):
    id: str
    name: str | None
    email: str | None


class EvidenceCompletion(_Frozen):
    id: str
    document_version_id: str
    submitted_at: str
    acknowledged: bool
    max_scroll_percent: int
    time_on_page_seconds: int
    active_seconds: int
    ip: str | None
    user_agent: str | None
    recipient: EvidenceRecipient | None


class EvidenceRecord(_Frozen):
    schema_: str = Field(default=EVIDENCE_SCHEMA, alias="schema")
    document: EvidenceDocument
    status: EvidenceStatus
    versions: list[EvidenceVersion]
    completions: list[EvidenceCompletion]
