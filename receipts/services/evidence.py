"""Evidence export.

The export is a JSON rendering of an ``EvidenceRecord``: document metadata,
the full version history with checksums and every completion. It carries no
generation timestamp and is serialized with sorted keys, so exporting the same
state twice yields identical bytes.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

import pydantic
from sqlalchemy import select
from sqlalchemy.orm import Session

from receipts.errors import ValidationError
from receipts.models.document import Completion, DocumentVersion
from receipts.schemas.evidence import (
    EVIDENCE_SCHEMA,
    EvidenceCompletion,
    EvidenceDocument,
    EvidenceRecipient,
    EvidenceRecord,
    EvidenceRules,
    EvidenceStatus,
    EvidenceVersion,
)
from receipts.services.common import as_utc
from receipts.services.completions import Completions
from receipts.services.documents import Documents

logger = logging.getLogger(__name__)


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc(value).isoformat()


def _id(value) -> str | None:
    return str(value) if value is not None else None


class Evidence:
    @staticmethod
    def build(db: Session, document_id: str) -> EvidenceRecord:
        document = Documents.get(db, document_id)
        db.refresh(document)
        status = Completions.get_status(db, document.id)

        versions = db.scalars(
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document.id)
            .order_by(DocumentVersion.version_number.asc())
        ).all()
        completions = db.scalars(
            select(Completion).where(Completion.document_id == document.id)
        ).all()
        # Order by UTC timestamp in Python; SQLite compares stored strings.
        completions = sorted(completions, key=lambda c: str(c.id))
        completions = sorted(
            completions, key=lambda c: as_utc(c.submitted_at), reverse=True
        )

        return EvidenceRecord(
            document=EvidenceDocument(
                id=str(document.id),
                title=document.title,
                public_id=document.public_id,
                owner_id=str(document.owner_id),
                workspace_id=_id(document.workspace_id),
                created_at=_ts(document.created_at),
                priority=document.priority.value,
                labels=sorted(document.labels or []),
                tags=dict(sorted((document.tags or {}).items())),
                rules=EvidenceRules(
                    max_acknowledgers=document.max_acknowledgers,
                    require_recipient_identity=document.require_recipient_identity,
                    password_protected=document.password_protected,
                ),
                current_version_id=_id(document.current_version_id),
                closed_at=_ts(document.closed_at),
            ),
            status=EvidenceStatus(
                status=status["status"],
                acknowledgement_count=status["acknowledgement_count"],
                latest_acknowledged_at=_ts(status["latest_acknowledged_at"]),
            ),
            versions=[
                EvidenceVersion(
                    id=str(v.id),
                    version_number=v.version_number,
                    version_label=v.version_label,
                    source_type=v.source_type.value,
                    file_name=v.file_name,
                    file_size=v.file_size,
                    mime_type=v.mime_type,
                    sha256=v.checksum_sha256,
                    created_by=str(v.created_by),
                    created_at=_ts(v.created_at),
                )
                for v in versions
            ],
            completions=[
                EvidenceCompletion(
                    id=str(c.id),
                    document_version_id=str(c.document_version_id),
                    submitted_at=_ts(c.submitted_at),
                    acknowledged=c.acknowledged,
                    max_scroll_percent=c.max_scroll_percent,
                    time_on_page_seconds=c.time_on_page_seconds,
                    active_seconds=c.active_seconds,
                    ip=c.ip,
                    user_agent=c.user_agent,
                    recipient=(
                        EvidenceRecipient(
                            id=str(c.recipient.id),
                            name=c.recipient.name,
                            email=c.recipient.email,
                        )
                        if c.recipient is not None
                        else None
                    ),
                )
                for c in completions
            ],
        )

    @staticmethod
    def dumps(record: EvidenceRecord) -> str:
        return json.dumps(
            record.model_dump(mode="json", by_alias=True),
            sort_keys=True,
            indent=2,
            ensure_ascii=False,
        )

    @staticmethod
    def export(db: Session, document_id: str) -> str:
        record = Evidence.build(db, document_id)
        logger.info(
            "Exported evidence for document %s (%d versions, %d completions)",
            record.document.id,
            len(record.versions),
            len(record.completions),
        )
        return Evidence.dumps(record)

    @staticmethod
    def load(raw: str | bytes) -> EvidenceRecord:
        try:
            record = EvidenceRecord.model_validate_json(raw)
        except pydantic.ValidationError as e:
            raise ValidationError(
                "Malformed evidence record",
                details=[err["msg"] for err in e.errors(include_url=False)],
            )
        if record.schema_ != EVIDENCE_SCHEMA:
            raise ValidationError(
                f"Unsupported evidence schema: {record.schema_}",
                details={"expected": EVIDENCE_SCHEMA},
            )
        return record

    @staticmethod
    def verify(db: Session, raw: str | bytes) -> list[str]:
        """Return the paths where ``raw`` differs from live state."""
        record = Evidence.load(raw)
        live = Evidence.build(db, record.document.id)
        return _diff(
            record.model_dump(mode="json", by_alias=True),
            live.model_dump(mode="json", by_alias=True),
        )


def _diff(stored, live, path: str = "") -> list[str]:
    if isinstance(stored, dict) and isinstance(live, dict):
        paths: list[str] = []
        for key in sorted(set(stored) | set(live)):
            child = f"{path}.{key}" if path else key
            if key not in stored or key not in live:
                paths.append(child)
            else:
                paths.extend(_diff(stored[key], live[key], child))
        return paths
    if isinstance(stored, list) and isinstance(live, list):
        if len(stored) != len(live):
            return [path]
        paths = []
        for index, (a, b) in enumerate(zip(stored, live)):
            paths.extend(_diff(a, b, f"{path}[{index}]"))
        return paths
    return [] if stored == live else [path]


evidence = Evidence()
