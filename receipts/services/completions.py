"""Completion and acknowledgement tracking.

Completions are append-only. A document is Pending until its first
acknowledgement, then Acknowledged, and Closed once ``max_acknowledgers``
acknowledgements have been recorded; a closed document rejects every new
submission.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from receipts.errors import (
    ConflictError,
    DocumentClosedError,
    NotFoundError,
    PolicyViolation,
    ValidationError,
)
from receipts.metrics import COMPLETIONS_RECORDED, COMPLETIONS_REJECTED
from receipts.models.document import (
    Completion,
    Document,
    DocumentVersion,
    Recipient,
    RecipientSource,
)
from receipts.schemas.completion import CompletionMetrics, CompletionSubmit
from receipts.security import check_access_token, make_access_token, verify_password
from receipts.services.common import coerce_uuid
from receipts.services.documents import Documents
from receipts.services.event import EventType, publish_event
from receipts.services.recipients import (
    fallback_name,
    is_valid_email,
    normalize_display_name,
    normalize_email,
)

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_ACKNOWLEDGED = "acknowledged"
STATUS_CLOSED = "closed"


def validate_metrics(metrics: CompletionMetrics) -> None:
    if not 0 <= metrics.max_scroll_percent <= 100:
        raise ValidationError("max_scroll_percent must be between 0 and 100")
    if metrics.time_on_page_seconds < 0 or metrics.active_seconds < 0:
        raise ValidationError("Times must not be negative")
    if metrics.active_seconds > metrics.time_on_page_seconds:
        raise ValidationError("active_seconds cannot exceed time_on_page_seconds")


def _rejected(reason: str, exc):
    COMPLETIONS_REJECTED.labels(reason=reason).inc()
    return exc


def _closed_error(document_id) -> DocumentClosedError:
    return _rejected(
        "closed",
        DocumentClosedError(
            "This document is no longer accepting acknowledgements",
            details={"document_id": str(document_id)},
        ),
    )


def _resolve_recipient(
    db: Session,
    document: Document,
    recipient_id,
    name: str,
    email: str,
) -> Recipient | None:
    if recipient_id is not None:
        recipient = db.get(Recipient, coerce_uuid(recipient_id))
        if not recipient or recipient.document_id != document.id:
            raise ValidationError("Recipient does not belong to this document")
        return recipient
    if not email:
        return None
    recipient = db.scalars(
        select(Recipient)
        .where(Recipient.document_id == document.id)
        .where(Recipient.email == email)
    ).first()
    if recipient is None:
        recipient = Recipient(
            document_id=document.id,
            name=name or fallback_name(email),
            email=email,
            source=RecipientSource.manual,
        )
        db.add(recipient)
        db.flush()
    elif name and not recipient.name:
        recipient.name = name
    return recipient


class Completions:
    @staticmethod
    def record(
        db: Session,
        document_id: str,
        payload: CompletionSubmit,
        version_id: str | None = None,
        recipient_id: str | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> Completion:
        document = Documents.get(db, document_id)
        doc_id = document.id
        validate_metrics(payload)
        if document.closed_at is not None:
            raise _closed_error(doc_id)

        name = normalize_display_name(payload.name)
        email = normalize_email(payload.email)
        if email and not is_valid_email(email):
            raise _rejected("validation", ValidationError("Invalid email address"))
        if document.require_recipient_identity and not (name and email):
            raise _rejected(
                "identity",
                ValidationError("Your name and email are required to acknowledge"),
            )

        current = Documents.get_current_version(db, doc_id)
        if current is None:
            raise NotFoundError("Document has no version to acknowledge")
        version_id = version_id or payload.version_id
        if version_id is not None:
            viewed = db.get(DocumentVersion, coerce_uuid(version_id))
            if not viewed or viewed.document_id != doc_id:
                raise ValidationError("Version does not belong to this document")
            if viewed.id != current.id:
                raise _rejected(
                    "stale_version",
                    ConflictError(
                        "A newer version of this document is available",
                        details={
                            "current_version_id": str(current.id),
                            "current_version_label": current.version_label,
                        },
                    ),
                )

        try:
            recipient = _resolve_recipient(db, document, recipient_id, name, email)
            if payload.acknowledged:
                Completions._claim_acknowledgement(db, doc_id)
            completion = Completion(
                document_id=doc_id,
                document_version_id=current.id,
                recipient_id=recipient.id if recipient else None,
                acknowledged=payload.acknowledged,
                max_scroll_percent=payload.max_scroll_percent,
                time_on_page_seconds=payload.time_on_page_seconds,
                active_seconds=payload.active_seconds,
                ip=ip[:64] if ip else None,
                user_agent=user_agent,
            )
            db.add(completion)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(completion)
        db.expire(document)

        COMPLETIONS_RECORDED.labels(acknowledged=str(payload.acknowledged).lower()).inc()
        logger.info(
            "Recorded completion %s on document %s (acknowledged=%s)",
            completion.id,
            doc_id,
            payload.acknowledged,
        )
        publish_event(
            EventType.completion_recorded,
            entity_type="completion",
            entity_id=completion.id,
            document_id=doc_id,
            payload={
                "acknowledged": payload.acknowledged,
                "version_id": str(current.id),
            },
        )
        if document.closed_at is not None:
            publish_event(
                EventType.document_closed,
                entity_type="document",
                entity_id=doc_id,
                document_id=doc_id,
            )
        return completion

    @staticmethod
    def _claim_acknowledgement(db: Session, doc_id) -> None:
        """Take one acknowledgement slot or raise ``DocumentClosedError``.

        The guarded increment is a single UPDATE, so concurrent submitters
        can never push the count past ``max_acknowledgers``.
        """
        result = db.execute(
            update(Document)
            .where(Document.id == doc_id)
            .where(Document.closed_at.is_(None))
            .where(
                or_(
                    Document.max_acknowledgers.is_(None),
                    Document.acknowledgement_count < Document.max_acknowledgers,
                )
            )
            .values(acknowledgement_count=Document.acknowledgement_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _closed_error(doc_id)

        count, limit = db.execute(
            select(Document.acknowledgement_count, Document.max_acknowledgers).where(
                Document.id == doc_id
            )
        ).one()
        if limit is not None and count >= limit:
            db.execute(
                update(Document)
                .where(Document.id == doc_id)
                .values(closed_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            logger.info("Document %s reached %d acknowledgement(s); closed", doc_id, limit)

    @staticmethod
    def record_public(
        db: Session,
        public_id: str,
        payload: CompletionSubmit,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> Completion:
        document = Documents.get_by_public_id(db, public_id)
        if document.password_protected and not check_access_token(
            document.public_id, document.password_hash, payload.access_token
        ):
            raise _rejected(
                "password",
                PolicyViolation("This document is password protected"),
            )
        return Completions.record(db, document.id, payload, ip=ip, user_agent=user_agent)

    @staticmethod
    def grant_access(db: Session, public_id: str, password: str) -> str:
        document = Documents.get_by_public_id(db, public_id)
        if not document.password_protected:
            raise ValidationError("This document is not password protected")
        if not verify_password(password, document.password_hash):
            raise PolicyViolation("Incorrect password")
        return make_access_token(document.public_id, document.password_hash)

    @staticmethod
    def public_view(db: Session, public_id: str) -> dict:
        document = Documents.get_by_public_id(db, public_id)
        current = Documents.get_current_version(db, document.id)
        return {
            "public_id": document.public_id,
            "title": document.title,
            "version_number": current.version_number if current else 0,
            "version_label": current.version_label if current else None,
            "require_recipient_identity": document.require_recipient_identity,
            "password_protected": document.password_protected,
            "closed": document.closed_at is not None,
        }

    @staticmethod
    def get_status(db: Session, document_id: str) -> dict:
        document = Documents.get(db, document_id)
        ack_count, latest = db.execute(
            select(func.count(Completion.id), func.max(Completion.submitted_at))
            .where(Completion.document_id == document.id)
            .where(Completion.acknowledged.is_(True))
        ).one()
        closed_at = db.scalar(
            select(Document.closed_at).where(Document.id == document.id)
        )
        if closed_at is not None:
            status = STATUS_CLOSED
        elif ack_count:
            status = STATUS_ACKNOWLEDGED
        else:
            status = STATUS_PENDING
        return {
            "status": status,
            "acknowledgement_count": ack_count or 0,
            "latest_acknowledged_at": latest,
            "max_acknowledgers": document.max_acknowledgers,
            "closed": closed_at is not None,
        }

    @staticmethod
    def list(db: Session, document_id: str) -> list[Completion]:
        stmt = (
            select(Completion)
            .where(Completion.document_id == coerce_uuid(document_id))
            .order_by(Completion.submitted_at.desc(), Completion.id.asc())
        )
        return db.scalars(stmt).all()


completions = Completions()
