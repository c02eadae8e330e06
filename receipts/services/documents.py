from __future__ import annotations

import hashlib
import logging
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from receipts.config import settings
from receipts.errors import (
    ConflictError,
    DocumentClosedError,
    NotFoundError,
    PolicyViolation,
    ValidationError,
)
from receipts.metrics import DOCUMENTS_CREATED, VERSION_CONFLICTS, VERSIONS_CREATED
from receipts.models.account import Account
from receipts.models.document import (
    Document,
    DocumentActivity,
    DocumentPriority,
    DocumentResponsibility,
    DocumentVersion,
    NotificationMode,
    NotificationPreference,
    Recipient,
    VersionSourceType,
)
from receipts.models.workspace import Workspace, WorkspaceMember
from receipts.schemas.document import DocumentCreate, DocumentUpdate, RecipientSelection
from receipts.security import hash_password
from receipts.services.common import apply_ordering, apply_pagination, coerce_uuid
from receipts.services.event import EventType, publish_event
from receipts.services.mailer import mailer
from receipts.services.plans import Capability, Entitlements, resolve_entitlements
from receipts.services.recipients import (
    ResolvedRecipient,
    ResolvedRecipients,
    parse_id_list,
    resolve_recipients,
)
from receipts.services.response import ListResponseMixin
from receipts.services.seats import Quotas
from receipts.services.storage import storage
from receipts.services.workspaces import (
    MANAGER_ROLES,
    Workspaces,
    get_member,
)

logger = logging.getLogger(__name__)

VERSION_LABEL_RE = re.compile(r"^\d+(?:\.\d+)*$")
MAX_LABELS = 20
MAX_LABEL_LENGTH = 40
MAX_TAG_VALUE_LENGTH = 120
_VALID_PRIORITIES = {e.value for e in DocumentPriority}


@dataclass(frozen=True)
class UploadedFile:
    data: bytes
    file_name: str
    mime_type: str


@dataclass
class CreatedDocument:
    document: Document
    recipients: list[Recipient] = field(default_factory=list)
    invalid_recipients: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _validate_file(upload: UploadedFile) -> None:
    if not upload.data:
        raise ValidationError("Uploaded file is empty")
    if len(upload.data) > settings.max_upload_bytes:
        raise ValidationError(
            "Uploaded file is too large",
            details={"max_bytes": settings.max_upload_bytes},
        )
    allowed = {t.strip() for t in settings.allowed_upload_types.split(",") if t.strip()}
    if allowed and upload.mime_type not in allowed:
        raise ValidationError(
            f"Unsupported file type. Allowed: {sorted(allowed)}",
        )
    if not upload.file_name or not upload.file_name.strip():
        raise ValidationError("File name is required")


def _parse_priority(value: str) -> DocumentPriority:
    value = (value or "").strip().lower()
    if value not in _VALID_PRIORITIES:
        raise ValidationError(f"Invalid priority. Allowed: {sorted(_VALID_PRIORITIES)}")
    return DocumentPriority(value)


def _normalize_labels(labels) -> list[str]:
    cleaned = set()
    for label in labels or []:
        text = re.sub(r"\s+", " ", str(label)).strip()
        if not text:
            continue
        if len(text) > MAX_LABEL_LENGTH:
            raise ValidationError(
                f"Labels must be at most {MAX_LABEL_LENGTH} characters"
            )
        cleaned.add(text)
    if len(cleaned) > MAX_LABELS:
        raise ValidationError(f"At most {MAX_LABELS} labels are allowed")
    return sorted(cleaned)


def _validate_tags(tags: dict | None, workspace: Workspace | None) -> dict[str, str]:
    allowed = workspace.tag_keys if workspace is not None else set()
    result: dict[str, str] = {}
    for key, value in (tags or {}).items():
        key = str(key).strip()
        if key not in allowed:
            raise ValidationError(
                f"Unknown tag '{key}'",
                details={"allowed": sorted(allowed)},
            )
        text = str(value if value is not None else "").strip()
        if not text:
            continue
        if len(text) > MAX_TAG_VALUE_LENGTH:
            raise ValidationError(
                f"Tag values must be at most {MAX_TAG_VALUE_LENGTH} characters"
            )
        result[key] = text
    return result


def _validate_version_label(label: str) -> str:
    label = label.strip()
    if not VERSION_LABEL_RE.match(label):
        raise ValidationError(
            "Version label must be dotted numbers, for example 2 or 2.1"
        )
    return label


def _is_editor(db: Session, document: Document, account_id) -> bool:
    account_id = coerce_uuid(account_id)
    if document.owner_id == account_id:
        return True
    if document.workspace_id is None:
        return False
    member = get_member(db, document.workspace_id, account_id)
    return bool(member and member.role in MANAGER_ROLES)


def _require_editor(db: Session, document: Document, account_id) -> None:
    if not _is_editor(db, document, account_id):
        raise PolicyViolation("Only the document owner or a workspace admin can do this")


def _require_viewer(db: Session, document: Document, account_id) -> None:
    if document.owner_id == coerce_uuid(account_id):
        return
    if document.workspace_id is not None and get_member(
        db, document.workspace_id, account_id
    ):
        return
    raise NotFoundError("Document not found")


def _read_version_number(db: Session, document_id) -> int:
    # Column select bypasses the identity map.
    return db.scalar(
        select(Document.version_number).where(Document.id == document_id)
    ) or 0


def _max_version_number(db: Session, document_id) -> int:
    return db.scalar(
        select(func.max(DocumentVersion.version_number)).where(
            DocumentVersion.document_id == document_id
        )
    ) or 0


def _label_taken(db: Session, document_id, label: str) -> bool:
    return (
        db.scalar(
            select(func.count(DocumentVersion.id))
            .where(DocumentVersion.document_id == document_id)
            .where(DocumentVersion.version_label == label)
        )
        or 0
    ) > 0


def _version_slot(
    db: Session, document_id, version_number: int | None, label: str | None
) -> tuple[int, int, str]:
    """Return ``(expected, number, label)`` for the next version or raise."""
    expected = _read_version_number(db, document_id)
    latest = max(expected, _max_version_number(db, document_id))
    if version_number is None:
        number = latest + 1
    elif version_number <= latest:
        raise ConflictError(
            f"Version {version_number} is not newer than version {latest}",
            details={"latest_version_number": latest},
        )
    else:
        number = version_number
    number_label = label or str(number)
    if _label_taken(db, document_id, number_label):
        raise ConflictError(
            f"Version label '{number_label}' is already used",
            details={"version_label": number_label},
        )
    return expected, number, number_label


def _discard_blob(storage_key: str) -> None:
    try:
        storage.delete(storage_key)
    except (BotoCoreError, ClientError):
        logger.warning("Could not remove orphaned blob %s", storage_key, exc_info=True)


def _record_recipients(
    db: Session, document: Document, resolved: list[ResolvedRecipient]
) -> list[Recipient]:
    existing = {
        r.email: r
        for r in db.scalars(
            select(Recipient).where(Recipient.document_id == document.id)
        ).all()
        if r.email
    }
    rows: list[Recipient] = []
    for item in resolved:
        row = existing.get(item.email)
        if row is None:
            row = Recipient(
                document_id=document.id,
                name=item.name,
                email=item.email,
                source=item.source,
            )
            db.add(row)
            existing[item.email] = row
        rows.append(row)
    db.flush()
    return rows


def _find_activity(db: Session, account_id, document_id) -> DocumentActivity | None:
    return db.scalars(
        select(DocumentActivity)
        .where(DocumentActivity.account_id == account_id)
        .where(DocumentActivity.document_id == document_id)
    ).first()


def share_url(document: Document) -> str:
    return f"{settings.public_base_url.rstrip('/')}/r/{document.public_id}"


class Documents(ListResponseMixin):
    @staticmethod
    def create(
        db: Session,
        owner: Account,
        payload: DocumentCreate,
        upload: UploadedFile,
        selection: RecipientSelection | None = None,
    ) -> CreatedDocument:
        """Create a document with version 1 and its initial recipients.

        Every check runs before the blob is stored and before anything is
        written; the document, its first version and its recipients are
        committed together.
        """
        title = payload.title.strip()
        if not title:
            raise ValidationError("Title is required")
        priority = _parse_priority(payload.priority)
        labels = _normalize_labels(payload.labels)

        workspace = None
        if payload.workspace_id is not None:
            workspace = Workspaces.get(db, payload.workspace_id)
            if not get_member(db, workspace.id, owner.id):
                raise PolicyViolation("You are not a member of this workspace")
        entitlements = resolve_entitlements(db, owner, workspace)

        rules = payload.rules
        if rules.max_acknowledgers is not None:
            entitlements.require(Capability.acknowledger_limits)
        if rules.password:
            entitlements.require(Capability.password_protection)
        tags = _validate_tags(payload.tags, workspace)

        Quotas.enforce(db, owner, workspace)

        resolution = Documents._resolve(db, workspace, selection, entitlements)
        _validate_file(upload)

        require_identity = rules.require_recipient_identity or bool(
            workspace and workspace.require_recipient_identity
        )
        document = Document(
            id=uuid.uuid4(),
            owner_id=owner.id,
            workspace_id=workspace.id if workspace else None,
            title=title,
            public_id=secrets.token_urlsafe(16),
            version_number=0,
            tags=tags,
            priority=priority,
            labels=labels,
            max_acknowledgers=rules.max_acknowledgers,
            require_recipient_identity=require_identity,
            password_hash=hash_password(rules.password) if rules.password else None,
        )
        storage_key = storage.put(
            upload.data, str(document.id), upload.file_name, upload.mime_type
        )
        try:
            db.add(document)
            db.flush()
            version = DocumentVersion(
                document_id=document.id,
                version_number=1,
                version_label="1",
                source_type=VersionSourceType.upload,
                file_name=upload.file_name,
                file_size=len(upload.data),
                mime_type=upload.mime_type,
                storage_key=storage_key,
                checksum_sha256=hashlib.sha256(upload.data).hexdigest(),
                created_by=owner.id,
            )
            db.add(version)
            db.flush()
            document.current_version_id = version.id
            document.version_number = 1
            recipients = _record_recipients(
                db, document, resolution.recipients if resolution else []
            )
            db.commit()
        except Exception:
            db.rollback()
            _discard_blob(storage_key)
            raise
        db.refresh(document)

        DOCUMENTS_CREATED.labels(scope="workspace" if workspace else "personal").inc()
        logger.info(
            "Created document %s (workspace=%s) with %d recipient(s)",
            document.id,
            document.workspace_id,
            len(recipients),
        )
        publish_event(
            EventType.document_created,
            entity_type="document",
            entity_id=document.id,
            actor_id=owner.id,
            document_id=document.id,
            workspace_id=document.workspace_id,
            payload={"recipients": len(recipients)},
        )
        return CreatedDocument(
            document=document,
            recipients=recipients,
            invalid_recipients=resolution.invalid if resolution else [],
        )

    @staticmethod
    def _resolve(
        db: Session,
        workspace: Workspace | None,
        selection: RecipientSelection | None,
        entitlements: Entitlements,
    ) -> ResolvedRecipients | None:
        require_email = bool(workspace and workspace.require_email_delivery)
        if selection is None:
            if require_email:
                raise ValidationError(
                    "This workspace requires at least one email recipient"
                )
            return None
        return resolve_recipients(
            db,
            workspace_id=workspace.id if workspace else None,
            recipients=selection.recipients,
            contact_ids=selection.contact_ids,
            contact_group_ids=selection.contact_group_ids,
            require_email_delivery=require_email,
            entitlements=entitlements,
        )

    @staticmethod
    def share(
        document: Document, recipients: list[Recipient], sender: Account
    ) -> dict:
        """Email the share link. Call only after the recipients are committed."""
        emails = [r.email for r in recipients if r.email]
        if not emails:
            return {"sent": 0, "failed": []}
        return mailer.deliver(
            emails,
            "share_link",
            {
                "title": document.title,
                "share_url": share_url(document),
                "sender": sender.display_name or sender.email,
            },
        )

    @staticmethod
    def send(
        db: Session, document_id: str, selection: RecipientSelection, actor: Account
    ) -> dict:
        document = Documents.get(db, document_id)
        _require_editor(db, document, actor.id)
        if document.closed_at is not None:
            raise DocumentClosedError("This document is closed to new acknowledgements")
        workspace = document.workspace
        entitlements = resolve_entitlements(db, actor, workspace)
        resolution = resolve_recipients(
            db,
            workspace_id=document.workspace_id,
            recipients=selection.recipients,
            contact_ids=selection.contact_ids,
            contact_group_ids=selection.contact_group_ids,
            require_email_delivery=bool(workspace and workspace.require_email_delivery),
            entitlements=entitlements,
        )
        try:
            recipients = _record_recipients(db, document, resolution.recipients)
            db.commit()
        except Exception:
            db.rollback()
            raise
        email = {"sent": 0, "failed": []}
        if selection.send_email:
            email = Documents.share(document, recipients, actor)
        logger.info(
            "Sent document %s to %d recipient(s)", document.id, len(recipients)
        )
        publish_event(
            EventType.document_sent,
            entity_type="document",
            entity_id=document.id,
            actor_id=actor.id,
            document_id=document.id,
            payload={"recipients": len(recipients), "emailed": email["sent"]},
        )
        return {
            "recipients": recipients,
            "invalid_recipients": resolution.invalid,
            "email": email,
        }

    @staticmethod
    def get(db: Session, document_id: str) -> Document:
        document = db.get(Document, coerce_uuid(document_id))
        if not document or not document.is_active:
            raise NotFoundError("Document not found")
        return document

    @staticmethod
    def get_for_account(db: Session, document_id: str, account_id) -> Document:
        document = Documents.get(db, document_id)
        _require_viewer(db, document, account_id)
        return document

    @staticmethod
    def get_for_editor(db: Session, document_id: str, account_id) -> Document:
        document = Documents.get_for_account(db, document_id, account_id)
        _require_editor(db, document, account_id)
        return document

    @staticmethod
    def get_by_public_id(db: Session, public_id: str) -> Document:
        document = db.scalars(
            select(Document).where(Document.public_id == public_id)
        ).first()
        if not document or not document.is_active:
            raise NotFoundError("Document not found")
        return document

    @staticmethod
    def list(
        db: Session,
        account_id: str,
        workspace_id: str | None,
        priority: str | None,
        label: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Document]:
        stmt = select(Document).where(Document.is_active.is_(True))
        if workspace_id is not None:
            workspace = Workspaces.get(db, workspace_id)
            if not get_member(db, workspace.id, account_id):
                raise PolicyViolation("You are not a member of this workspace")
            stmt = stmt.where(Document.workspace_id == workspace.id)
        else:
            stmt = stmt.where(Document.owner_id == coerce_uuid(account_id)).where(
                Document.workspace_id.is_(None)
            )
        if priority is not None:
            stmt = stmt.where(Document.priority == _parse_priority(priority))
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {
                "created_at": Document.created_at,
                "updated_at": Document.updated_at,
                "title": Document.title,
            },
        )
        if label is None:
            return db.scalars(apply_pagination(stmt, limit, offset)).all()
        # Labels live in a JSON column; filter after loading.
        matching = [d for d in db.scalars(stmt).all() if label in (d.labels or [])]
        return matching[offset : offset + limit]

    @staticmethod
    def update(
        db: Session, document_id: str, payload: DocumentUpdate, actor: Account
    ) -> Document:
        document = Documents.get(db, document_id)
        _require_editor(db, document, actor.id)
        data = payload.model_dump(exclude_unset=True)
        entitlements = resolve_entitlements(db, actor, document.workspace)

        if data.get("title") is not None:
            title = data["title"].strip()
            if not title:
                raise ValidationError("Title is required")
            data["title"] = title
        if data.get("priority") is not None:
            data["priority"] = _parse_priority(data["priority"])
        if "labels" in data:
            data["labels"] = _normalize_labels(data["labels"])
        if "tags" in data:
            data["tags"] = _validate_tags(data["tags"], document.workspace)
        if data.get("max_acknowledgers") is not None:
            entitlements.require(Capability.acknowledger_limits)
        if "password" in data:
            password = data.pop("password")
            if password:
                entitlements.require(Capability.password_protection)
            data["password_hash"] = hash_password(password) if password else None
        if (
            data.get("require_recipient_identity") is False
            and document.workspace is not None
            and document.workspace.require_recipient_identity
        ):
            raise ValidationError("This workspace requires recipient identity")

        for key, value in data.items():
            if value is None and key not in {"max_acknowledgers", "password_hash"}:
                continue
            setattr(document, key, value)

        if "max_acknowledgers" in data:
            limit = document.max_acknowledgers
            if limit is not None and document.acknowledgement_count >= limit:
                if document.closed_at is None:
                    document.closed_at = datetime.now(timezone.utc)
            else:
                document.closed_at = None

        db.commit()
        db.refresh(document)
        logger.info("Updated document %s", document.id)
        publish_event(
            EventType.document_updated,
            entity_type="document",
            entity_id=document.id,
            actor_id=actor.id,
            document_id=document.id,
            payload={"changed_fields": sorted(data.keys())},
        )
        return document

    @staticmethod
    def delete(db: Session, document_id: str, actor: Account) -> None:
        document = Documents.get(db, document_id)
        _require_editor(db, document, actor.id)
        document.is_active = False
        db.commit()
        logger.info("Soft-deleted document %s", document.id)
        publish_event(
            EventType.document_deleted,
            entity_type="document",
            entity_id=document.id,
            actor_id=actor.id,
            document_id=document.id,
        )

    # ------------------------------------------------------------------
    # Version sub-operations
    # ------------------------------------------------------------------

    @staticmethod
    def add_version(
        db: Session,
        document_id: str,
        actor: Account,
        upload: UploadedFile,
        version_number: int | None = None,
        version_label: str | None = None,
    ) -> DocumentVersion:
        """Append a version and advance the current-version pointer.

        The number and label are checked before the blob is stored, and the
        blob is removed again if the insert fails. The pointer moves by
        compare-and-set on ``documents.version_number``; a writer that loses
        the race re-reads the latest number and retries once before giving up
        with ``ConflictError``.
        """
        document = Documents.get(db, document_id)
        _require_editor(db, document, actor.id)
        _validate_file(upload)
        if version_number is not None and version_number < 1:
            raise ValidationError("Version number must be positive")
        label = _validate_version_label(version_label) if version_label else None

        doc_id = document.id
        checksum = hashlib.sha256(upload.data).hexdigest()
        _version_slot(db, doc_id, version_number, label)
        storage_key = storage.put(
            upload.data, str(doc_id), upload.file_name, upload.mime_type
        )

        try:
            version = Documents._insert_version(
                db, doc_id, actor, upload, storage_key, checksum, version_number, label
            )
        except Exception:
            db.rollback()
            _discard_blob(storage_key)
            raise

        db.refresh(version)
        db.expire(document)
        VERSIONS_CREATED.inc()
        logger.info(
            "Created version %s (v%d, label %s) for document %s",
            version.id,
            version.version_number,
            version.version_label,
            doc_id,
        )
        publish_event(
            EventType.version_created,
            entity_type="document_version",
            entity_id=version.id,
            actor_id=actor.id,
            document_id=doc_id,
            payload={
                "version_number": version.version_number,
                "version_label": version.version_label,
            },
        )
        return version

    @staticmethod
    def _insert_version(
        db: Session,
        doc_id,
        actor: Account,
        upload: UploadedFile,
        storage_key: str,
        checksum: str,
        version_number: int | None,
        label: str | None,
    ) -> DocumentVersion:
        for attempt in range(2):
            expected, number, number_label = _version_slot(
                db, doc_id, version_number, label
            )
            version = DocumentVersion(
                document_id=doc_id,
                version_number=number,
                version_label=number_label,
                source_type=VersionSourceType.upload,
                file_name=upload.file_name,
                file_size=len(upload.data),
                mime_type=upload.mime_type,
                storage_key=storage_key,
                checksum_sha256=checksum,
                created_by=actor.id,
            )
            try:
                db.add(version)
                db.flush()
                result = db.execute(
                    update(Document)
                    .where(Document.id == doc_id)
                    .where(Document.version_number == expected)
                    .values(
                        version_number=number,
                        current_version_id=version.id,
                        updated_at=datetime.now(timezone.utc),
                    )
                    .execution_options(synchronize_session=False)
                )
            except IntegrityError:
                db.rollback()
                VERSION_CONFLICTS.inc()
                logger.info(
                    "Version %d of document %s was taken concurrently (attempt %d)",
                    number,
                    doc_id,
                    attempt + 1,
                )
                continue
            if result.rowcount == 1:
                db.commit()
                return version
            db.rollback()
            VERSION_CONFLICTS.inc()
            logger.info(
                "Lost version race on document %s (attempt %d)", doc_id, attempt + 1
            )
        raise ConflictError(
            "The document changed while adding this version; retry",
            details={"document_id": str(doc_id)},
        )

    @staticmethod
    def get_current_version(db: Session, document_id: str) -> DocumentVersion | None:
        doc_id = coerce_uuid(document_id)
        current_id = db.scalar(
            select(Document.current_version_id).where(Document.id == doc_id)
        )
        if current_id is None:
            return None
        return db.get(DocumentVersion, current_id)

    @staticmethod
    def get_version(db: Session, document_id: str, version_id: str) -> DocumentVersion:
        version = db.get(DocumentVersion, coerce_uuid(version_id))
        if not version or version.document_id != coerce_uuid(document_id):
            raise NotFoundError("Document version not found")
        return version

    @staticmethod
    def list_versions(
        db: Session,
        document_id: str,
        limit: int,
        offset: int,
    ) -> list[DocumentVersion]:
        stmt = (
            select(DocumentVersion)
            .where(DocumentVersion.document_id == coerce_uuid(document_id))
            .order_by(DocumentVersion.version_number.desc())
            .limit(limit)
            .offset(offset)
        )
        return db.scalars(stmt).all()

    @staticmethod
    def list_recipients(db: Session, document_id: str) -> list[Recipient]:
        stmt = (
            select(Recipient)
            .where(Recipient.document_id == coerce_uuid(document_id))
            .order_by(Recipient.created_at.asc(), Recipient.id.asc())
        )
        return db.scalars(stmt).all()

    @staticmethod
    def download_url(db: Session, document_id: str, version_id: str) -> str:
        version = Documents.get_version(db, document_id, version_id)
        return storage.generate_download_url(version.storage_key, version.file_name)

    # ------------------------------------------------------------------
    # Version notifications
    # ------------------------------------------------------------------

    @staticmethod
    def notify_version(
        db: Session, document: Document, version: DocumentVersion
    ) -> dict:
        emails = [
            r.email for r in Documents.list_recipients(db, document.id) if r.email
        ]
        if not emails:
            return {"sent": 0, "failed": []}
        summary = mailer.deliver(
            emails,
            "version_update",
            {
                "title": document.title,
                "version_label": version.version_label,
                "share_url": share_url(document),
            },
        )
        publish_event(
            EventType.version_notified,
            entity_type="document_version",
            entity_id=version.id,
            document_id=document.id,
            payload={"sent": summary["sent"], "failed": len(summary["failed"])},
        )
        return summary

    @staticmethod
    def get_notification_mode(
        db: Session, document_id: str, account_id: str
    ) -> NotificationMode:
        pref = db.scalars(
            select(NotificationPreference)
            .where(NotificationPreference.document_id == coerce_uuid(document_id))
            .where(NotificationPreference.account_id == coerce_uuid(account_id))
        ).first()
        return pref.mode if pref else NotificationMode.ask

    @staticmethod
    def set_notification_mode(
        db: Session, document_id: str, account_id: str, mode: str
    ) -> NotificationMode:
        try:
            parsed = NotificationMode(str(mode).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid mode. Allowed: {sorted(m.value for m in NotificationMode)}"
            )
        doc_id = coerce_uuid(document_id)
        acct_id = coerce_uuid(account_id)
        pref = db.scalars(
            select(NotificationPreference)
            .where(NotificationPreference.document_id == doc_id)
            .where(NotificationPreference.account_id == acct_id)
        ).first()
        if pref is None:
            pref = NotificationPreference(document_id=doc_id, account_id=acct_id)
            db.add(pref)
        pref.mode = parsed
        db.commit()
        logger.info(
            "Set version notification mode %s for %s on %s",
            parsed.value,
            acct_id,
            doc_id,
        )
        return parsed

    @staticmethod
    def apply_version_notification(
        db: Session,
        document: Document,
        version: DocumentVersion,
        actor: Account,
        notify: bool | None = None,
        remember: bool = False,
    ) -> tuple[bool, dict | None]:
        """Decide whether to email prior recipients about a new version.

        Returns ``(notify_prompt, email_summary)``. An explicit ``notify``
        answer wins over the stored mode and is stored when ``remember``.
        """
        if notify is not None:
            if remember:
                Documents.set_notification_mode(
                    db,
                    document.id,
                    actor.id,
                    NotificationMode.always.value if notify else NotificationMode.never.value,
                )
            if notify:
                return False, Documents.notify_version(db, document, version)
            return False, None

        mode = Documents.get_notification_mode(db, document.id, actor.id)
        if mode == NotificationMode.always:
            return False, Documents.notify_version(db, document, version)
        if mode == NotificationMode.never:
            return False, None
        return True, None

    # ------------------------------------------------------------------
    # Shared responsibility & per-account activity
    # ------------------------------------------------------------------

    @staticmethod
    def list_responsibilities(db: Session, document_id: str, account_id) -> dict:
        """The owner plus every member assigned shared responsibility."""
        document = Documents.get_for_account(db, document_id, account_id)
        result = {
            "document_id": document.id,
            "owner_id": document.owner_id,
            "responsibilities": [],
            "can_manage": True,
        }
        if document.workspace_id is None:
            return result

        assigned = {
            row.account_id: row
            for row in db.scalars(
                select(DocumentResponsibility).where(
                    DocumentResponsibility.document_id == document.id
                )
            )
        }
        members = db.execute(
            select(WorkspaceMember, Account.email)
            .join(Account, Account.id == WorkspaceMember.account_id)
            .where(WorkspaceMember.workspace_id == document.workspace_id)
            .order_by(WorkspaceMember.joined_at.asc())
        ).all()
        for member, email in members:
            if member.account_id == document.owner_id:
                coverage, assigned_at = "owner", None
            elif member.account_id in assigned:
                row = assigned[member.account_id]
                coverage, assigned_at = row.coverage_role, row.assigned_at
            else:
                continue
            result["responsibilities"].append(
                {
                    "account_id": member.account_id,
                    "email": email,
                    "role": member.role.value,
                    "coverage_role": coverage,
                    "assigned_at": assigned_at,
                }
            )
        actor = get_member(db, document.workspace_id, account_id)
        result["can_manage"] = bool(actor and actor.role in MANAGER_ROLES)
        return result

    @staticmethod
    def set_responsibilities(
        db: Session, document_id: str, account_ids: list, actor: Account
    ) -> dict:
        """Replace the set of members sharing responsibility for a document."""
        document = Documents.get_for_account(db, document_id, actor.id)
        if document.workspace_id is None:
            raise ValidationError("Responsibilities apply to workspace documents only")
        member = get_member(db, document.workspace_id, actor.id)
        if not member or member.role not in MANAGER_ROLES:
            raise PolicyViolation("Only workspace owners and admins can assign responsibility")

        selected = {coerce_uuid(a) for a in parse_id_list(account_ids)}
        member_ids = set(
            db.scalars(
                select(WorkspaceMember.account_id).where(
                    WorkspaceMember.workspace_id == document.workspace_id
                )
            )
        )
        invalid = sorted(str(a) for a in selected - member_ids)
        if invalid:
            raise ValidationError(
                "One or more selected accounts are not workspace members",
                details={"account_ids": invalid},
            )
        selected.discard(document.owner_id)

        existing = {
            row.account_id: row
            for row in db.scalars(
                select(DocumentResponsibility).where(
                    DocumentResponsibility.document_id == document.id
                )
            )
        }
        try:
            for account_id, row in existing.items():
                if account_id not in selected:
                    db.delete(row)
            for account_id in selected - set(existing):
                db.add(
                    DocumentResponsibility(
                        workspace_id=document.workspace_id,
                        document_id=document.id,
                        account_id=account_id,
                        coverage_role="shared",
                        assigned_by=actor.id,
                    )
                )
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Responsibilities changed concurrently; retry")
        logger.info(
            "Set %d shared responsibility assignment(s) on document %s",
            len(selected),
            document.id,
        )
        publish_event(
            EventType.responsibilities_updated,
            entity_type="document",
            entity_id=document.id,
            actor_id=actor.id,
            document_id=document.id,
            workspace_id=document.workspace_id,
            payload={"account_ids": sorted(str(a) for a in selected)},
        )
        return Documents.list_responsibilities(db, document.id, actor.id)

    @staticmethod
    def mark_opened(db: Session, document_id: str, account_id) -> DocumentActivity:
        document = Documents.get_for_account(db, document_id, account_id)
        acct_id = coerce_uuid(account_id)
        now = datetime.now(timezone.utc)
        activity = _find_activity(db, acct_id, document.id)
        if activity is None:
            activity = DocumentActivity(
                account_id=acct_id,
                document_id=document.id,
                workspace_id=document.workspace_id,
            )
            db.add(activity)
        activity.last_action = "opened"
        activity.last_opened_at = now
        try:
            db.commit()
        except IntegrityError:
            # First open recorded concurrently by another request.
            db.rollback()
            activity = _find_activity(db, acct_id, document.id)
            activity.last_action = "opened"
            activity.last_opened_at = now
            db.commit()
        db.refresh(activity)
        return activity


documents = Documents()
