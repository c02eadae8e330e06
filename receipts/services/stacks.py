"""Document stacks and their public deliveries.

A stack is a workspace's reusable list of documents. A delivery freezes a
set of documents behind one public link: each recipient acknowledges the
documents one at a time, then finalizes to receive a stack receipt once no
required document is outstanding.
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone

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
from receipts.metrics import STACK_DELIVERIES, STACK_RECEIPTS
from receipts.models.account import Account
from receipts.models.document import Document
from receipts.models.stack import (
    DeliveryStatus,
    Stack,
    StackAcknowledgement,
    StackDelivery,
    StackDeliveryDocument,
    StackDeliveryRecipient,
    StackItem,
    StackReceipt,
)
from receipts.schemas.stack import (
    DeliveryCreate,
    StackCreate,
    StackDocumentSubmit,
    StackFinalize,
)
from receipts.security import check_access_token
from receipts.services.common import apply_pagination, as_utc, coerce_uuid
from receipts.services.completions import Completions
from receipts.services.event import EventType, publish_event
from receipts.services.mailer import mailer
from receipts.services.plans import Capability, resolve_entitlements
from receipts.services.recipients import (
    fallback_name,
    is_valid_email,
    normalize_display_name,
    normalize_email,
    parse_id_list,
)
from receipts.services.response import ListResponseMixin
from receipts.services.workspaces import MANAGER_ROLES, Workspaces, require_member

logger = logging.getLogger(__name__)

MAX_STACK_NAME_LENGTH = 120
MAX_STACK_DESCRIPTION_LENGTH = 400
MAX_DELIVERY_DOCUMENTS = 100
MAX_DELIVERY_RECIPIENTS = 100
MAX_DELIVERY_TITLE_LENGTH = 200


def stack_share_url(delivery: StackDelivery) -> str:
    return f"{settings.public_base_url.rstrip('/')}/s/{delivery.public_id}"


def _require_stacks(db: Session, workspace_id, actor: Account):
    workspace = Workspaces.get(db, workspace_id)
    member = require_member(db, workspace.id, actor.id)
    resolve_entitlements(db, actor, workspace).require(Capability.stacks)
    return workspace, member


def _require_stack_owner(stack: Stack, member) -> None:
    if stack.owner_id != member.account_id and member.role not in MANAGER_ROLES:
        raise PolicyViolation("Only the stack owner or a workspace admin can change it")


def _workspace_documents(db: Session, workspace_id, document_ids) -> dict:
    rows = db.scalars(
        select(Document)
        .where(Document.workspace_id == workspace_id)
        .where(Document.id.in_(document_ids))
        .where(Document.is_active.is_(True))
    ).all()
    return {doc.id: doc for doc in rows}


def serialize_delivery(delivery: StackDelivery) -> dict:
    return {
        "id": delivery.id,
        "workspace_id": delivery.workspace_id,
        "stack_id": delivery.stack_id,
        "title": delivery.title,
        "public_id": delivery.public_id,
        "share_url": stack_share_url(delivery),
        "status": delivery.status,
        "expires_at": delivery.expires_at,
        "document_count": delivery.document_count,
        "created_by": delivery.created_by,
        "created_at": delivery.created_at,
    }


def _acknowledged_ids(db: Session, recipient: StackDeliveryRecipient | None) -> dict:
    if recipient is None:
        return {}
    rows = db.execute(
        select(StackAcknowledgement.document_id, StackAcknowledgement.acknowledged_at)
        .where(StackAcknowledgement.delivery_recipient_id == recipient.id)
    ).all()
    return {document_id: acknowledged_at for document_id, acknowledged_at in rows}


def _find_recipient(
    db: Session, delivery_id, email: str
) -> StackDeliveryRecipient | None:
    return db.scalars(
        select(StackDeliveryRecipient)
        .where(StackDeliveryRecipient.delivery_id == delivery_id)
        .where(StackDeliveryRecipient.email == email)
    ).first()


class Stacks(ListResponseMixin):
    @staticmethod
    def create(
        db: Session, workspace_id: str, payload: StackCreate, actor: Account
    ) -> Stack:
        workspace, _ = _require_stacks(db, workspace_id, actor)
        name = re.sub(r"\s+", " ", payload.name.strip())[:MAX_STACK_NAME_LENGTH]
        if not name:
            raise ValidationError("Stack name is required")
        description = (payload.description or "").strip()[:MAX_STACK_DESCRIPTION_LENGTH]
        stack = Stack(
            workspace_id=workspace.id,
            owner_id=actor.id,
            name=name,
            description=description or None,
        )
        db.add(stack)
        db.commit()
        db.refresh(stack)
        logger.info("Created stack %s in workspace %s", stack.id, workspace.id)
        publish_event(
            EventType.stack_created,
            entity_type="stack",
            entity_id=stack.id,
            actor_id=actor.id,
            workspace_id=workspace.id,
            payload={"name": name},
        )
        return stack

    @staticmethod
    def get(db: Session, workspace_id: str, stack_id: str) -> Stack:
        stack = db.get(Stack, coerce_uuid(stack_id))
        if not stack or stack.workspace_id != coerce_uuid(workspace_id):
            raise NotFoundError("Stack not found")
        return stack

    @staticmethod
    def get_for_account(
        db: Session, workspace_id: str, stack_id: str, actor: Account
    ) -> Stack:
        workspace, _ = _require_stacks(db, workspace_id, actor)
        return Stacks.get(db, workspace.id, stack_id)

    @staticmethod
    def list(
        db: Session, workspace_id: str, actor: Account, limit: int, offset: int
    ) -> list[Stack]:
        workspace, _ = _require_stacks(db, workspace_id, actor)
        stmt = (
            select(Stack)
            .where(Stack.workspace_id == workspace.id)
            .order_by(Stack.updated_at.desc(), Stack.name.asc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def add_item(
        db: Session, workspace_id: str, stack_id: str, document_id, actor: Account
    ) -> Stack:
        workspace, member = _require_stacks(db, workspace_id, actor)
        stack = Stacks.get(db, workspace.id, stack_id)
        _require_stack_owner(stack, member)
        doc_id = coerce_uuid(document_id)
        if doc_id not in _workspace_documents(db, workspace.id, [doc_id]):
            raise NotFoundError("Document not found in this workspace")
        if doc_id in stack.document_ids:
            return stack
        try:
            stack.items.append(StackItem(document_id=doc_id, added_by=actor.id))
            stack.updated_at = datetime.now(timezone.utc)
            db.commit()
        except IntegrityError:
            # Added concurrently; the item is there either way.
            db.rollback()
        db.refresh(stack)
        logger.info("Added document %s to stack %s", doc_id, stack.id)
        return stack

    @staticmethod
    def remove_item(
        db: Session, workspace_id: str, stack_id: str, document_id: str, actor: Account
    ) -> Stack:
        workspace, member = _require_stacks(db, workspace_id, actor)
        stack = Stacks.get(db, workspace.id, stack_id)
        _require_stack_owner(stack, member)
        doc_id = coerce_uuid(document_id)
        item = next((i for i in stack.items if i.document_id == doc_id), None)
        if item is None:
            raise NotFoundError("Document is not in this stack")
        stack.items.remove(item)
        stack.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(stack)
        logger.info("Removed document %s from stack %s", doc_id, stack.id)
        return stack

    @staticmethod
    def delete(db: Session, workspace_id: str, stack_id: str, actor: Account) -> None:
        """Delete a stack. Deliveries already sent from it keep working."""
        workspace, member = _require_stacks(db, workspace_id, actor)
        stack = Stacks.get(db, workspace.id, stack_id)
        _require_stack_owner(stack, member)
        for model in (StackDelivery, StackReceipt):
            db.execute(
                update(model)
                .where(model.stack_id == stack.id)
                .values(stack_id=None)
                .execution_options(synchronize_session=False)
            )
        db.delete(stack)
        db.commit()
        logger.info("Deleted stack %s from workspace %s", stack_id, workspace.id)
        publish_event(
            EventType.stack_deleted,
            entity_type="stack",
            entity_id=stack_id,
            actor_id=actor.id,
            workspace_id=workspace.id,
        )


class StackDeliveries(ListResponseMixin):
    @staticmethod
    def _select_documents(
        db: Session, workspace_id, payload: DeliveryCreate
    ) -> tuple[list[Document], Stack | None]:
        stack = None
        if payload.mode == "full_stack":
            if payload.stack_id is None:
                raise ValidationError("stack_id is required to deliver a full stack")
            stack = Stacks.get(db, workspace_id, payload.stack_id)
            ids = stack.document_ids
            if not ids:
                raise ValidationError("Stack has no documents to deliver")
        else:
            ids = [coerce_uuid(i) for i in parse_id_list(payload.document_ids)]
            if not ids:
                raise ValidationError("Select at least one document to deliver")
            if len(ids) > MAX_DELIVERY_DOCUMENTS:
                raise ValidationError(
                    f"A delivery holds at most {MAX_DELIVERY_DOCUMENTS} documents"
                )
            if payload.stack_id is not None:
                stack = Stacks.get(db, workspace_id, payload.stack_id)

        found = _workspace_documents(db, workspace_id, ids)
        missing = [str(i) for i in ids if i not in found]
        if missing:
            raise ValidationError(
                "One or more documents are not available in this workspace",
                details={"document_ids": missing},
            )
        return [found[i] for i in ids], stack

    @staticmethod
    def _recipients(payload: DeliveryCreate) -> tuple[dict[str, str], list[str]]:
        valid: dict[str, str] = {}
        invalid: list[str] = []
        for item in payload.recipients:
            email = normalize_email(item.email)
            if not is_valid_email(email):
                invalid.append(item.email)
                continue
            name = normalize_display_name(item.name) or fallback_name(email)
            valid.setdefault(email, name)
        if len(valid) > MAX_DELIVERY_RECIPIENTS:
            raise ValidationError(
                f"A delivery reaches at most {MAX_DELIVERY_RECIPIENTS} recipients"
            )
        return valid, invalid

    @staticmethod
    def create(
        db: Session, workspace_id: str, payload: DeliveryCreate, actor: Account
    ) -> dict:
        workspace, _ = _require_stacks(db, workspace_id, actor)
        docs, stack = StackDeliveries._select_documents(db, workspace.id, payload)
        recipients, invalid = StackDeliveries._recipients(payload)

        title = (payload.title or "").strip()
        if not title:
            if stack is not None and payload.mode == "full_stack":
                title = stack.name
            elif len(docs) == 1:
                title = docs[0].title
            else:
                title = f"Selected documents ({len(docs)})"
        expires_at = None
        if payload.expires_in_days:
            expires_at = datetime.now(timezone.utc) + timedelta(
                days=payload.expires_in_days
            )

        delivery = StackDelivery(
            workspace_id=workspace.id,
            stack_id=stack.id if stack else None,
            created_by=actor.id,
            title=title[:MAX_DELIVERY_TITLE_LENGTH],
            public_id=secrets.token_urlsafe(16),
            status=DeliveryStatus.active,
            expires_at=expires_at,
        )
        for position, doc in enumerate(docs):
            delivery.documents.append(
                StackDeliveryDocument(
                    document_id=doc.id, position=position, required=True
                )
            )
        for email, name in recipients.items():
            delivery.recipients.append(StackDeliveryRecipient(email=email, name=name))
        db.add(delivery)
        db.commit()
        db.refresh(delivery)

        STACK_DELIVERIES.labels(mode=payload.mode).inc()
        logger.info(
            "Created delivery %s with %d document(s) for %d recipient(s)",
            delivery.id,
            len(docs),
            len(recipients),
        )
        publish_event(
            EventType.delivery_created,
            entity_type="stack_delivery",
            entity_id=delivery.id,
            actor_id=actor.id,
            workspace_id=workspace.id,
            payload={
                "mode": payload.mode,
                "document_count": len(docs),
                "recipient_count": len(recipients),
            },
        )

        email_summary = {"sent": 0, "failed": []}
        if payload.send_email and recipients:
            url = stack_share_url(delivery)
            sent, failed = 0, []
            for email, name in recipients.items():
                result = mailer.deliver(
                    [email],
                    "stack_delivery",
                    {
                        "workspace_name": workspace.name,
                        "title": delivery.title,
                        "share_url": url,
                        "recipient_name": name,
                    },
                )
                sent += result["sent"]
                failed.extend(result["failed"])
            email_summary = {"sent": sent, "failed": failed}
        return {
            "delivery": serialize_delivery(delivery),
            "invalid_recipients": invalid,
            "email": email_summary,
        }

    @staticmethod
    def get(db: Session, workspace_id: str, delivery_id: str) -> StackDelivery:
        delivery = db.get(StackDelivery, coerce_uuid(delivery_id))
        if not delivery or delivery.workspace_id != coerce_uuid(workspace_id):
            raise NotFoundError("Delivery not found")
        return delivery

    @staticmethod
    def list(
        db: Session, workspace_id: str, actor: Account, limit: int, offset: int
    ) -> list[dict]:
        workspace, _ = _require_stacks(db, workspace_id, actor)
        stmt = (
            select(StackDelivery)
            .where(StackDelivery.workspace_id == workspace.id)
            .order_by(StackDelivery.created_at.desc(), StackDelivery.id.asc())
        )
        rows = db.scalars(apply_pagination(stmt, limit, offset))
        return [serialize_delivery(d) for d in rows]

    @staticmethod
    def detail(
        db: Session, workspace_id: str, delivery_id: str, actor: Account
    ) -> dict:
        workspace, _ = _require_stacks(db, workspace_id, actor)
        delivery = StackDeliveries.get(db, workspace.id, delivery_id)
        counts = dict(
            db.execute(
                select(StackAcknowledgement.delivery_recipient_id, func.count())
                .join(
                    StackDeliveryRecipient,
                    StackDeliveryRecipient.id
                    == StackAcknowledgement.delivery_recipient_id,
                )
                .where(StackDeliveryRecipient.delivery_id == delivery.id)
                .group_by(StackAcknowledgement.delivery_recipient_id)
            ).all()
        )
        return {
            "delivery": serialize_delivery(delivery),
            "documents": [
                {
                    "document_id": item.document_id,
                    "title": item.document.title,
                    "public_id": item.document.public_id,
                    "position": item.position,
                    "required": item.required,
                }
                for item in delivery.documents
            ],
            "recipients": [
                {
                    "email": r.email,
                    "name": r.name,
                    "acknowledged_documents": counts.get(r.id, 0),
                    "completed_at": r.completed_at,
                    "last_activity_at": r.last_activity_at,
                }
                for r in delivery.recipients
            ],
        }

    @staticmethod
    def revoke(
        db: Session, workspace_id: str, delivery_id: str, actor: Account
    ) -> dict:
        workspace, member = _require_stacks(db, workspace_id, actor)
        delivery = StackDeliveries.get(db, workspace.id, delivery_id)
        if delivery.created_by != actor.id and member.role not in MANAGER_ROLES:
            raise PolicyViolation(
                "Only the sender or a workspace admin can revoke a delivery"
            )
        if delivery.status != DeliveryStatus.revoked:
            delivery.status = DeliveryStatus.revoked
            db.commit()
            db.refresh(delivery)
            logger.info("Revoked delivery %s", delivery.id)
            publish_event(
                EventType.delivery_revoked,
                entity_type="stack_delivery",
                entity_id=delivery.id,
                actor_id=actor.id,
                workspace_id=workspace.id,
            )
        return serialize_delivery(delivery)

    # -----------------------------------------------------------------------
    # Public flow
    # -----------------------------------------------------------------------

    @staticmethod
    def get_by_public_id(db: Session, public_id: str) -> StackDelivery:
        delivery = db.scalars(
            select(StackDelivery).where(StackDelivery.public_id == public_id)
        ).first()
        if not delivery:
            raise NotFoundError("Stack not found")
        return delivery

    @staticmethod
    def _require_open(delivery: StackDelivery, allow_completed: bool = False) -> None:
        allowed = {DeliveryStatus.active}
        if allow_completed:
            allowed.add(DeliveryStatus.completed)
        expires_at = as_utc(delivery.expires_at)
        expired = expires_at is not None and expires_at <= datetime.now(timezone.utc)
        if delivery.status not in allowed or expired:
            raise DocumentClosedError(
                "This stack link is no longer active",
                details={"public_id": delivery.public_id},
                code="delivery_closed",
            )

    @staticmethod
    def public_view(
        db: Session, public_id: str, recipient_email: str | None = None
    ) -> dict:
        delivery = StackDeliveries.get_by_public_id(db, public_id)
        StackDeliveries._require_open(delivery, allow_completed=True)
        recipient = None
        email = normalize_email(recipient_email)
        if email:
            recipient = _find_recipient(db, delivery.id, email)
        acked = _acknowledged_ids(db, recipient)

        documents = []
        for item in delivery.documents:
            doc = item.document
            documents.append(
                {
                    "title": doc.title,
                    "public_id": doc.public_id,
                    "position": item.position,
                    "required": item.required,
                    "require_recipient_identity": doc.require_recipient_identity,
                    "password_protected": doc.password_protected,
                    "acknowledged": doc.id in acked,
                    "acknowledged_at": acked.get(doc.id),
                }
            )
        required = [d for d in documents if d["required"]]
        return {
            "public_id": delivery.public_id,
            "title": delivery.title,
            "workspace_name": delivery.workspace.name,
            "documents": documents,
            "required_total": len(required),
            "required_acknowledged": sum(1 for d in required if d["acknowledged"]),
            "completed": bool(recipient and recipient.completed_at),
        }

    @staticmethod
    def submit_document(
        db: Session,
        public_id: str,
        payload: StackDocumentSubmit,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> StackAcknowledgement:
        """Acknowledge one document of a delivery on behalf of a recipient.

        The completion is recorded against the document exactly as a direct
        public submission would be; the stack acknowledgement links to it.
        """
        delivery = StackDeliveries.get_by_public_id(db, public_id)
        StackDeliveries._require_open(delivery)
        email = normalize_email(payload.email)
        if not is_valid_email(email):
            raise ValidationError("A valid email is required to acknowledge a stack")
        if not payload.acknowledged:
            raise ValidationError("Stack documents must be submitted as acknowledged")
        item = next(
            (
                i
                for i in delivery.documents
                if i.document.public_id == payload.document_public_id
            ),
            None,
        )
        if item is None:
            raise NotFoundError("Document is not part of this stack")
        document = item.document
        if document.password_protected and not check_access_token(
            document.public_id, document.password_hash, payload.access_token
        ):
            raise PolicyViolation("This document is password protected")

        recipient = _find_recipient(db, delivery.id, email)
        if recipient is not None:
            acked = _acknowledged_ids(db, recipient)
            if document.id in acked:
                raise ConflictError("Already acknowledged in this stack")

        completion = Completions.record(
            db, document.id, payload, ip=ip, user_agent=user_agent
        )

        now = datetime.now(timezone.utc)
        name = normalize_display_name(payload.name) or fallback_name(email)
        try:
            if recipient is None:
                recipient = StackDeliveryRecipient(
                    delivery_id=delivery.id, email=email, name=name
                )
                db.add(recipient)
                db.flush()
            elif not recipient.name:
                recipient.name = name
            recipient.last_activity_at = now
            ack = StackAcknowledgement(
                delivery_recipient_id=recipient.id,
                document_id=document.id,
                completion_id=completion.id,
                ack_method="public_link",
                evidence={
                    "version_id": str(completion.document_version_id),
                    "max_scroll_percent": payload.max_scroll_percent,
                    "time_on_page_seconds": payload.time_on_page_seconds,
                    "active_seconds": payload.active_seconds,
                    "ip": ip,
                    "user_agent": user_agent,
                },
                acknowledged_at=now,
            )
            db.add(ack)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("This document is already acknowledged in this stack")
        db.refresh(ack)
        logger.info(
            "Stack %s: %s acknowledged document %s", delivery.id, email, document.id
        )
        publish_event(
            EventType.stack_acknowledged,
            entity_type="stack_delivery",
            entity_id=delivery.id,
            document_id=document.id,
            workspace_id=delivery.workspace_id,
            payload={"email": email, "completion_id": str(completion.id)},
        )
        return ack

    @staticmethod
    def finalize(db: Session, public_id: str, payload: StackFinalize) -> StackReceipt:
        delivery = StackDeliveries.get_by_public_id(db, public_id)
        StackDeliveries._require_open(delivery, allow_completed=True)
        email = normalize_email(payload.email)
        recipient = _find_recipient(db, delivery.id, email) if email else None
        if recipient is None:
            raise NotFoundError("No acknowledgements found for this email")

        acked = _acknowledged_ids(db, recipient)
        outstanding = [
            item
            for item in delivery.documents
            if item.required and item.document_id not in acked
        ]
        if outstanding:
            raise ConflictError(
                "Acknowledge every required document before finalizing",
                details={
                    "outstanding_count": len(outstanding),
                    "outstanding_documents": [
                        {"public_id": i.document.public_id, "title": i.document.title}
                        for i in outstanding
                    ],
                },
            )

        now = datetime.now(timezone.utc)
        receipt = db.scalars(
            select(StackReceipt)
            .where(StackReceipt.delivery_id == delivery.id)
            .where(StackReceipt.delivery_recipient_id == recipient.id)
        ).first()
        if receipt is None:
            receipt = StackReceipt(
                delivery_recipient_id=recipient.id,
                delivery_id=delivery.id,
                workspace_id=delivery.workspace_id,
                stack_id=delivery.stack_id,
            )
            db.add(receipt)
        required = [item for item in delivery.documents if item.required]
        receipt.summary = {
            "stack_title": delivery.title,
            "recipient_name": recipient.name,
            "recipient_email": recipient.email,
            "total_documents": delivery.document_count,
            "required_documents": len(required),
            "acknowledged_documents": sum(
                1 for item in delivery.documents if item.document_id in acked
            ),
        }
        receipt.evidence = {
            "stack_public_id": delivery.public_id,
            "delivery_id": str(delivery.id),
            "documents": [
                {
                    "document_id": str(item.document_id),
                    "title": item.document.title,
                    "acknowledged_at": as_utc(acked[item.document_id]).isoformat(),
                }
                for item in delivery.documents
                if item.document_id in acked
            ],
        }
        receipt.outstanding_count = 0
        receipt.completed_at = now
        recipient.completed_at = recipient.completed_at or now
        recipient.last_activity_at = now
        try:
            db.flush()
            pending = db.scalar(
                select(func.count(StackDeliveryRecipient.id))
                .where(StackDeliveryRecipient.delivery_id == delivery.id)
                .where(StackDeliveryRecipient.completed_at.is_(None))
            )
            if not pending and delivery.status == DeliveryStatus.active:
                delivery.status = DeliveryStatus.completed
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("This stack was finalized concurrently; retry")
        db.refresh(receipt)

        STACK_RECEIPTS.inc()
        logger.info("Stack %s finalized by %s", delivery.id, email)
        publish_event(
            EventType.stack_completed,
            entity_type="stack_delivery",
            entity_id=delivery.id,
            workspace_id=delivery.workspace_id,
            payload={"email": email, "receipt_id": str(receipt.id)},
        )
        return receipt


stacks = Stacks()
deliveries = StackDeliveries()
