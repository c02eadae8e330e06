from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from receipts.errors import (
    ConflictError,
    NotFoundError,
    PolicyViolation,
    SeatLimitExceeded,
    ValidationError,
)
from receipts.metrics import LICENSE_CHANGES
from receipts.models.account import Account
from receipts.models.document import ActivityEvent
from receipts.models.workspace import MemberRole, Workspace, WorkspaceMember
from receipts.schemas.workspace import MemberCreate, WorkspaceCreate, WorkspaceUpdate
from receipts.services.common import apply_pagination, coerce_uuid
from receipts.services.event import EventType, publish_event
from receipts.services.plans import Capability, resolve_capabilities
from receipts.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

MANAGER_ROLES = {MemberRole.owner, MemberRole.admin}


def get_member(db: Session, workspace_id, account_id) -> WorkspaceMember | None:
    return db.scalars(
        select(WorkspaceMember)
        .where(WorkspaceMember.workspace_id == coerce_uuid(workspace_id))
        .where(WorkspaceMember.account_id == coerce_uuid(account_id))
    ).first()


def require_member(db: Session, workspace_id, account_id) -> WorkspaceMember:
    member = get_member(db, workspace_id, account_id)
    if not member:
        raise PolicyViolation("You are not a member of this workspace")
    return member


def require_manager(db: Session, workspace_id, account_id) -> WorkspaceMember:
    member = require_member(db, workspace_id, account_id)
    if member.role not in MANAGER_ROLES:
        raise PolicyViolation("Only workspace owners and admins can do this")
    return member


def _serialize_tag_fields(tag_fields) -> list[dict]:
    fields = []
    seen: set[str] = set()
    for field in tag_fields or []:
        data = field.model_dump() if hasattr(field, "model_dump") else dict(field)
        if data["key"] in seen:
            raise ValidationError(f"Duplicate tag field key: {data['key']}")
        seen.add(data["key"])
        fields.append(data)
    return fields


class Workspaces(ListResponseMixin):
    @staticmethod
    def create(db: Session, owner: Account, payload: WorkspaceCreate) -> Workspace:
        if Capability.workspaces not in resolve_capabilities(owner.plan):
            raise PolicyViolation(
                "Workspaces require a team or enterprise plan",
                details={"plan": owner.plan.value},
                code="upgrade_required",
            )
        existing = db.scalars(
            select(Workspace).where(Workspace.slug == payload.slug)
        ).first()
        if existing:
            raise ConflictError(f"Workspace slug '{payload.slug}' is taken")

        now = datetime.now(timezone.utc)
        workspace = Workspace(
            name=payload.name.strip(),
            slug=payload.slug,
            owner_id=owner.id,
            plan=owner.plan,
            seat_limit=max(owner.seats or 1, 1),
            require_recipient_identity=payload.require_recipient_identity,
            require_email_delivery=payload.require_email_delivery,
            tag_fields=_serialize_tag_fields(payload.tag_fields),
        )
        try:
            db.add(workspace)
            db.flush()
            db.add(
                WorkspaceMember(
                    workspace_id=workspace.id,
                    account_id=owner.id,
                    role=MemberRole.owner,
                    license_active=True,
                    can_view_analytics=True,
                    license_assigned_at=now,
                    license_assigned_by=owner.id,
                )
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"Workspace slug '{payload.slug}' is taken")
        db.refresh(workspace)
        logger.info("Created workspace %s owned by %s", workspace.id, owner.id)
        publish_event(
            EventType.workspace_created,
            entity_type="workspace",
            entity_id=workspace.id,
            actor_id=owner.id,
            workspace_id=workspace.id,
        )
        return workspace

    @staticmethod
    def get(db: Session, workspace_id: str) -> Workspace:
        workspace = db.get(Workspace, coerce_uuid(workspace_id))
        if not workspace or not workspace.is_active:
            raise NotFoundError("Workspace not found")
        return workspace

    @staticmethod
    def list(db: Session, account_id: str, limit: int, offset: int) -> list[Workspace]:
        stmt = (
            select(Workspace)
            .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
            .where(WorkspaceMember.account_id == coerce_uuid(account_id))
            .where(Workspace.is_active.is_(True))
            .order_by(Workspace.created_at.asc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def update(
        db: Session, workspace_id: str, payload: WorkspaceUpdate, actor_id: str
    ) -> Workspace:
        workspace = Workspaces.get(db, workspace_id)
        require_manager(db, workspace.id, actor_id)
        data = payload.model_dump(exclude_unset=True)
        if "tag_fields" in data:
            data["tag_fields"] = _serialize_tag_fields(payload.tag_fields)
        if data.get("name") is not None:
            data["name"] = data["name"].strip()
        for key, value in data.items():
            if value is None and key != "tag_fields":
                continue
            setattr(workspace, key, value)
        db.commit()
        db.refresh(workspace)
        logger.info("Updated workspace %s", workspace.id)
        publish_event(
            EventType.workspace_updated,
            entity_type="workspace",
            entity_id=workspace.id,
            actor_id=actor_id,
            workspace_id=workspace.id,
            payload={"changed_fields": sorted(data.keys())},
        )
        return workspace

    @staticmethod
    def list_members(db: Session, workspace_id: str) -> list[WorkspaceMember]:
        stmt = (
            select(WorkspaceMember)
            .where(WorkspaceMember.workspace_id == coerce_uuid(workspace_id))
            .order_by(WorkspaceMember.joined_at.asc(), WorkspaceMember.id.asc())
        )
        return db.scalars(stmt).all()

    @staticmethod
    def add_member(
        db: Session, workspace_id: str, payload: MemberCreate, actor_id: str
    ) -> WorkspaceMember:
        from receipts.services.seats import _lock_workspace, _used_seats

        workspace = Workspaces.get(db, workspace_id)
        actor = require_manager(db, workspace.id, actor_id)
        try:
            role = MemberRole(payload.role)
        except ValueError:
            raise ValidationError("Invalid role. Allowed: ['admin', 'member']")
        if role == MemberRole.owner:
            raise ValidationError("Use ownership transfer to change the owner")
        if role == MemberRole.admin and actor.role != MemberRole.owner:
            raise PolicyViolation("Only the workspace owner can add admins")

        account = db.get(Account, coerce_uuid(payload.account_id))
        if not account:
            raise NotFoundError("Account not found")
        if get_member(db, workspace.id, account.id):
            raise ConflictError("Account is already a member of this workspace")

        try:
            if payload.license_active:
                locked = _lock_workspace(db, workspace.id)
                used = _used_seats(db, workspace.id)
                if used >= locked.seat_limit:
                    raise SeatLimitExceeded(
                        "No seats available in this workspace",
                        details={"seat_limit": locked.seat_limit, "used_seats": used},
                    )
            member = WorkspaceMember(
                workspace_id=workspace.id,
                account_id=account.id,
                role=role,
                license_active=payload.license_active,
                can_view_analytics=role == MemberRole.admin,
            )
            if payload.license_active:
                member.license_assigned_at = datetime.now(timezone.utc)
                member.license_assigned_by = actor.account_id
            db.add(member)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Account is already a member of this workspace")
        except Exception:
            db.rollback()
            raise
        db.refresh(member)
        logger.info("Added %s to workspace %s as %s", account.id, workspace.id, role.value)
        publish_event(
            EventType.member_added,
            entity_type="workspace_member",
            entity_id=member.id,
            actor_id=actor_id,
            workspace_id=workspace.id,
            payload={"account_id": str(account.id), "role": role.value},
        )
        if member.license_active:
            LICENSE_CHANGES.labels(action="assign").inc()
            publish_event(
                EventType.license_assigned,
                entity_type="workspace_member",
                entity_id=member.id,
                actor_id=actor_id,
                workspace_id=workspace.id,
                payload={"account_id": str(account.id)},
            )
        return member

    @staticmethod
    def activity(
        db: Session, workspace_id: str, actor_id: str, limit: int, offset: int
    ) -> list[ActivityEvent]:
        workspace = Workspaces.get(db, workspace_id)
        require_manager(db, workspace.id, actor_id)
        stmt = (
            select(ActivityEvent)
            .where(ActivityEvent.workspace_id == workspace.id)
            .order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


workspaces = Workspaces()
