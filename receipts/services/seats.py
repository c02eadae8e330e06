"""Seat and quota allocation.

License assignment is serialized per workspace by locking the workspace row
before counting active licenses; the lock is a no-op on SQLite, where writes
are already serialized by the database file lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from receipts.errors import (
    NotFoundError,
    PolicyViolation,
    QuotaExceeded,
    SeatLimitExceeded,
    ValidationError,
)
from receipts.metrics import LICENSE_CHANGES
from receipts.models.account import Account
from receipts.models.document import Document
from receipts.models.workspace import MemberRole, Workspace, WorkspaceMember
from receipts.schemas.workspace import BillingPlanUpdate
from receipts.services.common import coerce_uuid
from receipts.services.event import EventType, publish_event
from receipts.services.plans import current_month_range, parse_plan, quota_rule
from receipts.services.workspaces import MANAGER_ROLES, get_member, require_member

logger = logging.getLogger(__name__)


def _lock_workspace(db: Session, workspace_id) -> Workspace:
    workspace = db.scalars(
        select(Workspace)
        .where(Workspace.id == coerce_uuid(workspace_id))
        .with_for_update()
    ).first()
    if not workspace or not workspace.is_active:
        raise NotFoundError("Workspace not found")
    return workspace


def _used_seats(db: Session, workspace_id) -> int:
    return db.scalar(
        select(func.count(WorkspaceMember.id))
        .where(WorkspaceMember.workspace_id == workspace_id)
        .where(WorkspaceMember.license_active.is_(True))
    ) or 0


def _check_actor_may_manage(actor: WorkspaceMember, target: WorkspaceMember) -> None:
    if actor.role not in MANAGER_ROLES:
        raise PolicyViolation("Only workspace owners and admins can manage licenses")
    if target.role == MemberRole.owner and actor.account_id != target.account_id:
        raise PolicyViolation("The workspace owner cannot be managed by an admin")
    if (
        actor.role == MemberRole.admin
        and target.role == MemberRole.admin
        and actor.account_id != target.account_id
    ):
        raise PolicyViolation("Admins cannot manage other admins")


def _target(db: Session, workspace_id, account_id) -> WorkspaceMember:
    member = get_member(db, workspace_id, account_id)
    if not member:
        raise NotFoundError("Workspace member not found")
    return member


class Seats:
    @staticmethod
    def summary(db: Session, workspace_id: str) -> dict:
        workspace = db.get(Workspace, coerce_uuid(workspace_id))
        if not workspace or not workspace.is_active:
            raise NotFoundError("Workspace not found")
        used = _used_seats(db, workspace.id)
        return {
            "workspace_id": workspace.id,
            "plan": workspace.plan,
            "seat_limit": workspace.seat_limit,
            "used_seats": used,
            "available_seats": max(workspace.seat_limit - used, 0),
        }

    @staticmethod
    def assign_license(
        db: Session, workspace_id: str, account_id: str, actor_id: str
    ) -> WorkspaceMember:
        try:
            workspace = _lock_workspace(db, workspace_id)
            actor = require_member(db, workspace.id, actor_id)
            target = _target(db, workspace.id, account_id)
            _check_actor_may_manage(actor, target)
            if target.license_active:
                db.rollback()
                return target

            used = _used_seats(db, workspace.id)
            if used >= workspace.seat_limit:
                raise SeatLimitExceeded(
                    "No seats available in this workspace",
                    details={"seat_limit": workspace.seat_limit, "used_seats": used},
                )
            target.license_active = True
            target.license_assigned_at = datetime.now(timezone.utc)
            target.license_assigned_by = actor.account_id
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(target)
        LICENSE_CHANGES.labels(action="assign").inc()
        logger.info(
            "Assigned license in workspace %s to %s", workspace_id, target.account_id
        )
        publish_event(
            EventType.license_assigned,
            entity_type="workspace_member",
            entity_id=target.id,
            actor_id=actor_id,
            workspace_id=target.workspace_id,
            payload={"account_id": str(target.account_id)},
        )
        return target

    @staticmethod
    def revoke_license(
        db: Session, workspace_id: str, account_id: str, actor_id: str
    ) -> WorkspaceMember:
        try:
            workspace = _lock_workspace(db, workspace_id)
            actor = require_member(db, workspace.id, actor_id)
            target = _target(db, workspace.id, account_id)
            if target.role == MemberRole.owner:
                raise PolicyViolation("The workspace owner's license cannot be revoked")
            _check_actor_may_manage(actor, target)
            if not target.license_active:
                db.rollback()
                return target
            target.license_active = False
            target.license_revoked_at = datetime.now(timezone.utc)
            target.license_revoked_by = actor.account_id
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(target)
        LICENSE_CHANGES.labels(action="revoke").inc()
        logger.info(
            "Revoked license in workspace %s from %s", workspace_id, target.account_id
        )
        publish_event(
            EventType.license_revoked,
            entity_type="workspace_member",
            entity_id=target.id,
            actor_id=actor_id,
            workspace_id=target.workspace_id,
            payload={"account_id": str(target.account_id)},
        )
        return target

    @staticmethod
    def set_license(
        db: Session, workspace_id: str, account_id: str, active: bool, actor_id: str
    ) -> WorkspaceMember:
        if active:
            return Seats.assign_license(db, workspace_id, account_id, actor_id)
        return Seats.revoke_license(db, workspace_id, account_id, actor_id)

    @staticmethod
    def update_member(
        db: Session,
        workspace_id: str,
        account_id: str,
        actor_id: str,
        role: str | None = None,
        can_view_analytics: bool | None = None,
    ) -> WorkspaceMember:
        workspace = db.get(Workspace, coerce_uuid(workspace_id))
        if not workspace or not workspace.is_active:
            raise NotFoundError("Workspace not found")
        actor = require_member(db, workspace.id, actor_id)
        target = _target(db, workspace.id, account_id)
        _check_actor_may_manage(actor, target)

        changes: dict = {}
        if role is not None:
            try:
                new_role = MemberRole(role)
            except ValueError:
                raise ValidationError("Invalid role. Allowed: ['admin', 'member']")
            if MemberRole.owner in (new_role, target.role):
                raise ValidationError("Use ownership transfer to change the owner")
            if new_role == MemberRole.admin and actor.role != MemberRole.owner:
                raise PolicyViolation("Only the workspace owner can promote admins")
            if new_role != target.role:
                changes["role"] = new_role.value
                target.role = new_role
        if can_view_analytics is not None and target.role != MemberRole.owner:
            changes["can_view_analytics"] = can_view_analytics
            target.can_view_analytics = can_view_analytics

        db.commit()
        db.refresh(target)
        if changes:
            logger.info(
                "Updated member %s in workspace %s: %s",
                target.account_id,
                workspace.id,
                sorted(changes),
            )
            publish_event(
                EventType.member_role_changed,
                entity_type="workspace_member",
                entity_id=target.id,
                actor_id=actor_id,
                workspace_id=workspace.id,
                payload=changes,
            )
        return target

    @staticmethod
    def transfer_ownership(
        db: Session, workspace_id: str, new_owner_id: str, actor_id: str
    ) -> Workspace:
        try:
            workspace = _lock_workspace(db, workspace_id)
            actor = require_member(db, workspace.id, actor_id)
            if actor.role != MemberRole.owner:
                raise PolicyViolation("Only the workspace owner can transfer ownership")
            target = _target(db, workspace.id, new_owner_id)
            if target.account_id == actor.account_id:
                raise ValidationError("Account already owns this workspace")

            now = datetime.now(timezone.utc)
            if not target.license_active:
                used = _used_seats(db, workspace.id)
                if used >= workspace.seat_limit:
                    raise SeatLimitExceeded(
                        "The new owner needs a seat and none are available",
                        details={"seat_limit": workspace.seat_limit, "used_seats": used},
                    )
                target.license_active = True
                target.license_assigned_at = now
                target.license_assigned_by = actor.account_id
            actor.role = MemberRole.admin
            target.role = MemberRole.owner
            target.can_view_analytics = True
            workspace.owner_id = target.account_id
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(workspace)
        logger.info(
            "Transferred workspace %s from %s to %s",
            workspace.id,
            actor_id,
            new_owner_id,
        )
        publish_event(
            EventType.ownership_transferred,
            entity_type="workspace",
            entity_id=workspace.id,
            actor_id=actor_id,
            workspace_id=workspace.id,
            payload={"new_owner_id": str(new_owner_id)},
        )
        return workspace

    @staticmethod
    def apply_billing_update(db: Session, payload: BillingPlanUpdate) -> dict:
        """Apply one billing feed message to a workspace and/or an account."""
        if payload.workspace_id is None and payload.account_id is None:
            raise ValidationError("workspace_id or account_id is required")
        plan = parse_plan(payload.plan)
        result: dict = {"plan": plan.value}
        if payload.workspace_id is not None:
            workspace = db.get(Workspace, coerce_uuid(payload.workspace_id))
            if not workspace:
                raise NotFoundError("Workspace not found")
            workspace.plan = plan
            if payload.seat_limit is not None:
                workspace.seat_limit = payload.seat_limit
            result["workspace_id"] = str(workspace.id)
            result["seat_limit"] = workspace.seat_limit
        if payload.account_id is not None:
            account = db.get(Account, coerce_uuid(payload.account_id))
            if not account:
                raise NotFoundError("Account not found")
            account.plan = plan
            if payload.seat_limit is not None:
                account.seats = payload.seat_limit
            result["account_id"] = str(account.id)
        db.commit()
        logger.info("Applied billing update %s", result)
        publish_event(
            EventType.plan_updated,
            entity_type="workspace" if payload.workspace_id else "account",
            entity_id=payload.workspace_id or payload.account_id,
            workspace_id=payload.workspace_id,
            payload=result,
        )
        return result


# ---------------------------------------------------------------------------
# Quotas
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuotaStatus:
    used: int
    limit: int | None
    remaining: int | None
    window: str

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self.used >= self.limit


class Quotas:
    @staticmethod
    def check(
        db: Session,
        account: Account,
        workspace: Workspace | None = None,
        now: datetime | None = None,
    ) -> QuotaStatus:
        stmt = select(func.count(Document.id))
        if workspace is not None:
            rule = quota_rule(workspace.plan, workspace.seat_limit)
            stmt = stmt.where(Document.workspace_id == workspace.id)
        else:
            rule = quota_rule(account.plan, account.seats)
            stmt = stmt.where(Document.owner_id == account.id).where(
                Document.workspace_id.is_(None)
            )
        if rule.limit is None:
            return QuotaStatus(used=0, limit=None, remaining=None, window=rule.window)
        if rule.window == "monthly":
            start, end = current_month_range(now)
            stmt = stmt.where(Document.created_at >= start).where(
                Document.created_at < end
            )
        used = db.scalar(stmt) or 0
        return QuotaStatus(
            used=used,
            limit=rule.limit,
            remaining=max(rule.limit - used, 0),
            window=rule.window,
        )

    @staticmethod
    def enforce(
        db: Session,
        account: Account,
        workspace: Workspace | None = None,
        now: datetime | None = None,
    ) -> QuotaStatus:
        status = Quotas.check(db, account, workspace, now)
        if status.exhausted:
            raise QuotaExceeded(
                "Document quota reached for this plan",
                details={
                    "used": status.used,
                    "limit": status.limit,
                    "window": status.window,
                },
            )
        return status


seats = Seats()
quotas = Quotas()
