"""Plan entitlements and document quotas.

Capabilities are resolved once per request from the effective plan: the
account's own plan for personal documents, the workspace plan for licensed
members of a workspace, and the free set for unlicensed members.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from receipts.errors import PolicyViolation, ValidationError
from receipts.models.account import Account, Plan
from receipts.models.workspace import Workspace, WorkspaceMember


class Capability(enum.Enum):
    password_protection = "password_protection"
    acknowledger_limits = "acknowledger_limits"
    contacts = "contacts"
    analytics = "analytics"
    workspaces = "workspaces"
    templates = "templates"
    stacks = "stacks"


_PERSONAL = frozenset(
    {Capability.password_protection, Capability.acknowledger_limits}
)
_PRO = _PERSONAL | {
    Capability.contacts,
    Capability.analytics,
    Capability.templates,
    Capability.stacks,
}
_TEAM = _PRO | {Capability.workspaces}

_CAPABILITIES: dict[Plan, frozenset[Capability]] = {
    Plan.free: frozenset(),
    Plan.personal: _PERSONAL,
    Plan.pro: _PRO,
    Plan.team: _TEAM,
    Plan.enterprise: _TEAM,
}


def resolve_capabilities(plan: Plan) -> frozenset[Capability]:
    return _CAPABILITIES[plan]


def parse_plan(value) -> Plan:
    if isinstance(value, Plan):
        return value
    try:
        return Plan(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid plan. Allowed: {sorted(p.value for p in Plan)}"
        )


@dataclass(frozen=True)
class Entitlements:
    plan: Plan
    capabilities: frozenset[Capability]

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        if capability not in self.capabilities:
            raise PolicyViolation(
                f"Your plan does not include {capability.value.replace('_', ' ')}",
                details={"plan": self.plan.value, "capability": capability.value},
                code="upgrade_required",
            )


def resolve_entitlements(
    db: Session, account: Account, workspace: Workspace | None = None
) -> Entitlements:
    if workspace is None:
        plan = account.plan
    else:
        member = db.scalars(
            select(WorkspaceMember)
            .where(WorkspaceMember.workspace_id == workspace.id)
            .where(WorkspaceMember.account_id == account.id)
        ).first()
        plan = workspace.plan if member and member.license_active else Plan.free
    return Entitlements(plan=plan, capabilities=resolve_capabilities(plan))


# ---------------------------------------------------------------------------
# Quotas
# ---------------------------------------------------------------------------

FREE_TOTAL_LIMIT = 10
PERSONAL_MONTHLY_LIMIT = 100
PRO_MONTHLY_LIMIT = 500
TEAM_MONTHLY_BASE = 1000
TEAM_MONTHLY_PER_SEAT = 200


@dataclass(frozen=True)
class QuotaRule:
    window: str  # "total" | "monthly" | "custom"
    limit: int | None


def quota_rule(plan: Plan, seats: int = 1) -> QuotaRule:
    if plan == Plan.free:
        return QuotaRule("total", FREE_TOTAL_LIMIT)
    if plan == Plan.personal:
        return QuotaRule("monthly", PERSONAL_MONTHLY_LIMIT)
    if plan == Plan.pro:
        return QuotaRule("monthly", PRO_MONTHLY_LIMIT)
    if plan == Plan.team:
        return QuotaRule(
            "monthly", TEAM_MONTHLY_BASE + TEAM_MONTHLY_PER_SEAT * max(seats or 1, 1)
        )
    return QuotaRule("custom", None)


def current_month_range(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` of the UTC calendar month containing ``now``."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return start, end
