from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from receipts.api.deps import get_db, require_account
from receipts.models.account import Account
from receipts.schemas.analytics import AnalyticsSnapshot
from receipts.schemas.common import ListResponse
from receipts.schemas.workspace import (
    ActivityEventRead,
    LicenseUpdate,
    LicensingRead,
    MemberCreate,
    MemberRead,
    MemberUpdate,
    OwnershipTransfer,
    WorkspaceCreate,
    WorkspaceRead,
    WorkspaceUpdate,
)
from receipts.services.analytics import analytics, require_analytics_access
from receipts.services.seats import seats
from receipts.services.workspaces import require_member, workspaces

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


@router.post("", response_model=WorkspaceRead, status_code=status.HTTP_201_CREATED)
def create_workspace(
    payload: WorkspaceCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return workspaces.create(db, account, payload)


@router.get("", response_model=ListResponse[WorkspaceRead])
def list_workspaces(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return workspaces.list_response(db, account.id, limit, offset)


@router.get("/{workspace_id}", response_model=WorkspaceRead)
def get_workspace(
    workspace_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    workspace = workspaces.get(db, workspace_id)
    require_member(db, workspace.id, account.id)
    return workspace


@router.patch("/{workspace_id}", response_model=WorkspaceRead)
def update_workspace(
    workspace_id: str,
    payload: WorkspaceUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return workspaces.update(db, workspace_id, payload, account.id)


# ------------------------------------------------------------------
# Members & licenses
# ------------------------------------------------------------------


@router.get("/{workspace_id}/licenses", response_model=LicensingRead)
def get_licensing(
    workspace_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    workspace = workspaces.get(db, workspace_id)
    require_member(db, workspace.id, account.id)
    return {
        "summary": seats.summary(db, workspace.id),
        "members": workspaces.list_members(db, workspace.id),
    }


@router.post(
    "/{workspace_id}/members",
    response_model=MemberRead,
    status_code=status.HTTP_201_CREATED,
)
def add_member(
    workspace_id: str,
    payload: MemberCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return workspaces.add_member(db, workspace_id, payload, account.id)


@router.patch("/{workspace_id}/members/{account_id}", response_model=MemberRead)
def update_member(
    workspace_id: str,
    account_id: str,
    payload: MemberUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return seats.update_member(
        db,
        workspace_id,
        account_id,
        account.id,
        role=payload.role,
        can_view_analytics=payload.can_view_analytics,
    )


@router.patch("/{workspace_id}/licenses/{account_id}", response_model=MemberRead)
def update_license(
    workspace_id: str,
    account_id: str,
    payload: LicenseUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return seats.set_license(
        db, workspace_id, account_id, payload.license_active, account.id
    )


@router.post("/{workspace_id}/transfer-ownership", response_model=WorkspaceRead)
def transfer_ownership(
    workspace_id: str,
    payload: OwnershipTransfer,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return seats.transfer_ownership(db, workspace_id, payload.account_id, account.id)


# ------------------------------------------------------------------
# Analytics & activity
# ------------------------------------------------------------------


@router.get("/{workspace_id}/analytics", response_model=AnalyticsSnapshot)
def get_analytics(
    workspace_id: str,
    start: date | None = None,
    end: date | None = None,
    granularity: str = Query(default="day", pattern="^(day|week|month)$"),
    window_days: int | None = Query(default=None, ge=1, le=3650),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    require_analytics_access(db, workspace_id, account)
    today = datetime.now(timezone.utc).date()
    end = end or today
    start = start or end - timedelta(days=29)
    return analytics.snapshot(
        db,
        workspace_id,
        start,
        end,
        granularity=granularity,
        window_days=window_days,
    )


@router.get("/{workspace_id}/activity", response_model=ListResponse[ActivityEventRead])
def list_activity(
    workspace_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    items = workspaces.activity(db, workspace_id, account.id, limit, offset)
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}
