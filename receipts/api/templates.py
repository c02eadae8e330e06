from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from receipts.api.deps import get_db, require_account
from receipts.models.account import Account
from receipts.schemas.common import ListResponse
from receipts.schemas.workspace import TemplateCreate, TemplateRead, TemplateUpdate
from receipts.services.templates import templates

router = APIRouter(prefix="/workspaces/{workspace_id}/templates", tags=["templates"])


@router.post("", response_model=TemplateRead, status_code=status.HTTP_201_CREATED)
def create_template(
    workspace_id: str,
    payload: TemplateCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return templates.create(db, workspace_id, payload, account)


@router.get("", response_model=ListResponse[TemplateRead])
def list_templates(
    workspace_id: str,
    q: str | None = None,
    limit: int = Query(default=25, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return templates.list_response(db, workspace_id, account, q, limit, offset)


@router.get("/{template_id}", response_model=TemplateRead)
def get_template(
    workspace_id: str,
    template_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return templates.get_for_account(db, workspace_id, template_id, account)


@router.patch("/{template_id}", response_model=TemplateRead)
def update_template(
    workspace_id: str,
    template_id: str,
    payload: TemplateUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return templates.update(db, workspace_id, template_id, payload, account)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    workspace_id: str,
    template_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    templates.delete(db, workspace_id, template_id, account)
