from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from receipts.api.deps import get_db, require_account
from receipts.models.account import Account
from receipts.schemas.common import ListResponse
from receipts.schemas.workspace import (
    ContactCreate,
    ContactGroupCreate,
    ContactGroupMembersUpdate,
    ContactGroupRead,
    ContactRead,
    ContactUpdate,
)
from receipts.services.contacts import contact_groups, contacts

router = APIRouter(prefix="/workspaces/{workspace_id}", tags=["contacts"])


# ------------------------------------------------------------------
# Contacts
# ------------------------------------------------------------------


@router.post(
    "/contacts", response_model=ContactRead, status_code=status.HTTP_201_CREATED
)
def create_contact(
    workspace_id: str,
    payload: ContactCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return contacts.create(db, workspace_id, payload, account)


@router.get("/contacts", response_model=ListResponse[ContactRead])
def list_contacts(
    workspace_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return contacts.list_response(db, workspace_id, account, limit, offset)


@router.post("/contacts/sync-members")
def sync_member_contacts(
    workspace_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return {"created": contacts.sync_for_account(db, workspace_id, account)}


@router.patch("/contacts/{contact_id}", response_model=ContactRead)
def update_contact(
    workspace_id: str,
    contact_id: str,
    payload: ContactUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return contacts.update(db, workspace_id, contact_id, payload, account)


@router.delete("/contacts/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contact(
    workspace_id: str,
    contact_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    contacts.delete(db, workspace_id, contact_id, account)


# ------------------------------------------------------------------
# Contact groups
# ------------------------------------------------------------------


@router.post(
    "/contact-groups",
    response_model=ContactGroupRead,
    status_code=status.HTTP_201_CREATED,
)
def create_contact_group(
    workspace_id: str,
    payload: ContactGroupCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return contact_groups.create(db, workspace_id, payload, account)


@router.get("/contact-groups", response_model=ListResponse[ContactGroupRead])
def list_contact_groups(
    workspace_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return contact_groups.list_response(db, workspace_id, account, limit, offset)


@router.put(
    "/contact-groups/{group_id}/members", response_model=ContactGroupRead
)
def set_contact_group_members(
    workspace_id: str,
    group_id: str,
    payload: ContactGroupMembersUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return contact_groups.set_members(
        db, workspace_id, group_id, payload.contact_ids, account
    )


@router.delete(
    "/contact-groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT
)
def delete_contact_group(
    workspace_id: str,
    group_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    contact_groups.delete(db, workspace_id, group_id, account)
