from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from receipts.api.deps import get_db, require_account
from receipts.api.public import client_ip
from receipts.models.account import Account
from receipts.schemas.common import ListResponse
from receipts.schemas.completion import SubmitResult
from receipts.schemas.stack import (
    DeliveryCreate,
    DeliveryCreated,
    DeliveryDetail,
    DeliveryRead,
    PublicStackRead,
    StackCreate,
    StackDocumentSubmit,
    StackFinalize,
    StackItemAdd,
    StackRead,
    StackReceiptRead,
)
from receipts.services.stacks import deliveries, stacks

router = APIRouter(prefix="/workspaces/{workspace_id}", tags=["stacks"])
public_router = APIRouter(prefix="/public/stacks", tags=["public"])


@router.post("/stacks", response_model=StackRead, status_code=status.HTTP_201_CREATED)
def create_stack(
    workspace_id: str,
    payload: StackCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return stacks.create(db, workspace_id, payload, account)


@router.get("/stacks", response_model=ListResponse[StackRead])
def list_stacks(
    workspace_id: str,
    limit: int = Query(default=25, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return stacks.list_response(db, workspace_id, account, limit, offset)


@router.get("/stacks/{stack_id}", response_model=StackRead)
def get_stack(
    workspace_id: str,
    stack_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return stacks.get_for_account(db, workspace_id, stack_id, account)


@router.delete("/stacks/{stack_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_stack(
    workspace_id: str,
    stack_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    stacks.delete(db, workspace_id, stack_id, account)


@router.post("/stacks/{stack_id}/items", response_model=StackRead)
def add_stack_item(
    workspace_id: str,
    stack_id: str,
    payload: StackItemAdd,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return stacks.add_item(db, workspace_id, stack_id, payload.document_id, account)


@router.delete("/stacks/{stack_id}/items/{document_id}", response_model=StackRead)
def remove_stack_item(
    workspace_id: str,
    stack_id: str,
    document_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return stacks.remove_item(db, workspace_id, stack_id, document_id, account)


@router.post(
    "/stack-deliveries",
    response_model=DeliveryCreated,
    status_code=status.HTTP_201_CREATED,
)
def create_delivery(
    workspace_id: str,
    payload: DeliveryCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return deliveries.create(db, workspace_id, payload, account)


@router.get("/stack-deliveries", response_model=ListResponse[DeliveryRead])
def list_deliveries(
    workspace_id: str,
    limit: int = Query(default=25, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return deliveries.list_response(db, workspace_id, account, limit, offset)


@router.get("/stack-deliveries/{delivery_id}", response_model=DeliveryDetail)
def get_delivery(
    workspace_id: str,
    delivery_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return deliveries.detail(db, workspace_id, delivery_id, account)


@router.post("/stack-deliveries/{delivery_id}/revoke", response_model=DeliveryRead)
def revoke_delivery(
    workspace_id: str,
    delivery_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return deliveries.revoke(db, workspace_id, delivery_id, account)


@public_router.get("/{public_id}", response_model=PublicStackRead)
def get_public_stack(
    public_id: str,
    recipient_email: str | None = None,
    db: Session = Depends(get_db),
):
    return deliveries.public_view(db, public_id, recipient_email)


@public_router.post(
    "/{public_id}/submit-document",
    response_model=SubmitResult,
    status_code=status.HTTP_201_CREATED,
)
def submit_stack_document(
    public_id: str,
    payload: StackDocumentSubmit,
    request: Request,
    db: Session = Depends(get_db),
):
    ack = deliveries.submit_document(
        db,
        public_id,
        payload,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {"accepted": True, "completion_id": ack.completion_id}


@public_router.post("/{public_id}/finalize", response_model=StackReceiptRead)
def finalize_stack(
    public_id: str, payload: StackFinalize, db: Session = Depends(get_db)
):
    return deliveries.finalize(db, public_id, payload)
