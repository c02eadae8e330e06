from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from receipts.api.deps import get_db
from receipts.schemas.completion import (
    AccessGranted,
    AccessRequest,
    CompletionSubmit,
    PublicDocumentRead,
    SubmitResult,
)
from receipts.services.completions import completions

router = APIRouter(prefix="/public", tags=["public"])


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


@router.get("/{public_id}", response_model=PublicDocumentRead)
def get_public_document(public_id: str, db: Session = Depends(get_db)):
    return completions.public_view(db, public_id)


@router.post("/{public_id}/access", response_model=AccessGranted)
def request_access(
    public_id: str, payload: AccessRequest, db: Session = Depends(get_db)
):
    return {"access_token": completions.grant_access(db, public_id, payload.password)}


@router.post(
    "/{public_id}/submit",
    response_model=SubmitResult,
    status_code=status.HTTP_201_CREATED,
)
def submit_completion(
    public_id: str,
    payload: CompletionSubmit,
    request: Request,
    db: Session = Depends(get_db),
):
    completion = completions.record_public(
        db,
        public_id,
        payload,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {"accepted": True, "completion_id": completion.id}
