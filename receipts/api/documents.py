import pydantic
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session
from starlette.responses import Response

from receipts.api.deps import get_db, require_account
from receipts.errors import ValidationError
from receipts.models.account import Account
from receipts.schemas.common import ListResponse
from receipts.schemas.document import (
    DocumentActivityRead,
    DocumentCreate,
    DocumentCreated,
    DocumentDetail,
    DocumentRead,
    DocumentUpdate,
    DocumentVersionRead,
    DownloadURLResponse,
    EmailSummary,
    NotificationPreferenceRead,
    NotificationPreferenceUpdate,
    RecipientSelection,
    ResponsibilitiesRead,
    ResponsibilitiesUpdate,
    SendResult,
    VersionCreated,
)
from receipts.schemas.completion import DocumentStatusRead
from receipts.schemas.workspace import QuotaRead
from receipts.services import documents as doc_service
from receipts.services.completions import completions
from receipts.services.evidence import evidence
from receipts.services.seats import quotas
from receipts.services.workspaces import require_member, workspaces

router = APIRouter(prefix="/documents", tags=["documents"])


def _parse_form(model, raw: str | None):
    if raw is None or not raw.strip():
        return None
    try:
        return model.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}",
            details=[
                {"loc": list(err["loc"]), "msg": err["msg"]}
                for err in e.errors(include_url=False)
            ],
        )


def _upload(file: UploadFile) -> doc_service.UploadedFile:
    return doc_service.UploadedFile(
        data=file.file.read(),
        file_name=file.filename or "document.pdf",
        mime_type=file.content_type or "application/octet-stream",
    )


# ------------------------------------------------------------------
# Document CRUD
# ------------------------------------------------------------------


@router.post("", response_model=DocumentCreated, status_code=status.HTTP_201_CREATED)
def create_document(
    file: UploadFile = File(...),
    metadata: str = Form(...),
    recipients: str | None = Form(default=None),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    payload = _parse_form(DocumentCreate, metadata)
    if payload is None:
        raise ValidationError("metadata is required")
    selection = _parse_form(RecipientSelection, recipients)
    created = doc_service.documents.create(db, account, payload, _upload(file), selection)
    email = {"sent": 0, "failed": []}
    if selection is not None and selection.send_email:
        email = doc_service.documents.share(created.document, created.recipients, account)
    return {
        "document": created.document,
        "share_url": doc_service.share_url(created.document),
        "recipients": created.recipients,
        "invalid_recipients": created.invalid_recipients,
        "email": email,
    }


@router.get("", response_model=ListResponse[DocumentRead])
def list_documents(
    workspace_id: str | None = None,
    priority: str | None = None,
    label: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return doc_service.documents.list_response(
        db,
        account.id,
        workspace_id,
        priority,
        label,
        order_by,
        order_dir,
        limit,
        offset,
    )


@router.get("/quota", response_model=QuotaRead)
def get_quota(
    workspace_id: str | None = None,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    workspace = None
    if workspace_id:
        workspace = workspaces.get(db, workspace_id)
        require_member(db, workspace.id, account.id)
    quota = quotas.check(db, account, workspace)
    return {
        "used": quota.used,
        "limit": quota.limit,
        "remaining": quota.remaining,
        "window": quota.window,
    }


@router.get("/{document_id}", response_model=DocumentDetail)
def get_document(
    document_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    document = doc_service.documents.get_for_account(db, document_id, account.id)
    return {
        "document": document,
        "share_url": doc_service.share_url(document),
        "current_version": doc_service.documents.get_current_version(db, document.id),
        "status": completions.get_status(db, document.id),
        "recipients": doc_service.documents.list_recipients(db, document.id),
        "completions": completions.list(db, document.id),
    }


@router.patch("/{document_id}", response_model=DocumentRead)
def update_document(
    document_id: str,
    payload: DocumentUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return doc_service.documents.update(db, document_id, payload, account)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    doc_service.documents.delete(db, document_id, account)


@router.post("/{document_id}/send", response_model=SendResult)
def send_document(
    document_id: str,
    payload: RecipientSelection,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return doc_service.documents.send(db, document_id, payload, account)


@router.get("/{document_id}/status", response_model=DocumentStatusRead)
def get_status(
    document_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    document = doc_service.documents.get_for_account(db, document_id, account.id)
    return completions.get_status(db, document.id)


@router.get("/{document_id}/evidence")
def export_evidence(
    document_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    document = doc_service.documents.get_for_account(db, document_id, account.id)
    body = evidence.export(db, document.id)
    return Response(
        content=body,
        media_type="application/json",
        headers={
            "Content-Disposition": (
                f'attachment; filename="receipt-evidence-{document.public_id}.json"'
            )
        },
    )


# ------------------------------------------------------------------
# Version sub-endpoints
# ------------------------------------------------------------------


@router.post(
    "/{document_id}/versions",
    response_model=VersionCreated,
    status_code=status.HTTP_201_CREATED,
)
def create_version(
    document_id: str,
    file: UploadFile = File(...),
    version_number: int | None = Form(default=None),
    version_label: str | None = Form(default=None),
    notify: bool | None = Form(default=None),
    remember: bool = Form(default=False),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    version = doc_service.documents.add_version(
        db,
        document_id,
        account,
        _upload(file),
        version_number=version_number,
        version_label=version_label,
    )
    document = doc_service.documents.get(db, document_id)
    notify_prompt, email = doc_service.documents.apply_version_notification(
        db, document, version, account, notify=notify, remember=remember
    )
    return {
        "version": version,
        "version_number": version.version_number,
        "version_label": version.version_label,
        "notify_prompt": notify_prompt,
        "email": email,
    }


@router.get(
    "/{document_id}/versions",
    response_model=ListResponse[DocumentVersionRead],
)
def list_versions(
    document_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    document = doc_service.documents.get_for_account(db, document_id, account.id)
    items = doc_service.documents.list_versions(db, document.id, limit, offset)
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.post("/{document_id}/versions/{version_id}/notify", response_model=EmailSummary)
def notify_version(
    document_id: str,
    version_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    document = doc_service.documents.get_for_editor(db, document_id, account.id)
    version = doc_service.documents.get_version(db, document.id, version_id)
    return doc_service.documents.notify_version(db, document, version)


@router.get(
    "/{document_id}/versions/{version_id}/download-url",
    response_model=DownloadURLResponse,
)
def generate_download_url(
    document_id: str,
    version_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    document = doc_service.documents.get_for_account(db, document_id, account.id)
    url = doc_service.documents.download_url(db, document.id, version_id)
    return {"download_url": url}


# ------------------------------------------------------------------
# Version notification preference
# ------------------------------------------------------------------


@router.get(
    "/{document_id}/notification-preference",
    response_model=NotificationPreferenceRead,
)
def get_notification_preference(
    document_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    document = doc_service.documents.get_for_account(db, document_id, account.id)
    mode = doc_service.documents.get_notification_mode(db, document.id, account.id)
    return {"document_id": document.id, "mode": mode.value}


@router.put(
    "/{document_id}/notification-preference",
    response_model=NotificationPreferenceRead,
)
def set_notification_preference(
    document_id: str,
    payload: NotificationPreferenceUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    document = doc_service.documents.get_for_account(db, document_id, account.id)
    mode = doc_service.documents.set_notification_mode(
        db, document.id, account.id, payload.mode
    )
    return {"document_id": document.id, "mode": mode.value}


# ------------------------------------------------------------------
# Shared responsibility & activity
# ------------------------------------------------------------------


@router.get("/{document_id}/responsibilities", response_model=ResponsibilitiesRead)
def get_responsibilities(
    document_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return doc_service.documents.list_responsibilities(db, document_id, account.id)


@router.put("/{document_id}/responsibilities", response_model=ResponsibilitiesRead)
def set_responsibilities(
    document_id: str,
    payload: ResponsibilitiesUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return doc_service.documents.set_responsibilities(
        db, document_id, payload.account_ids, account
    )


@router.post("/{document_id}/opened", response_model=DocumentActivityRead)
def mark_opened(
    document_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    return doc_service.documents.mark_opened(db, document_id, account.id)
