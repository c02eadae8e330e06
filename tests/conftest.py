import os
import tempfile
import uuid
from unittest.mock import MagicMock

import pytest

_DB_FILE = os.path.join(tempfile.gettempdir(), f"receipts-test-{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["RESEND_API_KEY"] = ""
os.environ["S3_ENDPOINT_URL"] = ""
os.environ["BILLING_API_KEY"] = "test-billing-key"
os.environ["SECRET_KEY"] = "test-secret"

from fastapi.testclient import TestClient  # noqa: E402

import receipts.models  # noqa: E402,F401
from receipts.api.deps import get_db  # noqa: E402
from receipts.db import Base, SessionLocal, engine  # noqa: E402
from receipts.main import app  # noqa: E402
from receipts.models.account import Account, Plan  # noqa: E402
from receipts.schemas.document import (  # noqa: E402
    DocumentCreate,
    DocumentRules,
    RecipientSelection,
)
from receipts.schemas.workspace import TagField, WorkspaceCreate  # noqa: E402
from receipts.services import analytics as analytics_service  # noqa: E402
from receipts.services.documents import Documents, UploadedFile  # noqa: E402
from receipts.services.workspaces import Workspaces  # noqa: E402


@pytest.fixture()
def db_session():
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def published_events(monkeypatch):
    """Capture events instead of queueing them on the broker."""
    task = MagicMock()
    monkeypatch.setattr("receipts.tasks.events.process_event", task)
    return task.delay


@pytest.fixture(autouse=True)
def blob_store(monkeypatch):
    store = MagicMock()
    store.put.side_effect = (
        lambda data, document_id, file_name, mime_type: (
            f"documents/{document_id}/{uuid.uuid4().hex[:12]}/{file_name}"
        )
    )
    store.generate_download_url.return_value = "https://s3.example.com/signed"
    monkeypatch.setattr("receipts.services.documents.storage", store)
    return store


@pytest.fixture(autouse=True)
def _clear_analytics_cache():
    analytics_service.clear_cache()
    yield
    analytics_service.clear_cache()


@pytest.fixture()
def make_account(db_session):
    def _make(plan=Plan.free, seats=1, email=None, display_name="Test User"):
        account = Account(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            display_name=display_name,
            plan=plan,
            seats=seats,
        )
        db_session.add(account)
        db_session.commit()
        db_session.refresh(account)
        return account

    return _make


@pytest.fixture()
def account(make_account):
    """A free-plan account."""
    return make_account(Plan.free)


@pytest.fixture()
def pro_account(make_account):
    return make_account(Plan.pro, display_name="Pat Pro")


@pytest.fixture()
def team_account(make_account):
    return make_account(Plan.team, seats=5, display_name="Terry Team")


@pytest.fixture()
def workspace(db_session, team_account):
    payload = WorkspaceCreate(
        name="Acme Ops",
        slug=f"acme-{uuid.uuid4().hex[:8]}",
        tag_fields=[
            TagField(key="department", label="Department"),
            TagField(key="site", label="Site"),
        ],
    )
    return Workspaces.create(db_session, team_account, payload)


@pytest.fixture()
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def auth_headers(pro_account):
    return {"X-Account-Id": str(pro_account.id)}


@pytest.fixture()
def team_headers(team_account):
    return {"X-Account-Id": str(team_account.id)}


@pytest.fixture()
def pdf():
    """Factory for in-memory PDF uploads."""

    def _pdf(data=b"%PDF-1.4 receipt test", file_name="policy.pdf"):
        return UploadedFile(data=data, file_name=file_name, mime_type="application/pdf")

    return _pdf


@pytest.fixture()
def make_document(db_session, pdf):
    def _make(
        owner,
        title="Employee Handbook",
        workspace=None,
        recipients=None,
        tags=None,
        labels=None,
        priority="normal",
        **rules,
    ):
        payload = DocumentCreate(
            title=title,
            workspace_id=workspace.id if workspace else None,
            tags=tags or {},
            labels=labels or [],
            priority=priority,
            rules=DocumentRules(**rules),
        )
        selection = None
        if recipients is not None:
            selection = RecipientSelection(recipients=recipients, send_email=False)
        created = Documents.create(db_session, owner, payload, pdf(), selection)
        return created.document

    return _make


@pytest.fixture()
def document(make_document, pro_account):
    return make_document(
        pro_account,
        recipients=[
            {"name": "Ada Lovelace", "email": "ada@example.com"},
            {"name": "Alan Turing", "email": "alan@example.com"},
        ],
    )
