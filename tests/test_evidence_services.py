import json

import pytest
from fastapi import HTTPException

from receipts.schemas.completion import CompletionSubmit
from receipts.schemas.evidence import EVIDENCE_SCHEMA
from receipts.services.completions import Completions
from receipts.services.documents import Documents
from receipts.services.evidence import Evidence


@pytest.fixture()
def acknowledged_document(db_session, pro_account, document, pdf):
    Completions.record(
        db_session,
        str(document.id),
        CompletionSubmit(
            acknowledged=True,
            max_scroll_percent=100,
            time_on_page_seconds=90,
            active_seconds=70,
            email="ada@example.com",
        ),
        ip="198.51.100.4",
        user_agent="pytest",
    )
    Documents.add_version(
        db_session,
        str(document.id),
        pro_account,
        pdf(b"%PDF-1.4 second"),
        version_label="2.1",
    )
    return document


class TestExport:
    def test_contains_history_and_completions(self, db_session, acknowledged_document):
        data = json.loads(Evidence.export(db_session, str(acknowledged_document.id)))
        assert data["schema"] == EVIDENCE_SCHEMA
        assert data["document"]["title"] == "Employee Handbook"
        assert [v["version_label"] for v in data["versions"]] == ["1", "2.1"]
        assert all(len(v["sha256"]) == 64 for v in data["versions"])
        assert len(data["completions"]) == 1
        completion = data["completions"][0]
        assert completion["recipient"]["email"] == "ada@example.com"
        assert completion["document_version_id"] == data["versions"][0]["id"]
        assert data["status"]["status"] == "acknowledged"

    def test_export_is_byte_stable(self, db_session, acknowledged_document):
        first = Evidence.export(db_session, str(acknowledged_document.id))
        second = Evidence.export(db_session, str(acknowledged_document.id))
        assert first == second

    def test_unknown_document(self, db_session):
        import uuid

        with pytest.raises(HTTPException) as exc:
            Evidence.export(db_session, str(uuid.uuid4()))
        assert exc.value.status_code == 404


class TestVerify:
    def test_fresh_export_matches(self, db_session, acknowledged_document):
        raw = Evidence.export(db_session, str(acknowledged_document.id))
        assert Evidence.verify(db_session, raw) == []

    def test_tampered_record_reports_paths(self, db_session, acknowledged_document):
        data = json.loads(Evidence.export(db_session, str(acknowledged_document.id)))
        data["document"]["title"] = "Something Else"
        data["completions"][0]["max_scroll_percent"] = 10
        assert Evidence.verify(db_session, json.dumps(data)) == [
            "completions[0].max_scroll_percent",
            "document.title",
        ]

    def test_state_change_after_export(
        self, db_session, acknowledged_document, pro_account, pdf
    ):
        raw = Evidence.export(db_session, str(acknowledged_document.id))
        Documents.add_version(
            db_session, str(acknowledged_document.id), pro_account, pdf(b"%PDF-1.4 third")
        )
        paths = Evidence.verify(db_session, raw)
        assert "versions" in paths
        assert "document.current_version_id" in paths

    def test_unsupported_schema(self, db_session, acknowledged_document):
        data = json.loads(Evidence.export(db_session, str(acknowledged_document.id)))
        data["schema"] = "receipt.evidence.v0"
        with pytest.raises(HTTPException) as exc:
            Evidence.verify(db_session, json.dumps(data))
        assert exc.value.status_code == 400

    def test_malformed_record(self, db_session):
        with pytest.raises(HTTPException) as exc:
            Evidence.verify(db_session, '{"schema": "receipt.evidence.v1"}')
        assert exc.value.status_code == 400
