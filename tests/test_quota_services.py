from datetime import datetime, timezone

import pytest
from fastapi import HTTPException

from receipts.models.account import Plan
from receipts.models.document import Document
from receipts.schemas.workspace import BillingPlanUpdate
from receipts.services.seats import Quotas, Seats


def _backdate(db_session, doc, when):
    db_session.get(Document, doc.id).created_at = when
    db_session.commit()


class TestQuotaCheck:
    def test_free_total_window(self, db_session, account, make_document):
        for _ in range(3):
            make_document(account)
        status = Quotas.check(db_session, account)
        assert (status.used, status.limit, status.remaining, status.window) == (
            3,
            10,
            7,
            "total",
        )

    def test_monthly_window_ignores_older_documents(
        self, db_session, make_account, make_document
    ):
        acct = make_account(Plan.personal)
        old = make_document(acct)
        make_document(acct)
        _backdate(db_session, old, datetime(2026, 1, 15, tzinfo=timezone.utc))

        now = datetime(2026, 2, 10, tzinfo=timezone.utc)
        current = make_document(acct)
        _backdate(db_session, current, datetime(2026, 2, 3, tzinfo=timezone.utc))

        status = Quotas.check(db_session, acct, now=now)
        assert status.window == "monthly"
        assert status.limit == 100
        assert status.used == 1

    def test_deleted_documents_still_count(
        self, db_session, account, make_document
    ):
        from receipts.services.documents import Documents

        doc = make_document(account)
        Documents.delete(db_session, str(doc.id), account)
        assert Quotas.check(db_session, account).used == 1

    def test_workspace_scope(self, db_session, team_account, workspace, make_document):
        make_document(team_account, workspace=workspace)
        make_document(team_account)
        status = Quotas.check(db_session, team_account, workspace)
        assert status.used == 1
        assert status.limit == 1000 + 200 * 5

    def test_enterprise_unlimited(self, db_session, make_account):
        acct = make_account(Plan.enterprise)
        status = Quotas.check(db_session, acct)
        assert status.limit is None
        assert status.remaining is None
        assert status.exhausted is False


class TestQuotaEnforce:
    def test_free_limit_then_upgrade(self, db_session, account, make_document):
        for _ in range(10):
            make_document(account)

        with pytest.raises(HTTPException) as exc:
            make_document(account)
        assert exc.value.status_code == 402
        assert exc.value.detail["code"] == "quota_exceeded"
        assert exc.value.detail["details"] == {
            "used": 10,
            "limit": 10,
            "window": "total",
        }

        Seats.apply_billing_update(
            db_session, BillingPlanUpdate(account_id=account.id, plan="personal")
        )
        db_session.refresh(account)
        doc = make_document(account)
        assert doc.id is not None
