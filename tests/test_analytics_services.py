from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from receipts.models.account import Plan
from receipts.models.document import Completion, Document
from receipts.schemas.workspace import MemberCreate
from receipts.services import analytics as analytics_service
from receipts.services.analytics import (
    Analytics,
    AttentionPolicy,
    bucket_start,
    classify_attention,
    require_analytics_access,
)
from receipts.services.documents import Documents
from receipts.services.seats import Seats
from receipts.services.workspaces import Workspaces

DAY1 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)  # a Monday
POLICY = AttentionPolicy()


def _backdate(db_session, doc, when):
    db_session.get(Document, doc.id).created_at = when
    db_session.commit()


def _completion(
    db_session,
    doc,
    submitted_at,
    recipient=None,
    acknowledged=True,
    scroll=100,
    time_on_page=60,
    active=30,
):
    completion = Completion(
        document_id=doc.id,
        document_version_id=doc.current_version_id,
        recipient_id=recipient.id if recipient else None,
        acknowledged=acknowledged,
        max_scroll_percent=scroll,
        time_on_page_seconds=time_on_page,
        active_seconds=active,
        submitted_at=submitted_at,
    )
    db_session.add(completion)
    db_session.commit()
    return completion


class TestClassifyAttention:
    def test_draft_without_recipients(self):
        assert classify_attention(0, 0, DAY1, DAY1, POLICY) == "draft"

    def test_complete(self):
        assert classify_attention(2, 2, DAY1, DAY1 + timedelta(days=30), POLICY) == "complete"

    def test_overdue(self):
        now = DAY1 + timedelta(days=8)
        assert classify_attention(2, 1, DAY1, now, POLICY) == "overdue"

    def test_closing(self):
        now = DAY1 + timedelta(days=2)
        assert classify_attention(4, 3, DAY1, now, POLICY) == "closing"

    def test_new(self):
        assert classify_attention(3, 0, DAY1, DAY1 + timedelta(hours=2), POLICY) == "new"

    def test_waiting(self):
        now = DAY1 + timedelta(days=2)
        assert classify_attention(3, 0, DAY1, now, POLICY) == "waiting"
        assert classify_attention(4, 1, DAY1, now, POLICY) == "waiting"


class TestBuckets:
    def test_week_starts_monday(self):
        assert bucket_start(date(2026, 3, 8), "week") == date(2026, 3, 2)

    def test_month(self):
        assert bucket_start(date(2026, 3, 31), "month") == date(2026, 3, 1)


class TestSnapshot:
    def test_empty_workspace_reports_unavailable(self, db_session, workspace):
        snap = Analytics.snapshot(
            db_session,
            workspace.id,
            date(2026, 3, 1),
            date(2026, 3, 7),
            now=DAY1,
        )
        assert snap["totals"]["documents_sent"] == 0
        assert snap["totals"]["acknowledgement_rate_percent"] is None
        assert snap["totals"]["avg_time_to_ack_seconds"] is None
        assert snap["averages"] == {
            "completion_count": 0,
            "max_scroll_percent": None,
            "time_on_page_seconds": None,
            "active_seconds": None,
        }
        assert len(snap["series"]) == 7
        assert all(p["sent"] == 0 and p["acknowledged"] == 0 for p in snap["series"])
        assert [r["key"] for r in snap["by_priority"]] == ["low", "normal", "high"]
        assert snap["attention"] == []

    def test_totals_series_and_averages(
        self, db_session, team_account, workspace, make_document
    ):
        doc_a = make_document(
            team_account,
            title="A",
            workspace=workspace,
            recipients=[{"email": "one@x.com"}, {"email": "two@x.com"}],
            labels=["safety"],
            tags={"department": "HR"},
            priority="high",
        )
        doc_b = make_document(
            team_account,
            title="B",
            workspace=workspace,
            recipients=[{"email": "three@x.com"}],
            labels=["safety", "onboarding"],
        )
        _backdate(db_session, doc_a, DAY1)
        _backdate(db_session, doc_b, DAY1 + timedelta(days=1))
        one = Documents.list_recipients(db_session, doc_a.id)[0]
        _completion(
            db_session,
            doc_a,
            DAY1 + timedelta(hours=2),
            recipient=one,
            scroll=50,
            time_on_page=30,
            active=10,
        )
        _completion(
            db_session,
            doc_b,
            DAY1 + timedelta(days=1, hours=1),
            acknowledged=False,
            scroll=100,
            time_on_page=61,
            active=21,
        )

        snap = Analytics.snapshot(
            db_session,
            workspace.id,
            date(2026, 3, 2),
            date(2026, 3, 4),
            now=DAY1 + timedelta(days=2),
        )
        totals = snap["totals"]
        assert totals["documents_sent"] == 2
        assert totals["acknowledged_documents"] == 1
        assert totals["acknowledgement_rate_percent"] == 50
        assert totals["outstanding_acknowledgements"] == 2
        assert totals["avg_time_to_ack_seconds"] == 7200

        assert snap["averages"] == {
            "completion_count": 2,
            "max_scroll_percent": 75.0,
            "time_on_page_seconds": 45.5,
            "active_seconds": 15.5,
        }
        assert [(p["date"], p["sent"], p["acknowledged"]) for p in snap["series"]] == [
            (date(2026, 3, 2), 1, 1),
            (date(2026, 3, 3), 1, 0),
            (date(2026, 3, 4), 0, 0),
        ]
        assert snap["by_label"] == [
            {"key": "onboarding", "total": 1, "acknowledged": 0},
            {"key": "safety", "total": 2, "acknowledged": 1},
        ]
        assert snap["by_tag"] == [{"key": "department:HR", "total": 1, "acknowledged": 1}]
        high = next(r for r in snap["by_priority"] if r["key"] == "high")
        assert (high["total"], high["acknowledged"]) == (1, 1)

    def test_window_days_limits_averages(
        self, db_session, team_account, workspace, make_document
    ):
        doc = make_document(team_account, workspace=workspace)
        now = DAY1 + timedelta(days=30)
        _completion(db_session, doc, DAY1, acknowledged=False, scroll=10)
        _completion(db_session, doc, now - timedelta(days=1), acknowledged=False, scroll=90)

        snap = Analytics.snapshot(
            db_session,
            workspace.id,
            date(2026, 3, 1),
            date(2026, 3, 31),
            window_days=7,
            now=now,
        )
        assert snap["averages"]["completion_count"] == 1
        assert snap["averages"]["max_scroll_percent"] == 90.0

    def test_week_and_month_granularity(self, db_session, workspace):
        weekly = Analytics.snapshot(
            db_session,
            workspace.id,
            date(2026, 3, 4),
            date(2026, 3, 17),
            granularity="week",
            now=DAY1,
        )
        assert [p["date"] for p in weekly["series"]] == [
            date(2026, 3, 2),
            date(2026, 3, 9),
            date(2026, 3, 16),
        ]
        monthly = Analytics.snapshot(
            db_session,
            workspace.id,
            date(2026, 2, 20),
            date(2026, 3, 5),
            granularity="month",
            now=DAY1,
        )
        assert [p["date"] for p in monthly["series"]] == [
            date(2026, 2, 1),
            date(2026, 3, 1),
        ]

    def test_attention_ordering(self, db_session, team_account, workspace, make_document):
        now = DAY1 + timedelta(days=10)
        overdue = make_document(
            team_account, title="Overdue", workspace=workspace, recipients=[{"email": "a@x.com"}]
        )
        fresh = make_document(
            team_account, title="Fresh", workspace=workspace, recipients=[{"email": "b@x.com"}]
        )
        done = make_document(
            team_account, title="Done", workspace=workspace, recipients=[{"email": "c@x.com"}]
        )
        draft = make_document(team_account, title="Draft", workspace=workspace)
        _backdate(db_session, overdue, DAY1)
        _backdate(db_session, fresh, now - timedelta(hours=1))
        _backdate(db_session, done, DAY1 + timedelta(days=1))
        _backdate(db_session, draft, DAY1 + timedelta(days=2))
        recipient = Documents.list_recipients(db_session, done.id)[0]
        _completion(db_session, done, DAY1 + timedelta(days=2), recipient=recipient)

        snap = Analytics.snapshot(
            db_session, workspace.id, date(2026, 3, 1), date(2026, 3, 12), now=now
        )
        assert [(a["title"], a["category"]) for a in snap["attention"]] == [
            ("Overdue", "overdue"),
            ("Fresh", "new"),
            ("Done", "complete"),
            ("Draft", "draft"),
        ]
        done_item = snap["attention"][2]
        assert done_item["pending"] == 0
        assert done_item["last_activity_at"] == DAY1 + timedelta(days=2)

    def test_invalid_arguments(self, db_session, workspace):
        with pytest.raises(HTTPException):
            Analytics.snapshot(
                db_session, workspace.id, date(2026, 3, 1), date(2026, 3, 2), "year"
            )
        with pytest.raises(HTTPException):
            Analytics.snapshot(db_session, workspace.id, date(2026, 3, 2), date(2026, 3, 1))
        with pytest.raises(HTTPException):
            Analytics.snapshot(db_session, workspace.id, date(2025, 1, 1), date(2026, 3, 1))

    def test_cached_between_calls(self, db_session, workspace):
        first = Analytics.snapshot(
            db_session, workspace.id, date(2026, 3, 1), date(2026, 3, 2)
        )
        first["totals"]["documents_sent"] = 999
        first["series"].clear()
        second = Analytics.snapshot(
            db_session, workspace.id, date(2026, 3, 1), date(2026, 3, 2)
        )
        assert second is not first
        assert second["totals"]["documents_sent"] == 0
        assert len(second["series"]) == 2

    def test_cache_is_bounded(self, db_session, workspace, monkeypatch):
        monkeypatch.setattr(
            analytics_service,
            "settings",
            replace(analytics_service.settings, analytics_cache_max_entries=2),
        )
        for offset in range(4):
            Analytics.snapshot(
                db_session,
                workspace.id,
                date(2026, 3, 1),
                date(2026, 3, 2 + offset),
            )
        assert len(analytics_service._CACHE) == 2
        assert [key[2] for key in analytics_service._CACHE] == [
            date(2026, 3, 4),
            date(2026, 3, 5),
        ]

    def test_expired_entries_pruned(self, db_session, workspace, monkeypatch):
        clock = iter([0.0, 100.0, 100.0])
        monkeypatch.setattr(analytics_service, "monotonic", lambda: next(clock))
        Analytics.snapshot(db_session, workspace.id, date(2026, 3, 1), date(2026, 3, 2))
        Analytics.snapshot(db_session, workspace.id, date(2026, 3, 1), date(2026, 3, 3))
        assert [key[2] for key in analytics_service._CACHE] == [date(2026, 3, 3)]


class TestAnalyticsAccess:
    def _member(self, db_session, workspace, team_account, make_account, license_active):
        acct = make_account(Plan.free)
        Workspaces.add_member(
            db_session,
            str(workspace.id),
            MemberCreate(account_id=acct.id, license_active=license_active),
            team_account.id,
        )
        return acct

    def test_owner_has_access(self, db_session, workspace, team_account):
        require_analytics_access(db_session, workspace.id, team_account)

    def test_member_needs_permission(
        self, db_session, workspace, team_account, make_account
    ):
        acct = self._member(db_session, workspace, team_account, make_account, True)
        with pytest.raises(HTTPException) as exc:
            require_analytics_access(db_session, workspace.id, acct)
        assert exc.value.status_code == 403

        Seats.update_member(
            db_session, workspace.id, acct.id, team_account.id, can_view_analytics=True
        )
        require_analytics_access(db_session, workspace.id, acct)

    def test_unlicensed_member_needs_upgrade(
        self, db_session, workspace, team_account, make_account
    ):
        acct = self._member(db_session, workspace, team_account, make_account, False)
        with pytest.raises(HTTPException) as exc:
            require_analytics_access(db_session, workspace.id, acct)
        assert exc.value.detail["code"] == "upgrade_required"

    def test_non_member(self, db_session, workspace, pro_account):
        with pytest.raises(HTTPException) as exc:
            require_analytics_access(db_session, workspace.id, pro_account)
        assert exc.value.status_code == 403
