import uuid
from unittest.mock import MagicMock

import pytest

from receipts.models.document import ActivityEvent
from receipts.tasks.events import _record, process_event


def _create_document(db_session, owner, workspace=None):
    from receipts.models.document import Document

    doc = Document(
        owner_id=owner.id,
        workspace_id=workspace.id if workspace else None,
        title="Policy",
        public_id=uuid.uuid4().hex,
    )
    db_session.add(doc)
    db_session.commit()
    db_session.refresh(doc)
    return doc


class TestRecordEvent:
    def test_records_activity_event(self, db_session, team_account, workspace):
        event = _record(
            db_session,
            event_type="workspace.updated",
            entity_type="workspace",
            entity_id=str(workspace.id),
            actor_id=str(team_account.id),
            workspace_id=str(workspace.id),
            payload={"changed_fields": ["name"]},
        )
        db_session.commit()

        stored = db_session.get(ActivityEvent, event.id)
        assert stored.event_type == "workspace.updated"
        assert stored.workspace_id == workspace.id
        assert stored.actor_id == team_account.id
        assert stored.payload == {"changed_fields": ["name"]}

    def test_workspace_derived_from_document(self, db_session, team_account, workspace):
        doc = _create_document(db_session, team_account, workspace)
        event = _record(
            db_session,
            event_type="completion.recorded",
            entity_type="completion",
            entity_id=str(uuid.uuid4()),
            document_id=str(doc.id),
        )
        assert event.workspace_id == workspace.id
        assert event.document_id == doc.id

    def test_personal_document_has_no_workspace(self, db_session, account):
        doc = _create_document(db_session, account)
        event = _record(
            db_session,
            event_type="document.created",
            entity_type="document",
            entity_id=str(doc.id),
            document_id=str(doc.id),
        )
        assert event.workspace_id is None
        assert event.payload == {}


class TestProcessEventTask:
    def test_commits_and_closes(self, monkeypatch):
        session = MagicMock()
        monkeypatch.setattr("receipts.db.SessionLocal", lambda: session)

        process_event(
            event_type="plan.updated",
            entity_type="account",
            entity_id=str(uuid.uuid4()),
            payload={"plan": "pro"},
        )

        session.add.assert_called_once()
        added = session.add.call_args[0][0]
        assert isinstance(added, ActivityEvent)
        assert added.event_type == "plan.updated"
        session.commit.assert_called_once()
        session.close.assert_called_once()

    def test_rolls_back_and_reraises(self, monkeypatch):
        session = MagicMock()
        session.add.side_effect = RuntimeError("db down")
        monkeypatch.setattr("receipts.db.SessionLocal", lambda: session)

        with pytest.raises(RuntimeError):
            process_event(
                event_type="plan.updated",
                entity_type="account",
                entity_id=str(uuid.uuid4()),
            )
        session.rollback.assert_called_once()
        session.commit.assert_not_called()
        session.close.assert_called_once()
