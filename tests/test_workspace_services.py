import uuid

import pytest
from fastapi import HTTPException

from receipts.models.account import Plan
from receipts.models.workspace import MemberRole
from receipts.schemas.workspace import (
    MemberCreate,
    TagField,
    WorkspaceCreate,
    WorkspaceUpdate,
)
from receipts.services.workspaces import Workspaces, get_member
from receipts.tasks.events import _record


class TestCreate:
    def test_owner_membership(self, db_session, workspace, team_account, published_events):
        owner = get_member(db_session, workspace.id, team_account.id)
        assert owner.role == MemberRole.owner
        assert owner.license_active is True
        assert owner.can_view_analytics is True
        assert workspace.plan == Plan.team
        assert [f["key"] for f in workspace.tag_fields] == ["department", "site"]
        event_types = [c.kwargs["event_type"] for c in published_events.call_args_list]
        assert "workspace.created" in event_types

    def test_requires_team_plan(self, db_session, pro_account):
        with pytest.raises(HTTPException) as exc:
            Workspaces.create(
                db_session, pro_account, WorkspaceCreate(name="Mine", slug="mine")
            )
        assert exc.value.status_code == 403
        assert exc.value.detail["code"] == "upgrade_required"

    def test_slug_taken(self, db_session, workspace, team_account):
        with pytest.raises(HTTPException) as exc:
            Workspaces.create(
                db_session,
                team_account,
                WorkspaceCreate(name="Copy", slug=workspace.slug),
            )
        assert exc.value.status_code == 409

    def test_duplicate_tag_field(self, db_session, team_account):
        with pytest.raises(HTTPException) as exc:
            Workspaces.create(
                db_session,
                team_account,
                WorkspaceCreate(
                    name="Dup",
                    slug="dup-tags",
                    tag_fields=[
                        TagField(key="site", label="Site"),
                        TagField(key="site", label="Location"),
                    ],
                ),
            )
        assert exc.value.status_code == 400


class TestUpdate:
    def test_manager_updates_policy(self, db_session, workspace, team_account):
        updated = Workspaces.update(
            db_session,
            str(workspace.id),
            WorkspaceUpdate(name=" Acme Field Ops ", require_email_delivery=True),
            team_account.id,
        )
        assert updated.name == "Acme Field Ops"
        assert updated.require_email_delivery is True
        assert updated.require_recipient_identity is False

    def test_clear_tag_fields(self, db_session, workspace, team_account):
        updated = Workspaces.update(
            db_session, str(workspace.id), WorkspaceUpdate(tag_fields=[]), team_account.id
        )
        assert updated.tag_fields == []

    def test_member_cannot_update(self, db_session, workspace, team_account, make_account):
        acct = make_account(Plan.free)
        Workspaces.add_member(
            db_session, str(workspace.id), MemberCreate(account_id=acct.id), team_account.id
        )
        with pytest.raises(HTTPException) as exc:
            Workspaces.update(
                db_session, str(workspace.id), WorkspaceUpdate(name="X"), acct.id
            )
        assert exc.value.status_code == 403


class TestMembers:
    def test_add_member(self, db_session, workspace, team_account, make_account):
        acct = make_account(Plan.free)
        member = Workspaces.add_member(
            db_session, str(workspace.id), MemberCreate(account_id=acct.id), team_account.id
        )
        assert member.role == MemberRole.member
        assert member.license_active is False
        assert member.can_view_analytics is False
        assert len(Workspaces.list_members(db_session, str(workspace.id))) == 2

    def test_add_twice(self, db_session, workspace, team_account, make_account):
        acct = make_account(Plan.free)
        payload = MemberCreate(account_id=acct.id)
        Workspaces.add_member(db_session, str(workspace.id), payload, team_account.id)
        with pytest.raises(HTTPException) as exc:
            Workspaces.add_member(db_session, str(workspace.id), payload, team_account.id)
        assert exc.value.status_code == 409

    def test_unknown_account(self, db_session, workspace, team_account):
        with pytest.raises(HTTPException) as exc:
            Workspaces.add_member(
                db_session,
                str(workspace.id),
                MemberCreate(account_id=uuid.uuid4()),
                team_account.id,
            )
        assert exc.value.status_code == 404

    @pytest.mark.parametrize("role", ["owner", "superuser"])
    def test_rejected_roles(self, db_session, workspace, team_account, make_account, role):
        acct = make_account(Plan.free)
        with pytest.raises(HTTPException) as exc:
            Workspaces.add_member(
                db_session,
                str(workspace.id),
                MemberCreate(account_id=acct.id, role=role),
                team_account.id,
            )
        assert exc.value.status_code == 400

    def test_list_for_account(self, db_session, workspace, team_account, make_account):
        outsider = make_account(Plan.free)
        assert [w.id for w in Workspaces.list(db_session, team_account.id, 50, 0)] == [
            workspace.id
        ]
        assert Workspaces.list(db_session, outsider.id, 50, 0) == []


class TestActivity:
    def test_feed_newest_first(self, db_session, workspace, team_account, make_document):
        doc = make_document(team_account, workspace=workspace)
        _record(
            db_session,
            event_type="document.created",
            entity_type="document",
            entity_id=str(doc.id),
            actor_id=str(team_account.id),
            document_id=str(doc.id),
        )
        db_session.commit()
        _record(
            db_session,
            event_type="document.updated",
            entity_type="document",
            entity_id=str(doc.id),
            document_id=str(doc.id),
        )
        db_session.commit()

        events = Workspaces.activity(
            db_session, str(workspace.id), team_account.id, 50, 0
        )
        assert {e.event_type for e in events} == {"document.created", "document.updated"}
        assert all(e.workspace_id == workspace.id for e in events)

    def test_members_cannot_read_feed(
        self, db_session, workspace, team_account, make_account
    ):
        acct = make_account(Plan.free)
        Workspaces.add_member(
            db_session, str(workspace.id), MemberCreate(account_id=acct.id), team_account.id
        )
        with pytest.raises(HTTPException) as exc:
            Workspaces.activity(db_session, str(workspace.id), acct.id, 50, 0)
        assert exc.value.status_code == 403
