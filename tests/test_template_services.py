import uuid

import pytest
from fastapi import HTTPException

from receipts.models.account import Plan
from receipts.schemas.workspace import MemberCreate, TemplateCreate, TemplateUpdate
from receipts.services.templates import Templates, normalize_settings
from receipts.services.workspaces import Workspaces


def _add_member(db_session, workspace, owner, account, role="member", licensed=True):
    Workspaces.add_member(
        db_session,
        str(workspace.id),
        MemberCreate(account_id=account.id, role=role, license_active=licensed),
        owner.id,
    )


class TestNormalizeSettings:
    def test_keeps_known_keys_only(self):
        settings = normalize_settings(
            {
                "priority": " HIGH ",
                "labels": ["hr", " hr ", "", "x" * 60],
                "tags": {"Cost Center!": " 42 ", "empty": "  "},
                "send_emails": True,
                "password_enabled": "yes",
                "colour": "blue",
            }
        )
        assert settings == {
            "priority": "high",
            "labels": ["hr", "x" * 48],
            "tags": {"cost_center": "42"},
            "send_emails": True,
        }

    def test_unknown_priority_is_dropped(self):
        assert normalize_settings({"priority": "urgent"}) == {}

    def test_max_acknowledgers_is_clamped(self):
        assert normalize_settings({"max_acknowledgers": 0}) == {"max_acknowledgers": 1}
        assert normalize_settings({"max_acknowledgers": 5000.7}) == {
            "max_acknowledgers": 1000
        }
        assert normalize_settings({"max_acknowledgers": "12.9"}) == {
            "max_acknowledgers": 12
        }
        assert normalize_settings({"max_acknowledgers": None}) == {
            "max_acknowledgers": None
        }

    def test_invalid_max_acknowledgers_is_skipped(self):
        assert normalize_settings({"max_acknowledgers": "many"}) == {}
        assert normalize_settings({"max_acknowledgers": True}) == {}
        assert normalize_settings({"max_acknowledgers": float("inf")}) == {}

    def test_labels_are_capped(self):
        labels = normalize_settings({"labels": [f"l{i}" for i in range(30)]})["labels"]
        assert len(labels) == 20
        assert labels[0] == "l0"

    def test_not_a_dict(self):
        assert normalize_settings(["priority"]) == {}


@pytest.fixture()
def make_template(db_session, workspace, team_account):
    def _make(name, **fields):
        return Templates.create(
            db_session, str(workspace.id), TemplateCreate(name=name, **fields), team_account
        )

    return _make


class TestTemplates:
    def test_create_normalizes(self, make_template, team_account, published_events):
        template = make_template(
            "  Safety   policy ",
            description="  Yearly refresher  ",
            settings={"priority": "low", "require_recipient_identity": True},
        )
        assert template.name == "Safety policy"
        assert template.description == "Yearly refresher"
        assert template.settings == {
            "priority": "low",
            "require_recipient_identity": True,
        }
        assert template.created_by == team_account.id
        assert published_events.call_args.kwargs["event_type"] == "template.created"

    def test_duplicate_name(self, make_template):
        make_template("Onboarding")
        with pytest.raises(HTTPException) as exc:
            make_template(" Onboarding ")
        assert exc.value.status_code == 409

    def test_list_filters_by_name(self, db_session, workspace, team_account, make_template):
        for name in ("Onboarding", "Safety", "Offboarding"):
            make_template(name)
        listed = Templates.list(
            db_session, str(workspace.id), team_account, "board", 25, 0
        )
        assert sorted(t.name for t in listed) == ["Offboarding", "Onboarding"]

    def test_update_and_rename_clash(
        self, db_session, workspace, team_account, make_template
    ):
        first = make_template("A")
        make_template("B")
        updated = Templates.update(
            db_session,
            str(workspace.id),
            str(first.id),
            TemplateUpdate(description="", settings={"labels": ["x"]}),
            team_account,
        )
        assert updated.name == "A"
        assert updated.description is None
        assert updated.settings == {"labels": ["x"]}
        with pytest.raises(HTTPException) as exc:
            Templates.update(
                db_session,
                str(workspace.id),
                str(first.id),
                TemplateUpdate(name="B"),
                team_account,
            )
        assert exc.value.status_code == 409

    def test_member_can_read_but_not_write(
        self, db_session, workspace, team_account, make_account
    ):
        member = make_account(Plan.free)
        _add_member(db_session, workspace, team_account, member)
        template = Templates.create(
            db_session, str(workspace.id), TemplateCreate(name="Onboarding"), team_account
        )
        fetched = Templates.get_for_account(
            db_session, str(workspace.id), str(template.id), member
        )
        assert fetched.id == template.id
        with pytest.raises(HTTPException) as exc:
            Templates.create(
                db_session, str(workspace.id), TemplateCreate(name="Mine"), member
            )
        assert exc.value.status_code == 403

    def test_unlicensed_member_needs_upgrade(
        self, db_session, workspace, team_account, make_account
    ):
        member = make_account(Plan.free)
        _add_member(db_session, workspace, team_account, member, licensed=False)
        with pytest.raises(HTTPException) as exc:
            Templates.list(db_session, str(workspace.id), member, None, 25, 0)
        assert exc.value.detail["code"] == "upgrade_required"

    def test_delete(self, db_session, workspace, team_account):
        template = Templates.create(
            db_session, str(workspace.id), TemplateCreate(name="Gone"), team_account
        )
        Templates.delete(db_session, str(workspace.id), str(template.id), team_account)
        with pytest.raises(HTTPException) as exc:
            Templates.get(db_session, str(workspace.id), str(template.id))
        assert exc.value.status_code == 404

    def test_wrong_workspace_is_not_found(self, db_session, workspace, team_account):
        template = Templates.create(
            db_session, str(workspace.id), TemplateCreate(name="Mine"), team_account
        )
        with pytest.raises(HTTPException) as exc:
            Templates.get(db_session, str(uuid.uuid4()), str(template.id))
        assert exc.value.status_code == 404
