import uuid

import pytest
from fastapi import HTTPException

from receipts.models.account import Plan
from receipts.models.document import RecipientSource
from receipts.models.workspace import Contact, ContactGroup, ContactGroupMember
from receipts.services.plans import Entitlements, resolve_capabilities
from receipts.services.recipients import (
    fallback_name,
    is_valid_email,
    normalize_display_name,
    parse_id_list,
    resolve_recipients,
)


def _contact(db_session, workspace, email, name):
    contact = Contact(workspace_id=workspace.id, name=name, email=email)
    db_session.add(contact)
    db_session.commit()
    db_session.refresh(contact)
    return contact


def _group(db_session, workspace, name, contacts):
    group = ContactGroup(workspace_id=workspace.id, name=name)
    group.memberships = [ContactGroupMember(contact=c) for c in contacts]
    db_session.add(group)
    db_session.commit()
    db_session.refresh(group)
    return group


def _entitlements(plan):
    return Entitlements(plan=plan, capabilities=resolve_capabilities(plan))


class TestHelpers:
    def test_fallback_name(self):
        assert fallback_name("jane.doe_smith@example.com") == "jane doe smith"
        assert fallback_name("...@example.com") == "...@example.com"

    def test_normalize_display_name(self):
        assert normalize_display_name("  Jane \t  Doe ") == "Jane Doe"
        assert len(normalize_display_name("x" * 300)) == 120

    def test_is_valid_email(self):
        assert is_valid_email(" Jane@Example.com ")
        assert not is_valid_email("jane@example")
        assert not is_valid_email("jane doe@example.com")

    def test_parse_id_list(self):
        assert parse_id_list([" a ", "b", "a", "", None]) == ["a", "b"]
        assert len(parse_id_list([str(i) for i in range(150)])) == 100


class TestManualRecipients:
    def test_normalizes_and_dedupes(self, db_session):
        result = resolve_recipients(
            db_session,
            recipients=[
                {"name": "First", "email": " A@X.com "},
                {"name": "Second", "email": "a@x.com"},
                {"email": "bob.smith@x.com"},
            ],
        )
        assert [(r.email, r.name) for r in result.recipients] == [
            ("a@x.com", "Second"),
            ("bob.smith@x.com", "bob smith"),
        ]
        assert all(r.source == RecipientSource.manual for r in result.recipients)

    def test_invalid_emails_reported(self, db_session):
        result = resolve_recipients(
            db_session,
            recipients=[{"email": "nope"}, {"email": "  "}, {"email": "ok@x.com"}],
        )
        assert result.invalid == ["nope"]
        assert [r.email for r in result.recipients] == ["ok@x.com"]

    def test_capped_at_max_recipients(self, db_session):
        result = resolve_recipients(
            db_session,
            recipients=[{"email": f"user{i}@x.com"} for i in range(10)],
            max_recipients=3,
        )
        assert [r.email for r in result.recipients] == [
            "user0@x.com",
            "user1@x.com",
            "user2@x.com",
        ]

    def test_required_delivery_with_nothing_valid(self, db_session):
        with pytest.raises(HTTPException) as exc:
            resolve_recipients(
                db_session,
                recipients=[{"email": "nope"}],
                require_email_delivery=True,
            )
        assert exc.value.status_code == 400
        assert exc.value.detail["details"] == {"invalid": ["nope"]}

    def test_idempotent(self, db_session):
        entries = [{"name": "A", "email": "a@x.com"}, {"email": "b@x.com"}]
        first = resolve_recipients(db_session, recipients=entries)
        second = resolve_recipients(db_session, recipients=entries)
        assert first.recipients == second.recipients


class TestContactsAndGroups:
    def test_contact_overrides_manual_name(self, db_session, workspace):
        contact = _contact(db_session, workspace, "a@x.com", "Contact A")
        result = resolve_recipients(
            db_session,
            workspace_id=workspace.id,
            recipients=[{"email": "A@X.com", "name": "A"}],
            contact_ids=[str(contact.id)],
        )
        assert len(result.recipients) == 1
        assert result.recipients[0].email == "a@x.com"
        assert result.recipients[0].name == "Contact A"
        assert result.recipients[0].source == RecipientSource.contact
        assert result.contact_count == 1

    def test_group_precedence_and_order(self, db_session, workspace):
        ann = _contact(db_session, workspace, "ann@x.com", "Ann")
        ben = _contact(db_session, workspace, "ben@x.com", "Ben")
        cat = _contact(db_session, workspace, "cat@x.com", "Cat")
        first = _group(db_session, workspace, "First", [ben, cat])
        second = _group(db_session, workspace, "Second", [cat])

        result = resolve_recipients(
            db_session,
            workspace_id=workspace.id,
            recipients=[{"email": "zed@x.com"}],
            contact_ids=[str(ann.id), str(ben.id)],
            contact_group_ids=[str(first.id), str(second.id)],
        )
        assert [r.email for r in result.recipients] == [
            "zed@x.com",
            "ann@x.com",
            "ben@x.com",
            "cat@x.com",
        ]
        sources = {r.email: r.source for r in result.recipients}
        assert sources["ann@x.com"] == RecipientSource.contact
        assert sources["ben@x.com"] == RecipientSource.group
        assert sources["cat@x.com"] == RecipientSource.group
        assert result.group_count == 2
        assert result.expanded_group_member_count == 2

    def test_unknown_contact(self, db_session, workspace):
        missing = str(uuid.uuid4())
        with pytest.raises(HTTPException) as exc:
            resolve_recipients(
                db_session, workspace_id=workspace.id, contact_ids=[missing]
            )
        assert exc.value.status_code == 400
        assert exc.value.detail["details"] == {"contact_ids": [missing]}

    def test_contact_from_other_workspace(
        self, db_session, workspace, make_account
    ):
        from receipts.schemas.workspace import WorkspaceCreate
        from receipts.services.workspaces import Workspaces

        other_owner = make_account(Plan.team, seats=2)
        other = Workspaces.create(
            db_session, other_owner, WorkspaceCreate(name="Other", slug="other-ws")
        )
        foreign = _contact(db_session, other, "x@x.com", "X")
        with pytest.raises(HTTPException):
            resolve_recipients(
                db_session, workspace_id=workspace.id, contact_ids=[str(foreign.id)]
            )

    def test_unknown_group(self, db_session, workspace):
        with pytest.raises(HTTPException) as exc:
            resolve_recipients(
                db_session,
                workspace_id=workspace.id,
                contact_group_ids=[str(uuid.uuid4())],
            )
        assert "contact_group_ids" in exc.value.detail["details"]

    def test_contacts_need_workspace(self, db_session):
        with pytest.raises(HTTPException) as exc:
            resolve_recipients(db_session, contact_ids=[str(uuid.uuid4())])
        assert exc.value.status_code == 400

    def test_contacts_need_capability(self, db_session, workspace):
        contact = _contact(db_session, workspace, "a@x.com", "A")
        with pytest.raises(HTTPException) as exc:
            resolve_recipients(
                db_session,
                workspace_id=workspace.id,
                contact_ids=[str(contact.id)],
                entitlements=_entitlements(Plan.personal),
            )
        assert exc.value.detail["code"] == "upgrade_required"

    def test_deterministic_across_calls(self, db_session, workspace):
        ann = _contact(db_session, workspace, "ann@x.com", "Ann")
        group = _group(db_session, workspace, "G", [ann])
        kwargs = dict(
            workspace_id=workspace.id,
            recipients=[{"email": "ann@x.com", "name": "Annie"}],
            contact_ids=[str(ann.id)],
            contact_group_ids=[str(group.id)],
            entitlements=_entitlements(Plan.team),
        )
        assert (
            resolve_recipients(db_session, **kwargs).recipients
            == resolve_recipients(db_session, **kwargs).recipients
        )
