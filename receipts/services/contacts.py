from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from receipts.errors import ConflictError, NotFoundError, ValidationError
from receipts.models.account import Account
from receipts.models.workspace import (
    Contact,
    ContactGroup,
    ContactGroupMember,
    WorkspaceMember,
)
from receipts.schemas.workspace import (
    ContactCreate,
    ContactGroupCreate,
    ContactUpdate,
)
from receipts.services.common import apply_pagination, coerce_uuid
from receipts.services.plans import Capability, resolve_entitlements
from receipts.services.recipients import (
    fallback_name,
    is_valid_email,
    normalize_display_name,
    normalize_email,
    parse_id_list,
)
from receipts.services.response import ListResponseMixin
from receipts.services.workspaces import Workspaces, require_member

logger = logging.getLogger(__name__)


def _require_address_book(db: Session, workspace_id, actor: Account):
    workspace = Workspaces.get(db, workspace_id)
    require_member(db, workspace.id, actor.id)
    resolve_entitlements(db, actor, workspace).require(Capability.contacts)
    return workspace


def _clean_contact(name: str | None, email: str) -> tuple[str, str]:
    normalized = normalize_email(email)
    if not is_valid_email(normalized):
        raise ValidationError(f"Invalid email address: {email}")
    return normalize_display_name(name) or fallback_name(normalized), normalized


class Contacts(ListResponseMixin):
    @staticmethod
    def sync_members(db: Session, workspace_id) -> int:
        """Add a contact for every workspace member not yet in the address book."""
        workspace_id = coerce_uuid(workspace_id)
        rows = db.execute(
            select(Account.email, Account.display_name)
            .join(WorkspaceMember, WorkspaceMember.account_id == Account.id)
            .where(WorkspaceMember.workspace_id == workspace_id)
            .order_by(WorkspaceMember.joined_at.asc())
        ).all()
        existing = set(
            db.scalars(select(Contact.email).where(Contact.workspace_id == workspace_id))
        )
        created = 0
        for email, display_name in rows:
            normalized = normalize_email(email)
            if normalized in existing or not is_valid_email(normalized):
                continue
            db.add(
                Contact(
                    workspace_id=workspace_id,
                    name=normalize_display_name(display_name) or fallback_name(normalized),
                    email=normalized,
                )
            )
            existing.add(normalized)
            created += 1
        if not created:
            return 0
        try:
            db.commit()
        except IntegrityError:
            # A concurrent sync inserted the same members first.
            db.rollback()
            logger.info("Member contacts for workspace %s already synced", workspace_id)
            return 0
        logger.info(
            "Synced %d member contact(s) into workspace %s", created, workspace_id
        )
        return created

    @staticmethod
    def sync_for_account(db: Session, workspace_id: str, actor: Account) -> int:
        workspace = _require_address_book(db, workspace_id, actor)
        return Contacts.sync_members(db, workspace.id)

    @staticmethod
    def create(
        db: Session, workspace_id: str, payload: ContactCreate, actor: Account
    ) -> Contact:
        workspace = _require_address_book(db, workspace_id, actor)
        name, email = _clean_contact(payload.name, payload.email)
        Contacts.sync_members(db, workspace.id)
        existing = db.scalars(
            select(Contact)
            .where(Contact.workspace_id == workspace.id)
            .where(Contact.email == email)
        ).first()
        if existing:
            raise ConflictError(f"A contact with email {email} already exists")
        contact = Contact(
            workspace_id=workspace.id, name=name, email=email, created_by=actor.id
        )
        db.add(contact)
        db.commit()
        db.refresh(contact)
        logger.info("Created contact %s in workspace %s", contact.id, workspace.id)
        return contact

    @staticmethod
    def get(db: Session, workspace_id: str, contact_id: str) -> Contact:
        contact = db.get(Contact, coerce_uuid(contact_id))
        if not contact or contact.workspace_id != coerce_uuid(workspace_id):
            raise NotFoundError("Contact not found")
        return contact

    @staticmethod
    def list(
        db: Session, workspace_id: str, actor: Account, limit: int, offset: int
    ) -> list[Contact]:
        workspace = _require_address_book(db, workspace_id, actor)
        Contacts.sync_members(db, workspace.id)
        stmt = (
            select(Contact)
            .where(Contact.workspace_id == workspace.id)
            .order_by(Contact.name.asc(), Contact.email.asc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def update(
        db: Session,
        workspace_id: str,
        contact_id: str,
        payload: ContactUpdate,
        actor: Account,
    ) -> Contact:
        workspace = _require_address_book(db, workspace_id, actor)
        contact = Contacts.get(db, workspace.id, contact_id)
        data = payload.model_dump(exclude_unset=True)
        if data.get("email") is not None:
            _, email = _clean_contact(None, data["email"])
            clash = db.scalars(
                select(Contact)
                .where(Contact.workspace_id == workspace.id)
                .where(Contact.email == email)
                .where(Contact.id != contact.id)
            ).first()
            if clash:
                raise ConflictError(f"A contact with email {email} already exists")
            contact.email = email
        if "name" in data:
            contact.name = normalize_display_name(data["name"]) or fallback_name(
                contact.email
            )
        db.commit()
        db.refresh(contact)
        logger.info("Updated contact %s", contact.id)
        return contact

    @staticmethod
    def delete(db: Session, workspace_id: str, contact_id: str, actor: Account) -> None:
        workspace = _require_address_book(db, workspace_id, actor)
        contact = Contacts.get(db, workspace.id, contact_id)
        memberships = db.scalars(
            select(ContactGroupMember).where(ContactGroupMember.contact_id == contact.id)
        ).all()
        for membership in memberships:
            db.delete(membership)
        db.delete(contact)
        db.commit()
        logger.info("Deleted contact %s from workspace %s", contact_id, workspace.id)


def _load_group_contacts(db: Session, workspace_id, contact_ids) -> list[Contact]:
    ids = [coerce_uuid(cid) for cid in parse_id_list(contact_ids)]
    if not ids:
        return []
    rows = db.scalars(
        select(Contact)
        .where(Contact.workspace_id == workspace_id)
        .where(Contact.id.in_(ids))
    ).all()
    by_id = {row.id: row for row in rows}
    missing = [str(cid) for cid in ids if cid not in by_id]
    if missing:
        raise ValidationError(
            "One or more selected contacts are unavailable.",
            details={"contact_ids": missing},
        )
    return [by_id[cid] for cid in ids]


class ContactGroups(ListResponseMixin):
    @staticmethod
    def create(
        db: Session, workspace_id: str, payload: ContactGroupCreate, actor: Account
    ) -> ContactGroup:
        workspace = _require_address_book(db, workspace_id, actor)
        contacts = _load_group_contacts(db, workspace.id, payload.contact_ids)
        group = ContactGroup(
            workspace_id=workspace.id,
            name=payload.name.strip(),
            description=payload.description,
        )
        group.memberships = [ContactGroupMember(contact=c) for c in contacts]
        db.add(group)
        db.commit()
        db.refresh(group)
        logger.info(
            "Created contact group %s with %d member(s)", group.id, len(contacts)
        )
        return group

    @staticmethod
    def get(db: Session, workspace_id: str, group_id: str) -> ContactGroup:
        group = db.get(ContactGroup, coerce_uuid(group_id))
        if not group or group.workspace_id != coerce_uuid(workspace_id):
            raise NotFoundError("Contact group not found")
        return group

    @staticmethod
    def list(
        db: Session, workspace_id: str, actor: Account, limit: int, offset: int
    ) -> list[ContactGroup]:
        workspace = _require_address_book(db, workspace_id, actor)
        stmt = (
            select(ContactGroup)
            .where(ContactGroup.workspace_id == workspace.id)
            .order_by(ContactGroup.name.asc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def set_members(
        db: Session,
        workspace_id: str,
        group_id: str,
        contact_ids: list[str],
        actor: Account,
    ) -> ContactGroup:
        workspace = _require_address_book(db, workspace_id, actor)
        group = ContactGroups.get(db, workspace.id, group_id)
        contacts = _load_group_contacts(db, workspace.id, contact_ids)
        group.memberships.clear()
        db.flush()
        group.memberships.extend(ContactGroupMember(contact=c) for c in contacts)
        db.commit()
        db.refresh(group)
        logger.info(
            "Replaced members of contact group %s (%d)", group.id, len(contacts)
        )
        return group

    @staticmethod
    def delete(db: Session, workspace_id: str, group_id: str, actor: Account) -> None:
        workspace = _require_address_book(db, workspace_id, actor)
        group = ContactGroups.get(db, workspace.id, group_id)
        db.delete(group)
        db.commit()
        logger.info("Deleted contact group %s", group_id)


contacts = Contacts()
contact_groups = ContactGroups()
