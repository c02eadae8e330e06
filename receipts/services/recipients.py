"""Recipient resolution.

Merges manual entries, individually selected contacts and contact groups into
one send list keyed by normalized email. Precedence is manual < contact <
group, with later groups overriding earlier ones; a key keeps the position of
its first insertion.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from receipts.config import settings
from receipts.errors import ValidationError
from receipts.models.document import RecipientSource
from receipts.models.workspace import Contact, ContactGroup
from receipts.services.common import coerce_uuid
from receipts.services.plans import Capability, Entitlements

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_SELECTED_IDS = 100
MAX_NAME_LENGTH = 120


def normalize_email(value: str | None) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: str | None) -> bool:
    return bool(EMAIL_RE.match(normalize_email(value)))


def normalize_display_name(value: str | None) -> str:
    return re.sub(r"\s+", " ", str(value or "").strip())[:MAX_NAME_LENGTH]


def fallback_name(email: str) -> str:
    local = email.split("@")[0]
    clean = re.sub(r"[._-]+", " ", local).strip()
    return clean or email


def parse_id_list(values: Iterable | None, limit: int = MAX_SELECTED_IDS) -> list[str]:
    seen: dict[str, None] = {}
    for item in values or []:
        cleaned = str(item if item is not None else "").strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)[:limit]


@dataclass(frozen=True)
class ResolvedRecipient:
    name: str
    email: str
    source: RecipientSource


@dataclass
class ResolvedRecipients:
    recipients: list[ResolvedRecipient] = field(default_factory=list)
    invalid: list[str] = field(default_factory=list)
    contact_count: int = 0
    group_count: int = 0
    expanded_group_member_count: int = 0


def _field(item, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _put(
    merged: dict[str, ResolvedRecipient],
    name: str | None,
    email: str,
    source: RecipientSource,
) -> None:
    key = normalize_email(email)
    if not key:
        return
    display = normalize_display_name(name) or fallback_name(key)[:MAX_NAME_LENGTH]
    merged[key] = ResolvedRecipient(name=display, email=key, source=source)


def _load_contacts(db: Session, workspace_id, contact_ids: list[str]) -> list[Contact]:
    wanted = [coerce_uuid(cid) for cid in contact_ids]
    rows = db.scalars(
        select(Contact)
        .where(Contact.workspace_id == workspace_id)
        .where(Contact.id.in_(wanted))
    ).all()
    by_id = {row.id: row for row in rows}
    missing = [str(cid) for cid in wanted if cid not in by_id]
    if missing:
        raise ValidationError(
            "One or more selected contacts are unavailable.",
            details={"contact_ids": missing},
        )
    return [by_id[cid] for cid in wanted]


def _load_groups(db: Session, workspace_id, group_ids: list[str]) -> list[ContactGroup]:
    wanted = [coerce_uuid(gid) for gid in group_ids]
    rows = db.scalars(
        select(ContactGroup)
        .where(ContactGroup.workspace_id == workspace_id)
        .where(ContactGroup.id.in_(wanted))
    ).all()
    by_id = {row.id: row for row in rows}
    missing = [str(gid) for gid in wanted if gid not in by_id]
    if missing:
        raise ValidationError(
            "One or more selected contact groups are unavailable.",
            details={"contact_group_ids": missing},
        )
    return [by_id[gid] for gid in wanted]


def resolve_recipients(
    db: Session,
    workspace_id=None,
    recipients: Iterable | None = None,
    contact_ids: Iterable | None = None,
    contact_group_ids: Iterable | None = None,
    require_email_delivery: bool = False,
    entitlements: Entitlements | None = None,
    max_recipients: int | None = None,
) -> ResolvedRecipients:
    """Resolve recipient sources into a deduplicated, ordered send list.

    ``recipients`` holds manual ``{name, email}`` entries (dicts or objects).
    Entries with a malformed email are reported in ``invalid`` rather than
    failing the call. Unknown contact or group ids raise ``ValidationError``.
    """
    limit = max_recipients or settings.max_recipients_per_send
    contact_ids = parse_id_list(contact_ids)
    group_ids = parse_id_list(contact_group_ids)

    if (contact_ids or group_ids) and entitlements is not None:
        entitlements.require(Capability.contacts)
    if (contact_ids or group_ids) and workspace_id is None:
        raise ValidationError("Contacts and groups are only available in a workspace")

    result = ResolvedRecipients()
    merged: dict[str, ResolvedRecipient] = {}

    for item in recipients or []:
        email = normalize_email(_field(item, "email"))
        if not EMAIL_RE.match(email):
            raw = str(_field(item, "email") or "").strip()
            if raw:
                result.invalid.append(raw)
            continue
        _put(merged, _field(item, "name"), email, RecipientSource.manual)

    workspace_id = coerce_uuid(workspace_id)
    if contact_ids:
        contacts = _load_contacts(db, workspace_id, contact_ids)
        for contact in contacts:
            _put(merged, contact.name, contact.email, RecipientSource.contact)
        result.contact_count = len(contacts)

    if group_ids:
        groups = _load_groups(db, workspace_id, group_ids)
        expanded: set = set()
        for group in groups:
            for membership in group.memberships:
                contact = membership.contact
                _put(merged, contact.name, contact.email, RecipientSource.group)
                expanded.add(contact.id)
        result.group_count = len(groups)
        result.expanded_group_member_count = len(expanded)

    result.recipients = list(merged.values())[:limit]
    if require_email_delivery and not result.recipients:
        raise ValidationError(
            "This workspace requires at least one email recipient",
            details={"invalid": result.invalid},
        )
    logger.debug(
        "Resolved %d recipient(s) (%d contacts, %d groups, %d invalid)",
        len(result.recipients),
        result.contact_count,
        result.group_count,
        len(result.invalid),
    )
    return result
