"""Workspace templates: named, reusable document settings."""

from __future__ import annotations

import logging
import math
import re

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from receipts.errors import ConflictError, NotFoundError, ValidationError
from receipts.models.account import Account
from receipts.models.document import DocumentPriority
from receipts.models.workspace import WorkspaceTemplate
from receipts.schemas.workspace import TemplateCreate, TemplateUpdate
from receipts.services.common import apply_pagination, coerce_uuid
from receipts.services.event import EventType, publish_event
from receipts.services.plans import Capability, resolve_entitlements
from receipts.services.response import ListResponseMixin
from receipts.services.workspaces import Workspaces, require_manager, require_member

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 120
MAX_DESCRIPTION_LENGTH = 280
MAX_TEMPLATE_LABELS = 20
MAX_TEMPLATE_LABEL_LENGTH = 48
MAX_TAG_VALUE_LENGTH = 120
MAX_ACKNOWLEDGERS_CAP = 1000
_SKIP = object()
_BOOLEAN_SETTINGS = (
    "send_emails",
    "require_recipient_identity",
    "password_enabled",
    "max_acknowledgers_enabled",
)


def normalize_name(value: str | None) -> str:
    return re.sub(r"\s+", " ", str(value or "").strip())[:MAX_NAME_LENGTH]


def normalize_description(value: str | None) -> str | None:
    cleaned = str(value or "").strip()
    return cleaned[:MAX_DESCRIPTION_LENGTH] or None


def normalize_tag_key(value: str) -> str:
    key = re.sub(r"[^a-z0-9\s_-]", "", str(value).strip().lower())
    key = re.sub(r"[\s_]+", "_", key)
    return key.strip("_")


def _labels(value) -> list[str] | None:
    if not isinstance(value, list):
        return None
    seen: dict[str, None] = {}
    for item in value:
        cleaned = str(item if item is not None else "").strip()[:MAX_TEMPLATE_LABEL_LENGTH]
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)[:MAX_TEMPLATE_LABELS]


def _tags(value) -> dict[str, str] | None:
    if not isinstance(value, dict):
        return None
    tags = {}
    for raw_key, raw_value in value.items():
        key = normalize_tag_key(raw_key)
        cleaned = str(raw_value if raw_value is not None else "").strip()
        if key and cleaned:
            tags[key] = cleaned[:MAX_TAG_VALUE_LENGTH]
    return tags


def _max_acknowledgers(value):
    if value is None:
        return None
    if isinstance(value, bool):
        return _SKIP
    try:
        number = float(value)
    except (TypeError, ValueError):
        return _SKIP
    if not math.isfinite(number):
        return _SKIP
    return max(1, min(MAX_ACKNOWLEDGERS_CAP, math.floor(number)))


def normalize_settings(raw: dict | None) -> dict:
    """Keep only recognised settings, coerced to their canonical form.

    Unknown keys and values of the wrong type are dropped rather than
    rejected.
    """
    if not isinstance(raw, dict):
        return {}
    settings: dict = {}
    priority = str(raw.get("priority") or "").strip().lower()
    if priority in {p.value for p in DocumentPriority}:
        settings["priority"] = priority
    labels = _labels(raw.get("labels"))
    if labels is not None:
        settings["labels"] = labels
    tags = _tags(raw.get("tags"))
    if tags is not None:
        settings["tags"] = tags
    for key in _BOOLEAN_SETTINGS:
        if isinstance(raw.get(key), bool):
            settings[key] = raw[key]
    if "max_acknowledgers" in raw:
        limit = _max_acknowledgers(raw["max_acknowledgers"])
        if limit is not _SKIP:
            settings["max_acknowledgers"] = limit
    return settings


def _require_templates(db: Session, workspace_id, actor: Account, manage: bool = False):
    workspace = Workspaces.get(db, workspace_id)
    if manage:
        require_manager(db, workspace.id, actor.id)
    else:
        require_member(db, workspace.id, actor.id)
    resolve_entitlements(db, actor, workspace).require(Capability.templates)
    return workspace


def _name_taken(db: Session, workspace_id, name: str, exclude_id=None) -> bool:
    stmt = (
        select(WorkspaceTemplate.id)
        .where(WorkspaceTemplate.workspace_id == workspace_id)
        .where(WorkspaceTemplate.name == name)
    )
    if exclude_id is not None:
        stmt = stmt.where(WorkspaceTemplate.id != exclude_id)
    return db.scalar(stmt) is not None


class Templates(ListResponseMixin):
    @staticmethod
    def create(
        db: Session, workspace_id: str, payload: TemplateCreate, actor: Account
    ) -> WorkspaceTemplate:
        workspace = _require_templates(db, workspace_id, actor, manage=True)
        name = normalize_name(payload.name)
        if not name:
            raise ValidationError("Template name is required")
        if _name_taken(db, workspace.id, name):
            raise ConflictError(f"A template named '{name}' already exists")
        template = WorkspaceTemplate(
            workspace_id=workspace.id,
            name=name,
            description=normalize_description(payload.description),
            settings=normalize_settings(payload.settings),
            created_by=actor.id,
            updated_by=actor.id,
        )
        try:
            db.add(template)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"A template named '{name}' already exists")
        db.refresh(template)
        logger.info("Created template %s in workspace %s", template.id, workspace.id)
        publish_event(
            EventType.template_created,
            entity_type="workspace_template",
            entity_id=template.id,
            actor_id=actor.id,
            workspace_id=workspace.id,
            payload={"name": name},
        )
        return template

    @staticmethod
    def get(db: Session, workspace_id: str, template_id: str) -> WorkspaceTemplate:
        template = db.get(WorkspaceTemplate, coerce_uuid(template_id))
        if not template or template.workspace_id != coerce_uuid(workspace_id):
            raise NotFoundError("Template not found")
        return template

    @staticmethod
    def get_for_account(
        db: Session, workspace_id: str, template_id: str, actor: Account
    ) -> WorkspaceTemplate:
        workspace = _require_templates(db, workspace_id, actor)
        return Templates.get(db, workspace.id, template_id)

    @staticmethod
    def list(
        db: Session,
        workspace_id: str,
        actor: Account,
        q: str | None,
        limit: int,
        offset: int,
    ) -> list[WorkspaceTemplate]:
        workspace = _require_templates(db, workspace_id, actor)
        stmt = (
            select(WorkspaceTemplate)
            .where(WorkspaceTemplate.workspace_id == workspace.id)
            .order_by(WorkspaceTemplate.updated_at.desc(), WorkspaceTemplate.name.asc())
        )
        if q and q.strip():
            stmt = stmt.where(WorkspaceTemplate.name.ilike(f"%{q.strip()}%"))
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def update(
        db: Session,
        workspace_id: str,
        template_id: str,
        payload: TemplateUpdate,
        actor: Account,
    ) -> WorkspaceTemplate:
        workspace = _require_templates(db, workspace_id, actor, manage=True)
        template = Templates.get(db, workspace.id, template_id)
        data = payload.model_dump(exclude_unset=True)
        if "name" in data:
            name = normalize_name(data["name"])
            if not name:
                raise ValidationError("Template name is required")
            if _name_taken(db, workspace.id, name, exclude_id=template.id):
                raise ConflictError(f"A template named '{name}' already exists")
            template.name = name
        if "description" in data:
            template.description = normalize_description(data["description"])
        if data.get("settings") is not None:
            template.settings = normalize_settings(data["settings"])
        template.updated_by = actor.id
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"A template named '{template.name}' already exists")
        db.refresh(template)
        logger.info("Updated template %s", template.id)
        publish_event(
            EventType.template_updated,
            entity_type="workspace_template",
            entity_id=template.id,
            actor_id=actor.id,
            workspace_id=workspace.id,
            payload={"fields": sorted(data)},
        )
        return template

    @staticmethod
    def delete(db: Session, workspace_id: str, template_id: str, actor: Account) -> None:
        workspace = _require_templates(db, workspace_id, actor, manage=True)
        template = Templates.get(db, workspace.id, template_id)
        db.delete(template)
        db.commit()
        logger.info("Deleted template %s from workspace %s", template_id, workspace.id)
        publish_event(
            EventType.template_deleted,
            entity_type="workspace_template",
            entity_id=template_id,
            actor_id=actor.id,
            workspace_id=workspace.id,
        )


templates = Templates()
