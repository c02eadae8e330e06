import enum
import logging
import uuid

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    document_created = "document.created"
    document_updated = "document.updated"
    document_deleted = "document.deleted"
    document_sent = "document.sent"
    document_closed = "document.closed"

    version_created = "version.created"
    version_notified = "version.notified"

    completion_recorded = "completion.recorded"

    workspace_created = "workspace.created"
    workspace_updated = "workspace.updated"
    member_added = "member.added"
    member_role_changed = "member.role_changed"
    license_assigned = "license.assigned"
    license_revoked = "license.revoked"
    ownership_transferred = "ownership.transferred"
    plan_updated = "plan.updated"

    template_created = "template.created"
    template_updated = "template.updated"
    template_deleted = "template.deleted"
    responsibilities_updated = "responsibilities.updated"

    stack_created = "stack.created"
    stack_deleted = "stack.deleted"
    delivery_created = "delivery.created"
    delivery_revoked = "delivery.revoked"
    stack_acknowledged = "stack.acknowledged"
    stack_completed = "stack.completed"


def publish_event(
    event_type: EventType,
    entity_type: str,
    entity_id: str | uuid.UUID,
    actor_id: str | uuid.UUID | None = None,
    document_id: str | uuid.UUID | None = None,
    workspace_id: str | uuid.UUID | None = None,
    payload: dict | None = None,
) -> None:
    """Fire-and-forget event publishing.

    Queues a Celery task that appends the event to the activity feed.
    Never raises; failures are logged.
    """
    try:
        from receipts.tasks.events import process_event

        process_event.delay(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor_id=str(actor_id) if actor_id else None,
            document_id=str(document_id) if document_id else None,
            workspace_id=str(workspace_id) if workspace_id else None,
            payload=payload or {},
        )
        logger.debug(
            "Published event %s for %s/%s", event_type.value, entity_type, entity_id
        )
    except Exception as e:
        logger.exception("Failed to publish event %s: %s", event_type.value, e)
