import logging

from sqlalchemy.orm import Session

from receipts.celery_app import celery_app
from receipts.models.document import ActivityEvent, Document
from receipts.services.common import coerce_uuid

logger = logging.getLogger(__name__)


@celery_app.task(name="receipts.tasks.events.process_event", ignore_result=True)
def process_event(
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None = None,
    document_id: str | None = None,
    workspace_id: str | None = None,
    payload: dict | None = None,
) -> None:
    """Append one domain event to the activity feed."""
    from receipts.db import SessionLocal

    logger.info("Processing event %s for %s/%s", event_type, entity_type, entity_id)
    db = SessionLocal()
    try:
        _record(
            db,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            document_id=document_id,
            workspace_id=workspace_id,
            payload=payload,
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to record event %s", event_type)
        raise
    finally:
        db.close()


def _record(
    db: Session,
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None = None,
    document_id: str | None = None,
    workspace_id: str | None = None,
    payload: dict | None = None,
) -> ActivityEvent:
    if workspace_id is None and document_id is not None:
        document = db.get(Document, coerce_uuid(document_id))
        if document is not None:
            workspace_id = document.workspace_id
    event = ActivityEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=coerce_uuid(actor_id),
        document_id=coerce_uuid(document_id),
        workspace_id=coerce_uuid(workspace_id),
        payload=payload or {},
    )
    db.add(event)
    db.flush()
    return event
