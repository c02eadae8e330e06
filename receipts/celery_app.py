from celery import Celery

from receipts.config import settings

celery_app = Celery(
    "receipts",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["receipts.tasks.events"],
)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    broker_connection_retry_on_startup=True,
)
