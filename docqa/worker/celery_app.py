"""Celery app configuration."""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from docqa.core.config import settings
from docqa.core.logging import setup_logging

celery_app = Celery(
    "docqa.worker",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
    include=[
        "docqa.worker.tasks.document_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_hijack_root_logger=False,
    beat_schedule={
        "report-stuck-documents": {
            "task": "report_stuck_documents",
            "schedule": settings.STUCK_THRESHOLD_MINUTES * 60.0,
        },
    },
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    setup_logging()
