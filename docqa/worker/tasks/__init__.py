"""Tasks package."""

# Import all tasks so they're registered with Celery
from docqa.worker.tasks import document_tasks

__all__ = ["document_tasks"]
