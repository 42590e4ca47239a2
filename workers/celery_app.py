"""Celery app factory."""

from celery import Celery

celery_app = Celery(
    "rights_engine",
    include=["workers.tasks.events", "workers.tasks.relationships"],
)
celery_app.config_from_object("workers.celery_config")
