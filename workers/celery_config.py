"""Celery configuration for event delivery and scheduled sweeps."""

from kombu import Exchange, Queue

from core.config import settings

broker_url = settings.celery_broker_url
result_backend = settings.celery_result_backend

# Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Task execution settings
task_track_started = True
task_time_limit = 5 * 60
task_soft_time_limit = 4 * 60
task_acks_late = True

# Worker settings
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Queues
default_exchange = Exchange("rights_engine", type="direct")
task_default_queue = "default"
task_queues = (
    Queue("default", exchange=default_exchange, routing_key="default"),
    Queue("events", exchange=default_exchange, routing_key="events"),
)

task_routes = {
    "workers.tasks.events.*": {"queue": "events", "routing_key": "events"},
    "workers.tasks.relationships.*": {"queue": "default", "routing_key": "default"},
}

# Periodic expiry of relationships past their end date
beat_schedule = {
    "sweep-expired-relationships": {
        "task": "workers.tasks.relationships.sweep_expired_relationships",
        "schedule": float(settings.relationship_sweep_interval_seconds),
    },
}

result_expires = 3600
