"""Domain event delivery to the notification webhook."""

from typing import Any, Dict
import logging

from celery import Task
import httpx

from core.config import settings
from workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.events.deliver_domain_event", bind=True)
def deliver_domain_event(
    self: Task,
    webhook_url: str,
    event: Dict[str, Any],
) -> dict:
    """POST one event envelope to the notification collaborator.

    Args:
        webhook_url: Endpoint receiving events
        event: Serialized DomainEvent (event_id, event_type, timestamp,
            source_service, payload)

    Returns:
        Dictionary with delivery status
    """
    headers = {
        "Content-Type": "application/json",
        "X-Event-Type": event["event_type"],
        "X-Event-Id": event["event_id"],
        "X-Source-Service": event.get("source_service", settings.app_name),
    }
    try:
        with httpx.Client(timeout=settings.collaborator_timeout_seconds) as client:
            response = client.post(webhook_url, json=event, headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(
            f"Delivery of {event['event_type']} {event['event_id']} failed "
            f"(attempt {self.request.retries + 1}): {e}"
        )
        raise self.retry(
            exc=e,
            countdown=2 ** self.request.retries * 60,
            max_retries=5,
        )

    return {
        "status": "delivered",
        "status_code": response.status_code,
        "event_id": event["event_id"],
        "event_type": event["event_type"],
    }
