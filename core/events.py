"""
Domain events published to the notification collaborator.

Events are published after the owning transaction commits. Publishing is
fire-and-forget: the engine logs publisher failures and never surfaces them.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from core.utils.datetime import now

logger = logging.getLogger(__name__)

SOURCE_SERVICE = "rights-engine"

APPLICATION_STAGE_CHANGED = "application.stage_changed"
APPLICATION_ACCEPTED = "application.accepted"
APPLICATION_PRESCREEN_REQUESTED = "application.prescreen_requested"
RELATIONSHIP_ESTABLISHED = "relationship.established"
RELATIONSHIP_TERMINATED = "relationship.terminated"
RELATIONSHIP_EXPIRED = "relationship.expired"
PLACEMENT_CREATED = "placement.created"


@dataclass
class DomainEvent:
    """Envelope shared by every event."""

    event_type: str
    payload: Dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=now)
    source_service: str = SOURCE_SERVICE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "source_service": self.source_service,
            "payload": self.payload,
        }


class EventPublisher:
    async def publish(self, event: DomainEvent) -> None:
        raise NotImplementedError


class InMemoryEventPublisher(EventPublisher):
    """Keeps events in a list. Used by tests and local runs."""

    def __init__(self):
        self.events: List[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class CeleryEventPublisher(EventPublisher):
    """Hands events to the Celery webhook delivery task."""

    def __init__(self, webhook_url: str | None):
        self.webhook_url = webhook_url

    async def publish(self, event: DomainEvent) -> None:
        if not self.webhook_url:
            logger.debug(f"No notification webhook configured, dropping {event.event_type}")
            return

        from workers.tasks.events import deliver_domain_event

        deliver_domain_event.delay(webhook_url=self.webhook_url, event=event.to_dict())
        logger.info(f"Queued {event.event_type} event {event.event_id}")
