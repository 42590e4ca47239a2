"""
Tests for Celery tasks: webhook delivery and the relationship sweep.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from core.events import DomainEvent, RELATIONSHIP_TERMINATED
from workers import celery_config
from workers.celery_app import celery_app
from workers.tasks.events import deliver_domain_event
from workers.tasks.relationships import sweep_expired_relationships


@pytest.fixture
def event():
    return DomainEvent(
        event_type=RELATIONSHIP_TERMINATED,
        payload={"relationship_id": 4, "reason": "candidate request"},
    ).to_dict()


def mock_client(response=None, error=None):
    client = MagicMock()
    client.__enter__.return_value = client
    if error is not None:
        client.post.side_effect = error
    else:
        client.post.return_value = response
    return client


class TestDeliverDomainEvent:
    def test_posts_envelope_with_headers(self, event):
        response = MagicMock(status_code=202)
        client = mock_client(response=response)

        with patch("workers.tasks.events.httpx.Client", return_value=client):
            result = deliver_domain_event("https://hooks.example.test/events", event)

        assert result["status"] == "delivered"
        assert result["event_id"] == event["event_id"]
        _, kwargs = client.post.call_args
        assert kwargs["json"] == event
        assert kwargs["headers"]["X-Event-Type"] == RELATIONSHIP_TERMINATED
        assert kwargs["headers"]["X-Event-Id"] == event["event_id"]
        assert kwargs["headers"]["X-Source-Service"] == "rights-engine"

    def test_http_error_triggers_retry(self, event):
        """Called directly, retry re-raises the delivery error."""
        client = mock_client(error=httpx.ConnectError("refused"))

        with patch("workers.tasks.events.httpx.Client", return_value=client):
            with pytest.raises(httpx.HTTPError):
                deliver_domain_event("https://hooks.example.test/events", event)

    def test_error_status_triggers_retry(self, event):
        response = MagicMock(status_code=500)
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "server error", request=MagicMock(), response=response
        )

        with patch("workers.tasks.events.httpx.Client", return_value=mock_client(response=response)):
            with pytest.raises(httpx.HTTPStatusError):
                deliver_domain_event("https://hooks.example.test/events", event)


class TestSweepTask:
    def test_reports_expired_count(self):
        with patch("workers.tasks.relationships._sweep", AsyncMock(return_value=3)):
            assert sweep_expired_relationships() == {"status": "completed", "expired": 3}


class TestCeleryConfig:
    def test_tasks_registered(self):
        assert "workers.tasks.events.deliver_domain_event" in celery_app.tasks
        assert "workers.tasks.relationships.sweep_expired_relationships" in celery_app.tasks

    def test_sweep_is_scheduled(self):
        entry = celery_config.beat_schedule["sweep-expired-relationships"]

        assert entry["task"] == "workers.tasks.relationships.sweep_expired_relationships"
        assert entry["schedule"] > 0

    def test_events_have_their_own_queue(self):
        assert celery_config.task_routes["workers.tasks.events.*"]["queue"] == "events"
