"""Tests for retry scheduling and the job schedulers."""

import functools
import uuid
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from django.utils import timezone
from menusync_schemas import OrderDispatchEvent, OrderDispatchRetryEvent

from apps.web.marketplace.events import (
    DatabaseMessageBus,
    InMemoryMessageBus,
    ManualJobScheduler,
    OutboxJobScheduler,
    event_correlation_id,
)
from apps.web.marketplace.models import QueuedEvent, QueuedEventStatus
from apps.web.marketplace.services.retry import RetryScheduler, retry_delay


def make_event(attempt: int = 1) -> OrderDispatchEvent:
    return OrderDispatchEvent(
        correlation_id="corr-1",
        account_id=uuid.uuid4(),
        vendor_code="v-001",
        order_log_id=uuid.uuid4(),
        idempotency_key="order:v-001:token-1",
        attempt=attempt,
        occurred_at=timezone.now(),
    )


class TestRetryDelay:
    """Tests for the backoff ladder."""

    def test_ladder(self):
        """Test 60s, then 300s, then 900s for every later attempt."""
        assert retry_delay(1) == 60
        assert retry_delay(2) == 300
        assert retry_delay(3) == 900
        assert retry_delay(10) == 900


class TestRetryScheduler:
    """Tests for RetryScheduler.schedule_retry."""

    def test_schedules_next_attempt(self):
        """Test that the retry carries the next attempt and error details."""
        bus = InMemoryMessageBus()
        scheduler = ManualJobScheduler()

        retry = RetryScheduler(bus, scheduler).schedule_retry(
            make_event(attempt=1), "POSConnectionError", "timeout"
        )

        assert retry.message.attempt == 2
        assert retry.attempts == 1
        assert retry.retry_delay_seconds == 60
        assert retry.error_code == "POSConnectionError"
        assert bus.published == []
        assert scheduler.delays == [60]

        scheduler.run_all()

        assert bus.published == [retry]

    def test_keeps_correlation_and_key(self):
        """Test that retries keep the original correlation id and key."""
        retry = RetryScheduler(InMemoryMessageBus(), ManualJobScheduler()).schedule_retry(
            make_event(attempt=2), "E", "boom"
        )

        assert retry.message.correlation_id == "corr-1"
        assert retry.message.idempotency_key == "order:v-001:token-1"
        assert retry.retry_delay_seconds == 300

    def test_scheduler_errors_propagate(self):
        """Test that a scheduler failure is raised to the caller."""
        scheduler = MagicMock()
        scheduler.schedule.side_effect = RuntimeError("down")

        with pytest.raises(RuntimeError):
            RetryScheduler(InMemoryMessageBus(), scheduler).schedule_retry(
                make_event(), "E", "boom"
            )


class TestEventCorrelationId:
    """Tests for event_correlation_id."""

    def test_reads_inside_retry_envelope(self):
        """Test that retry envelopes report their inner correlation id."""
        retry = OrderDispatchRetryEvent(
            message=make_event(),
            attempts=1,
            error_code="E",
            error_message="boom",
            last_attempt=timezone.now(),
            retry_delay_seconds=60,
        )

        assert event_correlation_id(retry) == "corr-1"
        assert event_correlation_id(make_event()) == "corr-1"


@pytest.mark.django_db
class TestOutboxJobScheduler:
    """Tests for the durable outbox scheduler."""

    def test_publication_becomes_delayed_row(self):
        """Test that a delayed publish is written as a not-yet-due row."""
        bus = DatabaseMessageBus()
        event = make_event()

        OutboxJobScheduler(bus).schedule(functools.partial(bus.publish, event), 300)

        row = QueuedEvent.objects.get()
        assert row.status == QueuedEventStatus.PENDING
        assert row.event_type == "order.dispatch.v1"
        assert row.correlation_id == "corr-1"
        assert row.available_at > timezone.now() + timedelta(seconds=290)

    def test_other_callbacks_use_timer(self):
        """Test that arbitrary callbacks fall back to the threading scheduler."""
        scheduler = OutboxJobScheduler(DatabaseMessageBus())
        callback = MagicMock()

        with patch.object(scheduler._fallback, "schedule") as fallback:
            scheduler.schedule(callback, 5)

        fallback.assert_called_once_with(callback, 5)
        assert QueuedEvent.objects.count() == 0
