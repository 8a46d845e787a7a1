"""Tests for dead letter escalation and operator actions."""

import uuid
from unittest.mock import MagicMock

import pytest
from django.utils import timezone
from menusync_schemas import FailureType, OrderDispatchEvent

from apps.web.marketplace.events import InMemoryMessageBus
from apps.web.marketplace.exceptions import (
    DeadLetterNotFoundError,
    DeadLetterStateError,
    ReplayNotSupportedError,
)
from apps.web.marketplace.models import (
    DeadLetterEventType,
    DeadLetterPriority,
    ReplayResult,
)
from apps.web.marketplace.services.dead_letter import DeadLetterEscalator
from apps.web.marketplace.tests.factories import DeadLetterMessageFactory
from apps.web.pos.exceptions import POSOrderError


def make_event(account_id) -> OrderDispatchEvent:
    return OrderDispatchEvent(
        correlation_id="corr-original",
        account_id=account_id,
        vendor_code="v-001",
        order_log_id=uuid.uuid4(),
        idempotency_key="order:v-001:token-1",
        attempt=3,
        occurred_at=timezone.now(),
    )


@pytest.fixture
def bus() -> InMemoryMessageBus:
    return InMemoryMessageBus()


@pytest.fixture
def escalator(bus) -> DeadLetterEscalator:
    return DeadLetterEscalator(bus)


@pytest.mark.django_db
class TestEscalate:
    """Tests for escalate_order."""

    def test_persists_full_message(self, escalator, pos_account):
        """Test that the original event and diagnostics are stored."""
        event = make_event(pos_account.pk)
        try:
            raise POSOrderError("rejected", provider="rest")
        except POSOrderError as e:
            error = e

        message = escalator.escalate_order(
            event, error, FailureType.PERMANENT, attempts=3, account=pos_account
        )

        assert message.event_type == DeadLetterEventType.ORDER_SYNC
        assert message.correlation_id == "corr-original"
        assert message.original_message["idempotency_key"] == "order:v-001:token-1"
        assert message.error_code == "POSOrderError"
        assert message.error_message == "rejected"
        assert message.attempts == 3
        assert message.priority == DeadLetterPriority.HIGH
        assert "raise POSOrderError" in message.stack_trace
        assert message.is_pending


@pytest.mark.django_db
class TestQueries:
    """Tests for list_pending and statistics."""

    def test_list_pending_order(self, escalator):
        """Test highest priority first, then oldest."""
        low = DeadLetterMessageFactory(priority=DeadLetterPriority.LOW)
        high = DeadLetterMessageFactory(priority=DeadLetterPriority.HIGH)
        DeadLetterMessageFactory(is_acknowledged=True)

        pending = escalator.list_pending()

        assert pending == [high, low]

    def test_list_pending_filters(self, escalator):
        """Test filtering by event type."""
        DeadLetterMessageFactory(event_type=DeadLetterEventType.CATALOG_SYNC)
        order = DeadLetterMessageFactory()

        assert escalator.list_pending(event_type=DeadLetterEventType.ORDER_SYNC) == [order]

    def test_statistics(self, escalator):
        """Test dead letter counts."""
        DeadLetterMessageFactory()
        DeadLetterMessageFactory(is_replayed=True)
        DeadLetterMessageFactory(is_acknowledged=True)

        stats = escalator.statistics()

        assert stats["total"] == 3
        assert stats["pending"] == 1
        assert stats["replayed"] == 1
        assert stats["acknowledged"] == 1
        assert stats["pending_by_type"] == {DeadLetterEventType.ORDER_SYNC: 1}

    def test_get_unknown(self, escalator):
        """Test that an unknown or malformed id raises."""
        with pytest.raises(DeadLetterNotFoundError):
            escalator.get(uuid.uuid4())
        with pytest.raises(DeadLetterNotFoundError):
            escalator.get("not-a-uuid")


@pytest.mark.django_db
class TestOperatorActions:
    """Tests for acknowledge, update_priority and replay."""

    def test_acknowledge(self, escalator):
        """Test that acknowledging closes the dead letter."""
        message = DeadLetterMessageFactory()

        escalator.acknowledge(message.pk, note="known POS outage", acknowledged_by="ops")

        message.refresh_from_db()
        assert message.is_acknowledged
        assert message.acknowledged_by == "ops"
        assert "known POS outage" in message.notes
        assert escalator.list_pending() == []

    def test_update_priority(self, escalator):
        """Test changing a dead letter's priority."""
        message = DeadLetterMessageFactory()

        escalator.update_priority(message.pk, DeadLetterPriority.CRITICAL)

        message.refresh_from_db()
        assert message.priority == DeadLetterPriority.CRITICAL

    def test_replay_publishes_new_event(self, escalator, bus, pos_account):
        """Test that replay uses a fresh correlation id and idempotency key."""
        original = make_event(pos_account.pk)
        message = DeadLetterMessageFactory(
            original_message=original.model_dump(mode="json")
        )

        replayed = escalator.replay(message.pk, replayed_by="ops")

        assert bus.published == [replayed]
        assert replayed.correlation_id != original.correlation_id
        assert replayed.idempotency_key.startswith(f"replay:{message.pk}:")
        assert replayed.idempotency_key != original.idempotency_key
        assert replayed.attempt == 1
        assert replayed.order_log_id == original.order_log_id

        message.refresh_from_db()
        assert message.is_replayed
        assert message.replay_result == ReplayResult.SUCCESS
        assert message.replayed_by == "ops"

    def test_replay_twice_rejected(self, escalator, pos_account):
        """Test that a replayed dead letter cannot be replayed again."""
        message = DeadLetterMessageFactory(
            original_message=make_event(pos_account.pk).model_dump(mode="json")
        )
        escalator.replay(message.pk)

        with pytest.raises(DeadLetterStateError):
            escalator.replay(message.pk)

    def test_replay_catalog_not_supported(self, escalator):
        """Test that only order dead letters are replayable."""
        message = DeadLetterMessageFactory(event_type=DeadLetterEventType.CATALOG_SYNC)

        with pytest.raises(ReplayNotSupportedError):
            escalator.replay(message.pk)

    def test_replay_publish_failure_recorded(self, pos_account):
        """Test that a failed publish is recorded and re-raised."""
        bus = MagicMock()
        bus.publish.side_effect = RuntimeError("bus down")
        message = DeadLetterMessageFactory(
            original_message=make_event(pos_account.pk).model_dump(mode="json")
        )

        with pytest.raises(RuntimeError):
            DeadLetterEscalator(bus).replay(message.pk)

        message.refresh_from_db()
        assert message.replay_result == ReplayResult.FAILURE
        assert message.replay_error_message == "bus down"
