"""Tests for the event queue processor and Marketplace tasks."""

from datetime import timedelta

import pytest
from django.utils import timezone

from apps.web.marketplace.events import DatabaseMessageBus, OutboxJobScheduler
from apps.web.marketplace.management.commands.process_event_queue import Command
from apps.web.marketplace.models import (
    EntityType,
    IdempotencyRecord,
    OrderSyncLog,
    OrderSyncStatus,
    QueuedEvent,
    QueuedEventStatus,
)
from apps.web.marketplace.services import (
    CatalogSyncService,
    DeadLetterEscalator,
    IdempotencyGuard,
    OrderDispatcher,
    RetryScheduler,
    receive_order,
)
from apps.web.marketplace.tasks import handle_event, sync_catalog_task
from apps.web.marketplace.tests.factories import StableMappingFactory, order_payload
from apps.web.pos.adapters import MockPOSAdapter
from apps.web.pos.exceptions import POSConnectionError
from apps.web.pos.services import CredentialService


@pytest.fixture
def mapping(pos_account):
    return StableMappingFactory(
        account=pos_account,
        entity_type=EntityType.PRODUCT,
        pos_id="prod-burger",
        remote_code="P-burger",
    )


def make_dispatcher(adapter) -> OrderDispatcher:
    bus = DatabaseMessageBus()
    return OrderDispatcher(
        credentials=CredentialService(adapter_factory=lambda account: adapter),
        retry_scheduler=RetryScheduler(bus, OutboxJobScheduler(bus)),
        dead_letters=DeadLetterEscalator(bus),
        guard=IdempotencyGuard(),
        max_attempts=3,
    )


@pytest.mark.django_db
class TestProcessPending:
    """Tests for the process_event_queue command."""

    def test_dispatches_queued_order(self, vendor, mapping):
        """Test that a received order is dispatched from the queue."""
        adapter = MockPOSAdapter()
        log, _ = receive_order(order_payload(), DatabaseMessageBus())

        processed, errors = Command().process_pending(dispatcher=make_dispatcher(adapter))

        assert (processed, errors) == (1, 0)
        assert QueuedEvent.objects.get().status == QueuedEventStatus.DONE
        log.refresh_from_db()
        assert log.status == OrderSyncStatus.SUCCEEDED
        assert adapter.order_calls == 1

    def test_retry_waits_until_due(self, vendor, mapping):
        """Test that a transient failure is redelivered after its delay."""
        adapter = MockPOSAdapter(
            order_failures=[POSConnectionError("connection reset", provider="mock")]
        )
        dispatcher = make_dispatcher(adapter)
        log, _ = receive_order(order_payload(), DatabaseMessageBus())
        command = Command()

        command.process_pending(dispatcher=dispatcher)

        retry = QueuedEvent.objects.get(status=QueuedEventStatus.PENDING)
        assert retry.event_type == "order.dispatch.retry.v1"
        assert retry.payload["message"]["attempt"] == 2
        assert retry.available_at > timezone.now() + timedelta(seconds=50)

        # Not due yet
        assert command.process_pending(dispatcher=dispatcher) == (0, 0)

        QueuedEvent.objects.filter(pk=retry.pk).update(available_at=timezone.now())
        assert command.process_pending(dispatcher=dispatcher) == (1, 0)

        log.refresh_from_db()
        assert log.status == OrderSyncStatus.SUCCEEDED
        assert log.attempts == 2
        assert adapter.order_calls == 2

    def test_redelivered_event_is_duplicate(self, vendor, mapping):
        """Test that the same order delivered twice reaches the POS once."""
        adapter = MockPOSAdapter()
        receive_order(order_payload(), DatabaseMessageBus())
        receive_order(order_payload(), DatabaseMessageBus())

        processed, errors = Command().process_pending(dispatcher=make_dispatcher(adapter))

        assert (processed, errors) == (2, 0)
        assert adapter.order_calls == 1
        assert OrderSyncLog.objects.get().status == OrderSyncStatus.SUCCEEDED

    def test_unknown_event_type_fails_row(self):
        """Test that an unroutable event marks its row failed."""
        queued = QueuedEvent.objects.create(event_type="mystery.v1", payload={})

        processed, errors = Command().process_pending(
            dispatcher=make_dispatcher(MockPOSAdapter())
        )

        assert (processed, errors) == (0, 1)
        queued.refresh_from_db()
        assert queued.status == QueuedEventStatus.FAILED
        assert "Unknown event type" in queued.error
        assert queued.attempts == 1

    def test_limit(self, vendor, mapping):
        """Test that at most `limit` events are processed per pass."""
        for n in range(3):
            receive_order(order_payload(token=f"token-{n}"), DatabaseMessageBus())

        processed, _ = Command().process_pending(
            limit=2, dispatcher=make_dispatcher(MockPOSAdapter())
        )

        assert processed == 2
        assert QueuedEvent.objects.filter(status=QueuedEventStatus.PENDING).count() == 1

    def test_stale_claim_redelivered(self, vendor, mapping, settings):
        """Test that an event whose worker died mid-dispatch is dispatched again."""
        settings.PROCESSING_LEASE_SECONDS = 300
        adapter = MockPOSAdapter()
        log, event = receive_order(order_payload(), DatabaseMessageBus())
        crashed_at = timezone.now() - timedelta(minutes=11)
        # the dead worker claimed the row and the key, then never finished
        QueuedEvent.objects.update(
            status=QueuedEventStatus.PROCESSING, attempts=1, claimed_at=crashed_at
        )
        IdempotencyGuard().check_and_mark_started(vendor.pos_account, event.idempotency_key)
        IdempotencyRecord.objects.update(last_processed_at=crashed_at)
        OrderSyncLog.objects.update(status=OrderSyncStatus.PROCESSING, attempts=1)

        processed, errors = Command().process_pending(dispatcher=make_dispatcher(adapter))

        assert (processed, errors) == (1, 0)
        queued = QueuedEvent.objects.get()
        assert queued.status == QueuedEventStatus.DONE
        assert queued.attempts == 2
        log.refresh_from_db()
        assert log.status == OrderSyncStatus.SUCCEEDED
        assert adapter.order_calls == 1

    def test_live_claim_left_alone(self, vendor, settings):
        """Test that a row claimed inside the lease is not redelivered."""
        settings.PROCESSING_LEASE_SECONDS = 300
        receive_order(order_payload(), DatabaseMessageBus())
        QueuedEvent.objects.update(
            status=QueuedEventStatus.PROCESSING,
            claimed_at=timezone.now() - timedelta(minutes=1),
        )

        command = Command()

        assert command.reclaim_stale() == 0
        assert command.process_pending(dispatcher=make_dispatcher(MockPOSAdapter())) == (0, 0)
        assert QueuedEvent.objects.get().status == QueuedEventStatus.PROCESSING


class TestHandleEvent:
    """Tests for handle_event routing."""

    def test_unknown_type(self):
        """Test that unknown event types raise ValueError."""
        with pytest.raises(ValueError, match="Unknown event type"):
            handle_event("mystery.v1", {}, dispatcher=None)


class FakeClient:
    async def submit_catalog(self, chain_code, payload):
        return "import-1"

    async def close(self):
        pass


@pytest.mark.django_db
class TestSyncCatalogTask:
    """Tests for sync_catalog_task."""

    def make_service(self, adapter=None) -> CatalogSyncService:
        adapter = adapter or MockPOSAdapter()
        return CatalogSyncService(
            CredentialService(adapter_factory=lambda account: adapter),
            client_factory=lambda vendor: FakeClient(),
        )

    def test_success(self, vendor):
        """Test a successful sync result."""
        result = sync_catalog_task("v-001", service=self.make_service())

        assert result["success"] is True
        assert result["skipped"] is False
        assert result["import_id"] == "import-1"
        assert result["products"] == 2

    def test_unknown_vendor(self):
        """Test that an unknown vendor is reported, not raised."""
        result = sync_catalog_task("v-404", service=self.make_service())

        assert result == {
            "success": False,
            "vendor_code": "v-404",
            "error": "Vendor not found",
        }

    def test_failure_reported(self, vendor):
        """Test that a failing sync is reported in the result."""
        adapter = MockPOSAdapter(fail_auth=True)

        result = sync_catalog_task("v-001", service=self.make_service(adapter))

        assert result["success"] is False
        assert "authentication failure" in result["error"]
