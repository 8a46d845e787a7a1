"""Tests for order intake."""

import pytest
from django.db.models import ProtectedError

from apps.web.marketplace.events import InMemoryMessageBus
from apps.web.marketplace.exceptions import VendorNotFoundError
from apps.web.marketplace.models import OrderSyncLog, OrderSyncStatus
from apps.web.marketplace.services.order_intake import receive_order
from apps.web.marketplace.tests.factories import order_payload


@pytest.fixture
def bus() -> InMemoryMessageBus:
    return InMemoryMessageBus()


@pytest.mark.django_db
class TestReceiveOrder:
    """Tests for receive_order."""

    def test_records_log_and_publishes(self, vendor, bus):
        """Test that an order becomes an Enqueued log plus one event."""
        log, event = receive_order(order_payload(), bus, correlation_id="corr-1")

        assert log.status == OrderSyncStatus.ENQUEUED
        assert log.vendor_code == "v-001"
        assert log.order_token == "token-1"
        assert log.products_count == 1
        assert bus.published == [event]
        assert event.order_log_id == log.pk
        assert event.idempotency_key == "order:v-001:token-1"
        assert event.correlation_id == "corr-1"

    def test_redelivery_reuses_log(self, vendor, bus):
        """Test that the same webhook delivered twice keeps one audit row."""
        first, first_event = receive_order(order_payload(), bus)
        second, second_event = receive_order(order_payload(), bus)

        assert OrderSyncLog.objects.count() == 1
        assert second.pk == first.pk
        assert second_event.order_log_id == first.pk
        assert second_event.idempotency_key == first_event.idempotency_key

    def test_redelivery_without_token_matches_code(self, vendor, bus):
        """Test that token-less orders are matched by their code."""
        receive_order(order_payload(token=None), bus)
        receive_order(order_payload(token=None), bus)

        assert OrderSyncLog.objects.count() == 1

    def test_distinct_orders_get_own_logs(self, vendor, bus):
        """Test that different tokens are different orders."""
        receive_order(order_payload(token="token-1"), bus)
        receive_order(order_payload(token="token-2", code="order-2"), bus)

        assert OrderSyncLog.objects.count() == 2

    def test_unparseable_orders_never_merged(self, vendor, bus):
        """Test that payloads without an identity each get a log."""
        payload = order_payload(products="not-a-list")

        first, first_event = receive_order(payload, bus, vendor_code="v-001")
        second, second_event = receive_order(payload, bus, vendor_code="v-001")

        assert first.pk != second.pk
        assert first_event.idempotency_key != second_event.idempotency_key

    def test_unknown_vendor(self, vendor, bus):
        """Test that an unroutable order raises and records nothing."""
        with pytest.raises(VendorNotFoundError):
            receive_order(order_payload(platform_restaurant_id="pr-404"), bus)

        assert OrderSyncLog.objects.count() == 0
        assert bus.published == []


@pytest.mark.django_db
class TestOrderLogRetention:
    """Tests for OrderSyncLog retention."""

    def test_account_with_logs_cannot_be_deleted(self, vendor, bus):
        """Test that deleting an account never erases its order logs."""
        receive_order(order_payload(), bus)

        with pytest.raises(ProtectedError):
            vendor.pos_account.delete()

        assert OrderSyncLog.objects.count() == 1
