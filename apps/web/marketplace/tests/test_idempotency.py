"""Tests for the idempotency guard."""

import threading
import time
from datetime import timedelta

import pytest
from django.db import OperationalError, connection
from django.utils import timezone

from apps.web.core.tests.factories import POSAccountFactory
from apps.web.marketplace.exceptions import OperationInProgressError
from apps.web.marketplace.models import IdempotencyRecord, IdempotencyStatus
from apps.web.marketplace.services.idempotency import IdempotencyGuard, result_hash


@pytest.fixture
def guard() -> IdempotencyGuard:
    return IdempotencyGuard(retention_days=30)


@pytest.mark.django_db
class TestCheckAndMarkStarted:
    """Tests for IdempotencyGuard.check_and_mark_started."""

    def test_first_delivery_claims(self, guard, pos_account):
        """Test that the first delivery may process."""
        can_process, record = guard.check_and_mark_started(pos_account, "order:v:1")

        assert can_process
        assert record.status == IdempotencyStatus.STARTED
        assert record.attempts == 1

    def test_duplicate_delivery_skips(self, guard, pos_account):
        """Test that a second delivery of the same key may not process."""
        guard.check_and_mark_started(pos_account, "order:v:1")

        can_process, record = guard.check_and_mark_started(pos_account, "order:v:1")

        assert not can_process
        assert record.status == IdempotencyStatus.STARTED
        assert IdempotencyRecord.objects.count() == 1

    def test_duplicate_after_success_skips(self, guard, pos_account):
        """Test that a succeeded key blocks redelivery."""
        guard.check_and_mark_started(pos_account, "order:v:1")
        guard.mark_succeeded(pos_account, "order:v:1", {"pos_order_id": "1"})

        can_process, record = guard.check_and_mark_started(pos_account, "order:v:1")

        assert not can_process
        assert record.status == IdempotencyStatus.SUCCEEDED

    def test_keys_scoped_by_account(self, guard, pos_account):
        """Test that the same key is independent across accounts."""
        guard.check_and_mark_started(pos_account, "shared")

        can_process, _ = guard.check_and_mark_started(POSAccountFactory(), "shared")

        assert can_process

    def test_expired_terminal_record_reclaimed(self, guard, pos_account):
        """Test that an expired terminal record no longer blocks the key."""
        guard.check_and_mark_started(pos_account, "k")
        guard.mark_succeeded(pos_account, "k")
        IdempotencyRecord.objects.update(expires_at=timezone.now() - timedelta(seconds=1))

        can_process, record = guard.check_and_mark_started(pos_account, "k")

        assert can_process
        assert record.status == IdempotencyStatus.STARTED


@pytest.mark.django_db
class TestResume:
    """Tests for IdempotencyGuard.resume."""

    def test_advances_attempt(self, guard, pos_account):
        """Test that a retry advances the attempt counter."""
        guard.check_and_mark_started(pos_account, "k")

        can_process, record = guard.resume(pos_account, "k", attempt=2)

        assert can_process
        assert record.attempts == 2

    def test_same_attempt_twice_is_in_progress(self, guard, pos_account):
        """Test that a second claim of the same attempt is rejected."""
        guard.check_and_mark_started(pos_account, "k")
        guard.resume(pos_account, "k", attempt=2)

        with pytest.raises(OperationInProgressError):
            guard.resume(pos_account, "k", attempt=2)

    def test_terminal_record_skips(self, guard, pos_account):
        """Test that a retry of a finished event does not process."""
        guard.check_and_mark_started(pos_account, "k")
        guard.mark_failed(pos_account, "k")

        can_process, record = guard.resume(pos_account, "k", attempt=2)

        assert not can_process
        assert record.status == IdempotencyStatus.FAILED

    def test_missing_record_claimed(self, guard, pos_account):
        """Test that a retry without a record claims the key."""
        can_process, record = guard.resume(pos_account, "k", attempt=2)

        assert can_process
        assert record.attempts == 1


@pytest.mark.django_db
class TestTransitions:
    """Tests for mark_succeeded / mark_failed."""

    def test_mark_succeeded_sets_expiry_and_hash(self, guard, pos_account):
        """Test that success stores the result hash and expiry."""
        guard.check_and_mark_started(pos_account, "k")

        assert guard.mark_succeeded(pos_account, "k", {"pos_order_id": "42"})

        record = guard.get(pos_account, "k")
        assert record.status == IdempotencyStatus.SUCCEEDED
        assert record.result_hash == result_hash({"pos_order_id": "42"})
        assert record.expires_at > timezone.now() + timedelta(days=29)

    def test_only_from_started(self, guard, pos_account):
        """Test that a terminal record cannot transition again."""
        guard.check_and_mark_started(pos_account, "k")
        guard.mark_failed(pos_account, "k")

        assert not guard.mark_succeeded(pos_account, "k")
        assert guard.get(pos_account, "k").status == IdempotencyStatus.FAILED

    def test_unknown_key_is_noop(self, guard, pos_account):
        """Test that finishing an unknown key does nothing."""
        assert not guard.mark_failed(pos_account, "missing")


@pytest.mark.django_db
class TestPurgeExpired:
    """Tests for IdempotencyGuard.purge_expired."""

    def test_purges_only_expired_terminal(self, guard, pos_account):
        """Test that started and unexpired records survive."""
        for key in ("expired", "fresh", "running"):
            guard.check_and_mark_started(pos_account, key)
        guard.mark_succeeded(pos_account, "expired")
        guard.mark_succeeded(pos_account, "fresh")
        IdempotencyRecord.objects.filter(key="expired").update(
            expires_at=timezone.now() - timedelta(days=1)
        )

        assert guard.purge_expired() == 1
        assert set(IdempotencyRecord.objects.values_list("key", flat=True)) == {
            "fresh",
            "running",
        }


class TestResultHash:
    """Tests for result_hash."""

    def test_key_order_independent(self):
        """Test that dict ordering does not change the hash."""
        assert result_hash({"a": 1, "b": 2}) == result_hash({"b": 2, "a": 1})
        assert result_hash(None) == ""


@pytest.mark.django_db
class TestReleaseFailed:
    """Tests for IdempotencyGuard.release_failed."""

    def test_failed_key_can_be_claimed_again(self, pos_account):
        """Test that releasing a failed key allows a fresh claim."""
        guard = IdempotencyGuard()
        guard.check_and_mark_started(pos_account, "catalog:v-001:abc")
        guard.mark_failed(pos_account, "catalog:v-001:abc")

        assert guard.release_failed(pos_account, "catalog:v-001:abc") is True
        can_process, record = guard.check_and_mark_started(pos_account, "catalog:v-001:abc")
        assert can_process is True
        assert record.status == IdempotencyStatus.STARTED

    def test_succeeded_key_kept(self, pos_account):
        """Test that succeeded records are never released."""
        guard = IdempotencyGuard()
        guard.check_and_mark_started(pos_account, "catalog:v-001:abc")
        guard.mark_succeeded(pos_account, "catalog:v-001:abc")

        assert guard.release_failed(pos_account, "catalog:v-001:abc") is False
        assert guard.get(pos_account, "catalog:v-001:abc") is not None


def go_idle(key: str, seconds: int) -> None:
    """Backdate a record's last activity."""
    IdempotencyRecord.objects.filter(key=key).update(
        last_processed_at=timezone.now() - timedelta(seconds=seconds)
    )


@pytest.mark.django_db
class TestStaleLease:
    """Tests for taking over Started records whose worker died."""

    def test_stale_started_record_taken_over(self, pos_account):
        """Test that a Started record idle past the lease can be claimed."""
        guard = IdempotencyGuard(lease_seconds=300)
        guard.check_and_mark_started(pos_account, "order:v:1")
        go_idle("order:v:1", 301)

        can_process, record = guard.check_and_mark_started(pos_account, "order:v:1")

        assert can_process
        assert record.status == IdempotencyStatus.STARTED
        assert record.attempts == 2
        assert record.last_processed_at > timezone.now() - timedelta(seconds=5)

    def test_only_one_takeover(self, pos_account):
        """Test that a taken-over record is fresh again for the next delivery."""
        guard = IdempotencyGuard(lease_seconds=300)
        guard.check_and_mark_started(pos_account, "order:v:1")
        go_idle("order:v:1", 301)
        guard.check_and_mark_started(pos_account, "order:v:1")

        can_process, _ = guard.check_and_mark_started(pos_account, "order:v:1")

        assert not can_process

    def test_fresh_started_record_kept(self, pos_account):
        """Test that a Started record inside its lease still blocks."""
        guard = IdempotencyGuard(lease_seconds=300)
        guard.check_and_mark_started(pos_account, "order:v:1")
        go_idle("order:v:1", 200)

        can_process, _ = guard.check_and_mark_started(pos_account, "order:v:1")

        assert not can_process

    def test_terminal_record_never_taken_over(self, pos_account):
        """Test that an old finished record is not reopened."""
        guard = IdempotencyGuard(lease_seconds=300)
        guard.check_and_mark_started(pos_account, "order:v:1")
        guard.mark_succeeded(pos_account, "order:v:1")
        go_idle("order:v:1", 3600)

        can_process, record = guard.check_and_mark_started(pos_account, "order:v:1")

        assert not can_process
        assert record.status == IdempotencyStatus.SUCCEEDED

    def test_extended_lease_blocks_takeover(self, pos_account):
        """Test that a record waiting on a scheduled retry is not stale."""
        guard = IdempotencyGuard(lease_seconds=300)
        guard.check_and_mark_started(pos_account, "order:v:1")
        go_idle("order:v:1", 301)

        assert guard.extend_lease(
            pos_account, "order:v:1", timezone.now() + timedelta(seconds=900)
        )
        can_process, _ = guard.check_and_mark_started(pos_account, "order:v:1")

        assert not can_process

    def test_retry_of_crashed_attempt_taken_over(self, pos_account):
        """Test that a redelivered retry whose worker died can run again."""
        guard = IdempotencyGuard(lease_seconds=300)
        guard.check_and_mark_started(pos_account, "order:v:1")
        guard.resume(pos_account, "order:v:1", attempt=2)
        go_idle("order:v:1", 301)

        can_process, record = guard.resume(pos_account, "order:v:1", attempt=2)

        assert can_process
        assert record.attempts == 3

    def test_live_retry_still_in_progress(self, pos_account):
        """Test that a retry inside its lease is still reported in progress."""
        guard = IdempotencyGuard(lease_seconds=300)
        guard.check_and_mark_started(pos_account, "order:v:1")
        guard.resume(pos_account, "order:v:1", attempt=2)

        with pytest.raises(OperationInProgressError):
            guard.resume(pos_account, "order:v:1", attempt=2)


@pytest.mark.django_db(transaction=True)
class TestConcurrentClaims:
    """Tests for check_and_mark_started under concurrent deliveries."""

    def test_exactly_one_concurrent_claim_wins(self, guard, pos_account):
        """Test that racing deliveries of one key yield exactly one claim."""
        workers = 4
        barrier = threading.Barrier(workers)
        results: list[bool] = []
        results_lock = threading.Lock()

        def deliver() -> None:
            try:
                barrier.wait()
                for _ in range(100):
                    try:
                        can_process, _ = guard.check_and_mark_started(
                            pos_account, "order:v:race"
                        )
                        break
                    except OperationalError:
                        # SQLite refuses concurrent writers instead of waiting
                        time.sleep(0.01)
                else:
                    return
                with results_lock:
                    results.append(can_process)
            finally:
                connection.close()

        threads = [threading.Thread(target=deliver) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(results) == [False] * (workers - 1) + [True]
        assert IdempotencyRecord.objects.filter(key="order:v:race").count() == 1
