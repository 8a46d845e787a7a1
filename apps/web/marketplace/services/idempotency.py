"""
Idempotency guard for inbound events.

One record per (account, key). The first delivery inserts a Started record
and owns the event; every later delivery sees the existing record and must
skip. Retries of the owning event advance the record's attempt counter with
a compare-and-set instead of inserting again.

A Started record holds a lease: `last_processed_at` is refreshed on every
claim and pushed out while a retry is pending. A Started record idle past
the lease belongs to a worker that died mid-attempt, and the next delivery
may take it over.
"""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.web.marketplace.exceptions import OperationInProgressError
from apps.web.marketplace.models import IdempotencyRecord, IdempotencyStatus

if TYPE_CHECKING:
    from apps.web.core.models import POSAccount

logger = logging.getLogger(__name__)


def result_hash(result: Any) -> str:
    """Stable sha256 over a JSON-serializable result."""
    if result is None:
        return ""
    encoded = json.dumps(result, sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode()).hexdigest()


class IdempotencyGuard:
    """
    Check-and-set tracker for (account, key) pairs.

    Usage:
        guard = IdempotencyGuard()
        can_process, record = guard.check_and_mark_started(account, key)
        if not can_process:
            return  # duplicate delivery
        ...
        guard.mark_succeeded(account, key, result)
    """

    def __init__(
        self, retention_days: int | None = None, lease_seconds: int | None = None
    ) -> None:
        self.retention_days = retention_days or getattr(
            settings, "IDEMPOTENCY_RETENTION_DAYS", 30
        )
        self.lease_seconds = lease_seconds or getattr(
            settings, "PROCESSING_LEASE_SECONDS", 300
        )

    def get(self, account: "POSAccount", key: str) -> IdempotencyRecord | None:
        return IdempotencyRecord.objects.for_account(account).filter(key=key).first()

    def check_and_mark_started(
        self, account: "POSAccount", key: str
    ) -> tuple[bool, IdempotencyRecord]:
        """
        Atomically claim a key.

        The claim is a unique-constraint insert inside a savepoint, so two
        concurrent deliveries race safely: the loser's insert fails and it
        gets the winner's record back. An expired terminal record is removed
        and the key claimed afresh, and a Started record whose lease ran out
        is taken over.

        Returns:
            (can_process, record). can_process is True only for the caller
            whose insert created the record or who took over a stale one.
        """
        now = timezone.now()
        IdempotencyRecord.objects.for_account(account).filter(
            key=key, expires_at__lte=now
        ).exclude(status=IdempotencyStatus.STARTED).delete()

        try:
            with transaction.atomic():
                record = IdempotencyRecord.objects.create(
                    account=account,
                    key=key,
                    status=IdempotencyStatus.STARTED,
                    attempts=1,
                    first_seen_at=now,
                    last_processed_at=now,
                )
        except IntegrityError:
            existing = IdempotencyRecord.objects.for_account(account).get(key=key)
            if self._take_over_stale(account, existing):
                return True, existing
            logger.warning(
                "Duplicate delivery for key %s (account=%s, status=%s)",
                key,
                account.pk,
                existing.status,
            )
            return False, existing

        return True, record

    def resume(
        self, account: "POSAccount", key: str, attempt: int
    ) -> tuple[bool, IdempotencyRecord | None]:
        """
        Claim a retry attempt of an already-started key.

        Advances the attempt counter from attempt-1 to attempt in a single
        conditional update. A record that is already terminal means the
        event was finished by another delivery.

        Returns:
            (can_process, record). If no record exists at all, the key is
            claimed as a fresh start.

        Raises:
            OperationInProgressError: If another worker holds this attempt.
        """
        record = self.get(account, key)
        if record is None:
            logger.warning(
                "No idempotency record for retry of key %s (account=%s), claiming",
                key,
                account.pk,
            )
            return self.check_and_mark_started(account, key)

        if record.is_terminal:
            return False, record

        updated = (
            IdempotencyRecord.objects.for_account(account)
            .filter(key=key, status=IdempotencyStatus.STARTED, attempts=attempt - 1)
            .update(attempts=attempt, last_processed_at=timezone.now())
        )
        if updated == 0:
            record.refresh_from_db()
            if record.is_terminal:
                return False, record
            if self._take_over_stale(account, record):
                return True, record
            raise OperationInProgressError(
                f"Attempt {attempt} of {key} is already being processed"
            )

        record.refresh_from_db()
        return True, record

    def extend_lease(self, account: "POSAccount", key: str, until: datetime) -> bool:
        """Keep a Started record from looking stale until `until`."""
        updated = (
            IdempotencyRecord.objects.for_account(account)
            .filter(key=key, status=IdempotencyStatus.STARTED)
            .update(last_processed_at=until)
        )
        return updated > 0

    def _take_over_stale(self, account: "POSAccount", record: IdempotencyRecord) -> bool:
        """
        Claim a Started record whose lease has run out.

        The claim is conditional on the record being unchanged since it was
        read, so only one of several racing deliveries wins it.
        """
        now = timezone.now()
        if record.status != IdempotencyStatus.STARTED:
            return False
        if record.last_processed_at > now - timedelta(seconds=self.lease_seconds):
            return False

        taken = (
            IdempotencyRecord.objects.for_account(account)
            .filter(
                pk=record.pk,
                status=IdempotencyStatus.STARTED,
                last_processed_at=record.last_processed_at,
            )
            .update(attempts=F("attempts") + 1, last_processed_at=now)
        )
        if not taken:
            return False

        logger.warning(
            "Taking over stale key %s (account=%s, idle since %s)",
            record.key,
            account.pk,
            record.last_processed_at,
        )
        record.refresh_from_db()
        return True

    def mark_succeeded(
        self, account: "POSAccount", key: str, result: Any = None
    ) -> bool:
        """Transition Started -> Succeeded. Off-Started calls are no-ops."""
        return self._finish(account, key, IdempotencyStatus.SUCCEEDED, result)

    def mark_failed(self, account: "POSAccount", key: str, error: Any = None) -> bool:
        """Transition Started -> Failed. Off-Started calls are no-ops."""
        return self._finish(account, key, IdempotencyStatus.FAILED, error)

    def _finish(
        self,
        account: "POSAccount",
        key: str,
        status: IdempotencyStatus,
        result: Any,
    ) -> bool:
        now = timezone.now()
        updated = (
            IdempotencyRecord.objects.for_account(account)
            .filter(key=key, status=IdempotencyStatus.STARTED)
            .update(
                status=status,
                last_processed_at=now,
                result_hash=result_hash(result),
                expires_at=now + timedelta(days=self.retention_days),
            )
        )
        if updated == 0:
            logger.warning(
                "Ignoring %s transition for key %s (account=%s): record is not started",
                status,
                key,
                account.pk,
            )
            return False
        return True

    def release_failed(self, account: "POSAccount", key: str) -> bool:
        """Drop a Failed record so the key can be claimed again."""
        deleted, _ = (
            IdempotencyRecord.objects.for_account(account)
            .filter(key=key, status=IdempotencyStatus.FAILED)
            .delete()
        )
        return deleted > 0

    def purge_expired(self) -> int:
        """Delete terminal records past their expiry. Returns the count."""
        deleted, _ = (
            IdempotencyRecord.objects.filter(expires_at__lte=timezone.now())
            .exclude(status=IdempotencyStatus.STARTED)
            .delete()
        )
        if deleted:
            logger.info("Purged %d expired idempotency records", deleted)
        return deleted
