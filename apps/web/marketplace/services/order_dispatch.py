"""
Order dispatch state machine.

Drives one order dispatch event through a single attempt:

    Enqueued -> Processing -> Succeeded
                           -> Failed (transient, below ceiling) -> retry
                           -> Failed (permanent or exhausted)   -> dead letter

Every attempt first claims the idempotency guard. The first attempt inserts
the record; retries advance its attempt counter. A duplicate delivery or a
concurrently running attempt returns without touching any state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from menusync_schemas import FailureType, MarketplaceOrder, OrderDispatchEvent
from pydantic import ValidationError

from apps.web.core.models import POSAccount
from apps.web.marketplace.exceptions import OperationInProgressError, OrderPayloadError
from apps.web.marketplace.models import OrderSyncLog, OrderSyncStatus
from apps.web.marketplace.services.dead_letter import DeadLetterEscalator
from apps.web.marketplace.services.failures import classify_failure, error_code_for
from apps.web.marketplace.services.idempotency import IdempotencyGuard
from apps.web.marketplace.services.order_mapper import OrderMapper
from apps.web.marketplace.services.registry import StableIdMappingRegistry
from apps.web.marketplace.services.retry import RetryScheduler
from apps.web.pos.services import BranchResolver, CredentialService

logger = logging.getLogger(__name__)


class DispatchOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    DUPLICATE = "duplicate"
    IN_PROGRESS = "in_progress"
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    ERROR = "error"


@dataclass
class DispatchResult:
    """What happened to one dispatch attempt."""

    outcome: DispatchOutcome
    order_log_id: Any = None
    pos_order_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    failure_type: FailureType | None = None
    retry_delay_seconds: int | None = None
    dead_letter_id: Any = None


class OrderDispatcher:
    """
    Creates Marketplace orders in the POS.

    Usage:
        dispatcher = OrderDispatcher(
            credentials=CredentialService(),
            retry_scheduler=RetryScheduler(bus, ThreadingJobScheduler()),
            dead_letters=DeadLetterEscalator(bus),
        )
        result = dispatcher.dispatch(event)
    """

    def __init__(
        self,
        credentials: CredentialService,
        retry_scheduler: RetryScheduler,
        dead_letters: DeadLetterEscalator,
        guard: IdempotencyGuard | None = None,
        branch_resolver: BranchResolver | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.credentials = credentials
        self.retry_scheduler = retry_scheduler
        self.dead_letters = dead_letters
        self.guard = guard or IdempotencyGuard()
        self.branch_resolver = branch_resolver or BranchResolver(credentials)
        self.max_attempts = max_attempts or getattr(
            settings, "ORDER_DISPATCH_MAX_ATTEMPTS", 3
        )

    def dispatch(self, event: OrderDispatchEvent) -> DispatchResult:
        """
        Run one attempt of an order dispatch event.

        Never raises: every failure is classified, persisted and turned into
        a retry or a dead letter, and anything unexpected is logged.
        """
        try:
            return self._dispatch(event)
        except Exception as e:
            logger.critical(
                "Unhandled error dispatching order event %s (correlation=%s)",
                event.idempotency_key,
                event.correlation_id,
                exc_info=True,
            )
            return DispatchResult(
                outcome=DispatchOutcome.ERROR,
                order_log_id=event.order_log_id,
                error_code=error_code_for(e),
                error_message=str(e),
            )

    def _dispatch(self, event: OrderDispatchEvent) -> DispatchResult:
        account = POSAccount.objects.filter(pk=event.account_id).first()
        if account is None:
            error = OrderPayloadError(f"POS account {event.account_id} not found")
            message = self.dead_letters.escalate_order(
                event, error, FailureType.PERMANENT, attempts=event.attempt
            )
            return DispatchResult(
                outcome=DispatchOutcome.DEAD_LETTERED,
                order_log_id=event.order_log_id,
                error_code=error_code_for(error),
                error_message=error.message,
                failure_type=FailureType.PERMANENT,
                dead_letter_id=message.pk,
            )

        # (a) Claim the event
        try:
            if event.attempt == 1:
                can_process, record = self.guard.check_and_mark_started(
                    account, event.idempotency_key
                )
            else:
                can_process, record = self.guard.resume(
                    account, event.idempotency_key, event.attempt
                )
        except OperationInProgressError as e:
            logger.warning(
                "Order event %s attempt %d already in progress, skipping: %s",
                event.idempotency_key,
                event.attempt,
                e.message,
            )
            return DispatchResult(
                outcome=DispatchOutcome.IN_PROGRESS, order_log_id=event.order_log_id
            )

        if not can_process:
            logger.warning(
                "Duplicate order event %s (correlation=%s), skipping",
                event.idempotency_key,
                event.correlation_id,
            )
            return DispatchResult(
                outcome=DispatchOutcome.DUPLICATE, order_log_id=event.order_log_id
            )

        first_attempt_at = record.first_seen_at if record else None
        log: OrderSyncLog | None = None
        try:
            log = self._start_attempt(account, event)  # (b)
            order = self._load_order(log)  # (c)
            branch_id = self.branch_resolver.resolve(account)  # (d)
            request = OrderMapper(StableIdMappingRegistry(account)).map(  # (e)
                order, branch_id, vendor_code=event.vendor_code
            )
            result = self.credentials.call_with_auth_refresh(  # (f)
                account,
                lambda adapter, session: adapter.create_order(session, request),
            )
        except Exception as e:
            return self._handle_failure(account, event, log, e, first_attempt_at)

        # (g) Terminal success
        log.status = OrderSyncStatus.SUCCEEDED
        log.pos_order_id = result.external_id
        log.pos_response = result.model_dump(mode="json")
        log.completed_at = timezone.now()
        log.error_code = ""
        log.error_message = ""
        log.save(
            update_fields=[
                "status",
                "pos_order_id",
                "pos_response",
                "completed_at",
                "error_code",
                "error_message",
                "updated_at",
            ]
        )
        self.guard.mark_succeeded(
            account, event.idempotency_key, {"pos_order_id": result.external_id}
        )

        logger.info(
            "Order %s created in POS as %s (vendor=%s, attempt=%d, correlation=%s)",
            log.order_code or log.order_token,
            result.external_id,
            event.vendor_code,
            event.attempt,
            event.correlation_id,
        )
        return DispatchResult(
            outcome=DispatchOutcome.SUCCEEDED,
            order_log_id=log.pk,
            pos_order_id=result.external_id,
        )

    # =========================================================================
    # Steps
    # =========================================================================

    def _start_attempt(self, account: POSAccount, event: OrderDispatchEvent) -> OrderSyncLog:
        """Mark the order log Processing and count the attempt."""
        with transaction.atomic():
            log = (
                OrderSyncLog.objects.for_account(account)
                .select_for_update()
                .filter(pk=event.order_log_id)
                .first()
            )
            if log is None:
                raise OrderPayloadError(f"Order log {event.order_log_id} not found")

            log.status = OrderSyncStatus.PROCESSING
            log.attempts += 1
            log.last_attempt_at = timezone.now()
            log.save(update_fields=["status", "attempts", "last_attempt_at", "updated_at"])

        logger.info(
            "Dispatching order log %s (attempt %d, correlation=%s)",
            log.pk,
            event.attempt,
            event.correlation_id,
        )
        return log

    def _load_order(self, log: OrderSyncLog) -> MarketplaceOrder:
        if not log.webhook_payload:
            raise OrderPayloadError(f"Order log {log.pk} has no webhook payload")
        try:
            return MarketplaceOrder.model_validate(log.webhook_payload)
        except ValidationError as e:
            raise OrderPayloadError(
                f"Order log {log.pk} has a corrupt webhook payload: {e}"
            ) from e

    # =========================================================================
    # Failure Handling
    # =========================================================================

    def _handle_failure(
        self,
        account: POSAccount,
        event: OrderDispatchEvent,
        log: OrderSyncLog | None,
        error: Exception,
        first_attempt_at: datetime | None,
    ) -> DispatchResult:
        failure_type = classify_failure(error)
        error_code = error_code_for(error)
        error_message = str(error) or error_code

        logger.error(
            "Order event %s attempt %d/%d failed (%s, %s): %s",
            event.idempotency_key,
            event.attempt,
            self.max_attempts,
            failure_type.value,
            error_code,
            error_message,
        )

        if log is not None:
            log.status = OrderSyncStatus.FAILED
            log.error_code = error_code
            log.error_message = error_message
            log.save(update_fields=["status", "error_code", "error_message", "updated_at"])

        if failure_type == FailureType.TRANSIENT and event.attempt < self.max_attempts:
            try:
                retry = self.retry_scheduler.schedule_retry(
                    event, error_code, error_message, failure_type
                )
            except Exception:
                logger.exception(
                    "Could not schedule retry for order event %s, dead-lettering",
                    event.idempotency_key,
                )
            else:
                # hold the key until the retry is due
                self.guard.extend_lease(
                    account,
                    event.idempotency_key,
                    timezone.now() + timedelta(seconds=retry.retry_delay_seconds),
                )
                return DispatchResult(
                    outcome=DispatchOutcome.RETRY_SCHEDULED,
                    order_log_id=event.order_log_id,
                    error_code=error_code,
                    error_message=error_message,
                    failure_type=failure_type,
                    retry_delay_seconds=retry.retry_delay_seconds,
                )

        dead_letter_id = None
        try:
            message = self.dead_letters.escalate_order(
                event,
                error,
                failure_type,
                attempts=event.attempt,
                account=account,
                first_attempt_at=first_attempt_at,
            )
            dead_letter_id = message.pk
        except Exception:
            logger.critical(
                "Could not write dead letter for order event %s (correlation=%s)",
                event.idempotency_key,
                event.correlation_id,
                exc_info=True,
            )

        self.guard.mark_failed(
            account,
            event.idempotency_key,
            {"error_code": error_code, "error_message": error_message},
        )
        return DispatchResult(
            outcome=DispatchOutcome.DEAD_LETTERED,
            order_log_id=event.order_log_id,
            error_code=error_code,
            error_message=error_message,
            failure_type=failure_type,
            dead_letter_id=dead_letter_id,
        )
