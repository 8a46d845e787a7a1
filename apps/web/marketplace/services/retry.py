"""
Retry scheduling for order dispatch.

Backoff is a fixed ladder, not exponential: 60s after the first failure,
300s after the second, 900s after any later one.
"""

import functools
import logging

from django.utils import timezone

from menusync_schemas import FailureType, OrderDispatchEvent, OrderDispatchRetryEvent

from apps.web.marketplace.events import JobScheduler, MessageBus

logger = logging.getLogger(__name__)

RETRY_DELAYS_SECONDS = {1: 60, 2: 300}
MAX_RETRY_DELAY_SECONDS = 900


def retry_delay(attempt: int) -> int:
    """Seconds to wait before the attempt after `attempt`."""
    return RETRY_DELAYS_SECONDS.get(attempt, MAX_RETRY_DELAY_SECONDS)


class RetryScheduler:
    """Re-publishes failed dispatch events after a delay."""

    def __init__(self, bus: MessageBus, scheduler: JobScheduler) -> None:
        self.bus = bus
        self.scheduler = scheduler

    def delay(self, attempt: int) -> int:
        return retry_delay(attempt)

    def schedule_retry(
        self,
        event: OrderDispatchEvent,
        error_code: str,
        error_message: str,
        failure_type: FailureType = FailureType.TRANSIENT,
    ) -> OrderDispatchRetryEvent:
        """
        Schedule the next attempt of a dispatch event.

        Scheduling errors propagate so the caller can dead-letter instead.

        Returns:
            The retry envelope that will be published.
        """
        delay = self.delay(event.attempt)
        retry_event = OrderDispatchRetryEvent(
            message=event.model_copy(update={"attempt": event.attempt + 1}),
            attempts=event.attempt,
            error_code=error_code,
            error_message=error_message,
            last_attempt=timezone.now(),
            retry_delay_seconds=delay,
            failure_type=failure_type,
        )

        self.scheduler.schedule(functools.partial(self.bus.publish, retry_event), delay)

        logger.info(
            "Scheduled retry %d of order event %s in %ds (correlation=%s, error=%s)",
            event.attempt + 1,
            event.idempotency_key,
            delay,
            event.correlation_id,
            error_code,
        )
        return retry_event
