"""
Dead letter escalation.

Terminally failed events are persisted with their full original message
and failure diagnostics. Operators list, acknowledge, or replay them.
Replaying an order event publishes it as a brand-new event (fresh
correlation id and idempotency key) so it is never mistaken for a
duplicate of the original.
"""

import logging
import traceback
import uuid
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ValidationError
from django.db.models import Count, Q
from django.utils import timezone

from menusync_schemas import FailureType, OrderDispatchEvent

from apps.web.marketplace.events import MessageBus
from apps.web.marketplace.exceptions import (
    DeadLetterNotFoundError,
    DeadLetterStateError,
    ReplayNotSupportedError,
)
from apps.web.marketplace.models import (
    DeadLetterEventType,
    DeadLetterMessage,
    DeadLetterPriority,
    ReplayResult,
)

if TYPE_CHECKING:
    from datetime import datetime

    from apps.web.core.models import POSAccount

logger = logging.getLogger(__name__)


def format_stack_trace(error: BaseException | None) -> str:
    if error is None:
        return ""
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class DeadLetterEscalator:
    """
    Records and manages dead letters.

    Usage:
        escalator = DeadLetterEscalator(bus)
        escalator.escalate_order(event, error, FailureType.PERMANENT, attempts=1)
        for message in escalator.list_pending():
            ...
        escalator.replay(message.pk, replayed_by="ops")
    """

    def __init__(self, bus: MessageBus | None = None) -> None:
        self.bus = bus

    # =========================================================================
    # Escalation
    # =========================================================================

    def escalate(
        self,
        *,
        event_type: str,
        correlation_id: str,
        original_message: dict[str, Any],
        error_code: str,
        error_message: str,
        failure_type: FailureType,
        attempts: int,
        account: "POSAccount | None" = None,
        first_attempt_at: "datetime | None" = None,
        error: BaseException | None = None,
        priority: int = DeadLetterPriority.NORMAL,
    ) -> DeadLetterMessage:
        """
        Persist a dead letter.

        Returns:
            The created dead letter.
        """
        now = timezone.now()
        message = DeadLetterMessage.objects.create(
            event_type=event_type,
            correlation_id=correlation_id,
            account=account,
            original_message=original_message,
            error_code=error_code,
            error_message=error_message,
            stack_trace=format_stack_trace(error),
            attempts=attempts,
            failure_type=failure_type.value,
            first_attempt_at=first_attempt_at or now,
            last_attempt_at=now,
            priority=priority,
        )
        logger.error(
            "Dead-lettered %s event (correlation=%s, error=%s, failure=%s, attempts=%d)",
            event_type,
            correlation_id,
            error_code,
            failure_type.value,
            attempts,
        )
        return message

    def escalate_order(
        self,
        event: OrderDispatchEvent,
        error: BaseException,
        failure_type: FailureType,
        attempts: int,
        account: "POSAccount | None" = None,
        first_attempt_at: "datetime | None" = None,
    ) -> DeadLetterMessage:
        """Dead-letter an order dispatch event at high priority."""
        return self.escalate(
            event_type=DeadLetterEventType.ORDER_SYNC,
            correlation_id=event.correlation_id,
            original_message=event.model_dump(mode="json"),
            error_code=type(error).__name__,
            error_message=str(error),
            failure_type=failure_type,
            attempts=attempts,
            account=account,
            first_attempt_at=first_attempt_at,
            error=error,
            priority=DeadLetterPriority.HIGH,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, dead_letter_id: Any) -> DeadLetterMessage:
        """
        Raises:
            DeadLetterNotFoundError: If no such dead letter exists.
        """
        try:
            return DeadLetterMessage.objects.get(pk=dead_letter_id)
        except (DeadLetterMessage.DoesNotExist, ValidationError, ValueError) as e:
            raise DeadLetterNotFoundError(f"Dead letter {dead_letter_id} not found") from e

    def list_pending(
        self,
        event_type: str | None = None,
        priority: int | None = None,
        limit: int = 50,
    ) -> list[DeadLetterMessage]:
        """Unreplayed, unacknowledged dead letters, highest priority then oldest first."""
        messages = DeadLetterMessage.objects.filter(
            is_replayed=False, is_acknowledged=False
        )
        if event_type:
            messages = messages.filter(event_type=event_type)
        if priority is not None:
            messages = messages.filter(priority=priority)
        return list(messages.order_by("-priority", "last_attempt_at")[:limit])

    def statistics(self) -> dict[str, Any]:
        """Counts of pending/replayed/acknowledged dead letters by type."""
        totals = DeadLetterMessage.objects.aggregate(
            total=Count("id"),
            pending=Count("id", filter=Q(is_replayed=False, is_acknowledged=False)),
            replayed=Count("id", filter=Q(is_replayed=True)),
            acknowledged=Count("id", filter=Q(is_acknowledged=True)),
        )
        by_type = {
            row["event_type"]: row["count"]
            for row in DeadLetterMessage.objects.filter(
                is_replayed=False, is_acknowledged=False
            )
            .values("event_type")
            .annotate(count=Count("id"))
        }
        return {**totals, "pending_by_type": by_type}

    # =========================================================================
    # Operator Actions
    # =========================================================================

    def mark_replayed(
        self,
        dead_letter_id: Any,
        success: bool,
        note: str = "",
        replayed_by: str = "",
    ) -> DeadLetterMessage:
        """Record the outcome of a replay."""
        message = self.get(dead_letter_id)
        message.is_replayed = True
        message.replayed_at = timezone.now()
        message.replayed_by = replayed_by
        message.replay_result = ReplayResult.SUCCESS if success else ReplayResult.FAILURE
        message.replay_error_message = "" if success else note
        if note:
            message.notes = f"{message.notes}\n{note}".strip()
        message.save(
            update_fields=[
                "is_replayed",
                "replayed_at",
                "replayed_by",
                "replay_result",
                "replay_error_message",
                "notes",
                "updated_at",
            ]
        )
        return message

    def acknowledge(
        self, dead_letter_id: Any, note: str = "", acknowledged_by: str = ""
    ) -> DeadLetterMessage:
        """Close a dead letter without replaying it."""
        message = self.get(dead_letter_id)
        message.is_acknowledged = True
        message.acknowledged_at = timezone.now()
        message.acknowledged_by = acknowledged_by
        if note:
            message.notes = f"{message.notes}\n{note}".strip()
        message.save(
            update_fields=[
                "is_acknowledged",
                "acknowledged_at",
                "acknowledged_by",
                "notes",
                "updated_at",
            ]
        )
        logger.info("Acknowledged dead letter %s by %s", message.pk, acknowledged_by or "-")
        return message

    def update_priority(self, dead_letter_id: Any, priority: int) -> DeadLetterMessage:
        message = self.get(dead_letter_id)
        message.priority = DeadLetterPriority(priority)
        message.save(update_fields=["priority", "updated_at"])
        return message

    def replay(self, dead_letter_id: Any, replayed_by: str = "") -> OrderDispatchEvent:
        """
        Publish a dead-lettered order event again as a new event.

        Raises:
            DeadLetterStateError: If it was already replayed or acknowledged.
            ReplayNotSupportedError: If it is not an order event.
        """
        message = self.get(dead_letter_id)
        if not message.is_pending:
            raise DeadLetterStateError(
                f"Dead letter {message.pk} is already replayed or acknowledged"
            )
        if message.event_type != DeadLetterEventType.ORDER_SYNC:
            raise ReplayNotSupportedError(
                f"Replay of {message.event_type} dead letters is not supported"
            )
        if self.bus is None:
            raise ReplayNotSupportedError("No message bus configured for replay")

        original = OrderDispatchEvent.model_validate(message.original_message)
        now = timezone.now()
        replay_event = original.model_copy(
            update={
                "correlation_id": str(uuid.uuid4()),
                "idempotency_key": f"replay:{message.pk}:{now:%Y%m%d%H%M%S}",
                "attempt": 1,
                "occurred_at": now,
            }
        )

        try:
            self.bus.publish(replay_event)
        except Exception as e:
            self.mark_replayed(message.pk, success=False, note=str(e), replayed_by=replayed_by)
            raise

        self.mark_replayed(
            message.pk,
            success=True,
            note=f"Replayed as {replay_event.correlation_id}",
            replayed_by=replayed_by,
        )
        logger.info(
            "Replayed dead letter %s as correlation %s (key=%s)",
            message.pk,
            replay_event.correlation_id,
            replay_event.idempotency_key,
        )
        return replay_event
