"""
Message bus and delayed-job scheduler.

The dispatch core only needs `publish(event)` and
`schedule(callback, delay_seconds)`. The database bus is the durable
production path (rows drained by `process_event_queue`); the in-memory
bus and manual scheduler exist for tests and local runs.
"""

import functools
import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any, Protocol, runtime_checkable

from django.db import close_old_connections
from django.utils import timezone

from pydantic import BaseModel

from apps.web.marketplace.models import QueuedEvent

logger = logging.getLogger(__name__)


def event_correlation_id(event: BaseModel) -> str:
    """Correlation id of an event, looking inside retry envelopes."""
    correlation_id = getattr(event, "correlation_id", None)
    if correlation_id is None:
        inner = getattr(event, "message", None)
        correlation_id = getattr(inner, "correlation_id", "")
    return correlation_id or ""


# =============================================================================
# Message Bus
# =============================================================================


@runtime_checkable
class MessageBus(Protocol):
    """At-least-once, fire-and-forget publication."""

    def publish(self, event: BaseModel) -> None: ...


class DatabaseMessageBus:
    """Writes events to the QueuedEvent outbox."""

    def publish(self, event: BaseModel, delay_seconds: int = 0) -> QueuedEvent:
        row = QueuedEvent.objects.create(
            event_type=getattr(event, "event_type", type(event).__name__),
            payload=event.model_dump(mode="json"),
            correlation_id=event_correlation_id(event),
            available_at=timezone.now() + timedelta(seconds=delay_seconds),
        )
        logger.info(
            "Queued %s event %s (correlation=%s)",
            row.event_type,
            row.pk,
            row.correlation_id,
        )
        return row


class InMemoryMessageBus:
    """Collects published events in a list."""

    def __init__(self) -> None:
        self.published: list[BaseModel] = []

    def publish(self, event: BaseModel) -> None:
        self.published.append(event)

    def drain(self) -> list[BaseModel]:
        """Return and forget everything published so far."""
        events, self.published = self.published, []
        return events


# =============================================================================
# Job Scheduler
# =============================================================================


@runtime_checkable
class JobScheduler(Protocol):
    """Runs a callback once after a delay, without blocking the caller."""

    def schedule(self, callback: Callable[[], Any], delay_seconds: int) -> None: ...


class ThreadingJobScheduler:
    """Fires callbacks on daemon timer threads."""

    def schedule(self, callback: Callable[[], Any], delay_seconds: int) -> None:
        timer = threading.Timer(delay_seconds, self._run, args=(callback,))
        timer.daemon = True
        timer.start()

    @staticmethod
    def _run(callback: Callable[[], Any]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Scheduled job failed")
        finally:
            close_old_connections()


class ManualJobScheduler:
    """Records jobs; tests run them explicitly."""

    def __init__(self) -> None:
        self.jobs: list[tuple[int, Callable[[], Any]]] = []
        # Every delay ever scheduled, including jobs already run
        self.delays: list[int] = []

    def schedule(self, callback: Callable[[], Any], delay_seconds: int) -> None:
        self.jobs.append((delay_seconds, callback))
        self.delays.append(delay_seconds)

    def run_all(self) -> int:
        """Run and clear every pending job. Returns how many ran."""
        jobs, self.jobs = self.jobs, []
        for _, callback in jobs:
            callback()
        return len(jobs)


class OutboxJobScheduler:
    """
    Delays bus publications by writing them to the outbox as not-yet-due rows.

    Publications survive a process restart this way. Any other callback is
    handed to a ThreadingJobScheduler.
    """

    def __init__(self, bus: DatabaseMessageBus) -> None:
        self.bus = bus
        self._fallback = ThreadingJobScheduler()

    def schedule(self, callback: Callable[[], Any], delay_seconds: int) -> None:
        if (
            isinstance(callback, functools.partial)
            and callback.func == self.bus.publish
            and len(callback.args) == 1
            and not callback.keywords
        ):
            self.bus.publish(callback.args[0], delay_seconds=delay_seconds)
            return
        self._fallback.schedule(callback, delay_seconds)
