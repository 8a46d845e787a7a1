"""
Drain due events from the QueuedEvent outbox into the order dispatcher.

Usage:
    python apps/web/manage.py process_event_queue
    python apps/web/manage.py process_event_queue --once
    python apps/web/manage.py process_event_queue --interval 5 --limit 50
"""

import logging
import time
from datetime import timedelta
from typing import Any

from django.conf import settings
from django.core.management.base import BaseCommand
from django.db.models import F
from django.utils import timezone

from apps.web.marketplace.events import DatabaseMessageBus, OutboxJobScheduler
from apps.web.marketplace.models import QueuedEvent, QueuedEventStatus
from apps.web.marketplace.services import OrderDispatcher
from apps.web.marketplace.tasks import build_order_dispatcher, handle_event

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Dispatch queued Marketplace events"

    def add_arguments(self, parser: Any) -> None:
        parser.add_argument(
            "--once",
            action="store_true",
            help="Process once and exit (default: poll every 10s)",
        )
        parser.add_argument(
            "--interval",
            type=int,
            default=10,
            help="Polling interval in seconds (default: 10)",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum events per pass (default: 100)",
        )

    def handle(self, *_args: Any, **options: Any) -> None:
        once = options["once"]
        interval = options["interval"]
        limit = options["limit"]

        bus = DatabaseMessageBus()
        self.dispatcher = build_order_dispatcher(bus, OutboxJobScheduler(bus))

        self.stdout.write("Starting event queue processor...")

        while True:
            processed, errors = self.process_pending(limit)

            if processed or errors:
                self.stdout.write(f"Processed {processed} events, {errors} errors")

            if once:
                break

            time.sleep(interval)

    def reclaim_stale(self) -> int:
        """Put rows claimed by a worker that never finished them back in the queue."""
        lease = getattr(settings, "PROCESSING_LEASE_SECONDS", 300)
        # by then the claiming attempt's idempotency lease has run out as well
        cutoff = timezone.now() - timedelta(seconds=2 * lease)
        reclaimed = QueuedEvent.objects.filter(
            status=QueuedEventStatus.PROCESSING, claimed_at__lte=cutoff
        ).update(status=QueuedEventStatus.PENDING, claimed_at=None)
        if reclaimed:
            logger.warning("Reclaimed %d stale queued events", reclaimed)
        return reclaimed

    def process_pending(
        self, limit: int = 100, dispatcher: OrderDispatcher | None = None
    ) -> tuple[int, int]:
        """Process due pending events. Returns (processed_count, error_count)."""
        dispatcher = dispatcher or self.dispatcher
        self.reclaim_stale()

        due = QueuedEvent.objects.filter(
            status=QueuedEventStatus.PENDING,
            available_at__lte=timezone.now(),
        ).order_by("available_at")[:limit]

        processed = 0
        errors = 0

        for queued in due:
            # Claim the row; another worker may have taken it
            claimed = QueuedEvent.objects.filter(
                pk=queued.pk, status=QueuedEventStatus.PENDING
            ).update(
                status=QueuedEventStatus.PROCESSING,
                attempts=F("attempts") + 1,
                claimed_at=timezone.now(),
            )
            if not claimed:
                continue

            try:
                handle_event(queued.event_type, queued.payload, dispatcher)
            except Exception as e:
                logger.exception("Error processing queued event %s", queued.pk)
                QueuedEvent.objects.filter(pk=queued.pk).update(
                    status=QueuedEventStatus.FAILED,
                    error=str(e),
                    processed_at=timezone.now(),
                )
                errors += 1
                continue

            QueuedEvent.objects.filter(pk=queued.pk).update(
                status=QueuedEventStatus.DONE,
                processed_at=timezone.now(),
            )
            processed += 1

        return processed, errors
