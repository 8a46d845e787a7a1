"""
Purge expired idempotency records and stale inactive mappings.

Usage:
    python apps/web/manage.py purge_sync_records
    python apps/web/manage.py purge_sync_records --mapping-days 30
"""

from typing import Any

from django.core.management.base import BaseCommand

from apps.web.marketplace.services import IdempotencyGuard, cleanup_inactive_mappings


class Command(BaseCommand):
    help = "Purge expired idempotency records and inactive stable mappings"

    def add_arguments(self, parser: Any) -> None:
        parser.add_argument(
            "--mapping-days",
            type=int,
            default=None,
            help="Retention for inactive mappings (default: MAPPING_RETENTION_DAYS)",
        )

    def handle(self, *_args: Any, **options: Any) -> None:
        records = IdempotencyGuard().purge_expired()
        mappings = cleanup_inactive_mappings(options["mapping_days"])
        self.stdout.write(
            f"Purged {records} idempotency records and {mappings} inactive mappings"
        )
