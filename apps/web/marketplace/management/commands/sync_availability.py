"""
Push product availability to the Marketplace.

Only products already published in a catalog are updated.

Usage:
    python apps/web/manage.py sync_availability --vendor v-001
    python apps/web/manage.py sync_availability --all
"""

from typing import Any

from django.core.management.base import BaseCommand, CommandError

from apps.web.core.models import MarketplaceVendor
from apps.web.marketplace.services import AvailabilitySyncService
from apps.web.marketplace.tasks import sync_availability_task
from apps.web.pos.services import CredentialService


class Command(BaseCommand):
    help = "Push POS product availability to the Marketplace"

    def add_arguments(self, parser: Any) -> None:
        parser.add_argument("--vendor", help="Vendor code to update")
        parser.add_argument(
            "--all", action="store_true", help="Update every active vendor"
        )

    def handle(self, *_args: Any, **options: Any) -> None:
        if options["all"]:
            codes = list(
                MarketplaceVendor.objects.filter(is_active=True).values_list(
                    "vendor_code", flat=True
                )
            )
        elif options["vendor"]:
            codes = [options["vendor"]]
        else:
            raise CommandError("Pass --vendor CODE or --all")

        service = AvailabilitySyncService(CredentialService())
        failures = 0
        for code in codes:
            result = sync_availability_task(code, service=service)
            if not result["success"]:
                failures += 1
                self.stderr.write(f"{code}: {result['error']}")
            else:
                self.stdout.write(
                    f"{code}: {result['items']} items, {result['available']} available, "
                    f"{result['unmapped']} unpublished"
                )

        if failures:
            raise CommandError(f"{failures} of {len(codes)} availability updates failed")
