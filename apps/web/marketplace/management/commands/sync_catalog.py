"""
Submit vendor catalogs to the Marketplace.

Usage:
    python apps/web/manage.py sync_catalog --vendor v-001
    python apps/web/manage.py sync_catalog --all --force
"""

from typing import Any

from django.core.management.base import BaseCommand, CommandError

from apps.web.core.models import MarketplaceVendor
from apps.web.marketplace.services import CatalogSyncService
from apps.web.marketplace.tasks import sync_catalog_task
from apps.web.pos.services import CredentialService


class Command(BaseCommand):
    help = "Build and submit Marketplace catalogs from the POS"

    def add_arguments(self, parser: Any) -> None:
        parser.add_argument("--vendor", help="Vendor code to sync")
        parser.add_argument(
            "--all", action="store_true", help="Sync every active vendor"
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Submit even if the catalog is unchanged",
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

        service = CatalogSyncService(CredentialService())
        failures = 0
        for code in codes:
            result = sync_catalog_task(code, force=options["force"], service=service)
            if not result["success"]:
                failures += 1
                self.stderr.write(f"{code}: {result['error']}")
            elif result["skipped"]:
                self.stdout.write(f"{code}: unchanged, skipped")
            else:
                self.stdout.write(
                    f"{code}: submitted {result['products']} products "
                    f"(import {result['import_id']})"
                )

        if failures:
            raise CommandError(f"{failures} of {len(codes)} catalog syncs failed")
