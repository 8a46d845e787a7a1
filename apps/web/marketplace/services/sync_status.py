"""
Catalog sync status tracking.

A submission starts as Submitted when the catalog is sent and is advanced
by the Marketplace's asynchronous import-status callback. The outcome is
propagated to every staged product of the (account, vendor) pair.
"""

import logging
from typing import TYPE_CHECKING, Any

from django.db import transaction
from django.utils import timezone

from menusync_schemas import CatalogImportState, CatalogImportStatus
from pydantic import ValidationError

from apps.web.marketplace.models import (
    CatalogSubmission,
    ProductSyncStatus,
    StagedProduct,
    SubmissionStatus,
)

if TYPE_CHECKING:
    from apps.web.core.models import POSAccount

logger = logging.getLogger(__name__)

CALLBACK_STATUS_MAP = {
    CatalogImportState.COMPLETED: SubmissionStatus.SUCCESS,
    CatalogImportState.DONE: SubmissionStatus.DONE,
    CatalogImportState.FAILED: SubmissionStatus.FAILED,
    CatalogImportState.PARTIAL: SubmissionStatus.PARTIAL,
}

SUCCESS_STATUSES = {SubmissionStatus.SUCCESS, SubmissionStatus.DONE}


def map_callback_status(raw_status: str | None) -> SubmissionStatus | None:
    """Translate a callback status; None if it is not one we know."""
    try:
        state = CatalogImportState((raw_status or "").strip().lower())
    except ValueError:
        return None
    return CALLBACK_STATUS_MAP[state]


class SyncStatusTracker:
    """Records catalog submissions and applies import-status callbacks."""

    def record_submission(
        self,
        account: "POSAccount",
        vendor_code: str,
        import_id: str,
        *,
        chain_code: str = "",
        correlation_id: str = "",
        callback_url: str | None = None,
        catalog_hash: str = "",
        products_count: int = 0,
        categories_count: int = 0,
        toppings_count: int = 0,
    ) -> CatalogSubmission:
        """Create a Submitted record and mark the vendor's staged products."""
        now = timezone.now()
        with transaction.atomic():
            submission = CatalogSubmission.objects.create(
                account=account,
                vendor_code=vendor_code,
                chain_code=chain_code,
                import_id=import_id,
                correlation_id=correlation_id,
                status=SubmissionStatus.SUBMITTED,
                catalog_hash=catalog_hash,
                products_count=products_count,
                categories_count=categories_count,
                toppings_count=toppings_count,
                submitted_at=now,
                callback_url=callback_url or "",
            )
            StagedProduct.objects.for_account(account).filter(
                marketplace_vendor_code=vendor_code
            ).update(
                marketplace_sync_status=ProductSyncStatus.SUBMITTED,
                marketplace_import_id=import_id,
                marketplace_submitted_at=now,
                marketplace_sync_completed_at=None,
                marketplace_last_error="",
            )

        logger.info(
            "Recorded catalog submission %s for vendor %s (import=%s, products=%d)",
            submission.pk,
            vendor_code,
            import_id,
            products_count,
        )
        return submission

    def handle_status(
        self,
        raw_payload: dict[str, Any],
        correlation_id: str = "",
    ) -> CatalogSubmission | None:
        """
        Apply an import-status callback.

        Unknown statuses, unparseable payloads and callbacks for imports we
        cannot find are logged and dropped.

        Returns:
            The updated submission, or None if the callback was dropped.
        """
        try:
            callback = CatalogImportStatus.model_validate(raw_payload).normalized()
        except ValidationError:
            logger.warning(
                "Dropping unparseable catalog status callback (correlation=%s)",
                correlation_id,
            )
            return None

        status = map_callback_status(callback.status)
        if status is None:
            logger.warning(
                "Unknown catalog import status %r for import %s (correlation=%s)",
                callback.status,
                callback.import_id,
                correlation_id,
            )
            return None

        if not callback.import_id:
            logger.warning(
                "Catalog status callback without import id (correlation=%s)",
                correlation_id,
            )
            return None

        with transaction.atomic():
            submission = self._find_submission(callback, correlation_id)
            if submission is None:
                logger.warning(
                    "No submission found for import %s, dropping callback (correlation=%s)",
                    callback.import_id,
                    correlation_id,
                )
                return None

            self._apply(submission, callback, status, raw_payload)
            self._propagate(submission, status)

        logger.info(
            "Catalog import %s for vendor %s is %s (errors=%d, correlation=%s)",
            submission.import_id,
            submission.vendor_code,
            submission.status,
            submission.errors_count,
            correlation_id,
        )
        return submission

    def _find_submission(
        self, callback: CatalogImportStatus, correlation_id: str
    ) -> CatalogSubmission | None:
        import_id = callback.import_id
        submission = (
            CatalogSubmission.objects.select_for_update()
            .filter(import_id=import_id)
            .first()
        )
        if submission is None:
            submission = (
                CatalogSubmission.objects.select_for_update()
                .filter(import_id__iexact=import_id)
                .first()
            )
        if submission is not None:
            return submission

        # Best effort: rebuild a minimal record from the staged products
        staged = StagedProduct.objects.filter(marketplace_import_id=import_id).first()
        if staged is None:
            return None

        vendor_code = callback.vendor_code or staged.marketplace_vendor_code
        logger.warning(
            "Reconstructing missing submission for import %s (vendor=%s)",
            import_id,
            vendor_code,
        )
        return CatalogSubmission.objects.create(
            account=staged.account,
            vendor_code=vendor_code,
            chain_code=callback.chain_code or "",
            import_id=import_id,
            correlation_id=correlation_id,
            status=SubmissionStatus.SUBMITTED,
            submitted_at=staged.marketplace_submitted_at or timezone.now(),
        )

    def _apply(
        self,
        submission: CatalogSubmission,
        callback: CatalogImportStatus,
        status: SubmissionStatus,
        raw_payload: dict[str, Any],
    ) -> None:
        now = timezone.now()
        submission.status = status
        if callback.summary:
            submission.categories_created = callback.summary.categories_created
            submission.categories_updated = callback.summary.categories_updated
            submission.products_created = callback.summary.products_created
            submission.products_updated = callback.summary.products_updated
        submission.errors = [issue.model_dump(mode="json") for issue in callback.errors]
        submission.errors_count = len(callback.errors)
        submission.details = [detail.model_dump(mode="json") for detail in callback.details]
        submission.response_message = callback.message or ""
        submission.webhook_payload = raw_payload
        submission.completed_at = now
        submission.processing_duration_seconds = (
            now - submission.submitted_at
        ).total_seconds()
        submission.save()

    def _propagate(self, submission: CatalogSubmission, status: SubmissionStatus) -> int:
        now = timezone.now()
        update: dict[str, Any] = {
            "marketplace_sync_status": ProductSyncStatus(status.value),
            "marketplace_sync_completed_at": now,
        }
        if status in SUCCESS_STATUSES:
            update["sync_date"] = now
            update["marketplace_last_error"] = ""
        else:
            update["marketplace_last_error"] = (
                submission.response_message
                or "; ".join(e.get("message") or "" for e in submission.errors)
                or status.label
            )

        count = (
            StagedProduct.objects.for_account(submission.account_id)
            .filter(marketplace_vendor_code=submission.vendor_code)
            .update(**update)
        )
        logger.debug(
            "Propagated %s to %d staged products (vendor=%s)",
            status,
            count,
            submission.vendor_code,
        )
        return count

    # =========================================================================
    # Queries
    # =========================================================================

    def get_sync_history(
        self, account: "POSAccount", vendor_code: str | None = None, limit: int = 20
    ) -> list[CatalogSubmission]:
        submissions = CatalogSubmission.objects.for_account(account)
        if vendor_code:
            submissions = submissions.filter(vendor_code=vendor_code)
        return list(submissions.order_by("-submitted_at")[:limit])

    def get_latest_status(
        self, account: "POSAccount", vendor_code: str
    ) -> CatalogSubmission | None:
        return (
            CatalogSubmission.objects.for_account(account)
            .filter(vendor_code=vendor_code)
            .order_by("-submitted_at")
            .first()
        )
