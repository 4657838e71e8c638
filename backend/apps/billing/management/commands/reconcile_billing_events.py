"""
Reconcile billing events management command.

Replays Stripe events whose handler failed after the event was claimed.
Each event is re-fetched from Stripe and its handler re-run without taking
a new claim. Ledger grants are keyed by the event ID, so an event that was
partially applied the first time is not granted twice.
"""

from django.core.management.base import BaseCommand
from django.db.models import F
from django.utils import timezone

from apps.billing.exceptions import UnknownEventTypeError
from apps.billing.models import FailedEventDispatch
from apps.billing.stripe_client import retrieve_event
from apps.billing.webhooks import dispatch_stripe_event
from apps.core.logging import get_logger

logger = get_logger(__name__)


class Command(BaseCommand):
    help = "Re-run handlers for claimed Stripe events that failed to process"

    def add_arguments(self, parser):
        parser.add_argument(
            "--max-attempts",
            type=int,
            default=10,
            help="Skip events that already failed this many times (default: 10)",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of events to replay in one run (default: 100)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the events that would be replayed without replaying them",
        )

    def handle(self, *args, **options):
        max_attempts = options["max_attempts"]
        limit = options["limit"]
        dry_run = options["dry_run"]

        pending = list(
            FailedEventDispatch.objects.filter(
                resolved_at__isnull=True,
                attempts__lt=max_attempts,
            ).order_by("created_at")[:limit]
        )

        logger.info("billing_reconciliation_started", pending=len(pending), dry_run=dry_run)

        if dry_run:
            for failure in pending:
                self.stdout.write(f"{failure.event_id} {failure.event_type} (attempts: {failure.attempts})")
            self.stdout.write(f"DRY RUN: Would replay {len(pending)} events")
            return

        resolved = 0
        failed = 0
        for failure in pending:
            if self._replay(failure):
                resolved += 1
            else:
                failed += 1

        logger.info("billing_reconciliation_completed", resolved=resolved, failed=failed)
        self.stdout.write(self.style.SUCCESS(f"Resolved {resolved} events, {failed} still failing"))

    def _replay(self, failure: FailedEventDispatch) -> bool:
        """Re-run one failed event. Returns True if it is now resolved."""
        try:
            event = retrieve_event(failure.event_id)
            dispatch_stripe_event(event)
        except UnknownEventTypeError:
            logger.warning(
                "billing_reconciliation_unhandled_event",
                event_id=failure.event_id,
                event_type=failure.event_type,
            )
        except Exception as e:
            logger.exception(
                "billing_reconciliation_failed",
                event_id=failure.event_id,
                event_type=failure.event_type,
            )
            FailedEventDispatch.objects.filter(pk=failure.pk).update(
                attempts=F("attempts") + 1,
                error=str(e),
                updated_at=timezone.now(),
            )
            return False

        FailedEventDispatch.objects.filter(pk=failure.pk).update(
            resolved_at=timezone.now(),
            updated_at=timezone.now(),
        )
        logger.info(
            "billing_reconciliation_resolved",
            event_id=failure.event_id,
            event_type=failure.event_type,
        )
        return True
