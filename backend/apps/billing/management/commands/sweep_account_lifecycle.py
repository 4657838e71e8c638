"""
Sweep account lifecycle management command.

Expires overdue trials, then archives accounts whose grace period has ended.
Designed to run as a scheduled job (e.g., daily cron). Running it twice in
a row is harmless: the second run finds no candidates.
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from apps.billing.lifecycle import expire_trials, sweep_expired_grace_periods
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)

Status = Organization.AccountStatus


class Command(BaseCommand):
    help = "Expire overdue trials and archive accounts whose grace period has ended"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many accounts would change without changing them",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        now = timezone.now()

        logger.info("lifecycle_sweep_started", now=now.isoformat(), dry_run=dry_run)

        if dry_run:
            trials = Organization.objects.filter(
                account_status=Status.TRIAL,
                trial_ends_at__lte=now,
                is_comped=False,
            ).count()
            archivals = Organization.objects.filter(
                account_status__in=[Status.UNSUBSCRIBED, Status.TRIAL_EXPIRED],
                grace_period_ends_at__lte=now,
                is_comped=False,
            ).count()
            self.stdout.write(
                f"DRY RUN: Would expire {trials} trials and archive {archivals} accounts"
            )
            return

        expired = expire_trials(now=now)
        archived = sweep_expired_grace_periods(now=now)

        self.stdout.write(
            self.style.SUCCESS(f"Expired {expired} trials and archived {archived} accounts")
        )
