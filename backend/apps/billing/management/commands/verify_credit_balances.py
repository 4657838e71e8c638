"""
Verify credit balances management command.

Compares every organization's CreditBalance projection with the sum of its
ledger entries. A mismatch means something wrote one without the other and
is reported, never silently repaired.
"""

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Sum

from apps.billing.models import CreditBalance, CreditLedgerEntry
from apps.core.logging import get_logger

logger = get_logger(__name__)


class Command(BaseCommand):
    help = "Check that cached credit balances match the ledger"

    def add_arguments(self, parser):
        parser.add_argument(
            "--organization",
            type=int,
            default=None,
            help="Only verify this organization ID",
        )

    def handle(self, *args, **options):
        organization_id = options["organization"]

        entries = CreditLedgerEntry.objects.all()
        balances = CreditBalance.objects.all()
        if organization_id is not None:
            entries = entries.filter(organization_id=organization_id)
            balances = balances.filter(organization_id=organization_id)

        ledger_totals = dict(
            entries.order_by()
            .values("organization_id")
            .annotate(total=Sum("amount"))
            .values_list("organization_id", "total")
        )
        cached = dict(balances.values_list("organization_id", "balance"))

        mismatches = []
        for org_id in sorted(set(ledger_totals) | set(cached)):
            expected = ledger_totals.get(org_id, 0)
            actual = cached.get(org_id, 0)
            if expected != actual:
                mismatches.append((org_id, expected, actual))
                logger.error(
                    "credit_balance_mismatch",
                    organization_id=org_id,
                    ledger_total=expected,
                    cached_balance=actual,
                )

        checked = len(set(ledger_totals) | set(cached))
        logger.info("credit_balance_verification_completed", checked=checked, mismatches=len(mismatches))

        if mismatches:
            for org_id, expected, actual in mismatches:
                self.stdout.write(f"Organization {org_id}: ledger {expected}, cached {actual}")
            raise CommandError(f"{len(mismatches)} of {checked} balances do not match the ledger")

        self.stdout.write(self.style.SUCCESS(f"All {checked} balances match the ledger"))
