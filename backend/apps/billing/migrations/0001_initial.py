import django.db.models.deletion
from django.db import migrations, models

LIFECYCLE_STATUS_CHOICES = [
    ("trial", "Trial"),
    ("active", "Active"),
    ("trial_expired", "Trial Expired"),
    ("unsubscribed", "Unsubscribed"),
    ("archived", "Archived"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("organizations", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="BillingProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "stripe_customer_id",
                    models.CharField(
                        blank=True, db_index=True, help_text="Stripe customer ID, e.g. 'cus_xxx'", max_length=255
                    ),
                ),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe subscription ID, e.g. 'sub_xxx'",
                        max_length=255,
                    ),
                ),
                (
                    "subscription_status",
                    models.CharField(blank=True, help_text="Subscription status as reported by Stripe", max_length=50),
                ),
                ("subscription_plan", models.CharField(blank=True, max_length=50)),
                ("subscription_started_at", models.DateTimeField(blank=True, null=True)),
                (
                    "subscription_ends_at",
                    models.DateTimeField(blank=True, help_text="End of current billing period", null=True),
                ),
                ("unsubscribed_at", models.DateTimeField(blank=True, null=True)),
                ("last_payment_failed_at", models.DateTimeField(blank=True, null=True)),
                ("payment_failure_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "organization",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="billing_profile",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="CreditBalance",
            fields=[
                (
                    "organization",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="credit_balance",
                        serialize=False,
                        to="organizations.organization",
                    ),
                ),
                ("balance", models.IntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="CreditLedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.IntegerField(help_text="Signed credit amount")),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("grant", "Grant"),
                            ("consume", "Consume"),
                            ("refund", "Refund"),
                            ("reversal", "Reversal"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("subscription", "Subscription"),
                            ("renewal", "Renewal"),
                            ("purchase", "Purchase"),
                            ("trial", "Trial"),
                            ("manual", "Manual"),
                            ("usage", "Usage"),
                            ("refund", "Refund"),
                        ],
                        max_length=20,
                    ),
                ),
                ("description", models.TextField(blank=True)),
                (
                    "idempotency_key",
                    models.CharField(
                        blank=True,
                        help_text="Originating event ID or synthetic token; at most one entry per key",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "feature_type",
                    models.CharField(
                        blank=True, help_text="Metered feature for consumptions, e.g. 'ai_assistant'", max_length=50
                    ),
                ),
                ("stripe_payment_intent_id", models.CharField(blank=True, db_index=True, max_length=255)),
                ("stripe_checkout_session_id", models.CharField(blank=True, max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credit_entries",
                        to="organizations.organization",
                    ),
                ),
                (
                    "reverses",
                    models.ForeignKey(
                        blank=True,
                        help_text="Entry this refund or reversal compensates",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="compensations",
                        to="billing.creditledgerentry",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "credit ledger entries",
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["organization", "created_at"], name="billing_entry_org_created_idx")
                ],
            },
        ),
        migrations.CreateModel(
            name="AccountLifecycleLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "previous_status",
                    models.CharField(blank=True, choices=LIFECYCLE_STATUS_CHOICES, max_length=20, null=True),
                ),
                ("new_status", models.CharField(choices=LIFECYCLE_STATUS_CHOICES, max_length=20)),
                (
                    "event",
                    models.CharField(
                        blank=True,
                        help_text="Lifecycle event that was applied, e.g. 'subscription_canceled'",
                        max_length=50,
                    ),
                ),
                ("reason", models.TextField()),
                (
                    "triggered_by",
                    models.CharField(
                        choices=[
                            ("signup", "Signup"),
                            ("webhook", "Webhook"),
                            ("cron", "Cron"),
                            ("manual", "Manual"),
                        ],
                        max_length=20,
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="lifecycle_log",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="FailedEventDispatch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_id", models.CharField(max_length=255, unique=True)),
                ("event_type", models.CharField(max_length=100)),
                ("error", models.TextField(blank=True)),
                ("attempts", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("resolved_at", models.DateTimeField(blank=True, db_index=True, null=True)),
            ],
            options={
                "ordering": ["created_at"],
            },
        ),
    ]
