import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Organization",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                (
                    "slug",
                    models.SlugField(
                        help_text="URL-safe identifier, e.g. 'acme-estates'", max_length=255, unique=True
                    ),
                ),
                ("contact_email", models.EmailField(blank=True, max_length=254)),
                (
                    "account_status",
                    models.CharField(
                        choices=[
                            ("trial", "Trial"),
                            ("active", "Active"),
                            ("trial_expired", "Trial Expired"),
                            ("unsubscribed", "Unsubscribed"),
                            ("archived", "Archived"),
                        ],
                        db_index=True,
                        default="trial",
                        max_length=20,
                    ),
                ),
                ("trial_started_at", models.DateTimeField(blank=True, null=True)),
                ("trial_ends_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                (
                    "grace_period_ends_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When an unsubscribed or expired account will be archived",
                        null=True,
                    ),
                ),
                ("archived_at", models.DateTimeField(blank=True, null=True)),
                (
                    "credit_spending_enabled",
                    models.BooleanField(
                        default=True, help_text="Gate checked by metered features, independent of balance"
                    ),
                ),
                (
                    "read_only_reason",
                    models.TextField(blank=True, help_text="Shown to users while spending is disabled"),
                ),
                (
                    "is_comped",
                    models.BooleanField(
                        default=False, help_text="Exempt from billing; never transitions via payment events"
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="FeatureConfiguration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("widget_enabled", models.BooleanField(default=False)),
                ("widget_color", models.CharField(default="#2563eb", max_length=7)),
                ("welcome_message", models.TextField(blank=True)),
                ("personality", models.CharField(default="professional", max_length=50)),
                ("enabled_capabilities", models.JSONField(blank=True, default=list)),
                (
                    "organization",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="feature_configuration",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
    ]
