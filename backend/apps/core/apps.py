"""Core app configuration."""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Shared infrastructure: logging, sagas and the processed-event store."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.core"
