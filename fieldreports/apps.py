"""Application configuration for the field reports app.

``ready()`` stays free of database access and network calls; sheet
snapshots are refreshed by the ``sync_field_reports`` management command or
after a successful write.
"""

from __future__ import annotations

from django.apps import AppConfig


class FieldReportsConfig(AppConfig):
    """Custom AppConfig for the field reports application."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'fieldreports'
    verbose_name = 'تقارير المساجد الميدانية'
