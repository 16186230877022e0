"""Listings app configuration."""

from django.apps import AppConfig


class ListingsConfig(AppConfig):
    """Configuration for the listing feed sync application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "listings"
    verbose_name = "Listing Feeds"
