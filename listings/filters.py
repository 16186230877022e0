"""Django filters for the listing feed sync.

This module contains the filter used to narrow the sync history.
"""

import django_filters
from django import forms

from .models import SyncFeed, SyncLog


class SyncLogFilter(django_filters.FilterSet):
    """Filter for sync history.

    Allows filtering by status, trigger, feed, and start date range.
    """

    status = django_filters.ChoiceFilter(
        field_name="status",
        choices=SyncLog.SyncStatus.choices,
        label="Status",
    )
    trigger = django_filters.ChoiceFilter(
        field_name="trigger",
        choices=SyncLog.Trigger.choices,
        label="Trigger",
    )
    feed = django_filters.ModelChoiceFilter(
        field_name="feed",
        queryset=SyncFeed.objects.all(),
        label="Feed",
    )
    started_after = django_filters.DateFilter(
        field_name="started_at",
        lookup_expr="date__gte",
        label="Started After",
        widget=forms.DateInput(attrs={"type": "date"}),
    )
    started_before = django_filters.DateFilter(
        field_name="started_at",
        lookup_expr="date__lte",
        label="Started Before",
        widget=forms.DateInput(attrs={"type": "date"}),
    )

    class Meta:
        """Meta options for SyncLogFilter."""

        model = SyncLog
        fields = ["status", "trigger", "feed", "started_after", "started_before"]
