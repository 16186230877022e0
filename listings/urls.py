"""URL configuration for listings app.

This module defines URL patterns for the sync operator endpoints.
"""

from django.urls import path

from . import views

app_name = "listings"

urlpatterns = [
    path("sync/trigger/", views.SyncTriggerView.as_view(), name="sync_trigger"),
    path("sync/status/", views.SyncStatusView.as_view(), name="sync_status"),
    path("sync/history/", views.SyncHistoryView.as_view(), name="sync_history"),
    path("cron/sync/", views.SyncCronView.as_view(), name="sync_cron"),
]
