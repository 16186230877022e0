"""URL configuration for the listing feed sync project."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("listings.urls")),
]
