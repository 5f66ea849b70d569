from django.contrib import admin

from .models import AnalyticsEvent


@admin.register(AnalyticsEvent)
class AnalyticsEventAdmin(admin.ModelAdmin):
    list_display = ("event", "user", "device_type", "utm_source", "utm_campaign", "country", "created_at")
    list_filter = ("event", "device_type", "utm_source", "country", "created_at")
    search_fields = ("session_id", "utm_campaign", "user__email")
    readonly_fields = [f.name for f in AnalyticsEvent._meta.fields]

    def has_add_permission(self, request):
        return False
