from django.conf import settings
from django.db import models


class AnalyticsEvent(models.Model):
    class Event(models.TextChoices):
        PAGE_VIEW = "PAGE_VIEW", "Page view"
        PRODUCT_VIEW = "PRODUCT_VIEW", "Product view"
        ADD_TO_CART = "ADD_TO_CART", "Add to cart"
        REMOVE_FROM_CART = "REMOVE_FROM_CART", "Remove from cart"
        BEGIN_CHECKOUT = "BEGIN_CHECKOUT", "Begin checkout"
        PURCHASE = "PURCHASE", "Purchase"
        SEARCH = "SEARCH", "Search"

    class Device(models.TextChoices):
        MOBILE = "mobile", "Mobile"
        TABLET = "tablet", "Tablet"
        DESKTOP = "desktop", "Desktop"
        OTHER = "other", "Other"

    event = models.CharField(max_length=32, choices=Event.choices, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="analytics_events"
    )
    session_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    metadata = models.JSONField(default=dict, blank=True)
    device_type = models.CharField(max_length=16, choices=Device.choices, default=Device.OTHER)
    utm_source = models.CharField(max_length=128, blank=True, default="")
    utm_medium = models.CharField(max_length=128, blank=True, default="")
    utm_campaign = models.CharField(max_length=128, blank=True, default="")
    country = models.CharField(max_length=8, blank=True, default="")
    region = models.CharField(max_length=32, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.event} @ {self.created_at:%Y-%m-%d %H:%M}"
