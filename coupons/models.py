from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from . import discount


class CouponQuerySet(models.QuerySet):
    def active(self, now=None):
        now = now or timezone.now()
        return self.filter(is_enabled=True).filter(Q(end_date__isnull=True) | Q(end_date__gt=now))


class Coupon(models.Model):
    class Type(models.TextChoices):
        PERCENTAGE = discount.PERCENTAGE, "Percentage"
        FIXED = discount.FIXED, "Fixed amount"

    name = models.CharField(max_length=128)
    code = models.CharField(max_length=64, unique=True)  # stored upper-case
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.PERCENTAGE)
    value = models.DecimalField(max_digits=12, decimal_places=2)
    minimum_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    user_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    is_enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CouponQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.code} ({self.get_type_display()} {self.value})"

    def clean(self):
        super().clean()
        if self.value is not None:
            if self.value < 0:
                raise ValidationError({"value": "Value must be zero or more."})
            if self.type == self.Type.PERCENTAGE and self.value > 100:
                raise ValidationError({"value": "A percentage coupon cannot exceed 100."})
        if self.minimum_order_amount is not None and self.minimum_order_amount < 0:
            raise ValidationError({"minimum_order_amount": "Minimum order amount must be zero or more."})

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    def is_active(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.is_enabled) and (self.end_date is None or self.end_date > now)

    def as_session_data(self) -> dict:
        return {
            "id": self.pk,
            "code": self.code,
            "type": self.type,
            "value": str(self.value),
        }
