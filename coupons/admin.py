from django.contrib import admin

from .models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "type", "value", "minimum_order_amount", "end_date", "used_count", "is_enabled")
    search_fields = ("code", "name")
    list_filter = ("type", "is_enabled", "end_date")
    readonly_fields = ("used_count", "created_at", "updated_at")
    actions = ("enable_coupons", "disable_coupons")

    def has_delete_permission(self, request, obj=None):
        # Coupons referenced by orders must stay for reporting.
        if obj is not None and obj.orders.exists():
            return False
        return super().has_delete_permission(request, obj)

    @admin.action(description="Enable selected coupons")
    def enable_coupons(self, request, queryset):
        updated = queryset.update(is_enabled=True)
        self.message_user(request, f"Enabled {updated} coupon(s).")

    @admin.action(description="Disable selected coupons")
    def disable_coupons(self, request, queryset):
        updated = queryset.update(is_enabled=False)
        self.message_user(request, f"Disabled {updated} coupon(s).")
