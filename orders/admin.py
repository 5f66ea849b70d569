import csv

from django.contrib import admin, messages
from django.http import HttpResponse
from django.utils import timezone

from .models import Order, OrderItem, OrderStatusHistory
from .services import OrderError, transition_status

CSV_COLUMNS = (
    "id", "created_at", "status", "payment_method", "payment_status",
    "subtotal", "discount_amount", "shipping_cost", "total", "coupon",
    "shipping_name", "shipping_phone", "shipping_city", "trnx_id",
    "utm_source", "utm_medium", "utm_campaign",
)


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    raw_id_fields = ("product",)
    readonly_fields = ("product", "quantity", "price", "color", "is_cancelled")


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    readonly_fields = ("status", "comment", "created_at")
    can_delete = False


def _mark(status):
    def action(modeladmin, request, queryset):
        done = 0
        for order in queryset:
            try:
                transition_status(order, status, f"Updated by {request.user.get_username()} from admin")
                done += 1
            except OrderError as e:
                modeladmin.message_user(request, f"Order {order.pk}: {e}", level=messages.WARNING)
        modeladmin.message_user(request, f"{done} order(s) marked as {status.lower()}.")

    action.__name__ = f"mark_{status.lower()}"
    action.short_description = f"Mark selected orders as {status.lower()}"
    return action


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "status", "payment_method", "payment_status", "total", "coupon", "created_at")
    search_fields = ("id", "shipping_name", "shipping_phone", "trnx_id", "user__email")
    list_filter = ("status", "payment_method", "payment_status", "created_at")
    raw_id_fields = ("user", "coupon")
    readonly_fields = (
        "subtotal", "discount_amount", "shipping_cost", "total", "trnx_id",
        "gateway_meta", "created_at", "updated_at",
    )
    inlines = (OrderItemInline, OrderStatusHistoryInline)
    ordering = ("-created_at",)
    actions = [_mark(s) for s in (
        Order.Status.PROCESSING, Order.Status.SHIPPED, Order.Status.DELIVERED, Order.Status.CANCELLED,
    )] + ["export_as_csv"]

    def save_model(self, request, obj, form, change):
        # status changes always go through transition_status
        status = obj.status
        if change and "status" in form.changed_data:
            obj.status = form.initial["status"]
        super().save_model(request, obj, form, change)
        if obj.status != status:
            transition_status(obj, status, f"Updated by {request.user.get_username()} from admin")

    @admin.action(description="Export selected orders as CSV")
    def export_as_csv(self, request, queryset):
        stamp = timezone.now().strftime("%Y%m%d-%H%M")
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="orders-{stamp}.csv"'
        writer = csv.writer(response)
        writer.writerow(CSV_COLUMNS)
        for order in queryset.select_related("coupon"):
            row = []
            for col in CSV_COLUMNS:
                if col == "coupon":
                    row.append(order.coupon.code if order.coupon_id else "")
                elif col == "created_at":
                    row.append(order.created_at.isoformat())
                else:
                    row.append(getattr(order, col))
            writer.writerow(row)
        return response
