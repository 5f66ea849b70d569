from django.conf import settings
from django.db import models


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PROCESSING = "PROCESSING", "Processing"
        SHIPPED = "SHIPPED", "Shipped"
        DELIVERED = "DELIVERED", "Delivered"
        CANCELLED = "CANCELLED", "Cancelled"

    class PaymentMethod(models.TextChoices):
        CASH = "CASH", "Cash on delivery"
        CASH_STORE_PICKUP = "CASH_STORE_PICKUP", "Cash at store pickup"
        ONLINE = "ONLINE", "Online"
        ONLINE_STORE_PICKUP = "ONLINE_STORE_PICKUP", "Online, store pickup"

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        SUCCESS = "SUCCESS", "Success"
        FAILED = "FAILED", "Failed"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True)
    payment_method = models.CharField(max_length=24, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    payment_status = models.CharField(
        max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    coupon = models.ForeignKey(
        "coupons.Coupon", null=True, blank=True, on_delete=models.PROTECT, related_name="orders"
    )

    shipping_name = models.CharField(max_length=128)
    shipping_phone = models.CharField(max_length=32)
    shipping_address = models.CharField(max_length=255)
    shipping_city = models.CharField(max_length=64)
    shipping_notes = models.TextField(blank=True, default="")

    trnx_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    gateway_meta = models.JSONField(default=dict, blank=True)

    utm_source = models.CharField(max_length=128, blank=True, default="")
    utm_medium = models.CharField(max_length=128, blank=True, default="")
    utm_campaign = models.CharField(max_length=128, blank=True, default="")
    fbclid = models.CharField(max_length=255, blank=True, default="")
    gclid = models.CharField(max_length=255, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"Order #{self.pk} ({self.status})"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == self.PaymentStatus.SUCCESS

    @property
    def is_online(self) -> bool:
        return self.payment_method in (self.PaymentMethod.ONLINE, self.PaymentMethod.ONLINE_STORE_PICKUP)


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="order_items")
    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2)  # unit price at purchase time
    color = models.CharField(max_length=32, blank=True, default="")
    # set when staff cancel this line on its own; its stock is already back
    is_cancelled = models.BooleanField(default=False)

    def __str__(self):
        return f"{self.quantity} x {self.product_id} @ {self.price}"

    @property
    def unit_price(self):
        return self.price

    @property
    def line_total(self):
        return self.price * self.quantity


class OrderStatusHistory(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="status_history")
    status = models.CharField(max_length=16, choices=Order.Status.choices)
    comment = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at", "-id")
        verbose_name_plural = "order status history"

    def __str__(self):
        return f"{self.order_id} -> {self.status}"
