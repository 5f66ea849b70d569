import json
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.test import TestCase, override_settings
from django.urls import reverse

from catalog.models import Product
from coupons.models import Coupon
from .models import Order, OrderStatusHistory
from .services import (
    InsufficientStock,
    InvalidShipping,
    MaintenanceMode,
    OrderError,
    PaymentMismatch,
    UnknownProduct,
    apply_payment_result,
    bulk_transition,
    cancel_items,
    cancel_order,
    create_order,
    order_analytics,
    transition_status,
)

SHIPPING = {"name": "Alice Smith", "phone": "0100000000", "address": "1 Nile St", "city": "Cairo"}


class OrderTestCase(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user("alice", "alice@example.com", "secret-pass")
        self.phone = Product.objects.create(name="Phone", slug="phone", price=Decimal("1000.00"), stock=5)
        self.case = Product.objects.create(name="Case", slug="case", price=Decimal("49.99"), stock=1)

    def _create(self, items=None, **kwargs):
        params = {
            "user": self.user,
            "items": items or [{"id": self.phone.pk, "quantity": 2}],
            "shipping": SHIPPING,
            "payment_method": "cash",
        }
        params.update(kwargs)
        return create_order(**params)


class CreateOrderTests(OrderTestCase):
    def test_prices_from_catalog_and_adds_shipping(self):
        order = self._create(items=[{"id": self.phone.pk, "quantity": 2, "price": 1}])
        self.assertEqual(order.subtotal, Decimal("2000.00"))
        self.assertEqual(order.discount_amount, Decimal("0.00"))
        self.assertEqual(order.shipping_cost, Decimal("300.00"))
        self.assertEqual(order.total, Decimal("2300.00"))
        self.assertEqual(order.items.get().price, Decimal("1000.00"))

    def test_coupon_discount_and_usage_count(self):
        coupon = Coupon.objects.create(
            name="Ten", code="TEN", type="PERCENTAGE", value=10, minimum_order_amount=Decimal("1000")
        )
        order = self._create(coupon=coupon)
        self.assertEqual(order.discount_amount, Decimal("200.00"))
        self.assertEqual(order.total, Decimal("2100.00"))
        self.assertEqual(order.coupon, coupon)
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)

    def test_coupon_below_minimum_is_not_recorded(self):
        coupon = Coupon.objects.create(
            name="Big", code="BIG", type="FIXED", value=100, minimum_order_amount=Decimal("5000")
        )
        order = self._create(coupon=coupon)
        self.assertEqual(order.discount_amount, Decimal("0.00"))
        self.assertIsNone(order.coupon)
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 0)

    def test_stock_is_decremented(self):
        self._create(items=[{"id": self.phone.pk, "quantity": 2}, {"id": self.case.pk, "quantity": 1}])
        self.phone.refresh_from_db()
        self.case.refresh_from_db()
        self.assertEqual(self.phone.stock, 3)
        self.assertEqual(self.case.stock, 0)

    def test_insufficient_stock_leaves_stock_untouched(self):
        with self.assertRaises(InsufficientStock):
            self._create(items=[{"id": self.phone.pk, "quantity": 1}, {"id": self.case.pk, "quantity": 2}])
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)
        self.assertFalse(Order.objects.exists())

    def test_unknown_product(self):
        with self.assertRaises(UnknownProduct):
            self._create(items=[{"id": 9999, "quantity": 1}])

    def test_missing_shipping_fields(self):
        with self.assertRaises(InvalidShipping):
            self._create(shipping={"name": "Alice"})

    @override_settings(SITE_MAINTENANCE_MODE=True)
    def test_maintenance_blocks_checkout(self):
        with self.assertRaises(MaintenanceMode):
            self._create()

    def test_cash_is_paid_online_is_pending(self):
        cash = self._create(payment_method="cash")
        online = self._create(items=[{"id": self.phone.pk, "quantity": 1}], payment_method="online")
        self.assertEqual(cash.payment_status, Order.PaymentStatus.SUCCESS)
        self.assertEqual(online.payment_status, Order.PaymentStatus.PENDING)

    def test_first_history_row_recorded(self):
        order = self._create()
        self.assertEqual(list(order.status_history.values_list("status", flat=True)), ["PENDING"])

    def test_confirmation_email_sent_on_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            order = self._create()
        self.assertEqual(len(mail.outbox), 2)
        self.assertIn(f"Order #{order.pk}", mail.outbox[0].subject)
        self.assertEqual(mail.outbox[0].to, ["alice@example.com"])


class TransitionTests(OrderTestCase):
    def test_transition_records_history(self):
        order = self._create()
        order = transition_status(order, "shipped", "Handed to courier", notify=False)
        self.assertEqual(order.status, Order.Status.SHIPPED)
        latest = order.status_history.first()
        self.assertEqual((latest.status, latest.comment), ("SHIPPED", "Handed to courier"))

    def test_unknown_status_rejected(self):
        order = self._create()
        with self.assertRaises(OrderError):
            transition_status(order, "TELEPORTED")

    def test_cancel_restores_stock(self):
        order = self._create()
        cancel_order(order)
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CANCELLED)

    def test_cancel_only_pending(self):
        order = transition_status(self._create(), "PROCESSING", notify=False)
        with self.assertRaises(OrderError):
            cancel_order(order)

    def test_staff_cancel_restores_stock_once(self):
        order = transition_status(self._create(), "PROCESSING", notify=False)
        transition_status(order, "CANCELLED", notify=False)
        transition_status(order, "CANCELLED", notify=False)
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)


class CancelItemsTests(OrderTestCase):
    def setUp(self):
        super().setUp()
        self.order = self._create(items=[{"id": self.phone.pk, "quantity": 2}, {"id": self.case.pk, "quantity": 1}])
        self.case_line = self.order.items.get(product=self.case)

    def test_cancelled_line_goes_back_in_stock(self):
        cancelled = cancel_items(self.order, [self.case_line.pk])
        self.assertEqual([i.pk for i in cancelled], [self.case_line.pk])
        self.case.refresh_from_db()
        self.case_line.refresh_from_db()
        self.assertEqual(self.case.stock, 1)
        self.assertTrue(self.case_line.is_cancelled)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        latest = self.order.status_history.first()
        self.assertEqual((latest.status, latest.comment), ("CANCELLED", "Items cancelled by admin"))

    def test_cancelled_line_not_restocked_when_order_cancelled(self):
        cancel_items(self.order, [self.case_line.pk])
        cancel_order(self.order)
        self.phone.refresh_from_db()
        self.case.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)
        self.assertEqual(self.case.stock, 1)

    def test_same_line_twice_is_rejected(self):
        cancel_items(self.order, [self.case_line.pk])
        with self.assertRaises(OrderError):
            cancel_items(self.order, [self.case_line.pk])
        self.case.refresh_from_db()
        self.assertEqual(self.case.stock, 1)

    def test_items_of_other_orders_are_ignored(self):
        other = self._create(items=[{"id": self.phone.pk, "quantity": 1}])
        with self.assertRaises(OrderError):
            cancel_items(self.order, [other.items.get().pk])

    def test_bad_ids(self):
        with self.assertRaises(OrderError):
            cancel_items(self.order, [])
        with self.assertRaises(OrderError):
            cancel_items(self.order, ["abc"])


class BulkTransitionTests(OrderTestCase):
    def test_updates_found_orders_and_reports_missing(self):
        first = self._create(items=[{"id": self.phone.pk, "quantity": 1}])
        second = self._create(items=[{"id": self.phone.pk, "quantity": 1}])
        updated, missing = bulk_transition([first.pk, str(second.pk), 99999], "shipped")
        self.assertEqual(sorted(o.pk for o in updated), sorted([first.pk, second.pk]))
        self.assertEqual(missing, [99999])
        self.assertEqual(set(Order.objects.values_list("status", flat=True)), {"SHIPPED"})
        self.assertEqual(first.status_history.first().comment, "Bulk status update")

    def test_bulk_cancel_restores_stock(self):
        first = self._create(items=[{"id": self.phone.pk, "quantity": 1}])
        second = self._create(items=[{"id": self.phone.pk, "quantity": 3}])
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 1)
        bulk_transition([first.pk, second.pk], "CANCELLED")
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)

    def test_unknown_status_changes_nothing(self):
        order = self._create()
        with self.assertRaises(OrderError):
            bulk_transition([order.pk], "TELEPORTED")
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PENDING)

    def test_bad_ids(self):
        with self.assertRaises(OrderError):
            bulk_transition([], "SHIPPED")
        with self.assertRaises(OrderError):
            bulk_transition(["x"], "SHIPPED")


class OrderAnalyticsTests(OrderTestCase):
    def test_empty(self):
        data = order_analytics()
        self.assertEqual(data["total_orders"], 0)
        self.assertEqual(data["total_revenue"], "0.00")
        self.assertEqual(data["average_order_value"], "0.00")
        self.assertEqual(data["revenue_by_day"], [])

    def test_totals_and_breakdowns(self):
        self._create()
        shipped = self._create(items=[{"id": self.phone.pk, "quantity": 1}])
        transition_status(shipped, "SHIPPED", notify=False)

        data = order_analytics()
        self.assertEqual(data["total_orders"], 2)
        self.assertEqual(data["total_revenue"], "3600.00")
        self.assertEqual(data["average_order_value"], "1800.00")
        self.assertEqual(data["orders_by_status"], {"PENDING": 1, "SHIPPED": 1})
        self.assertEqual(len(data["revenue_by_day"]), 1)
        self.assertEqual(data["revenue_by_day"][0]["orders"], 2)
        self.assertEqual(data["revenue_by_day"][0]["revenue"], "3600.00")


class PaymentResultTests(OrderTestCase):
    def setUp(self):
        super().setUp()
        self.order = self._create(payment_method="online")

    def test_success(self):
        order = apply_payment_result(str(self.order.pk), success=True, pending=False, transaction_id=777)
        self.assertEqual(order.payment_status, Order.PaymentStatus.SUCCESS)
        self.assertEqual(order.status, Order.Status.PROCESSING)
        self.assertEqual(order.trnx_id, "777")
        self.assertEqual(
            order.status_history.first().comment, "Payment success - Updated by Paymob webhook"
        )

    def test_failure_cancels(self):
        order = apply_payment_result(self.order.pk, success=False, pending=False)
        self.assertEqual(order.payment_status, Order.PaymentStatus.FAILED)
        self.assertEqual(order.status, Order.Status.CANCELLED)

    def test_pending_stays_pending(self):
        order = apply_payment_result(self.order.pk, success=False, pending=True)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(order.status, Order.Status.PENDING)

    def test_duplicate_callback_after_success_is_ignored(self):
        apply_payment_result(self.order.pk, success=True, pending=False)
        order = apply_payment_result(self.order.pk, success=False, pending=False)
        self.assertEqual(order.payment_status, Order.PaymentStatus.SUCCESS)
        self.assertEqual(OrderStatusHistory.objects.filter(order=order).count(), 2)

    def test_failure_restores_stock(self):
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 3)
        apply_payment_result(self.order.pk, success=False, pending=False)
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)

    def test_repeated_failure_restores_stock_once(self):
        apply_payment_result(self.order.pk, success=False, pending=False)
        apply_payment_result(self.order.pk, success=False, pending=False)
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)

    def test_matching_amount_and_currency(self):
        order = apply_payment_result(
            self.order.pk, success=True, pending=False, amount_cents="230000", currency="egp", gateway_order_id=1
        )
        self.assertEqual(order.payment_status, Order.PaymentStatus.SUCCESS)

    def test_amount_mismatch_changes_nothing(self):
        with self.assertRaises(PaymentMismatch):
            apply_payment_result(self.order.pk, success=True, pending=False, amount_cents=100, currency="EGP")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(self.order.status_history.count(), 1)

    def test_currency_mismatch(self):
        with self.assertRaises(PaymentMismatch):
            apply_payment_result(self.order.pk, success=True, pending=False, amount_cents=230000, currency="USD")

    def test_unbound_gateway_order_rejected(self):
        self.order.gateway_meta = {"paymob_order_id": 7}
        self.order.save()
        with self.assertRaises(PaymentMismatch):
            apply_payment_result(self.order.pk, success=True, pending=False, gateway_order_id=8)
        order = apply_payment_result(self.order.pk, success=True, pending=False, gateway_order_id="7")
        self.assertEqual(order.payment_status, Order.PaymentStatus.SUCCESS)
        self.assertEqual(order.gateway_meta["paymob_order_id"], 7)

    def test_unknown_order(self):
        self.assertIsNone(apply_payment_result("99999", success=True, pending=False))
        self.assertIsNone(apply_payment_result("abc", success=True, pending=False))


class OrderViewTests(OrderTestCase):
    def _post(self, name, payload, **kwargs):
        return self.client.post(
            reverse(name, kwargs=kwargs or None), data=json.dumps(payload), content_type="application/json"
        )

    def test_create_requires_login(self):
        resp = self._post("orders:create", {"items": []})
        self.assertEqual(resp.status_code, 401)

    def test_create_with_session_coupon(self):
        Coupon.objects.create(name="Fixed", code="FIX", type="FIXED", value=5000)
        self.client.force_login(self.user)
        self._post("coupons:verify", {"code": "fix"})
        resp = self._post("orders:create", {
            "items": [{"id": self.phone.pk, "quantity": 2}],
            "shipping": SHIPPING,
            "payment_method": "online",
        })
        self.assertEqual(resp.status_code, 201)
        data = resp.json()
        self.assertEqual(data["discount"], "2000.00")
        self.assertEqual(data["total"], "300.00")
        self.assertEqual(data["coupon"], "FIX")
        # coupon is consumed from the session
        self.assertIsNone(self.client.get(reverse("coupons:current")).json()["coupon"])

    def test_create_reports_stock_errors(self):
        self.client.force_login(self.user)
        resp = self._post("orders:create", {
            "items": [{"id": self.case.pk, "quantity": 3}],
            "shipping": SHIPPING,
            "payment_method": "cash",
        })
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Insufficient stock", resp.json()["error"])

    def test_detail_is_owner_only(self):
        order = self._create()
        other = get_user_model().objects.create_user("eve", "eve@example.com", "pw")
        self.client.force_login(other)
        self.assertEqual(self.client.get(reverse("orders:detail", args=[order.pk])).status_code, 404)
        self.client.force_login(self.user)
        self.assertEqual(self.client.get(reverse("orders:detail", args=[order.pk])).status_code, 200)

    def test_status_change_requires_staff(self):
        order = self._create()
        self.client.force_login(self.user)
        resp = self._post("orders:status", {"status": "SHIPPED"}, order_id=order.pk)
        self.assertEqual(resp.status_code, 401)

        staff = get_user_model().objects.create_user("admin", "admin@example.com", "pw", is_staff=True)
        self.client.force_login(staff)
        resp = self._post("orders:status", {"status": "SHIPPED", "comment": "Out"}, order_id=order.pk)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "SHIPPED")

    def test_create_from_session_cart(self):
        self.client.force_login(self.user)
        self._post("cart:add", {"productId": self.phone.pk, "quantity": 2, "color": "Black"})
        resp = self._post("orders:create", {"shipping": SHIPPING, "payment_method": "cash"})
        self.assertEqual(resp.status_code, 201)
        data = resp.json()
        self.assertEqual(data["total"], "2300.00")
        self.assertEqual(data["items"][0]["quantity"], 2)
        self.assertEqual(data["items"][0]["color"], "Black")
        self.assertEqual(self.client.get(reverse("cart:detail")).json()["items"], [])

    def test_create_with_empty_cart(self):
        self.client.force_login(self.user)
        resp = self._post("orders:create", {"shipping": SHIPPING, "payment_method": "cash"})
        self.assertEqual(resp.status_code, 400)

    def _staff(self):
        staff = get_user_model().objects.create_user("admin", "admin@example.com", "pw", is_staff=True)
        self.client.force_login(staff)

    def test_bulk_update(self):
        first, second = self._create(), self._create(items=[{"id": self.phone.pk, "quantity": 1}])
        payload = {"orderIds": [first.pk, second.pk], "status": "DELIVERED"}
        self.client.force_login(self.user)
        self.assertEqual(self._post("orders:bulk_update", payload).status_code, 401)

        self._staff()
        resp = self._post("orders:bulk_update", payload)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(sorted(resp.json()["updated"]), sorted([first.pk, second.pk]))
        self.assertEqual(resp.json()["missing"], [])
        self.assertEqual(self._post("orders:bulk_update", {"orderIds": 5, "status": "DELIVERED"}).status_code, 400)

    def test_cancel_items(self):
        order = self._create()
        line = order.items.get()
        self._staff()
        self.assertEqual(self._post("orders:cancel_items", {"itemIds": []}, order_id=order.pk).status_code, 400)
        self.assertEqual(self._post("orders:cancel_items", {"itemIds": [line.pk]}, order_id=99999).status_code, 404)

        resp = self._post("orders:cancel_items", {"itemIds": [line.pk]}, order_id=order.pk)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["cancelled_items"], [line.pk])
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)

    def test_analytics_is_staff_only(self):
        self._create()
        self.client.force_login(self.user)
        self.assertEqual(self.client.get(reverse("orders:analytics")).status_code, 401)
        self._staff()
        resp = self.client.get(reverse("orders:analytics"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["total_orders"], 1)


class OrderAdminTests(OrderTestCase):
    def test_export_as_csv(self):
        from django.contrib.admin.sites import site
        from django.test import RequestFactory

        from .admin import CSV_COLUMNS

        order = self._create()
        model_admin = site._registry[Order]
        request = RequestFactory().get("/admin/orders/order/")
        response = model_admin.export_as_csv(request, Order.objects.filter(pk=order.pk))

        lines = response.content.decode().splitlines()
        self.assertEqual(lines[0].split(","), list(CSV_COLUMNS))
        row = lines[1].split(",")
        self.assertEqual(row[0], str(order.pk))
        self.assertEqual(row[CSV_COLUMNS.index("total")], "2300.00")

    def test_change_form_cancel_restores_stock(self):
        from types import SimpleNamespace

        from django.contrib.admin.sites import site
        from django.test import RequestFactory

        order = self._create()
        staff = get_user_model().objects.create_user("admin", "admin@example.com", "pw", is_staff=True)
        request = RequestFactory().post("/admin/orders/order/")
        request.user = staff
        order.status = Order.Status.CANCELLED
        form = SimpleNamespace(changed_data=["status"], initial={"status": Order.Status.PENDING})
        site._registry[Order].save_model(request, order, form, change=True)

        order.refresh_from_db()
        self.phone.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CANCELLED)
        self.assertEqual(self.phone.stock, 5)
        self.assertEqual(order.status_history.first().comment, "Updated by admin from admin")

    def test_cancel_action_restores_stock(self):
        from django.contrib.admin.sites import site
        from django.test import RequestFactory

        order = self._create()
        model_admin = site._registry[Order]
        request = RequestFactory().post("/admin/orders/order/")
        request.user = get_user_model().objects.create_user("admin", "admin@example.com", "pw", is_staff=True)
        with patch.object(model_admin, "message_user"):
            model_admin.get_actions(request)["mark_cancelled"][0](model_admin, request, Order.objects.filter(pk=order.pk))
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)
