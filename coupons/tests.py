import json
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone

from orders.models import Order
from .discount import (
    InvalidCoupon,
    InvalidLineItem,
    LineItem,
    coerce_line_items,
    compute_total,
)
from .models import Coupon
from .services import find_active_coupon_by_code, resolve_coupon_for_checkout


def coupon(type="PERCENTAGE", value="10", minimum=None, code="TEST"):
    return SimpleNamespace(
        type=type,
        value=Decimal(value),
        minimum_order_amount=None if minimum is None else Decimal(minimum),
        code=code,
    )


class ComputeTotalTests(SimpleTestCase):
    def setUp(self):
        self.items = [LineItem(unit_price=Decimal("1000"), quantity=2)]

    def test_no_coupon_adds_shipping(self):
        totals = compute_total(self.items, None, Decimal("300"))
        self.assertEqual(totals.subtotal, Decimal("2000.00"))
        self.assertEqual(totals.discount, Decimal("0.00"))
        self.assertEqual(totals.total, Decimal("2300.00"))

    def test_percentage_coupon_with_minimum(self):
        totals = compute_total(self.items, coupon("PERCENTAGE", "10", minimum="1000"), Decimal("300"))
        self.assertEqual(totals.subtotal, Decimal("2000.00"))
        self.assertEqual(totals.discount, Decimal("200.00"))
        self.assertEqual(totals.total, Decimal("2100.00"))

    def test_fixed_coupon_is_clamped_to_subtotal(self):
        totals = compute_total(self.items, coupon("FIXED", "5000"), Decimal("300"))
        self.assertEqual(totals.discount, Decimal("2000.00"))
        self.assertEqual(totals.total, Decimal("300.00"))

    def test_fixed_coupon_below_subtotal(self):
        totals = compute_total(self.items, coupon("FIXED", "150.50"), 0)
        self.assertEqual(totals.discount, Decimal("150.50"))
        self.assertEqual(totals.total, Decimal("1849.50"))

    def test_minimum_order_amount_is_inclusive(self):
        c = coupon("FIXED", "50", minimum="500")
        below = compute_total([LineItem(Decimal("499.99"), 1)], c, 0)
        at = compute_total([LineItem(Decimal("500.00"), 1)], c, 0)
        self.assertEqual(below.discount, Decimal("0.00"))
        self.assertEqual(below.total, Decimal("499.99"))
        self.assertEqual(at.discount, Decimal("50.00"))
        self.assertEqual(at.total, Decimal("450.00"))

    def test_percentage_out_of_range_is_clamped(self):
        over = compute_total(self.items, coupon("PERCENTAGE", "150"), 0)
        under = compute_total(self.items, coupon("PERCENTAGE", "-5"), 0)
        self.assertEqual(over.discount, Decimal("2000.00"))
        self.assertEqual(over.total, Decimal("0.00"))
        self.assertEqual(under.discount, Decimal("0.00"))

    def test_percentage_rounds_half_up(self):
        # 3 x 33.35 = 100.05; 15% = 15.0075 -> 15.01
        totals = compute_total([LineItem(Decimal("33.35"), 3)], coupon("PERCENTAGE", "15"), 0)
        self.assertEqual(totals.subtotal, Decimal("100.05"))
        self.assertEqual(totals.discount, Decimal("15.01"))
        self.assertEqual(totals.total, Decimal("85.04"))

    def test_total_rounded_from_exact_amounts(self):
        # 10.005 * 50% = 5.0025 -> 5.00, not 10.01 - 5.00 = 5.01
        totals = compute_total([LineItem(10.005, 1)], coupon("PERCENTAGE", "50"), 0)
        self.assertEqual(totals.subtotal, Decimal("10.01"))
        self.assertEqual(totals.discount, Decimal("5.00"))
        self.assertEqual(totals.total, Decimal("5.00"))

    def test_float_prices_do_not_drift(self):
        totals = compute_total([LineItem(0.1, 3)], None, 0)
        self.assertEqual(totals.subtotal, Decimal("0.30"))

    def test_empty_items_yield_shipping_only(self):
        totals = compute_total([], coupon("FIXED", "10"), Decimal("300"))
        self.assertEqual(totals.subtotal, Decimal("0.00"))
        self.assertEqual(totals.discount, Decimal("0.00"))
        self.assertEqual(totals.total, Decimal("300.00"))

    def test_discount_never_exceeds_subtotal(self):
        for value in ("0", "1", "33.3", "99.99", "100"):
            totals = compute_total(self.items, coupon("PERCENTAGE", value), Decimal("300"))
            self.assertGreaterEqual(totals.discount, Decimal("0"))
            self.assertLessEqual(totals.discount, totals.subtotal)
            self.assertGreaterEqual(totals.total, Decimal("300"))

    def test_negative_price_rejected(self):
        with self.assertRaises(InvalidLineItem):
            compute_total([LineItem(Decimal("-1"), 1)])

    def test_zero_quantity_rejected(self):
        with self.assertRaises(InvalidLineItem):
            compute_total([LineItem(Decimal("10"), 0)])

    def test_unknown_coupon_type_rejected(self):
        with self.assertRaises(InvalidCoupon):
            compute_total(self.items, coupon("BOGO", "10"))

    def test_accepts_model_instance(self):
        c = Coupon(code="SAVE", type=Coupon.Type.FIXED, value=Decimal("100"))
        totals = compute_total(self.items, c, 0)
        self.assertEqual(totals.discount, Decimal("100.00"))


class CoerceLineItemsTests(SimpleTestCase):
    def test_parses_json_entries(self):
        items = coerce_line_items([{"price": "19.99", "quantity": 2}, {"unit_price": 5, "quantity": "3"}])
        self.assertEqual(items[0], LineItem(Decimal("19.99"), 2))
        self.assertEqual(items[1], LineItem(Decimal("5"), 3))

    def test_rejects_garbage_price(self):
        with self.assertRaises(InvalidLineItem):
            coerce_line_items([{"price": "abc", "quantity": 1}])

    def test_rejects_non_list(self):
        with self.assertRaises(InvalidLineItem):
            coerce_line_items({"price": 1})


class CouponModelTests(TestCase):
    def test_code_is_stored_upper_case(self):
        c = Coupon.objects.create(name="Welcome", code=" welcome10 ", type="PERCENTAGE", value=10)
        self.assertEqual(c.code, "WELCOME10")

    def test_percentage_above_100_fails_validation(self):
        c = Coupon(name="Too much", code="MAX", type=Coupon.Type.PERCENTAGE, value=Decimal("120"))
        with self.assertRaises(ValidationError):
            c.full_clean()

    def test_fixed_above_100_is_valid(self):
        c = Coupon(name="Big", code="BIG", type=Coupon.Type.FIXED, value=Decimal("500"))
        c.full_clean()


class CouponLookupTests(TestCase):
    def setUp(self):
        now = timezone.now()
        self.active = Coupon.objects.create(name="A", code="SAVE10", type="PERCENTAGE", value=10)
        Coupon.objects.create(name="Off", code="OFF", type="FIXED", value=5, is_enabled=False)
        Coupon.objects.create(name="Old", code="OLD", type="FIXED", value=5, end_date=now - timedelta(days=1))
        self.future = Coupon.objects.create(
            name="Later", code="LATER", type="FIXED", value=5, end_date=now + timedelta(days=1)
        )

    def test_lookup_is_case_insensitive(self):
        self.assertEqual(find_active_coupon_by_code("save10"), self.active)
        self.assertEqual(find_active_coupon_by_code("  Save10 "), self.active)

    def test_disabled_and_expired_are_ignored(self):
        self.assertIsNone(find_active_coupon_by_code("OFF"))
        self.assertIsNone(find_active_coupon_by_code("OLD"))
        self.assertEqual(find_active_coupon_by_code("later"), self.future)

    def test_unknown_or_blank_code(self):
        self.assertIsNone(find_active_coupon_by_code("NOPE"))
        self.assertIsNone(find_active_coupon_by_code(""))

    def test_user_limit_resolves_to_none(self):
        user = get_user_model().objects.create_user("bob", "bob@example.com", "pw")
        self.active.user_limit = 1
        self.active.save()
        self.assertEqual(resolve_coupon_for_checkout(code="save10", user=user), self.active)

        Order.objects.create(
            user=user, total=Decimal("100"), coupon=self.active,
            shipping_name="Bob", shipping_phone="1", shipping_address="St", shipping_city="Cairo",
        )
        self.assertIsNone(resolve_coupon_for_checkout(code="save10", user=user))


class CouponViewTests(TestCase):
    def setUp(self):
        self.coupon = Coupon.objects.create(
            name="Ten", code="TEN", type="PERCENTAGE", value=10, minimum_order_amount=Decimal("1000")
        )

    def _post(self, name, payload):
        return self.client.post(reverse(name), data=json.dumps(payload), content_type="application/json")

    def test_verify_stores_coupon_in_session(self):
        resp = self._post("coupons:verify", {"code": "ten"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["coupon"]["code"], "TEN")

        current = self.client.get(reverse("coupons:current")).json()
        self.assertEqual(current["coupon"]["id"], self.coupon.pk)

    def test_verify_requires_code(self):
        self.assertEqual(self._post("coupons:verify", {}).status_code, 400)

    def test_verify_unknown_code(self):
        resp = self._post("coupons:verify", {"code": "NOPE"})
        self.assertEqual(resp.status_code, 404)

    def test_remove_clears_session(self):
        self._post("coupons:verify", {"code": "TEN"})
        self.client.post(reverse("coupons:remove"))
        self.assertIsNone(self.client.get(reverse("coupons:current")).json()["coupon"])

    def test_quote_applies_session_coupon(self):
        self._post("coupons:verify", {"code": "TEN"})
        resp = self._post("coupons:quote", {"items": [{"price": "1000", "quantity": 2}]})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["subtotal"], "2000.00")
        self.assertEqual(data["discount"], "200.00")
        self.assertEqual(data["total"], "2100.00")
        self.assertEqual(data["coupon"], "TEN")

    def test_quote_below_minimum_has_no_discount(self):
        self._post("coupons:verify", {"code": "TEN"})
        data = self._post("coupons:quote", {"items": [{"price": "999.99", "quantity": 1}]}).json()
        self.assertEqual(data["discount"], "0.00")
        self.assertIsNone(data["coupon"])

    def test_quote_rejects_bad_line_item(self):
        resp = self._post("coupons:quote", {"items": [{"price": "-5", "quantity": 1}]})
        self.assertEqual(resp.status_code, 400)

    def test_active_lists_only_active(self):
        Coupon.objects.create(name="Off", code="OFF", type="FIXED", value=5, is_enabled=False)
        codes = [c["code"] for c in self.client.get(reverse("coupons:active")).json()]
        self.assertEqual(codes, ["TEN"])
