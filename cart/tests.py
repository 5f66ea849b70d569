import json
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse

from catalog.models import Product
from coupons.models import Coupon


class CartViewTests(TestCase):
    def setUp(self):
        self.phone = Product.objects.create(name="Phone", slug="phone", price=Decimal("1000.00"), stock=5)
        self.case = Product.objects.create(name="Case", slug="case", price=Decimal("49.99"), stock=1)

    def _post(self, name, payload):
        return self.client.post(reverse(name), data=json.dumps(payload), content_type="application/json")

    def _cart(self):
        return self.client.get(reverse("cart:detail")).json()

    def test_empty_cart_is_shipping_only(self):
        data = self._cart()
        self.assertEqual(data["items"], [])
        self.assertEqual(data["subtotal"], "0.00")
        self.assertEqual(data["total"], "300.00")
        self.assertEqual(data["currency"], "EGP")

    def test_add_prices_from_catalog(self):
        resp = self._post("cart:add", {"productId": self.phone.pk, "quantity": 2, "price": 1})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["items"][0]["price"], "1000.00")
        self.assertEqual(data["subtotal"], "2000.00")
        self.assertEqual(data["total"], "2300.00")

    def test_add_same_product_accumulates(self):
        self._post("cart:add", {"productId": self.phone.pk, "quantity": 2})
        self._post("cart:add", {"product_id": self.phone.pk, "quantity": 1})
        self.assertEqual(self._cart()["items"][0]["quantity"], 3)

    def test_colours_are_separate_lines(self):
        self._post("cart:add", {"productId": self.phone.pk, "color": "Black"})
        self._post("cart:add", {"productId": self.phone.pk, "color": "White"})
        self.assertEqual(sorted(i["color"] for i in self._cart()["items"]), ["Black", "White"])

    def test_add_beyond_stock(self):
        self._post("cart:add", {"productId": self.case.pk})
        resp = self._post("cart:add", {"productId": self.case.pk})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self._cart()["items"][0]["quantity"], 1)

    def test_unknown_or_hidden_product(self):
        hidden = Product.objects.create(name="Old", slug="old", price=Decimal("5"), stock=3, is_active=False)
        self.assertEqual(self._post("cart:add", {"productId": 99999}).status_code, 404)
        self.assertEqual(self._post("cart:add", {"productId": hidden.pk}).status_code, 404)
        self.assertEqual(self._post("cart:add", {}).status_code, 400)

    def test_bad_quantity(self):
        self.assertEqual(self._post("cart:add", {"productId": self.phone.pk, "quantity": 0}).status_code, 400)
        self.assertEqual(self._post("cart:add", {"productId": self.phone.pk, "quantity": "lots"}).status_code, 400)

    def test_update_quantity(self):
        self._post("cart:add", {"productId": self.phone.pk})
        resp = self._post("cart:update", {"productId": self.phone.pk, "quantity": 4})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["items"][0]["quantity"], 4)
        self.assertEqual(self._post("cart:update", {"productId": self.phone.pk, "quantity": 6}).status_code, 400)
        self.assertEqual(self._post("cart:update", {"productId": self.case.pk, "quantity": 1}).status_code, 404)

    def test_remove(self):
        self._post("cart:add", {"productId": self.phone.pk})
        self._post("cart:add", {"productId": self.case.pk})
        resp = self._post("cart:remove", {"productId": self.phone.pk})
        self.assertEqual([i["product_id"] for i in resp.json()["items"]], [self.case.pk])
        self.assertEqual(self._post("cart:remove", {"productId": self.phone.pk}).status_code, 404)

    def test_clear(self):
        self._post("cart:add", {"productId": self.phone.pk})
        self.client.post(reverse("cart:clear"))
        self.assertEqual(self._cart()["items"], [])

    def test_summary_applies_session_coupon(self):
        Coupon.objects.create(name="Ten", code="TEN", type="PERCENTAGE", value=10)
        self._post("coupons:verify", {"code": "ten"})
        self._post("cart:add", {"productId": self.phone.pk, "quantity": 2})
        data = self._cart()
        self.assertEqual(data["discount"], "200.00")
        self.assertEqual(data["total"], "2100.00")
        self.assertEqual(data["coupon"], "TEN")

    def test_hidden_product_drops_out_of_summary(self):
        self._post("cart:add", {"productId": self.phone.pk})
        Product.objects.filter(pk=self.phone.pk).update(is_active=False)
        self.assertEqual(self._cart()["items"], [])


class WishlistViewTests(TestCase):
    def setUp(self):
        self.phone = Product.objects.create(name="Phone", slug="phone", price=Decimal("1000.00"), stock=5)

    def _post(self, name, payload):
        return self.client.post(reverse(name), data=json.dumps(payload), content_type="application/json")

    def test_add_is_idempotent(self):
        self._post("cart:wishlist_add", {"productId": self.phone.pk})
        resp = self._post("cart:wishlist_add", {"productId": self.phone.pk})
        self.assertEqual(resp.json()["product_ids"], [self.phone.pk])
        items = self.client.get(reverse("cart:wishlist")).json()["items"]
        self.assertEqual([i["slug"] for i in items], ["phone"])

    def test_remove(self):
        self._post("cart:wishlist_add", {"productId": self.phone.pk})
        resp = self._post("cart:wishlist_remove", {"productId": self.phone.pk})
        self.assertEqual(resp.json()["product_ids"], [])

    def test_unknown_product(self):
        self.assertEqual(self._post("cart:wishlist_add", {"productId": 99999}).status_code, 404)
