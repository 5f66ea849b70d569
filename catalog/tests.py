from decimal import Decimal

from django.test import TestCase
from django.urls import reverse

from .models import Category, Product


class ProductViewTests(TestCase):
    def setUp(self):
        phones = Category.objects.create(name="Phones", slug="phones")
        Product.objects.create(name="Nile Phone", slug="nile-phone", price=Decimal("1000"), stock=3, category=phones)
        Product.objects.create(name="Case", slug="case", price=Decimal("49.99"), stock=0)
        Product.objects.create(name="Hidden", slug="hidden", price=Decimal("5"), stock=1, is_active=False)

    def test_list_excludes_inactive(self):
        data = self.client.get(reverse("catalog:product_list")).json()
        self.assertEqual(data["total"], 2)
        self.assertFalse(data["has_next"])

    def test_filters(self):
        data = self.client.get(reverse("catalog:product_list"), {"category": "phones"}).json()
        self.assertEqual([p["slug"] for p in data["items"]], ["nile-phone"])
        data = self.client.get(reverse("catalog:product_list"), {"q": "case"}).json()
        self.assertEqual([p["slug"] for p in data["items"]], ["case"])

    def test_detail(self):
        data = self.client.get(reverse("catalog:product_detail", args=["case"])).json()
        self.assertEqual(data["price"], "49.99")
        self.assertFalse(data["in_stock"])
        resp = self.client.get(reverse("catalog:product_detail", args=["hidden"]))
        self.assertEqual(resp.status_code, 404)
