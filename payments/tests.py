import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from requests import ConnectionError as RequestsConnectionError

from orders.models import Order, OrderStatusHistory
from . import paymob
from .utils import (
    PROCESSED_ORDERED_KEYS,
    REDIRECT_ORDERED_KEYS,
    MissingSecret,
    canonical_string,
    flatten,
    sign_callback,
    stringify,
    verify_callback,
)

# HMAC-SHA512 of "1000042true"
DIGEST_X = (
    "ec8e3f1bbe7afc379a756975ac91e3a16be59ed512bad94a0de830ee96b839af"
    "00afcff9d4db6fab46a76055845151560d40dcb58d829913aae69cdaf4ac5c1e"
)
DIGEST_TEST_SECRET = (
    "ba2c81a482abe64213bac1fa565f895f58fa6303baadddeb661cb27672ad0d42"
    "75684e8092d8319b41aaed2b8b0a16fbbe19868895524d1502e93e44eda61b8b"
)
SIMPLE_TXN = {"amount_cents": 10000, "id": 42, "success": True}


class SignatureTests(SimpleTestCase):
    def test_flatten_nested_mappings(self):
        flat = flatten({"order": {"id": 7}, "source_data": {"pan": "2346", "type": "card"}, "tags": [1, 2]})
        self.assertEqual(flat, {"order.id": 7, "source_data.pan": "2346", "source_data.type": "card", "tags": [1, 2]})

    def test_stringify_rules(self):
        self.assertEqual(stringify(None), "")
        self.assertEqual(stringify(True), "true")
        self.assertEqual(stringify(False), "false")
        self.assertEqual(stringify(1000.0), "1000")
        self.assertEqual(stringify(Decimal("10.50")), "10.50")
        self.assertEqual(stringify([1, "a"]), '[1,"a"]')

    def test_stringify_floats_like_javascript(self):
        self.assertEqual(stringify(1e-07), "1e-7")
        self.assertEqual(stringify(1e21), "1e+21")
        self.assertEqual(stringify(0.00001), "0.00001")
        self.assertEqual(stringify(12.5), "12.5")
        self.assertEqual(stringify([10.0, 1.5, True, None]), "[10,1.5,true,null]")

    def test_canonical_string_skips_missing_keys(self):
        self.assertEqual(canonical_string(SIMPLE_TXN, PROCESSED_ORDERED_KEYS), "1000042true")

    def test_known_digest(self):
        self.assertEqual(sign_callback(SIMPLE_TXN, PROCESSED_ORDERED_KEYS, "x"), DIGEST_X)
        self.assertTrue(verify_callback(SIMPLE_TXN, DIGEST_X, PROCESSED_ORDERED_KEYS, "x"))

    def test_tampered_digest_rejected(self):
        flipped = ("0" if DIGEST_X[0] != "0" else "1") + DIGEST_X[1:]
        self.assertFalse(verify_callback(SIMPLE_TXN, flipped, PROCESSED_ORDERED_KEYS, "x"))
        self.assertFalse(verify_callback(SIMPLE_TXN, DIGEST_X.upper(), PROCESSED_ORDERED_KEYS, "x"))
        self.assertFalse(verify_callback(SIMPLE_TXN, "", PROCESSED_ORDERED_KEYS, "x"))

    def test_non_string_digest_is_rejected(self):
        self.assertFalse(verify_callback(SIMPLE_TXN, 12345, PROCESSED_ORDERED_KEYS, "x"))
        self.assertFalse(verify_callback(SIMPLE_TXN, {"v": DIGEST_X}, PROCESSED_ORDERED_KEYS, "x"))
        self.assertTrue(verify_callback(SIMPLE_TXN, DIGEST_X.encode(), PROCESSED_ORDERED_KEYS, "x"))

    def test_tampered_payload_rejected(self):
        tampered = dict(SIMPLE_TXN, amount_cents=1)
        self.assertFalse(verify_callback(tampered, DIGEST_X, PROCESSED_ORDERED_KEYS, "x"))

    def test_missing_secret_raises(self):
        with self.assertRaises(MissingSecret):
            verify_callback(SIMPLE_TXN, DIGEST_X, PROCESSED_ORDERED_KEYS, "")

    def test_redirect_keys_use_flat_order(self):
        self.assertIn("order", REDIRECT_ORDERED_KEYS)
        self.assertNotIn("order.id", REDIRECT_ORDERED_KEYS)
        self.assertEqual(len(REDIRECT_ORDERED_KEYS), len(PROCESSED_ORDERED_KEYS))


class ToCentsTests(SimpleTestCase):
    def test_rounds_half_up(self):
        self.assertEqual(paymob.to_cents(Decimal("2100.00")), 210000)
        self.assertEqual(paymob.to_cents("10.005"), 1001)
        self.assertEqual(paymob.to_cents(0.1), 10)

    def test_garbage_amount(self):
        with self.assertRaises(paymob.PaymobError):
            paymob.to_cents("abc")


class PaymentTestCase(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user("alice", "alice@example.com", "pw")
        self.order = Order.objects.create(
            user=self.user,
            payment_method=Order.PaymentMethod.ONLINE,
            payment_status=Order.PaymentStatus.PENDING,
            subtotal=Decimal("2000.00"),
            shipping_cost=Decimal("300.00"),
            total=Decimal("2300.00"),
            shipping_name="Alice Smith",
            shipping_phone="0100000000",
            shipping_address="1 Nile St",
            shipping_city="Cairo",
        )


class CreateIntentionTests(PaymentTestCase):
    def _fake_response(self, status_code=201, data=None):
        resp = MagicMock()
        resp.status_code = status_code
        resp.json.return_value = data if data is not None else {"client_secret": "cs_test_1"}
        resp.text = json.dumps(resp.json.return_value)
        return resp

    @patch("payments.paymob.requests.post")
    def test_posts_intention_and_builds_checkout_url(self, post):
        post.return_value = self._fake_response()
        result = paymob.create_intention(order=self.order, billing={"name": "Alice Smith", "email": "a@x.com"})

        url = post.call_args.args[0]
        sent = post.call_args.kwargs["json"]
        headers = post.call_args.kwargs["headers"]
        self.assertTrue(url.endswith("/v1/intention/"))
        self.assertEqual(headers["Authorization"], "Token test-paymob-secret")
        self.assertEqual(sent["amount"], 230000)
        self.assertEqual(sent["payment_methods"], [12345])
        self.assertEqual(sent["special_reference"], str(self.order.pk))
        self.assertEqual(sent["billing_data"]["first_name"], "Alice")
        self.assertEqual(sent["billing_data"]["last_name"], "Smith")
        self.assertEqual(
            sent["notification_url"], "https://shop.example.com/payments/paymob/webhooks/processed"
        )
        self.assertEqual(result["client_secret"], "cs_test_1")
        self.assertEqual(
            result["unified_checkout_url"],
            "https://accept.paymob.com/unifiedcheckout/?publicKey=test-public&clientSecret=cs_test_1",
        )

    @patch("payments.paymob.requests.post")
    def test_gateway_rejection(self, post):
        post.return_value = self._fake_response(401, {"detail": "bad token"})
        with self.assertRaises(paymob.PaymobError) as ctx:
            paymob.create_intention(order=self.order, billing={})
        self.assertIn("Authorization", str(ctx.exception))

    @patch("payments.paymob.requests.post", side_effect=RequestsConnectionError("down"))
    def test_network_failure(self, post):
        with self.assertRaises(paymob.PaymobError):
            paymob.create_intention(order=self.order, billing={})

    def test_missing_secret_key(self):
        with override_settings(PAYMOB={"SECRET_KEY": "", "INTEGRATION_ID": "1"}):
            with self.assertRaises(paymob.PaymobError):
                paymob.build_headers()

    @patch("payments.paymob.requests.post")
    def test_view_requires_online_unpaid_order(self, post):
        post.return_value = self._fake_response()
        url = reverse("payments:paymob_intentions")
        body = json.dumps({"order_id": self.order.pk})

        self.assertEqual(self.client.post(url, body, content_type="application/json").status_code, 401)

        self.client.force_login(self.user)
        resp = self.client.post(url, body, content_type="application/json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["order_id"], self.order.pk)

        Order.objects.filter(pk=self.order.pk).update(payment_status=Order.PaymentStatus.SUCCESS)
        resp = self.client.post(url, body, content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    @patch("payments.paymob.requests.post")
    def test_view_binds_gateway_order_id(self, post):
        post.return_value = self._fake_response(data={"client_secret": "cs_test_1", "intention_order_id": 555})
        self.client.force_login(self.user)
        resp = self.client.post(
            reverse("payments:paymob_intentions"),
            json.dumps({"order_id": self.order.pk}),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.gateway_meta["paymob_order_id"], 555)

    @patch("payments.paymob.requests.post")
    def test_view_gateway_error_is_502(self, post):
        post.return_value = self._fake_response(500, {})
        self.client.force_login(self.user)
        resp = self.client.post(
            reverse("payments:paymob_intentions"),
            json.dumps({"order_id": self.order.pk}),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 502)


class ProcessedWebhookTests(PaymentTestCase):
    def _transaction(self, **overrides):
        txn = {
            "id": 98765,
            "amount_cents": 230000,
            "created_at": "2024-05-01T10:00:00",
            "currency": "EGP",
            "error_occured": False,
            "has_parent_transaction": False,
            "integration_id": 12345,
            "is_3d_secure": True,
            "is_auth": False,
            "is_capture": False,
            "is_refunded": False,
            "is_standalone_payment": True,
            "is_voided": False,
            "order": {"id": 555},
            "owner": 1,
            "pending": False,
            "source_data": {"pan": "2346", "sub_type": "MasterCard", "type": "card"},
            "success": True,
        }
        txn.update(overrides)
        return txn

    def _post(self, payload):
        return self.client.post(
            reverse("payments:paymob_processed"), data=json.dumps(payload), content_type="application/json"
        )

    def _signed(self, txn, secret="test-hmac-secret"):
        return {
            "hmac": sign_callback(txn, PROCESSED_ORDERED_KEYS, secret),
            "transaction": txn,
            "intention": {"special_reference": str(self.order.pk)},
        }

    def test_valid_success_marks_order_paid(self):
        resp = self._post(self._signed(self._transaction()))
        self.assertEqual(resp.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.SUCCESS)
        self.assertEqual(self.order.status, Order.Status.PROCESSING)
        self.assertEqual(self.order.trnx_id, "98765")
        self.assertEqual(OrderStatusHistory.objects.filter(order=self.order).count(), 1)

    def test_valid_failure_cancels_order(self):
        resp = self._post(self._signed(self._transaction(success=False)))
        self.assertEqual(resp.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.FAILED)
        self.assertEqual(self.order.status, Order.Status.CANCELLED)

    def test_wrong_secret_changes_nothing(self):
        resp = self._post(self._signed(self._transaction(), secret="attacker"))
        self.assertEqual(resp.status_code, 400)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PENDING)
        self.assertFalse(OrderStatusHistory.objects.filter(order=self.order).exists())

    def test_tampered_amount_changes_nothing(self):
        payload = self._signed(self._transaction())
        payload["transaction"]["amount_cents"] = 100
        self.assertEqual(self._post(payload).status_code, 400)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PENDING)

    def _assert_untouched(self, order=None):
        order = order or self.order
        order.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertFalse(OrderStatusHistory.objects.filter(order=order).exists())

    def test_cheap_transaction_cannot_pay_another_order(self):
        # a genuinely signed 1.00 EGP payment pointed at a 503.00 EGP order
        expensive = Order.objects.create(
            user=self.user,
            payment_method=Order.PaymentMethod.ONLINE,
            total=Decimal("503.00"),
            shipping_name="Alice Smith",
            shipping_phone="0100000000",
            shipping_address="1 Nile St",
            shipping_city="Cairo",
        )
        payload = self._signed(self._transaction(amount_cents=100))
        payload["intention"]["special_reference"] = str(expensive.pk)
        resp = self._post(payload)
        self.assertEqual(resp.status_code, 400)
        self._assert_untouched(expensive)

    def test_currency_mismatch_rejected(self):
        resp = self._post(self._signed(self._transaction(currency="USD")))
        self.assertEqual(resp.status_code, 400)
        self._assert_untouched()

    def test_missing_amount_rejected(self):
        txn = self._transaction()
        del txn["amount_cents"]
        self.assertEqual(self._post(self._signed(txn)).status_code, 400)
        self._assert_untouched()

    def test_gateway_order_must_match_bound_order(self):
        self.order.gateway_meta = {"paymob_order_id": 999}
        self.order.save()
        self.assertEqual(self._post(self._signed(self._transaction())).status_code, 400)
        self._assert_untouched()

        self.order.gateway_meta = {"paymob_order_id": 555}
        self.order.save()
        self.assertEqual(self._post(self._signed(self._transaction())).status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.SUCCESS)
        self.assertEqual(self.order.gateway_meta["paymob_order_id"], 555)

    def test_transaction_id_cannot_settle_two_orders(self):
        Order.objects.create(
            user=self.user,
            total=Decimal("2300.00"),
            trnx_id="98765",
            shipping_name="Alice Smith",
            shipping_phone="0100000000",
            shipping_address="1 Nile St",
            shipping_city="Cairo",
        )
        self.assertEqual(self._post(self._signed(self._transaction())).status_code, 400)
        self._assert_untouched()

    def test_numeric_hmac_is_rejected(self):
        payload = self._signed(self._transaction())
        payload["hmac"] = 12345
        self.assertEqual(self._post(payload).status_code, 400)
        self._assert_untouched()

    def test_missing_hmac(self):
        payload = self._signed(self._transaction())
        del payload["hmac"]
        self.assertEqual(self._post(payload).status_code, 400)

    def test_hmac_in_query_string(self):
        txn = self._transaction()
        digest = sign_callback(txn, PROCESSED_ORDERED_KEYS, "test-hmac-secret")
        payload = {"type": "TRANSACTION", "obj": dict(txn, order={"id": 555, "merchant_order_id": str(self.order.pk)})}
        # merchant_order_id is not part of the signed fields
        resp = self.client.post(
            reverse("payments:paymob_processed") + f"?hmac={digest}",
            data=json.dumps(payload),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.SUCCESS)

    def test_unknown_order_is_accepted(self):
        payload = self._signed(self._transaction())
        payload["intention"]["special_reference"] = "424242"
        resp = self._post(payload)
        self.assertEqual(resp.status_code, 202)
        self.assertIsNone(resp.json()["order"])

    @override_settings(PAYMOB={"HMAC_SECRET": ""})
    def test_missing_secret_is_server_error(self):
        resp = self._post({"hmac": "abc", "transaction": self._transaction()})
        self.assertEqual(resp.status_code, 500)

    def test_invalid_json(self):
        resp = self.client.post(reverse("payments:paymob_processed"), data="not-json", content_type="application/json")
        self.assertEqual(resp.status_code, 400)


class RedirectWebhookTests(SimpleTestCase):
    params = {"amount_cents": "10000", "id": "42", "success": "true", "merchant_order_id": "7"}

    def _get(self, **params):
        return self.client.get(reverse("payments:paymob_redirect"), params)

    def test_verified_success(self):
        resp = self._get(hmac=DIGEST_TEST_SECRET, **self.params)
        self.assertEqual(resp.status_code, 302)
        self.assertEqual(resp["Location"], "https://shop.example.com/orders/7")

    def test_verified_failure(self):
        params = dict(self.params, success="false")
        digest = sign_callback(params, REDIRECT_ORDERED_KEYS, "test-hmac-secret")
        resp = self._get(hmac=digest, **params)
        self.assertEqual(resp["Location"], "https://shop.example.com/orders/7?payment=failed")

    def test_verified_pending(self):
        params = dict(self.params, success="false", pending="true")
        digest = sign_callback(params, REDIRECT_ORDERED_KEYS, "test-hmac-secret")
        resp = self._get(hmac=digest, **params)
        self.assertEqual(resp["Location"], "https://shop.example.com/payment/result?status=pending")

    def test_bad_digest(self):
        resp = self._get(hmac=DIGEST_X, **self.params)
        self.assertEqual(resp["Location"], "https://shop.example.com/payment/result?status=failed")

    def test_missing_digest(self):
        resp = self._get(**self.params)
        self.assertEqual(resp["Location"], "https://shop.example.com/orders/7?payment=failed")
        resp = self._get(success="true")
        self.assertEqual(resp["Location"], "https://shop.example.com/payment/result?status=failed")
