import json
from datetime import datetime, timedelta, timezone

import jwt
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.urls import reverse

from .tokens import ALGORITHM, sign_mobile_token, verify_mobile_token


class MobileTokenTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.admin = User.objects.create_user("admin", "admin@example.com", "secret-pass", is_staff=True)
        self.customer = User.objects.create_user("bob", "bob@example.com", "secret-pass")

    def test_round_trip(self):
        claims = verify_mobile_token(sign_mobile_token(self.admin))
        self.assertEqual(claims["sub"], str(self.admin.pk))
        self.assertEqual(claims["role"], "ADMIN")
        self.assertEqual(verify_mobile_token(sign_mobile_token(self.customer))["role"], "USER")

    def test_expiry_follows_ttl(self):
        claims = verify_mobile_token(sign_mobile_token(self.admin))
        self.assertEqual(claims["exp"] - claims["iat"], int(timedelta(days=7).total_seconds()))

    def test_rejects_other_secret_and_expired(self):
        forged = jwt.encode({"sub": "1", "role": "ADMIN"}, "someone-else", algorithm=ALGORITHM)
        self.assertIsNone(verify_mobile_token(forged))

        past = datetime.now(timezone.utc) - timedelta(days=1)
        expired = jwt.encode(
            {"sub": "1", "role": "ADMIN", "exp": int(past.timestamp())}, "test-mobile-secret", algorithm=ALGORITHM
        )
        self.assertIsNone(verify_mobile_token(expired))
        self.assertIsNone(verify_mobile_token("garbage"))

    @override_settings(MOBILE_JWT_SECRET="")
    def test_falls_back_to_secret_key(self):
        token = sign_mobile_token(self.admin)
        self.assertEqual(jwt.decode(token, "test-secret-key", algorithms=[ALGORITHM])["role"], "ADMIN")


class MobileLoginViewTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.admin = User.objects.create_user("admin", "admin@example.com", "secret-pass", is_staff=True)
        User.objects.create_user("bob", "bob@example.com", "secret-pass")
        User.objects.create_user("gone", "gone@example.com", "secret-pass", is_staff=True, is_active=False)

    def _post(self, payload):
        return self.client.post(
            reverse("accounts:mobile_login"), data=json.dumps(payload), content_type="application/json"
        )

    def test_admin_gets_token(self):
        resp = self._post({"email": "Admin@Example.com", "password": "secret-pass"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(verify_mobile_token(resp.json()["token"])["sub"], str(self.admin.pk))

    def test_missing_fields(self):
        self.assertEqual(self._post({"email": "admin@example.com"}).status_code, 400)

    def test_wrong_password(self):
        self.assertEqual(self._post({"email": "admin@example.com", "password": "nope"}).status_code, 401)

    def test_customer_is_forbidden(self):
        self.assertEqual(self._post({"email": "bob@example.com", "password": "secret-pass"}).status_code, 403)

    def test_disabled_account_is_forbidden(self):
        self.assertEqual(self._post({"email": "gone@example.com", "password": "secret-pass"}).status_code, 403)
