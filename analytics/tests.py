import json

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.urls import reverse

from .models import AnalyticsEvent
from .views import device_type

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"
IPAD = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)"
DESKTOP = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0"


class DeviceTypeTests(SimpleTestCase):
    def test_detection(self):
        self.assertEqual(device_type(IPHONE), "mobile")
        self.assertEqual(device_type(IPAD), "tablet")
        self.assertEqual(device_type(DESKTOP), "desktop")
        self.assertEqual(device_type("curl/8.0"), "other")
        self.assertEqual(device_type(""), "other")


class TrackViewTests(TestCase):
    def _track(self, payload, **headers):
        return self.client.post(
            reverse("analytics:track"), data=json.dumps(payload), content_type="application/json", **headers
        )

    def test_records_event_with_attribution(self):
        resp = self._track(
            {
                "event": "product_view",
                "metadata": {"product_id": 7},
                "utm_source": "facebook",
                "utm_medium": "cpc",
                "utm_campaign": "ramadan",
            },
            HTTP_USER_AGENT=IPHONE,
            HTTP_X_VERCEL_IP_COUNTRY="EG",
            HTTP_X_VERCEL_IP_COUNTRY_REGION="C",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True})

        event = AnalyticsEvent.objects.get()
        self.assertEqual(event.event, AnalyticsEvent.Event.PRODUCT_VIEW)
        self.assertEqual(event.metadata, {"product_id": 7})
        self.assertEqual(event.device_type, "mobile")
        self.assertEqual((event.utm_source, event.utm_medium, event.utm_campaign), ("facebook", "cpc", "ramadan"))
        self.assertEqual((event.country, event.region), ("EG", "C"))
        self.assertIsNone(event.user)
        self.assertTrue(event.session_id)

    def test_cloudflare_geo_headers(self):
        self._track({"event": "PAGE_VIEW"}, HTTP_CF_IPCOUNTRY="SA", HTTP_CF_REGION="Riyadh")
        event = AnalyticsEvent.objects.get()
        self.assertEqual((event.country, event.region), ("SA", "Riyadh"))

    def test_links_logged_in_user(self):
        user = get_user_model().objects.create_user("alice", "alice@example.com", "pw")
        self.client.force_login(user)
        self._track({"event": "PAGE_VIEW"})
        self.assertEqual(AnalyticsEvent.objects.get().user, user)

    def test_same_session_across_events(self):
        self._track({"event": "PAGE_VIEW"})
        self._track({"event": "ADD_TO_CART"})
        self.assertEqual(AnalyticsEvent.objects.values("session_id").distinct().count(), 1)

    def test_event_is_required(self):
        self.assertEqual(self._track({"metadata": {}}).status_code, 400)
        self.assertEqual(self._track({"event": "TELEPORT"}).status_code, 400)
        self.assertFalse(AnalyticsEvent.objects.exists())

    def test_non_object_metadata_is_dropped(self):
        self._track({"event": "SEARCH", "metadata": "shoes"})
        self.assertEqual(AnalyticsEvent.objects.get().metadata, {})

    def test_get_not_allowed(self):
        self.assertEqual(self.client.get(reverse("analytics:track")).status_code, 405)
