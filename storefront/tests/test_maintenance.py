from django.test import TestCase, override_settings


@override_settings(SITE_MAINTENANCE_MODE=True, SITE_MAINTENANCE_MESSAGE="Back soon")
class MaintenanceModeTests(TestCase):
    def test_storefront_requests_get_503(self):
        response = self.client.get('/health')
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "Back soon")

    def test_payment_callbacks_stay_reachable(self):
        response = self.client.get('/payments/paymob/webhooks/redirect')
        self.assertEqual(response.status_code, 302)

    def test_admin_stays_reachable(self):
        response = self.client.get('/admin/login/')
        self.assertNotEqual(response.status_code, 503)
