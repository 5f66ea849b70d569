from django.test import SimpleTestCase, override_settings


@override_settings(DEBUG=False)
class ErrorHandlerTests(SimpleTestCase):
    def test_unknown_url_returns_json_404(self):
        response = self.client.get('/this-url-does-not-exist/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Not found", "path": "/this-url-does-not-exist/"})

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.json(), {"ok": True})
