"""
Tests for the FastAPI proxy layer using TestClient.
The Gemini SDK, the rate reconciler and the licensing upstream are mocked.
"""
import base64
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from google.api_core import exceptions as google_exceptions

# Ensure src/ is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

API_KEY = "AIzaSyProxyTest"

VALID_BODY = {
    "model": "gemini-2.5-flash",
    "contents": {"parts": [
        {"text": "Read this menu"},
        {"inlineData": {"mimeType": "image/jpeg", "data": base64.b64encode(b"jpeg-bytes").decode()}},
    ]},
    "config": {
        "responseMimeType": "application/json",
        "responseSchema": {"type": "OBJECT", "properties": {"items": {"type": "ARRAY"}}},
        "systemInstruction": "You are an expert menu digitizer.",
    },
}


def _gemini_response(text='{"items": []}'):
    response = MagicMock()
    response.text = text
    response.usage_metadata = MagicMock(prompt_token_count=1000, candidates_token_count=200, total_token_count=1200)
    return response


class _ApiCase(unittest.TestCase):

    def setUp(self):
        from api.main import create_app
        from fastapi.testclient import TestClient
        self.app = create_app()
        self.client = TestClient(self.app)

    def tearDown(self):
        self.app.dependency_overrides.clear()


class TestRootAndHealth(_ApiCase):

    def test_root(self):
        res = self.client.get("/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["service"], "Menu Pal API")

    def test_health(self):
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertEqual(data["status"], "healthy")
        self.assertEqual(data["components"]["config"], "ok")


class TestGenerateEndpoint(_ApiCase):

    def test_missing_key_401(self):
        res = self.client.post("/api/generate", json=VALID_BODY)
        self.assertEqual(res.status_code, 401)

    def test_malformed_key_401(self):
        res = self.client.post("/api/generate", json=VALID_BODY, headers={"x-custom-api-key": "sk-abc"})
        self.assertEqual(res.status_code, 401)

    def test_malformed_body_400(self):
        headers = {"x-custom-api-key": API_KEY}
        for body in ({"contents": {"parts": [{"text": "hi"}]}},
                     {"model": "", "contents": {"parts": [{"text": "hi"}]}},
                     {"model": "m", "contents": {"parts": []}},
                     {"model": "m", "contents": {"parts": [{"inlineData": {"data": "***"}}]}}):
            res = self.client.post("/api/generate", json=body, headers=headers)
            self.assertEqual(res.status_code, 400, body)

        res = self.client.post("/api/generate", content=b"not json", headers=headers)
        self.assertEqual(res.status_code, 400)

    @patch("api.routes.generate_routes.genai")
    def test_success(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.return_value = _gemini_response()

        res = self.client.post("/api/generate", json=VALID_BODY, headers={"x-custom-api-key": API_KEY})

        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertEqual(data["text"], '{"items": []}')
        self.assertEqual(data["usageMetadata"]["totalTokenCount"], 1200)

        mock_genai.configure.assert_called_once_with(api_key=API_KEY)
        mock_genai.GenerativeModel.assert_called_once_with(
            "gemini-2.5-flash", system_instruction="You are an expert menu digitizer."
        )
        parts = mock_genai.GenerativeModel.return_value.generate_content.call_args.args[0]
        self.assertEqual(parts[0], "Read this menu")
        self.assertEqual(parts[1], {"mime_type": "image/jpeg", "data": b"jpeg-bytes"})

    @patch("api.routes.generate_routes.genai")
    def test_upstream_busy_503(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.side_effect = \
            google_exceptions.ServiceUnavailable("The model is overloaded")
        res = self.client.post("/api/generate", json=VALID_BODY, headers={"x-custom-api-key": API_KEY})
        self.assertEqual(res.status_code, 503)

        mock_genai.GenerativeModel.return_value.generate_content.side_effect = \
            google_exceptions.ResourceExhausted("Quota exceeded")
        res = self.client.post("/api/generate", json=VALID_BODY, headers={"x-custom-api-key": API_KEY})
        self.assertEqual(res.status_code, 503)

    @patch("api.routes.generate_routes.genai")
    def test_rejected_key_401(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.side_effect = \
            google_exceptions.InvalidArgument("API key not valid. Please pass a valid API key.")
        res = self.client.post("/api/generate", json=VALID_BODY, headers={"x-custom-api-key": API_KEY})
        self.assertEqual(res.status_code, 401)

    @patch("api.routes.generate_routes.genai")
    def test_unexpected_failure_500(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.side_effect = RuntimeError("boom")
        res = self.client.post("/api/generate", json=VALID_BODY, headers={"x-custom-api-key": API_KEY})
        self.assertEqual(res.status_code, 500)
        self.assertIn("boom", res.json()["detail"])


class TestRatesEndpoint(_ApiCase):

    def test_rates(self):
        from api.routes.rates_routes import get_rate_reconciler

        class FakeReconciler:
            async def fetch_table(self):
                return {"TWD": 1.0, "USD": 32.1, "EGP": 1.02}

        self.app.dependency_overrides[get_rate_reconciler] = lambda: FakeReconciler()
        res = self.client.get("/api/rates")

        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertEqual(data["rates"]["TWD"], 1.0)
        self.assertEqual(data["rates"]["USD"], 32.1)
        self.assertIsInstance(data["timestamp"], int)


class TestVerifyEmailEndpoint(_ApiCase):

    def test_email_required(self):
        res = self.client.post("/api/verify-email", json={"code": "ABC"})
        self.assertEqual(res.status_code, 400)

    def test_proxies_result(self):
        from account.entitlement_client import EntitlementResult
        from api.routes.entitlement_routes import get_entitlement_client

        fake = MagicMock()
        fake.verify.return_value = EntitlementResult(True, "Welcome back")
        self.app.dependency_overrides[get_entitlement_client] = lambda: fake

        res = self.client.post("/api/verify-email", json={"email": "Foo@Example.com", "code": "abc"})

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"verified": True, "message": "Welcome back"})
        fake.verify.assert_called_once_with("Foo@Example.com", "abc")


class TestRateLimiter(unittest.TestCase):

    def test_limit_enforced_per_ip(self):
        import config
        from fastapi.testclient import TestClient

        with patch.object(config, "API_RATE_LIMIT_PER_MINUTE", 2):
            from api.main import create_app
            client = TestClient(create_app())

        for _ in range(2):
            self.assertEqual(client.post("/api/verify-email", json={}).status_code, 400)
        res = client.post("/api/verify-email", json={})
        self.assertEqual(res.status_code, 429)
        self.assertEqual(res.headers["X-RateLimit-Remaining"], "0")

        other = client.post("/api/verify-email", json={}, headers={"x-forwarded-for": "10.0.0.9"})
        self.assertEqual(other.status_code, 400)

        # Health checks are never limited
        self.assertEqual(client.get("/health").status_code, 200)


if __name__ == "__main__":
    unittest.main()
