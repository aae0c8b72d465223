"""
Tests for the entitlement gate client.
"""
import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

# Ensure src/ is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from account.entitlement_client import EntitlementClient
from ordering.local_store import LocalStore
from ordering.settings import Settings

URL = "https://licensing.example/verify"


def _response(payload=None, status_code=200, bad_json=False):
    response = MagicMock()
    response.status_code = status_code
    if bad_json:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


class TestEntitlementClient(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix="menu_pal_test_entitlement_")
        self.settings = Settings(LocalStore(db_path=os.path.join(self.temp_dir, "state.db")))
        self.client = EntitlementClient(url=URL, timeout=1, settings=self.settings)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    @patch("account.entitlement_client.requests.post")
    def test_verified_sets_pro_flag(self, mock_post):
        mock_post.return_value = _response({"verified": True, "message": "Welcome back"})

        result = self.client.verify("  Foo@Example.COM ", "ab-12")

        self.assertTrue(result.verified)
        self.assertEqual(result.message, "Welcome back")
        self.assertTrue(self.settings.is_pro)
        self.assertEqual(mock_post.call_args.kwargs["json"], {"email": "foo@example.com", "code": "AB-12"})

    @patch("account.entitlement_client.requests.post")
    def test_not_verified(self, mock_post):
        mock_post.return_value = _response({"verified": False, "message": "Invalid or used code"})
        result = self.client.verify("foo@example.com", "nope")
        self.assertFalse(result.verified)
        self.assertFalse(self.settings.is_pro)

    @patch("account.entitlement_client.requests.post")
    def test_failures_are_not_verified(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("down")
        self.assertFalse(self.client.verify("foo@example.com").verified)

        mock_post.side_effect = None
        mock_post.return_value = _response(bad_json=True, status_code=502)
        self.assertFalse(self.client.verify("foo@example.com").verified)

        mock_post.return_value = _response(["unexpected"])
        self.assertFalse(self.client.verify("foo@example.com").verified)
        self.assertFalse(self.settings.is_pro)

    @patch("account.entitlement_client.requests.post")
    def test_missing_email_or_url(self, mock_post):
        self.assertFalse(self.client.verify("").verified)
        self.assertFalse(EntitlementClient(url="").verify("foo@example.com").verified)
        mock_post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
