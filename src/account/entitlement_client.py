"""
Entitlement client.

The licensing upstream is consumed only as a yes/no answer: POST
{email, code?} -> {verified, message}. A verified answer is remembered in
settings as the is_pro flag that gates image submission.
"""
from dataclasses import dataclass
from typing import Optional

import requests

import config
from utils.logger import get_logger


@dataclass(frozen=True)
class EntitlementResult:
    verified: bool
    message: str = ''


class EntitlementClient:
    def __init__(self, url: str = None, timeout: float = None, settings=None):
        self.url = config.ENTITLEMENT_URL if url is None else url
        self.timeout = timeout or config.ENTITLEMENT_TIMEOUT_SECONDS
        self.settings = settings
        self.logger = get_logger()

    def verify(self, email: str, code: Optional[str] = None) -> EntitlementResult:
        """
        Ask the licensing upstream whether ``email`` is entitled.

        Never raises: transport or parse failures come back as
        ``verified=False`` with a readable message.
        """
        email = (email or '').strip().lower()
        if not email:
            return EntitlementResult(False, "Email is required")
        if not self.url:
            return EntitlementResult(False, "Entitlement service is not configured")

        payload = {'email': email}
        if code:
            payload['code'] = code.strip().upper()

        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.warning(f"Entitlement check failed: {e}", component="Entitlement")
            return EntitlementResult(False, "Could not reach the verification service")

        try:
            data = response.json()
        except ValueError:
            self.logger.warning(
                f"Entitlement service returned non-JSON (HTTP {response.status_code})",
                component="Entitlement"
            )
            return EntitlementResult(False, "Verification service returned an invalid response")

        if not isinstance(data, dict):
            return EntitlementResult(False, "Verification service returned an invalid response")

        result = EntitlementResult(
            verified=bool(data.get('verified')),
            message=str(data.get('message') or data.get('error') or ''),
        )
        if result.verified and self.settings is not None:
            self.settings.is_pro = True
        self.logger.info(f"Entitlement for {email}: verified={result.verified}", component="Entitlement")
        return result
