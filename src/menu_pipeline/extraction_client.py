"""
Extraction Client
Turns normalized menu images into a validated MenuData via the extraction
service (the /api/generate proxy in front of Gemini).

Flow per call:
1. credential check (AuthError, never sent upstream when malformed)
2. one request carrying the prompt plus every image, retried on
   QuotaError / NetworkError with exponential backoff
3. response text validated against ExtractedMenu (ValidationError)
4. fresh item ids, default category, reconciled exchange rate
"""
from __future__ import annotations

import asyncio
import json
import re
import time
import uuid
from typing import Awaitable, Callable, List, Optional, Union

import requests
from pydantic import ValidationError as SchemaError

import config
from menu_pipeline.errors import (
    AuthError, MenuPalError, NetworkError, QuotaError, ValidationError,
)
from menu_pipeline.extraction_schema import (
    DEFAULT_CATEGORY, RESPONSE_SCHEMA, SYSTEM_INSTRUCTION, ExtractedMenu, build_prompt,
)
from menu_pipeline.image_normalizer import MIME_TYPE
from menu_pipeline.languages import TargetLanguage, get_target_currency, resolve_language
from menu_pipeline.models import MenuData, MenuItem, MenuOption, TokenUsage
from menu_pipeline.retry import RetryPolicy, run_with_retry
from utils.logger import get_logger

API_KEY_HEADER = 'x-custom-api-key'
API_KEY_PREFIX = 'AIza'

EXPLANATION_FALLBACK = "Unable to get explanation right now."

_FENCE_RE = re.compile(r'^\s*```(?:json)?\s*(.*?)\s*```\s*$', re.DOTALL | re.IGNORECASE)


def is_well_formed_key(api_key: Optional[str]) -> bool:
    return bool(api_key) and api_key.strip().startswith(API_KEY_PREFIX)


def strip_code_fences(text: str) -> str:
    """Unwrap a ```json ... ``` block if the model added one."""
    match = _FENCE_RE.match(text or '')
    return match.group(1) if match else (text or '').strip()


def parse_menu_response(text: str) -> ExtractedMenu:
    """
    Parse and validate the response text.

    Raises:
        ValidationError: empty text, invalid JSON, or schema violation
    """
    body = strip_code_fences(text)
    if not body:
        raise ValidationError("The menu could not be read (empty response). Please try a clearer photo.")
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValidationError(f"The menu response was not valid JSON: {e.msg}") from e
    try:
        return ExtractedMenu.model_validate(payload)
    except SchemaError as e:
        first = e.errors()[0]
        where = '.'.join(str(p) for p in first.get('loc', ()))
        raise ValidationError(f"The menu response did not match the expected format ({where}: {first.get('msg')})") from e


def error_for_status(status_code: int, detail: str = '') -> MenuPalError:
    """Map a non-2xx proxy status to the error taxonomy."""
    detail = detail or f"HTTP {status_code}"
    if status_code in (401, 403):
        return AuthError(f"The API key was rejected: {detail}")
    if status_code in (400, 422):
        return ValidationError(f"The request was rejected: {detail}")
    if status_code in (429, 503):
        return QuotaError("The menu service is busy right now. Please try again in a moment.")
    return NetworkError(f"The menu service failed ({status_code}): {detail}")


class ExtractionClient:
    """Client for the structured menu extraction endpoint"""

    def __init__(self, endpoint_url: str = None, rate_reconciler=None,
                 policy: RetryPolicy = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 model: str = None, timeout: float = None):
        self.endpoint_url = endpoint_url or config.EXTRACTION_ENDPOINT_URL
        self.rate_reconciler = rate_reconciler
        self.policy = policy or RetryPolicy.from_config()
        self.sleep = sleep
        self.model = model or config.EXTRACTION_MODEL
        self.timeout = timeout or config.EXTRACTION_TIMEOUT_SECONDS
        self.logger = get_logger()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, api_key: str, body: dict) -> dict:
        """One blocking round trip. Returns the decoded JSON envelope."""
        try:
            response = requests.post(
                self.endpoint_url,
                json=body,
                headers={API_KEY_HEADER: api_key, 'Content-Type': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Could not reach the menu service: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            if isinstance(payload, dict):
                detail = payload.get('detail') or payload.get('error') or ''
            else:
                detail = response.text[:200]
            raise error_for_status(response.status_code, str(detail))

        if not isinstance(payload, dict):
            raise ValidationError("The menu service returned a malformed envelope")
        return payload

    async def _send(self, api_key: str, body: dict) -> dict:
        def on_retry(attempt, delay, error):
            self.logger.log_retry(attempt, self.policy.max_retries, delay, error)

        return await run_with_retry(
            lambda: asyncio.to_thread(self._post, api_key, body),
            self.policy,
            sleep=self.sleep,
            on_retry=on_retry,
        )

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def build_request(self, images: List[str], target_language: TargetLanguage,
                      handwriting_mode: bool = False) -> dict:
        prompt = build_prompt(
            image_count=len(images),
            target_language=target_language.value,
            target_currency=get_target_currency(target_language),
            handwriting_mode=handwriting_mode,
        )
        parts = [{'text': prompt}]
        parts.extend({'inlineData': {'mimeType': MIME_TYPE, 'data': data}} for data in images)
        return {
            'model': self.model,
            'contents': {'parts': parts},
            'config': {
                'responseMimeType': 'application/json',
                'responseSchema': RESPONSE_SCHEMA,
                'systemInstruction': SYSTEM_INSTRUCTION,
            },
        }

    async def extract(self, api_key: str, images: List[str],
                      target_language: Union[str, TargetLanguage],
                      handwriting_mode: bool = False, generation: int = 0) -> MenuData:
        """
        Extract a menu from already-normalized base64 JPEG images.

        Raises:
            AuthError: missing/malformed key, or the key was rejected upstream
            QuotaError: upstream busy after all retries
            NetworkError: transport failure after all retries
            ValidationError: response did not conform to the schema
        """
        if not is_well_formed_key(api_key):
            raise AuthError("A valid Gemini API key is required. Please add it in Settings.")
        if not images:
            raise ValidationError("No images to extract from")

        language = resolve_language(target_language)
        target_currency = get_target_currency(language)

        self.logger.log_extraction_start(generation, len(images), language.value)
        started = time.time()

        body = self.build_request(images, language, handwriting_mode)
        envelope = await self._send(api_key.strip(), body)

        text = envelope.get('text', '')
        if not isinstance(text, str):
            raise ValidationError(f"Extraction response text must be a string, got {type(text).__name__}")
        usage_data = envelope.get('usageMetadata')
        if usage_data is not None and not isinstance(usage_data, dict):
            raise ValidationError("Extraction response usageMetadata must be an object")

        extracted = parse_menu_response(text)
        usage = TokenUsage.from_dict(usage_data)

        items = [
            MenuItem(
                id=f"item-{index}-{uuid.uuid4().hex[:12]}",
                original_name=raw.original_name,
                translated_name=raw.translated_name,
                price=raw.price,
                category=raw.category or DEFAULT_CATEGORY,
                options=[MenuOption(name=o.name, price=o.price) for o in raw.options],
                short_description=raw.short_description,
                allergy_warning=raw.allergy_warning,
                allergens=list(raw.allergens),
                dietary_tags=list(raw.dietary_tags),
            )
            for index, raw in enumerate(extracted.items)
        ]

        exchange_rate = await self._reconciled_rate(
            extracted.original_currency, target_currency, extracted.exchange_rate
        )

        menu = MenuData(
            items=items,
            original_currency=extracted.original_currency,
            target_currency=target_currency,
            exchange_rate=exchange_rate,
            detected_language=extracted.detected_language or 'Unknown',
            restaurant_name=extracted.restaurant_name,
            usage_metadata=usage,
        )
        self.logger.log_extraction_complete(generation, len(items), time.time() - started, usage)
        return menu

    async def _reconciled_rate(self, source: str, target: str, proposed: float) -> float:
        """The reconciled cross rate wins; the service's estimate is only a fallback."""
        if source == target:
            return 1.0

        rate = None
        if self.rate_reconciler is not None:
            rate = await self.rate_reconciler.reconcile(source, target)

        if rate and rate > 0:
            self.logger.info(
                f"Exchange rate {source}->{target}: {rate:.6f} (service estimate {proposed})",
                component="Rates"
            )
            return rate
        if proposed and proposed > 0:
            return proposed

        self.logger.warning(f"No usable rate for {source}->{target}, using 1.0", component="Rates")
        return 1.0

    # ------------------------------------------------------------------
    # Dish explanation
    # ------------------------------------------------------------------

    async def explain_dish(self, api_key: str, dish_name: str, original_language: str,
                           target_language: Union[str, TargetLanguage]) -> str:
        """Short cultural note about one dish. Never raises; failures return a fixed message."""
        try:
            language = resolve_language(target_language)
            if not is_well_formed_key(api_key):
                raise AuthError("A valid Gemini API key is required.")

            prompt = (
                f'Explain the dish "{dish_name}" ({original_language}) to a tourist who speaks '
                f'{language.value}. Keep it under 50 words. Mention ingredients and taste.'
            )
            body = {'model': self.model, 'contents': {'parts': [{'text': prompt}]}}
            envelope = await asyncio.to_thread(self._post, api_key.strip(), body)
            text = envelope.get('text') or ''
            if not isinstance(text, str):
                raise ValidationError("Explanation response text must be a string")
            return text.strip() or EXPLANATION_FALLBACK
        except (MenuPalError, ValueError) as e:
            self.logger.warning(f"Dish explanation failed for '{dish_name}': {e}", component="Extraction")
            return EXPLANATION_FALLBACK
