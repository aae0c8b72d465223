"""
Typed access to persisted user settings.

Absent or unparseable values fall back to safe defaults ('' / 0 / False),
so a damaged store never blocks the app.
"""
from menu_pipeline.extraction_client import is_well_formed_key
from ordering.local_store import LocalStore

API_KEY = 'gemini_api_key'
TAX_RATE = 'tax_rate'
SERVICE_RATE = 'service_rate'
HIDE_PRICE = 'hide_price'
IS_PRO = 'is_pro'


class Settings:
    def __init__(self, store: LocalStore):
        self.store = store

    def _get_float(self, key: str) -> float:
        try:
            return float(self.store.get(key) or 0)
        except ValueError:
            return 0.0

    def _get_bool(self, key: str) -> bool:
        return (self.store.get(key) or '').strip().lower() == 'true'

    def _set_bool(self, key: str, value: bool) -> None:
        self.store.set(key, 'true' if value else 'false')

    @property
    def api_key(self) -> str:
        return self.store.get(API_KEY) or ''

    @api_key.setter
    def api_key(self, value: str) -> None:
        self.store.set(API_KEY, (value or '').strip())

    @property
    def has_valid_api_key(self) -> bool:
        return is_well_formed_key(self.api_key)

    @property
    def tax_rate(self) -> float:
        return self._get_float(TAX_RATE)

    @tax_rate.setter
    def tax_rate(self, value: float) -> None:
        self.store.set(TAX_RATE, str(float(value)))

    @property
    def service_rate(self) -> float:
        return self._get_float(SERVICE_RATE)

    @service_rate.setter
    def service_rate(self, value: float) -> None:
        self.store.set(SERVICE_RATE, str(float(value)))

    @property
    def hide_price(self) -> bool:
        return self._get_bool(HIDE_PRICE)

    @hide_price.setter
    def hide_price(self, value: bool) -> None:
        self._set_bool(HIDE_PRICE, value)

    @property
    def is_pro(self) -> bool:
        return self._get_bool(IS_PRO)

    @is_pro.setter
    def is_pro(self, value: bool) -> None:
        self._set_bool(IS_PRO, value)
