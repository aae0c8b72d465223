"""
Rate Reconciler
Builds a currency -> home-currency (TWD) table from two independent feeds.

Precedence (applied in merge_rate_tables, nowhere else):
  1. home currency seeded at 1.0
  2. global baseline feed fills every currency it quotes (broad coverage)
  3. regional authoritative feed overwrites what it reports (better accuracy)

Cross rate between two currencies is table[source] / table[target].
"""
from __future__ import annotations

import asyncio
import time
from typing import Dict, Mapping, Optional

import requests

import config
from utils.logger import get_logger

RateTable = Dict[str, float]


# ═══════════════════════════════════════════════════════
# PURE PARSERS
# ═══════════════════════════════════════════════════════

def parse_global_feed(payload: Mapping) -> RateTable:
    """
    Invert a home-denominated quote feed.

    The feed reports ``1 HOME = quote CODE``; the table stores
    ``1 CODE = 1/quote HOME``. Non-positive or non-numeric quotes are skipped.
    """
    table: RateTable = {}
    rates = (payload or {}).get('rates') or {}
    for code, quote in rates.items():
        try:
            quote = float(quote)
        except (TypeError, ValueError):
            continue
        if quote > 0:
            table[str(code).strip().upper()] = 1.0 / quote
    return table


def _to_rate(value: str) -> float:
    try:
        return float(value.strip())
    except (ValueError, AttributeError):
        return 0.0


def parse_regional_feed(text: str,
                        primary_column: int = None,
                        fallback_column: int = None) -> RateTable:
    """
    Parse the regional delimited feed (one currency per row, code in column 0).

    Uses the primary column, or the fallback column when the primary is
    missing or zero. Rows too short to hold the primary column (including
    the header) are ignored, as are rows with no positive value.
    """
    primary_column = config.REGIONAL_PRIMARY_COLUMN if primary_column is None else primary_column
    fallback_column = config.REGIONAL_FALLBACK_COLUMN if fallback_column is None else fallback_column

    table: RateTable = {}
    for line in (text or '').splitlines():
        cols = line.split(',')
        if len(cols) <= primary_column:
            continue

        code = cols[0].strip().upper()
        if not code:
            continue

        rate = _to_rate(cols[primary_column])
        if rate <= 0 and len(cols) > fallback_column:
            rate = _to_rate(cols[fallback_column])
        if rate > 0:
            table[code] = rate
    return table


def merge_rate_tables(*tables: Optional[Mapping[str, float]]) -> RateTable:
    """Rightmost wins. Missing (None) tables contribute nothing."""
    merged: RateTable = {}
    for table in tables:
        if table:
            merged.update(table)
    return merged


def cross_rate(table: Mapping[str, float], source: str, target: str) -> Optional[float]:
    """Units of ``target`` per 1 ``source``; None when either side is unknown."""
    source_rate = table.get((source or '').upper())
    target_rate = table.get((target or '').upper())
    if not source_rate or not target_rate:
        return None
    return source_rate / target_rate


# ═══════════════════════════════════════════════════════
# RECONCILER
# ═══════════════════════════════════════════════════════

class RateReconciler:
    """
    Fetches both feeds in parallel and keeps the merged table cached for
    RATES_CACHE_TTL_SECONDS. Never raises: a failed feed simply contributes
    nothing, and an unknown currency yields None.
    """

    def __init__(self, global_url: str = None, regional_url: str = None,
                 home_currency: str = None, timeout: float = None, cache_ttl: int = None):
        self.global_url = global_url or config.RATES_GLOBAL_URL
        self.regional_url = regional_url or config.RATES_REGIONAL_URL
        self.home_currency = (home_currency or config.HOME_CURRENCY).upper()
        self.timeout = timeout or config.RATES_TIMEOUT_SECONDS
        self.cache_ttl = config.RATES_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl
        self.logger = get_logger()

        self._table: Optional[RateTable] = None
        self._fetched_at: float = 0.0

    def _fetch_global(self) -> RateTable:
        response = requests.get(self.global_url, timeout=self.timeout)
        response.raise_for_status()
        return parse_global_feed(response.json())

    def _fetch_regional(self) -> RateTable:
        response = requests.get(self.regional_url, timeout=self.timeout)
        response.raise_for_status()
        response.encoding = response.encoding or 'utf-8'
        return parse_regional_feed(response.text)

    async def fetch_table(self, force: bool = False) -> RateTable:
        """Return the merged table, refetching when the cache is stale or ``force`` is set."""
        if not force and self._table is not None and time.time() - self._fetched_at < self.cache_ttl:
            return dict(self._table)

        global_result, regional_result = await asyncio.gather(
            asyncio.to_thread(self._fetch_global),
            asyncio.to_thread(self._fetch_regional),
            return_exceptions=True,
        )

        if isinstance(global_result, BaseException):
            self.logger.warning(f"Global rate feed failed: {global_result}", component="Rates")
            global_result = None
        if isinstance(regional_result, BaseException):
            self.logger.warning(f"Regional rate feed failed: {regional_result}", component="Rates")
            regional_result = None

        table = merge_rate_tables({self.home_currency: 1.0}, global_result, regional_result)
        self.logger.info(
            f"Rate table built: {len(table)} currencies "
            f"(global={len(global_result or {})}, regional={len(regional_result or {})})",
            component="Rates"
        )

        # Only cache when at least one feed answered
        if global_result or regional_result:
            self._table = table
            self._fetched_at = time.time()
        return dict(table)

    async def reconcile(self, source: str, target: str) -> Optional[float]:
        """Cross rate ``source`` -> ``target``, or None so the caller keeps its own estimate."""
        table = await self.fetch_table()
        rate = cross_rate(table, source, target)
        if rate is None:
            self.logger.warning(
                f"No reconciled rate for {source}->{target}; keeping prior estimate",
                component="Rates"
            )
        return rate
