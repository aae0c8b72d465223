"""
Tests for exchange-rate reconciliation.
Both feeds are mocked at requests.get; no network access.
"""
import asyncio
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

# Ensure src/ is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from rates.rate_reconciler import (
    RateReconciler, cross_rate, merge_rate_tables, parse_global_feed, parse_regional_feed,
)

GLOBAL_URL = "https://global.example/latest/TWD"
REGIONAL_URL = "https://regional.example/day.csv"

HEADER = "幣別,匯率,現金,即期,遠期10天,遠期30天,遠期60天,遠期90天,遠期120天,遠期150天,遠期180天,匯率,現金,即期,遠期10天,遠期30天,遠期60天,遠期90天,遠期120天,遠期150天,遠期180天"


def regional_row(code, primary="", fallback=""):
    cols = [""] * 21
    cols[0] = code
    cols[1] = "本行買入"
    cols[2] = fallback
    cols[11] = "本行賣出"
    cols[12] = primary
    return ",".join(cols)


def regional_csv(*rows):
    return "\n".join((HEADER,) + rows)


def _json_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


def _text_response(text):
    response = MagicMock()
    response.text = text
    response.encoding = "utf-8"
    return response


class TestParsers(unittest.TestCase):

    def test_global_feed_is_inverted(self):
        table = parse_global_feed({"rates": {"USD": 0.031, "EGP": 0.98, "TWD": 1}})
        self.assertAlmostEqual(table["USD"], 1 / 0.031)
        self.assertAlmostEqual(table["EGP"], 1 / 0.98)
        self.assertAlmostEqual(table["TWD"], 1.0)

    def test_global_feed_skips_non_positive_and_garbage(self):
        table = parse_global_feed({"rates": {"AAA": 0, "BBB": -1, "CCC": "n/a", "DDD": None, "EEE": "2"}})
        self.assertEqual(set(table), {"EEE"})
        self.assertAlmostEqual(table["EEE"], 0.5)

    def test_global_feed_missing_rates(self):
        self.assertEqual(parse_global_feed({}), {})
        self.assertEqual(parse_global_feed(None), {})

    def test_regional_primary_column(self):
        table = parse_regional_feed(regional_csv(regional_row("USD", primary="32.1", fallback="32.6")))
        self.assertEqual(table, {"USD": 32.1})

    def test_regional_falls_back_when_primary_zero_or_missing(self):
        table = parse_regional_feed(regional_csv(
            regional_row("THB", primary="0", fallback="0.98"),
            regional_row("IDR", primary="", fallback="0.0023"),
        ))
        self.assertEqual(table, {"THB": 0.98, "IDR": 0.0023})

    def test_regional_ignores_short_and_empty_rows(self):
        text = regional_csv(
            "USD,32.1,32.6",
            regional_row("ZAR", primary="0", fallback="0"),
            "",
        )
        self.assertEqual(parse_regional_feed(text), {})

    def test_merge_rightmost_wins(self):
        merged = merge_rate_tables({"TWD": 1.0}, {"EGP": 1.02, "USD": 32.0}, {"USD": 32.5}, None)
        self.assertEqual(merged, {"TWD": 1.0, "EGP": 1.02, "USD": 32.5})

    def test_cross_rate(self):
        table = {"TWD": 1.0, "JPY": 0.2, "USD": 32.0}
        self.assertAlmostEqual(cross_rate(table, "USD", "JPY"), 160.0)
        self.assertAlmostEqual(cross_rate(table, "jpy", "twd"), 0.2)
        self.assertIsNone(cross_rate(table, "EGP", "TWD"))
        self.assertIsNone(cross_rate(table, "TWD", "EGP"))


class TestRateReconciler(unittest.TestCase):

    def _reconciler(self):
        return RateReconciler(
            global_url=GLOBAL_URL, regional_url=REGIONAL_URL,
            home_currency="TWD", timeout=1, cache_ttl=600,
        )

    def _fake_get(self, global_payload, regional_text):
        def fake_get(url, timeout=None):
            if isinstance(global_payload, Exception) and url == GLOBAL_URL:
                raise global_payload
            if isinstance(regional_text, Exception) and url == REGIONAL_URL:
                raise regional_text
            if url == GLOBAL_URL:
                return _json_response(global_payload)
            return _text_response(regional_text)
        return fake_get

    def test_global_baseline_covers_uncommon_currency(self):
        fake = self._fake_get({"rates": {"EGP": 0.98}}, regional_csv(regional_row("USD", primary="32.0")))
        with patch("rates.rate_reconciler.requests.get", side_effect=fake):
            table = asyncio.run(self._reconciler().fetch_table())
        self.assertAlmostEqual(table["EGP"], 1 / 0.98)
        self.assertEqual(table["TWD"], 1.0)

    def test_regional_overrides_global(self):
        fake = self._fake_get({"rates": {"EGP": 0.98}}, regional_csv(regional_row("EGP", primary="1.05")))
        with patch("rates.rate_reconciler.requests.get", side_effect=fake):
            table = asyncio.run(self._reconciler().fetch_table())
        self.assertEqual(table["EGP"], 1.05)

    def test_one_feed_failing_does_not_block_the_other(self):
        fake = self._fake_get(requests.ConnectionError("down"), regional_csv(regional_row("USD", primary="32.0")))
        with patch("rates.rate_reconciler.requests.get", side_effect=fake):
            table = asyncio.run(self._reconciler().fetch_table())
        self.assertEqual(table, {"TWD": 1.0, "USD": 32.0})

        fake = self._fake_get({"rates": {"USD": 0.03125}}, requests.Timeout("slow"))
        with patch("rates.rate_reconciler.requests.get", side_effect=fake):
            table = asyncio.run(self._reconciler().fetch_table())
        self.assertAlmostEqual(table["USD"], 32.0)

    def test_total_failure_yields_none(self):
        fake = self._fake_get(requests.ConnectionError("down"), requests.ConnectionError("down"))
        with patch("rates.rate_reconciler.requests.get", side_effect=fake):
            self.assertIsNone(asyncio.run(self._reconciler().reconcile("USD", "KRW")))

    def test_reconcile_cross_rate(self):
        fake = self._fake_get(
            {"rates": {"KRW": 42.0, "JPY": 4.6}},
            regional_csv(regional_row("JPY", primary="0.2")),
        )
        with patch("rates.rate_reconciler.requests.get", side_effect=fake):
            rate = asyncio.run(self._reconciler().reconcile("JPY", "KRW"))
        self.assertAlmostEqual(rate, 0.2 * 42.0)

    def test_table_is_cached(self):
        reconciler = self._reconciler()
        fake = self._fake_get({"rates": {"USD": 0.03125}}, regional_csv())
        with patch("rates.rate_reconciler.requests.get", side_effect=fake) as mock_get:
            asyncio.run(reconciler.fetch_table())
            asyncio.run(reconciler.fetch_table())
            self.assertEqual(mock_get.call_count, 2)  # one per feed, once
            asyncio.run(reconciler.fetch_table(force=True))
            self.assertEqual(mock_get.call_count, 4)


if __name__ == "__main__":
    unittest.main()
