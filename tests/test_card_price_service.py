# tests/test_card_price_service.py

"""Tests for the Scryfall price fetch service."""

import unittest
from typing import Any
from unittest.mock import MagicMock, patch

from src.services.card_price_service import CardPriceService, to_minor_units
from src.services.errors import InvalidResponseError, RateLimitError
from src.services.rate_limiter import RateLimiter
from src.storage.price_cache import PriceCache

CARD_ID = "0000579f-7b35-4ed3-b44c-db2a538066fe"


def _card_response(
    usd: Any = "1.99", usd_foil: Any = None, usd_etched: Any = None,
) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = {
        "object": "card",
        "id": CARD_ID,
        "name": "Fury Sliver",
        "prices": {
            "usd": usd,
            "usd_foil": usd_foil,
            "usd_etched": usd_etched,
            "eur": "0.25",
            "tix": "0.02",
        },
    }
    return resp


class TestToMinorUnits(unittest.TestCase):
    """Round-half-up conversion from dollars to cents."""

    def test_rounds_half_up(self) -> None:
        self.assertEqual(to_minor_units("1.999"), 200)
        self.assertEqual(to_minor_units("2.995"), 300)
        self.assertEqual(to_minor_units("0.125"), 13)

    def test_exact_values(self) -> None:
        self.assertEqual(to_minor_units("1.99"), 199)
        self.assertEqual(to_minor_units("0.00"), 0)
        self.assertEqual(to_minor_units("1234.50"), 123450)

    def test_numeric_input(self) -> None:
        """Floats go through their decimal string form."""
        self.assertEqual(to_minor_units(2.5), 250)
        self.assertEqual(to_minor_units(3), 300)

    def test_none_stays_none(self) -> None:
        """A missing price is not a zero price."""
        self.assertIsNone(to_minor_units(None))

    def test_garbage_raises(self) -> None:
        for value in ("abc", "", "NaN", "Infinity"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidResponseError):
                    to_minor_units(value)


class TestCardPriceService(unittest.TestCase):
    """Fetching, parsing and caching card prices."""

    def setUp(self) -> None:
        self.session = MagicMock()
        self.cache = PriceCache(ttl=3600)
        self.service = CardPriceService(
            RateLimiter(sleep=lambda _s: None),
            cache=self.cache,
            session=self.session,
        )

    def test_fetch_parses_all_finishes(self) -> None:
        self.session.get.return_value = _card_response(
            usd="1.99", usd_foil=None, usd_etched="12.50",
        )
        snapshot = self.service.fetch(CARD_ID)
        self.assertIsNotNone(snapshot)
        assert snapshot is not None
        self.assertEqual(snapshot.card_id, CARD_ID)
        self.assertEqual(snapshot.base_price_minor_units, 199)
        self.assertIsNone(snapshot.foil_price_minor_units)
        self.assertEqual(snapshot.etched_price_minor_units, 1250)
        self.assertTrue(snapshot.has_any_price)

    def test_requests_card_endpoint(self) -> None:
        self.session.get.return_value = _card_response()
        self.service.fetch(CARD_ID)
        url = self.session.get.call_args.args[0]
        self.assertEqual(
            url, f"https://api.scryfall.com/cards/{CARD_ID}",
        )

    def test_all_null_prices_is_still_a_snapshot(self) -> None:
        """No price data is a valid, storable answer."""
        self.session.get.return_value = _card_response(usd=None)
        snapshot = self.service.fetch(CARD_ID)
        assert snapshot is not None
        self.assertFalse(snapshot.has_any_price)
        self.assertEqual(len(self.cache), 1)

    def test_missing_prices_block_means_no_prices(self) -> None:
        resp = MagicMock()
        resp.status_code = 200
        resp.json.return_value = {"object": "card", "id": CARD_ID}
        self.session.get.return_value = resp
        snapshot = self.service.fetch(CARD_ID)
        assert snapshot is not None
        self.assertFalse(snapshot.has_any_price)

    def test_not_found_is_not_cached(self) -> None:
        """A 404 returns None and is asked for again next time."""
        resp = MagicMock()
        resp.status_code = 404
        self.session.get.return_value = resp
        self.assertIsNone(self.service.fetch(CARD_ID))
        self.assertIsNone(self.service.fetch(CARD_ID))
        self.assertEqual(self.session.get.call_count, 2)
        self.assertEqual(len(self.cache), 0)

    def test_cache_hit_skips_network(self) -> None:
        self.session.get.return_value = _card_response()
        first = self.service.fetch(CARD_ID)
        second = self.service.fetch(CARD_ID)
        self.assertEqual(first, second)
        self.assertEqual(self.session.get.call_count, 1)

    def test_expired_entry_is_refetched(self) -> None:
        self.session.get.return_value = _card_response()
        with patch("src.storage.price_cache.time.time") as mock_time:
            mock_time.return_value = 1000.0
            self.service.fetch(CARD_ID)
            mock_time.return_value = 1000.0 + 3600
            self.service.fetch(CARD_ID)
        self.assertEqual(self.session.get.call_count, 2)

    def test_clear_cache_forces_refetch(self) -> None:
        self.session.get.return_value = _card_response()
        self.service.fetch(CARD_ID)
        self.assertEqual(self.service.clear_cache(), 1)
        self.service.fetch(CARD_ID)
        self.assertEqual(self.session.get.call_count, 2)

    def test_non_object_payload_is_invalid(self) -> None:
        resp = MagicMock()
        resp.status_code = 200
        resp.json.return_value = ["not", "a", "card"]
        self.session.get.return_value = resp
        with self.assertRaises(InvalidResponseError):
            self.service.fetch(CARD_ID)

    def test_unparseable_price_is_invalid(self) -> None:
        self.session.get.return_value = _card_response(usd="n/a")
        with self.assertRaises(InvalidResponseError):
            self.service.fetch(CARD_ID)
        self.assertEqual(len(self.cache), 0)

    def test_rate_limit_propagates_after_retries(self) -> None:
        resp = MagicMock()
        resp.status_code = 429
        self.session.get.return_value = resp
        with self.assertRaises(RateLimitError):
            self.service.fetch(CARD_ID)
        self.assertEqual(self.session.get.call_count, 4)

    def test_default_cache_is_created(self) -> None:
        service = CardPriceService(
            RateLimiter(sleep=lambda _s: None), session=self.session,
        )
        self.assertIsInstance(service.cache, PriceCache)


if __name__ == "__main__":
    unittest.main()
