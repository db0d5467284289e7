# tests/test_price_cache.py

"""Tests for the in-memory price snapshot cache."""

import unittest
from datetime import datetime
from unittest.mock import MagicMock, patch

from src.models.price_observation import PriceSnapshot
from src.storage.price_cache import PriceCache


def _snapshot(card_id: str = "abc", base: int | None = 199) -> PriceSnapshot:
    return PriceSnapshot(
        card_id=card_id,
        base_price_minor_units=base,
        foil_price_minor_units=None,
        etched_price_minor_units=None,
        fetched_at=datetime(2026, 2, 14, 2, 0),
    )


class TestPriceCache(unittest.TestCase):
    """TTL behaviour of PriceCache."""

    def test_miss_returns_none(self) -> None:
        self.assertIsNone(PriceCache(ttl=60).get("abc"))

    def test_store_then_get(self) -> None:
        cache = PriceCache(ttl=60)
        snap = _snapshot()
        cache.store(snap)
        self.assertIs(cache.get("abc"), snap)
        self.assertEqual(len(cache), 1)

    def test_store_overwrites_same_card(self) -> None:
        cache = PriceCache(ttl=60)
        cache.store(_snapshot(base=100))
        cache.store(_snapshot(base=250))
        cached = cache.get("abc")
        assert cached is not None
        self.assertEqual(cached.base_price_minor_units, 250)
        self.assertEqual(len(cache), 1)

    @patch("src.storage.price_cache.time.time")
    def test_entry_live_before_ttl(self, mock_time: MagicMock) -> None:
        cache = PriceCache(ttl=60)
        mock_time.return_value = 1000.0
        cache.store(_snapshot())
        mock_time.return_value = 1059.9
        self.assertIsNotNone(cache.get("abc"))

    @patch("src.storage.price_cache.time.time")
    def test_entry_expires_at_ttl(self, mock_time: MagicMock) -> None:
        """An entry exactly TTL seconds old is gone."""
        cache = PriceCache(ttl=60)
        mock_time.return_value = 1000.0
        cache.store(_snapshot())
        mock_time.return_value = 1060.0
        self.assertIsNone(cache.get("abc"))
        self.assertEqual(len(cache), 0)

    def test_clear_returns_count(self) -> None:
        cache = PriceCache(ttl=60)
        cache.store(_snapshot("a"))
        cache.store(_snapshot("b"))
        self.assertEqual(cache.clear(), 2)
        self.assertEqual(len(cache), 0)

    def test_default_ttl_is_one_day(self) -> None:
        cache = PriceCache()
        self.assertEqual(cache._ttl, 86400.0)


if __name__ == "__main__":
    unittest.main()
