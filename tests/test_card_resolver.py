# tests/test_card_resolver.py

"""Tests for the Scryfall fuzzy name resolver."""

import unittest
from unittest.mock import MagicMock

from curl_cffi.requests.exceptions import (
    ConnectionError as CurlConnectionError,
)

from src.services.card_resolver import CardNameResolver, ResolvedCard
from src.services.errors import ResolutionError
from src.services.rate_limiter import RateLimiter


def _named_response(card_id: str, name: str) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = {
        "object": "card",
        "id": card_id,
        "name": name,
        "scryfall_uri": f"https://scryfall.com/card/{card_id}",
    }
    return resp


def _not_found() -> MagicMock:
    resp = MagicMock()
    resp.status_code = 404
    return resp


class TestCardNameResolver(unittest.TestCase):
    """Name resolution, caching and failure handling."""

    def setUp(self) -> None:
        self.session = MagicMock()
        self.resolver = CardNameResolver(
            RateLimiter(sleep=lambda _s: None), session=self.session,
        )

    def test_resolves_name(self) -> None:
        self.session.get.return_value = _named_response("id-1", "Sol Ring")
        resolved = self.resolver.resolve("sol ring")
        self.assertEqual(
            resolved,
            ResolvedCard(
                card_id="id-1",
                name="Sol Ring",
                uri="https://scryfall.com/card/id-1",
            ),
        )
        kwargs = self.session.get.call_args.kwargs
        self.assertEqual(kwargs["params"], {"fuzzy": "sol ring"})
        self.assertTrue(
            self.session.get.call_args.args[0].endswith("/cards/named")
        )

    def test_found_name_is_cached(self) -> None:
        self.session.get.return_value = _named_response("id-1", "Sol Ring")
        self.resolver.resolve("Sol Ring")
        self.resolver.resolve("Sol Ring")
        self.assertEqual(self.session.get.call_count, 1)

    def test_not_found_is_cached(self) -> None:
        self.session.get.return_value = _not_found()
        self.assertIsNone(self.resolver.resolve("Nonexistent"))
        self.assertIsNone(self.resolver.resolve("Nonexistent"))
        self.assertEqual(self.session.get.call_count, 1)

    def test_failure_returns_none_and_is_not_cached(self) -> None:
        self.session.get.side_effect = CurlConnectionError("refused")
        self.assertIsNone(self.resolver.resolve("Sol Ring"))
        self.assertEqual(self.session.get.call_count, 3)

        self.session.get.side_effect = None
        self.session.get.return_value = _named_response("id-1", "Sol Ring")
        resolved = self.resolver.resolve("Sol Ring")
        assert resolved is not None
        self.assertEqual(resolved.card_id, "id-1")

    def test_payload_without_id_is_a_miss(self) -> None:
        resp = MagicMock()
        resp.status_code = 200
        resp.json.return_value = {"object": "error"}
        self.session.get.return_value = resp
        self.assertIsNone(self.resolver.resolve("Sol Ring"))

    def test_strict_raises_on_miss(self) -> None:
        self.session.get.return_value = _not_found()
        with self.assertRaises(ResolutionError):
            self.resolver.resolve("Nonexistent", strict=True)

    def test_resolve_cards_maps_every_name(self) -> None:
        self.session.get.side_effect = [
            _named_response("id-1", "Sol Ring"),
            _not_found(),
        ]
        result = self.resolver.resolve_cards(["Sol Ring", "Nope"])
        self.assertEqual(set(result), {"Sol Ring", "Nope"})
        resolved = result["Sol Ring"]
        assert resolved is not None
        self.assertEqual(resolved.card_id, "id-1")
        self.assertIsNone(result["Nope"])

    def test_clear_cache(self) -> None:
        self.session.get.return_value = _named_response("id-1", "Sol Ring")
        self.resolver.resolve("Sol Ring")
        self.assertEqual(self.resolver.clear_cache(), 1)
        self.resolver.resolve("Sol Ring")
        self.assertEqual(self.session.get.call_count, 2)


if __name__ == "__main__":
    unittest.main()
