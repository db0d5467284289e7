# src/services/card_price_service.py

"""Fetches current market prices for one card from the Scryfall API.

Scryfall returns prices in dollars as optional decimal strings
(``"prices": {"usd": "1.99", "usd_foil": null, ...}``).  They are
converted to integer cents with round-half-up so that downstream
arithmetic never touches floats.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

from curl_cffi import requests as curl_requests

from src.models.price_observation import PriceSnapshot
from src.services.api_client import BaseApiClient, RetryPolicy
from src.services.errors import InvalidResponseError
from src.services.rate_limiter import RateLimiter
from src.storage.price_cache import PriceCache

_PRICE_FIELDS: dict[str, str] = {
    "base_price_minor_units": "usd",
    "foil_price_minor_units": "usd_foil",
    "etched_price_minor_units": "usd_etched",
}


def to_minor_units(value: Any) -> int | None:
    """Convert a major-unit decimal string to minor units.

    ``"1.999"`` becomes ``200`` and ``"2.995"`` becomes ``300``.
    ``None`` stays ``None``: a missing price is not a zero price.
    Raises :class:`InvalidResponseError` for non-numeric input.
    """
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidResponseError(
            f"Unparseable price value: {value!r}", "scryfall"
        ) from exc
    if not amount.is_finite():
        raise InvalidResponseError(
            f"Unparseable price value: {value!r}", "scryfall"
        )
    cents = (amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


class CardPriceService(BaseApiClient):
    """Single-card price lookup with caching and retries."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        cache: PriceCache | None = None,
        retry_policy: RetryPolicy | None = None,
        session: curl_requests.Session | None = None,
    ) -> None:
        super().__init__(
            "scryfall",
            rate_limiter,
            retry_policy=retry_policy,
            session=session,
        )
        self.cache = cache if cache is not None else PriceCache()

    def fetch(self, card_id: str) -> PriceSnapshot | None:
        """Return the card's current prices, or ``None`` if unknown.

        Raises :class:`RateLimitError` or :class:`NetworkError` once
        retries are exhausted, and :class:`RequestTimeoutError` or
        :class:`InvalidResponseError` straight away.
        """
        cached = self.cache.get(card_id)
        if cached is not None:
            return cached

        url = f"{self.settings.SCRYFALL_API_BASE}/cards/{quote(card_id)}"
        data = self._get_json(url, label=f"card {card_id}")
        if data is None:
            self.logger.info(
                "[scryfall] Card %s not found", card_id,
            )
            return None

        snapshot = self._parse_prices(card_id, data)
        self.cache.store(snapshot)
        return snapshot

    def clear_cache(self) -> int:
        """Drop every cached snapshot."""
        return self.cache.clear()

    def _parse_prices(self, card_id: str, data: Any) -> PriceSnapshot:
        """Build a snapshot from a Scryfall card object."""
        if not isinstance(data, dict):
            raise InvalidResponseError(
                f"Expected a card object for {card_id}, "
                f"got {type(data).__name__}",
                self.service_name,
            )
        prices = data.get("prices") or {}
        if not isinstance(prices, dict):
            raise InvalidResponseError(
                f"Malformed prices block for {card_id}",
                self.service_name,
            )

        values = {
            field: to_minor_units(prices.get(key))
            for field, key in _PRICE_FIELDS.items()
        }
        snapshot = PriceSnapshot(
            card_id=card_id,
            fetched_at=datetime.now(),
            **values,
        )
        if not snapshot.has_any_price:
            self.logger.info(
                "[scryfall] Card %s has no price data available",
                card_id,
            )
        return snapshot
