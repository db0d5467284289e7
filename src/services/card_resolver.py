# src/services/card_resolver.py

"""Resolves card names to Scryfall ids via fuzzy name search."""

from dataclasses import dataclass
from typing import Any

from curl_cffi import requests as curl_requests

from src.services.api_client import BaseApiClient, RetryPolicy
from src.services.errors import FetchError, ResolutionError
from src.services.rate_limiter import RateLimiter


@dataclass(frozen=True)
class ResolvedCard:
    """A card name matched to its Scryfall record."""

    card_id: str
    name: str
    uri: str


class CardNameResolver(BaseApiClient):
    """Fuzzy card-name lookup sharing the ``scryfall`` gate.

    Definitive answers (found or not found) are cached per instance;
    failures are not, so the name is tried again on the next call.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        retry_policy: RetryPolicy | None = None,
        session: curl_requests.Session | None = None,
    ) -> None:
        super().__init__(
            "scryfall",
            rate_limiter,
            retry_policy=retry_policy,
            session=session,
        )
        self._cache: dict[str, ResolvedCard | None] = {}

    def resolve_cards(
        self, card_names: list[str],
    ) -> dict[str, ResolvedCard | None]:
        """Map each name to its resolved card, or ``None``."""
        return {name: self.resolve(name) for name in card_names}

    def resolve(
        self, card_name: str, strict: bool = False,
    ) -> ResolvedCard | None:
        """Resolve one name.

        With ``strict`` a miss raises :class:`ResolutionError` instead
        of returning ``None``.
        """
        if card_name in self._cache:
            resolved = self._cache[card_name]
        else:
            resolved = self._resolve_single(card_name)

        if resolved is None and strict:
            raise ResolutionError(f"Could not resolve card '{card_name}'")
        return resolved

    def clear_cache(self) -> int:
        """Forget every cached resolution."""
        count = len(self._cache)
        self._cache.clear()
        return count

    def _resolve_single(self, card_name: str) -> ResolvedCard | None:
        url = f"{self.settings.SCRYFALL_API_BASE}/cards/named"
        try:
            data = self._get_json(
                url, {"fuzzy": card_name}, label=f"'{card_name}'",
            )
        except FetchError as exc:
            self.logger.error(
                "[scryfall] Could not resolve '%s': %s: %s",
                card_name,
                type(exc).__name__,
                exc,
            )
            return None

        if data is None:
            self.logger.warning(
                "[scryfall] Could not resolve card '%s' - not found",
                card_name,
            )
            self._cache[card_name] = None
            return None

        resolved = self._parse(card_name, data)
        if resolved is not None:
            self._cache[card_name] = resolved
        return resolved

    def _parse(self, card_name: str, data: Any) -> ResolvedCard | None:
        if not isinstance(data, dict) or not data.get("id"):
            self.logger.error(
                "[scryfall] Unexpected payload resolving '%s'", card_name,
            )
            return None
        return ResolvedCard(
            card_id=str(data["id"]),
            name=str(data.get("name", card_name)),
            uri=str(data.get("scryfall_uri", "")),
        )
