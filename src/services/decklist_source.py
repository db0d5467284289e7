# src/services/decklist_source.py

"""EDHREC top commanders and average decklists.

EDHREC serves its page data as JSON under ``json.edhrec.com``.  When a
commander has no JSON page yet, the public HTML page still embeds the
same payload in its ``__NEXT_DATA__`` script tag, which is used as a
fallback.
"""

import json
from dataclasses import dataclass
from typing import Any

from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from src.services.api_client import BaseApiClient, RetryPolicy
from src.services.card_resolver import CardNameResolver
from src.services.errors import DecklistParseError
from src.services.rate_limiter import RateLimiter


@dataclass(frozen=True)
class Commander:
    """A commander from the EDHREC weekly ranking."""

    name: str
    rank: int
    url: str


@dataclass
class DecklistCard:
    """One card of a commander's average decklist."""

    name: str
    category: str
    is_commander: bool
    card_id: str | None = None
    card_uri: str | None = None


def _dig(data: Any, *keys: str) -> Any:
    """Follow nested dict keys, ``None`` as soon as a level is not a dict."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _cardlists(data: Any) -> list[dict[str, Any]]:
    """Dig ``container.json_dict.cardlists`` out of an EDHREC payload.

    Raises :class:`DecklistParseError` when a level has the wrong shape.
    """
    cardlists = _dig(data, "container", "json_dict", "cardlists")
    if cardlists is None:
        return []
    if not isinstance(cardlists, list):
        raise DecklistParseError(
            f"Expected a list of cardlists, got {type(cardlists).__name__}"
        )
    return [c for c in cardlists if isinstance(c, dict)]


def _cardviews(cardlist: dict[str, Any]) -> list[Any]:
    views = cardlist.get("cardviews")
    if views is None:
        return []
    if not isinstance(views, list):
        raise DecklistParseError(
            f"Expected a list of cardviews, got {type(views).__name__}"
        )
    return views


class DecklistSource(BaseApiClient):
    """Fetches commander rankings and decklists behind the ``edhrec`` gate."""

    TOP_COMMANDERS_PATH = "commanders/week.json"

    def __init__(
        self,
        rate_limiter: RateLimiter,
        resolver: CardNameResolver,
        retry_policy: RetryPolicy | None = None,
        session: curl_requests.Session | None = None,
        page_session: curl_requests.Session | None = None,
    ) -> None:
        super().__init__(
            "edhrec",
            rate_limiter,
            retry_policy=retry_policy,
            session=session,
        )
        self.resolver = resolver
        # Browser-impersonating session for the HTML pages
        self.page_session = page_session or curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )

    def close(self) -> None:
        """Release both HTTP sessions."""
        super().close()
        self.page_session.close()

    # ── Top commanders ───────────────────────────────────

    def fetch_top_commanders(self) -> list[Commander]:
        """Return this week's top commanders (at most 20)."""
        url = f"{self.settings.EDHREC_JSON_BASE}/{self.TOP_COMMANDERS_PATH}"
        data = self._get_json(url, label="top commanders")
        if data is None:
            raise DecklistParseError("Top commanders page not found")

        cardlists = _cardlists(data)
        cardviews = _cardviews(cardlists[0]) if cardlists else []
        if not cardviews:
            self.logger.error("[edhrec] No cardviews found in JSON")
            raise DecklistParseError(
                "Could not find commander data in JSON - "
                "API structure may have changed"
            )

        expected = self.settings.EDHREC_TOP_COMMANDER_COUNT
        commanders = [
            Commander(
                name=view["name"],
                rank=int(view.get("rank") or position),
                url=f"{self.settings.EDHREC_BASE_URL}{view.get('url', '')}",
            )
            for position, view in enumerate(cardviews[:expected], 1)
            if isinstance(view, dict) and view.get("name")
        ]
        if not commanders:
            raise DecklistParseError("No commanders could be parsed from JSON")
        if len(commanders) < expected:
            self.logger.warning(
                "[edhrec] Found only %d commanders (expected %d)",
                len(commanders),
                expected,
            )
        return commanders

    # ── Decklists ────────────────────────────────────────

    def fetch_commander_decklist(
        self, commander_url: str,
    ) -> list[DecklistCard]:
        """Fetch a commander's average decklist and resolve card ids.

        Raises :class:`DecklistParseError` unless exactly
        ``Settings.DECKLIST_SIZE`` cards are found.
        """
        slug = commander_url.rstrip("/").split("/")[-1]
        if not slug:
            raise ValueError(f"Not a commander URL: {commander_url!r}")

        data = self._get_json(
            f"{self.settings.EDHREC_JSON_BASE}/commanders/{slug}.json",
            label=f"decklist {slug}",
        )
        if data is None:
            self.logger.info(
                "[edhrec] No JSON page for %s, reading HTML page", slug,
            )
            data = self._fetch_page_data(slug)

        cards = self._parse_decklist(data)
        resolved = self.resolver.resolve_cards([c.name for c in cards])
        for card in cards:
            match = resolved.get(card.name)
            if match is not None:
                card.card_id = match.card_id
                card.card_uri = match.uri
        return cards

    def _fetch_page_data(self, slug: str) -> dict[str, Any]:
        """Extract the embedded page payload from the HTML page."""
        url = f"{self.settings.EDHREC_BASE_URL}/commanders/{slug}"
        html = self._get_text(
            url,
            headers={"Referer": self.settings.EDHREC_BASE_URL},
            session=self.page_session,
            label=f"page {slug}",
        )
        if html is None:
            raise DecklistParseError(f"Commander '{slug}' not found")

        soup = BeautifulSoup(html, "lxml")
        script = soup.find("script", id="__NEXT_DATA__")
        if script is None or not script.string:
            raise DecklistParseError(
                f"No embedded page data for commander '{slug}'"
            )
        try:
            payload = json.loads(script.string)
        except json.JSONDecodeError as exc:
            raise DecklistParseError(
                f"Embedded page data for '{slug}' is not JSON: {exc}"
            ) from exc
        data = _dig(payload, "props", "pageProps", "data")
        if not isinstance(data, dict):
            raise DecklistParseError(
                f"Unexpected page data layout for '{slug}'"
            )
        return data

    def _parse_decklist(self, data: Any) -> list[DecklistCard]:
        cardlists = _cardlists(data)
        if not cardlists:
            self.logger.error("[edhrec] No cardlists found in JSON")
            raise DecklistParseError(
                "Could not find decklist data in JSON - "
                "API structure may have changed"
            )

        cards: list[DecklistCard] = []
        for cardlist in cardlists:
            category = cardlist.get("tag") or "Unknown"
            is_commander = category.lower() == "commanders"
            for view in _cardviews(cardlist):
                if isinstance(view, dict) and view.get("name"):
                    cards.append(DecklistCard(
                        name=view["name"],
                        category=category,
                        is_commander=is_commander,
                    ))

        expected = self.settings.DECKLIST_SIZE
        if len(cards) != expected:
            self.logger.warning(
                "[edhrec] Decklist contains %d cards (expected %d)",
                len(cards),
                expected,
            )
            qualifier = "incomplete" if len(cards) < expected else "too large"
            raise DecklistParseError(
                f"Decklist {qualifier}: {len(cards)} cards "
                f"(expected {expected})"
            )
        return cards
