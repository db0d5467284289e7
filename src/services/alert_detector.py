# src/services/alert_detector.py

"""Turns freshly written price observations into price-change alerts."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from src.config.settings import Settings
from src.models.collection_item import CollectionItem
from src.models.price_alert import (
    ALERT_DECREASE,
    ALERT_INCREASE,
    FINISHES,
    PriceAlert,
)
from src.models.price_observation import PriceObservation
from src.storage.price_history_db import PriceHistoryDB

logger = logging.getLogger("price_sync.alerts")


def percent_change(previous: int, latest: int) -> float:
    """Signed percentage move from ``previous`` to ``latest`` (2 dp)."""
    return round((latest - previous) / previous * 100, 2)


def classify_change(
    change: float,
    increase_threshold: float = Settings.ALERT_INCREASE_THRESHOLD,
    decrease_threshold: float = Settings.ALERT_DECREASE_THRESHOLD,
) -> str | None:
    """Return ``increase``, ``decrease`` or ``None`` for a percent move.

    Thresholds are asymmetric: rises are flagged sooner than drops.
    """
    if change >= increase_threshold:
        return ALERT_INCREASE
    if change <= decrease_threshold:
        return ALERT_DECREASE
    return None


class PriceChangeAlertDetector:
    """Compares each held card's two latest observations per finish."""

    def __init__(
        self,
        db: PriceHistoryDB,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db = db
        self.settings = Settings()
        self._clock = clock
        self._dedup_window = timedelta(
            hours=self.settings.ALERT_DEDUP_WINDOW_HOURS
        )

    def detect_changes(self) -> list[PriceAlert]:
        """Create alerts for inventory holders of cards that moved.

        Only inventory (owned) holdings are alerted, never wishlists.
        Returns every alert created in this pass.
        """
        created: list[PriceAlert] = []
        for card_id in self.db.inventory_card_ids():
            moves = self._finish_moves(card_id)
            if not moves:
                continue
            for holder in self.db.inventory_holders(card_id):
                alert = self._alert_for_holder(holder, moves)
                if alert is not None:
                    created.append(alert)

        logger.info("Created %d price alerts", len(created))
        return created

    # ── Private helpers ──────────────────────────────────

    def _finish_moves(
        self, card_id: str,
    ) -> dict[str, tuple[str, int, int, float]]:
        """Threshold-crossing moves per finish for one card.

        Maps finish to ``(kind, previous, latest, percent)``.
        """
        observations = self.db.latest_observations(card_id, limit=2)
        if len(observations) < 2:
            return {}
        latest, previous = observations[0], observations[1]
        return self._compare(previous, latest)

    def _compare(
        self,
        previous: PriceObservation,
        latest: PriceObservation,
    ) -> dict[str, tuple[str, int, int, float]]:
        moves: dict[str, tuple[str, int, int, float]] = {}
        for finish in FINISHES:
            old = previous.price_for_finish(finish)
            new = latest.price_for_finish(finish)
            # No meaningful percentage without both prices
            if old is None or new is None or old <= 0:
                continue
            change = percent_change(old, new)
            kind = classify_change(
                change,
                self.settings.ALERT_INCREASE_THRESHOLD,
                self.settings.ALERT_DECREASE_THRESHOLD,
            )
            if kind is not None:
                moves[finish] = (kind, old, new, change)
        return moves

    def _alert_for_holder(
        self,
        holder: CollectionItem,
        moves: dict[str, tuple[str, int, int, float]],
    ) -> PriceAlert | None:
        now = self._clock()
        if self.db.recent_alert_exists(
            holder.owner_id, holder.card_id, self._dedup_window, now=now,
        ):
            logger.debug(
                "Skipping duplicate alert for owner %s card %s",
                holder.owner_id,
                holder.card_id,
            )
            return None

        finish = holder.finish
        if finish not in moves:
            finish = next(f for f in FINISHES if f in moves)
        kind, old, new, change = moves[finish]

        alert = self.db.create_price_alert(PriceAlert(
            owner_id=holder.owner_id,
            card_id=holder.card_id,
            alert_kind=kind,
            previous_price_minor_units=old,
            new_price_minor_units=new,
            percent_change=change,
            finish=finish,
            created_at=now,
        ))
        logger.info(
            "Price %s alert for owner %s: card %s (%s) %d -> %d (%+.2f%%)",
            kind,
            holder.owner_id,
            holder.card_id,
            finish,
            old,
            new,
            change,
        )
        return alert
