# src/services/price_history_report.py

"""Per-finish price movement over a card's history window."""

from dataclasses import dataclass
from datetime import datetime, time, timedelta

from src.models.price_alert import FINISHES
from src.models.price_observation import PriceObservation
from src.services.alert_detector import percent_change

HISTORY_PERIODS: tuple[str, ...] = ("7", "30", "90", "365", "all")
DEFAULT_HISTORY_PERIOD = "30"

DIRECTION_UP = "up"
DIRECTION_DOWN = "down"
DIRECTION_STABLE = "stable"


@dataclass(frozen=True)
class FinishMovement:
    """First and last known price of one finish within the window."""

    finish: str
    start_minor_units: int
    end_minor_units: int

    @property
    def percent_change(self) -> float:
        if self.start_minor_units == 0:
            return 0.0
        return percent_change(self.start_minor_units, self.end_minor_units)

    @property
    def direction(self) -> str:
        if self.percent_change > 0:
            return DIRECTION_UP
        if self.percent_change < 0:
            return DIRECTION_DOWN
        return DIRECTION_STABLE


def period_start(period: str, now: datetime) -> datetime | None:
    """Start of the history window, ``None`` for ``"all"``.

    Windows begin at midnight ``period`` days before ``now``.
    """
    if period not in HISTORY_PERIODS:
        raise ValueError(
            f"History period must be one of {HISTORY_PERIODS}, got {period!r}"
        )
    if period == "all":
        return None
    start_day = (now - timedelta(days=int(period))).date()
    return datetime.combine(start_day, time.min)


def summarize_history(
    history: list[PriceObservation],
) -> list[FinishMovement]:
    """Movement per finish over ``history`` (oldest first).

    Finishes never priced in the window are left out.
    """
    movements = []
    for finish in FINISHES:
        prices = [
            obs.price_for_finish(finish)
            for obs in history
            if obs.price_for_finish(finish) is not None
        ]
        if prices:
            movements.append(FinishMovement(finish, prices[0], prices[-1]))
    return movements
