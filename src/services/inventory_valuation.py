# src/services/inventory_valuation.py

"""Values an owner's inventory, today and day by day over a period."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from src.models.collection_item import COLLECTION_INVENTORY, CollectionItem
from src.models.price_alert import FINISH_NORMAL
from src.models.price_observation import PriceObservation
from src.services.alert_detector import percent_change
from src.storage.price_history_db import PriceHistoryDB


@dataclass
class InventoryValue:
    """Totals for one owner's inventory, in minor units."""

    total_value_minor_units: int = 0
    total_cards: int = 0
    valued_cards: int = 0
    excluded_cards: int = 0
    last_updated: datetime | None = None


def unit_price(
    item: CollectionItem, observation: PriceObservation | None,
) -> int | None:
    """Price of one copy; foil and etched fall back to the base price."""
    if observation is None:
        return None
    price = observation.price_for_finish(item.finish)
    if price is None and item.finish != FINISH_NORMAL:
        price = observation.base_price_minor_units
    return price


class InventoryValueCalculator:
    """Sums quantity times unit price over an owner's inventory.

    Cards without any usable price are counted in ``excluded_cards``.
    """

    def __init__(self, db: PriceHistoryDB) -> None:
        self.db = db

    def calculate(self, owner_id: int) -> InventoryValue:
        value = InventoryValue()
        items = self.db.collection_items_for(owner_id, COLLECTION_INVENTORY)
        for item in items:
            value.total_cards += item.quantity
            observation = self.db.latest_observation(item.card_id)
            price = unit_price(item, observation)
            if price is None or observation is None:
                value.excluded_cards += item.quantity
                continue

            value.valued_cards += item.quantity
            value.total_value_minor_units += price * item.quantity
            if (
                value.last_updated is None
                or observation.observed_at > value.last_updated
            ):
                value.last_updated = observation.observed_at
        return value


TIMELINE_PERIODS: tuple[int, ...] = (7, 30, 90)
DEFAULT_TIMELINE_DAYS = 30


@dataclass(frozen=True)
class TimelinePoint:
    day: date
    value_minor_units: int


@dataclass
class InventoryTimeline:
    """Daily inventory values, oldest day first, with a change summary."""

    points: list[TimelinePoint] = field(default_factory=list)

    @property
    def start_value(self) -> int:
        return self.points[0].value_minor_units if self.points else 0

    @property
    def end_value(self) -> int:
        return self.points[-1].value_minor_units if self.points else 0

    @property
    def change(self) -> int:
        return self.end_value - self.start_value

    @property
    def percent_change(self) -> float:
        if self.start_value == 0:
            return 0.0
        return percent_change(self.start_value, self.end_value)


class InventoryValueTimeline:
    """Reconstructs what an owner's inventory was worth on each past day.

    A day is valued with the newest observation made before the end of
    that day.  Items with no observation yet contribute nothing.
    """

    def __init__(
        self,
        db: PriceHistoryDB,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db = db
        self._clock = clock

    def build(
        self, owner_id: int, days: int = DEFAULT_TIMELINE_DAYS,
    ) -> InventoryTimeline:
        """Values from ``days`` days ago through today, inclusive."""
        if days not in TIMELINE_PERIODS:
            raise ValueError(
                f"Timeline period must be one of {TIMELINE_PERIODS}, "
                f"got {days}"
            )
        today = self._clock().date()
        items = self.db.collection_items_for(owner_id, COLLECTION_INVENTORY)
        timeline = InventoryTimeline()
        for offset in range(days, -1, -1):
            day = today - timedelta(days=offset)
            cutoff = datetime.combine(day + timedelta(days=1), time.min)
            total = 0
            for item in items:
                observation = self.db.latest_observation_before(
                    item.card_id, cutoff,
                )
                price = unit_price(item, observation)
                if price is not None:
                    total += price * item.quantity
            timeline.points.append(TimelinePoint(day, total))
        return timeline
