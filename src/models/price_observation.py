# src/models/price_observation.py

"""Card price models: a fetched snapshot and its persisted observation."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PriceSnapshot:
    """Prices for one card as returned by the pricing API.

    All prices are in minor currency units (cents); ``None`` means the
    card has no listed price for that finish.
    """

    card_id: str
    base_price_minor_units: int | None
    foil_price_minor_units: int | None
    etched_price_minor_units: int | None
    fetched_at: datetime

    @property
    def has_any_price(self) -> bool:
        """True when at least one finish carries a price."""
        return any(
            p is not None
            for p in (
                self.base_price_minor_units,
                self.foil_price_minor_units,
                self.etched_price_minor_units,
            )
        )


@dataclass
class PriceObservation:
    """A single persisted price row for a card at a point in time."""

    card_id: str
    base_price_minor_units: int | None
    foil_price_minor_units: int | None
    etched_price_minor_units: int | None
    observed_at: datetime
    id: int | None = None

    def price_for_finish(self, finish: str) -> int | None:
        """Return the price for ``normal``, ``foil`` or ``etched``."""
        if finish == "foil":
            return self.foil_price_minor_units
        if finish == "etched":
            return self.etched_price_minor_units
        return self.base_price_minor_units
