# src/models/price_alert.py

"""Price-change alert model."""

from dataclasses import dataclass
from datetime import datetime

ALERT_INCREASE = "increase"
ALERT_DECREASE = "decrease"

FINISH_NORMAL = "normal"
FINISH_FOIL = "foil"
FINISH_ETCHED = "etched"

# Order in which finishes are evaluated for a card
FINISHES: tuple[str, ...] = (FINISH_NORMAL, FINISH_FOIL, FINISH_ETCHED)


@dataclass
class PriceAlert:
    """A significant price move on a card held by ``owner_id``."""

    owner_id: int
    card_id: str
    alert_kind: str
    previous_price_minor_units: int
    new_price_minor_units: int
    percent_change: float
    finish: str
    created_at: datetime
    dismissed: bool = False
    dismissed_at: datetime | None = None
    id: int | None = None
