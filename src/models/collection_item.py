# src/models/collection_item.py

"""Collection holdings read by the sync pipeline."""

from dataclasses import dataclass

from src.models.price_alert import FINISH_ETCHED, FINISH_FOIL, FINISH_NORMAL

COLLECTION_INVENTORY = "inventory"
COLLECTION_WISHLIST = "wishlist"
COLLECTION_TYPES: tuple[str, ...] = (COLLECTION_INVENTORY, COLLECTION_WISHLIST)


def finish_for_treatment(treatment: str | None) -> str:
    """Map a free-text treatment ("Foil", "Showcase"...) to a priced finish."""
    value = (treatment or "").strip().lower()
    if value == FINISH_FOIL:
        return FINISH_FOIL
    if value == FINISH_ETCHED:
        return FINISH_ETCHED
    return FINISH_NORMAL


@dataclass
class CollectionItem:
    """One card in an owner's inventory (owned) or wishlist (wanted)."""

    owner_id: int
    card_id: str
    collection_type: str = COLLECTION_INVENTORY
    quantity: int = 1
    treatment: str | None = None

    @property
    def finish(self) -> str:
        """The price finish that values this holding."""
        return finish_for_treatment(self.treatment)
