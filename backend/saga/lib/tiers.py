"""
Heimursaga API — Sponsorship Tier Slots
=========================================

Every Explorer Pro member has fixed tier slots. A slot has a label and an
allowed price range in dollars; `None` as max means uncapped.

    ONE_TIME   1 Torchbearer .. 5 Expedition Patron
    MONTHLY    1 Fellow Traveler .. 3 Expedition Ally
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from saga.models.enums import TierType

DEFAULT_LABEL = "Supporter"


@dataclass(frozen=True)
class TierSlot:
    slot: int
    label: str
    min_price: int
    max_price: Optional[int]
    default_price: int


TIER_SLOTS: Dict[str, List[TierSlot]] = {
    TierType.ONE_TIME.value: [
        TierSlot(1, "Torchbearer", 1, 15, 5),
        TierSlot(2, "Trail Guide", 15, 50, 25),
        TierSlot(3, "Pathfinder", 50, 150, 75),
        TierSlot(4, "Navigator", 150, 500, 250),
        TierSlot(5, "Expedition Patron", 500, None, 500),
    ],
    TierType.MONTHLY.value: [
        TierSlot(1, "Fellow Traveler", 1, 15, 5),
        TierSlot(2, "Journey Partner", 15, 50, 15),
        TierSlot(3, "Expedition Ally", 50, None, 50),
    ],
}

# Slots created for a member on upgrade
DEFAULT_SLOT_COUNT = {TierType.ONE_TIME.value: 3, TierType.MONTHLY.value: 2}


def get_slot(tier_type: str, slot: int) -> Optional[TierSlot]:
    for candidate in TIER_SLOTS.get(tier_type, []):
        if candidate.slot == slot:
            return candidate
    return None


def get_tier_label(tier_type: str, slot: int) -> str:
    found = get_slot(tier_type, slot)
    return found.label if found else DEFAULT_LABEL


def is_valid_tier_price(tier_type: str, slot: int, price: float) -> bool:
    """True when `price` (dollars) lies within the slot's inclusive range."""
    found = get_slot(tier_type, slot)
    if found is None:
        return False
    if price < found.min_price:
        return False
    return found.max_price is None or price <= found.max_price


def default_tiers() -> List[Tuple[str, TierSlot]]:
    """(type, slot) pairs created for a member on upgrade, in creation order."""
    return [
        (tier_type, slot)
        for tier_type, count in DEFAULT_SLOT_COUNT.items()
        for slot in TIER_SLOTS[tier_type][:count]
    ]
