"""
Prize Catalog - Source of Truth (SOT)
=====================================
Every prize the mystery box can award is declared here exactly once.

- ``value`` is in minor currency units (cents).
- ``glow`` is the visual rarity tier shown on the board.
- ``box_count`` is how many of the board's boxes hold the prize. The board
  layout is this list expanded in declared order, so reordering entries
  reassigns box numbers.
"""

from enum import Enum
from typing import TypedDict

# =============================================================================
# 1. ENUMS
# =============================================================================

class ClaimStatus(str, Enum):
    """Prize claim lifecycle states."""
    PENDING_ADMIN_OPEN = "PENDING_ADMIN_OPEN"
    OPENED = "OPENED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PrizeGlow(str, Enum):
    """Visual rarity tier."""
    GOLD = "gold"
    PURPLE = "purple"
    BLUE = "blue"
    GREEN = "green"


# Admin listing filter -> claim status
CLAIM_FILTER_STATUS: dict[str, str | None] = {
    "all": None,
    "pending": ClaimStatus.PENDING_ADMIN_OPEN.value,
    "opened": ClaimStatus.OPENED.value,
    "delivered": ClaimStatus.DELIVERED.value,
}


# =============================================================================
# 2. CATALOG
# =============================================================================

class PrizeDefinition(TypedDict):
    name: str
    value: int
    glow: str
    box_count: int


PRIZE_CATALOG: list[PrizeDefinition] = [
    {"name": "Unified Minds Booster Box", "value": 12_000, "glow": "gold", "box_count": 1},
    {"name": "151 UPC", "value": 10_000, "glow": "gold", "box_count": 1},
    {"name": "151 ETB", "value": 5_000, "glow": "gold", "box_count": 1},
    {"name": "Random Pack", "value": 500, "glow": "blue", "box_count": 120},
    {"name": "Random Single (Low-tier)", "value": 200, "glow": "green", "box_count": 420},
    {"name": "Random Single (Mid-tier)", "value": 1_500, "glow": "blue", "box_count": 20},
    {"name": "Random Single (High-tier)", "value": 3_500, "glow": "purple", "box_count": 12},
    {"name": "Spin Punishment Wheel", "value": 0, "glow": "green", "box_count": 60},
    {"name": "Vintage Card Bundle", "value": 4_000, "glow": "blue", "box_count": 20},
    {"name": "Magic Booster Pack", "value": 500, "glow": "blue", "box_count": 20},
    {"name": "Next Box 50% Off", "value": 0, "glow": "blue", "box_count": 40},
    {"name": "Womp Womp", "value": 0, "glow": "green", "box_count": 170},
    {"name": "Gem Depo (Boxed)", "value": 2_500, "glow": "green", "box_count": 50},
    {"name": "Random Slab", "value": 3_000, "glow": "purple", "box_count": 25},
    {"name": "Random Pokémon Merch (Pick)", "value": 2_000, "glow": "purple", "box_count": 20},
    {"name": "Custom Pokémon Art", "value": 1_500, "glow": "purple", "box_count": 20},
]

BOARD_SIZE: int = sum(item["box_count"] for item in PRIZE_CATALOG)  # 1000

DEFAULT_GLOW: str = PrizeGlow.GREEN.value


# =============================================================================
# 3. HELPERS
# =============================================================================

def find_prize(name: str, catalog: list[PrizeDefinition] | None = None) -> PrizeDefinition | None:
    """Catalog entry by exact name."""
    for item in catalog if catalog is not None else PRIZE_CATALOG:
        if item["name"] == name:
            return item
    return None


def is_valid_glow(value: str | None) -> bool:
    return value in {g.value for g in PrizeGlow}
