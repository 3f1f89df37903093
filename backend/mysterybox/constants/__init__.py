"""
Backend Constants Package
"""
from .prize_catalog import (
    BOARD_SIZE,
    CLAIM_FILTER_STATUS,
    DEFAULT_GLOW,
    PRIZE_CATALOG,
    ClaimStatus,
    PrizeDefinition,
    PrizeGlow,
    find_prize,
    is_valid_glow,
)

__all__ = [
    "BOARD_SIZE",
    "CLAIM_FILTER_STATUS",
    "DEFAULT_GLOW",
    "PRIZE_CATALOG",
    "ClaimStatus",
    "PrizeDefinition",
    "PrizeGlow",
    "find_prize",
    "is_valid_glow",
]
