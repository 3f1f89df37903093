"""Allocation engine.

Chooses a prize from the catalog and binds it to a ``prize_types`` row.

Three selection modes:
- weighted-random: weight = max(1, C // (value + 1)), so high-value prizes are rare
- by name: the caller names the prize (created on the fly when unknown)
- by box number: the catalog expanded in declared order, box n -> layout[n - 1]

The weighted odds and the box layout are derived independently from the same
catalog; a given box number and a random draw can disagree about what
"the same" box holds.
"""

import random
from typing import Sequence

from fastapi import HTTPException

from mysterybox import config
from mysterybox.constants import (
    DEFAULT_GLOW,
    PRIZE_CATALOG,
    PrizeDefinition,
    find_prize,
    is_valid_glow,
)


def selection_weight(value: int, constant: int | None = None) -> int:
    c = config.PRIZE_WEIGHT_CONSTANT if constant is None else constant
    return max(1, c // (max(0, int(value)) + 1))


def build_weighted_pool(
    catalog: Sequence[PrizeDefinition] = PRIZE_CATALOG,
    constant: int | None = None,
) -> list[PrizeDefinition]:
    pool: list[PrizeDefinition] = []
    for item in catalog:
        pool.extend([item] * selection_weight(item["value"], constant))
    return pool


def pick_weighted_prize(
    catalog: Sequence[PrizeDefinition] = PRIZE_CATALOG,
    rng: random.Random | None = None,
    constant: int | None = None,
) -> PrizeDefinition:
    pool = build_weighted_pool(catalog, constant)
    if not pool:
        raise HTTPException(status_code=500, detail="PRIZE_CATALOG_EMPTY")
    return (rng or random).choice(pool)


def build_box_layout(catalog: Sequence[PrizeDefinition] = PRIZE_CATALOG) -> list[PrizeDefinition]:
    layout: list[PrizeDefinition] = []
    for item in catalog:
        layout.extend([item] * item["box_count"])
    return layout


def prize_for_box(box_number: int, catalog: Sequence[PrizeDefinition] = PRIZE_CATALOG) -> PrizeDefinition:
    """Deterministic prize for a 1-based box number."""
    layout = build_box_layout(catalog)
    if box_number < 1 or box_number > len(layout):
        raise HTTPException(status_code=400, detail="INVALID_BOX_NUMBER")
    return layout[box_number - 1]


def validate_box_number(box_number: int | None, catalog: Sequence[PrizeDefinition] = PRIZE_CATALOG) -> int:
    if box_number is None:
        raise HTTPException(status_code=400, detail="INVALID_BOX_NUMBER")
    board_size = sum(item["box_count"] for item in catalog)
    if box_number < 1 or box_number > board_size:
        raise HTTPException(status_code=400, detail="INVALID_BOX_NUMBER")
    return box_number


def choose_prize(
    *,
    prize_name: str | None = None,
    box_number: int | None = None,
    rng: random.Random | None = None,
) -> dict:
    """Pick a prize for a manual opening: box number, then name, then random.

    Returns a dict with ``name`` and, when known, catalog ``value``/``glow``.
    """
    if box_number is not None:
        item = prize_for_box(box_number)
        return {"name": item["name"], "value": item["value"], "glow": item["glow"], "mode": "box"}
    if prize_name:
        item = find_prize(prize_name)
        return {
            "name": prize_name,
            "value": item["value"] if item else None,
            "glow": item["glow"] if item else None,
            "mode": "name",
        }
    item = pick_weighted_prize(rng=rng)
    return {"name": item["name"], "value": item["value"], "glow": item["glow"], "mode": "random"}


def get_or_create_prize_type(
    cur,
    name: str,
    *,
    value: int | None = None,
    glow: str | None = None,
    description: str | None = None,
) -> dict:
    """Fetch the prize type by name, creating it lazily on first use.

    New rows take the caller's value/glow, else the catalog's, else 0/green.
    Existing rows are never modified.
    """
    cur.execute("SELECT id, name, value, glow FROM prize_types WHERE name=%s", (name,))
    row = cur.fetchone()
    if row:
        return {"id": int(row[0]), "name": row[1], "value": int(row[2]), "glow": row[3]}

    item = find_prize(name)
    if value is None:
        value = item["value"] if item else 0
    if glow is None or not is_valid_glow(glow):
        glow = item["glow"] if item else DEFAULT_GLOW

    # Concurrent first use of the same name resolves to whichever insert won.
    cur.execute(
        """
        INSERT INTO prize_types (name, description, value, glow, is_active)
        VALUES (%s, %s, %s, %s, TRUE)
        ON CONFLICT (name) DO NOTHING
        """,
        (name, description, int(value), glow),
    )
    cur.execute("SELECT id, name, value, glow FROM prize_types WHERE name=%s", (name,))
    row = cur.fetchone()
    return {"id": int(row[0]), "name": row[1], "value": int(row[2]), "glow": row[3]}
