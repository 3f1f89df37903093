"""Box board read model.

The server owns the board: box n holds the catalog layout's n-th prize, and a
box counts as opened once a claim recorded against its number is OPENED or
DELIVERED. Unopened boxes never reveal their prize.
"""

from typing import Any

from mysterybox.services.allocation import build_box_layout


def opened_box_numbers(cur) -> dict[int, dict[str, Any]]:
    cur.execute(
        """
        SELECT pc.box_number, pc.status, pt.name, pt.value, pt.glow
          FROM prize_claims pc
          JOIN prize_types pt ON pt.id = pc.prize_type_id
         WHERE pc.box_number IS NOT NULL
           AND pc.status IN ('OPENED', 'DELIVERED')
         ORDER BY pc.opened_at ASC, pc.id ASC
        """
    )
    opened: dict[int, dict[str, Any]] = {}
    for box_number, status, name, value, glow in cur.fetchall() or []:
        # First claim recorded against a box wins.
        opened.setdefault(
            int(box_number),
            {"status": status, "prize": name, "value": int(value), "glow": glow},
        )
    return opened


def build_board(cur) -> dict[str, Any]:
    layout = build_box_layout()
    opened = opened_box_numbers(cur)
    boxes = []
    for box_number in range(1, len(layout) + 1):
        hit = opened.get(box_number)
        if hit:
            boxes.append(
                {
                    "box_number": box_number,
                    "opened": True,
                    "prize": hit["prize"],
                    "value": hit["value"],
                    "glow": hit["glow"],
                }
            )
        else:
            boxes.append({"box_number": box_number, "opened": False, "prize": None, "value": None, "glow": None})
    return {
        "board_size": len(layout),
        "opened_count": sum(1 for b in boxes if b["opened"]),
        "boxes": boxes,
    }
