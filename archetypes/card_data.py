"""Lenient parsing of the raw card attribute blob."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

_GENERIC_COST_RE = re.compile(r"\{(\d+)\}")


@dataclass(frozen=True)
class CardData:
    type_line: str = ""
    mana_cost: str = ""
    cmc: Optional[float] = None
    colors: Tuple[str, ...] = ()
    color_identity: Tuple[str, ...] = ()
    oracle_text: str = ""

    @property
    def type_line_lower(self) -> str:
        return self.type_line.lower()

    @property
    def generic_mana(self) -> Optional[int]:
        """First `{N}` numeral of the mana cost, if any."""
        match = _GENERIC_COST_RE.search(self.mana_cost or "")
        if not match:
            return None
        return int(match.group(1))


EMPTY_CARD_DATA = CardData()


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_colors(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(c).upper() for c in value if isinstance(c, str) and c)


def _join_faces(faces: Any, key: str) -> str:
    if not isinstance(faces, list):
        return ""
    parts = [face.get(key) for face in faces if isinstance(face, dict) and isinstance(face.get(key), str)]
    return "\n\n//\n\n".join(p for p in parts if p)


def parse_card_data(raw: Any) -> CardData:
    """Parse the JSON attribute blob, returning EMPTY_CARD_DATA on any failure.

    Accepts an already-decoded dict, a JSON string, or None. Double-faced cards
    fall back to their joined face values when the top level is missing them.
    """
    if raw is None or raw == "":
        return EMPTY_CARD_DATA
    payload = raw
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            return EMPTY_CARD_DATA
    if not isinstance(payload, dict):
        return EMPTY_CARD_DATA

    faces = payload.get("card_faces")
    return CardData(
        type_line=_as_str(payload.get("type_line")) or _join_faces(faces, "type_line"),
        mana_cost=_as_str(payload.get("mana_cost")) or _join_faces(faces, "mana_cost"),
        cmc=_as_float(payload.get("cmc")),
        colors=_as_colors(payload.get("colors")),
        color_identity=_as_colors(payload.get("color_identity")),
        oracle_text=_as_str(payload.get("oracle_text")) or _join_faces(faces, "oracle_text"),
    )


__all__ = ["CardData", "EMPTY_CARD_DATA", "parse_card_data"]
