"""Hand-tuned bonus tables keyed by archetype function name.

These are closed tables, not extension points: names and thresholds encode
tuned domain knowledge and must match the taxonomy names exactly.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, Tuple

from archetypes.card_data import CardData

KNOWN_CARD_BONUS = 0.4

# (type_line_lower, text_lower, card_data) -> bonus
TypeBonusRule = Callable[[str, str, CardData], float]


def _mana_rocks(type_line: str, text: str, data: CardData) -> float:
    if "artifact" in type_line and ("add" in text or "mana" in text):
        return 0.3
    return 0.0


def _mana_dorks(type_line: str, text: str, data: CardData) -> float:
    if "creature" in type_line and ("add" in text or "mana" in text):
        return 0.3
    return 0.0


def _land_ramp(type_line: str, text: str, data: CardData) -> float:
    if ("sorcery" in type_line or "instant" in type_line) and "land" in text and "search" in text:
        return 0.2
    return 0.0


def _counterspells(type_line: str, text: str, data: CardData) -> float:
    if ("instant" in type_line or "flash" in text) and "counter" in text:
        return 0.2
    return 0.0


def _board_wipes(type_line: str, text: str, data: CardData) -> float:
    if ("sorcery" in type_line or "instant" in type_line) and (
        "all creatures" in text or "destroy all" in text
    ):
        return 0.3
    return 0.0


def _big_threats(type_line: str, text: str, data: CardData) -> float:
    if "creature" not in type_line:
        return 0.0
    generic = data.generic_mana
    if generic is not None and generic >= 6:
        return 0.2
    return 0.0


TYPE_BONUS_RULES: Dict[str, TypeBonusRule] = {
    "Mana Rocks": _mana_rocks,
    "Mana Dorks": _mana_dorks,
    "Land Ramp": _land_ramp,
    "Counterspells": _counterspells,
    "Board Wipes": _board_wipes,
    "Big Threats": _big_threats,
}

KNOWN_CARDS: Dict[str, Tuple[str, ...]] = {
    "Mana Rocks": (
        "sol ring",
        "mana crypt",
        "mana vault",
        "arcane signet",
        "chrome mox",
        "mox diamond",
        "fellwar stone",
    ),
    "Unconditional Tutors": (
        "demonic tutor",
        "vampiric tutor",
        "imperial seal",
        "grim tutor",
        "diabolic tutor",
    ),
    "Counterspells": (
        "counterspell",
        "force of will",
        "mana drain",
        "negate",
        "swan song",
        "fierce guardianship",
    ),
    "Board Wipes": (
        "wrath of god",
        "day of judgment",
        "supreme verdict",
        "cyclonic rift",
        "toxic deluge",
        "damnation",
    ),
    "Card Draw": (
        "rhystic study",
        "mystic remora",
        "phyrexian arena",
        "necropotence",
        "sylvan library",
    ),
}

CONTEXT_SIGNAL_PATTERNS: Tuple["re.Pattern[str]", ...] = (
    re.compile(r"tribal", re.IGNORECASE),
    re.compile(r"creatures you control", re.IGNORECASE),
    re.compile(r"whenever.*enters.*battlefield", re.IGNORECASE),
    re.compile(r"commander", re.IGNORECASE),
    re.compile(r"devotion", re.IGNORECASE),
    re.compile(r"\w+ you control", re.IGNORECASE),
)

CONTEXT_DEPENDENT_FUNCTIONS = frozenset({"Combo Pieces", "Big Threats"})


def type_bonus(function_name: str, type_line: str, text: str, data: CardData) -> float:
    rule = TYPE_BONUS_RULES.get(function_name)
    if rule is None:
        return 0.0
    return rule(type_line, text, data)


def known_card_bonus(function_name: str, card_name: str) -> float:
    name = (card_name or "").lower()
    if not name:
        return 0.0
    for known in KNOWN_CARDS.get(function_name, ()):
        if known in name:
            return KNOWN_CARD_BONUS
    return 0.0


def is_context_dependent(text: str, function_name: str) -> bool:
    if function_name in CONTEXT_DEPENDENT_FUNCTIONS:
        return True
    return any(pattern.search(text) for pattern in CONTEXT_SIGNAL_PATTERNS)


__all__ = [
    "CONTEXT_DEPENDENT_FUNCTIONS",
    "CONTEXT_SIGNAL_PATTERNS",
    "KNOWN_CARDS",
    "KNOWN_CARD_BONUS",
    "TYPE_BONUS_RULES",
    "is_context_dependent",
    "known_card_bonus",
    "type_bonus",
]
