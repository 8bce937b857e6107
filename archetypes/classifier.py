"""Weighted multi-signal archetype classifier.

Every card is scored against every archetype function:

    confidence = keyword_fraction * 0.4
               + pattern_fraction * 0.6
               + type/structure bonus      (per-function table)
               + known-card bonus          (per-function allow-list)

clamped to [0, 1]. A (card, function) pair is kept only when the confidence
clears CLASSIFICATION_THRESHOLD. Scoring is a pure function of the card and
the catalog, so batches can be scored on worker threads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from archetypes.bonuses import is_context_dependent, known_card_bonus, type_bonus
from archetypes.card_data import CardData, parse_card_data
from archetypes.patterns import Pattern, compile_patterns

KEYWORD_WEIGHT = 0.4
PATTERN_WEIGHT = 0.6
CLASSIFICATION_THRESHOLD = 0.3


@dataclass(frozen=True)
class CatalogFunction:
    id: int
    name: str
    keywords: Tuple[str, ...]
    patterns: Tuple[Pattern, ...]
    category: str = ""


@dataclass(frozen=True)
class FunctionCatalog:
    functions: Tuple[CatalogFunction, ...] = ()

    def __len__(self) -> int:
        return len(self.functions)

    def __iter__(self):
        return iter(self.functions)

    @classmethod
    def build(cls, definitions: Iterable[Any]) -> "FunctionCatalog":
        """Compile a catalog from ArchetypeFunction rows or plain dicts.

        Dicts use the keys id, name, keywords, patterns (or rules_patterns)
        and an optional category.
        """
        built: List[CatalogFunction] = []
        for definition in definitions:
            if isinstance(definition, dict):
                fn_id = definition["id"]
                name = definition["name"]
                keywords = definition.get("keywords") or []
                patterns = definition.get("patterns") or definition.get("rules_patterns") or []
                category = definition.get("category") or ""
            else:
                fn_id = definition.id
                name = definition.name
                keywords = definition.keyword_list
                patterns = definition.pattern_list
                category_obj = getattr(definition, "category", None)
                category = getattr(category_obj, "name", "") or ""
            built.append(
                CatalogFunction(
                    id=int(fn_id),
                    name=str(name),
                    # an empty keyword matches every card
                    keywords=tuple(str(kw).lower() for kw in keywords if kw is not None),
                    patterns=tuple(compile_patterns(str(p) for p in patterns)),
                    category=category,
                )
            )
        return cls(tuple(built))


@dataclass(frozen=True)
class ClassifiableCard:
    """Just the fields the classifier reads, detached from the ORM session."""

    id: int
    name: str
    text: str
    data: CardData = field(default_factory=CardData)

    @property
    def text_lower(self) -> str:
        return self.text.lower()


@dataclass(frozen=True)
class ScoreBreakdown:
    keyword_score: float
    pattern_score: float
    type_bonus: float
    known_card_bonus: float
    confidence: float
    context_dependent: bool


@dataclass(frozen=True)
class Classification:
    card_id: int
    function_id: int
    confidence: float
    context_dependent: bool


def _read(card: Any, attr: str) -> Any:
    if isinstance(card, dict):
        return card.get(attr)
    return getattr(card, attr, None)


def prepare_card(card: Any) -> ClassifiableCard:
    """Snapshot a Card row (or dict) into a ClassifiableCard.

    A malformed attribute blob yields empty structured data; keyword and pattern
    scoring still run against the raw rules text.
    """
    if isinstance(card, ClassifiableCard):
        return card
    data = parse_card_data(_read(card, "data"))
    text = _read(card, "text")
    if not isinstance(text, str) or not text:
        text = data.oracle_text
    return ClassifiableCard(
        id=int(_read(card, "id") or 0),
        name=str(_read(card, "name") or ""),
        text=text or "",
        data=data,
    )


def _fraction(matched: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return matched / total


def score_function(card: ClassifiableCard, fn: CatalogFunction) -> ScoreBreakdown:
    text = card.text_lower
    type_line = card.data.type_line_lower

    keyword_score = _fraction(sum(1 for kw in fn.keywords if kw in text), len(fn.keywords))
    pattern_score = _fraction(sum(1 for p in fn.patterns if p.search(text)), len(fn.patterns))
    t_bonus = type_bonus(fn.name, type_line, text, card.data)
    k_bonus = known_card_bonus(fn.name, card.name)

    raw = keyword_score * KEYWORD_WEIGHT + pattern_score * PATTERN_WEIGHT + t_bonus + k_bonus
    confidence = max(0.0, min(raw, 1.0))

    return ScoreBreakdown(
        keyword_score=keyword_score,
        pattern_score=pattern_score,
        type_bonus=t_bonus,
        known_card_bonus=k_bonus,
        confidence=confidence,
        context_dependent=is_context_dependent(text, fn.name),
    )


def classify_card(
    card: Any,
    catalog: FunctionCatalog | Sequence[CatalogFunction],
    *,
    threshold: float = CLASSIFICATION_THRESHOLD,
) -> List[Classification]:
    prepared = prepare_card(card)
    results: List[Classification] = []
    for fn in catalog:
        breakdown = score_function(prepared, fn)
        if breakdown.confidence > threshold:
            results.append(
                Classification(
                    card_id=prepared.id,
                    function_id=fn.id,
                    confidence=breakdown.confidence,
                    context_dependent=breakdown.context_dependent,
                )
            )
    return results


def primary_function(classifications: Iterable[Classification]) -> Optional[Classification]:
    """Highest-confidence classification; ties go to the lower function id."""
    best: Optional[Classification] = None
    for item in classifications:
        if best is None or (item.confidence, -item.function_id) > (best.confidence, -best.function_id):
            best = item
    return best


__all__ = [
    "CLASSIFICATION_THRESHOLD",
    "CatalogFunction",
    "ClassifiableCard",
    "Classification",
    "FunctionCatalog",
    "KEYWORD_WEIGHT",
    "PATTERN_WEIGHT",
    "ScoreBreakdown",
    "classify_card",
    "prepare_card",
    "primary_function",
    "score_function",
]
