from __future__ import annotations

import json
from datetime import datetime

from extensions import db


def _json_list(raw) -> list:
    if isinstance(raw, list):
        return raw
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def _is_json_list(raw) -> bool:
    if isinstance(raw, list):
        return True
    try:
        return isinstance(json.loads(raw), list)
    except (TypeError, ValueError):
        return False


class ArchetypeCategory(db.Model):
    __tablename__ = "archetype_categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    color = db.Column(db.String(16), nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=0, index=True)

    functions = db.relationship(
        "ArchetypeFunction",
        back_populates="category",
        cascade="all, delete-orphan",
        order_by="ArchetypeFunction.name",
    )

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<ArchetypeCategory {self.name}>"


class ArchetypeFunction(db.Model):
    __tablename__ = "archetype_functions"

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer,
        db.ForeignKey("archetype_categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    # JSON-encoded lists, authored in seeds/archetype_taxonomy.json
    keywords = db.Column(db.Text, nullable=False, default="[]")
    rules_patterns = db.Column(db.Text, nullable=False, default="[]")

    category = db.relationship("ArchetypeCategory", back_populates="functions")

    __table_args__ = (
        db.UniqueConstraint("category_id", "name", name="uq_archetype_functions_category_name"),
    )

    @property
    def keyword_list(self) -> list[str]:
        return [str(kw).lower() for kw in _json_list(self.keywords)]

    @property
    def pattern_list(self) -> list[str]:
        return [str(p) for p in _json_list(self.rules_patterns)]

    @property
    def definition_is_valid(self) -> bool:
        return _is_json_list(self.keywords) and _is_json_list(self.rules_patterns)

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<ArchetypeFunction {self.category_id}:{self.name}>"


class CardArchetype(db.Model):
    """One (card, function) pair that cleared the classification threshold."""

    __tablename__ = "card_archetypes"

    card_id = db.Column(db.Integer, db.ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True)
    function_id = db.Column(
        db.Integer,
        db.ForeignKey("archetype_functions.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    confidence = db.Column(db.Float, nullable=False)
    context_dependent = db.Column(db.Boolean, nullable=False, default=False, server_default=db.text("0"))
    manual_override = db.Column(db.Boolean, nullable=False, default=False, server_default=db.text("0"))
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    card = db.relationship("Card", back_populates="archetypes")
    function = db.relationship("ArchetypeFunction")

    __table_args__ = (
        db.CheckConstraint("confidence >= 0 AND confidence <= 1", name="confidence_range"),
        db.Index("ix_card_archetypes_confidence", "confidence"),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<CardArchetype card={self.card_id} fn={self.function_id} {self.confidence:.2f}>"


class CommanderArchetypeWeight(db.Model):
    __tablename__ = "commander_archetype_weights"

    commander_id = db.Column(
        db.Integer,
        db.ForeignKey("commanders.id", ondelete="CASCADE"),
        primary_key=True,
    )
    function_id = db.Column(
        db.Integer,
        db.ForeignKey("archetype_functions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    weight = db.Column(db.Float, nullable=False)
    recommended_count = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    function = db.relationship("ArchetypeFunction")

    __table_args__ = (
        db.CheckConstraint("weight > 0 AND weight <= 1", name="weight_range"),
        db.CheckConstraint("recommended_count >= 1", name="recommended_count_positive"),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<CommanderArchetypeWeight cmd={self.commander_id} fn={self.function_id} {self.weight:.2f}>"
