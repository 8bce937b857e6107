from datetime import datetime

from extensions import db


class Card(db.Model):
    """A card from the external corpus. Read-only to the archetype pipeline."""

    __tablename__ = "cards"
    __table_args__ = (
        db.Index("ix_cards_created_at", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    name      = db.Column(db.String(255), index=True, nullable=False)
    oracle_id = db.Column(db.String(36), index=True)

    # Rules text as scraped; may be empty when only the attribute blob carries it
    text = db.Column(db.Text, nullable=True)
    # Raw Scryfall-style attribute blob (JSON serialised as text, may be malformed)
    data = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    archetypes = db.relationship(
        "CardArchetype",
        back_populates="card",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Card {self.name} #{self.id}>"
