from __future__ import annotations

from extensions import db


class Commander(db.Model):
    __tablename__ = "commanders"

    id = db.Column(db.Integer, primary_key=True)
    # Partner pairs are stored as "A / B"
    name = db.Column(db.String(255), unique=True, nullable=False)
    color_id = db.Column(db.String(8), nullable=True, index=True)

    entries = db.relationship("Entry", back_populates="commander")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Commander {self.name}>"


class Tournament(db.Model):
    __tablename__ = "tournaments"

    id = db.Column(db.Integer, primary_key=True)
    tid = db.Column(db.String(128), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=True)
    tournament_date = db.Column(db.DateTime, nullable=False, index=True)
    size = db.Column(db.Integer, nullable=False, default=0)
    top_cut = db.Column(db.Integer, nullable=False, default=0)

    entries = db.relationship("Entry", back_populates="tournament")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Tournament {self.tid} size={self.size} top={self.top_cut}>"


class Entry(db.Model):
    __tablename__ = "entries"

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(
        db.Integer,
        db.ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    commander_id = db.Column(
        db.Integer,
        db.ForeignKey("commanders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    standing = db.Column(db.Integer, nullable=False)

    tournament = db.relationship("Tournament", back_populates="entries")
    commander = db.relationship("Commander", back_populates="entries")
    decklist = db.relationship(
        "DecklistItem",
        back_populates="entry",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Entry {self.id} t={self.tournament_id} #{self.standing}>"


class DecklistItem(db.Model):
    __tablename__ = "decklist_items"

    entry_id = db.Column(db.Integer, db.ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True)
    card_id = db.Column(db.Integer, db.ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True, index=True)

    entry = db.relationship("Entry", back_populates="decklist")
