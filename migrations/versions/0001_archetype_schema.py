"""Card corpus, tournament data and archetype classification tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_archetype_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Card corpus ----------------------------------------------------------
    op.create_table(
        "cards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("oracle_id", sa.String(length=36), nullable=True),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_cards_name", "cards", ["name"], unique=False)
    op.create_index("ix_cards_oracle_id", "cards", ["oracle_id"], unique=False)
    op.create_index("ix_cards_created_at", "cards", ["created_at"], unique=False)

    # Tournaments ----------------------------------------------------------
    op.create_table(
        "commanders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("color_id", sa.String(length=8), nullable=True),
        sa.UniqueConstraint("name", name="uq_commanders_name"),
    )
    op.create_index("ix_commanders_color_id", "commanders", ["color_id"], unique=False)

    op.create_table(
        "tournaments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tid", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("tournament_date", sa.DateTime(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("top_cut", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("tid", name="uq_tournaments_tid"),
    )
    op.create_index("ix_tournaments_tournament_date", "tournaments", ["tournament_date"], unique=False)

    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "tournament_id",
            sa.Integer(),
            sa.ForeignKey("tournaments.id", name="fk_entries_tournament_id_tournaments", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "commander_id",
            sa.Integer(),
            sa.ForeignKey("commanders.id", name="fk_entries_commander_id_commanders", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("standing", sa.Integer(), nullable=False),
    )
    op.create_index("ix_entries_tournament_id", "entries", ["tournament_id"], unique=False)
    op.create_index("ix_entries_commander_id", "entries", ["commander_id"], unique=False)

    op.create_table(
        "decklist_items",
        sa.Column(
            "entry_id",
            sa.Integer(),
            sa.ForeignKey("entries.id", name="fk_decklist_items_entry_id_entries", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "card_id",
            sa.Integer(),
            sa.ForeignKey("cards.id", name="fk_decklist_items_card_id_cards", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_index("ix_decklist_items_card_id", "decklist_items", ["card_id"], unique=False)

    # Archetype taxonomy ---------------------------------------------------
    op.create_table(
        "archetype_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(length=16), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("name", name="uq_archetype_categories_name"),
    )
    op.create_index("ix_archetype_categories_priority", "archetype_categories", ["priority"], unique=False)

    op.create_table(
        "archetype_functions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey(
                "archetype_categories.id",
                name="fk_archetype_functions_category_id_archetype_categories",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("keywords", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("rules_patterns", sa.Text(), nullable=False, server_default="[]"),
        sa.UniqueConstraint("category_id", "name", name="uq_archetype_functions_category_name"),
    )
    op.create_index("ix_archetype_functions_category_id", "archetype_functions", ["category_id"], unique=False)

    # Derived rows ---------------------------------------------------------
    op.create_table(
        "card_archetypes",
        sa.Column(
            "card_id",
            sa.Integer(),
            sa.ForeignKey("cards.id", name="fk_card_archetypes_card_id_cards", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "function_id",
            sa.Integer(),
            sa.ForeignKey(
                "archetype_functions.id",
                name="fk_card_archetypes_function_id_archetype_functions",
                ondelete="CASCADE",
            ),
            primary_key=True,
        ),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("context_dependent", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("manual_override", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_card_archetypes_confidence_range",
        ),
    )
    op.create_index("ix_card_archetypes_function_id", "card_archetypes", ["function_id"], unique=False)
    op.create_index("ix_card_archetypes_confidence", "card_archetypes", ["confidence"], unique=False)

    op.create_table(
        "commander_archetype_weights",
        sa.Column(
            "commander_id",
            sa.Integer(),
            sa.ForeignKey(
                "commanders.id",
                name="fk_commander_archetype_weights_commander_id_commanders",
                ondelete="CASCADE",
            ),
            primary_key=True,
        ),
        sa.Column(
            "function_id",
            sa.Integer(),
            sa.ForeignKey(
                "archetype_functions.id",
                name="fk_commander_archetype_weights_function_id_archetype_functions",
                ondelete="CASCADE",
            ),
            primary_key=True,
        ),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("recommended_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "weight > 0 AND weight <= 1",
            name="ck_commander_archetype_weights_weight_range",
        ),
        sa.CheckConstraint(
            "recommended_count >= 1",
            name="ck_commander_archetype_weights_recommended_count_positive",
        ),
    )


def downgrade() -> None:
    op.drop_table("commander_archetype_weights")
    op.drop_index("ix_card_archetypes_confidence", table_name="card_archetypes")
    op.drop_index("ix_card_archetypes_function_id", table_name="card_archetypes")
    op.drop_table("card_archetypes")
    op.drop_index("ix_archetype_functions_category_id", table_name="archetype_functions")
    op.drop_table("archetype_functions")
    op.drop_index("ix_archetype_categories_priority", table_name="archetype_categories")
    op.drop_table("archetype_categories")
    op.drop_index("ix_decklist_items_card_id", table_name="decklist_items")
    op.drop_table("decklist_items")
    op.drop_index("ix_entries_commander_id", table_name="entries")
    op.drop_index("ix_entries_tournament_id", table_name="entries")
    op.drop_table("entries")
    op.drop_index("ix_tournaments_tournament_date", table_name="tournaments")
    op.drop_table("tournaments")
    op.drop_index("ix_commanders_color_id", table_name="commanders")
    op.drop_table("commanders")
    op.drop_index("ix_cards_created_at", table_name="cards")
    op.drop_index("ix_cards_oracle_id", table_name="cards")
    op.drop_index("ix_cards_name", table_name="cards")
    op.drop_table("cards")
