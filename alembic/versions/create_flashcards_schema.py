"""create flashcards schema

Revision ID: create_flashcards_schema
Revises:
Create Date: 2026-10-18

Creates users (mirrored from Clerk), Stripe subscriptions, decks, cards,
answer records and AI card previews.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.engine.reflection import Inspector

# revision identifiers, used by Alembic.
revision: str = "create_flashcards_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    inspector = Inspector.from_engine(conn)
    existing_tables = inspector.get_table_names()

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("clerk_id", sa.String(255), nullable=False),
            sa.Column("email", sa.String(255), nullable=False),
            sa.Column("name", sa.String(255), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_users_clerk_id", "users", ["clerk_id"], unique=True)
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if "subscriptions" not in existing_tables:
        op.create_table(
            "subscriptions",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column(
                "user_id",
                sa.String(36),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("email", sa.String(255), nullable=False),
            sa.Column("stripe_subscription_id", sa.String(255), nullable=False),
            sa.Column("stripe_customer_id", sa.String(255), nullable=False),
            sa.Column("status", sa.String(50), nullable=False),
            sa.Column("plan_type", sa.String(20), nullable=False, server_default="basic"),
            sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=False),
            sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
            sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
        op.create_index(
            "ix_subscriptions_stripe_subscription_id",
            "subscriptions",
            ["stripe_subscription_id"],
            unique=True,
        )

    if "decks" not in existing_tables:
        op.create_table(
            "decks",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column(
                "user_id",
                sa.String(36),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_decks_user_id", "decks", ["user_id"])
        op.create_index("ix_decks_deleted_at", "decks", ["deleted_at"])

    if "cards" not in existing_tables:
        op.create_table(
            "cards",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("front", sa.Text(), nullable=False),
            sa.Column("back", sa.Text(), nullable=False),
            sa.Column("hint", sa.Text(), nullable=True),
            sa.Column(
                "deck_id",
                sa.String(36),
                sa.ForeignKey("decks.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("review_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_review", sa.DateTime(timezone=True), nullable=True),
            sa.Column("status", sa.String(20), nullable=False, server_default="new"),
            sa.Column("generation_type", sa.String(20), nullable=False, server_default="manual"),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_cards_deck_id", "cards", ["deck_id"])
        op.create_index("ix_cards_deleted_at", "cards", ["deleted_at"])

    if "answer_records" not in existing_tables:
        op.create_table(
            "answer_records",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column(
                "user_id",
                sa.String(36),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column(
                "deck_id",
                sa.String(36),
                sa.ForeignKey("decks.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column(
                "card_id",
                sa.String(36),
                sa.ForeignKey("cards.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("is_correct", sa.Boolean(), nullable=False),
            sa.Column("study_time", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("answer_date", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_answer_records_user_deck", "answer_records", ["user_id", "deck_id"])

    if "card_previews" not in existing_tables:
        op.create_table(
            "card_previews",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column(
                "user_id",
                sa.String(36),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("session_id", sa.String(64), nullable=False),
            sa.Column("deck_title", sa.String(255), nullable=False),
            sa.Column("deck_description", sa.Text(), nullable=True),
            sa.Column("front", sa.Text(), nullable=False),
            sa.Column("back", sa.Text(), nullable=False),
            sa.Column("generation_type", sa.String(20), nullable=False),
            sa.Column("original_prompt", sa.Text(), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_card_previews_session_id", "card_previews", ["session_id"])
        op.create_index("ix_card_previews_expires_at", "card_previews", ["expires_at"])
        op.create_index("ix_card_previews_user_session", "card_previews", ["user_id", "session_id"])


def downgrade() -> None:
    op.drop_table("card_previews")
    op.drop_table("answer_records")
    op.drop_table("cards")
    op.drop_table("decks")
    op.drop_table("subscriptions")
    op.drop_table("users")
