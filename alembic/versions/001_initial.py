"""Initial schema: accounts, email links, usage counters, subjects, subject messages, memory turns.

Idempotent: tables that already exist (e.g. created by Base.metadata.create_all) are skipped.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    if not _has_table("accounts"):
        op.create_table(
            "accounts",
            sa.Column("id", sa.String(128), primary_key=True),
            sa.Column("plan", sa.String(), nullable=False, server_default="free"),
            sa.Column("auth_email", sa.String(), nullable=True),
            sa.Column("auth_user_id", sa.String(), nullable=True),
            sa.Column("auth_provider", sa.String(), nullable=True),
            sa.Column("stripe_customer_id", sa.String(), nullable=True),
            sa.Column("stripe_subscription_id", sa.String(), nullable=True),
            sa.Column("stripe_subscription_status", sa.String(), nullable=True),
            sa.Column("stripe_current_period_end", sa.DateTime(timezone=True), nullable=True),
            sa.Column("stripe_event_created", sa.DateTime(timezone=True), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("primary_focus", sa.String(), nullable=True),
            sa.Column("preferred_mode", sa.String(), nullable=True),
            sa.Column("goal30", sa.String(), nullable=True),
            sa.Column("onboarding_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("onboarding_skipped", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_accounts_id", "accounts", ["id"])
        op.create_index("ix_accounts_auth_email", "accounts", ["auth_email"])
        op.create_index("ix_accounts_stripe_customer_id", "accounts", ["stripe_customer_id"])

    if not _has_table("email_links"):
        op.create_table(
            "email_links",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("session_id", sa.String(128), nullable=False),
            sa.Column("auth_user_id", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_email_links_email", "email_links", ["email"])
        op.create_index("ix_email_links_session_id", "email_links", ["session_id"])

    if not _has_table("usage_counters"):
        op.create_table(
            "usage_counters",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("session_id", sa.String(128), nullable=False),
            sa.Column("date_key", sa.String(10), nullable=False),
            sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_usage_counters_session_id", "usage_counters", ["session_id"])

    if not _has_table("subjects"):
        op.create_table(
            "subjects",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("mode", sa.String(), nullable=False),
            sa.Column("user_id", sa.String(128), nullable=False),
            sa.Column("last_message_preview", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_subjects_user_id", "subjects", ["user_id"])
        op.create_index("ix_subjects_updated_at", "subjects", ["updated_at"])

    if not _has_table("subject_messages"):
        op.create_table(
            "subject_messages",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("subject_id", sa.String(), nullable=False),
            sa.Column("role", sa.String(16), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_subject_messages_subject_id", "subject_messages", ["subject_id"])
        op.create_index("ix_subject_messages_created_at", "subject_messages", ["created_at"])

    if not _has_table("memory_turns"):
        op.create_table(
            "memory_turns",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("session_id", sa.String(128), nullable=False),
            sa.Column("role", sa.String(16), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_memory_turns_session_id", "memory_turns", ["session_id"])
        op.create_index("ix_memory_turns_created_at", "memory_turns", ["created_at"])


def downgrade() -> None:
    for table in ("memory_turns", "subject_messages", "subjects", "usage_counters", "email_links", "accounts"):
        op.drop_table(table)
