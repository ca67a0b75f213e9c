"""Remote storage schema: auth identities, sessions, profiles, assessments, claims

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "auth_identities",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("user_metadata", sa.JSON(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_sign_in_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_auth_identities_email", "auth_identities", ["email"], unique=True)

    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "identity_id",
            sa.String(length=36),
            sa.ForeignKey("auth_identities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_auth_sessions_identity_id", "auth_sessions", ["identity_id"])

    op.create_table(
        "cs_profiles",
        sa.Column(
            "id",
            sa.String(length=36),
            sa.ForeignKey("auth_identities.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=128), nullable=True),
        sa.Column("last_name", sa.String(length=128), nullable=True),
        sa.Column("organization", sa.String(length=200), nullable=True),
        sa.Column("user_tier", sa.String(length=32), nullable=False, server_default="free"),
        sa.Column("role", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cs_profiles_email", "cs_profiles", ["email"])

    op.create_table(
        "cs_assessments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "owner_id",
            sa.String(length=36),
            sa.ForeignKey("cs_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("domain", sa.String(length=64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="in_progress"),
        sa.Column("config", sa.JSON(), nullable=True),
        sa.Column("scores", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cs_assessments_owner_id", "cs_assessments", ["owner_id"])
    op.create_index("ix_cs_assessments_domain", "cs_assessments", ["domain"])
    op.create_index("ix_cs_assessments_created_at", "cs_assessments", ["created_at"])

    op.create_table(
        "cs_entitlement_claims",
        sa.Column(
            "owner_id",
            sa.String(length=36),
            sa.ForeignKey("cs_profiles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("usage_key", sa.String(length=64), primary_key=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("cs_entitlement_claims")
    op.drop_index("ix_cs_assessments_created_at", table_name="cs_assessments")
    op.drop_index("ix_cs_assessments_domain", table_name="cs_assessments")
    op.drop_index("ix_cs_assessments_owner_id", table_name="cs_assessments")
    op.drop_table("cs_assessments")
    op.drop_index("ix_cs_profiles_email", table_name="cs_profiles")
    op.drop_table("cs_profiles")
    op.drop_index("ix_auth_sessions_identity_id", table_name="auth_sessions")
    op.drop_table("auth_sessions")
    op.drop_index("ix_auth_identities_email", table_name="auth_identities")
    op.drop_table("auth_identities")
