"""Initial schema: organizations, stores and per-organization ledger snapshots

1. Creates 'organizations' as the tenant root
2. Creates 'stores' with tenant-scoped name/code uniqueness
3. Creates 'ledger_snapshots' holding one JSON ledger document per organization,
   versioned for optimistic locking

Revision ID: 20261018_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # Organizations
    # ==========================================================================
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organizations_code", "organizations", ["code"], unique=True)
    op.create_index("ix_organizations_is_active", "organizations", ["is_active"])

    # ==========================================================================
    # Stores
    # ==========================================================================
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "name", name="uq_stores_org_name"),
        sa.UniqueConstraint("org_id", "code", name="uq_stores_org_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stores_org_id", "stores", ["org_id"])
    op.create_index("ix_stores_code", "stores", ["code"])

    # ==========================================================================
    # Ledger snapshots
    # ==========================================================================
    op.create_table(
        "ledger_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", name="uq_ledger_snapshots_org"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_ledger_snapshots_org_id", "ledger_snapshots", ["org_id"])


def downgrade():
    op.drop_index("ix_ledger_snapshots_org_id", table_name="ledger_snapshots")
    op.drop_table("ledger_snapshots")
    op.drop_index("ix_stores_code", table_name="stores")
    op.drop_index("ix_stores_org_id", table_name="stores")
    op.drop_table("stores")
    op.drop_index("ix_organizations_is_active", table_name="organizations")
    op.drop_index("ix_organizations_code", table_name="organizations")
    op.drop_table("organizations")
