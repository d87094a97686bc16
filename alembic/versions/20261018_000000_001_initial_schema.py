"""Initial schema: store connections, products, catalog caches and sync jobs.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

MARKETPLACE_TYPES = (
    "shopify",
    "vtex",
    "mercadolibre",
    "amazon",
    "facebook_shop",
    "google_shopping",
    "woocommerce",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(name=name, create_type=False)


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Create enum types
    marketplaces = ", ".join(f"'{value}'" for value in MARKETPLACE_TYPES)
    op.execute(f"CREATE TYPE marketplace_type AS ENUM ({marketplaces})")
    op.execute("CREATE TYPE sync_status AS ENUM ('pending', 'syncing', 'completed', 'failed')")
    op.execute("CREATE TYPE product_status AS ENUM ('active', 'draft', 'archived')")
    op.execute("CREATE TYPE catalog_cache_kind AS ENUM ('category', 'brand')")
    op.execute(
        "CREATE TYPE sync_job_status AS ENUM ('queued', 'processing', 'completed', 'failed', 'cancelled')"
    )
    op.execute("CREATE TYPE sync_phase AS ENUM ('queued', 'scanning', 'syncing', 'finished')")

    # Create store_connections table
    op.create_table(
        "store_connections",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("store_name", sa.String(255), nullable=False),
        sa.Column("marketplace_type", _enum("marketplace_type"), nullable=False),
        sa.Column("credentials", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_status", _enum("sync_status"), nullable=False, server_default="pending"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_store_connections")),
        sa.UniqueConstraint(
            "workspace_id",
            "marketplace_type",
            name="uq_store_connections_workspace_marketplace",
        ),
    )
    op.create_index(op.f("ix_store_connections_workspace_id"), "store_connections", ["workspace_id"])

    # Create products table
    op.create_table(
        "products",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("store_connection_id", sa.UUID(), nullable=False),
        sa.Column("marketplace_type", _enum("marketplace_type"), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("compare_at_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("inventory", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("vendor", sa.String(255), nullable=True),
        sa.Column("product_type", sa.String(255), nullable=True),
        sa.Column("handle", sa.String(255), nullable=True),
        sa.Column("status", _enum("product_status"), nullable=False, server_default="active"),
        sa.Column("native_status", sa.String(50), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("images", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("variants", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("marketplace_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("marketplace_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_products")),
        sa.ForeignKeyConstraint(
            ["store_connection_id"],
            ["store_connections.id"],
            name=op.f("fk_products_store_connection_id_store_connections"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(op.f("ix_products_workspace_id"), "products", ["workspace_id"])
    op.create_index(op.f("ix_products_store_connection_id"), "products", ["store_connection_id"])
    op.create_index(
        "ix_products_workspace_connection_external_id",
        "products",
        ["workspace_id", "store_connection_id", "external_id"],
        unique=True,
    )
    op.create_index(
        "ix_products_workspace_marketplace_external_id",
        "products",
        ["workspace_id", "marketplace_type", "external_id"],
    )

    # Create catalog_caches table
    op.create_table(
        "catalog_caches",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("store_connection_id", sa.UUID(), nullable=False),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("marketplace_type", _enum("marketplace_type"), nullable=False),
        sa.Column("cache_type", _enum("catalog_cache_kind"), nullable=False),
        sa.Column("items", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_catalog_caches")),
        sa.ForeignKeyConstraint(
            ["store_connection_id"],
            ["store_connections.id"],
            name=op.f("fk_catalog_caches_store_connection_id_store_connections"),
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("store_connection_id", "cache_type", name="uq_catalog_caches_connection_kind"),
    )
    op.create_index(op.f("ix_catalog_caches_store_connection_id"), "catalog_caches", ["store_connection_id"])
    op.create_index(op.f("ix_catalog_caches_workspace_id"), "catalog_caches", ["workspace_id"])
    op.create_index(op.f("ix_catalog_caches_expires_at"), "catalog_caches", ["expires_at"])

    # Create sync_jobs table (kept after completion, never cascaded)
    op.create_table(
        "sync_jobs",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("store_connection_id", sa.UUID(), nullable=False),
        sa.Column("job_type", sa.String(50), nullable=False, server_default="marketplace_sync"),
        sa.Column("marketplace_type", _enum("marketplace_type"), nullable=True),
        sa.Column("filters", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("force", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", _enum("sync_job_status"), nullable=False, server_default="queued"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("attempts_made", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancel_requested", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("phase", _enum("sync_phase"), nullable=False, server_default="queued"),
        sa.Column("progress", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("estimated_total", sa.Integer(), nullable=True),
        sa.Column("result", postgresql.JSONB(), nullable=True),
        sa.Column("errors", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("failed_reason", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_sync_jobs")),
    )
    op.create_index(op.f("ix_sync_jobs_workspace_id"), "sync_jobs", ["workspace_id"])
    op.create_index(op.f("ix_sync_jobs_store_connection_id"), "sync_jobs", ["store_connection_id"])
    op.create_index(op.f("ix_sync_jobs_status"), "sync_jobs", ["status"])


def downgrade() -> None:
    op.drop_table("sync_jobs")
    op.drop_table("catalog_caches")
    op.drop_table("products")
    op.drop_table("store_connections")

    op.execute("DROP TYPE IF EXISTS sync_phase")
    op.execute("DROP TYPE IF EXISTS sync_job_status")
    op.execute("DROP TYPE IF EXISTS catalog_cache_kind")
    op.execute("DROP TYPE IF EXISTS product_status")
    op.execute("DROP TYPE IF EXISTS sync_status")
    op.execute("DROP TYPE IF EXISTS marketplace_type")
