"""catalog schema: products, categories, brands and their link tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

CATALOG_TABLES = ("products", "categories", "brands", "product_categories", "product_brands")


def _catalog_tables():
    from models import Base

    return [Base.metadata.tables[name] for name in CATALOG_TABLES]


def upgrade() -> None:
    from models import Base

    Base.metadata.create_all(bind=op.get_bind(), tables=_catalog_tables())


def downgrade() -> None:
    from models import Base

    Base.metadata.drop_all(bind=op.get_bind(), tables=_catalog_tables())
