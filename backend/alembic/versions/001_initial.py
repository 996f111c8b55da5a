"""initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-16

Admins, members, gold rate versions and trades.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = '001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""
    conn = op.get_bind()

    print("🔧 Starting migration 001_initial...")
    print("=" * 60)

    # Admins table
    print("📦 Creating table: admins...")
    conn.execute(sa.text("""CREATE TABLE admins
                            (
                                id         INTEGER PRIMARY KEY,
                                name       VARCHAR  NOT NULL,
                                email      VARCHAR  NOT NULL,
                                is_active  BOOLEAN  NOT NULL,
                                created_at DATETIME NOT NULL,
                                updated_at DATETIME NOT NULL
                            )"""))
    print("  ✓ Table created")
    conn.execute(sa.text("CREATE UNIQUE INDEX ix_admins_email ON admins (email)"))
    print("  ✓ Index created")

    # Members table
    print("📦 Creating table: members...")
    conn.execute(sa.text("""CREATE TABLE members
                            (
                                id            INTEGER PRIMARY KEY,
                                name          VARCHAR        NOT NULL,
                                email         VARCHAR        NOT NULL,
                                phone         VARCHAR,
                                gold_holdings NUMERIC(18, 6) NOT NULL DEFAULT 0,
                                version       INTEGER        NOT NULL DEFAULT 0,
                                is_active     BOOLEAN        NOT NULL,
                                created_at    DATETIME       NOT NULL,
                                updated_at    DATETIME       NOT NULL,
                                CONSTRAINT ck_members_gold_holdings_non_negative CHECK (gold_holdings >= 0)
                            )"""))
    print("  ✓ Table created")
    conn.execute(sa.text("CREATE UNIQUE INDEX ix_members_email ON members (email)"))
    print("  ✓ Index created")

    # Gold rates table
    print("📦 Creating table: gold_rates...")
    conn.execute(sa.text("""CREATE TABLE gold_rates
                            (
                                id             INTEGER PRIMARY KEY,
                                buy_price      NUMERIC(18, 6) NOT NULL,
                                sell_price     NUMERIC(18, 6) NOT NULL,
                                is_active      BOOLEAN        NOT NULL,
                                effective_date DATETIME       NOT NULL,
                                created_by     INTEGER        NOT NULL,
                                created_at     DATETIME       NOT NULL,
                                updated_at     DATETIME       NOT NULL,
                                CONSTRAINT ck_gold_rates_buy_price_non_negative CHECK (buy_price >= 0),
                                CONSTRAINT ck_gold_rates_sell_price_non_negative CHECK (sell_price >= 0),
                                FOREIGN KEY (created_by) REFERENCES admins (id)
                            )"""))
    print("  ✓ Table created")
    # At most one row may be active
    conn.execute(sa.text("CREATE UNIQUE INDEX uq_gold_rates_single_active ON gold_rates (is_active) WHERE is_active = 1"))
    conn.execute(sa.text("CREATE INDEX idx_gold_rates_effective_created ON gold_rates (effective_date, created_at)"))
    print("  ✓ 2 Indexes created")

    # Trades table
    print("📦 Creating table: trades...")
    conn.execute(sa.text("""CREATE TABLE trades
                            (
                                id                INTEGER PRIMARY KEY,
                                member_id         INTEGER        NOT NULL,
                                trade_type        VARCHAR(4)     NOT NULL,
                                quantity          NUMERIC(18, 6) NOT NULL,
                                rate_at_trade     NUMERIC(18, 6) NOT NULL,
                                total_amount      NUMERIC(18, 6) NOT NULL,
                                status            VARCHAR(9)     NOT NULL,
                                gold_rate_id      INTEGER        NOT NULL,
                                initiated_by      INTEGER        NOT NULL,
                                initiated_by_role VARCHAR(6)     NOT NULL,
                                approved_by       INTEGER,
                                notes             TEXT,
                                created_at        DATETIME       NOT NULL,
                                updated_at        DATETIME       NOT NULL,
                                CONSTRAINT ck_trades_quantity_positive CHECK (quantity > 0),
                                CONSTRAINT ck_trades_rate_non_negative CHECK (rate_at_trade >= 0),
                                CONSTRAINT ck_trades_total_amount_non_negative CHECK (total_amount >= 0),
                                FOREIGN KEY (member_id) REFERENCES members (id),
                                FOREIGN KEY (gold_rate_id) REFERENCES gold_rates (id),
                                FOREIGN KEY (approved_by) REFERENCES admins (id)
                            )"""))
    print("  ✓ Table created")
    conn.execute(sa.text("CREATE INDEX ix_trades_member_id ON trades (member_id)"))
    conn.execute(sa.text("CREATE INDEX idx_trades_member_created ON trades (member_id, created_at)"))
    conn.execute(sa.text("CREATE INDEX idx_trades_status_created ON trades (status, created_at)"))
    conn.execute(sa.text("CREATE INDEX idx_trades_type_created ON trades (trade_type, created_at)"))
    print("  ✓ 4 Indexes created")

    print("=" * 60)
    print("✅ Migration 001_initial completed successfully!")
    print("📊 Created 4 tables with all indexes and constraints")


def downgrade() -> None:
    """Drop all tables."""
    conn = op.get_bind()
    for table in ['trades', 'gold_rates', 'members', 'admins']:
        conn.execute(sa.text(f"DROP TABLE IF EXISTS {table}"))
