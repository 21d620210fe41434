"""004: create positions table

Revision ID: 004
Revises: 003
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE positions (
            user_id     VARCHAR(64)     NOT NULL,
            market_id   VARCHAR(64)     NOT NULL REFERENCES markets(id),
            outcome     VARCHAR(3)      NOT NULL,
            shares      NUMERIC(38, 18) NOT NULL DEFAULT 0,
            cost_basis  NUMERIC(38, 18) NOT NULL DEFAULT 0,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_positions                 PRIMARY KEY (user_id, market_id, outcome),
            CONSTRAINT ck_positions_outcome         CHECK (outcome IN ('YES', 'NO')),
            CONSTRAINT ck_positions_shares_gte_0    CHECK (shares >= 0),
            CONSTRAINT ck_positions_cost_gte_0      CHECK (cost_basis >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_positions_updated_at
            BEFORE UPDATE ON positions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("CREATE INDEX idx_positions_market_outcome ON positions (market_id, outcome);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS positions CASCADE;")
