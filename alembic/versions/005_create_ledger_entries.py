"""005: create ledger_entries table

Revision ID: 005
Revises: 004
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ledger_entries (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL,
            entry_type      VARCHAR(30)     NOT NULL,
            currency        VARCHAR(10)     NOT NULL,
            amount          NUMERIC(38, 18) NOT NULL,
            balance_after   NUMERIC(38, 18) NOT NULL,
            market_id       VARCHAR(64),
            outcome         VARCHAR(3),
            shares          NUMERIC(38, 18),
            price           NUMERIC(38, 18),
            fee             NUMERIC(38, 18),
            external_ref    VARCHAR(128),
            reference_id    VARCHAR(64),
            description     VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_ledger_external_ref UNIQUE (external_ref),
            CONSTRAINT ck_ledger_entry_type CHECK (
                entry_type IN (
                    'BUY', 'SELL',
                    'DEPOSIT', 'WITHDRAW', 'WITHDRAW_REVERT',
                    'DISPUTE_STAKE', 'DISPUTE_REFUND', 'DISPUTE_FORFEIT',
                    'PAYOUT'
                )
            ),
            CONSTRAINT ck_ledger_balance_gte_0 CHECK (balance_after >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_ledger_user_id ON ledger_entries (user_id, id DESC);")
    op.execute("""
        CREATE INDEX idx_ledger_market
        ON ledger_entries (market_id, created_at)
        WHERE market_id IS NOT NULL;
    """)
    op.execute("COMMENT ON TABLE ledger_entries IS 'Append-only money movements — never updated or deleted';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_entries CASCADE;")
