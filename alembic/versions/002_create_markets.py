"""002: create markets table

Revision ID: 002
Revises: 001
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE markets (
            id                  VARCHAR(64)     PRIMARY KEY,
            creator_id          VARCHAR(64)     NOT NULL,
            question            VARCHAR(500)    NOT NULL,
            outcome_yes_label   VARCHAR(64)     NOT NULL DEFAULT 'Yes',
            outcome_no_label    VARCHAR(64)     NOT NULL DEFAULT 'No',
            b_param             NUMERIC(38, 18) NOT NULL,
            shares_yes          NUMERIC(38, 18) NOT NULL DEFAULT 0,
            shares_no           NUMERIC(38, 18) NOT NULL DEFAULT 0,
            total_volume        NUMERIC(38, 18) NOT NULL DEFAULT 0,
            status              VARCHAR(20)     NOT NULL DEFAULT 'ACTIVE',
            resolved_outcome    VARCHAR(3),
            resolved_at         TIMESTAMPTZ,
            dispute_deadline    TIMESTAMPTZ,
            finalized_at        TIMESTAMPTZ,
            group_id            VARCHAR(64),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_markets_b_gt_0            CHECK (b_param > 0),
            CONSTRAINT ck_markets_shares_yes_gte_0  CHECK (shares_yes >= 0),
            CONSTRAINT ck_markets_shares_no_gte_0   CHECK (shares_no >= 0),
            CONSTRAINT ck_markets_volume_gte_0      CHECK (total_volume >= 0),
            CONSTRAINT ck_markets_status CHECK (
                status IN ('ACTIVE', 'RESOLVED', 'DISPUTED', 'FINALIZED')
            ),
            CONSTRAINT ck_markets_resolved_outcome CHECK (
                resolved_outcome IS NULL OR resolved_outcome IN ('YES', 'NO')
            ),
            CONSTRAINT ck_markets_outcome_when_resolved CHECK (
                status = 'ACTIVE' OR resolved_outcome IS NOT NULL
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_markets_updated_at
            BEFORE UPDATE ON markets
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("CREATE INDEX idx_markets_status_created ON markets (status, created_at DESC);")
    op.execute("CREATE INDEX idx_markets_group ON markets (group_id) WHERE group_id IS NOT NULL;")
    op.execute("""
        CREATE INDEX idx_markets_dispute_deadline
        ON markets (dispute_deadline)
        WHERE status = 'RESOLVED';
    """)
    op.execute("COMMENT ON TABLE markets IS 'Binary LMSR markets — amounts and shares in NUMERIC(38, 18)';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS markets CASCADE;")
