"""006: create disputes and dispute_votes tables

Revision ID: 006
Revises: 005
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE disputes (
            id                  VARCHAR(64)     PRIMARY KEY,
            market_id           VARCHAR(64)     NOT NULL REFERENCES markets(id),
            initiator_id        VARCHAR(64)     NOT NULL,
            proposed_outcome    VARCHAR(3)      NOT NULL,
            evidence            TEXT            NOT NULL,
            stake_amount        NUMERIC(38, 18) NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'ACTIVE',
            votes_for           NUMERIC(38, 18) NOT NULL DEFAULT 0,
            votes_against       NUMERIC(38, 18) NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            resolved_at         TIMESTAMPTZ,
            CONSTRAINT ck_disputes_outcome   CHECK (proposed_outcome IN ('YES', 'NO')),
            CONSTRAINT ck_disputes_status    CHECK (status IN ('ACTIVE', 'PASSED', 'REJECTED')),
            CONSTRAINT ck_disputes_stake_gte_0 CHECK (stake_amount >= 0)
        );
    """)
    # At most one ACTIVE dispute per market
    op.execute("""
        CREATE UNIQUE INDEX uq_disputes_one_active
        ON disputes (market_id)
        WHERE status = 'ACTIVE';
    """)
    op.execute("""
        CREATE INDEX idx_disputes_active_created
        ON disputes (created_at)
        WHERE status = 'ACTIVE';
    """)
    op.execute("""
        CREATE TABLE dispute_votes (
            dispute_id  VARCHAR(64)     NOT NULL REFERENCES disputes(id),
            user_id     VARCHAR(64)     NOT NULL,
            vote        VARCHAR(10)     NOT NULL,
            stake       NUMERIC(38, 18) NOT NULL,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_dispute_votes     PRIMARY KEY (dispute_id, user_id),
            CONSTRAINT ck_dispute_votes_vote CHECK (vote IN ('FOR', 'AGAINST'))
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS dispute_votes CASCADE;")
    op.execute("DROP TABLE IF EXISTS disputes CASCADE;")
