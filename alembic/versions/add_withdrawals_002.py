"""Add withdrawals table and payout reservation transaction types

This migration adds:
1. withdrawal_hold / withdrawal_release values on transactiontypedb
2. withdrawals table (payout requests and their admin review)

Revision ID: add_withdrawals_002
Revises: create_settlement_tables_001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = 'add_withdrawals_002'
down_revision = 'create_settlement_tables_001'
branch_labels = None
depends_on = None


def upgrade():
    # 1. New ledger types (SQLite stores enums as plain strings)
    if op.get_bind().dialect.name == 'postgresql':
        for value in ('withdrawal_hold', 'withdrawal_release'):
            op.execute(f"""
                DO $$
                BEGIN
                    IF NOT EXISTS (SELECT 1 FROM pg_type t JOIN pg_enum e ON t.oid = e.enumtypid WHERE t.typname = 'transactiontypedb' AND e.enumlabel = '{value}') THEN
                        ALTER TYPE transactiontypedb ADD VALUE '{value}';
                    END IF;
                END$$;
            """)

    # 2. Withdrawals
    withdrawal_status = sa.Enum(
        'pending', 'processing', 'completed', 'failed', 'rejected', name='withdrawalstatusdb'
    )
    op.create_table('withdrawals',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('recipient_code', sa.String(100), nullable=False),
        sa.Column('payout_ref', sa.String(100), nullable=False, unique=True),
        sa.Column('status', withdrawal_status, nullable=False),
        sa.Column('reviewed_by', sa.String(36)),
        sa.Column('rejection_reason', sa.Text),
        sa.Column('failure_reason', sa.Text),
        sa.Column('requested_at', sa.DateTime),
        sa.Column('reviewed_at', sa.DateTime),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.CheckConstraint('amount > 0', name='ck_withdrawals_amount_positive'),
    )
    op.create_index('ix_withdrawals_account_id', 'withdrawals', ['account_id'])
    op.create_index('ix_withdrawals_status', 'withdrawals', ['status'])


def downgrade():
    op.drop_index('ix_withdrawals_status', table_name='withdrawals')
    op.drop_index('ix_withdrawals_account_id', table_name='withdrawals')
    op.drop_table('withdrawals')
    sa.Enum(name='withdrawalstatusdb').drop(op.get_bind(), checkfirst=True)
    # Postgres cannot drop enum values; the two transaction types stay
