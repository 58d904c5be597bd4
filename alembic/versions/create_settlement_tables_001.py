"""Create settlement engine tables

This migration adds:
1. accounts table (available / held balances)
2. ledger_transactions table (append-only, one row per posting leg)
3. escrow_holds table
4. campaigns table
5. bids table
6. disputes table
7. notifications table (outbox)
8. affiliate_orders table

Revision ID: create_settlement_tables_001
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = 'create_settlement_tables_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    party_type = sa.Enum('brand', 'influencer', 'platform', name='partytypedb')
    transaction_type = sa.Enum(
        'deposit', 'withdrawal', 'escrow_lock', 'escrow_release', 'escrow_refund',
        'platform_fee', 'affiliate_commission', name='transactiontypedb'
    )
    transaction_status = sa.Enum('pending', 'success', 'failed', name='transactionstatusdb')
    escrow_status = sa.Enum('active', 'released', 'refunded', 'split', name='escrowstatusdb')
    campaign_status = sa.Enum(
        'open', 'pending', 'accepted', 'in_progress', 'draft_submitted', 'revision_requested',
        'draft_approved', 'published', 'completed', 'disputed', 'cancelled', name='campaignstatusdb'
    )
    bid_status = sa.Enum('pending', 'accepted', 'rejected', 'withdrawn', name='bidstatusdb')
    dispute_status = sa.Enum('open', 'under_review', 'resolved', 'closed', name='disputestatusdb')
    commission_type = sa.Enum('percentage', 'fixed', name='commissiontypedb')
    platform_fee_type = sa.Enum('percentage', 'fixed', name='platformfeetypedb')

    # 1. Accounts
    op.create_table('accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('party_type', party_type, nullable=False),
        sa.Column('available_balance', sa.Integer, nullable=False, server_default='0'),
        sa.Column('held_balance', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Integer, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), server_default='KES'),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime),
        sa.CheckConstraint('available_balance >= 0', name='ck_accounts_available_nonnegative'),
        sa.CheckConstraint('held_balance >= 0', name='ck_accounts_held_nonnegative'),
    )

    # 2. Ledger
    op.create_table('ledger_transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('type', transaction_type, nullable=False),
        sa.Column('status', transaction_status, nullable=False),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('available_delta', sa.Integer, nullable=False, server_default='0'),
        sa.Column('held_delta', sa.Integer, nullable=False, server_default='0'),
        sa.Column('idempotency_key', sa.String(255), nullable=False),
        sa.Column('leg', sa.Integer, nullable=False, server_default='0'),
        sa.Column('related_entity_id', sa.String(36)),
        sa.Column('external_ref', sa.String(255)),
        sa.Column('description', sa.Text),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('idempotency_key', 'leg', name='uq_ledger_transactions_key_leg'),
        sa.CheckConstraint('amount > 0', name='ck_ledger_transactions_amount_positive'),
    )
    op.create_index('ix_ledger_transactions_account_id', 'ledger_transactions', ['account_id'])
    op.create_index('ix_ledger_transactions_idempotency_key', 'ledger_transactions', ['idempotency_key'])
    op.create_index('ix_ledger_transactions_related_entity_id', 'ledger_transactions', ['related_entity_id'])

    # 3. Escrow holds
    op.create_table('escrow_holds',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), nullable=False),
        sa.Column('payer_account_id', sa.String(36), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('payee_account_id', sa.String(36), sa.ForeignKey('accounts.id')),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('status', escrow_status, nullable=False),
        sa.Column('idempotency_key', sa.String(255), nullable=False, unique=True),
        sa.Column('terminal_idempotency_key', sa.String(255), unique=True),
        sa.Column('locked_at', sa.DateTime),
        sa.Column('auto_release_at', sa.DateTime),
        sa.Column('terminated_at', sa.DateTime),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_escrow_holds_campaign_id', 'escrow_holds', ['campaign_id'])
    op.create_index('ix_escrow_holds_auto_release_at', 'escrow_holds', ['auto_release_at'])

    # 4. Campaigns
    op.create_table('campaigns',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('brand_id', sa.String(36), nullable=False),
        sa.Column('influencer_id', sa.String(36)),
        sa.Column('escrow_hold_id', sa.String(36), sa.ForeignKey('escrow_holds.id')),
        sa.Column('title', sa.String(255)),
        sa.Column('description', sa.Text),
        sa.Column('budget', sa.Integer, nullable=False, server_default='0'),
        sa.Column('agreed_amount', sa.Integer),
        sa.Column('status', campaign_status, nullable=False),
        sa.Column('status_before_dispute', sa.String(30)),
        sa.Column('accepted_at', sa.DateTime),
        sa.Column('started_at', sa.DateTime),
        sa.Column('draft_submitted_at', sa.DateTime),
        sa.Column('draft_approved_at', sa.DateTime),
        sa.Column('published_at', sa.DateTime),
        sa.Column('disputed_at', sa.DateTime),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('cancelled_at', sa.DateTime),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_campaigns_brand_id', 'campaigns', ['brand_id'])
    op.create_index('ix_campaigns_influencer_id', 'campaigns', ['influencer_id'])

    # 5. Bids
    op.create_table('bids',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('influencer_id', sa.String(36), nullable=False),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('proposal', sa.Text),
        sa.Column('invited', sa.Boolean, server_default=sa.false()),
        sa.Column('status', bid_status, nullable=False),
        sa.Column('accepted_at', sa.DateTime),
        sa.Column('rejected_at', sa.DateTime),
        sa.Column('withdrawn_at', sa.DateTime),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_bids_campaign_id', 'bids', ['campaign_id'])
    op.create_index('ix_bids_influencer_id', 'bids', ['influencer_id'])

    # 6. Disputes
    op.create_table('disputes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('raised_by', sa.String(36), nullable=False),
        sa.Column('reason', sa.Text, nullable=False),
        sa.Column('status', dispute_status, nullable=False),
        sa.Column('resolution', sa.Text),
        sa.Column('refund_percentage', sa.Integer),
        sa.Column('resolved_in_favor_of', sa.String(36)),
        sa.Column('resolved_by', sa.String(36)),
        sa.Column('resolved_at', sa.DateTime),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_disputes_campaign_id', 'disputes', ['campaign_id'])

    # 7. Notifications
    op.create_table('notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text),
        sa.Column('data', sa.JSON),
        sa.Column('read', sa.Boolean, server_default=sa.false()),
        sa.Column('delivered_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    # 8. Affiliate orders
    op.create_table('affiliate_orders',
        sa.Column('order_id', sa.String(64), primary_key=True),
        sa.Column('product_id', sa.String(36), nullable=False),
        sa.Column('affiliate_id', sa.String(36), nullable=False),
        sa.Column('brand_id', sa.String(36), nullable=False),
        sa.Column('gross_amount', sa.Integer, nullable=False),
        sa.Column('commission_type', commission_type, nullable=False),
        sa.Column('commission_rate_or_fixed', sa.Numeric(12, 2), nullable=False),
        sa.Column('platform_fee_type', platform_fee_type, nullable=False),
        sa.Column('platform_fee_rate_or_fixed', sa.Numeric(12, 2), nullable=False),
        sa.Column('gross_commission', sa.Integer, nullable=False),
        sa.Column('platform_fee_amount', sa.Integer, nullable=False),
        sa.Column('net_commission', sa.Integer, nullable=False),
        sa.Column('payout_idempotency_key', sa.String(255), nullable=False, unique=True),
        sa.Column('fulfilled_at', sa.DateTime, nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_affiliate_orders_product_id', 'affiliate_orders', ['product_id'])
    op.create_index('ix_affiliate_orders_affiliate_id', 'affiliate_orders', ['affiliate_id'])
    op.create_index('ix_affiliate_orders_brand_id', 'affiliate_orders', ['brand_id'])


def downgrade():
    for table in (
        'affiliate_orders', 'notifications', 'disputes', 'bids',
        'campaigns', 'escrow_holds', 'ledger_transactions', 'accounts',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in (
        'platformfeetypedb', 'commissiontypedb', 'disputestatusdb', 'bidstatusdb',
        'campaignstatusdb', 'escrowstatusdb', 'transactionstatusdb', 'transactiontypedb', 'partytypedb',
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
