"""Create commission settlement schema.

Revision ID: 20250106_000001
Revises:
Create Date: 2025-01-06 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20250106_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.DECIMAL(18, 8)
FACTOR = sa.DECIMAL(12, 10)

# (setting_name, value, description); rates and caps in percent
DEFAULT_SETTINGS = [
    ('direct_rate_tier_1', '10', 'Direct commission rate, sponsor tier 1 (%)'),
    ('direct_rate_tier_2', '5', 'Direct commission rate, sponsor tier 2 (%)'),
    ('direct_rate_tier_3', '3', 'Direct commission rate, sponsor tier 3 (%)'),
    ('binary_rate', '10', 'Binary rate on weak leg volume (%)'),
    ('override_rate_level_1', '5', 'Override rate, level 1 (%)'),
    ('override_rate_level_2', '3', 'Override rate, level 2 (%)'),
    ('override_rate_level_3', '2', 'Override rate, level 3 (%)'),
    ('direct_pool_cap_percent', '20', 'Direct pool cap (% of weekly sales volume)'),
    ('binary_pool_cap_percent', '17', 'Binary pool cap (% of weekly sales volume)'),
    ('override_pool_cap_percent', '3', 'Override pool cap (% of weekly sales volume)'),
    ('global_cap_percent', '40', 'Global payout cap (% of weekly sales volume)'),
    ('binary_weekly_cap_default', '250', 'Binary weekly cap without a rank cap (USD)'),
    ('binary_hard_cap', '40000', 'Absolute binary weekly cap (USD)'),
]


def _created_at() -> sa.Column:
    return sa.Column(
        'created_at', sa.DateTime(timezone=True), nullable=False,
        server_default=sa.text('now()'),
    )


def _scale_columns() -> list[sa.Column]:
    return [
        sa.Column('pool_scale_factor', FACTOR, nullable=False, server_default='1', comment='Pool cap factor'),
        sa.Column('global_scale_factor', FACTOR, nullable=False, server_default='1', comment='Global cap factor'),
        sa.Column('scale_factor', FACTOR, nullable=False, server_default='1', comment='pool factor * global factor'),
        sa.Column('scaled_amount', MONEY, nullable=False, comment='Final amount'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
    ]


def upgrade() -> None:
    """Create members, trees, sales, ranks, commissions and settlements."""

    # Members
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(64), nullable=True),
        sa.Column('rank_level', sa.Integer(), nullable=False, server_default='0', comment='Stored rank level (0 = unranked)'),
        sa.Column('rank_name', sa.String(64), nullable=False, server_default='Member'),
        sa.Column('hashrate_ths', sa.DECIMAL(18, 4), nullable=False, server_default='0', comment='Owned hashrate in TH/s'),
        sa.Column('last_active_week', sa.Date(), nullable=True, comment='Last week with an eligible purchase'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_index('idx_users_rank_level', 'users', ['rank_level'])

    # Packages and purchases
    op.create_table(
        'packages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('price', MONEY, nullable=False),
        sa.Column('commission_unlock_level', sa.Integer(), nullable=False, server_default='1', comment='Deepest direct tier the buyer earns on'),
        sa.Column('ghost_volume_amount', MONEY, nullable=True, comment='Ghost volume granted on purchase'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.CheckConstraint('commission_unlock_level BETWEEN 1 AND 3', name='check_package_unlock_level'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'package_purchases',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('package_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['package_id'], ['packages.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_package_purchases_user_id', 'package_purchases', ['user_id'])
    op.create_index('idx_package_purchases_user_status', 'package_purchases', ['user_id', 'status'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='USD'),
        sa.Column('week_start', sa.Date(), nullable=False, comment='Monday of the sale week (UTC)'),
        sa.Column('is_eligible', sa.Boolean(), nullable=False, server_default='true', comment='Counts toward sales volume'),
        sa.Column('purchase_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint('amount >= 0', name='check_transaction_amount_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['purchase_id'], ['package_purchases.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('idx_transactions_week_eligible', 'transactions', ['week_start', 'is_eligible'])

    # Trees
    op.create_table(
        'referral_edges',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sponsor_id', sa.Integer(), nullable=False),
        sa.Column('referee_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('leg', sa.String(5), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        _created_at(),
        sa.CheckConstraint('level >= 1', name='check_referral_level_positive'),
        sa.CheckConstraint('sponsor_id != referee_id', name='check_referral_not_self'),
        sa.ForeignKeyConstraint(['sponsor_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referee_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sponsor_id', 'referee_id', name='uq_referral_edge'),
    )
    op.create_index('ix_referral_edges_sponsor_id', 'referral_edges', ['sponsor_id'])
    op.create_index('idx_referral_edges_referee_level', 'referral_edges', ['referee_id', 'level'])

    op.create_table(
        'binary_nodes',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('left_child_id', sa.Integer(), nullable=True),
        sa.Column('right_child_id', sa.Integer(), nullable=True),
        sa.Column('left_volume', MONEY, nullable=False, server_default='0', comment='Cumulative finalized left leg volume'),
        sa.Column('right_volume', MONEY, nullable=False, server_default='0', comment='Cumulative finalized right leg volume'),
        sa.Column('left_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('right_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['left_child_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['right_child_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('user_id'),
        sa.UniqueConstraint('left_child_id'),
        sa.UniqueConstraint('right_child_id'),
    )

    op.create_table(
        'binary_volume',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('leg', sa.String(5), nullable=False),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('volume', MONEY, nullable=False, server_default='0', comment='Posted sales volume'),
        sa.Column('ghost_volume', MONEY, nullable=False, server_default='0'),
        sa.Column('carry_in', MONEY, nullable=False, server_default='0'),
        sa.Column('flushed_in', MONEY, nullable=False, server_default='0', comment='Carry written off at week open'),
        sa.Column('total_volume', MONEY, nullable=False, server_default='0'),
        sa.Column('carry_out', MONEY, nullable=False, server_default='0'),
        sa.Column('flushed_out', MONEY, nullable=False, server_default='0', comment='Volume written off at week close'),
        sa.Column('carry_since', sa.Date(), nullable=True, comment='Week the oldest carried volume was posted'),
        sa.Column('is_weak', sa.Boolean(), nullable=False, server_default='false'),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'leg', 'week_start', name='uq_binary_volume_user_leg_week'),
    )
    op.create_index('ix_binary_volume_user_id', 'binary_volume', ['user_id'])
    op.create_index('idx_binary_volume_week', 'binary_volume', ['week_start'])

    op.create_table(
        'ghost_volume_credits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('leg', sa.String(5), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(10), nullable=False, server_default='active'),
        sa.Column('purchase_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint('amount >= 0', name='check_ghost_amount_non_negative'),
        sa.CheckConstraint('expires_at > starts_at', name='check_ghost_window'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['purchase_id'], ['package_purchases.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_id'),
    )
    op.create_index('ix_ghost_volume_credits_user_id', 'ghost_volume_credits', ['user_id'])
    op.create_index('idx_ghost_credits_window', 'ghost_volume_credits', ['starts_at', 'expires_at'])

    # Ranks and configuration
    op.create_table(
        'rank_definitions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('rank_level', sa.Integer(), nullable=False),
        sa.Column('rank_name', sa.String(64), nullable=False),
        sa.Column('min_personal_sales', MONEY, nullable=False, server_default='0'),
        sa.Column('min_team_sales', MONEY, nullable=False, server_default='0'),
        sa.Column('min_left_leg_volume', MONEY, nullable=False, server_default='0'),
        sa.Column('min_right_leg_volume', MONEY, nullable=False, server_default='0'),
        sa.Column('min_hashrate_ths', sa.DECIMAL(18, 4), nullable=False, server_default='0'),
        sa.Column('min_direct_referrals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('weekly_cap_usd', MONEY, nullable=True, comment='Binary weekly cap for this rank'),
        sa.Column('hard_cap_usd', MONEY, nullable=True),
        sa.Column('benefits', sa.JSON(), nullable=True, comment='Override eligibility and other perks'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rank_level'),
    )

    op.create_table(
        'user_rank_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('old_rank_level', sa.Integer(), nullable=False),
        sa.Column('new_rank_level', sa.Integer(), nullable=False),
        sa.Column('new_rank_name', sa.String(64), nullable=False),
        sa.Column('criteria_met', sa.JSON(), nullable=True, comment='Metric snapshot behind the change'),
        sa.Column('week_start', sa.Date(), nullable=True),
        sa.Column('reason', sa.String(20), nullable=False, server_default='evaluation'),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('achieved_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_rank_history_user_id', 'user_rank_history', ['user_id'])
    op.create_index('ix_user_rank_history_achieved_at', 'user_rank_history', ['achieved_at'])

    settings_table = op.create_table(
        'commission_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('setting_name', sa.String(64), nullable=False),
        sa.Column('setting_value', MONEY, nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('setting_name'),
    )
    op.bulk_insert(
        settings_table,
        [
            {'setting_name': name, 'setting_value': value, 'description': description}
            for name, value, description in DEFAULT_SETTINGS
        ],
    )

    # Commission entries
    op.create_table(
        'direct_commissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('source_user_id', sa.Integer(), nullable=False),
        sa.Column('source_transaction_id', sa.Integer(), nullable=False),
        sa.Column('tier', sa.Integer(), nullable=False),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('base_amount', MONEY, nullable=False, comment='rate(tier) * transaction amount'),
        *_scale_columns(),
        _created_at(),
        sa.CheckConstraint('tier BETWEEN 1 AND 3', name='check_direct_tier'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['source_user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['source_transaction_id'], ['transactions.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'user_id', 'week_start', 'tier', 'source_transaction_id',
            name='uq_direct_commission_entry',
        ),
    )
    op.create_index('ix_direct_commissions_user_id', 'direct_commissions', ['user_id'])
    op.create_index('idx_direct_commissions_week', 'direct_commissions', ['week_start'])

    op.create_table(
        'binary_commissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('left_volume', MONEY, nullable=False),
        sa.Column('right_volume', MONEY, nullable=False),
        sa.Column('weak_leg', sa.String(5), nullable=False),
        sa.Column('weak_volume', MONEY, nullable=False),
        sa.Column('paid_volume', MONEY, nullable=False, comment='Weak leg volume consumed by the payout'),
        sa.Column('cap_amount', MONEY, nullable=False),
        sa.Column('cap_applied', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('base_amount', MONEY, nullable=False, comment='Capped, unscaled amount'),
        *_scale_columns(),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'week_start', name='uq_binary_commission_user_week'),
    )
    op.create_index('ix_binary_commissions_user_id', 'binary_commissions', ['user_id'])
    op.create_index('idx_binary_commissions_week', 'binary_commissions', ['week_start'])

    op.create_table(
        'override_commissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('source_user_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('source_binary_amount', MONEY, nullable=False),
        sa.Column('base_amount', MONEY, nullable=False, comment='rate(level) * source binary amount'),
        *_scale_columns(),
        _created_at(),
        sa.CheckConstraint('level BETWEEN 1 AND 3', name='check_override_level'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['source_user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'user_id', 'week_start', 'level', 'source_user_id',
            name='uq_override_commission_entry',
        ),
    )
    op.create_index('ix_override_commissions_user_id', 'override_commissions', ['user_id'])
    op.create_index('idx_override_commissions_week', 'override_commissions', ['week_start'])

    # Settlements
    op.create_table(
        'weekly_settlements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('direct_total', MONEY, nullable=False, server_default='0'),
        sa.Column('binary_total', MONEY, nullable=False, server_default='0'),
        sa.Column('override_total', MONEY, nullable=False, server_default='0'),
        sa.Column('grand_total', MONEY, nullable=False, server_default='0'),
        sa.Column('cap_applied', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('leaf_hash', sa.String(80), nullable=True, comment='sha256 of the settlement leaf'),
        sa.Column('merkle_proof', sa.JSON(), nullable=True, comment='Sibling hashes up to the commitment root'),
        sa.Column('is_finalized', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'week_start', name='uq_weekly_settlement_user_week'),
    )
    op.create_index('ix_weekly_settlements_user_id', 'weekly_settlements', ['user_id'])
    op.create_index('idx_weekly_settlements_week', 'weekly_settlements', ['week_start', 'is_finalized'])

    op.create_table(
        'weekly_settlement_meta',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('sales_volume', MONEY, nullable=False, comment='Eligible sales volume (SV)'),
        sa.Column('direct_total', MONEY, nullable=False),
        sa.Column('binary_total', MONEY, nullable=False),
        sa.Column('override_total', MONEY, nullable=False),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('direct_scale_factor', FACTOR, nullable=False),
        sa.Column('binary_scale_factor', FACTOR, nullable=False),
        sa.Column('override_scale_factor', FACTOR, nullable=False),
        sa.Column('global_scale_factor', FACTOR, nullable=False),
        sa.Column('global_scale_policy', sa.String(20), nullable=False),
        sa.Column('commitment_root', sa.String(80), nullable=True, comment='Merkle root over settlement leaves'),
        sa.Column('settlement_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('excluded', sa.JSON(), nullable=True, comment='Members excluded from the run with reasons'),
        sa.Column('is_finalized', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('week_start'),
    )


def downgrade() -> None:
    """Drop the commission settlement schema."""

    op.drop_table('weekly_settlement_meta')

    op.drop_index('idx_weekly_settlements_week', 'weekly_settlements')
    op.drop_index('ix_weekly_settlements_user_id', 'weekly_settlements')
    op.drop_table('weekly_settlements')

    for table in ('override_commissions', 'binary_commissions', 'direct_commissions'):
        op.drop_index(f'idx_{table}_week', table)
        op.drop_index(f'ix_{table}_user_id', table)
        op.drop_table(table)

    op.drop_table('commission_settings')

    op.drop_index('ix_user_rank_history_achieved_at', 'user_rank_history')
    op.drop_index('ix_user_rank_history_user_id', 'user_rank_history')
    op.drop_table('user_rank_history')
    op.drop_table('rank_definitions')

    op.drop_index('idx_ghost_credits_window', 'ghost_volume_credits')
    op.drop_index('ix_ghost_volume_credits_user_id', 'ghost_volume_credits')
    op.drop_table('ghost_volume_credits')

    op.drop_index('idx_binary_volume_week', 'binary_volume')
    op.drop_index('ix_binary_volume_user_id', 'binary_volume')
    op.drop_table('binary_volume')
    op.drop_table('binary_nodes')

    op.drop_index('idx_referral_edges_referee_level', 'referral_edges')
    op.drop_index('ix_referral_edges_sponsor_id', 'referral_edges')
    op.drop_table('referral_edges')

    op.drop_index('idx_transactions_week_eligible', 'transactions')
    op.drop_index('ix_transactions_user_id', 'transactions')
    op.drop_table('transactions')

    op.drop_index('idx_package_purchases_user_status', 'package_purchases')
    op.drop_index('ix_package_purchases_user_id', 'package_purchases')
    op.drop_table('package_purchases')
    op.drop_table('packages')

    op.drop_index('idx_users_rank_level', 'users')
    op.drop_table('users')
