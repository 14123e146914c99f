"""Create commission engine tables

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261017_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.DECIMAL(precision=18, scale=8)


def upgrade() -> None:
    # Minimal projection of the platform user directory
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('referral_code', sa.String(length=20), nullable=True),
        sa.Column('referrer_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['referrer_id'], ['users.id'], ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index(
        'ix_users_referral_code', 'users', ['referral_code'], unique=True
    )
    op.create_index('ix_users_referrer_id', 'users', ['referrer_id'])

    # Versioned commission plans
    op.create_table(
        'commission_plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('variant', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('max_levels', sa.Integer(), nullable=False),
        sa.Column('commission_type', sa.String(length=20), nullable=False),
        sa.Column('total_distribution', MONEY, nullable=True),
        sa.Column(
            'is_active', sa.Boolean(), nullable=False,
            server_default=sa.true()
        ),
        sa.Column(
            'version', sa.Integer(), nullable=False, server_default='1'
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'max_levels >= 1 AND max_levels <= 25',
            name='check_commission_plan_max_levels_range'
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_commission_plans_variant', 'commission_plans', ['variant']
    )
    # One active plan per variant
    op.create_index(
        'uq_commission_plans_active_variant', 'commission_plans',
        ['variant'], unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1'),
    )

    op.create_table(
        'commission_plan_levels',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('rate', MONEY, nullable=False),
        sa.CheckConstraint('level >= 1', name='check_plan_level_positive'),
        sa.CheckConstraint(
            'rate >= 0', name='check_plan_level_rate_non_negative'
        ),
        sa.ForeignKeyConstraint(
            ['plan_id'], ['commission_plans.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'plan_id', 'level', name='uq_commission_plan_levels_plan_level'
        )
    )
    op.create_index(
        'ix_commission_plan_levels_plan_id', 'commission_plan_levels',
        ['plan_id']
    )

    # Commission ledger
    op.create_table(
        'commission_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('beneficiary_id', sa.Integer(), nullable=False),
        sa.Column('source_user_id', sa.Integer(), nullable=False),
        sa.Column('trade_id', sa.String(length=64), nullable=True),
        sa.Column('event_key', sa.String(length=80), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('distribution_type', sa.String(length=20), nullable=False),
        sa.Column('base_amount', MONEY, nullable=False),
        sa.Column('rate', MONEY, nullable=False),
        sa.Column('commission_amount', MONEY, nullable=False),
        sa.Column(
            'status', sa.String(length=20), nullable=False,
            server_default='CREDITED'
        ),
        sa.Column('symbol', sa.String(length=20), nullable=True),
        sa.Column('lot_size', MONEY, nullable=True),
        sa.Column(
            'description', sa.String(length=255), nullable=False,
            server_default=''
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'level >= 1', name='check_commission_level_positive'
        ),
        sa.CheckConstraint(
            'commission_amount > 0', name='check_commission_amount_positive'
        ),
        sa.ForeignKeyConstraint(
            ['beneficiary_id'], ['users.id'], ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['source_user_id'], ['users.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'event_key', 'beneficiary_id', 'level', 'distribution_type',
            name='uq_commission_records_idempotency_key'
        )
    )
    op.create_index(
        'ix_commission_records_source_user_id', 'commission_records',
        ['source_user_id']
    )
    op.create_index(
        'ix_commission_records_trade_id', 'commission_records', ['trade_id']
    )
    op.create_index(
        'ix_commission_records_distribution_type', 'commission_records',
        ['distribution_type']
    )
    op.create_index(
        'idx_commission_records_beneficiary_created', 'commission_records',
        ['beneficiary_id', 'created_at']
    )
    op.create_index(
        'idx_commission_records_beneficiary_type_status',
        'commission_records',
        ['beneficiary_id', 'distribution_type', 'status']
    )

    # Wallets
    op.create_table(
        'ib_wallets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('total_earned', MONEY, nullable=False, server_default='0'),
        sa.Column(
            'total_withdrawn', MONEY, nullable=False, server_default='0'
        ),
        sa.Column(
            'pending_withdrawal', MONEY, nullable=False, server_default='0'
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'balance >= 0', name='check_ib_wallet_balance_non_negative'
        ),
        sa.CheckConstraint(
            'total_earned >= 0',
            name='check_ib_wallet_total_earned_non_negative'
        ),
        sa.CheckConstraint(
            'total_withdrawn >= 0',
            name='check_ib_wallet_total_withdrawn_non_negative'
        ),
        sa.CheckConstraint(
            'pending_withdrawal >= 0',
            name='check_ib_wallet_pending_withdrawal_non_negative'
        ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_ib_wallets_user_id', 'ib_wallets', ['user_id'], unique=True
    )


def downgrade() -> None:
    op.drop_index('ix_ib_wallets_user_id', table_name='ib_wallets')
    op.drop_table('ib_wallets')

    op.drop_index(
        'idx_commission_records_beneficiary_type_status',
        table_name='commission_records'
    )
    op.drop_index(
        'idx_commission_records_beneficiary_created',
        table_name='commission_records'
    )
    op.drop_index(
        'ix_commission_records_distribution_type',
        table_name='commission_records'
    )
    op.drop_index(
        'ix_commission_records_trade_id', table_name='commission_records'
    )
    op.drop_index(
        'ix_commission_records_source_user_id',
        table_name='commission_records'
    )
    op.drop_table('commission_records')

    op.drop_index(
        'ix_commission_plan_levels_plan_id',
        table_name='commission_plan_levels'
    )
    op.drop_table('commission_plan_levels')

    op.drop_index(
        'uq_commission_plans_active_variant', table_name='commission_plans'
    )
    op.drop_index('ix_commission_plans_variant', table_name='commission_plans')
    op.drop_table('commission_plans')

    op.drop_index('ix_users_referrer_id', table_name='users')
    op.drop_index('ix_users_referral_code', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
