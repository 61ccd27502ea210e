"""create initial schema

Revision ID: 001_create_initial_schema
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """
    Cria users, subscriptions, credit_transactions, addon_grants e dreams.
    """
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=True),
        sa.Column('locale', sa.String(8), nullable=False, server_default='en'),
        sa.Column('role', sa.String(16), nullable=False, server_default='user'),
        sa.Column('email_results_opt_in', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('credit_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('free_used_this_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('free_month_start', sa.DateTime(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('credit_balance >= 0', name='ck_users_credit_balance_non_negative'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_stripe_customer_id', 'users', ['stripe_customer_id'])
    op.create_index('ix_users_is_deleted', 'users', ['is_deleted'])

    # Uma assinatura por usuário (UNIQUE user_id)
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('plan', sa.String(16), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='none'),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('monthly_deep_limit', sa.Integer(), nullable=True),
        sa.Column('monthly_deep_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_invoice_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_subscriptions_id', 'subscriptions', ['id'])
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'], unique=True)
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'], unique=True)
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])

    # Ledger de créditos; provider_reference único torna o webhook idempotente
    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(64), nullable=False),
        sa.Column('pack', sa.String(8), nullable=True),
        sa.Column('addon_key', sa.String(32), nullable=True),
        sa.Column('provider_reference', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('provider_reference', name='uq_credit_transactions_provider_reference'),
    )
    op.create_index('ix_credit_transactions_id', 'credit_transactions', ['id'])
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])
    op.create_index('ix_credit_transactions_reason', 'credit_transactions', ['reason'])
    op.create_index('ix_credit_transactions_created_at', 'credit_transactions', ['created_at'])

    op.create_table(
        'addon_grants',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('addon_key', sa.String(32), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('purchased_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'addon_key', name='uq_addon_grants_user_addon'),
    )
    op.create_index('ix_addon_grants_id', 'addon_grants', ['id'])
    op.create_index('ix_addon_grants_user_id', 'addon_grants', ['user_id'])

    op.create_table(
        'dreams',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('dream_text', sa.Text(), nullable=False),
        sa.Column('interpretation_type', sa.String(16), nullable=False),
        sa.Column('language', sa.String(8), nullable=False, server_default='en'),
        sa.Column('interpretation', sa.JSON(), nullable=True),
        sa.Column('charged_from', sa.String(16), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_dreams_id', 'dreams', ['id'])
    op.create_index('ix_dreams_user_id', 'dreams', ['user_id'])
    op.create_index('ix_dreams_created_at', 'dreams', ['created_at'])


def downgrade():
    op.drop_table('dreams')
    op.drop_table('addon_grants')
    op.drop_table('credit_transactions')
    op.drop_table('subscriptions')
    op.drop_table('users')
