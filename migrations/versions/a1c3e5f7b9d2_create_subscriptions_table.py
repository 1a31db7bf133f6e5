"""create subscriptions table

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


revision = 'a1c3e5f7b9d2'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('service_name', sa.String(255), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('user_uid', sa.String(64), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('counter_months', sa.Integer(), nullable=False),
        sa.Column('next_payment_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('price >= 0', name='ck_subscriptions_price_non_negative'),
        sa.CheckConstraint('counter_months > 0', name='ck_subscriptions_counter_months_positive'),
    )
    op.create_index('ix_subscriptions_username', 'subscriptions', ['username'])
    op.create_index('ix_subscriptions_next_payment_date', 'subscriptions', ['next_payment_date'])


def downgrade():
    op.drop_index('ix_subscriptions_next_payment_date', table_name='subscriptions')
    op.drop_index('ix_subscriptions_username', table_name='subscriptions')
    op.drop_table('subscriptions')
