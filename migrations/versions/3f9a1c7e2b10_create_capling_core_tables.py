"""create capling core tables

Revision ID: 3f9a1c7e2b10
Revises:
Create Date: 2026-03-01 10:12:44.518207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # 1. users
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    # 2. user_profiles (weekly budget)
    op.create_table(
        'user_profiles',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('weekly_budget', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id'),
        sa.CheckConstraint('weekly_budget > 0', name='ck_user_profiles_weekly_budget_positive')
    )

    # 3. accounts
    op.create_table(
        'accounts',
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False, server_default='Main Checking'),
        sa.Column('balance', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('account_id'),
        sa.UniqueConstraint('user_id')
    )

    # 4. transactions
    op.create_table(
        'transactions',
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('merchant', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False, server_default='shopping'),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('classification', sa.String(length=20), nullable=False),
        sa.Column('original_classification', sa.String(length=20), nullable=False),
        sa.Column('final_classification', sa.String(length=20), nullable=True),
        sa.Column('justification_status', sa.String(length=20), nullable=False),
        sa.Column('justification', sa.Text(), nullable=True),
        sa.Column('reflection', sa.Text(), nullable=False, server_default=''),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('reasoning', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('occurred_on', sa.Date(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('transaction_id'),
        sa.CheckConstraint('amount > 0', name='ck_transactions_amount_positive')
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_justification_status', 'transactions', ['justification_status'])
    op.create_index('ix_transactions_user_occurred_on', 'transactions', ['user_id', 'occurred_on'])

    # 5. progression_accounts
    op.create_table(
        'progression_accounts',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('current_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('total_xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consecutive_happy_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lessons_read', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_happiness_check', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_happiness_day', sa.Date(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id'),
        sa.CheckConstraint('current_level BETWEEN 1 AND 50', name='ck_progression_level_range'),
        sa.CheckConstraint('total_xp >= 0', name='ck_progression_total_xp')
    )

    # 6. experience_events (append-only)
    op.create_table(
        'experience_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('xp_amount', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('metadata_json', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'idempotency_key', name='uq_experience_events_user_key')
    )
    op.create_index('ix_experience_events_user_id', 'experience_events', ['user_id'])
    op.create_index('ix_experience_events_event_type', 'experience_events', ['event_type'])

    # 7. lessons
    op.create_table(
        'lessons',
        sa.Column('lesson_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('lesson_type', sa.String(length=32), nullable=False, server_default='tip'),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('lesson_id')
    )
    op.create_index('ix_lessons_user_id', 'lessons', ['user_id'])

    # 8. lesson_reads
    op.create_table(
        'lesson_reads',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('lesson_id', sa.Integer(), nullable=False),
        sa.Column('xp_awarded', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('read_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'lesson_id', name='uq_lesson_reads_user_lesson')
    )

    # 9. badge_unlocks
    op.create_table(
        'badge_unlocks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('badge_id', sa.String(length=64), nullable=False),
        sa.Column('unlocked_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'badge_id', name='uq_badge_unlocks_user_badge')
    )
    op.create_index('ix_badge_unlocks_user_id', 'badge_unlocks', ['user_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_badge_unlocks_user_id', table_name='badge_unlocks')
    op.drop_table('badge_unlocks')
    op.drop_table('lesson_reads')
    op.drop_index('ix_lessons_user_id', table_name='lessons')
    op.drop_table('lessons')
    op.drop_index('ix_experience_events_event_type', table_name='experience_events')
    op.drop_index('ix_experience_events_user_id', table_name='experience_events')
    op.drop_table('experience_events')
    op.drop_table('progression_accounts')
    op.drop_index('ix_transactions_user_occurred_on', table_name='transactions')
    op.drop_index('ix_transactions_justification_status', table_name='transactions')
    op.drop_index('ix_transactions_user_id', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('accounts')
    op.drop_table('user_profiles')
    op.drop_table('users')
