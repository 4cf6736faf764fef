"""Initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UUID = postgresql.UUID(as_uuid=True)


def _id():
    return sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _created_at():
    return sa.Column(
        'created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False
    )


def _updated_at():
    return sa.Column(
        'updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False
    )


def upgrade() -> None:
    """Create billing, account, marketing and email tables."""

    # Billing
    op.create_table(
        'user_subscriptions',
        _id(),
        sa.Column('user_id', UUID, nullable=False, unique=True, index=True),
        sa.Column('plan_id', sa.String(32), server_default='trial', nullable=False),
        sa.Column('status', sa.String(16), server_default='trial', nullable=False, index=True),
        sa.Column('trial_start_date', sa.DateTime(timezone=True)),
        sa.Column('trial_end_date', sa.DateTime(timezone=True), index=True),
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('stripe_customer_id', sa.String(255), index=True),
        sa.Column('stripe_subscription_id', sa.String(255), index=True),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        'monthly_usage',
        _id(),
        sa.Column('user_id', UUID, nullable=False, index=True),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('searches_used', sa.Integer, server_default='0', nullable=False),
        sa.Column('searches_limit', sa.Integer, server_default='0', nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('user_id', 'period_start', name='uq_monthly_usage_user_period'),
        sa.CheckConstraint('searches_used >= 0', name='ck_monthly_usage_used_non_negative'),
    )

    op.create_table(
        'user_bonuses',
        _id(),
        sa.Column('user_id', UUID, nullable=False, index=True),
        sa.Column('bonus_type', sa.String(32), nullable=False),
        sa.Column('bonus_value', sa.Float, server_default='0', nullable=False),
        sa.Column('bonus_duration', sa.String(16), server_default='once', nullable=False),
        sa.Column('months_remaining', sa.Integer),
        sa.Column('reason', sa.String, index=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False, index=True),
        sa.Column('awarded_by', UUID),
        _created_at(),
    )

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column(
            'processed_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
            index=True,
        ),
    )

    # Account
    op.create_table(
        'admins',
        sa.Column('user_id', UUID, primary_key=True),
        sa.Column('role', sa.String(32), nullable=False),
        sa.Column('email', sa.String),
        _created_at(),
    )

    op.create_table(
        'user_feedback',
        _id(),
        sa.Column('user_id', UUID, nullable=False, index=True),
        sa.Column('user_email', sa.String),
        sa.Column('category', sa.String(32), server_default='general', nullable=False, index=True),
        sa.Column('message', sa.String(2000), nullable=False),
        sa.Column('page_url', sa.String),
        sa.Column('allow_contact', sa.Boolean, server_default='true', nullable=False),
        sa.Column('reward_granted', sa.Boolean, server_default='false', nullable=False),
        sa.Column('reward_amount', sa.Integer, server_default='0', nullable=False),
        sa.Column('archived', sa.Boolean, server_default='false', nullable=False, index=True),
        _created_at(),
    )

    op.create_table(
        'account_deletion_requests',
        _id(),
        sa.Column('user_id', UUID, nullable=False, index=True),
        sa.Column('email', sa.String),
        sa.Column('reason', sa.String),
        sa.Column('status', sa.String(16), server_default='pending', nullable=False, index=True),
        sa.Column('subscription_status', sa.String(16)),
        sa.Column('admin_note', sa.String(2000)),
        sa.Column(
            'requested_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False
        ),
        sa.Column('processed_at', sa.DateTime(timezone=True)),
        sa.Column('processed_by', UUID),
        sa.Column('processed_by_email', sa.String),
    )

    op.create_table(
        'profiles',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('first_name', sa.String),
        sa.Column('last_name', sa.String),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table(
        'user_analyses',
        _id(),
        sa.Column('user_id', UUID, nullable=False, index=True),
        sa.Column('app_id', sa.String, nullable=False, index=True),
        sa.Column('app_name', sa.String),
        sa.Column('review_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('api_cost', sa.Float, server_default='0', nullable=False),
        sa.Column('analysis', postgresql.JSONB),
        _created_at(),
    )

    # Marketing
    op.create_table(
        'waitlist',
        _id(),
        sa.Column('email', sa.String, nullable=False, unique=True, index=True),
        sa.Column('source', sa.String),
        sa.Column(
            'unsubscribe_token', UUID, server_default=sa.text('gen_random_uuid()'),
            nullable=False, unique=True,
        ),
        sa.Column('bonus_granted_at', sa.DateTime(timezone=True)),
        sa.Column('bonus_granted_user_id', UUID),
        sa.Column('bonus_code', sa.String),
        _created_at(),
    )

    op.create_table(
        'unsubscribes',
        _id(),
        sa.Column('email', sa.String, nullable=False, index=True),
        sa.Column('token', UUID),
        sa.Column('ip_address', sa.String),
        sa.Column('user_agent', sa.String),
        sa.Column(
            'unsubscribed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'),
            nullable=False,
        ),
    )

    op.create_table(
        'coupons',
        _id(),
        sa.Column('code', sa.String(64), nullable=False, unique=True, index=True),
        sa.Column('discount_type', sa.String(16), nullable=False),
        sa.Column('discount_value', sa.Float),
        sa.Column('free_plan_id', sa.String),
        sa.Column('max_uses', sa.Integer),
        sa.Column('times_used', sa.Integer, server_default='0', nullable=False),
        sa.Column(
            'valid_from', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False
        ),
        sa.Column('valid_until', sa.DateTime(timezone=True)),
        sa.Column('description', sa.String),
        sa.Column('stripe_coupon_id', sa.String),
        sa.Column('stripe_promotion_code', sa.String),
        sa.Column('created_by', UUID),
        _created_at(),
    )

    # Email
    op.create_table(
        'email_campaigns',
        _id(),
        sa.Column('subject', sa.String, nullable=False),
        sa.Column('html_content', sa.String, nullable=False),
        sa.Column('text_content', sa.String, server_default='', nullable=False),
        sa.Column('recipient_type', sa.String(32), nullable=False),
        sa.Column('adhoc_emails', postgresql.ARRAY(sa.String)),
        sa.Column('reply_to_email', sa.String),
        sa.Column('sent_by', UUID),
        sa.Column('total_recipients', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_sent', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_failed', sa.Integer, server_default='0', nullable=False),
        sa.Column('status', sa.String(16), server_default='draft', nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True)),
        _created_at(),
    )

    op.create_table(
        'email_recipients',
        _id(),
        sa.Column(
            'campaign_id', UUID,
            sa.ForeignKey('email_campaigns.id', ondelete='CASCADE'),
            nullable=False, index=True,
        ),
        sa.Column('email', sa.String, nullable=False),
        sa.Column('user_id', UUID),
        sa.Column(
            'tracking_token', UUID, server_default=sa.text('gen_random_uuid()'),
            nullable=False, unique=True, index=True,
        ),
        sa.Column('sent_status', sa.String(16), server_default='pending', nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True)),
        sa.Column('error_message', sa.String),
        sa.Column('opened_at', sa.DateTime(timezone=True)),
        sa.Column('opened_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('clicked_at', sa.DateTime(timezone=True)),
        sa.Column('clicked_count', sa.Integer, server_default='0', nullable=False),
        _created_at(),
    )

    op.create_table(
        'email_templates',
        _id(),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('subject', sa.String, nullable=False),
        sa.Column('html_content', sa.String, nullable=False),
        sa.Column('text_content', sa.String, server_default='', nullable=False),
        sa.Column('created_by', UUID),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        'email_settings',
        _id(),
        sa.Column('setting_key', sa.String, nullable=False, unique=True, index=True),
        sa.Column('setting_value', sa.String, nullable=False),
        sa.Column('updated_by', UUID),
        _created_at(),
        _updated_at(),
    )

    # Users read their own subscription and usage; the service role does everything else.
    for table in ('user_subscriptions', 'monthly_usage', 'user_bonuses'):
        op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')
        op.execute(f"""
            CREATE POLICY "Users can view own {table}"
            ON {table} FOR SELECT
            TO authenticated
            USING (user_id = auth.uid())
        """)


def downgrade() -> None:
    for table in ('user_subscriptions', 'monthly_usage', 'user_bonuses'):
        op.execute(f'DROP POLICY IF EXISTS "Users can view own {table}" ON {table}')

    for table in (
        'email_settings',
        'email_templates',
        'email_recipients',
        'email_campaigns',
        'coupons',
        'unsubscribes',
        'waitlist',
        'user_analyses',
        'profiles',
        'account_deletion_requests',
        'user_feedback',
        'admins',
        'processed_webhook_events',
        'user_bonuses',
        'monthly_usage',
        'user_subscriptions',
    ):
        op.drop_table(table)
