"""create reminder engine tables

Revision ID: 001_create_reminder_tables
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '001_create_reminder_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'notification_policies',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('notification_type', sa.String(), nullable=False, unique=True),
        sa.Column('title_template', sa.String(), nullable=False),
        sa.Column('body_template', sa.String(), nullable=False),
        sa.Column('schedule_time', sa.String(length=8), nullable=True),
        sa.Column('repeat_pattern', sa.String(), nullable=False, server_default='daily'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('last_fired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_notification_policies_active', 'notification_policies', ['is_active', 'is_enabled'])

    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.String(), primary_key=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('timezone', sa.String(), nullable=True),
        sa.Column('breakfast_time', sa.String(length=8), nullable=True),
        sa.Column('snack1_time', sa.String(length=8), nullable=True),
        sa.Column('lunch_time', sa.String(length=8), nullable=True),
        sa.Column('snack2_time', sa.String(length=8), nullable=True),
        sa.Column('dinner_time', sa.String(length=8), nullable=True),
        sa.Column('notifications_enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('meal_reminders_enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('water_reminders_enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('weight_reminders_enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_user_preferences_enabled', 'user_preferences', ['notifications_enabled'])

    op.create_table(
        'notification_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('notification_type', sa.String(), nullable=False),
        sa.Column('local_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('body', sa.String(), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.UniqueConstraint('user_id', 'notification_type', 'local_date', name='uq_notification_logs_user_type_day'),
    )
    op.create_index('ix_notification_logs_user_id', 'notification_logs', ['user_id'])
    op.create_index('ix_notification_logs_user_type_sent', 'notification_logs', ['user_id', 'notification_type', 'sent_at'])

    op.create_table(
        'device_endpoints',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('token', sa.String(), nullable=False),
        sa.Column('platform', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('user_id', 'token', name='uq_device_endpoints_user_token'),
    )
    op.create_index('ix_device_endpoints_user_id', 'device_endpoints', ['user_id'])
    op.create_index('ix_device_endpoints_token', 'device_endpoints', ['token'])

    slots = ['breakfast', 'snack1', 'lunch', 'snack2', 'dinner']
    op.create_table(
        'meal_day_records',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        *[sa.Column(f'{s}_completed', sa.Boolean(), nullable=False, server_default=sa.text('false')) for s in slots],
        *[sa.Column(f'{s}_notification_sent_at', sa.DateTime(timezone=True), nullable=True) for s in slots],
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('user_id', 'date', name='uq_meal_day_records_user_date'),
    )
    op.create_index('ix_meal_day_records_user_id', 'meal_day_records', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_meal_day_records_user_id', table_name='meal_day_records')
    op.drop_table('meal_day_records')
    op.drop_index('ix_device_endpoints_token', table_name='device_endpoints')
    op.drop_index('ix_device_endpoints_user_id', table_name='device_endpoints')
    op.drop_table('device_endpoints')
    op.drop_index('ix_notification_logs_user_type_sent', table_name='notification_logs')
    op.drop_index('ix_notification_logs_user_id', table_name='notification_logs')
    op.drop_table('notification_logs')
    op.drop_index('ix_user_preferences_enabled', table_name='user_preferences')
    op.drop_table('user_preferences')
    op.drop_index('ix_notification_policies_active', table_name='notification_policies')
    op.drop_table('notification_policies')
