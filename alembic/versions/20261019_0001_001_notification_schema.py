"""Notification schema - users, preferences, in-app records, delivery log, scheduled notifications.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

Tables:
- users: recipients with routing info (email, phone, device tokens, topics)
- notification_preferences: per-user, optionally per-type channel opt-ins
- notifications: in-app records, unique per (user, origin)
- notification_deliveries: one row per (user, channel, origin) attempt
- scheduled_notifications: one-time and recurring scheduled notifications
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLModel persists enum member names
notification_channel_enum = sa.Enum('DATABASE', 'MAIL', 'SMS', 'PUSH', name='notificationchannel')
scheduled_status_enum = sa.Enum(
    'PENDING', 'PROCESSING', 'SENT', 'FAILED', 'CANCELLED', name='scheduledstatus'
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('device_tokens', sa.JSON(), nullable=True),
        sa.Column('push_topics', sa.JSON(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('notification_type', sa.String(length=100), nullable=True),
        sa.Column('database', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('mail', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sms', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('push', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'notification_type'),
    )
    op.create_index('ix_notification_preferences_user_id', 'notification_preferences', ['user_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('origin_key', sa.String(length=255), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('channel_results', sa.JSON(), nullable=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'origin_key'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_read_at', 'notifications', ['read_at'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table(
        'notification_deliveries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('notification_id', sa.Uuid(), sa.ForeignKey('notifications.id'), nullable=True),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('origin_key', sa.String(length=255), nullable=False),
        sa.Column('channel', notification_channel_enum, nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('provider_message_id', sa.String(length=255), nullable=True),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('attempted_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'channel', 'origin_key'),
    )
    op.create_index('ix_notification_deliveries_user_id', 'notification_deliveries', ['user_id'])

    op.create_table(
        'scheduled_notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('channels', sa.JSON(), nullable=True),
        sa.Column('recipients', sa.JSON(), nullable=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('schedule', sa.JSON(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('status', scheduled_status_enum, nullable=False),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('failure_reason', sa.String(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('run_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_scheduled_notifications_scheduled_at', 'scheduled_notifications', ['scheduled_at'])
    op.create_index('ix_scheduled_notifications_status', 'scheduled_notifications', ['status'])
    op.create_index('ix_scheduled_notifications_created_by', 'scheduled_notifications', ['created_by'])


def downgrade() -> None:
    op.drop_table('scheduled_notifications')
    op.drop_table('notification_deliveries')
    op.drop_table('notifications')
    op.drop_table('notification_preferences')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    scheduled_status_enum.drop(op.get_bind(), checkfirst=True)
    notification_channel_enum.drop(op.get_bind(), checkfirst=True)
