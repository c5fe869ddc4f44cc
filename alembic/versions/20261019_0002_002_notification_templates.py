"""Notification templates - per-type, per-channel message text.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Tables:
- notification_templates: subject/content with {{ key }} placeholders, unique per (type, channel)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Created by revision 001
notification_channel_enum = postgresql.ENUM(
    'DATABASE', 'MAIL', 'SMS', 'PUSH', name='notificationchannel', create_type=False
)


def upgrade() -> None:
    op.create_table(
        'notification_templates',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('channel', notification_channel_enum, nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('content', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('type', 'channel'),
    )
    op.create_index('ix_notification_templates_type', 'notification_templates', ['type'])


def downgrade() -> None:
    op.drop_index('ix_notification_templates_type', table_name='notification_templates')
    op.drop_table('notification_templates')
