"""create automation queue, communication log and profile tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:12:44.105733
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'], unique=True)

    op.create_table(
        'automation_queue',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('event_source', sa.String(), nullable=False, server_default='api'),
        sa.Column('event_table', sa.String(), nullable=True),
        sa.Column('event_type', sa.String(), nullable=True),
        sa.Column('payload', JSONB(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_run_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_automation_queue_status', 'automation_queue', ['status'])
    op.create_index('ix_automation_queue_next_run_at', 'automation_queue', ['next_run_at'])

    op.create_table(
        'communication_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=True), sa.ForeignKey('automation_queue.id', ondelete='SET NULL'), nullable=True),
        sa.Column('client_id', sa.String(), nullable=True),
        sa.Column('profile_id', sa.String(), nullable=True),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('recipient', sa.String(), nullable=True),
        sa.Column('subject', sa.String(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('provider_response', JSONB(), nullable=True),
        sa.Column('provider_message_id', sa.String(), nullable=True),
        sa.Column('sent_by', sa.String(), nullable=True),
        sa.Column('follow_up_id', sa.String(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_communication_logs_id', 'communication_logs', ['id'])
    op.create_index('ix_communication_logs_job_id', 'communication_logs', ['job_id'])
    op.create_index('ix_communication_logs_channel', 'communication_logs', ['channel'])
    op.create_index('ix_communication_logs_status', 'communication_logs', ['status'])
    op.create_index('ix_communication_logs_sent_by', 'communication_logs', ['sent_by'])
    op.create_index('ix_communication_logs_sent_at', 'communication_logs', ['sent_at'])


def downgrade() -> None:
    op.drop_table('communication_logs')
    op.drop_index('ix_automation_queue_next_run_at', 'automation_queue')
    op.drop_index('ix_automation_queue_status', 'automation_queue')
    op.drop_table('automation_queue')
    op.drop_index('ix_profiles_email', 'profiles')
    op.drop_table('profiles')
