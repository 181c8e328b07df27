"""add study schedules, schedule items, reminders and reminder logs

Revision ID: 001_add_study_schedules
Revises:
Create Date: 2025-10-08
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '001_add_study_schedules'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'study_schedules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('schedule_type', sa.String(), nullable=False, server_default='manual'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint(
            "schedule_type IN ('manual', 'imported_excel', 'imported_csv', 'ai_generated')",
            name='ck_study_schedules_type',
        ),
    )
    op.create_index('ix_study_schedules_user_id', 'study_schedules', ['user_id'])
    op.create_index('ix_study_schedules_is_active', 'study_schedules', ['is_active'])

    op.create_table(
        'schedule_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('schedule_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('study_schedules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('topic', sa.String(), nullable=True),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('recurrence_pattern', sa.String(), nullable=False, server_default='once'),
        sa.Column('priority', sa.String(), nullable=False, server_default='medium'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('color', sa.String(), nullable=False, server_default='#3B82F6'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_schedule_items_day_of_week'),
        sa.CheckConstraint(
            "recurrence_pattern IN ('daily', 'weekly', 'biweekly', 'monthly', 'once')",
            name='ck_schedule_items_recurrence',
        ),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name='ck_schedule_items_priority'),
    )
    op.create_index('ix_schedule_items_schedule_id', 'schedule_items', ['schedule_id'])
    op.create_index('ix_schedule_items_day_of_week', 'schedule_items', ['day_of_week'])

    op.create_table(
        'schedule_reminders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('schedule_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('schedule_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('recipient', sa.String(), nullable=False),
        sa.Column('reminder_time_minutes', sa.Integer(), nullable=False),
        sa.Column('reminder_method', sa.String(), nullable=False, server_default='email'),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('language', sa.String(), nullable=False, server_default='en'),
        sa.Column('timezone', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('reminder_time_minutes > 0', name='ck_schedule_reminders_lead_time'),
        sa.CheckConstraint("reminder_method IN ('email', 'notification')", name='ck_schedule_reminders_method'),
        sa.CheckConstraint("language IN ('ar', 'en')", name='ck_schedule_reminders_language'),
    )
    op.create_index('ix_schedule_reminders_user_id', 'schedule_reminders', ['user_id'])
    op.create_index('ix_schedule_reminders_item_id', 'schedule_reminders', ['schedule_item_id'])
    op.create_index('ix_schedule_reminders_enabled', 'schedule_reminders', ['is_enabled'])

    op.create_table(
        'reminder_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('reminder_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('schedule_reminders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('action_taken', sa.String(), nullable=True),
        sa.Column('snoozed_until', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('sent', 'failed', 'snoozed', 'completed')", name='ck_reminder_logs_status'),
        sa.CheckConstraint(
            "action_taken IS NULL OR action_taken IN ('snooze', 'complete', 'none')",
            name='ck_reminder_logs_action',
        ),
    )
    op.create_index('ix_reminder_logs_reminder_id', 'reminder_logs', ['reminder_id'])
    op.create_index('ix_reminder_logs_reminder_status', 'reminder_logs', ['reminder_id', 'status'])


def downgrade() -> None:
    op.drop_index('ix_reminder_logs_reminder_status', table_name='reminder_logs')
    op.drop_index('ix_reminder_logs_reminder_id', table_name='reminder_logs')
    op.drop_table('reminder_logs')
    op.drop_index('ix_schedule_reminders_enabled', table_name='schedule_reminders')
    op.drop_index('ix_schedule_reminders_item_id', table_name='schedule_reminders')
    op.drop_index('ix_schedule_reminders_user_id', table_name='schedule_reminders')
    op.drop_table('schedule_reminders')
    op.drop_index('ix_schedule_items_day_of_week', table_name='schedule_items')
    op.drop_index('ix_schedule_items_schedule_id', table_name='schedule_items')
    op.drop_table('schedule_items')
    op.drop_index('ix_study_schedules_is_active', table_name='study_schedules')
    op.drop_index('ix_study_schedules_user_id', table_name='study_schedules')
    op.drop_table('study_schedules')
