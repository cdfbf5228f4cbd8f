"""initial chat schema

Revision ID: chat_schema_001
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'chat_schema_001'
down_revision = None
branch_labels = None
depends_on = None

EVENT_KINDS = ('none', 'request', 'accept', 'reject', 'start', 'stop', 'signal')


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('phone_number', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('photo_url', sa.String(), nullable=False),
        sa.Column('specialty', sa.String(), nullable=False),
        sa.Column('hospital_name', sa.String(), nullable=False),
        sa.Column('experience_years', sa.Integer(), nullable=False),
        sa.Column('study_years', sa.Integer(), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False),
        sa.Column('is_disabled', sa.Boolean(), nullable=False),
        sa.Column('disabled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_phone_number'), 'users', ['phone_number'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)

    op.create_table(
        'rooms',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('patient_id', sa.String(), nullable=False),
        sa.Column('patient_name', sa.String(), nullable=False),
        sa.Column('doctor_id', sa.String(), nullable=False),
        sa.Column('doctor_name', sa.String(), nullable=False),
        sa.Column('last_message', sa.String(), nullable=False),
        sa.Column('is_closed', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['patient_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rooms_patient_id'), 'rooms', ['patient_id'], unique=False)
    op.create_index(op.f('ix_rooms_doctor_id'), 'rooms', ['doctor_id'], unique=False)
    op.create_index(op.f('ix_rooms_last_updated_at'), 'rooms', ['last_updated_at'], unique=False)

    op.create_table(
        'consultation_requests',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('patient_id', sa.String(), nullable=False),
        sa.Column('target_doctor_id', sa.String(), nullable=False),
        sa.Column('subject_type', sa.String(), nullable=False),
        sa.Column('subject_name', sa.String(), nullable=False),
        sa.Column('age_years', sa.Integer(), nullable=False),
        sa.Column('gender', sa.String(), nullable=False),
        sa.Column('weight_kg', sa.Float(), nullable=False),
        sa.Column('state_code', sa.String(), nullable=False),
        sa.Column('spoken_language', sa.String(), nullable=False),
        sa.Column('symptoms', sa.Text(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.Column('responded_by_doctor_id', sa.String(), nullable=True),
        sa.Column('transferred_by_doctor_id', sa.String(), nullable=True),
        sa.Column('linked_room_id', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['patient_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['target_doctor_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['responded_by_doctor_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['transferred_by_doctor_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['linked_room_id'], ['rooms.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'idx_consult_req_target_status', 'consultation_requests',
        ['target_doctor_id', 'status', 'updated_at'], unique=False
    )
    op.create_index(
        'idx_consult_req_patient_status', 'consultation_requests',
        ['patient_id', 'status', 'updated_at'], unique=False
    )
    op.create_index(
        'uq_consult_req_pending_pair', 'consultation_requests',
        ['patient_id', 'target_doctor_id'], unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'live_sessions',
        sa.Column('room_id', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('requested_by', sa.String(), nullable=True),
        sa.Column('requested_at', sa.DateTime(), nullable=True),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['requested_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('room_id')
    )
    op.create_index(op.f('ix_live_sessions_status'), 'live_sessions', ['status'], unique=False)

    op.create_table(
        'room_presence',
        sa.Column('room_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('room_id', 'user_id')
    )
    op.create_index('idx_presence_room', 'room_presence', ['room_id', 'last_seen_at'], unique=False)

    op.create_table(
        'app_presence',
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_index(op.f('ix_app_presence_last_seen_at'), 'app_presence', ['last_seen_at'], unique=False)

    op.create_table(
        'user_daily_activity',
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('activity_date', sa.String(), nullable=False),
        sa.Column('first_seen_at', sa.DateTime(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id', 'activity_date')
    )
    op.create_index(
        op.f('ix_user_daily_activity_activity_date'), 'user_daily_activity', ['activity_date'], unique=False
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('room_id', sa.String(), nullable=False),
        sa.Column('sender_id', sa.String(), nullable=False),
        sa.Column('sender_name', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('event_kind', sa.Enum(*EVENT_KINDS, name='message_event_kind'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_messages_room_sent', 'messages', ['room_id', 'sent_at'], unique=False)

    op.create_table(
        'triage_audit_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('age_years', sa.Integer(), nullable=False),
        sa.Column('sex', sa.String(), nullable=False),
        sa.Column('weight_kg', sa.Float(), nullable=False),
        sa.Column('pregnant', sa.Boolean(), nullable=False),
        sa.Column('symptoms', sa.Text(), nullable=False),
        sa.Column('duration_text', sa.String(), nullable=False),
        sa.Column('language', sa.String(), nullable=False),
        sa.Column('risk_level', sa.String(), nullable=True),
        sa.Column('suggested_specialty', sa.String(), nullable=True),
        sa.Column('red_flags', sa.JSON(), nullable=False),
        sa.Column('follow_up_questions', sa.JSON(), nullable=False),
        sa.Column('self_care', sa.JSON(), nullable=False),
        sa.Column('seek_urgent_care_if', sa.JSON(), nullable=False),
        sa.Column('summary_for_doctor', sa.Text(), nullable=False),
        sa.Column('model_name', sa.String(), nullable=False),
        sa.Column('moderation_flagged', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('error_code', sa.String(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_triage_audit_logs_user_id'), 'triage_audit_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_triage_audit_logs_status'), 'triage_audit_logs', ['status'], unique=False)
    op.create_index(op.f('ix_triage_audit_logs_created_at'), 'triage_audit_logs', ['created_at'], unique=False)


def downgrade():
    op.drop_table('triage_audit_logs')
    op.drop_index('idx_messages_room_sent', table_name='messages')
    op.drop_table('messages')
    sa.Enum(name='message_event_kind').drop(op.get_bind(), checkfirst=True)
    op.drop_table('user_daily_activity')
    op.drop_table('app_presence')
    op.drop_table('room_presence')
    op.drop_table('live_sessions')
    op.drop_index('uq_consult_req_pending_pair', table_name='consultation_requests')
    op.drop_table('consultation_requests')
    op.drop_table('rooms')
    op.drop_table('users')
