"""per-room medical records

Revision ID: medical_records_002
Revises: chat_schema_001
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'medical_records_002'
down_revision = 'chat_schema_001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'patient_medical_records',
        sa.Column('patient_id', sa.String(), nullable=False),
        sa.Column('allergies', sa.Text(), nullable=False),
        sa.Column('chronic_diseases', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['patient_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('patient_id')
    )

    op.create_table(
        'medical_record_entries',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('patient_id', sa.String(), nullable=False),
        sa.Column('room_id', sa.String(), nullable=False),
        sa.Column('doctor_id', sa.String(), nullable=False),
        sa.Column('diagnosis', sa.Text(), nullable=False),
        sa.Column('prescribed_medications', sa.Text(), nullable=False),
        sa.Column('secret_notes', sa.Text(), nullable=False),
        sa.Column('prescription_pdf_url', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['patient_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'doctor_id', name='uq_medical_record_entries_room_doctor')
    )
    op.create_index(
        op.f('ix_medical_record_entries_patient_id'), 'medical_record_entries', ['patient_id'], unique=False
    )


def downgrade():
    op.drop_index(op.f('ix_medical_record_entries_patient_id'), table_name='medical_record_entries')
    op.drop_table('medical_record_entries')
    op.drop_table('patient_medical_records')
