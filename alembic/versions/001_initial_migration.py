"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


slot_period = postgresql.ENUM('MORNING', 'EVENING', 'NIGHT', name='slotperiod', create_type=False)
slot_status = postgresql.ENUM('AVAILABLE', 'BOOKED', 'BLOCKED', name='slotstatus', create_type=False)
appointment_status = postgresql.ENUM(
    'SCHEDULED', 'CONFIRMED', 'COMPLETED', 'CANCELLED', 'NO_SHOW',
    name='appointmentstatus', create_type=False
)
queue_entry_type = postgresql.ENUM('WALK_IN', 'SCHEDULED', name='queueentrytype', create_type=False)
queue_status = postgresql.ENUM(
    'QUEUED', 'WAITING', 'WITH_DOCTOR', 'COMPLETED', 'NO_SHOW', 'LEFT',
    name='queuestatus', create_type=False
)
queue_priority = postgresql.ENUM('NORMAL', 'URGENT', 'EMERGENCY', name='queuepriority', create_type=False)
checkin_status = postgresql.ENUM(
    'NOT_CHECKED_IN', 'CHECKED_IN', 'ON_BREAK', 'CHECKED_OUT',
    name='checkinstatus', create_type=False
)

ENUMS = [slot_period, slot_status, appointment_status, queue_entry_type, queue_status, queue_priority, checkin_status]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # Create hospitals table
    op.create_table(
        'hospitals',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('logo_url', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Create doctor_profiles table
    op.create_table(
        'doctor_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hospital_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('specialization', sa.String(length=120), nullable=True),
        sa.Column('appointment_duration_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('shift_timing_config', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['hospital_id'], ['hospitals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_doctor_profiles_hospital_id', 'doctor_profiles', ['hospital_id'], unique=False)

    # Create patients table
    op.create_table(
        'patients',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hospital_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['hospital_id'], ['hospitals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_patients_hospital_id', 'patients', ['hospital_id'], unique=False)

    # Create doctor_schedules table
    op.create_table(
        'doctor_schedules',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('is_working', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('shift_start', sa.Time(), nullable=True),
        sa.Column('shift_end', sa.Time(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_day_of_week'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctor_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('doctor_id', 'day_of_week', name='uq_doctor_schedule_day')
    )
    op.create_index('ix_doctor_schedules_doctor_id', 'doctor_schedules', ['doctor_id'], unique=False)

    # Create doctor_time_off table
    op.create_table(
        'doctor_time_off',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('approval_status', sa.String(length=20), nullable=False, server_default='approved'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('start_date <= end_date', name='check_time_off_dates'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctor_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_doctor_time_off_doctor_id', 'doctor_time_off', ['doctor_id'], unique=False)

    # Create appointment_slots table
    op.create_table(
        'appointment_slots',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hospital_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('slot_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('period', slot_period, nullable=False),
        sa.Column('status', slot_status, nullable=False, server_default='AVAILABLE'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['hospital_id'], ['hospitals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctor_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('doctor_id', 'slot_date', 'start_time', name='uq_slot_doctor_date_start')
    )
    op.create_index('ix_appointment_slots_hospital_id', 'appointment_slots', ['hospital_id'], unique=False)
    op.create_index('ix_slots_doctor_date', 'appointment_slots', ['doctor_id', 'slot_date'], unique=False)

    # Create appointments table
    op.create_table(
        'appointments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hospital_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('slot_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('patient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('status', appointment_status, nullable=False, server_default='SCHEDULED'),
        sa.Column('reason_for_visit', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('booked_by_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('public_token', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['hospital_id'], ['hospitals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['slot_id'], ['appointment_slots.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctor_profiles.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_appointments_hospital_id', 'appointments', ['hospital_id'], unique=False)
    op.create_index('ix_appointments_patient_id', 'appointments', ['patient_id'], unique=False)
    op.create_index('ix_appointments_public_token', 'appointments', ['public_token'], unique=True)
    op.create_index('ix_appointments_doctor_date', 'appointments', ['doctor_id', 'appointment_date'], unique=False)
    op.create_index(
        'uq_appointments_active_slot', 'appointments', ['slot_id'],
        unique=True,
        postgresql_where=sa.text("status != 'CANCELLED'")
    )

    # Create queue_entries table
    op.create_table(
        'queue_entries',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hospital_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('queue_date', sa.Date(), nullable=False),
        sa.Column('queue_number', sa.Integer(), nullable=False),
        sa.Column('entry_type', queue_entry_type, nullable=False),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('patient_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('walk_in_name', sa.String(length=200), nullable=True),
        sa.Column('walk_in_phone', sa.String(length=30), nullable=True),
        sa.Column('status', queue_status, nullable=False, server_default='QUEUED'),
        sa.Column('priority', queue_priority, nullable=False, server_default='NORMAL'),
        sa.Column('reason_for_visit', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('checked_in_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('called_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('with_doctor_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('wait_time_minutes', sa.Integer(), nullable=True),
        sa.Column('consultation_time_minutes', sa.Integer(), nullable=True),
        sa.Column('public_token', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['hospital_id'], ['hospitals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctor_profiles.id']),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id']),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_queue_entries_hospital_id', 'queue_entries', ['hospital_id'], unique=False)
    op.create_index('ix_queue_entries_appointment_id', 'queue_entries', ['appointment_id'], unique=False)
    op.create_index('ix_queue_entries_public_token', 'queue_entries', ['public_token'], unique=True)
    op.create_index('ix_queue_doctor_date_number', 'queue_entries', ['doctor_id', 'queue_date', 'queue_number'], unique=False)

    # Create doctor_daily_checkins table
    op.create_table(
        'doctor_daily_checkins',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hospital_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('checkin_date', sa.Date(), nullable=False),
        sa.Column('status', checkin_status, nullable=False, server_default='NOT_CHECKED_IN'),
        sa.Column('checked_in_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('checked_out_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('break_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['hospital_id'], ['hospitals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctor_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('doctor_id', 'checkin_date', name='uq_doctor_checkin_day')
    )


def downgrade() -> None:
    op.drop_table('doctor_daily_checkins')
    op.drop_index('ix_queue_doctor_date_number', table_name='queue_entries')
    op.drop_index('ix_queue_entries_public_token', table_name='queue_entries')
    op.drop_index('ix_queue_entries_appointment_id', table_name='queue_entries')
    op.drop_index('ix_queue_entries_hospital_id', table_name='queue_entries')
    op.drop_table('queue_entries')
    op.drop_index('uq_appointments_active_slot', table_name='appointments')
    op.drop_index('ix_appointments_doctor_date', table_name='appointments')
    op.drop_index('ix_appointments_public_token', table_name='appointments')
    op.drop_index('ix_appointments_patient_id', table_name='appointments')
    op.drop_index('ix_appointments_hospital_id', table_name='appointments')
    op.drop_table('appointments')
    op.drop_index('ix_slots_doctor_date', table_name='appointment_slots')
    op.drop_index('ix_appointment_slots_hospital_id', table_name='appointment_slots')
    op.drop_table('appointment_slots')
    op.drop_index('ix_doctor_time_off_doctor_id', table_name='doctor_time_off')
    op.drop_table('doctor_time_off')
    op.drop_index('ix_doctor_schedules_doctor_id', table_name='doctor_schedules')
    op.drop_table('doctor_schedules')
    op.drop_index('ix_patients_hospital_id', table_name='patients')
    op.drop_table('patients')
    op.drop_index('ix_doctor_profiles_hospital_id', table_name='doctor_profiles')
    op.drop_table('doctor_profiles')
    op.drop_table('hospitals')

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
