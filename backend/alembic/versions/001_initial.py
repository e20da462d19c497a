"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Technician directory (owned by staff management)
    op.create_table(
        'technicians',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_technicians_company_id', 'technicians', ['company_id'])

    # Client directory (owned by client management)
    op.create_table(
        'clients',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('gate_code', sa.String(50), nullable=True),
        sa.Column('access_notes', sa.Text(), nullable=True),
        sa.Column('service_day', sa.String(16), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_clients_company_id', 'clients', ['company_id'])
    op.create_index('ix_clients_service_day', 'clients', ['service_day'])

    # Weekly template
    op.create_table(
        'route_assignments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('technician_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('day_of_week', sa.String(16), nullable=False),
        sa.Column('route_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('state', sa.String(16), nullable=False, server_default='active'),
        sa.Column('disabled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['technician_id'], ['technicians.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.UniqueConstraint(
            'company_id', 'technician_id', 'client_id', 'day_of_week',
            name='uq_assignment_company_tech_client_day',
        ),
    )
    op.create_index('ix_route_assignments_company_id', 'route_assignments', ['company_id'])
    op.create_index('ix_route_assignments_technician_id', 'route_assignments', ['technician_id'])
    op.create_index('ix_route_assignments_client_id', 'route_assignments', ['client_id'])
    op.create_index(
        'ix_route_assignments_group',
        'route_assignments',
        ['company_id', 'technician_id', 'day_of_week', 'state'],
    )

    # Materialized routes
    op.create_table(
        'route_instances',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('technician_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('route_date', sa.Date(), nullable=False),
        sa.Column('day_of_week', sa.String(16), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['technician_id'], ['technicians.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('company_id', 'technician_id', 'route_date', name='uq_route_company_tech_date'),
    )
    op.create_index('ix_route_instances_company_id', 'route_instances', ['company_id'])
    op.create_index('ix_route_instances_technician_id', 'route_instances', ['technician_id'])
    op.create_index('ix_route_instances_route_date', 'route_instances', ['route_date'])

    op.create_table(
        'route_stops',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('route_instance_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('assignment_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('sequence_order', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('skip_reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('actual_arrival', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_departure', sa.DateTime(timezone=True), nullable=True),
        sa.Column('service_record_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['route_instance_id'], ['route_instances.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assignment_id'], ['route_assignments.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('route_instance_id', 'sequence_order', name='uq_stop_instance_sequence'),
        sa.UniqueConstraint('route_instance_id', 'client_id', name='uq_stop_instance_client'),
    )
    op.create_index('ix_route_stops_route_instance_id', 'route_stops', ['route_instance_id'])
    op.create_index('ix_route_stops_client_id', 'route_stops', ['client_id'])


def downgrade() -> None:
    op.drop_table('route_stops')
    op.drop_table('route_instances')
    op.drop_table('route_assignments')
    op.drop_table('clients')
    op.drop_table('technicians')
