"""create delivery core tables

Revision ID: 3c1a7e52d9b4
Revises:
Create Date: 2026-10-19 09:12:44.118203
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '3c1a7e52d9b4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PACKAGE_STATUSES = (
    'pending', 'picked_up', 'in_transit', 'out_for_delivery',
    'delivered', 'delivery_attempted', 'exception', 'cancelled',
)


def _audit_columns():
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    package_status = sa.Enum(*PACKAGE_STATUSES, name='package_status')

    op.create_table(
        'orders',
        *_audit_columns(),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.Enum('pending', 'processing', 'fulfilled', 'canceled', name='order_status'), nullable=False),
    )
    op.create_index('ix_orders_organization_id', 'orders', ['organization_id'])

    op.create_table(
        'drivers',
        *_audit_columns(),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False, unique=True),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_drivers_organization_id', 'drivers', ['organization_id'])

    op.create_table(
        'vehicles',
        *_audit_columns(),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('vehicle_number', sa.String(length=20), nullable=False, unique=True),
        sa.Column('registration_number', sa.String(length=50), nullable=True),
        sa.Column('vehicle_type', sa.String(length=50), nullable=True),
        sa.Column('capacity', sa.Numeric(10, 2), nullable=True),
        sa.Column('volume_capacity', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_vehicles_organization_id', 'vehicles', ['organization_id'])

    op.create_table(
        'shipments',
        sa.Column('id', sa.String(length=20), primary_key=True),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=True, unique=True),
        sa.Column('vehicle_id', sa.Integer(), sa.ForeignKey('vehicles.id'), nullable=True),
        sa.Column('driver_id', sa.Integer(), sa.ForeignKey('drivers.id'), nullable=True),
        sa.Column('budget_id', sa.Integer(), nullable=True),
        sa.Column('warehouse_id', sa.Integer(), nullable=True),
        sa.Column('origin_name', sa.String(length=255), nullable=True),
        sa.Column('origin_address', sa.Text(), nullable=True),
        sa.Column('destination_name', sa.String(length=255), nullable=True),
        sa.Column('destination_address', sa.Text(), nullable=True),
        sa.Column('departure_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
    )
    op.create_index('ix_shipments_organization_id', 'shipments', ['organization_id'])
    op.create_index('ix_shipments_driver_id', 'shipments', ['driver_id'])

    op.create_table(
        'packages',
        sa.Column('tracking_id', sa.String(length=32), primary_key=True),
        sa.Column('shipment_id', sa.String(length=20), sa.ForeignKey('shipments.id'), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=True),
        sa.Column('receiver_name', sa.String(length=255), nullable=False),
        sa.Column('receiver_contact', sa.String(length=50), nullable=True),
        sa.Column('receiver_email', sa.String(length=255), nullable=True),
        sa.Column('receiver_address', sa.Text(), nullable=False),
        sa.Column('receiver_latitude', sa.Numeric(10, 8), nullable=True),
        sa.Column('receiver_longitude', sa.Numeric(11, 8), nullable=True),
        sa.Column('weight', sa.Numeric(10, 2), nullable=True),
        sa.Column('length', sa.Numeric(10, 2), nullable=True),
        sa.Column('width', sa.Numeric(10, 2), nullable=True),
        sa.Column('height', sa.Numeric(10, 2), nullable=True),
        sa.Column('charges', sa.Integer(), nullable=False),
        sa.Column('status', package_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_packages_shipment_id', 'packages', ['shipment_id'])
    op.create_index('ix_packages_order_id', 'packages', ['order_id'])
    op.create_index('ix_packages_status', 'packages', ['status'])

    op.create_table(
        'tracking_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tracking_id', sa.String(length=32), sa.ForeignKey('packages.tracking_id'), nullable=True),
        sa.Column('shipment_id', sa.String(length=20), sa.ForeignKey('shipments.id'), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('status', postgresql.ENUM(*PACKAGE_STATUSES, name='package_status', create_type=False), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('recorded_by', sa.Integer(), nullable=True),
    )
    op.create_index('ix_tracking_history_tracking_id', 'tracking_history', ['tracking_id'])
    op.create_index('ix_tracking_history_shipment_id', 'tracking_history', ['shipment_id'])
    op.create_index('ix_tracking_history_timestamp', 'tracking_history', ['timestamp'])

    op.create_table(
        'gps_locations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shipment_id', sa.String(length=20), sa.ForeignKey('shipments.id'), nullable=False),
        sa.Column('driver_id', sa.Integer(), sa.ForeignKey('drivers.id'), nullable=False),
        sa.Column('latitude', sa.Numeric(10, 8), nullable=False),
        sa.Column('longitude', sa.Numeric(11, 8), nullable=False),
        sa.Column('speed', sa.Numeric(8, 2), nullable=True),
        sa.Column('accuracy', sa.Numeric(8, 2), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_gps_locations_shipment_recorded', 'gps_locations', ['shipment_id', 'recorded_at'])

    op.create_table(
        'tracking_sessions',
        *_audit_columns(),
        sa.Column('driver_id', sa.Integer(), sa.ForeignKey('drivers.id'), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_sample_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_reason', sa.Enum('stopped', 'stale', name='session_end_reason'), nullable=True),
    )
    op.create_index('ix_tracking_sessions_driver_id', 'tracking_sessions', ['driver_id'])
    print("✓ [3c1a7e52d9b4] Created delivery core tables")


def downgrade() -> None:
    op.drop_table('tracking_sessions')
    op.drop_table('gps_locations')
    op.drop_table('tracking_history')
    op.drop_table('packages')
    op.drop_table('shipments')
    op.drop_table('vehicles')
    op.drop_table('drivers')
    op.drop_table('orders')
    bind = op.get_bind()
    for enum_name in ('session_end_reason', 'package_status', 'order_status'):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
