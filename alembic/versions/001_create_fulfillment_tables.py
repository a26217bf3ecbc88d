"""Create fulfillment tables - picking, packing, handover and LMS sync

Revision ID: 001_fulfillment
Revises:
Create Date: 2026-03-01

Tables created:
- picking_waves, picklist_items, picking_exceptions
- packing_jobs, packing_items, photo_evidence, seals, packing_events
- riders, handovers, lms_shipments, lms_retry_entries

users, roles, permissions and orders belong to the identity and order
services and must already exist.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers, used by Alembic.
revision = '001_fulfillment'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =========================================================================
    # PICKING
    # =========================================================================
    op.create_table(
        'picking_waves',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('wave_number', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('status', sa.String(20), server_default='GENERATED', nullable=False, index=True),
        sa.Column('priority', sa.String(10), server_default='MEDIUM', nullable=False),
        sa.Column('picker_id', UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('total_orders', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_items', sa.Integer, server_default='0', nullable=False),
        sa.Column('estimated_duration', sa.Integer, server_default='0', nullable=False),
        sa.Column('sla_deadline', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('route_optimization', sa.Boolean, server_default=sa.true()),
        sa.Column('fefo_required', sa.Boolean, server_default=sa.false()),
        sa.Column('tags_and_bags', sa.Boolean, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
    )

    op.create_table(
        'picklist_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('wave_id', UUID(as_uuid=True),
                  sa.ForeignKey('picking_waves.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('bin_location', sa.String(50), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('picked_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False, index=True),
        sa.Column('fefo_batch', sa.String(50), nullable=True),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scan_sequence', sa.Integer, server_default='0', nullable=False),
        sa.Column('partial_reason', sa.String(50), nullable=True),
        sa.Column('partial_photo', sa.String(500), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('picked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_by', UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint('picked_quantity >= 0', name='ck_picklist_picked_non_negative'),
        sa.CheckConstraint('picked_quantity <= quantity', name='ck_picklist_picked_le_quantity'),
        sa.CheckConstraint("status <> 'PICKED' OR picked_quantity = quantity",
                           name='ck_picklist_picked_means_full'),
    )
    op.create_index('ix_picklist_items_wave_sku_bin', 'picklist_items', ['wave_id', 'sku', 'bin_location'])

    op.create_table(
        'picking_exceptions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('wave_id', UUID(as_uuid=True),
                  sa.ForeignKey('picking_waves.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('exception_type', sa.String(30), nullable=False),
        sa.Column('severity', sa.String(10), server_default='MEDIUM', nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('reported_by', UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('reported_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('status', sa.String(20), server_default='OPEN', nullable=False, index=True),
        sa.Column('sla_deadline', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolution', sa.Text, nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
    )

    # =========================================================================
    # PACKING
    # =========================================================================
    op.create_table(
        'packing_jobs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('job_number', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('wave_id', UUID(as_uuid=True),
                  sa.ForeignKey('picking_waves.id', ondelete='RESTRICT'), nullable=False, unique=True),
        sa.Column('packer_id', UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('status', sa.String(30), server_default='PENDING', nullable=False, index=True),
        sa.Column('priority', sa.String(10), server_default='MEDIUM', nullable=False),
        sa.Column('workflow_type', sa.String(30), server_default='DEDICATED_PACKER', nullable=False),
        sa.Column('total_items', sa.Integer, server_default='0', nullable=False),
        sa.Column('packed_items', sa.Integer, server_default='0', nullable=False),
        sa.Column('verified_items', sa.Integer, server_default='0', nullable=False),
        sa.Column('estimated_duration', sa.Integer, server_default='5', nullable=False),
        sa.Column('sla_deadline', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('special_instructions', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('handover_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'packing_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=True),
                  sa.ForeignKey('packing_jobs.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('picked_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('packed_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('verified_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('verification_notes', sa.Text, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint('packed_quantity <= picked_quantity', name='ck_packing_packed_le_picked'),
    )

    op.create_table(
        'photo_evidence',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=True),
                  sa.ForeignKey('packing_jobs.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('photo_type', sa.String(20), nullable=False),
        sa.Column('photo_url', sa.String(1000), nullable=False),
        sa.Column('thumbnail_url', sa.String(1000), nullable=True),
        sa.Column('photo_metadata', JSONB, nullable=True),
        sa.Column('verification_status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_table(
        'seals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('seal_number', sa.String(120), nullable=False, index=True),
        sa.Column('job_id', UUID(as_uuid=True),
                  sa.ForeignKey('packing_jobs.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('seal_type', sa.String(20), server_default='PLASTIC', nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('applied_by', UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('verification_status', sa.String(20), server_default='PENDING', nullable=False),
    )

    op.create_table(
        'packing_events',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=True),
                  sa.ForeignKey('packing_jobs.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('event_type', sa.String(40), nullable=False, index=True),
        sa.Column('event_data', JSONB, nullable=True),
        sa.Column('user_id', UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    # =========================================================================
    # HANDOVER / LMS
    # =========================================================================
    op.create_table(
        'riders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('rider_code', sa.String(30), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('vehicle_type', sa.String(10), server_default='BIKE', nullable=False),
        sa.Column('vehicle_number', sa.String(20), nullable=True),
        sa.Column('availability_status', sa.String(10), server_default='AVAILABLE', nullable=False, index=True),
        sa.Column('rating', sa.Numeric(3, 2), server_default='5.00', nullable=False),
        sa.Column('total_deliveries', sa.Integer, server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.true()),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_table(
        'handovers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=True),
                  sa.ForeignKey('packing_jobs.id', ondelete='RESTRICT'), nullable=False, unique=True),
        sa.Column('rider_id', UUID(as_uuid=True),
                  sa.ForeignKey('riders.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('status', sa.String(20), server_default='ASSIGNED', nullable=False, index=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('cancelled_by', UUID(as_uuid=True), nullable=True),
        sa.Column('lms_sync_status', sa.String(10), server_default='PENDING', nullable=False, index=True),
        sa.Column('lms_sync_attempts', sa.Integer, server_default='0', nullable=False),
        sa.Column('lms_last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lms_error_message', sa.Text, nullable=True),
        sa.Column('tracking_number', sa.String(100), nullable=True, index=True),
        sa.Column('manifest_number', sa.String(100), nullable=True),
        sa.Column('special_instructions', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_table(
        'lms_shipments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('handover_id', UUID(as_uuid=True),
                  sa.ForeignKey('handovers.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('lms_reference', sa.String(100), nullable=False, unique=True),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('lms_response', JSONB, nullable=True),
        sa.Column('retry_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_table(
        'lms_retry_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('handover_id', UUID(as_uuid=True),
                  sa.ForeignKey('handovers.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('operation', sa.String(20), nullable=False),
        sa.Column('payload', JSONB, nullable=True),
        sa.Column('attempts', sa.Integer, server_default='0', nullable=False),
        sa.Column('max_attempts', sa.Integer, server_default='5', nullable=False),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('status', sa.String(10), server_default='PENDING', nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('lms_retry_entries')
    op.drop_table('lms_shipments')
    op.drop_table('handovers')
    op.drop_table('riders')
    op.drop_table('packing_events')
    op.drop_table('seals')
    op.drop_table('photo_evidence')
    op.drop_table('packing_items')
    op.drop_table('packing_jobs')
    op.drop_index('ix_picklist_items_wave_sku_bin', table_name='picklist_items')
    op.drop_table('picking_exceptions')
    op.drop_table('picklist_items')
    op.drop_table('picking_waves')
