"""Create orders and audit_events tables

Revision ID: 4d2a9c7e51b3
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4d2a9c7e51b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('cancel_reason', sa.String(length=30), nullable=True),
        sa.Column('cancel_message', sa.Text(), nullable=True),
        sa.Column('session_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_payment_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_status', sa.String(length=30), nullable=True),
        sa.Column('ticket_id', sa.String(length=255), nullable=True),
        sa.Column('ticket_status', sa.String(length=50), nullable=True),
        sa.Column('ticket_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tracking', sa.String(length=255), nullable=True),
        sa.Column('ticket_price', sa.Float(), nullable=True),
        sa.Column('print_url', sa.String(length=2048), nullable=True),
        sa.Column('needs_refund', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('refund_status', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    # Reconciliation scans by status on every pass
    op.create_index('ix_orders_status_refund_status', 'orders', ['status', 'refund_status'])

    op.create_table('audit_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_events_order_id', 'audit_events', ['order_id'])


def downgrade():
    op.drop_index('ix_audit_events_order_id', table_name='audit_events')
    op.drop_table('audit_events')
    op.drop_index('ix_orders_status_refund_status', table_name='orders')
    op.drop_table('orders')
