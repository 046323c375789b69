"""lottery and concert inventory

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'lottery_tickets',
        sa.Column('ticket_number', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='available'),
        sa.Column('holder_session', sa.String(length=128), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.CheckConstraint("status IN ('available', 'soft-locked', 'sold')", name='ck_lottery_tickets_status'),
        sa.CheckConstraint('ticket_number > 0', name='ck_lottery_tickets_number_positive'),
    )
    op.create_index('ix_lottery_tickets_status_locked_at', 'lottery_tickets', ['status', 'locked_at'])

    op.create_table(
        'lottery_orders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('ticket_number', sa.Integer(), sa.ForeignKey('lottery_tickets.ticket_number'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('parish', sa.String(length=255), nullable=False),
        sa.Column('transaction_id', sa.String(length=128), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('session_id', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'confirmed')", name='ck_lottery_orders_status'),
    )
    op.create_index('ix_lottery_orders_ticket_number', 'lottery_orders', ['ticket_number'])
    op.create_index('ix_lottery_orders_transaction_id', 'lottery_orders', ['transaction_id'], unique=True)

    op.create_table(
        'concert_ticket_inventory',
        sa.Column('tier', sa.String(length=32), primary_key=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('total_tickets', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sold_tickets', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('sold_tickets >= 0', name='ck_inventory_sold_non_negative'),
        sa.CheckConstraint('sold_tickets <= total_tickets', name='ck_inventory_sold_within_total'),
    )

    op.create_table(
        'concert_tickets',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tier', sa.String(length=32), sa.ForeignKey('concert_ticket_inventory.tier'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='unused'),
        sa.Column('scanned_at', sa.DateTime(), nullable=True),
        sa.Column('scanned_by', sa.String(length=128), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('payment_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('qr_data', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("status IN ('unused', 'used', 'void')", name='ck_concert_tickets_status'),
    )
    op.create_index('ix_concert_tickets_tier', 'concert_tickets', ['tier'])
    op.create_index('ix_concert_tickets_email', 'concert_tickets', ['email'])
    op.create_index('ix_concert_tickets_order_id', 'concert_tickets', ['order_id'])

def downgrade():
    op.drop_index('ix_concert_tickets_order_id', table_name='concert_tickets')
    op.drop_index('ix_concert_tickets_email', table_name='concert_tickets')
    op.drop_index('ix_concert_tickets_tier', table_name='concert_tickets')
    op.drop_table('concert_tickets')
    op.drop_table('concert_ticket_inventory')
    op.drop_index('ix_lottery_orders_transaction_id', table_name='lottery_orders')
    op.drop_index('ix_lottery_orders_ticket_number', table_name='lottery_orders')
    op.drop_table('lottery_orders')
    op.drop_index('ix_lottery_tickets_status_locked_at', table_name='lottery_tickets')
    op.drop_table('lottery_tickets')
