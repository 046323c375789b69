"""pin soft locks to their pending order, allow cancelled orders

Revision ID: 0003_order_pin
Revises: 0002_notifications
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = '0003_order_pin'
down_revision = '0002_notifications'
branch_labels = None
depends_on = None

def upgrade():
    op.add_column('lottery_tickets', sa.Column('pending_order_id', sa.String(length=36), nullable=True))
    # carry existing pins over from the orders table
    op.execute(
        """
        UPDATE lottery_tickets SET pending_order_id = (
            SELECT o.id FROM lottery_orders o
            WHERE o.ticket_number = lottery_tickets.ticket_number
              AND o.status = 'pending'
              AND o.session_id = lottery_tickets.holder_session
            ORDER BY o.created_at
            LIMIT 1
        )
        WHERE status = 'soft-locked'
        """
    )
    op.execute(
        """
        UPDATE lottery_orders SET status = 'cancelled'
        WHERE status = 'pending'
          AND id NOT IN (
            SELECT pending_order_id FROM lottery_tickets WHERE pending_order_id IS NOT NULL
          )
        """
    )
    op.drop_constraint('ck_lottery_orders_status', 'lottery_orders', type_='check')
    op.create_check_constraint(
        'ck_lottery_orders_status', 'lottery_orders', "status IN ('pending', 'confirmed', 'cancelled')"
    )

def downgrade():
    op.execute("UPDATE lottery_orders SET status = 'pending' WHERE status = 'cancelled'")
    op.drop_constraint('ck_lottery_orders_status', 'lottery_orders', type_='check')
    op.create_check_constraint('ck_lottery_orders_status', 'lottery_orders', "status IN ('pending', 'confirmed')")
    op.drop_column('lottery_tickets', 'pending_order_id')
