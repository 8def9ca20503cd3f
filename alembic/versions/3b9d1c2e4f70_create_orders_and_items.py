"""Create orders and items tables

Revision ID: 3b9d1c2e4f70
Revises:
Create Date: 2026-10-19 09:12:40.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b9d1c2e4f70'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('creation_date', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('order_id')
    )
    op.create_index('ix_orders_creation_date', 'orders', ['creation_date'])

    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('product_id', sa.BigInteger(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.order_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_items_order_id', 'items', ['order_id'])


def downgrade() -> None:
    op.drop_index('ix_items_order_id', table_name='items')
    op.drop_table('items')
    op.drop_index('ix_orders_creation_date', table_name='orders')
    op.drop_table('orders')
