"""create transactions table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19 10:10:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '003'
down_revision = '002'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Append-only sales log; rows go away only with their product
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('quantity_sold', sa.Float(), nullable=False),
        sa.Column('date_of_sale', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], ondelete='CASCADE'),
        sa.CheckConstraint('quantity_sold > 0', name='check_quantity_sold_positive'),
    )
    op.create_index('ix_transactions_id', 'transactions', ['id'])
    op.create_index('ix_transactions_buyer_id', 'transactions', ['buyer_id'])
    op.create_index(
        'ix_transactions_product_id_date_of_sale',
        'transactions',
        ['product_id', 'date_of_sale'],
    )


def downgrade() -> None:
    op.drop_index('ix_transactions_product_id_date_of_sale', table_name='transactions')
    op.drop_index('ix_transactions_buyer_id', table_name='transactions')
    op.drop_index('ix_transactions_id', table_name='transactions')
    op.drop_table('transactions')
