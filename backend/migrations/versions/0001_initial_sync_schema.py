"""initial sync schema

Revision ID: 0001_initial_sync
Revises:
Create Date: 2026-03-02 00:00:00.000000

Creates the replicated entities and the sync queue:
- products, users: versioned entities, last writer wins
- sales, purchases (+ line items): insert-only documents
- sync_operations: pending device operations, replayed by (created_at, id)
- sync_dead_letters: operations parked out of the active queue
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_sync'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_name', 'products', ['name'], unique=False)

    # ============================================================================
    # users
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=False)

    # ============================================================================
    # sales + sale_items
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sales_user_id', 'sales', ['user_id'], unique=False)
    op.create_index('ix_sales_device_created', 'sales', ['device_id', 'created_at'], unique=False)

    op.create_table(
        'sale_items',
        sa.Column('id', sa.String(length=80), nullable=False),
        sa.Column('sale_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'], unique=False)
    op.create_index('ix_sale_items_product_id', 'sale_items', ['product_id'], unique=False)

    # ============================================================================
    # purchases + purchase_items
    # ============================================================================
    op.create_table(
        'purchases',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_purchases_user_id', 'purchases', ['user_id'], unique=False)

    op.create_table(
        'purchase_items',
        sa.Column('id', sa.String(length=80), nullable=False),
        sa.Column('purchase_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_purchase_items_purchase_id', 'purchase_items', ['purchase_id'], unique=False)
    op.create_index('ix_purchase_items_product_id', 'purchase_items', ['product_id'], unique=False)

    # ============================================================================
    # sync_operations: the replay queue
    # ============================================================================
    op.create_table(
        'sync_operations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('operation', sa.String(length=16), nullable=True),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sync_operations_created_id', 'sync_operations', ['created_at', 'id'], unique=False)
    op.create_index('ix_sync_operations_device_id', 'sync_operations', ['device_id'], unique=False)

    op.create_table(
        'sync_dead_letters',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('operation', sa.String(length=16), nullable=True),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('dead_lettered_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sync_dead_letters_dead_lettered_at', 'sync_dead_letters', ['dead_lettered_at'], unique=False)


def downgrade():
    op.drop_index('ix_sync_dead_letters_dead_lettered_at', table_name='sync_dead_letters')
    op.drop_table('sync_dead_letters')

    op.drop_index('ix_sync_operations_device_id', table_name='sync_operations')
    op.drop_index('ix_sync_operations_created_id', table_name='sync_operations')
    op.drop_table('sync_operations')

    op.drop_index('ix_purchase_items_product_id', table_name='purchase_items')
    op.drop_index('ix_purchase_items_purchase_id', table_name='purchase_items')
    op.drop_table('purchase_items')
    op.drop_index('ix_purchases_user_id', table_name='purchases')
    op.drop_table('purchases')

    op.drop_index('ix_sale_items_product_id', table_name='sale_items')
    op.drop_index('ix_sale_items_sale_id', table_name='sale_items')
    op.drop_table('sale_items')
    op.drop_index('ix_sales_device_created', table_name='sales')
    op.drop_index('ix_sales_user_id', table_name='sales')
    op.drop_table('sales')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    op.drop_index('ix_products_name', table_name='products')
    op.drop_table('products')
