from alembic import op
import sqlalchemy as sa

revision = "20261019093000"
down_revision = None

NOW_UTC = sa.text("(now() at time zone 'utc')")

def upgrade():
    op.create_table(
        'flavors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False, unique=True),
        sa.Column('image', sa.String(length=1024), nullable=True),
    )
    op.create_table(
        'weights',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('value', sa.Integer(), nullable=False),
        sa.Column('unit', sa.String(length=8), nullable=False),
        sa.UniqueConstraint('value', 'unit', name='uq_weights_value_unit'),
    )
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=240), nullable=False),
        sa.Column('slug', sa.String(length=240), nullable=False, unique=True, index=True),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW_UTC),
    )
    op.create_table(
        'product_flavor_options',
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('flavor_id', sa.Integer(), sa.ForeignKey('flavors.id', ondelete='RESTRICT'), primary_key=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'product_weight_options',
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('weight_id', sa.Integer(), sa.ForeignKey('weights.id', ondelete='RESTRICT'), primary_key=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('flavor_id', sa.Integer(), sa.ForeignKey('flavors.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('weight_id', sa.Integer(), sa.ForeignKey('weights.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('sku', sa.String(length=64), nullable=False, unique=True),
        sa.Column('price_cents', sa.BigInteger(), nullable=False),
        sa.Column('sale_price_cents', sa.BigInteger(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW_UTC),
        sa.CheckConstraint('quantity >= 0', name='ck_variant_quantity_non_negative'),
        sa.CheckConstraint('sale_price_cents IS NULL OR sale_price_cents <= price_cents', name='ck_variant_sale_le_price'),
    )
    op.create_table(
        'variant_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('url', sa.String(length=1024), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_table(
        'inventory_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('variant_id', sa.Integer(), nullable=False, index=True),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('created_by', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW_UTC),
    )
    op.create_table(
        'coupons',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True, index=True),
        sa.Column('description', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('min_order_cents', sa.BigInteger(), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW_UTC),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_number', sa.String(length=40), nullable=False, unique=True),
        sa.Column('user_email', sa.String(length=255), index=True, nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING', index=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('sub_total_cents', sa.BigInteger(), nullable=False),
        sa.Column('discount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('coupon_id', sa.Integer(), sa.ForeignKey('coupons.id', ondelete='SET NULL'), nullable=True),
        sa.Column('coupon_code', sa.String(length=64), nullable=True),
        sa.Column('coupon_discount_type', sa.String(length=16), nullable=True),
        sa.Column('coupon_discount_value', sa.Numeric(12, 2), nullable=True),
        sa.Column('ship_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('address_line1', sa.String(length=255), nullable=False),
        sa.Column('address_line2', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('city', sa.String(length=120), nullable=False),
        sa.Column('state', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('country', sa.String(length=2), nullable=False),
        sa.Column('postcode', sa.String(length=32), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.String(length=255), nullable=True),
        sa.Column('cancelled_by_role', sa.String(length=16), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW_UTC),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=NOW_UTC),
    )
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False, index=True),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.BigInteger(), nullable=False),
        sa.Column('subtotal_cents', sa.BigInteger(), nullable=False),
        sa.Column('title_snapshot', sa.String(length=255), nullable=False),
        sa.Column('sku_snapshot', sa.String(length=64), nullable=False),
        sa.Column('flavor_snapshot', sa.String(length=120), nullable=True),
        sa.Column('weight_snapshot', sa.String(length=32), nullable=True),
    )
    op.create_table(
        'order_tracking',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('carrier', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('tracking_number', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='SHIPPED'),
        sa.Column('shipped_at', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'tracking_updates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tracking_id', sa.Integer(), sa.ForeignKey('order_tracking.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=NOW_UTC),
    )

def downgrade():
    op.drop_table('tracking_updates')
    op.drop_table('order_tracking')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('coupons')
    op.drop_table('inventory_logs')
    op.drop_table('variant_images')
    op.drop_table('product_variants')
    op.drop_table('product_weight_options')
    op.drop_table('product_flavor_options')
    op.drop_table('products')
    op.drop_table('weights')
    op.drop_table('flavors')
