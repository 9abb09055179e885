"""create catalog, image linking and session tables

Revision ID: 3f7c2a91b0d4
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f7c2a91b0d4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_sku', 'products', ['sku'])
    op.create_index('ix_products_is_active', 'products', ['is_active'])

    op.create_table(
        'product_images',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('storage_key', sa.String(length=1024), nullable=False),
        sa.Column('image_url', sa.String(length=2048), nullable=False),
        sa.Column('alt_text', sa.String(length=512), nullable=True),
        sa.Column('image_status', sa.String(length=20), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('match_confidence', sa.Integer(), nullable=True),
        sa.Column('match_metadata', sa.JSON(), nullable=True),
        sa.Column('auto_matched', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_product_images_product_id', 'product_images', ['product_id'])
    op.create_index(
        'uq_product_images_primary',
        'product_images',
        ['product_id'],
        unique=True,
        postgresql_where=sa.text("is_primary AND image_status = 'active'"),
        sqlite_where=sa.text("is_primary = 1 AND image_status = 'active'"),
    )

    op.create_table(
        'product_image_candidates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('storage_key', sa.String(length=1024), nullable=False),
        sa.Column('image_url', sa.String(length=2048), nullable=False),
        sa.Column('alt_text', sa.String(length=512), nullable=True),
        sa.Column('match_confidence', sa.Integer(), nullable=False),
        sa.Column('match_metadata', sa.JSON(), nullable=True),
        sa.Column('extracted_sku', sa.String(length=64), nullable=True),
        sa.Column('source_filename', sa.String(length=1024), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('promoted_image_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=100), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['promoted_image_id'], ['product_images.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_product_image_candidates_product_id', 'product_image_candidates', ['product_id'])
    op.create_index('ix_product_image_candidates_status', 'product_image_candidates', ['status'])

    op.create_table(
        'scan_sessions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('current_step_index', sa.Integer(), nullable=False),
        sa.Column('total_steps', sa.Integer(), nullable=False),
        sa.Column('step_name', sa.String(length=50), nullable=True),
        sa.Column('progress', sa.Float(), nullable=False),
        sa.Column('current_batch', sa.Integer(), nullable=False),
        sa.Column('total_batches', sa.Integer(), nullable=False),
        sa.Column('candidates_promoted', sa.Integer(), nullable=False),
        sa.Column('products_scanned', sa.Integer(), nullable=False),
        sa.Column('images_scanned', sa.Integer(), nullable=False),
        sa.Column('direct_links_created', sa.Integer(), nullable=False),
        sa.Column('candidates_created', sa.Integer(), nullable=False),
        sa.Column('skipped_existing', sa.Integer(), nullable=False),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('step_errors', sa.JSON(), nullable=True),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('summary', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scan_sessions_status', 'scan_sessions', ['status'])

    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=100), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_log_actor', 'audit_log', ['actor'])
    op.create_index('ix_audit_log_product_id', 'audit_log', ['product_id'])
    op.create_index('ix_audit_log_created_at', 'audit_log', ['created_at'])


def downgrade():
    op.drop_table('audit_log')
    op.drop_table('scan_sessions')
    op.drop_table('product_image_candidates')
    op.drop_index('uq_product_images_primary', table_name='product_images')
    op.drop_table('product_images')
    op.drop_table('products')
