"""Initial marketplace schema

Revision ID: marketplace_001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = 'marketplace_001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_list = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create users, products, trades and the sign-up bookkeeping tables"""
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('display_name', sa.String(50), nullable=False),
        sa.Column('image_id', sa.String(64), nullable=False),
        sa.Column('introduction', sa.Text(), nullable=False),
        sa.Column('school_and_department', sa.String(32), nullable=True),
        sa.Column('graduate', sa.String(32), nullable=True),
        sa.Column('sold_products', json_list, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
    )

    op.create_table(
        'user_private',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('log_in_service_and_id', sa.String(255), nullable=False),
        sa.Column('last_access_token_id', sa.String(32), nullable=False),
        sa.Column('email_address', sa.String(255), nullable=False),
        sa.Column('notify_token', sa.Text(), nullable=True),
        sa.Column('bought_product', json_list, nullable=False),
        sa.Column('trading', json_list, nullable=False),
        sa.Column('traded', json_list, nullable=False),
        sa.Column('liked_product', json_list, nullable=False),
        sa.Column('history_view_product', json_list, nullable=False),
        sa.Column('commented_product', json_list, nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
    )
    op.create_index(
        'ix_user_private_log_in_service_and_id', 'user_private', ['log_in_service_and_id'], unique=True
    )

    op.create_table(
        'pending_sign_ups',
        sa.Column('log_in_service_and_id', sa.String(255), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('image_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'pending_email_verifications',
        sa.Column('log_in_service_and_id', sa.String(255), primary_key=True),
        sa.Column('display_name', sa.String(50), nullable=False),
        sa.Column('image_id', sa.String(64), nullable=False),
        sa.Column('school_and_department', sa.String(32), nullable=True),
        sa.Column('graduate', sa.String(32), nullable=True),
        sa.Column('email_address', sa.String(255), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'log_in_states',
        sa.Column('state', sa.String(64), primary_key=True),
        sa.Column('service', sa.String(32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'notify_states',
        sa.Column('state', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('condition', sa.String(32), nullable=False),
        sa.Column('category', sa.String(64), nullable=False),
        sa.Column('thumbnail_image_id', sa.String(64), nullable=False),
        sa.Column('image_ids', json_list, nullable=False),
        sa.Column('liked_count', sa.Integer(), nullable=False),
        sa.Column('viewed_count', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('seller_id', sa.String(36), nullable=False),
        sa.Column('seller_display_name', sa.String(50), nullable=False),
        sa.Column('seller_image_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('update_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
    )
    op.create_index('ix_products_category', 'products', ['category'])
    op.create_index('ix_products_seller_id', 'products', ['seller_id'])
    op.create_index('idx_products_created_at', 'products', ['created_at'])
    op.create_index('idx_products_liked_count', 'products', ['liked_count'])

    op.create_table(
        'deleted_products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('snapshot', json_list, nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'product_comments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('speaker_id', sa.String(36), nullable=False),
        sa.Column('speaker_display_name', sa.String(50), nullable=False),
        sa.Column('speaker_image_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_product_comments_product_id', 'product_comments', ['product_id'])

    op.create_table(
        'draft_products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('condition', sa.String(32), nullable=True),
        sa.Column('category', sa.String(64), nullable=True),
        sa.Column('thumbnail_image_id', sa.String(64), nullable=True),
        sa.Column('image_ids', json_list, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('update_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_draft_products_user_id', 'draft_products', ['user_id'])

    op.create_table(
        'trades',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36), nullable=False),
        sa.Column('buyer_user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('update_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
    )
    op.create_index('ix_trades_product_id', 'trades', ['product_id'])
    op.create_index('ix_trades_buyer_user_id', 'trades', ['buyer_user_id'])

    op.create_table(
        'trade_comments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('trade_id', sa.String(36), sa.ForeignKey('trades.id'), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('speaker', sa.String(8), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_trade_comments_trade_id', 'trade_comments', ['trade_id'])


def downgrade() -> None:
    op.drop_table('trade_comments')
    op.drop_table('trades')
    op.drop_table('draft_products')
    op.drop_table('product_comments')
    op.drop_table('deleted_products')
    op.drop_table('products')
    op.drop_table('notify_states')
    op.drop_table('log_in_states')
    op.drop_table('pending_email_verifications')
    op.drop_table('pending_sign_ups')
    op.drop_table('user_private')
    op.drop_table('users')
