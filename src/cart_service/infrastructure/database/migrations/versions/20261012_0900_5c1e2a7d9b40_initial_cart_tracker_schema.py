"""Initial cart tracker schema

Revision ID: 5c1e2a7d9b40
Revises:
Create Date: 2026-10-12 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c1e2a7d9b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create cart_events table
    op.create_table('cart_events',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('shop', sa.String(length=255), nullable=False),
    sa.Column('cart_token', sa.String(length=255), nullable=False),
    sa.Column('customer_id', sa.String(length=255), nullable=True),
    sa.Column('customer_email', sa.String(length=320), nullable=True),
    sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('line_items', sa.JSON(), nullable=False),
    sa.Column('status', sa.Enum('ACTIVE', 'ABANDONED', 'RECOVERED', 'CONVERTED', name='cartstatus', schema='cart_tracker'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('abandoned_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('email_sent_at', sa.DateTime(timezone=True), nullable=True),
    sa.CheckConstraint('total_price >= 0', name='ck_cart_events_total_price_non_negative'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shop', 'cart_token', name='uq_cart_events_shop_token'),
    schema='cart_tracker'
    )
    op.create_index('ix_cart_events_shop_status_updated', 'cart_events', ['shop', 'status', 'updated_at'], unique=False, schema='cart_tracker')
    op.create_index('ix_cart_events_shop_created', 'cart_events', ['shop', 'created_at'], unique=False, schema='cart_tracker')

    # Partial index for the notification retry pass
    op.execute("""
        CREATE INDEX ix_cart_events_awaiting_notification
        ON cart_tracker.cart_events (shop, abandoned_at)
        WHERE status = 'ABANDONED' AND email_sent_at IS NULL AND customer_email IS NOT NULL
    """)

    # Create shop_settings table
    op.create_table('shop_settings',
    sa.Column('shop', sa.String(length=255), nullable=False),
    sa.Column('abandoned_threshold_min', sa.Integer(), nullable=False),
    sa.Column('email_enabled', sa.Boolean(), nullable=False),
    sa.Column('email_from', sa.String(length=320), nullable=True),
    sa.Column('email_subject', sa.String(length=255), nullable=True),
    sa.Column('email_body', sa.Text(), nullable=True),
    sa.Column('smtp_host', sa.String(length=255), nullable=True),
    sa.Column('smtp_port', sa.Integer(), nullable=False),
    sa.Column('smtp_user', sa.String(length=255), nullable=True),
    sa.Column('smtp_pass', sa.String(length=255), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('shop'),
    schema='cart_tracker'
    )


def downgrade() -> None:
    op.drop_table('shop_settings', schema='cart_tracker')
    op.execute("DROP INDEX IF EXISTS cart_tracker.ix_cart_events_awaiting_notification")
    op.drop_index('ix_cart_events_shop_created', table_name='cart_events', schema='cart_tracker')
    op.drop_index('ix_cart_events_shop_status_updated', table_name='cart_events', schema='cart_tracker')
    op.drop_table('cart_events', schema='cart_tracker')
    sa.Enum(name='cartstatus', schema='cart_tracker').drop(op.get_bind(), checkfirst=True)
