"""initial schema: short urls, click events, analytics share tokens

Revision ID: initial_schema_001
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'initial_schema_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- Short URLs ---
    op.create_table('short_urls',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('original_url', sa.Text(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('total_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unique_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_short_urls_code'), 'short_urls', ['code'], unique=True)
    op.create_index(op.f('ix_short_urls_user_id'), 'short_urls', ['user_id'], unique=False)

    # --- Click events (append-only) ---
    op.create_table('click_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('short_url_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('ip_hash', sa.String(length=16), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('fingerprint', sa.String(length=64), nullable=True),
        sa.Column('country', sa.String(length=2), nullable=True),
        sa.Column('country_name', sa.String(length=100), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('region', sa.String(length=100), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('device_type', sa.String(length=20), nullable=True),
        sa.Column('browser', sa.String(length=50), nullable=True),
        sa.Column('browser_version', sa.String(length=50), nullable=True),
        sa.Column('os', sa.String(length=50), nullable=True),
        sa.Column('os_version', sa.String(length=50), nullable=True),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('referrer_domain', sa.String(length=255), nullable=True),
        sa.Column('utm_source', sa.String(length=255), nullable=True),
        sa.Column('utm_medium', sa.String(length=255), nullable=True),
        sa.Column('utm_campaign', sa.String(length=255), nullable=True),
        sa.Column('utm_term', sa.String(length=255), nullable=True),
        sa.Column('utm_content', sa.String(length=255), nullable=True),
        sa.Column('source_type', sa.String(length=10), nullable=False, server_default='direct'),
        sa.ForeignKeyConstraint(['short_url_id'], ['short_urls.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_click_events_url_timestamp', 'click_events', ['short_url_id', 'timestamp'], unique=False)
    op.create_index('ix_click_events_url_fingerprint', 'click_events', ['short_url_id', 'fingerprint', 'timestamp'], unique=False)
    op.create_index('ix_click_events_country', 'click_events', ['country'], unique=False)
    op.create_index('ix_click_events_source_type', 'click_events', ['source_type'], unique=False)

    # --- Analytics share tokens ---
    op.create_table('analytics_share_tokens',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('short_url_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['short_url_id'], ['short_urls.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_analytics_share_tokens_token'), 'analytics_share_tokens', ['token'], unique=True)
    op.create_index(op.f('ix_analytics_share_tokens_short_url_id'), 'analytics_share_tokens', ['short_url_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_analytics_share_tokens_short_url_id'), table_name='analytics_share_tokens')
    op.drop_index(op.f('ix_analytics_share_tokens_token'), table_name='analytics_share_tokens')
    op.drop_table('analytics_share_tokens')
    op.drop_index('ix_click_events_source_type', table_name='click_events')
    op.drop_index('ix_click_events_country', table_name='click_events')
    op.drop_index('ix_click_events_url_fingerprint', table_name='click_events')
    op.drop_index('ix_click_events_url_timestamp', table_name='click_events')
    op.drop_table('click_events')
    op.drop_index(op.f('ix_short_urls_user_id'), table_name='short_urls')
    op.drop_index(op.f('ix_short_urls_code'), table_name='short_urls')
    op.drop_table('short_urls')
