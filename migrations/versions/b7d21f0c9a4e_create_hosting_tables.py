"""create client sites, releases, domain connections and audit events

Revision ID: b7d21f0c9a4e
Revises:
Create Date: 2026-10-18 09:12:44.310512

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7d21f0c9a4e'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_DOMAIN_WHERE = "status NOT IN ('error', 'verification_failed', 'disconnected')"


def upgrade():
    op.create_table(
        'client_sites',
        sa.Column('id', sa.String(length=30), nullable=False),
        sa.Column('agency_id', sa.String(length=128), nullable=False),
        sa.Column('lead_id', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=False),
        sa.Column('site_type', sa.String(length=30), nullable=False),
        sa.Column('default_url', sa.String(length=500), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('last_deployed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_version_id', sa.String(length=255), nullable=True),
        sa.Column('current_release_id', sa.String(length=255), nullable=True),
        sa.Column('custom_domain', sa.String(length=255), nullable=True),
        sa.Column('domain_connection_id', sa.String(length=64), nullable=True),
        sa.Column('domain_connection_status', sa.String(length=30), nullable=True),
        sa.Column('ssl_status', sa.String(length=40), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_client_sites_agency_id', 'client_sites', ['agency_id'])
    op.create_index('ix_client_sites_lead_id', 'client_sites', ['lead_id'])

    op.create_table(
        'site_releases',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('site_id', sa.String(length=30), nullable=False),
        sa.Column('version_name', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.String(length=255), nullable=True),
        sa.Column('files', sa.JSON(), nullable=True),
        sa.Column('uploaded_hashes', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('release_id', sa.String(length=255), nullable=True),
        sa.Column('message', sa.String(length=255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['site_id'], ['client_sites.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_site_releases_site_id', 'site_releases', ['site_id'])

    op.create_table(
        'domain_connections',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=True),
        sa.Column('site_id', sa.String(length=30), nullable=True),
        sa.Column('agency_id', sa.String(length=128), nullable=False),
        sa.Column('lead_id', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('connection_method', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('dns_records', sa.JSON(), nullable=True),
        sa.Column('host_state', sa.String(length=40), nullable=True),
        sa.Column('ownership_status', sa.String(length=40), nullable=True),
        sa.Column('cert_state', sa.String(length=40), nullable=True),
        sa.Column('verification_token', sa.String(length=64), nullable=True),
        sa.Column('verification_txt_record', sa.String(length=255), nullable=True),
        sa.Column('ownership_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dns_provider', sa.String(length=30), nullable=True),
        sa.Column('dns_configured_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('site_url', sa.String(length=500), nullable=True),
        sa.Column('poll_attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('dns_check_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('ssl_check_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('error_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('last_polled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('connected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disconnected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['site_id'], ['client_sites.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_domain_connections_site_id', 'domain_connections', ['site_id'])
    op.create_index('ix_domain_connections_status', 'domain_connections', ['status'])
    # At most one active connection per domain
    op.create_index(
        'uq_domain_connections_active_domain',
        'domain_connections',
        ['domain'],
        unique=True,
        sqlite_where=sa.text(ACTIVE_DOMAIN_WHERE),
        postgresql_where=sa.text(ACTIVE_DOMAIN_WHERE),
    )

    op.create_table(
        'audit_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('actor_id', sa.String(length=128), nullable=True),
        sa.Column('actor_type', sa.String(length=20), nullable=False),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('resource', sa.String(length=50), nullable=True),
        sa.Column('resource_id', sa.String(length=64), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_events_resource_id', 'audit_events', ['resource_id'])


def downgrade():
    op.drop_index('ix_audit_events_resource_id', table_name='audit_events')
    op.drop_table('audit_events')
    op.drop_index('uq_domain_connections_active_domain', table_name='domain_connections')
    op.drop_index('ix_domain_connections_status', table_name='domain_connections')
    op.drop_index('ix_domain_connections_site_id', table_name='domain_connections')
    op.drop_table('domain_connections')
    op.drop_index('ix_site_releases_site_id', table_name='site_releases')
    op.drop_table('site_releases')
    op.drop_index('ix_client_sites_lead_id', table_name='client_sites')
    op.drop_index('ix_client_sites_agency_id', table_name='client_sites')
    op.drop_table('client_sites')
