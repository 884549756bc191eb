"""Create reporting tables (customers, line items, urls, deployments, clicks, identities)

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 09:00:00.000000

WHAT:
    Creates the schema read by the lead qualification core:
    - customers / orders / line_items: targeting configuration
    - tags / extracted_hosts / tracked_urls (+ tag association tables)
    - email_deployments / email_deployment_urls: sends and the urls they carried
    - email_clicks: click events per identity
    - identities (+ inactive customer/line item association tables)
    - excluded_email_domains: domain denylist

WHY:
    Ingestion jobs write these tables; reporting only reads them. The
    deployment url view is denormalised so eligibility resolves in one query.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20261017_000001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Customers, orders and line items
    # =========================================================================
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('parent_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_customers_parent_id', 'customers', ['parent_id'])

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'line_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('range_start', sa.DateTime(), nullable=False),
        sa.Column('range_end', sa.DateTime(), nullable=False),
        sa.Column('required_leads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tag_ids', sa.JSON(), nullable=False),
        sa.Column('excluded_tag_ids', sa.JSON(), nullable=False),
        sa.Column('link_types', sa.JSON(), nullable=False),
        sa.Column('excluded_urls', sa.JSON(), nullable=False),
        sa.Column('identity_filters', sa.JSON(), nullable=False),
        sa.Column('required_fields', sa.JSON(), nullable=False),
        sa.Column('excluded_fields', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_line_items_order_id', 'line_items', ['order_id'])

    # =========================================================================
    # STEP 2: Tags, hosts and tracked urls
    # =========================================================================
    op.create_table(
        'tags',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
    )

    op.create_table(
        'extracted_hosts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('value', sa.String(), nullable=False, unique=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=True),
    )
    op.create_index('ix_extracted_hosts_customer_id', 'extracted_hosts', ['customer_id'])

    op.create_table(
        'extracted_host_tags',
        sa.Column('host_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('extracted_hosts.id'), primary_key=True),
        sa.Column('tag_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tags.id'), primary_key=True),
    )

    linktypeenum = sa.Enum('(Not Set)', 'Advertising', 'Editorial', name='linktypeenum')
    op.create_table(
        'tracked_urls',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('original', sa.String(), nullable=False, unique=True),
        sa.Column('resolved', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('link_type', linktypeenum, nullable=False),
        sa.Column('resolved_host_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('extracted_hosts.id'), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=True),
    )
    op.create_index('ix_tracked_urls_resolved_host_id', 'tracked_urls', ['resolved_host_id'])
    op.create_index('ix_tracked_urls_customer_id', 'tracked_urls', ['customer_id'])

    op.create_table(
        'tracked_url_tags',
        sa.Column('url_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tracked_urls.id'), primary_key=True),
        sa.Column('tag_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tags.id'), primary_key=True),
    )

    # =========================================================================
    # STEP 3: Deployments and the deployment url view
    # =========================================================================
    op.create_table(
        'email_deployments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('entity', sa.String(), nullable=False, unique=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('sent_date', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_email_deployments_status', 'email_deployments', ['status'])
    op.create_index('ix_email_deployments_sent_date', 'email_deployments', ['sent_date'])

    op.create_table(
        'email_deployment_urls',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('url_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tracked_urls.id'), nullable=False),
        sa.Column('deployment_entity', sa.String(), sa.ForeignKey('email_deployments.entity'), nullable=False),
        sa.Column('sent_date', sa.DateTime(), nullable=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('host_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('extracted_hosts.id'), nullable=False),
        sa.Column('host_customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('link_type', sa.String(), nullable=False, server_default='(Not Set)'),
        sa.UniqueConstraint('url_id', 'deployment_entity', name='uq_deployment_url'),
    )
    op.create_index('ix_deployment_urls_sent_date', 'email_deployment_urls', ['sent_date'])
    op.create_index('ix_email_deployment_urls_deployment_entity', 'email_deployment_urls', ['deployment_entity'])
    op.create_index('ix_email_deployment_urls_customer_id', 'email_deployment_urls', ['customer_id'])
    op.create_index('ix_email_deployment_urls_host_customer_id', 'email_deployment_urls', ['host_customer_id'])

    # =========================================================================
    # STEP 4: Identities, deactivation and domain denylist
    # =========================================================================
    op.create_table(
        'identities',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('entity', sa.String(), nullable=True, unique=True),
        sa.Column('email_address', sa.String(), nullable=True),
        sa.Column('email_domain', sa.String(), nullable=True),
        sa.Column('given_name', sa.String(), nullable=True),
        sa.Column('family_name', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('company_name', sa.String(), nullable=True),
        sa.Column('organization_type', sa.String(), nullable=True),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('street', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('postal_code', sa.String(), nullable=True),
        sa.Column('country', sa.String(), nullable=True),
        sa.Column('inactive', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_identities_email_domain', 'identities', ['email_domain'])

    op.create_table(
        'identity_inactive_customers',
        sa.Column('identity_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('identities.id'), primary_key=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), primary_key=True),
    )

    op.create_table(
        'identity_inactive_line_items',
        sa.Column('identity_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('identities.id'), primary_key=True),
        sa.Column('line_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('line_items.id'), primary_key=True),
    )

    op.create_table(
        'excluded_email_domains',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('domain', sa.String(), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    # =========================================================================
    # STEP 5: Click events
    # =========================================================================
    op.create_table(
        'email_clicks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('identity_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('identities.id'), nullable=False),
        sa.Column('url_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tracked_urls.id'), nullable=False),
        sa.Column('deployment_entity', sa.String(), sa.ForeignKey('email_deployments.entity'), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('n', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('guids', sa.JSON(none_as_null=True), nullable=True),
    )
    op.create_index('ix_email_clicks_identity_id', 'email_clicks', ['identity_id'])
    op.create_index('ix_email_clicks_lookup', 'email_clicks', ['url_id', 'deployment_entity', 'date'])


def downgrade() -> None:
    op.drop_index('ix_email_clicks_lookup', table_name='email_clicks')
    op.drop_index('ix_email_clicks_identity_id', table_name='email_clicks')
    op.drop_table('email_clicks')
    op.drop_table('excluded_email_domains')
    op.drop_table('identity_inactive_line_items')
    op.drop_table('identity_inactive_customers')
    op.drop_index('ix_identities_email_domain', table_name='identities')
    op.drop_table('identities')
    op.drop_table('email_deployment_urls')
    op.drop_table('email_deployments')
    op.drop_table('tracked_url_tags')
    op.drop_table('tracked_urls')
    op.execute("DROP TYPE IF EXISTS linktypeenum")
    op.drop_table('extracted_host_tags')
    op.drop_table('extracted_hosts')
    op.drop_table('tags')
    op.drop_table('line_items')
    op.drop_table('orders')
    op.drop_table('customers')
