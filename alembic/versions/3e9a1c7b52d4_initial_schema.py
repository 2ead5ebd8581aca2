"""initial_schema

Revision ID: 3e9a1c7b52d4
Revises:
Create Date: 2026-10-19 09:41:12.508311

Novura ERP schema:
- Tenancy: organizations, organization_members, companies
- Marketplace credentials: apps, marketplace_integrations
- Listings: marketplace_items, marketplace_metrics
- Catalog: products, products_stock, product_kit_items
- Invoicing: notas_fiscais
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3e9a1c7b52d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # Tenancy
    # ==========================================================================

    op.create_table('organizations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('module_switches', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('organization_members',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organizations_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('role', sa.String(length=30), nullable=False, server_default='member'),
        sa.Column('global_role', sa.String(length=30), nullable=True),
        sa.Column('permissions', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('display_name', sa.String(length=150), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['organizations_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_organization_members_organizations_id'), 'organization_members', ['organizations_id'], unique=False)
    op.create_index(op.f('ix_organization_members_user_id'), 'organization_members', ['user_id'], unique=False)

    op.create_table('companies',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organization_id', sa.UUID(), nullable=False),
        sa.Column('razao_social', sa.String(length=200), nullable=False),
        sa.Column('cnpj', sa.String(length=20), nullable=True),
        sa.Column('tributacao', sa.String(length=50), nullable=True),
        sa.Column('regime_tributario', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_companies_organization_id'), 'companies', ['organization_id'], unique=False)

    # ==========================================================================
    # Marketplace credentials
    # ==========================================================================

    op.create_table('apps',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('client_id', sa.String(length=255), nullable=True),
        sa.Column('client_secret', sa.String(length=255), nullable=True),
        sa.Column('auth_url', sa.String(length=500), nullable=True),
        sa.Column('config', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('marketplace_integrations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organizations_id', sa.UUID(), nullable=False),
        sa.Column('company_id', sa.UUID(), nullable=True),
        sa.Column('marketplace_name', sa.String(length=50), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('expires_in', sa.DateTime(timezone=True), nullable=True),
        sa.Column('meli_user_id', sa.String(length=50), nullable=True),
        sa.Column('config', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['organizations_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_marketplace_integrations_organizations_id'), 'marketplace_integrations', ['organizations_id'], unique=False)
    op.create_index(op.f('ix_marketplace_integrations_marketplace_name'), 'marketplace_integrations', ['marketplace_name'], unique=False)
    op.create_index(op.f('ix_marketplace_integrations_meli_user_id'), 'marketplace_integrations', ['meli_user_id'], unique=False)

    # ==========================================================================
    # Listings
    # ==========================================================================

    op.create_table('marketplace_items',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organizations_id', sa.UUID(), nullable=False),
        sa.Column('company_id', sa.UUID(), nullable=True),
        sa.Column('marketplace_name', sa.String(length=50), nullable=False),
        sa.Column('marketplace_item_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('condition', sa.String(length=30), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=True),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('available_quantity', sa.Integer(), nullable=True),
        sa.Column('sold_quantity', sa.Integer(), nullable=True),
        sa.Column('category_id', sa.String(length=50), nullable=True),
        sa.Column('permalink', sa.Text(), nullable=True),
        sa.Column('attributes', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('variations', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('pictures', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('tags', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('seller_id', sa.String(length=50), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('listing_quality', sa.Integer(), nullable=True),
        sa.Column('quality_level', sa.String(length=100), nullable=True),
        sa.Column('last_quality_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['organizations_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organizations_id', 'marketplace_name', 'marketplace_item_id', name='uq_marketplace_items_org_marketplace_item')
    )
    op.create_index(op.f('ix_marketplace_items_organizations_id'), 'marketplace_items', ['organizations_id'], unique=False)
    op.create_index(op.f('ix_marketplace_items_marketplace_item_id'), 'marketplace_items', ['marketplace_item_id'], unique=False)

    op.create_table('marketplace_metrics',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organizations_id', sa.UUID(), nullable=False),
        sa.Column('marketplace_name', sa.String(length=50), nullable=False),
        sa.Column('marketplace_item_id', sa.String(length=64), nullable=False),
        sa.Column('listing_quality', sa.Integer(), nullable=True),
        sa.Column('quality_level', sa.String(length=100), nullable=True),
        sa.Column('performance_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('last_quality_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['organizations_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organizations_id', 'marketplace_name', 'marketplace_item_id', name='uq_marketplace_metrics_org_marketplace_item')
    )
    op.create_index(op.f('ix_marketplace_metrics_organizations_id'), 'marketplace_metrics', ['organizations_id'], unique=False)

    # ==========================================================================
    # Catalog
    # ==========================================================================

    op.create_table('products',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organizations_id', sa.UUID(), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='UNICO'),
        sa.Column('cost_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('sell_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['organizations_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_products_organizations_id'), 'products', ['organizations_id'], unique=False)
    op.create_index(op.f('ix_products_sku'), 'products', ['sku'], unique=False)

    op.create_table('products_stock',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('product_id', sa.UUID(), nullable=False),
        sa.Column('storage_name', sa.String(length=100), nullable=False),
        sa.Column('current', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_products_stock_product_id'), 'products_stock', ['product_id'], unique=False)

    op.create_table('product_kit_items',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('kit_id', sa.UUID(), nullable=False),
        sa.Column('product_id', sa.UUID(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['kit_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_product_kit_items_kit_id'), 'product_kit_items', ['kit_id'], unique=False)

    # ==========================================================================
    # Invoicing
    # ==========================================================================

    op.create_table('notas_fiscais',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organizations_id', sa.UUID(), nullable=False),
        sa.Column('company_id', sa.UUID(), nullable=True),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('tipo', sa.String(length=20), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=True),
        sa.Column('status_focus', sa.String(length=40), nullable=True),
        sa.Column('nfe_number', sa.String(length=20), nullable=True),
        sa.Column('nfe_key', sa.String(length=44), nullable=True),
        sa.Column('total_value', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('xml_base64', sa.Text(), nullable=True),
        sa.Column('xml_url', sa.Text(), nullable=True),
        sa.Column('pdf_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['organizations_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notas_fiscais_organizations_id'), 'notas_fiscais', ['organizations_id'], unique=False)
    op.create_index(op.f('ix_notas_fiscais_order_id'), 'notas_fiscais', ['order_id'], unique=False)
    op.create_index(op.f('ix_notas_fiscais_nfe_key'), 'notas_fiscais', ['nfe_key'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_notas_fiscais_nfe_key'), table_name='notas_fiscais')
    op.drop_index(op.f('ix_notas_fiscais_order_id'), table_name='notas_fiscais')
    op.drop_index(op.f('ix_notas_fiscais_organizations_id'), table_name='notas_fiscais')
    op.drop_table('notas_fiscais')

    op.drop_index(op.f('ix_product_kit_items_kit_id'), table_name='product_kit_items')
    op.drop_table('product_kit_items')

    op.drop_index(op.f('ix_products_stock_product_id'), table_name='products_stock')
    op.drop_table('products_stock')

    op.drop_index(op.f('ix_products_sku'), table_name='products')
    op.drop_index(op.f('ix_products_organizations_id'), table_name='products')
    op.drop_table('products')

    op.drop_index(op.f('ix_marketplace_metrics_organizations_id'), table_name='marketplace_metrics')
    op.drop_table('marketplace_metrics')

    op.drop_index(op.f('ix_marketplace_items_marketplace_item_id'), table_name='marketplace_items')
    op.drop_index(op.f('ix_marketplace_items_organizations_id'), table_name='marketplace_items')
    op.drop_table('marketplace_items')

    op.drop_index(op.f('ix_marketplace_integrations_meli_user_id'), table_name='marketplace_integrations')
    op.drop_index(op.f('ix_marketplace_integrations_marketplace_name'), table_name='marketplace_integrations')
    op.drop_index(op.f('ix_marketplace_integrations_organizations_id'), table_name='marketplace_integrations')
    op.drop_table('marketplace_integrations')

    op.drop_table('apps')

    op.drop_index(op.f('ix_companies_organization_id'), table_name='companies')
    op.drop_table('companies')

    op.drop_index(op.f('ix_organization_members_user_id'), table_name='organization_members')
    op.drop_index(op.f('ix_organization_members_organizations_id'), table_name='organization_members')
    op.drop_table('organization_members')

    op.drop_table('organizations')
