"""SQLAlchemy models.

Importing this package registers every table on ``Base.metadata``.
"""

from novura.models.tenancy import Organization, OrganizationMember, Company
from novura.models.integration import (
    MarketplaceApp,
    MarketplaceIntegration,
    MERCADO_LIVRE,
    SHOPEE,
)
from novura.models.catalog import (
    MarketplaceItem,
    MarketplaceMetric,
    Product,
    ProductStock,
    KitItem,
)
from novura.models.invoice import NotaFiscal

__all__ = [
    "Organization",
    "OrganizationMember",
    "Company",
    "MarketplaceApp",
    "MarketplaceIntegration",
    "MERCADO_LIVRE",
    "SHOPEE",
    "MarketplaceItem",
    "MarketplaceMetric",
    "Product",
    "ProductStock",
    "KitItem",
    "NotaFiscal",
]
