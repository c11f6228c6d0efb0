from .inventory import Product, StockMovement
from .promotions import Promotion, product_promotions
from .sales import Sale
from .audit import AuditLogEntry

__all__ = [
    'Product', 'StockMovement',
    'Promotion', 'product_promotions',
    'Sale',
    'AuditLogEntry',
]
