from .inventory import Product, StockMovement
from .sales import Sale, SaleLine, SaleNumberSequence

__all__ = [
    'Product', 'StockMovement',
    'Sale', 'SaleLine', 'SaleNumberSequence',
]
