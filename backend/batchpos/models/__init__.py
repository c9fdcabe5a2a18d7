from .catalog import Product, Batch
from .sales import Sale, SaleItem
from .queue import QueueBase, QueueStatus, QueuedSale, QueuedSaleItem, ProductsCache

__all__ = [
    'Product', 'Batch',
    'Sale', 'SaleItem',
    'QueueBase', 'QueueStatus', 'QueuedSale', 'QueuedSaleItem', 'ProductsCache',
]
