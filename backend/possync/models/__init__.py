from .catalog import Product
from .auth import User
from .sales import Sale, SaleItem
from .purchases import Purchase, PurchaseItem
from .sync import SyncOperation, DeadLetterOperation

__all__ = [
    'Product',
    'User',
    'Sale', 'SaleItem',
    'Purchase', 'PurchaseItem',
    'SyncOperation', 'DeadLetterOperation',
]
