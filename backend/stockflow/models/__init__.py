from .auth import User, UserLocationAccess
from .catalog import Location, Product, ProductEvent
from .inventory import StockRow, StockEvent
from .sales import Sale, SaleItem
from .ledger import Income, Expense
from .purchases import Purchase, PurchaseItem
from .transfers import StockTransfer
from .activity import ActivityEvent

__all__ = [
    'User', 'UserLocationAccess',
    'Location', 'Product', 'ProductEvent',
    'StockRow', 'StockEvent',
    'Sale', 'SaleItem',
    'Income', 'Expense',
    'Purchase', 'PurchaseItem',
    'StockTransfer',
    'ActivityEvent',
]
