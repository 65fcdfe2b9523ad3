from .catalog import Location, Product
from .inventory import StockEntry, DailySnapshot, StockAdjustment
from .sales import Sale, SaleLine
from .orders import Customer, Order, OrderLine
from .documents import DocumentSequence
from .communications import Notification

__all__ = [
    'Location', 'Product',
    'StockEntry', 'DailySnapshot', 'StockAdjustment',
    'Sale', 'SaleLine',
    'Customer', 'Order', 'OrderLine',
    'DocumentSequence',
    'Notification',
]
