from .inventory import Product, StockMovement
from .deposits import DepositOrder, DepositOrderItem, PartExchangeItem, DepositPayment
from .sales import Sale, SaleItem, ConsignmentSettlement
from .documents import DocumentSequence, AuditEvent

__all__ = [
    'Product', 'StockMovement',
    'DepositOrder', 'DepositOrderItem', 'PartExchangeItem', 'DepositPayment',
    'Sale', 'SaleItem', 'ConsignmentSettlement',
    'DocumentSequence', 'AuditEvent',
]
