from .catalog import Category, Product
from .stock import MovementKind, StockMovement
from .sales import PaymentKind, SaleStatus, SaleTransaction, SaleLine
from .registers import SessionStatus, CashSession
from .accounts import MemberAccount, AccountAdjustment
from .supply import SupplyKind, SupplyStatus, SupplyOrder, SupplyOrderLine

__all__ = [
    'Category', 'Product',
    'MovementKind', 'StockMovement',
    'PaymentKind', 'SaleStatus', 'SaleTransaction', 'SaleLine',
    'SessionStatus', 'CashSession',
    'MemberAccount', 'AccountAdjustment',
    'SupplyKind', 'SupplyStatus', 'SupplyOrder', 'SupplyOrderLine',
]
