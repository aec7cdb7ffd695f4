# Overview: Service container; builds the ledger services around one database handle.

from __future__ import annotations

from dataclasses import dataclass

from .account_service import AccountLedger
from .catalog_service import ProductCatalog
from .permission_service import AuthorizationOracle, StaticPermissionOracle
from .register_service import CashSessionManager
from .reporting_service import LedgerReports
from .sales_service import LineItem, SaleProcessor
from .stock_ledger import StockLedger
from .supply_service import SupplyService


@dataclass
class Backoffice:
    """Wired service objects sharing one database handle."""
    stock: StockLedger
    accounts: AccountLedger
    sales: SaleProcessor
    sessions: CashSessionManager
    catalog: ProductCatalog
    supply: SupplyService
    reports: LedgerReports
    oracle: AuthorizationOracle


def build_services(db, oracle: AuthorizationOracle, *, cancel_reason_min_length: int = 5) -> Backoffice:
    stock = StockLedger(db)
    accounts = AccountLedger(db)
    sales = SaleProcessor(db, stock, accounts, cancel_reason_min_length=cancel_reason_min_length)
    return Backoffice(
        stock=stock,
        accounts=accounts,
        sales=sales,
        sessions=CashSessionManager(db, sales),
        catalog=ProductCatalog(db, stock),
        supply=SupplyService(db, stock),
        reports=LedgerReports(db),
        oracle=oracle,
    )


__all__ = [
    "Backoffice",
    "build_services",
    "StockLedger",
    "AccountLedger",
    "SaleProcessor",
    "LineItem",
    "CashSessionManager",
    "ProductCatalog",
    "SupplyService",
    "LedgerReports",
    "StaticPermissionOracle",
]
