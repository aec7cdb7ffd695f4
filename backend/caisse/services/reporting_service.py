# Overview: Read-only accounting reports over sales, cash sessions and stock.

from __future__ import annotations

from sqlalchemy import func

from ..errors import ValidationError
from ..models import (
    CashSession,
    Category,
    PaymentKind,
    Product,
    SaleLine,
    SaleStatus,
    SaleTransaction,
    SessionStatus,
)
from ..time_utils import to_utc_z, utcnow
from .concurrency import run_with_retry
from .filters import build_predicates, date_from, date_to

REVENUE_KINDS = (PaymentKind.CASH, PaymentKind.CHEQUE, PaymentKind.CARD)

_PERIOD_FORMATS = {"day": "%Y-%m-%d", "month": "%Y-%m"}

_SALE_RANGE = {
    "date_from": date_from(SaleTransaction.created_at),
    "date_to": date_to(SaleTransaction.created_at),
}
_SESSION_RANGE = {
    "date_from": date_from(CashSession.closed_at),
    "date_to": date_to(CashSession.closed_at),
}


class LedgerReports:
    def __init__(self, db):
        self.db = db

    def _run(self, func_):
        return run_with_retry(self.db.session, func_)

    def sales_journal(self, date_from=None, date_to=None) -> dict:
        """Valid revenue per payment kind over the range; cancellations counted apart."""
        predicates = build_predicates({"date_from": date_from, "date_to": date_to}, _SALE_RANGE)

        def _op():
            rows = (
                self.db.session.query(
                    SaleTransaction.payment_kind,
                    SaleTransaction.status,
                    func.count(SaleTransaction.id),
                    func.coalesce(func.sum(SaleTransaction.total_cents), 0),
                )
                .filter(SaleTransaction.payment_kind.in_(REVENUE_KINDS), *predicates)
                .group_by(SaleTransaction.payment_kind, SaleTransaction.status)
                .all()
            )
            by_kind = {kind: {"count": 0, "total_cents": 0} for kind in REVENUE_KINDS}
            cancelled = {"count": 0, "total_cents": 0}
            for kind, status, count, total in rows:
                bucket = cancelled if status == SaleStatus.CANCELLED else by_kind[kind]
                bucket["count"] += int(count)
                bucket["total_cents"] += int(total)
            return {
                "date_from": str(date_from) if date_from is not None else None,
                "date_to": str(date_to) if date_to is not None else None,
                "by_payment_kind": by_kind,
                "total_cents": sum(b["total_cents"] for b in by_kind.values()),
                "transaction_count": sum(b["count"] for b in by_kind.values()),
                "cancelled": cancelled,
                "generated_at": to_utc_z(utcnow()),
            }

        return self._run(_op)

    def session_report(self, date_from=None, date_to=None) -> dict:
        """Closed sessions over the range with their variances."""
        predicates = build_predicates({"date_from": date_from, "date_to": date_to}, _SESSION_RANGE)

        def _op():
            sessions = (
                self.db.session.query(CashSession)
                .filter(CashSession.closed_at.isnot(None), *predicates)
                .order_by(CashSession.closed_at, CashSession.id)
                .all()
            )
            variances = [s.variance_cents or 0 for s in sessions]
            return {
                "sessions": [s.to_dict() for s in sessions],
                "session_count": len(sessions),
                "anomaly_count": sum(1 for s in sessions if s.status == SessionStatus.ANOMALY),
                "pending_count": sum(1 for s in sessions if s.status == SessionStatus.PENDING_VALIDATION),
                "total_variance_cents": sum(variances),
                "total_abs_variance_cents": sum(abs(v) for v in variances),
                "generated_at": to_utc_z(utcnow()),
            }

        return self._run(_op)

    def stock_valuation(self) -> dict:
        """Active stock valued at purchase and sale prices."""
        def _op():
            products = (
                self.db.session.query(Product)
                .filter(Product.is_active.is_(True))
                .order_by(Product.name)
                .all()
            )
            items = []
            for p in products:
                items.append({
                    "product_id": p.id,
                    "name": p.name,
                    "stock_actuel": p.stock_actuel,
                    "purchase_value_cents": p.stock_actuel * p.purchase_price_cents,
                    "sale_value_cents": p.stock_actuel * p.sale_price_cents,
                })
            return {
                "items": items,
                "total_units": sum(i["stock_actuel"] for i in items),
                "total_purchase_value_cents": sum(i["purchase_value_cents"] for i in items),
                "total_sale_value_cents": sum(i["sale_value_cents"] for i in items),
                "generated_at": to_utc_z(utcnow()),
            }

        return self._run(_op)

    def revenue_by_period(self, date_from=None, date_to=None, period: str = "day") -> dict:
        """Valid revenue bucketed by day or month, with the average basket."""
        if period not in _PERIOD_FORMATS:
            raise ValidationError("period must be day or month", details={"period": period})
        predicates = build_predicates({"date_from": date_from, "date_to": date_to}, _SALE_RANGE)
        period_expr = func.strftime(_PERIOD_FORMATS[period], SaleTransaction.created_at)

        def _op():
            rows = (
                self.db.session.query(
                    period_expr.label("period"),
                    func.count(SaleTransaction.id).label("transaction_count"),
                    func.coalesce(func.sum(SaleTransaction.total_cents), 0).label("total_cents"),
                )
                .filter(
                    SaleTransaction.status == SaleStatus.VALID,
                    SaleTransaction.payment_kind.in_(REVENUE_KINDS),
                    *predicates,
                )
                .group_by("period")
                .order_by("period")
                .all()
            )
            buckets = [
                {
                    "period": row.period,
                    "transaction_count": int(row.transaction_count or 0),
                    "total_cents": int(row.total_cents or 0),
                }
                for row in rows
            ]
            total = sum(b["total_cents"] for b in buckets)
            count = sum(b["transaction_count"] for b in buckets)
            return {
                "period": period,
                "rows": buckets,
                "total_cents": total,
                "transaction_count": count,
                "average_basket_cents": total // count if count else 0,
                "generated_at": to_utc_z(utcnow()),
            }

        return self._run(_op)

    def sales_by_product(self, date_from=None, date_to=None) -> dict:
        """Units and revenue per product and per category for valid sales, best sellers first."""
        predicates = build_predicates({"date_from": date_from, "date_to": date_to}, _SALE_RANGE)

        def _op():
            rows = (
                self.db.session.query(
                    Product.id.label("product_id"),
                    Product.name.label("name"),
                    Category.name.label("category"),
                    func.coalesce(func.sum(SaleLine.quantity), 0).label("units_sold"),
                    func.coalesce(func.sum(SaleLine.line_total_cents), 0).label("revenue_cents"),
                    func.avg(SaleLine.unit_price_cents).label("avg_unit_price"),
                )
                .select_from(SaleLine)
                .join(SaleTransaction, SaleLine.transaction_id == SaleTransaction.id)
                .join(Product, SaleLine.product_id == Product.id)
                .outerjoin(Category, Product.category_id == Category.id)
                .filter(SaleTransaction.status == SaleStatus.VALID, *predicates)
                .group_by(Product.id, Product.name, Category.name)
                .order_by(func.sum(SaleLine.line_total_cents).desc(), Product.id)
                .all()
            )
            products = []
            by_category: dict = {}
            for row in rows:
                item = {
                    "product_id": row.product_id,
                    "name": row.name,
                    "category": row.category,
                    "units_sold": int(row.units_sold),
                    "revenue_cents": int(row.revenue_cents),
                    "average_unit_price_cents": round(float(row.avg_unit_price or 0)),
                }
                products.append(item)
                bucket = by_category.setdefault(
                    row.category, {"category": row.category, "units_sold": 0, "revenue_cents": 0}
                )
                bucket["units_sold"] += item["units_sold"]
                bucket["revenue_cents"] += item["revenue_cents"]
            return {
                "products": products,
                "by_category": sorted(by_category.values(), key=lambda b: b["revenue_cents"], reverse=True),
                "total_revenue_cents": sum(p["revenue_cents"] for p in products),
                "generated_at": to_utc_z(utcnow()),
            }

        return self._run(_op)
