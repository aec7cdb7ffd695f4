# Overview: Sale transaction processor; atomic sale creation and cancellation.

"""
Sale invariants (authoritative)

- A sale is all-or-nothing: stock movements, transaction, lines and the buyer
  account debit commit together or not at all.
- Quantities are aggregated per product before the stock check, so two lines
  of the same product cannot each pass a check their sum fails.
- Products are locked in ascending id order before the transaction row and
  before the member account.
- Every sale line gets its own `out` movement, written in product id order.
- Cancellation is one-way (valid -> cancelled) and restores every line of
  the sale through its own `in` movement referenced CANCEL-<id>.
- Cash-drawer pseudo kinds (change, fund_received, closing) carry no lines
  and a zero total.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from ..errors import (
    AlreadyCancelledError,
    InsufficientStockError,
    InvalidPaymentReferenceError,
    NotFoundError,
    ValidationError,
)
from ..models import MovementKind, PaymentKind, SaleLine, SaleStatus, SaleTransaction
from ..time_utils import utcnow
from .concurrency import atomic, lock_for_update
from .filters import build_predicates, date_from, date_to, equals, paginate

log = logging.getLogger(__name__)

SALE_FILTERS = {
    "cashier_id": equals(SaleTransaction.cashier_id),
    "buyer_id": equals(SaleTransaction.buyer_id),
    "payment_kind": equals(SaleTransaction.payment_kind),
    "status": equals(SaleTransaction.status),
    "date_from": date_from(SaleTransaction.created_at),
    "date_to": date_to(SaleTransaction.created_at),
}


@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: int
    # None means the product's current sale price
    unit_price_cents: int | None = None


def _coerce_line(item) -> LineItem:
    if isinstance(item, LineItem):
        line = item
    elif isinstance(item, Mapping):
        try:
            line = LineItem(
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price_cents=item.get("unit_price_cents"),
            )
        except KeyError as exc:
            raise ValidationError(f"Sale line is missing {exc.args[0]}") from exc
    else:
        raise ValidationError("Sale lines must be LineItem or mapping objects")

    if not isinstance(line.product_id, int) or isinstance(line.product_id, bool):
        raise ValidationError(
            "Line product_id must be an integer",
            details={"product_id": line.product_id},
        )
    if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity <= 0:
        raise ValidationError(
            "Line quantity must be a positive integer",
            details={"product_id": line.product_id, "quantity": line.quantity},
        )
    if line.unit_price_cents is not None and (not isinstance(line.unit_price_cents, int) or line.unit_price_cents < 0):
        raise ValidationError(
            "Unit price must be a non-negative integer amount of cents",
            details={"product_id": line.product_id, "unit_price_cents": line.unit_price_cents},
        )
    return line


def _aggregate(lines: Iterable) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def _in_product_order(lines) -> list:
    return sorted(lines, key=lambda line: line.product_id)


def _non_negative(name: str, value: int | None) -> None:
    if value is not None and (not isinstance(value, int) or value < 0):
        raise ValidationError(f"{name} must be a non-negative integer", details={name: value})


class SaleProcessor:
    def __init__(self, db, stock_ledger, accounts, cancel_reason_min_length: int = 5):
        self.db = db
        self.stock = stock_ledger
        self.accounts = accounts
        self.cancel_reason_min_length = cancel_reason_min_length

    def create_sale(
        self,
        *,
        cashier_id: int,
        payment_kind: str,
        lines: Iterable = (),
        buyer_id: int | None = None,
        payment_reference: str | None = None,
        amount_received_cents: int | None = None,
        change_given_cents: int | None = None,
    ) -> SaleTransaction:
        """
        Record a sale (or a cash-drawer pseudo-transaction) atomically.

        Raises ValidationError, InvalidPaymentReferenceError, NotFoundError or
        InsufficientStockError; nothing is written when any of them is raised.
        """
        if payment_kind not in PaymentKind.ALL:
            raise ValidationError(f"Unknown payment kind: {payment_kind}", details={"payment_kind": payment_kind})
        items = [_coerce_line(item) for item in lines]
        _non_negative("amount_received_cents", amount_received_cents)
        _non_negative("change_given_cents", change_given_cents)

        if payment_kind in PaymentKind.PSEUDO:
            if items:
                raise ValidationError(
                    f"Payment kind {payment_kind} does not take sale lines",
                    details={"payment_kind": payment_kind},
                )
        elif not items:
            raise ValidationError("A sale needs at least one line")

        reference = (payment_reference or "").strip() or None
        if payment_kind in PaymentKind.NEEDS_REFERENCE and reference is None:
            raise InvalidPaymentReferenceError(
                f"A {payment_kind} payment requires a reference",
                details={"payment_kind": payment_kind},
            )

        try:
            with atomic(self.db):
                products = self.stock.lock_products(item.product_id for item in items)
                for product in products.values():
                    if not product.is_active:
                        raise NotFoundError("Product", product.id)

                requested = _aggregate(items)
                for product_id in sorted(requested):
                    product = products[product_id]
                    if product.stock_actuel < requested[product_id]:
                        raise InsufficientStockError(
                            product.id, product.name,
                            available=product.stock_actuel,
                            requested=requested[product_id],
                        )

                tx = SaleTransaction(
                    buyer_id=buyer_id,
                    cashier_id=cashier_id,
                    payment_kind=payment_kind,
                    payment_reference=reference,
                    amount_received_cents=amount_received_cents,
                    change_given_cents=change_given_cents,
                    status=SaleStatus.VALID,
                    total_cents=0,
                )
                self.db.session.add(tx)
                self.db.session.flush()

                total = 0
                for item in items:
                    unit_price = item.unit_price_cents
                    if unit_price is None:
                        unit_price = products[item.product_id].sale_price_cents
                    line_total = unit_price * item.quantity
                    total += line_total
                    tx.lines.append(SaleLine(
                        product_id=item.product_id,
                        quantity=item.quantity,
                        unit_price_cents=unit_price,
                        line_total_cents=line_total,
                    ))
                tx.total_cents = total

                for line in _in_product_order(tx.lines):
                    self.stock.record(
                        products[line.product_id],
                        MovementKind.OUT,
                        line.quantity,
                        reason="sale",
                        actor_id=cashier_id,
                        sale_transaction_id=tx.id,
                        reference=f"SALE-{tx.id}",
                    )

                if total:
                    self.accounts.apply_sale_delta(buyer_id, -total)
        except (InsufficientStockError, NotFoundError) as exc:
            log.warning("Sale refused for cashier %s: %s", cashier_id, exc.message)
            raise

        log.info("Sale %s recorded: %s %d cents by cashier %s", tx.id, payment_kind, tx.total_cents, cashier_id)
        return tx

    def cancel_sale(self, transaction_id: int, actor_id: int, reason: str) -> SaleTransaction:
        """Cancel a valid sale and restore its stock and account effects."""
        reason = (reason or "").strip()
        if len(reason) < self.cancel_reason_min_length:
            raise ValidationError(
                f"Cancellation reason must be at least {self.cancel_reason_min_length} characters",
                details={"min_length": self.cancel_reason_min_length},
            )

        try:
            with atomic(self.db):
                existing = self.db.session.get(SaleTransaction, transaction_id)
                if existing is None:
                    raise NotFoundError("SaleTransaction", transaction_id)
                if existing.payment_kind in PaymentKind.SESSION_AUDIT:
                    raise ValidationError(
                        "Cash session entries cannot be cancelled",
                        details={"transaction_id": transaction_id, "payment_kind": existing.payment_kind},
                    )

                products = self.stock.lock_products(line.product_id for line in existing.lines)

                tx = lock_for_update(self.db.session.query(SaleTransaction).filter_by(id=transaction_id)).first()
                if tx.status == SaleStatus.CANCELLED:
                    raise AlreadyCancelledError(
                        f"Transaction {transaction_id} is already cancelled",
                        details={"transaction_id": transaction_id},
                    )

                for line in _in_product_order(tx.lines):
                    self.stock.record(
                        products[line.product_id],
                        MovementKind.IN,
                        line.quantity,
                        reason="sale cancellation",
                        comment=reason,
                        actor_id=actor_id,
                        sale_transaction_id=tx.id,
                        reference=f"CANCEL-{tx.id}",
                    )

                if tx.total_cents:
                    self.accounts.apply_sale_delta(tx.buyer_id, tx.total_cents)

                tx.status = SaleStatus.CANCELLED
                tx.cancelled_by_id = actor_id
                tx.cancelled_at = utcnow()
                tx.cancellation_reason = reason
        except (AlreadyCancelledError, NotFoundError, ValidationError) as exc:
            log.warning("Cancellation of sale %s refused: %s", transaction_id, exc.message)
            raise

        log.info("Sale %s cancelled by %s", transaction_id, actor_id)
        return tx

    def get_sale(self, transaction_id: int) -> SaleTransaction:
        tx = self.db.session.get(SaleTransaction, transaction_id)
        if tx is None:
            raise NotFoundError("SaleTransaction", transaction_id)
        return tx

    def list_sales(self, filters=None, limit: int | None = None, offset: int | None = None):
        """Transactions newest first, as ``(rows, total)``."""
        query = self.db.session.query(SaleTransaction).filter(*build_predicates(filters, SALE_FILTERS))
        query = query.order_by(SaleTransaction.created_at.desc(), SaleTransaction.id.desc())
        return paginate(query, limit, offset)
