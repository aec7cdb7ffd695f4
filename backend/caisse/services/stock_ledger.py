# Overview: Stock ledger; the single writer of product stock levels.

"""
Stock ledger invariants (authoritative)

- Product.stock_actuel is written only here, always together with one
  StockMovement row in the same unit of work.
- stock_after = stock_before + quantity_delta on every movement, and the
  latest movement of a product carries stock_after == stock_actuel.
- stock_actuel never goes below zero: a movement that would do so raises
  InsufficientStockError before anything is written.
- Movements are append-only.

Quantity sign by kind:
- in: +|q|
- out, loss: -|q|
- adjustment, inventory_count, transfer: q as given (signed)
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import MovementKind, Product, StockMovement
from .concurrency import atomic, lock_for_update, run_with_retry
from .filters import build_predicates, date_from, date_to, equals, paginate

log = logging.getLogger(__name__)

MOVEMENT_FILTERS = {
    "product_id": equals(StockMovement.product_id),
    "kind": equals(StockMovement.kind),
    "actor_id": equals(StockMovement.actor_id),
    "sale_transaction_id": equals(StockMovement.sale_transaction_id),
    "supply_order_id": equals(StockMovement.supply_order_id),
    "date_from": date_from(StockMovement.created_at),
    "date_to": date_to(StockMovement.created_at),
}


def effective_delta(kind: str, quantity: int) -> int:
    """Signed stock change a movement of ``kind`` applies."""
    if kind not in MovementKind.ALL:
        raise ValidationError(f"Unknown movement kind: {kind}", details={"kind": kind})
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity == 0:
        raise ValidationError("Movement quantity must be a non-zero integer", details={"quantity": quantity})
    if kind in MovementKind.SIGNED:
        return quantity
    if kind == MovementKind.IN:
        return abs(quantity)
    # out, loss
    return -abs(quantity)


class StockLedger:
    def __init__(self, db):
        self.db = db

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def lock_product(self, product_id: int) -> Product:
        product = lock_for_update(self.db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def lock_products(self, product_ids) -> dict[int, Product]:
        """Lock products in ascending id order so concurrent units never deadlock."""
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = lock_for_update(
            self.db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
        ).all()
        locked = {p.id: p for p in rows}
        for pid in ids:
            if pid not in locked:
                raise NotFoundError("Product", pid)
        return locked

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(
        self,
        product: Product,
        kind: str,
        quantity: int,
        *,
        reason: str | None = None,
        actor_id: int | None = None,
        comment: str | None = None,
        sale_transaction_id: int | None = None,
        supply_order_id: int | None = None,
        reference: str | None = None,
    ) -> StockMovement:
        """
        Append a movement for an already locked product.

        Must run inside an enclosing atomic() unit that holds the product lock.
        """
        delta = effective_delta(kind, quantity)
        before = product.stock_actuel
        after = before + delta
        if after < 0:
            raise InsufficientStockError(product.id, product.name, available=before, requested=-delta)

        movement = StockMovement(
            product_id=product.id,
            kind=kind,
            quantity_delta=delta,
            stock_before=before,
            stock_after=after,
            reason=reason,
            comment=comment,
            reference=reference,
            sale_transaction_id=sale_transaction_id,
            supply_order_id=supply_order_id,
            actor_id=actor_id,
        )
        self.db.session.add(movement)
        product.stock_actuel = after
        self.db.session.flush()
        return movement

    def apply_movement(
        self,
        *,
        product_id: int,
        kind: str,
        quantity: int,
        reason: str | None = None,
        actor_id: int | None = None,
        comment: str | None = None,
        sale_transaction_id: int | None = None,
        supply_order_id: int | None = None,
        reference: str | None = None,
    ) -> StockMovement:
        """Lock the product, append one movement and update its stock atomically."""
        effective_delta(kind, quantity)
        try:
            with atomic(self.db):
                product = self.lock_product(product_id)
                movement = self.record(
                    product,
                    kind,
                    quantity,
                    reason=reason,
                    actor_id=actor_id,
                    comment=comment,
                    sale_transaction_id=sale_transaction_id,
                    supply_order_id=supply_order_id,
                    reference=reference,
                )
        except InsufficientStockError as exc:
            log.warning("Stock movement refused: %s", exc.message)
            raise
        log.info(
            "Stock movement %s on product %s: %+d (%d -> %d)",
            kind, product_id, movement.quantity_delta, movement.stock_before, movement.stock_after,
        )
        return movement

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_movement(self, movement_id: int) -> StockMovement:
        movement = self.db.session.get(StockMovement, movement_id)
        if movement is None:
            raise NotFoundError("StockMovement", movement_id)
        return movement

    def list_movements(self, filters=None, limit: int | None = None, offset: int | None = None):
        """Movements newest first, as ``(rows, total)``."""
        query = self.db.session.query(StockMovement).filter(*build_predicates(filters, MOVEMENT_FILTERS))
        query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        return paginate(query, limit, offset)

    def product_movements(self, product_id: int, limit: int = 50) -> list[StockMovement]:
        if self.db.session.get(Product, product_id) is None:
            raise NotFoundError("Product", product_id)
        rows, _ = self.list_movements({"product_id": product_id}, limit=limit)
        return rows

    def totals_by_kind(self, product_id: int | None = None, date_from=None, date_to=None) -> dict:
        """Absolute quantity moved per kind, plus the signed ``net``."""
        predicates = build_predicates(
            {"product_id": product_id, "date_from": date_from, "date_to": date_to},
            MOVEMENT_FILTERS,
        )
        rows = (
            self.db.session.query(
                StockMovement.kind,
                func.coalesce(func.sum(func.abs(StockMovement.quantity_delta)), 0),
                func.coalesce(func.sum(StockMovement.quantity_delta), 0),
            )
            .filter(*predicates)
            .group_by(StockMovement.kind)
            .all()
        )
        totals = {kind: 0 for kind in MovementKind.ALL}
        net = 0
        for kind, moved, signed in rows:
            totals[kind] = int(moved)
            net += int(signed)
        totals["net"] = net
        return totals

    def audit_product(self, product_id: int) -> dict:
        """Compare stock_actuel with the ledger for one product."""
        def _op():
            product = self.db.session.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            return self._audit_row(product)

        return run_with_retry(self.db.session, _op)

    def audit_all(self) -> list[dict]:
        """Audit every product; returns only the mismatches."""
        def _op():
            products = self.db.session.query(Product).order_by(Product.id).all()
            return [r for r in (self._audit_row(p) for p in products) if not r["consistent"]]

        return run_with_retry(self.db.session, _op)

    def _audit_row(self, product: Product) -> dict:
        last = (
            self.db.session.query(StockMovement)
            .filter_by(product_id=product.id)
            .order_by(StockMovement.id.desc())
            .first()
        )
        net = (
            self.db.session.query(func.coalesce(func.sum(StockMovement.quantity_delta), 0))
            .filter_by(product_id=product.id)
            .scalar()
        )
        broken_chain = (
            self.db.session.query(func.count(StockMovement.id))
            .filter(
                StockMovement.product_id == product.id,
                StockMovement.stock_after != StockMovement.stock_before + StockMovement.quantity_delta,
            )
            .scalar()
        )
        ledger_stock = last.stock_after if last else 0
        consistent = (
            ledger_stock == product.stock_actuel
            and int(net) == product.stock_actuel
            and broken_chain == 0
        )
        return {
            "product_id": product.id,
            "product_name": product.name,
            "stock_actuel": product.stock_actuel,
            "ledger_stock": ledger_stock,
            "movement_net": int(net),
            "broken_movements": int(broken_chain),
            "consistent": consistent,
        }
