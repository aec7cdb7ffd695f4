# Overview: Restocking; direct purchases and supplier orders received into stock.

from __future__ import annotations

import logging
from datetime import date

from ..errors import InvalidStateTransitionError, NotFoundError, ValidationError
from ..models import MovementKind, Product, SupplyKind, SupplyOrder, SupplyOrderLine, SupplyStatus
from ..time_utils import utcnow
from .concurrency import atomic, lock_for_update
from .filters import build_predicates, date_from, date_to, equals, paginate

log = logging.getLogger(__name__)

ORDER_FILTERS = {
    "kind": equals(SupplyOrder.kind),
    "status": equals(SupplyOrder.status),
    "date_from": date_from(SupplyOrder.created_at),
    "date_to": date_to(SupplyOrder.created_at),
}


def _coerce_lines(lines) -> list[dict]:
    out = []
    for line in lines or ():
        try:
            product_id = line["product_id"]
            quantity = line["quantity"]
        except KeyError as exc:
            raise ValidationError(f"Supply line is missing {exc.args[0]}") from exc
        unit_cost = line.get("unit_cost_cents", 0)
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Supply quantity must be a positive integer",
                                  details={"product_id": product_id, "quantity": quantity})
        if not isinstance(unit_cost, int) or unit_cost < 0:
            raise ValidationError("Unit cost must be a non-negative integer amount of cents",
                                  details={"product_id": product_id, "unit_cost_cents": unit_cost})
        out.append({"product_id": product_id, "quantity": quantity, "unit_cost_cents": unit_cost})
    if not out:
        raise ValidationError("A supply order needs at least one line")
    return out


class SupplyService:
    """
    Direct purchases are received on the spot. Supplier orders stay pending
    until mark_delivered. Receipt appends one `in` movement per line, linked
    to the order.
    """

    def __init__(self, db, stock_ledger):
        self.db = db
        self.stock = stock_ledger

    def _receive(self, order: SupplyOrder, products: dict[int, Product], actor_id: int) -> None:
        for line in order.lines:
            self.stock.record(
                products[line.product_id],
                MovementKind.IN,
                line.quantity,
                reason=f"supply {order.kind}",
                actor_id=actor_id,
                supply_order_id=order.id,
                reference=f"SUPPLY-{order.id}",
            )
        order.status = SupplyStatus.RECEIVED
        order.received_at = utcnow()

    def record_purchase(
        self,
        *,
        kind: str,
        lines,
        actor_id: int,
        purchase_date: date | None = None,
        supplier_name: str | None = None,
        store_name: str | None = None,
        notes: str | None = None,
        expected_delivery_date: date | None = None,
    ) -> SupplyOrder:
        if kind not in SupplyKind.ALL:
            raise ValidationError(f"Unknown supply kind: {kind}", details={"kind": kind})
        items = _coerce_lines(lines)

        with atomic(self.db):
            products = self.stock.lock_products(item["product_id"] for item in items)
            order = SupplyOrder(
                kind=kind,
                status=SupplyStatus.PENDING,
                total_cents=sum(i["quantity"] * i["unit_cost_cents"] for i in items),
                purchase_date=purchase_date or utcnow().date(),
                supplier_name=supplier_name,
                store_name=store_name,
                notes=notes,
                expected_delivery_date=expected_delivery_date,
                actor_id=actor_id,
            )
            for item in items:
                order.lines.append(SupplyOrderLine(**item))
            self.db.session.add(order)
            self.db.session.flush()

            if kind == SupplyKind.DIRECT_PURCHASE:
                self._receive(order, products, actor_id)

        log.info("Supply order %s recorded (%s, %s)", order.id, kind, order.status)
        return order

    def mark_delivered(self, order_id: int, actor_id: int) -> SupplyOrder:
        with atomic(self.db):
            order = self.get_order(order_id)
            products = self.stock.lock_products(line.product_id for line in order.lines)
            order = lock_for_update(self.db.session.query(SupplyOrder).filter_by(id=order_id)).first()
            if order.kind != SupplyKind.SUPPLIER_ORDER or order.status != SupplyStatus.PENDING:
                raise InvalidStateTransitionError("supply order", order.status, "deliver")
            self._receive(order, products, actor_id)
        log.info("Supply order %s delivered", order_id)
        return order

    def delete_order(self, order_id: int) -> None:
        """Only pending supplier orders can be deleted; received stock stays."""
        with atomic(self.db):
            order = lock_for_update(self.db.session.query(SupplyOrder).filter_by(id=order_id)).first()
            if order is None:
                raise NotFoundError("SupplyOrder", order_id)
            if order.kind != SupplyKind.SUPPLIER_ORDER or order.status != SupplyStatus.PENDING:
                raise InvalidStateTransitionError("supply order", order.status, "delete")
            self.db.session.delete(order)
        log.info("Supply order %s deleted", order_id)

    def get_order(self, order_id: int) -> SupplyOrder:
        order = self.db.session.get(SupplyOrder, order_id)
        if order is None:
            raise NotFoundError("SupplyOrder", order_id)
        return order

    def list_orders(self, filters=None, limit: int | None = None, offset: int | None = None):
        query = self.db.session.query(SupplyOrder).filter(*build_predicates(filters, ORDER_FILTERS))
        query = query.order_by(SupplyOrder.created_at.desc(), SupplyOrder.id.desc())
        return paginate(query, limit, offset)
