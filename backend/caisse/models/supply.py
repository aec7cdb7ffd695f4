from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow


class SupplyKind:
    DIRECT_PURCHASE = "direct_purchase"  # bought in store, received on the spot
    SUPPLIER_ORDER = "supplier_order"  # received later via mark_delivered

    ALL = (DIRECT_PURCHASE, SUPPLIER_ORDER)


class SupplyStatus:
    PENDING = "pending"
    RECEIVED = "received"


class SupplyOrder(db.Model):
    """
    Restocking document.

    Stock is only touched on receipt, through StockLedger `in` movements that
    point back to this order (supply_order_id, reference SUPPLY-<id>).
    """
    __tablename__ = "supply_orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=SupplyStatus.PENDING, index=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    purchase_date = db.Column(db.Date, nullable=True)
    supplier_name = db.Column(db.String(255), nullable=True)
    store_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    expected_delivery_date = db.Column(db.Date, nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    actor_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    lines = db.relationship(
        "SupplyOrderLine",
        backref="order",
        lazy=True,
        order_by="SupplyOrderLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "status": self.status,
            "total_cents": self.total_cents,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "supplier_name": self.supplier_name,
            "store_name": self.store_name,
            "notes": self.notes,
            "expected_delivery_date": (
                self.expected_delivery_date.isoformat() if self.expected_delivery_date else None
            ),
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SupplyOrderLine(db.Model):
    __tablename__ = "supply_order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_supply_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("supply_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.quantity * self.unit_cost_cents,
        }
