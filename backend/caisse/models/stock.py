from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow


class MovementKind:
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    INVENTORY_COUNT = "inventory_count"
    LOSS = "loss"
    TRANSFER = "transfer"

    ALL = (IN, OUT, ADJUSTMENT, INVENTORY_COUNT, LOSS, TRANSFER)

    # Kinds whose caller-supplied quantity is already signed
    SIGNED = (ADJUSTMENT, INVENTORY_COUNT, TRANSFER)


class StockMovement(db.Model):
    """
    Append-only stock movement.

    INVARIANT: stock_after = stock_before + quantity_delta, and for the latest
    movement of a product stock_after equals Product.stock_actuel.

    Rows are never updated or deleted. Corrections are new movements.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_kind_created", "kind", "created_at"),
        db.CheckConstraint("stock_after >= 0", name="ck_stock_movements_after_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    kind = db.Column(db.String(32), nullable=False, index=True)

    # Effective signed delta (out/loss are stored negative)
    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    reference = db.Column(db.String(64), nullable=True, index=True)  # SALE-12, CANCEL-12, SUPPLY-3

    sale_transaction_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=True, index=True)
    supply_order_id = db.Column(db.Integer, db.ForeignKey("supply_orders.id"), nullable=True, index=True)

    actor_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} kind={self.kind} "
            f"{self.stock_before}->{self.stock_after}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "kind": self.kind,
            "quantity_delta": self.quantity_delta,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reason": self.reason,
            "comment": self.comment,
            "reference": self.reference,
            "sale_transaction_id": self.sale_transaction_id,
            "supply_order_id": self.supply_order_id,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }
