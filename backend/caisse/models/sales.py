from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow


class PaymentKind:
    CASH = "cash"
    CHEQUE = "cheque"
    CARD = "card"

    # Cash-drawer pseudo-transactions: no lines, total 0
    CHANGE = "change"
    FUND_RECEIVED = "fund_received"
    CLOSING = "closing"

    ALL = (CASH, CHEQUE, CARD, CHANGE, FUND_RECEIVED, CLOSING)
    PSEUDO = frozenset({CHANGE, FUND_RECEIVED, CLOSING})
    NEEDS_REFERENCE = frozenset({CHEQUE, CARD})

    # Written by the cash session manager, never cancellable
    SESSION_AUDIT = frozenset({FUND_RECEIVED, CLOSING})


class SaleStatus:
    VALID = "valid"
    CANCELLED = "cancelled"

    ALL = (VALID, CANCELLED)


class SaleTransaction(db.Model):
    """
    Sale transaction header.

    LIFECYCLE:
    - valid: created by SaleProcessor.create_sale
    - cancelled: terminal, set once by SaleProcessor.cancel_sale

    Pseudo kinds (change, fund_received, closing) record cash-drawer events.
    They carry no lines and a zero total; amount_received_cents and
    change_given_cents hold the cash amounts.
    """
    __tablename__ = "sale_transactions"
    __table_args__ = (
        db.Index("ix_sale_tx_cashier_created", "cashier_id", "created_at"),
        db.Index("ix_sale_tx_status_kind", "status", "payment_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    buyer_id = db.Column(db.Integer, nullable=True, index=True)
    cashier_id = db.Column(db.Integer, nullable=False, index=True)

    payment_kind = db.Column(db.String(16), nullable=False, index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_reference = db.Column(db.String(128), nullable=True)

    amount_received_cents = db.Column(db.Integer, nullable=True)
    change_given_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SaleStatus.VALID, index=True)

    cancelled_by_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    lines = db.relationship(
        "SaleLine",
        backref="transaction",
        lazy=True,
        order_by="SaleLine.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<SaleTransaction id={self.id} kind={self.payment_kind} total={self.total_cents} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "cashier_id": self.cashier_id,
            "payment_kind": self.payment_kind,
            "total_cents": self.total_cents,
            "payment_reference": self.payment_reference,
            "amount_received_cents": self.amount_received_cents,
            "change_given_cents": self.change_given_cents,
            "status": self.status,
            "cancelled_by_id": self.cancelled_by_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
