from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow


class SessionStatus:
    PENDING_CASHIER = "pending_cashier"
    OPEN = "open"
    PENDING_VALIDATION = "pending_validation"
    VALIDATED = "validated"
    ANOMALY = "anomaly"

    ALL = (PENDING_CASHIER, OPEN, PENDING_VALIDATION, VALIDATED, ANOMALY)

    # A cashier holds at most one session in these statuses
    ACTIVE = (PENDING_CASHIER, OPEN)
    FINAL = (VALIDATED, ANOMALY)


class CashSession(db.Model):
    """
    Cash-register session (till shift).

    LIFECYCLE:
    - pending_cashier: supervisor handed over the initial fund
    - open: cashier accepted the fund, sales are counted from opened_at
    - pending_validation: cashier declared the closing count
    - validated / anomaly: supervisor's final decision (terminal)

    variance_cents = declared_cents - expected_cents, fixed at closing.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index("ix_cash_sessions_cashier_status", "cashier_id", "status"),
        db.Index("ix_cash_sessions_supervisor_status", "supervisor_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supervisor_id = db.Column(db.Integer, nullable=False, index=True)
    cashier_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(32), nullable=False, default=SessionStatus.PENDING_CASHIER, index=True)

    # All amounts in cents
    initial_fund_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_cents = db.Column(db.Integer, nullable=True)
    declared_cents = db.Column(db.Integer, nullable=True)
    validated_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)

    opening_note = db.Column(db.Text, nullable=True)
    acceptance_note = db.Column(db.Text, nullable=True)
    closing_note = db.Column(db.Text, nullable=True)
    validation_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Audit pseudo-transactions written at acceptance and closing
    fund_transaction_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=True)
    closing_transaction_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<CashSession id={self.id} cashier_id={self.cashier_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supervisor_id": self.supervisor_id,
            "cashier_id": self.cashier_id,
            "status": self.status,
            "initial_fund_cents": self.initial_fund_cents,
            "expected_cents": self.expected_cents,
            "declared_cents": self.declared_cents,
            "validated_cents": self.validated_cents,
            "variance_cents": self.variance_cents,
            "opening_note": self.opening_note,
            "acceptance_note": self.acceptance_note,
            "closing_note": self.closing_note,
            "validation_note": self.validation_note,
            "created_at": to_utc_z(self.created_at),
            "opened_at": to_utc_z(self.opened_at) if self.opened_at else None,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "validated_at": to_utc_z(self.validated_at) if self.validated_at else None,
            "fund_transaction_id": self.fund_transaction_id,
            "closing_transaction_id": self.closing_transaction_id,
            "version_id": self.version_id,
        }
