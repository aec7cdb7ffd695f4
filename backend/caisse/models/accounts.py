from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow


class MemberAccount(db.Model):
    """
    Member running balance. Negative means the member owes the association.

    No floor or ceiling: sales debit, cancellations credit, admins adjust.
    """
    __tablename__ = "member_accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<MemberAccount member_id={self.member_id} balance={self.balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "balance_cents": self.balance_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AccountAdjustment(db.Model):
    """Append-only log of manual balance adjustments."""
    __tablename__ = "account_adjustments"
    __table_args__ = (
        db.Index("ix_account_adjustments_member_created", "member_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("member_accounts.id"), nullable=False, index=True)
    member_id = db.Column(db.Integer, nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=False)
    admin_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    account = db.relationship("MemberAccount", backref=db.backref("adjustments", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "member_id": self.member_id,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "reason": self.reason,
            "admin_id": self.admin_id,
            "created_at": to_utc_z(self.created_at),
        }
