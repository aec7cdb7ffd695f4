# Overview: Member account balances; sale debits/credits and audited manual adjustments.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import AccountAdjustment, MemberAccount, PaymentKind, SaleStatus, SaleTransaction
from ..time_utils import to_utc_z
from .concurrency import atomic, lock_for_update
from .filters import paginate

log = logging.getLogger(__name__)


class AccountLedger:
    """
    Member running balances.

    Balances have no floor or ceiling. Sales debit the buyer's account inside
    the sale unit; cancellations credit it back. Manual adjustments append an
    AccountAdjustment row alongside the balance change.
    """

    def __init__(self, db):
        self.db = db

    def _lock_account(self, member_id: int) -> MemberAccount | None:
        return lock_for_update(
            self.db.session.query(MemberAccount).filter_by(member_id=member_id)
        ).first()

    def open_account(self, member_id: int, initial_balance_cents: int = 0) -> MemberAccount:
        with atomic(self.db):
            if self.db.session.query(MemberAccount).filter_by(member_id=member_id).first():
                raise ConflictError(
                    f"Member {member_id} already has an account",
                    details={"member_id": member_id},
                )
            account = MemberAccount(member_id=member_id, balance_cents=initial_balance_cents)
            self.db.session.add(account)
        log.info("Opened account for member %s", member_id)
        return account

    def find_account(self, member_id: int) -> MemberAccount | None:
        return self.db.session.query(MemberAccount).filter_by(member_id=member_id).first()

    def get_account(self, member_id: int) -> MemberAccount:
        account = self.find_account(member_id)
        if account is None:
            raise NotFoundError("MemberAccount", member_id)
        return account

    def list_accounts(self, negative_only: bool = False, limit: int | None = None, offset: int | None = None):
        query = self.db.session.query(MemberAccount)
        if negative_only:
            query = query.filter(MemberAccount.balance_cents < 0)
        query = query.order_by(MemberAccount.member_id)
        return paginate(query, limit, offset)

    def apply_sale_delta(self, member_id: int | None, amount_cents: int) -> MemberAccount | None:
        """
        Add ``amount_cents`` (negative for a debit) to the member's balance.

        Joins the caller's unit. Members without an account are left alone.
        """
        if member_id is None:
            return None
        with atomic(self.db):
            account = self._lock_account(member_id)
            if account is None:
                return None
            account.balance_cents += amount_cents
            self.db.session.flush()
        return account

    def adjust_balance(self, member_id: int, amount_cents: int, reason: str, admin_id: int) -> AccountAdjustment:
        """Manual signed adjustment, logged in AccountAdjustment."""
        if not isinstance(amount_cents, int) or amount_cents == 0:
            raise ValidationError("Adjustment amount must be a non-zero integer", details={"amount_cents": amount_cents})
        if not reason or not reason.strip():
            raise ValidationError("An adjustment reason is required")

        with atomic(self.db):
            account = self._lock_account(member_id)
            if account is None:
                raise NotFoundError("MemberAccount", member_id)
            before = account.balance_cents
            account.balance_cents = before + amount_cents
            entry = AccountAdjustment(
                account_id=account.id,
                member_id=member_id,
                amount_cents=amount_cents,
                balance_before_cents=before,
                balance_after_cents=account.balance_cents,
                reason=reason.strip(),
                admin_id=admin_id,
            )
            self.db.session.add(entry)
        log.info("Adjusted balance of member %s by %+d (admin %s)", member_id, amount_cents, admin_id)
        return entry

    def history(self, member_id: int, limit: int | None = None, offset: int | None = None):
        """Sale transactions bought by the member, newest first."""
        self.get_account(member_id)
        query = (
            self.db.session.query(SaleTransaction)
            .filter(SaleTransaction.buyer_id == member_id)
            .order_by(SaleTransaction.created_at.desc(), SaleTransaction.id.desc())
        )
        return paginate(query, limit, offset)

    def adjustments(self, member_id: int) -> list[AccountAdjustment]:
        account = self.get_account(member_id)
        return (
            self.db.session.query(AccountAdjustment)
            .filter_by(account_id=account.id)
            .order_by(AccountAdjustment.id)
            .all()
        )

    def member_statistics(self, member_id: int) -> dict:
        """Spending summary of one member over their valid purchases."""
        account = self.get_account(member_id)
        count, spent, last = (
            self.db.session.query(
                func.count(SaleTransaction.id),
                func.coalesce(func.sum(SaleTransaction.total_cents), 0),
                func.max(SaleTransaction.created_at),
            )
            .filter(
                SaleTransaction.buyer_id == member_id,
                SaleTransaction.status == SaleStatus.VALID,
                SaleTransaction.payment_kind.notin_(tuple(PaymentKind.PSEUDO)),
            )
            .one()
        )
        count = int(count or 0)
        spent = int(spent or 0)
        return {
            "member_id": member_id,
            "balance_cents": account.balance_cents,
            "total_spent_cents": spent,
            "transaction_count": count,
            "last_transaction_at": to_utc_z(last) if last else None,
            "average_spend_cents": spent // count if count else 0,
        }

    def statistics(self) -> dict:
        s = self.db.session
        total = s.query(func.count(MemberAccount.id)).scalar() or 0
        negative = s.query(func.count(MemberAccount.id)).filter(MemberAccount.balance_cents < 0).scalar() or 0
        debt = (
            s.query(func.coalesce(func.sum(MemberAccount.balance_cents), 0))
            .filter(MemberAccount.balance_cents < 0)
            .scalar()
        )
        credit = (
            s.query(func.coalesce(func.sum(MemberAccount.balance_cents), 0))
            .filter(MemberAccount.balance_cents > 0)
            .scalar()
        )
        return {
            "accounts": int(total),
            "negative_accounts": int(negative),
            "total_debt_cents": -int(debt),
            "total_credit_cents": int(credit),
            "net_balance_cents": int(debt) + int(credit),
        }

    def close_account(self, member_id: int) -> None:
        """Delete an account that has never been used."""
        with atomic(self.db):
            account = self._lock_account(member_id)
            if account is None:
                raise NotFoundError("MemberAccount", member_id)
            used = (
                self.db.session.query(SaleTransaction.id)
                .filter(SaleTransaction.buyer_id == member_id)
                .first()
                or self.db.session.query(AccountAdjustment.id).filter_by(account_id=account.id).first()
            )
            if used:
                raise ConflictError(
                    "Account has history and cannot be closed",
                    details={"member_id": member_id},
                )
            self.db.session.delete(account)
        log.info("Closed account of member %s", member_id)
