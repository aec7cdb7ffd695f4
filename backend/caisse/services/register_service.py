# Overview: Cash session manager; till lifecycle and expected vs declared cash.

"""
Cash session lifecycle

    pending_cashier --accept_fund--> open --declare_closing--> pending_validation
    pending_validation --validate_closing--> validated | anomaly

- open_fund: a supervisor hands an initial fund to a cashier.
- accept_fund: only the assigned cashier; writes a fund_received entry.
- declare_closing: only the assigned cashier while open; fixes expected,
  declared and variance, and writes a closing entry.
- validate_closing: only the supervisor who opened the session.

Ownership is checked before status, so a stranger always gets
NotAssignedError whatever state the session is in.

Expected cash = initial fund
              + valid `cash` sale totals
              - valid `change` amounts handed out
by the session's cashier within [opened_at, closed_at or now].
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import (
    ActiveSessionExistsError,
    InvalidStateTransitionError,
    NotAssignedError,
    NotFoundError,
    ValidationError,
)
from ..models import CashSession, PaymentKind, SaleStatus, SaleTransaction, SessionStatus
from ..time_utils import to_utc_z, utcnow
from .concurrency import atomic, lock_for_update
from .filters import build_predicates, date_from, date_to, equals, paginate

log = logging.getLogger(__name__)

SESSION_FILTERS = {
    "cashier_id": equals(CashSession.cashier_id),
    "supervisor_id": equals(CashSession.supervisor_id),
    "status": equals(CashSession.status),
    "date_from": date_from(CashSession.created_at),
    "date_to": date_to(CashSession.created_at),
}


def _amount(name: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer amount of cents", details={name: value})
    return value


class CashSessionManager:
    def __init__(self, db, sales):
        self.db = db
        self.sales = sales

    def _lock_session(self, session_id: int) -> CashSession:
        session = lock_for_update(self.db.session.query(CashSession).filter_by(id=session_id)).first()
        if session is None:
            raise NotFoundError("CashSession", session_id)
        return session

    def _window_query(self, session: CashSession, payment_kind: str, column):
        end = session.closed_at or utcnow()
        return (
            self.db.session.query(func.coalesce(func.sum(column), 0))
            .filter(
                SaleTransaction.cashier_id == session.cashier_id,
                SaleTransaction.payment_kind == payment_kind,
                SaleTransaction.status == SaleStatus.VALID,
                SaleTransaction.created_at >= session.opened_at,
                SaleTransaction.created_at <= end,
            )
        )

    def _expected(self, session: CashSession) -> int:
        if session.opened_at is None:
            return session.initial_fund_cents
        cash = self._window_query(session, PaymentKind.CASH, SaleTransaction.total_cents).scalar()
        change = self._window_query(session, PaymentKind.CHANGE, SaleTransaction.change_given_cents).scalar()
        return session.initial_fund_cents + int(cash) - int(change)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open_fund(
        self,
        supervisor_id: int,
        cashier_id: int,
        initial_fund_cents: int,
        note: str | None = None,
    ) -> CashSession:
        """Hand an initial fund to a cashier. One active session per cashier."""
        _amount("initial_fund_cents", initial_fund_cents)
        with atomic(self.db):
            existing = (
                self.db.session.query(CashSession)
                .filter(CashSession.cashier_id == cashier_id, CashSession.status.in_(SessionStatus.ACTIVE))
                .first()
            )
            if existing is not None:
                raise ActiveSessionExistsError(
                    f"Cashier {cashier_id} already has an active session",
                    details={"cashier_id": cashier_id, "session_id": existing.id, "status": existing.status},
                )
            session = CashSession(
                supervisor_id=supervisor_id,
                cashier_id=cashier_id,
                initial_fund_cents=initial_fund_cents,
                status=SessionStatus.PENDING_CASHIER,
                opening_note=note,
            )
            self.db.session.add(session)
        log.info("Cash session %s created by %s for cashier %s", session.id, supervisor_id, cashier_id)
        return session

    def accept_fund(self, session_id: int, cashier_id: int, note: str | None = None) -> CashSession:
        with atomic(self.db):
            session = self._lock_session(session_id)
            if session.cashier_id != cashier_id:
                raise NotAssignedError(
                    "Only the assigned cashier can accept this fund",
                    details={"session_id": session_id, "cashier_id": cashier_id},
                )
            if session.status != SessionStatus.PENDING_CASHIER:
                raise InvalidStateTransitionError("cash session", session.status, "accept fund of")

            session.status = SessionStatus.OPEN
            session.opened_at = utcnow()
            session.acceptance_note = note
            fund_tx = self.sales.create_sale(
                cashier_id=cashier_id,
                payment_kind=PaymentKind.FUND_RECEIVED,
                amount_received_cents=session.initial_fund_cents,
            )
            session.fund_transaction_id = fund_tx.id
        log.info("Cash session %s opened by cashier %s", session_id, cashier_id)
        return session

    def compute_expected_balance(self, session_id: int) -> int:
        session = self.get_session(session_id)
        return self._expected(session)

    def declare_closing(
        self,
        session_id: int,
        cashier_id: int,
        declared_cents: int,
        note: str | None = None,
    ) -> CashSession:
        _amount("declared_cents", declared_cents)
        with atomic(self.db):
            session = self._lock_session(session_id)
            if session.cashier_id != cashier_id:
                raise NotAssignedError(
                    "Only the assigned cashier can close this session",
                    details={"session_id": session_id, "cashier_id": cashier_id},
                )
            if session.status != SessionStatus.OPEN:
                raise InvalidStateTransitionError("cash session", session.status, "close")

            session.closed_at = utcnow()
            expected = self._expected(session)
            session.expected_cents = expected
            session.declared_cents = declared_cents
            session.variance_cents = declared_cents - expected
            session.status = SessionStatus.PENDING_VALIDATION
            session.closing_note = note
            closing_tx = self.sales.create_sale(
                cashier_id=cashier_id,
                payment_kind=PaymentKind.CLOSING,
                amount_received_cents=declared_cents,
            )
            session.closing_transaction_id = closing_tx.id

        if session.variance_cents:
            log.warning("Cash session %s closed with variance %+d cents", session_id, session.variance_cents)
        else:
            log.info("Cash session %s closed, no variance", session_id)
        return session

    def validate_closing(
        self,
        session_id: int,
        supervisor_id: int,
        validated_cents: int,
        outcome: str = SessionStatus.VALIDATED,
        note: str | None = None,
    ) -> CashSession:
        if outcome not in SessionStatus.FINAL:
            raise ValidationError(f"Unknown validation outcome: {outcome}", details={"outcome": outcome})
        _amount("validated_cents", validated_cents)
        with atomic(self.db):
            session = self._lock_session(session_id)
            if session.supervisor_id != supervisor_id:
                raise NotAssignedError(
                    "Only the supervisor who opened this session can validate it",
                    details={"session_id": session_id, "supervisor_id": supervisor_id},
                )
            if session.status != SessionStatus.PENDING_VALIDATION:
                raise InvalidStateTransitionError("cash session", session.status, "validate")

            session.validated_cents = validated_cents
            session.status = outcome
            session.validation_note = note
            session.validated_at = utcnow()
        log.info("Cash session %s marked %s by %s", session_id, outcome, supervisor_id)
        return session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: int) -> CashSession:
        session = self.db.session.get(CashSession, session_id)
        if session is None:
            raise NotFoundError("CashSession", session_id)
        return session

    def active_session(self, cashier_id: int) -> CashSession | None:
        return (
            self.db.session.query(CashSession)
            .filter(CashSession.cashier_id == cashier_id, CashSession.status.in_(SessionStatus.ACTIVE))
            .order_by(CashSession.created_at.desc())
            .first()
        )

    def pending_validation(self, supervisor_id: int | None = None) -> list[CashSession]:
        query = self.db.session.query(CashSession).filter(
            CashSession.status == SessionStatus.PENDING_VALIDATION
        )
        if supervisor_id is not None:
            query = query.filter(CashSession.supervisor_id == supervisor_id)
        return query.order_by(CashSession.closed_at, CashSession.id).all()

    def list_sessions(self, filters=None, limit: int | None = None, offset: int | None = None):
        query = self.db.session.query(CashSession).filter(*build_predicates(filters, SESSION_FILTERS))
        query = query.order_by(CashSession.created_at.desc(), CashSession.id.desc())
        return paginate(query, limit, offset)

    def session_summary(self, session_id: int) -> dict:
        """Per payment kind totals of the session window plus cash figures."""
        session = self.get_session(session_id)
        by_kind = {}
        cancelled = 0
        if session.opened_at is not None:
            end = session.closed_at or utcnow()
            rows = (
                self.db.session.query(
                    SaleTransaction.payment_kind,
                    SaleTransaction.status,
                    func.count(SaleTransaction.id),
                    func.coalesce(func.sum(SaleTransaction.total_cents), 0),
                )
                .filter(
                    SaleTransaction.cashier_id == session.cashier_id,
                    SaleTransaction.created_at >= session.opened_at,
                    SaleTransaction.created_at <= end,
                )
                .group_by(SaleTransaction.payment_kind, SaleTransaction.status)
                .all()
            )
            for kind, status, count, total in rows:
                if status == SaleStatus.CANCELLED:
                    cancelled += int(count)
                    continue
                by_kind[kind] = {"count": int(count), "total_cents": int(total)}

        expected = session.expected_cents if session.expected_cents is not None else self._expected(session)
        return {
            "session": session.to_dict(),
            "expected_cents": expected,
            "declared_cents": session.declared_cents,
            "variance_cents": session.variance_cents,
            "by_payment_kind": by_kind,
            "cancelled_count": cancelled,
            "generated_at": to_utc_z(utcnow()),
        }
