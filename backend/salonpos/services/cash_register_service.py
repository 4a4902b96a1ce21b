# Overview: Cash Register Session Manager (open, movements, close, status).

"""
Cash Register Service

WHY: Cashier accountability. The drawer is counted when the session opens
and again when it closes; the system computes what should be in it.

DESIGN PRINCIPLES:
- One open session per business, guaranteed by a partial unique index
- Movements are append-only and only while open
- Closing seals the session permanently (no reopen)
- expected = initial + in - out + cash sales - cash refunds, over the
  transactions processed within [opened_at, closed_at]
- difference = declared - expected, reported, never enforced
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashMovement, CashRegisterSession
from ..models.cash_register import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    SESSION_STATUS_CLOSED,
    SESSION_STATUS_OPEN,
)
from salonpos.time_utils import utcnow
from salonpos.validation import ValidationError
from . import reporting_service
from .concurrency import lock_for_update, run_with_retry
from .errors import AlreadyOpenError, InvalidAmountError, NotOpenError, SessionNotFoundError
from .pricing_service import round_money


def get_open_session(business_id: int) -> CashRegisterSession | None:
    return (
        db.session.query(CashRegisterSession)
        .filter_by(business_id=business_id, status=SESSION_STATUS_OPEN)
        .first()
    )


def get_session(business_id: int, session_id: int) -> CashRegisterSession:
    session = (
        db.session.query(CashRegisterSession)
        .filter_by(id=session_id, business_id=business_id)
        .first()
    )
    if not session:
        raise SessionNotFoundError(
            f"Cash register session not found: {session_id}",
            details={"session_id": session_id},
        )
    return session


def _locked_session(business_id: int, session_id: int) -> CashRegisterSession:
    session = lock_for_update(
        db.session.query(CashRegisterSession).filter_by(id=session_id, business_id=business_id)
    ).populate_existing().first()
    if not session:
        raise SessionNotFoundError(
            f"Cash register session not found: {session_id}",
            details={"session_id": session_id},
        )
    return session


def open_session(
    business_id: int,
    actor_id: int,
    initial_amount: float,
    notes: str | None = None,
) -> CashRegisterSession:
    """
    Open the drawer for the business.

    Raises:
        AlreadyOpenError: another session is open (including a concurrent open)
        InvalidAmountError: initial_amount < 0
    """
    if initial_amount is None or initial_amount < 0:
        raise InvalidAmountError("Initial amount cannot be negative", details={"initial_amount": initial_amount})

    def _op():
        existing = get_open_session(business_id)
        if existing:
            raise AlreadyOpenError(
                f"A cash register is already open (session {existing.id})",
                details={"session_id": existing.id},
            )

        session = CashRegisterSession(
            business_id=business_id,
            status=SESSION_STATUS_OPEN,
            opened_at=utcnow(),
            opened_by=actor_id,
            initial_amount=initial_amount,
            opening_notes=notes,
        )
        db.session.add(session)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost the race against a concurrent open
            db.session.rollback()
            raise AlreadyOpenError("A cash register is already open")

        current_app.logger.info(
            "Cash register session %s opened: business=%s initial=%.2f by=%s",
            session.id, business_id, initial_amount, actor_id,
        )
        return session

    return run_with_retry(_op)


def record_movement(
    business_id: int,
    session_id: int,
    movement_type: str,
    amount: float,
    reason: str,
    actor_id: int,
    notes: str | None = None,
) -> CashMovement:
    """
    Append a manual cash in/out to an open session.

    Raises:
        SessionNotFoundError, NotOpenError, InvalidAmountError (amount <= 0)
    """
    if movement_type not in (MOVEMENT_IN, MOVEMENT_OUT):
        raise ValidationError("type must be one of in, out")
    if not reason or not reason.strip():
        raise ValidationError("reason is required")

    def _op():
        session = _locked_session(business_id, session_id)
        if not session.is_open:
            raise NotOpenError(
                f"Cash register session {session_id} is not open",
                details={"session_id": session_id, "status": session.status},
            )
        if amount is None or amount <= 0:
            raise InvalidAmountError("Movement amount must be greater than zero", details={"amount": amount})

        now = utcnow()
        movement = CashMovement(
            type=movement_type,
            amount=amount,
            reason=reason.strip(),
            notes=notes,
            recorded_at=now,
            recorded_by=actor_id,
        )
        session.movements.append(movement)
        session.last_movement_at = now
        db.session.commit()

        current_app.logger.info(
            "Cash movement %s on session %s: %s %.2f (%s)",
            movement.id, session.id, movement_type, amount, movement.reason,
        )
        return movement

    return run_with_retry(_op)


def _window_summary(session: CashRegisterSession, end) -> dict:
    cash_in, cash_out = session.movement_totals()
    cash = reporting_service.cash_totals(session.business_id, session.opened_at, end)
    expected = session.initial_amount + cash_in - cash_out + cash["cash_sales"] - cash["cash_refunds"]
    return {
        "initial_amount": session.initial_amount,
        "movements": {"in": cash_in, "out": cash_out},
        "cash_sales": cash["cash_sales"],
        "cash_refunds": cash["cash_refunds"],
        "expected_amount": expected,
        "sales_by_method": reporting_service.sales_by_method(session.business_id, session.opened_at, end),
    }


def close_session(
    business_id: int,
    session_id: int,
    actor_id: int,
    declared_final_amount: float,
    notes: str | None = None,
) -> tuple[CashRegisterSession, dict]:
    """
    Count out and seal the session.

    Returns:
        (closed session, summary dict)

    Raises:
        SessionNotFoundError, NotOpenError, InvalidAmountError (declared < 0)
    """
    if declared_final_amount is None or declared_final_amount < 0:
        raise InvalidAmountError(
            "Declared final amount cannot be negative",
            details={"final_amount": declared_final_amount},
        )

    def _op():
        session = _locked_session(business_id, session_id)
        if not session.is_open:
            raise NotOpenError(
                f"Cash register session {session_id} is not open",
                details={"session_id": session_id, "status": session.status},
            )

        now = utcnow()
        summary = _window_summary(session, now)
        expected = summary["expected_amount"]
        difference = declared_final_amount - expected

        session.status = SESSION_STATUS_CLOSED
        session.closed_at = now
        session.closed_by = actor_id
        session.final_amount = declared_final_amount
        session.expected_amount = expected
        session.difference = difference
        session.closing_notes = notes
        db.session.commit()

        summary.update({
            "declared_amount": declared_final_amount,
            "difference": difference,
        })
        current_app.logger.info(
            "Cash register session %s closed: business=%s expected=%.2f declared=%.2f difference=%.2f",
            session.id, business_id, expected, declared_final_amount, difference,
        )
        return session, summary

    return run_with_retry(_op)


def get_register_status(business_id: int) -> dict:
    """Read-only projection of the open session (if any) with live totals."""
    session = get_open_session(business_id)
    if session is None:
        return {"is_open": False, "session": None}

    summary = _window_summary(session, utcnow())
    return {
        "is_open": True,
        "session": session.to_dict(),
        "movements": summary["movements"],
        "cash_sales": summary["cash_sales"],
        "cash_refunds": summary["cash_refunds"],
        "current_cash": round_money(summary["expected_amount"]),
        "sales_by_method": summary["sales_by_method"],
    }


def get_session_history(
    business_id: int,
    *,
    start=None,
    end=None,
    page: int = 1,
    limit: int = 20,
    max_limit: int = 50,
) -> dict:
    """Closed sessions, most recently closed first."""
    page = max(page or 1, 1)
    limit = min(max(limit or 1, 1), max_limit)

    query = db.session.query(CashRegisterSession).filter(
        CashRegisterSession.business_id == business_id,
        CashRegisterSession.status == SESSION_STATUS_CLOSED,
    )
    if start is not None:
        query = query.filter(CashRegisterSession.closed_at >= start)
    if end is not None:
        query = query.filter(CashRegisterSession.closed_at <= end)

    total = query.count()
    sessions = (
        query.order_by(CashRegisterSession.closed_at.desc(), CashRegisterSession.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "sessions": sessions,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }
