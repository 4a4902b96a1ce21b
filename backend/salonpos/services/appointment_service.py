# Overview: Payment-side hooks into appointments (lookup and settlement).

from __future__ import annotations

from ..extensions import db
from ..models import Appointment, Transaction
from salonpos.time_utils import utcnow
from .concurrency import lock_for_update
from .errors import AppointmentNotFoundError


PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"

PAYABLE_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL)


def get_payable_appointment(business_id: int, appointment_id: int) -> Appointment:
    """
    Load and lock an appointment that can still be settled.

    Raises:
        AppointmentNotFoundError: unknown id, other tenant, or already paid
    """
    appointment = lock_for_update(
        db.session.query(Appointment).filter_by(id=appointment_id, business_id=business_id)
    ).first()
    if not appointment:
        raise AppointmentNotFoundError(
            f"Appointment not found: {appointment_id}",
            details={"appointment_id": appointment_id},
        )
    if appointment.payment_status not in PAYABLE_STATUSES:
        raise AppointmentNotFoundError(
            f"Appointment {appointment_id} is already paid",
            details={"appointment_id": appointment_id, "payment_status": appointment.payment_status},
        )
    return appointment


def mark_paid(appointment: Appointment, sale: Transaction) -> Appointment:
    """Flag the appointment paid by `sale`. Caller owns the commit."""
    appointment.payment_status = PAYMENT_STATUS_PAID
    appointment.paid_at = sale.processed_at or utcnow()
    appointment.paid_amount = sale.final_total
    appointment.transaction_id = sale.id

    note = f"Paid {sale.final_total:.2f} via {sale.payment_method} (sale #{sale.id})"
    appointment.payment_notes = f"{appointment.payment_notes}\n{note}" if appointment.payment_notes else note
    return appointment
