from __future__ import annotations

from ..extensions import db


class Appointment(db.Model):
    """
    Payment face of a scheduled appointment.

    Scheduling (staff, slots, calendar) is owned elsewhere; the POS engine
    only flips payment_status to "paid" when a sale settles the appointment.
    """
    __tablename__ = "appointments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=False, index=True)

    # pending, partial, paid
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_amount = db.Column(db.Float, nullable=True)
    transaction_id = db.Column(db.Integer, nullable=True)

    # Newline-separated payment notes, appended on each settlement
    payment_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
