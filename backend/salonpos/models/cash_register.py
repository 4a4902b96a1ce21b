from __future__ import annotations

from ..extensions import db
from salonpos.time_utils import to_utc_z


SESSION_STATUS_OPEN = "open"
SESSION_STATUS_CLOSED = "closed"

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"


class CashRegisterSession(db.Model):
    """
    One physical cash drawer session (open -> closed).

    WHY: Cashier accountability. The drawer is counted at open and close;
    the system computes what should be in it and reports the difference.

    LIFECYCLE:
    - open: movements may be appended, cash sales are accepted
    - closed: sealed permanently, a new session must be opened

    ONE OPEN PER BUSINESS: enforced by the partial unique index below, not
    by a check-then-insert, so two concurrent opens cannot both succeed.
    """
    __tablename__ = "cash_register_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_register_sessions_one_open",
            "business_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        db.Index("ix_cash_register_sessions_business_closed", "business_id", "closed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_OPEN, index=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False)
    opened_by = db.Column(db.Integer, nullable=False)
    initial_amount = db.Column(db.Float, nullable=False, default=0)
    opening_notes = db.Column(db.Text, nullable=True)

    # Touched on every movement so concurrent close/movement conflict on version_id
    last_movement_at = db.Column(db.DateTime(timezone=True), nullable=True)

    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.Integer, nullable=True)
    final_amount = db.Column(db.Float, nullable=True)  # declared by the cashier
    expected_amount = db.Column(db.Float, nullable=True)  # computed at close
    difference = db.Column(db.Float, nullable=True)  # final - expected
    closing_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    movements = db.relationship(
        "CashMovement",
        back_populates="session",
        order_by="CashMovement.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_STATUS_OPEN

    def movement_totals(self) -> tuple[float, float]:
        cash_in = sum(m.amount for m in self.movements if m.type == MOVEMENT_IN)
        cash_out = sum(m.amount for m in self.movements if m.type == MOVEMENT_OUT)
        return cash_in, cash_out

    def to_dict(self, include_movements: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "opened_by": self.opened_by,
            "initial_amount": self.initial_amount,
            "opening_notes": self.opening_notes,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by": self.closed_by,
            "final_amount": self.final_amount,
            "expected_amount": self.expected_amount,
            "difference": self.difference,
            "closing_notes": self.closing_notes,
            "version_id": self.version_id,
        }
        if include_movements:
            data["movements"] = [m.to_dict() for m in self.movements]
        return data


class CashMovement(db.Model):
    """
    Manual cash in/out while a session is open (change fund top-up, petty cash, safe drop).

    amount is always positive; direction is the type.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_register_sessions.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False)  # in, out
    amount = db.Column(db.Float, nullable=False)
    reason = db.Column(db.String(200), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False)
    recorded_by = db.Column(db.Integer, nullable=False)

    session = db.relationship("CashRegisterSession", back_populates="movements")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "type": self.type,
            "amount": self.amount,
            "reason": self.reason,
            "notes": self.notes,
            "recorded_at": to_utc_z(self.recorded_at),
            "recorded_by": self.recorded_by,
        }
