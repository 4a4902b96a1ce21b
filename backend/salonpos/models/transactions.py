from __future__ import annotations

from ..extensions import db
from salonpos.time_utils import to_utc_z


TRANSACTION_KIND_SALE = "sale"
TRANSACTION_KIND_REFUND = "refund"

SOURCE_POS = "pos"
SOURCE_APPOINTMENT = "appointment"

STATUS_COMPLETED = "completed"
STATUS_PARTIAL_REFUND = "partial_refund"
STATUS_REFUNDED = "refunded"

# Sales still counted as revenue (and still refundable)
REVENUE_STATUSES = (STATUS_COMPLETED, STATUS_PARTIAL_REFUND)

LINE_KIND_SERVICE = "service"
LINE_KIND_PRODUCT = "product"


class Transaction(db.Model):
    """
    Money movement record: a sale or a refund.

    WHY: A single table for both kinds keeps reporting and register
    reconciliation to one query surface. A refund always points back to
    its sale through related_transaction_id.

    IMMUTABLE PARTS: Once a sale is completed its lines' prices, the pricing
    snapshot and its identity never change. The only later mutations are
    refund bookkeeping (status, total_refunded, lines' refunded_quantity).
    Refund transactions are never modified after creation.

    CONCURRENCY: version_id is the optimistic lock; concurrent refunds on
    the same sale raise StaleDataError on the loser, which is retried.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("business_id", "kind", "idempotency_key", name="uq_transactions_idempotency"),
        db.Index("ix_transactions_business_kind_processed", "business_id", "kind", "processed_at"),
        db.Index("ix_transactions_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False)  # sale, refund
    source = db.Column(db.String(16), nullable=True)  # pos, appointment (sale only)
    status = db.Column(db.String(16), nullable=False, default=STATUS_COMPLETED)

    # Cross references
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id"), nullable=True, index=True)
    related_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    # Client snapshot (CRM lives elsewhere)
    client_id = db.Column(db.Integer, nullable=True, index=True)
    client_name = db.Column(db.String(128), nullable=True)
    client_phone = db.Column(db.String(32), nullable=True)
    client_email = db.Column(db.String(255), nullable=True)

    # Pricing snapshot
    subtotal = db.Column(db.Float, nullable=False, default=0)
    global_discount_percent = db.Column(db.Float, nullable=False, default=0)
    global_discount_amount = db.Column(db.Float, nullable=False, default=0)
    tip = db.Column(db.Float, nullable=False, default=0)
    final_total = db.Column(db.Float, nullable=False, default=0)

    # cash, card, transfer, gateway, mixed (sale only)
    payment_method = db.Column(db.String(16), nullable=True, index=True)
    gateway_payment_id = db.Column(db.String(128), nullable=True)

    # Refund ledger (sale only)
    total_refunded = db.Column(db.Float, nullable=False, default=0)

    # Refund details (refund only)
    refund_method = db.Column(db.String(16), nullable=True, index=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    idempotency_key = db.Column(db.String(64), nullable=True)

    processed_by = db.Column(db.Integer, nullable=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "TransactionLine",
        back_populates="transaction",
        order_by="TransactionLine.position",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "TransactionPayment",
        back_populates="transaction",
        order_by="TransactionPayment.position",
        cascade="all, delete-orphan",
    )
    refunds = db.relationship(
        "RefundEvent",
        back_populates="sale",
        foreign_keys="RefundEvent.sale_id",
        order_by="RefundEvent.id",
    )
    related_transaction = db.relationship("Transaction", remote_side=[id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "kind": self.kind,
            "source": self.source,
            "status": self.status,
            "appointment_id": self.appointment_id,
            "related_transaction_id": self.related_transaction_id,
            "client": {
                "id": self.client_id,
                "name": self.client_name,
                "phone": self.client_phone,
                "email": self.client_email,
            },
            "lines": [line.to_dict() for line in self.lines],
            "pricing": {
                "subtotal": self.subtotal,
                "global_discount_percent": self.global_discount_percent,
                "global_discount_amount": self.global_discount_amount,
                "tip": self.tip,
                "final_total": self.final_total,
            },
            "payment_method": self.payment_method,
            "payments": [payment.to_dict() for payment in self.payments],
            "gateway_payment_id": self.gateway_payment_id,
            "final_total": self.final_total,
            "total_refunded": self.total_refunded,
            "refunds": [event.to_dict() for event in self.refunds],
            "refund_method": self.refund_method,
            "refund_reason": self.refund_reason,
            "notes": self.notes,
            "processed_by": self.processed_by,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class TransactionLine(db.Model):
    """
    One line of a sale or refund.

    item_id is NULL for ad-hoc lines (quick sales, custom charges).
    refunded_quantity is only meaningful on sale lines and never exceeds quantity.
    On refund lines, sale_line_index points at the refunded sale line.
    """
    __tablename__ = "transaction_lines"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "position", name="uq_transaction_lines_position"),
        db.CheckConstraint("refunded_quantity <= quantity", name="ck_transaction_lines_refund_bound"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    kind = db.Column(db.String(16), nullable=False)  # service, product
    item_id = db.Column(db.Integer, nullable=True)
    name = db.Column(db.String(255), nullable=False)
    staff_id = db.Column(db.Integer, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    discount_percent = db.Column(db.Float, nullable=False, default=0)
    total = db.Column(db.Float, nullable=False)

    refunded_quantity = db.Column(db.Integer, nullable=False, default=0)
    sale_line_index = db.Column(db.Integer, nullable=True)

    transaction = db.relationship("Transaction", back_populates="lines")

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - (self.refunded_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "kind": self.kind,
            "item_id": self.item_id,
            "name": self.name,
            "staff_id": self.staff_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "discount_percent": self.discount_percent,
            "total": self.total,
            "refunded_quantity": self.refunded_quantity,
            "sale_line_index": self.sale_line_index,
        }


class TransactionPayment(db.Model):
    """Payment leg of a sale. Non-mixed sales have exactly one leg for the full total."""
    __tablename__ = "transaction_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    method = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    transaction = db.relationship("Transaction", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "amount": self.amount,
            "reference": self.reference,
        }


class RefundEvent(db.Model):
    """
    Append-only refund ledger entry on a sale.

    One event per refund call; the matching refund Transaction is linked
    through refund_transaction_id. `items` holds
    [{"item_index", "name", "quantity", "amount"}, ...].
    """
    __tablename__ = "refund_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    refund_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    amount = db.Column(db.Float, nullable=False)
    items = db.Column(db.JSON, nullable=False, default=list)
    reason = db.Column(db.String(255), nullable=True)
    method = db.Column(db.String(16), nullable=False)

    processed_by = db.Column(db.Integer, nullable=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    sale = db.relationship("Transaction", foreign_keys=[sale_id], back_populates="refunds")
    refund_transaction = db.relationship("Transaction", foreign_keys=[refund_transaction_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "refund_transaction_id": self.refund_transaction_id,
            "amount": self.amount,
            "items": self.items,
            "reason": self.reason,
            "method": self.method,
            "processed_by": self.processed_by,
            "processed_at": to_utc_z(self.processed_at),
        }
