# Overview: Sale Processor (checkout, quick sale, sale lookup and listing).

"""
Sales Service

WHY: A sale is the one place where catalog, stock, register and
appointment state meet. Everything it touches is staged in ONE database
transaction: catalog resolution, stock reservation, the transaction row
and the appointment update. Any failure rolls the whole unit back, so an
InsufficientStock on the third item leaves the first two untouched.

RULES:
- Any cash involvement (cash, or a cash leg of mixed) needs an open register.
- Mixed payments need >= 2 legs summing to finalTotal within 0.01.
- Non-mixed sales get a single leg for the full total.
- idempotency_key (optional) makes a retried checkout return the first sale.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CashRegisterSession, Transaction, TransactionLine, TransactionPayment
from ..models.cash_register import SESSION_STATUS_OPEN
from ..models.transactions import (
    LINE_KIND_PRODUCT,
    REVENUE_STATUSES,
    SOURCE_APPOINTMENT,
    SOURCE_POS,
    STATUS_COMPLETED,
    TRANSACTION_KIND_SALE,
)
from salonpos.time_utils import utcnow
from salonpos.validation import (
    AdHocItem,
    CatalogItem,
    ClientInfo,
    PaymentLeg,
    SaleItem,
    ValidationError,
    check_payment_legs,
    check_sale_item,
)
from . import appointment_service, catalog_service, inventory_service
from .concurrency import begin_write_transaction, run_with_retry
from .errors import (
    InvalidAmountError,
    PaymentMismatchError,
    RegisterClosedError,
    SaleNotFoundError,
)
from .pricing_service import amounts_match, line_total, round_money, sale_totals


MIXED = "mixed"


def _uses_cash(payment_method: str, payments: list[PaymentLeg] | None) -> bool:
    if payment_method == "cash":
        return True
    if payment_method == MIXED:
        return any(leg.method == "cash" for leg in payments or [])
    return False


def has_open_register(business_id: int) -> bool:
    return (
        db.session.query(CashRegisterSession.id)
        .filter_by(business_id=business_id, status=SESSION_STATUS_OPEN)
        .first()
        is not None
    )


def _find_by_idempotency_key(business_id: int, kind: str, key: str | None) -> Transaction | None:
    if not key:
        return None
    return (
        db.session.query(Transaction)
        .filter_by(business_id=business_id, kind=kind, idempotency_key=key)
        .first()
    )


def _build_line(business_id: int, item: SaleItem, position: int) -> TransactionLine:
    """Resolve one sale item into a priced line. Products reserve stock here."""
    if isinstance(item, CatalogItem):
        if item.kind == LINE_KIND_PRODUCT:
            entry = inventory_service.reserve(business_id, item.item_id, item.quantity)
        else:
            entry = catalog_service.resolve_item(business_id, item.kind, item.item_id)
        unit_price = item.price if item.price is not None else entry.price
        kind, item_id, name = item.kind, entry.id, entry.name
    elif isinstance(item, AdHocItem):
        unit_price = item.unit_price
        kind, item_id, name = item.kind, None, item.name
    else:
        raise ValidationError(f"items[{position}] has an unsupported item shape")

    return TransactionLine(
        position=position,
        kind=kind,
        item_id=item_id,
        name=name,
        staff_id=item.staff_id,
        quantity=item.quantity,
        unit_price=unit_price,
        discount_percent=item.discount or 0.0,
        total=line_total(unit_price, item.quantity, item.discount),
        refunded_quantity=0,
    )


def _build_payments(payment_method: str, payments: list[PaymentLeg] | None, final_total: float) -> list[TransactionPayment]:
    if payment_method != MIXED:
        leg = (payments or [None])[0]
        reference = leg.reference if leg is not None else None
        return [TransactionPayment(position=0, method=payment_method, amount=final_total, reference=reference)]

    legs = payments or []
    payments_total = sum(leg.amount for leg in legs)
    if len(legs) < 2 or not amounts_match(payments_total, final_total):
        raise PaymentMismatchError(
            "Mixed payments must have at least two legs that add up to the sale total",
            details={
                "payments_total": round_money(payments_total),
                "sale_total": round_money(final_total),
                "legs": len(legs),
            },
        )
    return [
        TransactionPayment(position=i, method=leg.method, amount=leg.amount, reference=leg.reference)
        for i, leg in enumerate(legs)
    ]


def create_sale(
    business_id: int,
    actor_id: int,
    items: list[SaleItem],
    payment_method: str,
    payments: list[PaymentLeg] | None = None,
    *,
    global_discount: float = 0.0,
    tip: float = 0.0,
    appointment_id: int | None = None,
    client: ClientInfo | None = None,
    notes: str | None = None,
    gateway_payment_id: str | None = None,
    idempotency_key: str | None = None,
) -> Transaction:
    """
    Create a completed sale.

    Raises:
        ValidationError: malformed items or payment legs
        RegisterClosedError: cash involved and no open register
        AppointmentNotFoundError: appointment missing or already paid
        ItemNotFoundError / InsufficientStockError: per item
        PaymentMismatchError: mixed legs do not cover the total
    """
    if not items:
        raise ValidationError("A sale needs at least one item")
    for i, item in enumerate(items):
        check_sale_item(item, i)
    check_payment_legs(payment_method, payments)

    def _op():
        begin_write_transaction()

        existing = _find_by_idempotency_key(business_id, TRANSACTION_KIND_SALE, idempotency_key)
        if existing is not None:
            # Release the write lock taken above
            db.session.commit()
            return existing

        if _uses_cash(payment_method, payments) and not has_open_register(business_id):
            raise RegisterClosedError(
                "A cash register must be open to accept cash payments",
                details={"payment_method": payment_method},
            )

        appointment = None
        if appointment_id is not None:
            appointment = appointment_service.get_payable_appointment(business_id, appointment_id)

        lines = [_build_line(business_id, item, i) for i, item in enumerate(items)]
        totals = sale_totals([line.total for line in lines], global_discount, tip)
        payment_rows = _build_payments(payment_method, payments, totals.final_total)

        info = client or ClientInfo()
        sale = Transaction(
            business_id=business_id,
            kind=TRANSACTION_KIND_SALE,
            source=SOURCE_APPOINTMENT if appointment is not None else SOURCE_POS,
            status=STATUS_COMPLETED,
            appointment_id=appointment.id if appointment is not None else None,
            client_id=info.client_id,
            client_name=info.name,
            client_phone=info.phone,
            client_email=info.email,
            subtotal=totals.subtotal,
            global_discount_percent=totals.global_discount_percent,
            global_discount_amount=totals.global_discount_amount,
            tip=totals.tip,
            final_total=totals.final_total,
            payment_method=payment_method,
            gateway_payment_id=gateway_payment_id,
            total_refunded=0.0,
            notes=notes,
            idempotency_key=idempotency_key,
            processed_by=actor_id,
            processed_at=utcnow(),
        )
        sale.lines = lines
        sale.payments = payment_rows
        db.session.add(sale)
        db.session.flush()

        if appointment is not None:
            appointment_service.mark_paid(appointment, sale)

        db.session.commit()
        current_app.logger.info(
            "Sale %s created: business=%s total=%.2f method=%s lines=%d",
            sale.id, business_id, sale.final_total, payment_method, len(lines),
        )
        return sale

    return run_with_retry(_op)


def quick_sale(
    business_id: int,
    actor_id: int,
    amount: float,
    description: str | None = None,
    payment_method: str = "cash",
    *,
    idempotency_key: str | None = None,
) -> Transaction:
    """One ad-hoc service line for `amount`, no catalog lookup, no stock."""
    if amount is None or amount <= 0:
        raise InvalidAmountError("Quick sale amount must be greater than zero", details={"amount": amount})
    if payment_method == MIXED:
        raise ValidationError("Quick sales take a single payment method")

    sale = create_sale(
        business_id,
        actor_id,
        [AdHocItem(name=description or "Quick sale", unit_price=amount)],
        payment_method,
        notes=description,
        idempotency_key=idempotency_key,
    )
    current_app.logger.info("Quick sale %s: business=%s amount=%.2f", sale.id, business_id, amount)
    return sale


def get_sale(business_id: int, sale_id: int) -> Transaction:
    sale = (
        db.session.query(Transaction)
        .filter_by(id=sale_id, business_id=business_id, kind=TRANSACTION_KIND_SALE)
        .first()
    )
    if not sale:
        raise SaleNotFoundError(f"Sale not found: {sale_id}", details={"sale_id": sale_id})
    return sale


def list_sales(
    business_id: int,
    *,
    start=None,
    end=None,
    payment_method: str | None = None,
    source: str | None = None,
    page: int = 1,
    limit: int = 20,
    max_limit: int = 50,
) -> dict:
    """
    Page of sales (newest first) plus a revenue summary over the same filters.

    Summary only counts completed/partial_refund sales; the page lists all.
    """
    page = max(page or 1, 1)
    limit = min(max(limit or 1, 1), max_limit)

    filters = [Transaction.business_id == business_id, Transaction.kind == TRANSACTION_KIND_SALE]
    if start is not None:
        filters.append(Transaction.processed_at >= start)
    if end is not None:
        filters.append(Transaction.processed_at <= end)
    if payment_method:
        filters.append(Transaction.payment_method == payment_method)
    if source:
        filters.append(Transaction.source == source)

    base = db.session.query(Transaction).filter(*filters)
    total = base.count()
    rows = (
        base.order_by(Transaction.processed_at.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    total_sales, total_tips, count = (
        db.session.query(
            func.coalesce(func.sum(Transaction.final_total), 0.0),
            func.coalesce(func.sum(Transaction.tip), 0.0),
            func.count(Transaction.id),
        )
        .filter(*filters, Transaction.status.in_(REVENUE_STATUSES))
        .one()
    )

    return {
        "sales": rows,
        "summary": {
            "total_sales": round_money(total_sales),
            "total_tips": round_money(total_tips),
            "count": count,
        },
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }
