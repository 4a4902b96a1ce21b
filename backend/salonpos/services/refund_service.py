# Overview: Refund Processor (itemized and full refunds of completed sales).

"""
Refund Service

WHY: A refund never edits the sale's prices or lines; it only advances the
refund bookkeeping on the sale and appends a sibling refund Transaction
that records exactly what went back to the client.

DESIGN PRINCIPLES:
- Sale is loaded FOR UPDATE and its version_id is the optimistic lock, so
  two concurrent refunds cannot both consume the same remaining quantity.
- Amounts are proportional to the ORIGINAL line quantity.
- totalRefunded never exceeds finalTotal (itemized refunds are capped).
- Gateway reversal happens AFTER the local commit. A gateway failure is
  logged for manual reconciliation and never undoes the local refund.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import RefundEvent, Transaction, TransactionLine
from ..models.transactions import (
    LINE_KIND_PRODUCT,
    REVENUE_STATUSES,
    STATUS_COMPLETED,
    STATUS_PARTIAL_REFUND,
    STATUS_REFUNDED,
    TRANSACTION_KIND_REFUND,
    TRANSACTION_KIND_SALE,
)
from salonpos.time_utils import utcnow
from salonpos.validation import RefundItem, ValidationError, parse_refund_method
from . import inventory_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .errors import ExceedsAvailableError, GatewayError, InvalidIndexError, SaleNotFoundError
from .gateway_service import get_gateway_client
from .pricing_service import proportional_refund, round_money


GATEWAY_SUCCEEDED = "succeeded"
GATEWAY_FAILED = "failed"


@dataclass
class RefundResult:
    refund_amount: float
    refunded_items: list[dict]
    sale: Transaction
    refund_transaction: Transaction
    gateway_status: str | None = None
    replayed: bool = field(default=False)

    def to_dict(self) -> dict:
        return {
            "refund_amount": round_money(self.refund_amount),
            "refunded_items": self.refunded_items,
            "sale": self.sale.to_dict(),
            "refund_transaction": self.refund_transaction.to_dict(),
            "gateway_status": self.gateway_status,
        }


def derive_sale_status(lines: list[TransactionLine]) -> str:
    """refunded iff every line is fully refunded; partial_refund iff some units are."""
    if lines and all(line.refunded_quantity == line.quantity for line in lines):
        return STATUS_REFUNDED
    if any((line.refunded_quantity or 0) > 0 for line in lines):
        return STATUS_PARTIAL_REFUND
    return STATUS_COMPLETED


def _refund_line(business_id: int, line: TransactionLine, index: int, quantity: int) -> dict:
    """Consume `quantity` units of a sale line; returns the ledger entry."""
    amount = proportional_refund(line.total, line.quantity, quantity)
    line.refunded_quantity = (line.refunded_quantity or 0) + quantity
    if line.kind == LINE_KIND_PRODUCT and line.item_id is not None:
        inventory_service.release(business_id, line.item_id, quantity)
    return {"item_index": index, "name": line.name, "quantity": quantity, "amount": amount}


def _apply_itemized(business_id: int, sale: Transaction, items: list[RefundItem]) -> list[dict]:
    lines = sale.lines
    refunded = []
    for request in items:
        index = request.item_index
        if index < 0 or index >= len(lines):
            raise InvalidIndexError(
                f"Invalid item index: {index}",
                details={"item_index": index, "line_count": len(lines)},
            )
        line = lines[index]
        available = line.remaining_quantity
        if request.quantity > available:
            raise ExceedsAvailableError(
                f"Cannot refund {request.quantity} of {line.name}; only {available} left",
                details={"item_index": index, "available": available, "requested": request.quantity},
            )
        refunded.append(_refund_line(business_id, line, index, request.quantity))
    return refunded


def _apply_full(business_id: int, sale: Transaction) -> list[dict]:
    return [
        _refund_line(business_id, line, index, line.remaining_quantity)
        for index, line in enumerate(sale.lines)
        if line.remaining_quantity > 0
    ]


def _build_refund_transaction(
    sale: Transaction,
    actor_id: int,
    amount: float,
    refunded: list[dict],
    reason: str | None,
    refund_method: str,
    idempotency_key: str | None,
    processed_at,
) -> Transaction:
    # Sum of refunded line amounts vs actual refund: the gap is the share of
    # global discount (below) or tip (above) that the refund carries.
    subtotal = sum(entry["amount"] for entry in refunded)
    discount = max(subtotal - amount, 0.0)
    tip = max(amount - subtotal, 0.0)

    sale_lines = sale.lines
    refund_tx = Transaction(
        business_id=sale.business_id,
        kind=TRANSACTION_KIND_REFUND,
        source=sale.source,
        status=STATUS_COMPLETED,
        related_transaction_id=sale.id,
        appointment_id=sale.appointment_id,
        client_id=sale.client_id,
        client_name=sale.client_name,
        client_phone=sale.client_phone,
        client_email=sale.client_email,
        subtotal=subtotal,
        global_discount_percent=(discount / subtotal * 100) if subtotal else 0.0,
        global_discount_amount=discount,
        tip=tip,
        final_total=amount,
        refund_method=refund_method,
        refund_reason=reason,
        total_refunded=0.0,
        idempotency_key=idempotency_key,
        processed_by=actor_id,
        processed_at=processed_at,
    )
    refund_tx.lines = [
        TransactionLine(
            position=position,
            kind=sale_lines[entry["item_index"]].kind,
            item_id=sale_lines[entry["item_index"]].item_id,
            name=entry["name"],
            staff_id=sale_lines[entry["item_index"]].staff_id,
            quantity=entry["quantity"],
            unit_price=sale_lines[entry["item_index"]].unit_price,
            discount_percent=sale_lines[entry["item_index"]].discount_percent,
            total=entry["amount"],
            refunded_quantity=0,
            sale_line_index=entry["item_index"],
        )
        for position, entry in enumerate(refunded)
    ]
    return refund_tx


def _replay(refund_tx: Transaction) -> RefundResult:
    return RefundResult(
        refund_amount=refund_tx.final_total,
        refunded_items=[
            {"item_index": line.sale_line_index, "name": line.name, "quantity": line.quantity, "amount": line.total}
            for line in refund_tx.lines
        ],
        sale=refund_tx.related_transaction,
        refund_transaction=refund_tx,
        replayed=True,
    )


def _gateway_reference(sale: Transaction) -> str | None:
    """Sale-level gateway payment id, else the reference on its gateway leg."""
    if sale.gateway_payment_id:
        return sale.gateway_payment_id
    for payment in sale.payments:
        if payment.method == "gateway" and payment.reference:
            return payment.reference
    return None


def _refund_at_gateway(sale: Transaction, refund_tx: Transaction) -> str:
    """Reverse the payment at the gateway. Failures are logged, never raised."""
    payment_reference = _gateway_reference(sale)
    if payment_reference is None:
        current_app.logger.warning(
            "Gateway refund skipped (no gateway payment reference), manual reconciliation needed: "
            "sale=%s amount=%.2f refund_tx=%s",
            sale.id, refund_tx.final_total, refund_tx.id,
        )
        return GATEWAY_FAILED

    client = get_gateway_client()
    if client is None:
        current_app.logger.warning(
            "Gateway refund skipped (gateway not configured): sale=%s payment=%s amount=%.2f refund_tx=%s",
            sale.id, payment_reference, refund_tx.final_total, refund_tx.id,
        )
        return GATEWAY_FAILED

    try:
        client.refund(
            payment_reference,
            refund_tx.final_total,
            idempotency_key=f"refund-{refund_tx.id}",
        )
    except GatewayError as exc:
        current_app.logger.warning(
            "Gateway refund failed, manual reconciliation needed: sale=%s payment=%s amount=%.2f refund_tx=%s error=%s",
            sale.id, payment_reference, refund_tx.final_total, refund_tx.id, exc,
        )
        return GATEWAY_FAILED

    return GATEWAY_SUCCEEDED


def refund_sale(
    business_id: int,
    actor_id: int,
    sale_id: int,
    reason: str | None,
    refund_method: str,
    items: list[RefundItem] | None = None,
    *,
    idempotency_key: str | None = None,
) -> RefundResult:
    """
    Refund part (items) or all (items=None) of a completed sale.

    Raises:
        SaleNotFoundError: missing, other tenant, or already fully refunded
        InvalidIndexError / ExceedsAvailableError: bad itemized request
        ValidationError: unknown refund method or empty item list
    """
    parse_refund_method(refund_method)
    if items is not None and not items:
        raise ValidationError("items must be a non-empty list when provided")

    def _op():
        begin_write_transaction()

        if idempotency_key:
            existing = (
                db.session.query(Transaction)
                .filter_by(business_id=business_id, kind=TRANSACTION_KIND_REFUND, idempotency_key=idempotency_key)
                .first()
            )
            if existing is not None:
                db.session.commit()
                if existing.related_transaction_id != sale_id:
                    raise ValidationError(
                        f"idempotency_key already used for a refund of sale {existing.related_transaction_id}"
                    )
                return _replay(existing)

        sale = lock_for_update(
            db.session.query(Transaction).filter(
                Transaction.id == sale_id,
                Transaction.business_id == business_id,
                Transaction.kind == TRANSACTION_KIND_SALE,
                Transaction.status.in_(REVENUE_STATUSES),
            )
        ).populate_existing().first()
        if not sale:
            raise SaleNotFoundError(
                f"Sale not found or already fully refunded: {sale_id}",
                details={"sale_id": sale_id},
            )

        remaining = max(sale.final_total - (sale.total_refunded or 0.0), 0.0)
        if items is None:
            refunded = _apply_full(business_id, sale)
            amount = remaining
            sale.status = STATUS_REFUNDED
        else:
            refunded = _apply_itemized(business_id, sale, items)
            amount = min(sum(entry["amount"] for entry in refunded), remaining)
            sale.status = derive_sale_status(sale.lines)

        now = utcnow()
        sale.total_refunded = (sale.total_refunded or 0.0) + amount

        refund_tx = _build_refund_transaction(
            sale, actor_id, amount, refunded, reason, refund_method, idempotency_key, now,
        )
        db.session.add(refund_tx)
        db.session.flush()

        db.session.add(RefundEvent(
            sale_id=sale.id,
            refund_transaction_id=refund_tx.id,
            amount=amount,
            items=refunded,
            reason=reason,
            method=refund_method,
            processed_by=actor_id,
            processed_at=now,
        ))
        db.session.commit()

        current_app.logger.info(
            "Refund %s on sale %s: business=%s amount=%.2f method=%s status=%s",
            refund_tx.id, sale.id, business_id, amount, refund_method, sale.status,
        )
        return RefundResult(
            refund_amount=amount,
            refunded_items=refunded,
            sale=sale,
            refund_transaction=refund_tx,
        )

    result = run_with_retry(_op)

    if not result.replayed and refund_method == "gateway":
        result.gateway_status = _refund_at_gateway(result.sale, result.refund_transaction)
    return result
