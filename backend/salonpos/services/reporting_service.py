# Overview: Read-only aggregates over sale and refund transactions.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import extract, func

from ..extensions import db
from ..models import Transaction, TransactionLine, TransactionPayment
from ..models.transactions import (
    LINE_KIND_PRODUCT,
    LINE_KIND_SERVICE,
    REVENUE_STATUSES,
    TRANSACTION_KIND_REFUND,
    TRANSACTION_KIND_SALE,
)
from salonpos.time_utils import day_bounds
from .pricing_service import round_money


def _window(query, start: datetime | None, end: datetime | None):
    # Both bounds inclusive
    if start is not None:
        query = query.filter(Transaction.processed_at >= start)
    if end is not None:
        query = query.filter(Transaction.processed_at <= end)
    return query


def _sales(query, business_id: int, statuses=REVENUE_STATUSES):
    query = query.filter(
        Transaction.business_id == business_id,
        Transaction.kind == TRANSACTION_KIND_SALE,
    )
    if statuses:
        query = query.filter(Transaction.status.in_(statuses))
    return query


def sales_by_method(
    business_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    statuses=REVENUE_STATUSES,
) -> list[dict]:
    """Sale totals grouped by the sale's payment method ("mixed" is its own group)."""
    query = db.session.query(
        Transaction.payment_method,
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.final_total), 0.0),
    )
    query = _window(_sales(query, business_id, statuses), start, end)
    rows = query.group_by(Transaction.payment_method).order_by(Transaction.payment_method).all()
    return [
        {"method": method, "count": count, "total": total}
        for method, count, total in rows
    ]


def sales_by_item_kind(business_id: int, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Line revenue split by service/product (pre global discount, pre tip)."""
    query = db.session.query(
        TransactionLine.kind,
        func.count(func.distinct(Transaction.id)),
        func.coalesce(func.sum(TransactionLine.quantity), 0),
        func.coalesce(func.sum(TransactionLine.total), 0.0),
    ).join(Transaction, TransactionLine.transaction_id == Transaction.id)
    query = _window(_sales(query, business_id), start, end)

    result = {
        kind: {"count": 0, "quantity": 0, "total": 0.0}
        for kind in (LINE_KIND_SERVICE, LINE_KIND_PRODUCT)
    }
    for kind, count, quantity, total in query.group_by(TransactionLine.kind).all():
        result[kind] = {"count": count, "quantity": int(quantity), "total": total}
    return result


def hourly_breakdown(business_id: int, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    """Sales per hour of day (UTC), only hours with activity, ascending."""
    hour = extract("hour", Transaction.processed_at)
    query = db.session.query(
        hour.label("hour"),
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.final_total), 0.0),
    )
    query = _window(_sales(query, business_id), start, end)
    rows = query.group_by(hour).order_by(hour).all()
    return [{"hour": int(h), "count": count, "total": total} for h, count, total in rows]


def top_items(
    business_id: int,
    kind: str,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 5,
) -> list[dict]:
    """Top-N catalog or ad-hoc items of `kind` by line revenue."""
    revenue = func.coalesce(func.sum(TransactionLine.total), 0.0)
    query = db.session.query(
        TransactionLine.item_id,
        TransactionLine.name,
        func.coalesce(func.sum(TransactionLine.quantity), 0),
        revenue,
    ).join(Transaction, TransactionLine.transaction_id == Transaction.id)
    query = _window(_sales(query, business_id), start, end).filter(TransactionLine.kind == kind)
    rows = (
        query.group_by(TransactionLine.item_id, TransactionLine.name)
        .order_by(revenue.desc(), TransactionLine.name)
        .limit(limit)
        .all()
    )
    return [
        {"item_id": item_id, "name": name, "quantity": int(quantity), "total": total}
        for item_id, name, quantity, total in rows
    ]


def refund_totals(business_id: int, start: datetime | None = None, end: datetime | None = None) -> dict:
    query = db.session.query(
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.final_total), 0.0),
    ).filter(
        Transaction.business_id == business_id,
        Transaction.kind == TRANSACTION_KIND_REFUND,
    )
    count, total = _window(query, start, end).one()
    return {"count": count, "total": total}


def cash_totals(business_id: int, start: datetime | None = None, end: datetime | None = None) -> dict:
    """
    Cash taken by sales and paid out by refunds in a window.

    Every sale counts regardless of later refunds; refunds subtract through
    their own refund transactions.
    """
    sales_query = (
        db.session.query(func.coalesce(func.sum(TransactionPayment.amount), 0.0))
        .join(Transaction, TransactionPayment.transaction_id == Transaction.id)
        .filter(TransactionPayment.method == "cash")
    )
    cash_sales = _window(_sales(sales_query, business_id, statuses=None), start, end).scalar()

    refunds_query = db.session.query(func.coalesce(func.sum(Transaction.final_total), 0.0)).filter(
        Transaction.business_id == business_id,
        Transaction.kind == TRANSACTION_KIND_REFUND,
        Transaction.refund_method == "cash",
    )
    cash_refunds = _window(refunds_query, start, end).scalar()

    return {"cash_sales": cash_sales or 0.0, "cash_refunds": cash_refunds or 0.0}


def sales_report(business_id: int, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Range report: by method, by kind, hourly and refunds."""
    by_method = sales_by_method(business_id, start, end)
    total_sales = sum(row["total"] for row in by_method)
    refunds = refund_totals(business_id, start, end)
    return {
        "total_sales": round_money(total_sales),
        "total_transactions": sum(row["count"] for row in by_method),
        "net_sales": round_money(total_sales - refunds["total"]),
        "refunds": refunds,
        "by_payment_method": by_method,
        "by_type": sales_by_item_kind(business_id, start, end),
        "hourly_breakdown": hourly_breakdown(business_id, start, end),
    }


def daily_summary(business_id: int, day: str | None = None) -> dict:
    """
    Dashboard summary for one UTC day (defaults to today).

    Raises ValueError for a malformed date.
    """
    day_value, start, next_start = day_bounds(day)
    end = next_start - timedelta(microseconds=1)

    by_method = sales_by_method(business_id, start, end)
    total_sales = sum(row["total"] for row in by_method)
    total_transactions = sum(row["count"] for row in by_method)
    refunds = refund_totals(business_id, start, end)

    return {
        "date": day_value.isoformat(),
        "overview": {
            "total_sales": round_money(total_sales),
            "total_transactions": total_transactions,
            "average_ticket": round_money(total_sales / total_transactions) if total_transactions else 0.0,
            "refunds": {"total": round_money(refunds["total"]), "count": refunds["count"]},
            "net_sales": round_money(total_sales - refunds["total"]),
        },
        "by_payment_method": by_method,
        "by_type": sales_by_item_kind(business_id, start, end),
        "top_products": top_items(business_id, LINE_KIND_PRODUCT, start, end),
        "top_services": top_items(business_id, LINE_KIND_SERVICE, start, end),
        "hourly_breakdown": hourly_breakdown(business_id, start, end),
    }
