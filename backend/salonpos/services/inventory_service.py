# Overview: Stock adjustments for product lines (reserve on sale, release on refund).

"""
Inventory Adjuster

DESIGN PRINCIPLES:
- reserve() is ONE conditional UPDATE guarded by stock >= quantity, never a
  read-then-write pair, so concurrent sales cannot oversell.
- release() has no upper bound; refund bookkeeping guarantees it is called
  at most once per refunded unit.
- Neither writes a ledger entry; the sale/refund transaction is the record.
- Both run inside the caller's DB transaction unless commit=True.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Product
from ..models.catalog import CATALOG_STATUS_ACTIVE
from .catalog_service import CatalogEntry, resolve_item
from .concurrency import run_with_retry
from .errors import InsufficientStockError, InvalidAmountError, ItemNotFoundError


def _require_positive(quantity: int) -> None:
    if quantity is None or quantity <= 0:
        raise InvalidAmountError("Quantity must be positive", details={"quantity": quantity})


def _expire_cached(product_id: int) -> None:
    # Bulk UPDATEs bypass the identity map; drop any cached copy
    cached = db.session.identity_map.get(db.session.identity_key(Product, product_id))
    if cached is not None:
        db.session.expire(cached)


def reserve(business_id: int, product_id: int, quantity: int, *, commit: bool = False) -> CatalogEntry:
    """
    Atomically decrement stock for an active product.

    Returns:
        The product snapshot taken BEFORE the decrement (name/price capture).

    Raises:
        ItemNotFoundError: product missing, inactive, or other tenant
        InsufficientStockError: stock < quantity at update time
    """
    def _op():
        _require_positive(quantity)
        snapshot = resolve_item(business_id, "product", product_id)

        result = db.session.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.business_id == business_id,
                Product.status == CATALOG_STATUS_ACTIVE,
                Product.stock >= quantity,
            )
            .values(stock=Product.stock - quantity, version_id=Product.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        _expire_cached(product_id)

        if result.rowcount != 1:
            available = db.session.query(Product.stock).filter_by(id=product_id).scalar() or 0
            raise InsufficientStockError(
                f"Insufficient stock for {snapshot.name}. Available: {available}",
                details={
                    "product_id": product_id,
                    "name": snapshot.name,
                    "available": available,
                    "requested": quantity,
                },
            )

        if commit:
            db.session.commit()
        return snapshot

    if commit:
        return run_with_retry(_op)
    return _op()


def release(business_id: int, product_id: int, quantity: int, *, commit: bool = False) -> None:
    """
    Increment stock (refunds). Inactive products are still restocked.

    Raises:
        ItemNotFoundError: product row does not exist for this business
    """
    def _op():
        _require_positive(quantity)
        result = db.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.business_id == business_id)
            .values(stock=Product.stock + quantity, version_id=Product.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        _expire_cached(product_id)

        if result.rowcount != 1:
            raise ItemNotFoundError(
                f"Product not found: {product_id}",
                details={"type": "product", "item_id": product_id},
            )

        if commit:
            db.session.commit()

    if commit:
        return run_with_retry(_op)
    return _op()

