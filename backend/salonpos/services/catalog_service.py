# Overview: Read-only catalog lookups used by the sale processor.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Product, Service
from ..models.catalog import CATALOG_STATUS_ACTIVE
from .errors import ItemNotFoundError


@dataclass(frozen=True)
class CatalogEntry:
    """Snapshot of a catalog item at lookup time."""
    kind: str
    id: int
    name: str
    price: float
    stock: int | None = None  # products only


def resolve_item(business_id: int, kind: str, item_id: int) -> CatalogEntry:
    """
    Resolve an active catalog entry scoped to the business.

    Raises:
        ItemNotFoundError: unknown id, other tenant, or inactive entry
    """
    model = Product if kind == "product" else Service
    row = (
        db.session.query(model)
        .filter_by(id=item_id, business_id=business_id, status=CATALOG_STATUS_ACTIVE)
        .populate_existing()
        .first()
    )
    if not row:
        raise ItemNotFoundError(
            f"{kind.capitalize()} not found: {item_id}",
            details={"type": kind, "item_id": item_id},
        )

    return CatalogEntry(
        kind=kind,
        id=row.id,
        name=row.name,
        price=row.price,
        stock=row.stock if kind == "product" else None,
    )
