from __future__ import annotations

from ..extensions import db


CATALOG_STATUS_ACTIVE = "active"
CATALOG_STATUS_INACTIVE = "inactive"


class Product(db.Model):
    """
    Retail product sold at the counter (shampoo, wax, gift cards...).

    Catalog CRUD lives outside the POS engine; the engine only reads
    active products and moves `stock`. Stock changes always go through
    conditional UPDATEs in inventory_service, never read-then-write.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_business_status", "business_id", "status"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Float, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=CATALOG_STATUS_ACTIVE)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} business_id={self.business_id} stock={self.stock}>"


class Service(db.Model):
    """Bookable service (haircut, colour, beard trim). Read-only for the POS engine."""
    __tablename__ = "services"
    __table_args__ = (
        db.Index("ix_services_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Float, nullable=False, default=0)
    duration_minutes = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=CATALOG_STATUS_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
