from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from stockroom.time_utils import to_utc_z, to_iso_date


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    SKU DESIGN DECISION:
    Product.sku is the user-facing code printed on labels and typed at the
    counter. It is unique and immutable once created; the integer id is what
    every other table references.

    Products are never hard-deleted. Purchases and sales reference them, so
    retiring a product means is_active=False.

    Prices are integer cents (fixed precision). cost_price_cents is the
    *current* cost; historical cost lives on each Purchase row.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("cost_price_cents >= 0", name="ck_products_cost_non_negative"),
        db.CheckConstraint("selling_price_cents >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("reorder_level >= 0", name="ck_products_reorder_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(50), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    reorder_level = db.Column(db.Integer, nullable=False, default=5)
    expiry_date = db.Column(db.Date, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "cost_price_cents": self.cost_price_cents,
            "cost_price": format_cents(self.cost_price_cents),
            "selling_price_cents": self.selling_price_cents,
            "selling_price": format_cents(self.selling_price_cents),
            "reorder_level": self.reorder_level,
            "expiry_date": to_iso_date(self.expiry_date),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
