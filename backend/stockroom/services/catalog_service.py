# Overview: Service-layer operations for the product catalog; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Category
from ..errors import ConflictError, NotFoundError, ProductNotFound, ValidationError
from ..validation import enforce_rules_product
from .concurrency import lock_for_update, run_with_retry

# Fields an admin may change after creation. sku is identity and stays fixed.
UPDATABLE_FIELDS = {
    "name",
    "category_id",
    "cost_price_cents",
    "selling_price_cents",
    "reorder_level",
    "expiry_date",
    "is_active",
}


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if db.session.get(Category, category_id) is None:
        raise NotFoundError("Category not found", details={"category_id": category_id})


def create_product(
    *,
    sku: str,
    name: str,
    cost_price_cents: int = 0,
    selling_price_cents: int = 0,
    reorder_level: int = 5,
    category_id: int | None = None,
    expiry_date=None,
    is_active: bool = True,
) -> Product:
    sku = (sku or "").strip()
    if not sku:
        raise ValidationError("sku is required")

    enforce_rules_product({
        "cost_price_cents": cost_price_cents,
        "selling_price_cents": selling_price_cents,
        "reorder_level": reorder_level,
    })
    _require_category(category_id)

    if db.session.query(Product.id).filter_by(sku=sku).first() is not None:
        raise ConflictError("Product ID already exists", details={"sku": sku})

    product = Product(
        sku=sku,
        name=name,
        category_id=category_id,
        cost_price_cents=cost_price_cents,
        selling_price_cents=selling_price_cents,
        reorder_level=reorder_level,
        expiry_date=expiry_date,
        is_active=is_active,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product ID already exists", details={"sku": sku})
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def get_product_by_sku(sku: str) -> Product:
    product = db.session.query(Product).filter_by(sku=(sku or "").strip()).first()
    if product is None:
        raise ProductNotFound(sku)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    """
    Apply an admin edit (prices, reorder level, name, ...).

    Does not touch stock; stock only moves through purchases and sales.
    """
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    enforce_rules_product(patch)

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFound(product_id)
        if "category_id" in patch:
            _require_category(patch["category_id"])
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(product_id: int) -> Product:
    """Soft-delete. History rows keep referencing the product."""
    return update_product(product_id, {"is_active": False})


def list_products(*, active_only: bool = True, search: str | None = None, limit: int | None = None) -> list[Product]:
    q = db.session.query(Product)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))
    q = q.order_by(Product.name, Product.id)
    if limit:
        q = q.limit(limit)
    return q.all()


def create_category(name: str, description: str | None = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    category = Category(name=name, description=description)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists", details={"name": name})
    return category


def list_categories(*, active_only: bool = True) -> list[Category]:
    q = db.session.query(Category)
    if active_only:
        q = q.filter(Category.is_active.is_(True))
    return q.order_by(Category.name).all()
