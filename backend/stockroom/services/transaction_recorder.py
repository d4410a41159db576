# Overview: Service-layer operations for purchase/sale records; encapsulates business logic and database work.

"""
Transaction Recorder

Owns the audit trail: the purchases and sales tables.

Invariants (authoritative):
- Referential integrity is checked before the ledger touches anything:
  the product must exist and be active; a purchase's shelf must resolve to
  an active zone/chamber/shelf chain.
- Records are built here with their totals computed from integer cents
  (total = quantity * unit amount), never from floats.
- Records are append-only. The mapper listeners in models/stock.py reject
  any UPDATE or DELETE of a committed row; corrections are modelled as new
  offsetting records.

This module never commits and never writes stock_levels. The Stock Ledger
Engine (stock_service) adds the built records to its own transaction.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Product, Purchase, Sale, Shelf, Chamber, Zone, User
from ..errors import ProductNotFound
from ..money import format_cents
from stockroom.time_utils import utcnow, to_utc_z
from .location_service import ShelfLocation, resolve_shelf, format_location_code


def require_active_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    if not product.is_active:
        raise ProductNotFound(product_id, reason="is inactive")
    return product


def require_shelf(shelf_id: int) -> ShelfLocation:
    return resolve_shelf(shelf_id)


def build_purchase(
    *,
    product: Product,
    shelf: ShelfLocation,
    quantity: int,
    unit_cost_cents: int,
    actor_user_id: int,
    notes: str | None = None,
    occurred_at: datetime | None = None,
) -> Purchase:
    return Purchase(
        product_id=product.id,
        shelf_id=shelf.shelf_id,
        quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        total_cost_cents=quantity * unit_cost_cents,
        purchased_at=occurred_at or utcnow(),
        recorded_by_user_id=actor_user_id,
        notes=notes or None,
    )


def build_sale(
    *,
    product: Product,
    quantity: int,
    unit_price_cents: int,
    actor_user_id: int,
    notes: str | None = None,
    occurred_at: datetime | None = None,
) -> Sale:
    return Sale(
        product_id=product.id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_amount_cents=quantity * unit_price_cents,
        sold_at=occurred_at or utcnow(),
        recorded_by_user_id=actor_user_id,
        notes=notes or None,
    )


def list_purchases(*, limit: int = 50, product_id: int | None = None) -> list[dict]:
    """Most recent purchases first, with product, location code and recorder name."""
    q = (
        db.session.query(
            Purchase,
            Product.sku,
            Product.name.label("product_name"),
            Zone.code.label("zone_code"),
            Chamber.chamber_number,
            Shelf.shelf_number,
            User.name.label("recorded_by_name"),
        )
        .join(Product, Purchase.product_id == Product.id)
        .join(User, Purchase.recorded_by_user_id == User.id)
        .join(Shelf, Purchase.shelf_id == Shelf.id)
        .join(Chamber, Shelf.chamber_id == Chamber.id)
        .join(Zone, Chamber.zone_id == Zone.id)
    )
    if product_id is not None:
        q = q.filter(Purchase.product_id == product_id)

    rows = q.order_by(Purchase.purchased_at.desc(), Purchase.id.desc()).limit(limit).all()

    result = []
    for purchase, sku, product_name, zone_code, chamber_number, shelf_number, recorded_by_name in rows:
        item = purchase.to_dict()
        item.update({
            "product_sku": sku,
            "product_name": product_name,
            "location_code": format_location_code(zone_code, chamber_number, shelf_number),
            "recorded_by_name": recorded_by_name,
        })
        result.append(item)
    return result


def list_sales(*, limit: int = 50, product_id: int | None = None) -> list[dict]:
    """Most recent sales first, with product and recorder name."""
    q = (
        db.session.query(
            Sale,
            Product.sku,
            Product.name.label("product_name"),
            User.name.label("recorded_by_name"),
        )
        .join(Product, Sale.product_id == Product.id)
        .join(User, Sale.recorded_by_user_id == User.id)
    )
    if product_id is not None:
        q = q.filter(Sale.product_id == product_id)

    rows = q.order_by(Sale.sold_at.desc(), Sale.id.desc()).limit(limit).all()

    result = []
    for sale, sku, product_name, recorded_by_name in rows:
        item = sale.to_dict()
        item.update({
            "product_sku": sku,
            "product_name": product_name,
            "recorded_by_name": recorded_by_name,
        })
        result.append(item)
    return result


def purchase_summary(purchase: Purchase, shelf: ShelfLocation) -> dict:
    item = purchase.to_dict()
    item["location_code"] = shelf.code
    return item


def totals_for_product(product_id: int) -> dict:
    """Sum of recorded quantities and amounts for one product."""
    purchased, cost = (
        db.session.query(
            db.func.coalesce(db.func.sum(Purchase.quantity), 0),
            db.func.coalesce(db.func.sum(Purchase.total_cost_cents), 0),
        )
        .filter(Purchase.product_id == product_id)
        .one()
    )
    sold, revenue = (
        db.session.query(
            db.func.coalesce(db.func.sum(Sale.quantity), 0),
            db.func.coalesce(db.func.sum(Sale.total_amount_cents), 0),
        )
        .filter(Sale.product_id == product_id)
        .one()
    )
    return {
        "product_id": product_id,
        "purchased_quantity": int(purchased),
        "purchased_cost_cents": int(cost),
        "purchased_cost": format_cents(int(cost)),
        "sold_quantity": int(sold),
        "sold_amount_cents": int(revenue),
        "sold_amount": format_cents(int(revenue)),
        "as_of": to_utc_z(utcnow()),
    }
