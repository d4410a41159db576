# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from flask import current_app
from sqlalchemy import update, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, StockLevel, Purchase, Sale
from ..errors import InsufficientStock, InvalidCost, InvalidPrice, ProductNotFound
from ..validation import require_positive_quantity, require_amount_cents, require_line_total
from stockroom.time_utils import utcnow, today_utc, to_iso_date
from . import transaction_recorder
from .concurrency import run_with_retry
from .location_service import ShelfLocation
"""
Stock Ledger Invariants (authoritative)

Model:
- stock_levels holds one row per product: total_purchased, total_sold and
  current_stock. It is written ONLY by record_purchase() and record_sale()
  in this module.
- purchases / sales are the append-only audit trail (transaction_recorder).

Invariants after every committed transaction:
1. current_stock = total_purchased - total_sold
2. current_stock >= 0
3. total_purchased = SUM(purchases.quantity)
4. total_sold = SUM(sales.quantity)
5. purchase/sale rows are never updated or deleted

Atomicity:
- The audit row insert and the stock_levels write share one session
  transaction and one commit. Any exception rolls both back
  (run_with_retry rolls back on every failure path).

Concurrency contract:
- A sale's availability check and its decrement are ONE statement:
      UPDATE stock_levels
         SET total_sold = total_sold + :q, current_stock = current_stock - :q
       WHERE product_id = :p AND current_stock >= :q
  The database evaluates the predicate under the row's write lock (row lock
  on PostgreSQL, database write lock on SQLite). Two concurrent sales cannot
  both consume the same units: the second one either waits and re-evaluates
  against the committed balance, or fails with a lock error and is retried.
  rowcount == 0 means insufficient stock.
- Purchases use UPDATE ... SET x = x + :q (commutative, no lost updates).
  The first purchase of a product inserts the row inside a SAVEPOINT; if a
  concurrent first purchase won the insert, we fall back to the increment.
- No read-then-write of the balance happens anywhere in this module.
"""


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


@dataclass(frozen=True)
class PurchaseResult:
    purchase: Purchase
    shelf: ShelfLocation
    new_stock_level: int


@dataclass(frozen=True)
class SaleResult:
    sale: Sale
    new_stock_level: int


def classify_stock_status(current_stock: int, reorder_level: int) -> StockStatus:
    """
    The single stock-status rule used by every read path.

    0 -> out_of_stock; 1..reorder_level -> low_stock; above -> in_stock.
    """
    if current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if current_stock <= reorder_level:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def get_current_stock(product_id: int) -> int:
    """Current balance; 0 for a product that was never purchased."""
    value = (
        db.session.query(StockLevel.current_stock)
        .filter(StockLevel.product_id == product_id)
        .scalar()
    )
    return int(value or 0)


def get_stock_level(product_id: int) -> StockLevel | None:
    return db.session.query(StockLevel).filter_by(product_id=product_id).populate_existing().first()


def _increment_purchased(product_id: int, quantity: int, now) -> None:
    stmt = (
        update(StockLevel)
        .where(StockLevel.product_id == product_id)
        .values(
            total_purchased=StockLevel.total_purchased + quantity,
            current_stock=StockLevel.current_stock + quantity,
            last_purchase_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount:
        return

    # First purchase of this product: create the row lazily
    level = StockLevel(
        product_id=product_id,
        total_purchased=quantity,
        total_sold=0,
        current_stock=quantity,
        last_purchase_at=now,
        updated_at=now,
    )
    try:
        with db.session.begin_nested():
            db.session.add(level)
    except IntegrityError:
        # A concurrent first purchase created it between our UPDATE and INSERT
        if not db.session.execute(stmt).rowcount:
            raise


def _decrement_if_available(product_id: int, quantity: int, now) -> bool:
    stmt = (
        update(StockLevel)
        .where(
            StockLevel.product_id == product_id,
            StockLevel.current_stock >= quantity,
        )
        .values(
            total_sold=StockLevel.total_sold + quantity,
            current_stock=StockLevel.current_stock - quantity,
            last_sale_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return bool(db.session.execute(stmt).rowcount)


def record_purchase(
    *,
    product_id: int,
    shelf_id: int,
    quantity: int,
    unit_cost_cents: int,
    actor_user_id: int,
    notes: str | None = None,
) -> PurchaseResult:
    """
    Stock-in: append a Purchase and increment the product's balance.

    Raises InvalidQuantity / InvalidCost (before any lookup),
    ProductNotFound / ShelfNotFound (before any write),
    LedgerUnavailable (storage failure after retries; nothing written).
    """
    require_positive_quantity(quantity)
    require_amount_cents(unit_cost_cents, field="unit_cost_cents", error_cls=InvalidCost)
    require_line_total(quantity, unit_cost_cents, field="total_cost_cents", error_cls=InvalidCost)

    def _op() -> PurchaseResult:
        product = transaction_recorder.require_active_product(product_id)
        shelf = transaction_recorder.require_shelf(shelf_id)

        now = utcnow()
        purchase = transaction_recorder.build_purchase(
            product=product,
            shelf=shelf,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            actor_user_id=actor_user_id,
            notes=notes,
            occurred_at=now,
        )
        db.session.add(purchase)
        db.session.flush()

        _increment_purchased(product.id, quantity, now)
        new_level = get_current_stock(product.id)

        db.session.commit()
        return PurchaseResult(purchase=purchase, shelf=shelf, new_stock_level=new_level)

    result = run_with_retry(_op)
    current_app.logger.info(
        "Purchase %s recorded: product=%s qty=%s shelf=%s stock=%s",
        result.purchase.id, product_id, quantity, result.shelf.code, result.new_stock_level,
    )
    return result


def record_sale(
    *,
    product_id: int,
    quantity: int,
    actor_user_id: int,
    unit_price_cents: int | None = None,
    notes: str | None = None,
) -> SaleResult:
    """
    Stock-out: decrement the balance if enough stock exists, and append a Sale.

    unit_price_cents defaults to the product's current selling price.

    Raises InvalidQuantity / InvalidPrice (before any lookup),
    ProductNotFound (before any write),
    InvalidPrice when quantity x resolved price exceeds the line-total cap,
    InsufficientStock(available, requested): nothing written, stock unchanged,
    LedgerUnavailable (storage failure after retries; nothing written).
    """
    require_positive_quantity(quantity)
    if unit_price_cents is not None:
        require_amount_cents(unit_price_cents, field="unit_price_cents", error_cls=InvalidPrice)

    def _op() -> SaleResult:
        product = transaction_recorder.require_active_product(product_id)
        price = product.selling_price_cents if unit_price_cents is None else unit_price_cents
        require_line_total(quantity, price, field="total_amount_cents", error_cls=InvalidPrice)

        now = utcnow()
        if not _decrement_if_available(product.id, quantity, now):
            db.session.rollback()
            raise InsufficientStock(
                product_id=product.id,
                available=get_current_stock(product.id),
                requested=quantity,
            )

        sale = transaction_recorder.build_sale(
            product=product,
            quantity=quantity,
            unit_price_cents=price,
            actor_user_id=actor_user_id,
            notes=notes,
            occurred_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        new_level = get_current_stock(product.id)
        db.session.commit()
        return SaleResult(sale=sale, new_stock_level=new_level)

    try:
        result = run_with_retry(_op)
    except InsufficientStock as exc:
        current_app.logger.warning(
            "Sale rejected: product=%s requested=%s available=%s",
            product_id, exc.requested, exc.available,
        )
        raise

    current_app.logger.info(
        "Sale %s recorded: product=%s qty=%s stock=%s",
        result.sale.id, product_id, quantity, result.new_stock_level,
    )
    return result


# =============================================================================
# Read model
# =============================================================================

def _stock_rows(*, active_only: bool = True):
    q = (
        db.session.query(
            Product.id,
            Product.sku,
            Product.name,
            Product.cost_price_cents,
            Product.reorder_level,
            Product.expiry_date,
            func.coalesce(StockLevel.current_stock, 0).label("current_stock"),
            StockLevel.product_id.label("stock_product_id"),
        )
        .outerjoin(StockLevel, StockLevel.product_id == Product.id)
    )
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(func.coalesce(StockLevel.current_stock, 0), Product.name).all()


def get_stock_overview(filter_by: str | None = None) -> dict:
    """
    Stock overview for active products.

    filter_by: None/"all", "low" (low_stock only), "out" (out_of_stock only).
    Summary counts always cover every active product.

    NOTE: total_value_cents values stock at the product's *current* cost
    price, not historical purchase cost. It is an approximation.
    """
    if filter_by not in (None, "", "all", "low", "out"):
        raise ValueError("filter must be one of: all, low, out")

    counts = {status: 0 for status in StockStatus}
    total_value = 0
    products = []

    for row in _stock_rows():
        current = int(row.current_stock)
        status = classify_stock_status(current, row.reorder_level)
        counts[status] += 1
        total_value += current * row.cost_price_cents
        products.append({
            "id": row.id,
            "sku": row.sku,
            "name": row.name,
            "current_stock": current,
            "reorder_level": row.reorder_level,
            "cost_price_cents": row.cost_price_cents,
            "stock_status": status.value,
        })

    if filter_by == "low":
        products = [p for p in products if p["stock_status"] == StockStatus.LOW_STOCK.value]
    elif filter_by == "out":
        products = [p for p in products if p["stock_status"] == StockStatus.OUT_OF_STOCK.value]

    return {
        "summary": {
            "in_stock": counts[StockStatus.IN_STOCK],
            "low_stock": counts[StockStatus.LOW_STOCK],
            "out_of_stock": counts[StockStatus.OUT_OF_STOCK],
            "total_value_cents": total_value,
        },
        "products": products,
    }


def get_product_stock(product_id: int) -> dict:
    """Stock level + status for one product (works for never-stocked products)."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)

    level = get_stock_level(product_id)
    current = level.current_stock if level else 0
    return {
        "product": product.to_dict(),
        "stock_level": level.to_dict() if level else None,
        "current_stock": current,
        "stock_status": classify_stock_status(current, product.reorder_level).value,
        "totals": transaction_recorder.totals_for_product(product_id),
    }


def get_stock_alerts(*, expiry_days: int | None = None, limit: int = 20) -> dict:
    """
    Low-stock, out-of-stock and expiring-soon alerts.

    Only products that have been stocked at least once (have a stock_levels
    row) raise alerts; a never-purchased product is not "running out".
    """
    if expiry_days is None:
        expiry_days = current_app.config.get("EXPIRY_ALERT_DAYS", 30)

    low_stock = []
    out_of_stock_count = 0
    expiring = []
    today = today_utc()
    horizon = today + timedelta(days=expiry_days)

    for row in _stock_rows():
        if row.stock_product_id is None:
            continue
        current = int(row.current_stock)
        status = classify_stock_status(current, row.reorder_level)
        if status is StockStatus.OUT_OF_STOCK:
            out_of_stock_count += 1
        elif status is StockStatus.LOW_STOCK:
            low_stock.append({
                "id": row.id,
                "sku": row.sku,
                "name": row.name,
                "current_stock": current,
                "reorder_level": row.reorder_level,
            })
        if current > 0 and row.expiry_date is not None and today <= row.expiry_date <= horizon:
            expiring.append({
                "id": row.id,
                "sku": row.sku,
                "name": row.name,
                "expiry_date": to_iso_date(row.expiry_date),
                "days_until_expiry": (row.expiry_date - today).days,
            })

    # _stock_rows is ordered by current stock ascending already
    expiring.sort(key=lambda item: item["expiry_date"])
    return {
        "low_stock_items": low_stock[:limit],
        "out_of_stock_count": out_of_stock_count,
        "expiring_items": expiring[:limit],
    }


def reconcile_stock_levels() -> dict:
    """
    Check invariants 1-4 across all products.

    Returns {"checked": n, "ok": bool, "violations": [...]}. Read-only.
    """
    purchased = dict(
        db.session.query(Purchase.product_id, func.sum(Purchase.quantity))
        .group_by(Purchase.product_id)
        .all()
    )
    sold = dict(
        db.session.query(Sale.product_id, func.sum(Sale.quantity))
        .group_by(Sale.product_id)
        .all()
    )
    levels = {lvl.product_id: lvl for lvl in db.session.query(StockLevel).populate_existing().all()}

    violations = []
    product_ids = sorted(set(purchased) | set(sold) | set(levels))
    for pid in product_ids:
        lvl = levels.get(pid)
        recorded_in = int(purchased.get(pid) or 0)
        recorded_out = int(sold.get(pid) or 0)

        if lvl is None:
            violations.append({
                "product_id": pid,
                "rule": "missing_stock_level",
                "recorded_purchased": recorded_in,
                "recorded_sold": recorded_out,
            })
            continue

        if lvl.current_stock != lvl.total_purchased - lvl.total_sold:
            violations.append({"product_id": pid, "rule": "balance", **lvl.to_dict()})
        if lvl.current_stock < 0:
            violations.append({"product_id": pid, "rule": "negative_stock", **lvl.to_dict()})
        if lvl.total_purchased != recorded_in:
            violations.append({
                "product_id": pid,
                "rule": "purchased_conservation",
                "total_purchased": lvl.total_purchased,
                "recorded_purchased": recorded_in,
            })
        if lvl.total_sold != recorded_out:
            violations.append({
                "product_id": pid,
                "rule": "sold_conservation",
                "total_sold": lvl.total_sold,
                "recorded_sold": recorded_out,
            })

    return {"checked": len(product_ids), "ok": not violations, "violations": violations}
