from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import ImmutableRecordError
from ..money import format_cents
from stockroom.time_utils import to_utc_z
"""
Stock ledger tables.

- purchases / sales: append-only facts. Rows are inserted once and never
  updated or deleted (enforced by the mapper listeners at the bottom).
- stock_levels: one row per product holding the running balance. Only
  services/stock_service.py writes it, and only with guarded UPDATE
  statements (see that module for the concurrency contract).

The CHECK constraints are the last line of defence: even a buggy writer
cannot commit a negative or unreconciled balance.
"""


class StockLevel(db.Model):
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_stock_levels_non_negative"),
        db.CheckConstraint("total_purchased >= 0", name="ck_stock_levels_purchased_non_negative"),
        db.CheckConstraint("total_sold >= 0", name="ck_stock_levels_sold_non_negative"),
        db.CheckConstraint(
            "current_stock = total_purchased - total_sold",
            name="ck_stock_levels_balance",
        ),
        db.Index("ix_stock_levels_current_stock", "current_stock"),
    )

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    )

    total_purchased = db.Column(db.BigInteger, nullable=False, default=0)
    total_sold = db.Column(db.BigInteger, nullable=False, default=0)
    current_stock = db.Column(db.BigInteger, nullable=False, default=0)

    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_sale_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_level", uselist=False, lazy=True))

    def __repr__(self) -> str:
        return (
            f"<StockLevel product_id={self.product_id} purchased={self.total_purchased} "
            f"sold={self.total_sold} current={self.current_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "total_purchased": self.total_purchased,
            "total_sold": self.total_sold,
            "current_stock": self.current_stock,
            "last_purchase_at": to_utc_z(self.last_purchase_at),
            "last_sale_at": to_utc_z(self.last_sale_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Purchase(db.Model):
    """Stock-in fact: quantity received onto a shelf at a unit cost."""
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchases_quantity_positive"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_purchases_unit_cost_non_negative"),
        db.Index("ix_purchases_product_date", "product_id", "purchased_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    shelf_id = db.Column(db.Integer, db.ForeignKey("shelves.id", ondelete="RESTRICT"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.BigInteger, nullable=False)

    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    notes = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    shelf = db.relationship("Shelf")
    recorded_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "shelf_id": self.shelf_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_cost": format_cents(self.unit_cost_cents),
            "total_cost_cents": self.total_cost_cents,
            "total_cost": format_cents(self.total_cost_cents),
            "purchased_at": to_utc_z(self.purchased_at),
            "recorded_by_user_id": self.recorded_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Sale(db.Model):
    """Stock-out fact: quantity sold at a unit price."""
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sales_unit_price_non_negative"),
        db.Index("ix_sales_product_date", "product_id", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.BigInteger, nullable=False)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    notes = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    recorded_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "total_amount_cents": self.total_amount_cents,
            "total_amount": format_cents(self.total_amount_cents),
            "sold_at": to_utc_z(self.sold_at),
            "recorded_by_user_id": self.recorded_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


def _reject_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"{target.__tablename__} rows are append-only; record an offsetting entry instead",
        details={"table": target.__tablename__, "id": target.id},
    )


def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"{target.__tablename__} rows cannot be deleted",
        details={"table": target.__tablename__, "id": target.id},
    )


for _model in (Purchase, Sale):
    event.listen(_model, "before_update", _reject_update)
    event.listen(_model, "before_delete", _reject_delete)
