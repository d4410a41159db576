from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


class Zone(db.Model):
    """
    Top level of the physical location hierarchy (zone -> chamber -> shelf).

    Codes are short letters (R, M, L) so new zones can be added without
    touching the location code format.
    """
    __tablename__ = "zones"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(10), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Chamber(db.Model):
    __tablename__ = "chambers"
    __table_args__ = (
        db.UniqueConstraint("zone_id", "chamber_number", name="uq_chambers_zone_number"),
        db.CheckConstraint("chamber_number BETWEEN 1 AND 99", name="ck_chambers_number_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    zone_id = db.Column(db.Integer, db.ForeignKey("zones.id", ondelete="RESTRICT"), nullable=False, index=True)
    chamber_number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(100), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    zone = db.relationship("Zone", backref=db.backref("chambers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "zone_id": self.zone_id,
            "chamber_number": self.chamber_number,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Shelf(db.Model):
    """Leaf of the location hierarchy; purchases record which shelf stock went to."""
    __tablename__ = "shelves"
    __table_args__ = (
        db.UniqueConstraint("chamber_id", "shelf_number", name="uq_shelves_chamber_number"),
        db.CheckConstraint("shelf_number BETWEEN 1 AND 99", name="ck_shelves_number_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    chamber_id = db.Column(db.Integer, db.ForeignKey("chambers.id", ondelete="RESTRICT"), nullable=False, index=True)
    shelf_number = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    chamber = db.relationship("Chamber", backref=db.backref("shelves", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chamber_id": self.chamber_id,
            "shelf_number": self.shelf_number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
