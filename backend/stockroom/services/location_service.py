# Overview: Service-layer operations for shelf locations; encapsulates business logic and database work.

"""
Location Registry

Physical placement is a three-level hierarchy: zone -> chamber -> shelf.
A shelf is addressed by a human-readable location code, e.g. R-C01-S03
(zone R, chamber 1, shelf 3).

The ledger only needs resolve_shelf(): a purchase must land on a shelf whose
whole zone/chamber/shelf chain exists and is active.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Zone, Chamber, Shelf
from ..errors import ConflictError, NotFoundError, ShelfNotFound, ValidationError


LOCATION_CODE_RE = re.compile(r"^([A-Z]+)-C(\d{2})-S(\d{2})$")

CHAMBER_POSITIONS = {
    1: "Top",
    2: "Upper",
    3: "Middle",
    4: "Lower",
    5: "Bottom",
}

# Location codes carry two-digit chamber and shelf numbers
MAX_LOCATION_NUMBER = 99

DEFAULT_ZONES = (
    ("R", "Right", 1),
    ("M", "Middle", 2),
    ("L", "Left", 3),
)


@dataclass(frozen=True)
class ShelfLocation:
    shelf_id: int
    zone_code: str
    chamber_number: int
    shelf_number: int

    @property
    def code(self) -> str:
        return format_location_code(self.zone_code, self.chamber_number, self.shelf_number)

    def to_dict(self) -> dict:
        return {
            "shelf_id": self.shelf_id,
            "zone_code": self.zone_code,
            "chamber_number": self.chamber_number,
            "shelf_number": self.shelf_number,
            "code": self.code,
        }


def format_location_code(zone_code: str, chamber_number: int, shelf_number: int) -> str:
    """("R", 1, 3) -> "R-C01-S03"."""
    return f"{zone_code}-C{chamber_number:02d}-S{shelf_number:02d}"


def parse_location_code(code: str | None) -> tuple[str, int, int] | None:
    """Inverse of format_location_code; None when the code is malformed."""
    if not isinstance(code, str) or not code:
        return None
    match = LOCATION_CODE_RE.match(code.strip().upper())
    if not match:
        return None
    return match.group(1), int(match.group(2)), int(match.group(3))


def chamber_position_name(chamber_number: int) -> str:
    return CHAMBER_POSITIONS.get(chamber_number, f"Position {chamber_number}")


def resolve_shelf(shelf_id: int) -> ShelfLocation:
    """
    Resolve a shelf to its zone/chamber/shelf triple.

    Raises ShelfNotFound when the shelf, its chamber, or its zone is missing
    or inactive.
    """
    row = (
        db.session.query(
            Shelf.id,
            Shelf.shelf_number,
            Shelf.is_active,
            Chamber.chamber_number,
            Chamber.is_active.label("chamber_active"),
            Zone.code,
            Zone.is_active.label("zone_active"),
        )
        .join(Chamber, Shelf.chamber_id == Chamber.id)
        .join(Zone, Chamber.zone_id == Zone.id)
        .filter(Shelf.id == shelf_id)
        .first()
    )
    if row is None:
        raise ShelfNotFound(shelf_id)
    if not (row.is_active and row.chamber_active and row.zone_active):
        raise ShelfNotFound(shelf_id, reason="is inactive")

    return ShelfLocation(
        shelf_id=row.id,
        zone_code=row.code,
        chamber_number=row.chamber_number,
        shelf_number=row.shelf_number,
    )


def find_shelf_by_code(code: str) -> ShelfLocation:
    parsed = parse_location_code(code)
    if parsed is None:
        raise ValidationError(f"Invalid location code: {code!r}")
    zone_code, chamber_number, shelf_number = parsed

    shelf_id = (
        db.session.query(Shelf.id)
        .join(Chamber, Shelf.chamber_id == Chamber.id)
        .join(Zone, Chamber.zone_id == Zone.id)
        .filter(
            Zone.code == zone_code,
            Chamber.chamber_number == chamber_number,
            Shelf.shelf_number == shelf_number,
        )
        .scalar()
    )
    if shelf_id is None:
        raise ShelfNotFound(code)
    return resolve_shelf(shelf_id)


def list_locations(*, include_inactive: bool = False) -> list[dict]:
    """All shelves as a flat, display-ordered list (for pickers)."""
    q = (
        db.session.query(
            Shelf.id.label("shelf_id"),
            Zone.code.label("zone_code"),
            Zone.name.label("zone_name"),
            Chamber.chamber_number,
            Chamber.name.label("chamber_name"),
            Shelf.shelf_number,
        )
        .join(Chamber, Shelf.chamber_id == Chamber.id)
        .join(Zone, Chamber.zone_id == Zone.id)
    )
    if not include_inactive:
        q = q.filter(Shelf.is_active.is_(True), Chamber.is_active.is_(True), Zone.is_active.is_(True))

    rows = q.order_by(Zone.sort_order, Zone.code, Chamber.chamber_number, Shelf.shelf_number).all()

    result = []
    for r in rows:
        chamber_label = r.chamber_name or chamber_position_name(r.chamber_number)
        result.append({
            "id": r.shelf_id,
            "code": format_location_code(r.zone_code, r.chamber_number, r.shelf_number),
            "label": f"{r.zone_name} / {chamber_label} / Shelf {r.shelf_number}",
            "zone_code": r.zone_code,
            "chamber_number": r.chamber_number,
            "shelf_number": r.shelf_number,
        })
    return result


def list_zones() -> list[Zone]:
    return db.session.query(Zone).order_by(Zone.sort_order, Zone.code).all()


def _commit_or_conflict(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


def create_zone(code: str, name: str, sort_order: int = 0) -> Zone:
    code = (code or "").strip().upper()
    if not code.isalpha():
        raise ValidationError("zone code must be letters only")

    zone = Zone(code=code, name=name, sort_order=sort_order)
    db.session.add(zone)
    _commit_or_conflict(f"Zone {code} already exists")
    return zone


def create_chamber(zone_id: int, chamber_number: int, name: str | None = None) -> Chamber:
    if db.session.get(Zone, zone_id) is None:
        raise NotFoundError("Zone not found", details={"zone_id": zone_id})
    if not 0 < chamber_number <= MAX_LOCATION_NUMBER:
        raise ValidationError(f"chamber_number must be between 1 and {MAX_LOCATION_NUMBER}")

    chamber = Chamber(zone_id=zone_id, chamber_number=chamber_number, name=name)
    db.session.add(chamber)
    _commit_or_conflict(f"Chamber {chamber_number} already exists in zone")
    return chamber


def create_shelf(chamber_id: int, shelf_number: int) -> Shelf:
    if db.session.get(Chamber, chamber_id) is None:
        raise NotFoundError("Chamber not found", details={"chamber_id": chamber_id})
    if not 0 < shelf_number <= MAX_LOCATION_NUMBER:
        raise ValidationError(f"shelf_number must be between 1 and {MAX_LOCATION_NUMBER}")

    shelf = Shelf(chamber_id=chamber_id, shelf_number=shelf_number)
    db.session.add(shelf)
    _commit_or_conflict(f"Shelf {shelf_number} already exists in chamber")
    return shelf


def ensure_shelf(zone_code: str, chamber_number: int, shelf_number: int) -> ShelfLocation:
    """
    Get-or-create the full chain for a location. Used by CLI/bootstrap.

    Safe to call repeatedly (idempotent). The zone must already exist.
    """
    zone = db.session.query(Zone).filter_by(code=zone_code.strip().upper()).first()
    if zone is None:
        raise NotFoundError("Zone not found", details={"zone_code": zone_code})

    chamber = db.session.query(Chamber).filter_by(zone_id=zone.id, chamber_number=chamber_number).first()
    if chamber is None:
        chamber = create_chamber(zone.id, chamber_number)

    shelf = db.session.query(Shelf).filter_by(chamber_id=chamber.id, shelf_number=shelf_number).first()
    if shelf is None:
        shelf = create_shelf(chamber.id, shelf_number)

    return resolve_shelf(shelf.id)


def seed_default_zones() -> list[Zone]:
    """Create the R/M/L zones if missing. Idempotent."""
    zones = []
    for code, name, sort_order in DEFAULT_ZONES:
        zone = db.session.query(Zone).filter_by(code=code).first()
        if zone is None:
            zone = Zone(code=code, name=name, sort_order=sort_order)
            db.session.add(zone)
        zones.append(zone)
    db.session.commit()
    return zones
