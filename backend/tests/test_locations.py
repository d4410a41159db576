"""Location registry tests: codes, shelf resolution, setup operations."""

import pytest

from stockroom.extensions import db
from stockroom.models import Zone, Shelf, Chamber
from stockroom.errors import ConflictError, NotFoundError, ShelfNotFound, ValidationError
from stockroom.services import location_service
from stockroom.services.location_service import (
    chamber_position_name,
    format_location_code,
    parse_location_code,
)


class TestLocationCodes:

    @pytest.mark.parametrize(
        "zone,chamber,shelf,expected",
        [
            ("R", 1, 3, "R-C01-S03"),
            ("M", 12, 1, "M-C12-S01"),
            ("L", 5, 10, "L-C05-S10"),
        ],
    )
    def test_format(self, zone, chamber, shelf, expected):
        assert format_location_code(zone, chamber, shelf) == expected
        assert parse_location_code(expected) == (zone, chamber, shelf)

    @pytest.mark.parametrize("code", [None, "", 123, "R-1-3", "R-C1-S03", "1-C01-S01", "R-C01-S03-X", "R-C100-S01"])
    def test_parse_rejects_malformed(self, code):
        assert parse_location_code(code) is None

    def test_parse_is_case_insensitive(self):
        assert parse_location_code(" r-c02-s04 ") == ("R", 2, 4)

    def test_chamber_position_names(self):
        assert chamber_position_name(1) == "Top"
        assert chamber_position_name(5) == "Bottom"
        assert chamber_position_name(7) == "Position 7"


class TestResolveShelf:

    def test_resolves_full_chain(self, shelf):
        resolved = location_service.resolve_shelf(shelf.shelf_id)
        assert resolved.zone_code == "R"
        assert resolved.chamber_number == 1
        assert resolved.shelf_number == 1
        assert resolved.code == "R-C01-S01"

    def test_missing_shelf(self, zones):
        with pytest.raises(ShelfNotFound):
            location_service.resolve_shelf(12345)

    def test_inactive_shelf(self, shelf):
        row = db.session.get(Shelf, shelf.shelf_id)
        row.is_active = False
        db.session.commit()
        with pytest.raises(ShelfNotFound):
            location_service.resolve_shelf(shelf.shelf_id)

    def test_inactive_zone_hides_its_shelves(self, shelf):
        zone = db.session.query(Zone).filter_by(code="R").one()
        zone.is_active = False
        db.session.commit()
        with pytest.raises(ShelfNotFound):
            location_service.resolve_shelf(shelf.shelf_id)
        assert location_service.list_locations() == []
        assert len(location_service.list_locations(include_inactive=True)) == 1

    def test_find_by_code(self, shelf):
        assert location_service.find_shelf_by_code("R-C01-S01").shelf_id == shelf.shelf_id
        with pytest.raises(ShelfNotFound):
            location_service.find_shelf_by_code("R-C09-S09")
        with pytest.raises(ValidationError):
            location_service.find_shelf_by_code("nonsense")
        with pytest.raises(ValidationError):
            location_service.find_shelf_by_code(123)


class TestLocationSetup:

    def test_seed_default_zones_is_idempotent(self, db_session):
        location_service.seed_default_zones()
        location_service.seed_default_zones()
        codes = [z.code for z in location_service.list_zones()]
        assert codes == ["R", "M", "L"]

    def test_list_locations_order_and_labels(self, zones):
        location_service.ensure_shelf("L", 1, 1)
        location_service.ensure_shelf("R", 2, 1)
        location_service.ensure_shelf("R", 1, 2)

        locations = location_service.list_locations()

        assert [loc["code"] for loc in locations] == ["R-C01-S02", "R-C02-S01", "L-C01-S01"]
        assert locations[0]["label"] == "Right / Top / Shelf 2"

    def test_ensure_shelf_is_idempotent(self, zones):
        first = location_service.ensure_shelf("M", 3, 2)
        second = location_service.ensure_shelf("m", 3, 2)
        assert first.shelf_id == second.shelf_id
        assert db.session.query(Chamber).count() == 1

    def test_duplicates_conflict(self, zones):
        zone = db.session.query(Zone).filter_by(code="R").one()
        chamber = location_service.create_chamber(zone.id, 1)
        location_service.create_shelf(chamber.id, 1)

        with pytest.raises(ConflictError):
            location_service.create_zone("R", "Right again")
        with pytest.raises(ConflictError):
            location_service.create_chamber(zone.id, 1)
        with pytest.raises(ConflictError):
            location_service.create_shelf(chamber.id, 1)

    def test_missing_parent(self, db_session):
        with pytest.raises(NotFoundError):
            location_service.create_chamber(999, 1)
        with pytest.raises(NotFoundError):
            location_service.create_shelf(999, 1)
        with pytest.raises(NotFoundError):
            location_service.ensure_shelf("Z", 1, 1)

    def test_numbers_must_fit_two_digit_codes(self, zones):
        with pytest.raises(ValidationError):
            location_service.ensure_shelf("R", 100, 1)
        with pytest.raises(ValidationError):
            location_service.ensure_shelf("R", 1, 100)

        edge = location_service.ensure_shelf("R", 99, 99)
        assert edge.code == "R-C99-S99"
        assert location_service.find_shelf_by_code(edge.code).shelf_id == edge.shelf_id

    def test_zone_code_must_be_letters(self, db_session):
        with pytest.raises(ValidationError):
            location_service.create_zone("R1", "Bad")
