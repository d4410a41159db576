# Overview: Flask API routes for shelf locations; parses input and returns JSON responses.

"""
Location routes.

GET is available to any authenticated user (purchase form shelf picker).
Creating zones, chambers and shelves is admin-only setup work.
"""

from flask import Blueprint, request, jsonify, current_app

from ..models import Zone, Chamber, Shelf, ROLE_ADMIN
from ..errors import LedgerError, error_response
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth, require_role
from ..services import location_service


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")

ZONE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "sort_order"},
    required_on_create={"code", "name"},
)

CHAMBER_POLICY = ModelValidationPolicy(
    writable_fields={"zone_id", "chamber_number", "name"},
    required_on_create={"zone_id", "chamber_number"},
)

SHELF_POLICY = ModelValidationPolicy(
    writable_fields={"chamber_id", "shelf_number"},
    required_on_create={"chamber_id", "shelf_number"},
)


@locations_bp.get("")
@require_auth
def list_locations_route():
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    return {"locations": location_service.list_locations(include_inactive=include_inactive)}


@locations_bp.get("/zones")
@require_auth
def list_zones_route():
    return {"zones": [z.to_dict() for z in location_service.list_zones()]}


@locations_bp.get("/resolve")
@require_auth
def resolve_location_route():
    """?code=R-C01-S03 -> the shelf it names."""
    try:
        shelf = location_service.find_shelf_by_code(request.args.get("code") or "")
        return {"location": shelf.to_dict()}
    except LedgerError as e:
        return error_response(e)


@locations_bp.post("/zones")
@require_auth
@require_role(ROLE_ADMIN)
def create_zone_route():
    try:
        patch = validate_payload(model=Zone, payload=request.get_json(silent=True) or {}, policy=ZONE_POLICY, partial=False)
        zone = location_service.create_zone(patch["code"], patch["name"], patch.get("sort_order") or 0)
        return {"zone": zone.to_dict()}, 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create zone")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.post("/chambers")
@require_auth
@require_role(ROLE_ADMIN)
def create_chamber_route():
    try:
        patch = validate_payload(model=Chamber, payload=request.get_json(silent=True) or {}, policy=CHAMBER_POLICY, partial=False)
        chamber = location_service.create_chamber(patch["zone_id"], patch["chamber_number"], patch.get("name"))
        return {"chamber": chamber.to_dict()}, 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create chamber")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.post("/shelves")
@require_auth
@require_role(ROLE_ADMIN)
def create_shelf_route():
    try:
        patch = validate_payload(model=Shelf, payload=request.get_json(silent=True) or {}, policy=SHELF_POLICY, partial=False)
        shelf = location_service.create_shelf(patch["chamber_id"], patch["shelf_number"])
        return {"shelf": shelf.to_dict(), "location": location_service.resolve_shelf(shelf.id).to_dict()}, 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create shelf")
        return jsonify({"error": "Internal server error"}), 500
