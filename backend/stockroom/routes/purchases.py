# Overview: Flask API routes for purchase (stock-in) operations; parses input and returns JSON responses.

"""
Purchase routes.

SECURITY: All routes require authentication. Any active user (admin or
staff) may record a purchase; the recorder is always g.current_user.

Amounts:
- unit_cost_cents (integer cents) or unit_cost (decimal string, e.g. "1.20").
Location:
- shelf_id, or location_code (e.g. "R-C01-S03") resolved to a shelf.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Purchase
from ..errors import LedgerError, error_response
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    normalize_amount_field,
    enforce_rules_purchase,
    parse_int_arg,
)
from ..decorators import require_auth
from ..services import stock_service, transaction_recorder
from ..services.location_service import find_shelf_by_code


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")

PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "shelf_id", "quantity", "unit_cost_cents", "notes"},
    required_on_create={"product_id", "shelf_id", "quantity", "unit_cost_cents"},
)


def history_limit() -> int:
    default = current_app.config.get("DEFAULT_HISTORY_LIMIT", 50)
    limit = parse_int_arg(request.args.get("limit"), "limit", default)
    if limit <= 0:
        raise ValidationError("limit must be a positive integer")
    return min(limit, 500)


@purchases_bp.post("")
@require_auth
def create_purchase_route():
    """
    Record a stock-in.

    Returns 201 {purchase, new_stock_level}.
    """
    try:
        payload = request.get_json(silent=True) or {}
        payload = normalize_amount_field(payload, "unit_cost", "unit_cost_cents")

        location_code = payload.pop("location_code", None) if isinstance(payload, dict) else None
        if location_code is not None and not isinstance(location_code, str):
            raise ValidationError("location_code must be a string like R-C01-S03")
        if location_code and "shelf_id" not in payload:
            payload["shelf_id"] = find_shelf_by_code(location_code).shelf_id

        patch = validate_payload(
            model=Purchase,
            payload=payload,
            policy=PURCHASE_POLICY,
            partial=False,
        )
        enforce_rules_purchase(patch)

        result = stock_service.record_purchase(
            product_id=patch["product_id"],
            shelf_id=patch["shelf_id"],
            quantity=patch["quantity"],
            unit_cost_cents=patch["unit_cost_cents"],
            actor_user_id=g.current_user.id,
            notes=patch.get("notes"),
        )

        return jsonify({
            "purchase": transaction_recorder.purchase_summary(result.purchase, result.shelf),
            "new_stock_level": result.new_stock_level,
        }), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@require_auth
def list_purchases_route():
    """Purchase history, most recent first. ?limit=&product_id="""
    try:
        purchases = transaction_recorder.list_purchases(
            limit=history_limit(),
            product_id=parse_int_arg(request.args.get("product_id"), "product_id"),
        )
        return jsonify({"purchases": purchases})

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500
