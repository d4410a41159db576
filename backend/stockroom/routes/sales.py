# Overview: Flask API routes for sales (stock-out) operations; parses input and returns JSON responses.

"""Sales API routes. A sale is rejected with 409 when stock is insufficient."""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Sale
from ..errors import LedgerError, error_response
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    normalize_amount_field,
    enforce_rules_sale,
    parse_int_arg,
)
from ..decorators import require_auth
from ..services import stock_service, transaction_recorder
from .purchases import history_limit


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "unit_price_cents", "notes"},
    required_on_create={"product_id", "quantity"},
)


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a stock-out.

    unit_price_cents (or unit_price as a decimal string) defaults to the
    product's selling price.

    Returns 201 {sale, new_stock_level}; 409 INSUFFICIENT_STOCK with
    available/requested when there is not enough stock.
    """
    try:
        payload = request.get_json(silent=True) or {}
        payload = normalize_amount_field(payload, "unit_price", "unit_price_cents")

        patch = validate_payload(
            model=Sale,
            payload=payload,
            policy=SALE_POLICY,
            partial=False,
        )
        enforce_rules_sale(patch)

        result = stock_service.record_sale(
            product_id=patch["product_id"],
            quantity=patch["quantity"],
            unit_price_cents=patch.get("unit_price_cents"),
            actor_user_id=g.current_user.id,
            notes=patch.get("notes"),
        )

        return jsonify({
            "sale": result.sale.to_dict(),
            "new_stock_level": result.new_stock_level,
        }), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """Sales history, most recent first. ?limit=&product_id="""
    try:
        sales = transaction_recorder.list_sales(
            limit=history_limit(),
            product_id=parse_int_arg(request.args.get("product_id"), "product_id"),
        )
        return jsonify({"sales": sales})

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500
