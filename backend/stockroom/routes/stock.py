# Overview: Flask API routes for stock levels and alerts; parses input and returns JSON responses.

"""
Stock read routes.

Stock levels are read-only over HTTP; they only move through
POST /api/purchases and POST /api/sales.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError, ValidationError, error_response
from ..decorators import require_auth, require_role
from ..validation import parse_int_arg
from ..models import ROLE_ADMIN
from ..services import stock_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
def stock_overview_route():
    """Overview with summary counts. ?filter=all|low|out"""
    try:
        try:
            overview = stock_service.get_stock_overview(request.args.get("filter"))
        except ValueError as e:
            raise ValidationError(str(e))
        return jsonify(overview)

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock overview")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/alerts")
@require_auth
def stock_alerts_route():
    try:
        days = parse_int_arg(request.args.get("days"), "days")
        if days is not None and days < 0:
            raise ValidationError("days must be >= 0")
        return jsonify(stock_service.get_stock_alerts(expiry_days=days))

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock alerts")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/reconcile")
@require_auth
@require_role(ROLE_ADMIN)
def reconcile_route():
    """
    Check stock_levels against the purchase/sale records.

    Read-only; reports violations, never repairs them.
    """
    try:
        report = stock_service.reconcile_stock_levels()
        if not report["ok"]:
            current_app.logger.warning(
                "Stock reconciliation found %d violation(s)", len(report["violations"])
            )
        return jsonify(report)

    except Exception:
        current_app.logger.exception("Failed to reconcile stock levels")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:product_id>")
@require_auth
def product_stock_route(product_id: int):
    try:
        return jsonify(stock_service.get_product_stock(product_id))

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product stock")
        return jsonify({"error": "Internal server error"}), 500
