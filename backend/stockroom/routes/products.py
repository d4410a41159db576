# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations: any active user
- Write operations: admin only

Prices are accepted as integer cents (cost_price_cents, selling_price_cents)
or as decimal strings (cost_price, selling_price).
"""
from flask import Blueprint, request, jsonify, current_app

from ..models import Product, Category, ROLE_ADMIN
from ..errors import LedgerError, error_response
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    normalize_amount_field,
    enforce_rules_product,
    parse_int_arg,
    ValidationError,
)
from ..decorators import require_auth, require_role
from ..services import catalog_service

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "category_id",
        "cost_price_cents",
        "selling_price_cents",
        "reorder_level",
        "expiry_date",
        "is_active",
    },
    required_on_create={"sku", "name"},
)

PRODUCT_PATCH_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_POLICY.writable_fields - {"sku"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _product_payload() -> dict:
    payload = request.get_json(silent=True) or {}
    payload = normalize_amount_field(payload, "cost_price", "cost_price_cents")
    return normalize_amount_field(payload, "selling_price", "selling_price_cents")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - include_inactive: "1"/"true" to include deactivated products
    - limit: int (optional)
    """
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    limit = parse_int_arg(request.args.get("limit"), "limit")
    if limit is not None and limit <= 0:
        raise ValidationError("limit must be a positive integer")
    products = catalog_service.list_products(active_only=not include_inactive, limit=limit)
    return {"products": [p.to_dict() for p in products]}


@products_bp.get("/search")
@require_auth
def search_products_route():
    """Name/SKU substring search over active products (for pickers)."""
    q = (request.args.get("q") or "").strip()
    if not q:
        return {"products": []}
    products = catalog_service.list_products(search=q, limit=20)
    return {"products": [p.to_dict() for p in products]}


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    try:
        patch = validate_payload(model=Product, payload=_product_payload(), policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = catalog_service.create_product(**patch)
        return {"product": created.to_dict()}, 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return {"product": catalog_service.get_product(product_id).to_dict()}
    except LedgerError as e:
        return error_response(e)


@products_bp.get("/sku/<string:sku>")
@require_auth
def get_product_by_sku_route(sku: str):
    """Exact SKU lookup (barcode scanners)."""
    try:
        return {"product": catalog_service.get_product_by_sku(sku).to_dict()}
    except LedgerError as e:
        return error_response(e)


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    """
    Update prices, reorder level, name, category, expiry or active flag.

    sku cannot be changed. Stock cannot be edited here.
    """
    try:
        patch = validate_payload(model=Product, payload=_product_payload(), policy=PRODUCT_PATCH_POLICY, partial=True)
        updated = catalog_service.update_product(product_id, patch)
        return {"product": updated.to_dict()}

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/deactivate")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_product_route(product_id: int):
    try:
        product = catalog_service.deactivate_product(product_id)
        return {"product": product.to_dict()}

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("")
@require_auth
def list_categories_route():
    return {"categories": [c.to_dict() for c in catalog_service.list_categories()]}


@categories_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_category_route():
    try:
        patch = validate_payload(
            model=Category,
            payload=request.get_json(silent=True) or {},
            policy=CATEGORY_POLICY,
            partial=False,
        )
        category = catalog_service.create_category(patch["name"], patch.get("description"))
        return {"category": category.to_dict()}, 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500
