# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

"""
Product management routes.

SECURITY: All routes require an active session.
- Reads are open to every role; cost prices need can_view_costs
- Creates and edits need can_edit_products
- Deletes need can_delete_items
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..models.records import PRODUCTS, Category, Product
from ..responses import store_error_response
from ..services import products_service, reporting_service
from ..services.products_service import product_view
from ..stores import StoreError
from ..validation import (
    ConflictError,
    ValidationError,
    ValidationPolicy,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"code", "name", "sale_price"},
)

CATEGORY_POLICY = ValidationPolicy(
    writable_fields={"name", "color"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _include_costs() -> bool:
    return g.ctx.can("can_view_costs")


@products_bp.get("")
@require_auth
def list_products_route():
    """List products from the session's synchronized collection."""
    return jsonify(products_service.list_products(g.ctx, g.data_session.collection(PRODUCTS)))


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    items = reporting_service.low_stock(g.data_session.collection(PRODUCTS))
    return jsonify({"items": items, "count": len(items)})


@products_bp.get("/<product_id>")
@require_auth
def get_product_route(product_id: str):
    try:
        product = products_service.get_product(g.ctx, product_id)
    except StoreError as e:
        return store_error_response(e)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product_view(product.to_dict(), include_costs=_include_costs()))


@products_bp.post("")
@require_auth
@require_capability("can_edit_products")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(record_cls=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        created = products_service.create_product(g.ctx, patch=patch)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreError as e:
        return store_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(product_view(created.to_dict(), include_costs=_include_costs())), 201


@products_bp.put("/<product_id>")
@require_auth
@require_capability("can_edit_products")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(record_cls=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        updated = products_service.update_product(g.ctx, product_id=product_id, patch=patch)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreError as e:
        return store_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(product_view(updated.to_dict(), include_costs=_include_costs()))


@products_bp.delete("/<product_id>")
@require_auth
@require_capability("can_delete_items")
def delete_product_route(product_id: str):
    try:
        deleted = products_service.delete_product(g.ctx, product_id=product_id)
    except StoreError as e:
        return store_error_response(e)

    if not deleted:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"ok": True})


@categories_bp.get("")
@require_auth
def list_categories_route():
    return jsonify(products_service.list_categories(g.ctx))


@categories_bp.post("")
@require_auth
@require_capability("can_edit_products")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(record_cls=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        if not patch["name"]:
            raise ValidationError("name cannot be blank")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        created = products_service.create_category(g.ctx, patch=patch)
    except StoreError as e:
        return store_error_response(e)
    return jsonify(created.to_dict()), 201


@categories_bp.delete("/<category_id>")
@require_auth
@require_capability("can_delete_items")
def delete_category_route(category_id: str):
    try:
        deleted = products_service.delete_category(g.ctx, category_id=category_id)
    except StoreError as e:
        return store_error_response(e)

    if not deleted:
        return jsonify({"error": "Category not found"}), 404
    return jsonify({"ok": True})
