# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes (checkout, history, quotes)."""

from flask import Blueprint, current_app, g, jsonify, request

from .. import money
from ..decorators import require_auth, require_owner
from ..models.records import PRODUCTS, SALES, LineItem, Product
from ..responses import store_error_response
from ..services import maintenance_service, sales_service
from ..services.sales_service import SaleDraft, SaleError, sale_view
from ..stores import StoreError

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_ERROR_STATUS = {
    SaleError.VALIDATION: 400,
    SaleError.POLICY: 400,
    SaleError.NOT_FOUND: 404,
    SaleError.INSUFFICIENT_STOCK: 409,
    SaleError.CONFLICT: 409,
    SaleError.UNAVAILABLE: 503,
}


def _sale_error_response(e: SaleError):
    return jsonify({"error": str(e), "reason": e.reason, "details": e.details}), SALE_ERROR_STATUS.get(e.reason, 500)


def _include_costs() -> bool:
    return g.ctx.can("can_view_costs")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale from a cart.

    Body: {"items": [{"product_id", "quantity"}], "payment_method", "client_id"}
    """
    try:
        draft = SaleDraft.from_payload(request.get_json(silent=True))
        sale = sales_service.record_sale(g.ctx, draft)
    except SaleError as e:
        return _sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale_view(sale.to_dict(), include_costs=_include_costs())}), 201


@sales_bp.post("/quote")
@require_auth
def quote_route():
    """
    Totals of a cart at current prices, without recording anything.

    Optional "tendered" and "tender_currency" (hard, local or secondary) add
    the change due.
    """
    data = request.get_json(silent=True) or {}
    try:
        draft = SaleDraft.from_payload(data)
    except SaleError as e:
        return _sale_error_response(e)

    config = g.ctx.config
    products = {p["id"]: Product.from_dict(p) for p in g.data_session.collection(PRODUCTS)}
    items = []
    for line in draft.items:
        product = products.get(line.product_id)
        if product is None:
            return jsonify({"error": f"Product {line.product_id} not found"}), 404
        items.append(LineItem(
            product_id=product.id,
            name=product.name,
            quantity=line.quantity,
            sale_price=product.sale_price,
            unit=product.unit,
        ))

    totals = sales_service.compute_totals(items, config)
    result = {
        "subtotal": str(totals.subtotal),
        "tax_amount": str(totals.tax_amount) if totals.tax_amount is not None else None,
        "total": str(totals.total),
        "total_local": str(totals.total_local),
        "exchange_rate": str(totals.exchange_rate),
    }
    if config.show_secondary_currency:
        result["total_secondary"] = str(money.mul(totals.total, config.secondary_exchange_rate))

    if data.get("tendered") not in (None, ""):
        rates = {
            "hard": 1,
            "local": config.exchange_rate,
            "secondary": config.secondary_exchange_rate,
        }
        currency = data.get("tender_currency") or "hard"
        if currency not in rates:
            return jsonify({"error": f"tender_currency must be one of: {', '.join(rates)}"}), 400
        try:
            change = sales_service.change_due(totals.total, data["tendered"], exchange_rate=rates[currency])
        except ValueError:
            return jsonify({"error": "tendered must be a number"}), 400
        result["change_due"] = str(change)

    return jsonify(result)


@sales_bp.get("")
@require_auth
def list_sales_route():
    """Sales history, newest first."""
    include_costs = _include_costs()
    items = [sale_view(r, include_costs=include_costs) for r in g.data_session.collection(SALES)]
    return jsonify({"items": items, "count": len(items)})


@sales_bp.get("/<sale_id>")
@require_auth
def get_sale_route(sale_id: str):
    try:
        sale = sales_service.get_sale(g.ctx, sale_id)
    except StoreError as e:
        return store_error_response(e)
    if sale is None:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sale_view(sale.to_dict(), include_costs=_include_costs())})


@sales_bp.delete("")
@require_auth
@require_owner
def clear_sales_route():
    """Administrative history clear."""
    try:
        deleted = maintenance_service.clear_sales_history(g.ctx)
    except StoreError as e:
        return store_error_response(e)
    return jsonify({"deleted": deleted})
