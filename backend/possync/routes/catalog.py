# Overview: Read-only Flask API routes for replicated entities.

from flask import Blueprint, request, jsonify

from .. import get_engine
from ..errors import NotFoundError


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.errorhandler(NotFoundError)
def handle_not_found(e: NotFoundError):
    return jsonify(e.to_dict()), 404


@catalog_bp.get("/products")
def list_products_route():
    products = get_engine().products.list()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@catalog_bp.get("/products/<product_id>")
def get_product_route(product_id: str):
    return jsonify({"product": get_engine().products.get(product_id).to_dict()}), 200


@catalog_bp.get("/users")
def list_users_route():
    """List users; ?email= narrows to the account with that address."""
    users = get_engine().users
    email = request.args.get("email")
    if email:
        user = users.find_by_email(email)
        items = [user] if user else []
    else:
        items = users.list()
    return jsonify({"items": [u.to_dict() for u in items], "count": len(items)}), 200


@catalog_bp.get("/users/<user_id>")
def get_user_route(user_id: str):
    return jsonify({"user": get_engine().users.get(user_id).to_dict()}), 200


@catalog_bp.get("/sales")
def list_sales_route():
    sales = get_engine().sales.list()
    return jsonify({"items": [s.to_dict(include_items=False) for s in sales], "count": len(sales)}), 200


@catalog_bp.get("/sales/<sale_id>")
def get_sale_route(sale_id: str):
    return jsonify({"sale": get_engine().sales.get(sale_id).to_dict()}), 200


@catalog_bp.get("/purchases")
def list_purchases_route():
    purchases = get_engine().purchases.list()
    return jsonify({"items": [p.to_dict(include_items=False) for p in purchases], "count": len(purchases)}), 200


@catalog_bp.get("/purchases/<purchase_id>")
def get_purchase_route(purchase_id: str):
    return jsonify({"purchase": get_engine().purchases.get(purchase_id).to_dict()}), 200
