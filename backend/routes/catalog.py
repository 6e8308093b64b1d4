"""
Catalog Routes - public storefront browsing

Endpoints:
- GET  /api/products                 - Filtered, sorted, paginated listing
- GET  /api/products/<id>            - Product with variants and rating
- GET  /api/categories               - Active categories with product counts
- GET  /api/products/<id>/reviews    - Approved reviews
- POST /api/products/<id>/reviews    - Submit a review (held for approval)
"""
import logging
import math

from flask import Blueprint, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SORT_OPTIONS
from models.catalog import Category, Product, Review
from models.database import db
from schemas.catalog import ReviewIn
from services.catalog_service import ProductFilters, category_product_counts, list_products
from utils.normalize import ValidationError, to_bool, to_float, to_page
from utils.rate_limiter import RATE_LIMITS, limiter

logger = logging.getLogger(__name__)

catalog_bp = Blueprint('catalog', __name__)


def _active_product_or_none(product_id):
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        return None
    return product


@catalog_bp.route("/products", methods=["GET"])
def get_products():
    args = request.args
    try:
        page, limit = to_page(args.get("page"), args.get("limit"),
                              default_limit=DEFAULT_PAGE_SIZE, max_limit=MAX_PAGE_SIZE)
        filters = ProductFilters(
            category=args.get("category") or None,
            search=(args.get("search") or "").strip() or None,
            min_price=to_float(args.get("min_price"), field="min_price"),
            max_price=to_float(args.get("max_price"), field="max_price"),
            in_stock=to_bool(args.get("in_stock"), field="in_stock"),
            on_sale=to_bool(args.get("on_sale"), field="on_sale"),
            sort=args.get("sort") or "relevance",
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        return make_error_response("INVALID_PARAMS", str(e), field=e.field)

    if filters.sort not in SORT_OPTIONS:
        return make_error_response(
            "INVALID_PARAMS", f"Unknown sort '{filters.sort}'",
            field="sort", details={"allowed": list(SORT_OPTIONS)},
        )

    products, total = list_products(filters)
    return jsonify({
        "data": [p.to_dict() for p in products],
        "total": total,
        "page": filters.page,
        "limit": filters.limit,
        "totalPages": math.ceil(total / filters.limit) if total else 0,
    })


@catalog_bp.route("/products/<int:product_id>", methods=["GET"])
def get_product(product_id):
    product = _active_product_or_none(product_id)
    if product is None:
        return make_error_response("NOT_FOUND", f"Product {product_id} not found")
    return jsonify({"data": product.to_dict(include_variants=True, include_rating=True)})


@catalog_bp.route("/categories", methods=["GET"])
def get_categories():
    counts = category_product_counts()
    categories = Category.query.filter_by(is_active=True).order_by(Category.name.asc()).all()
    return jsonify({"data": [c.to_dict(product_count=counts.get(c.id, 0)) for c in categories]})


@catalog_bp.route("/products/<int:product_id>/reviews", methods=["GET"])
def get_reviews(product_id):
    product = _active_product_or_none(product_id)
    if product is None:
        return make_error_response("NOT_FOUND", f"Product {product_id} not found")

    reviews = (
        Review.query
        .filter_by(product_id=product_id, is_approved=True)
        .order_by(Review.created_at.desc())
        .all()
    )
    rating, count = product.rating_summary()
    return jsonify({
        "data": [r.to_dict() for r in reviews],
        "rating": rating,
        "reviewCount": count,
    })


@catalog_bp.route("/products/<int:product_id>/reviews", methods=["POST"])
@limiter.limit(RATE_LIMITS["public_form"])
def create_review(product_id):
    product = _active_product_or_none(product_id)
    if product is None:
        return make_error_response("NOT_FOUND", f"Product {product_id} not found")

    try:
        payload = ReviewIn.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    review = Review(
        product_id=product.id,
        author_name=payload.author_name,
        rating=payload.rating,
        comment=payload.comment,
        is_approved=False,
    )
    db.session.add(review)
    db.session.commit()
    logger.info(f"Review {review.id} submitted for product {product.id}")
    return jsonify({
        "data": review.to_dict(),
        "message": "Gracias. Tu reseña se publicará cuando sea aprobada.",
    }), 201
