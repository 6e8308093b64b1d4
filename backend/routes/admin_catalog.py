"""
Admin Catalog Routes - product, category, variant and review management

All endpoints require an admin bearer token.

Endpoints:
- GET    /api/admin/products                      - All products (inactive included)
- POST   /api/admin/products                      - Create product
- PATCH  /api/admin/products/<id>                 - Update product
- DELETE /api/admin/products/<id>                 - Delete (soft when it has orders)
- PUT    /api/admin/products/<id>/variants        - Upsert color/size variants
- POST   /api/admin/categories                    - Create category
- PUT    /api/admin/categories/<id>               - Update category
- DELETE /api/admin/categories/<id>               - Delete (409 while it has products)
- GET    /api/admin/reviews?approved=false        - Moderation queue
- POST   /api/admin/reviews/<id>/approve          - Publish review
- DELETE /api/admin/reviews/<id>                  - Delete review
"""
import logging
import math

from flask import Blueprint, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from models.catalog import Category, Product, ProductVariant, Review
from models.database import db
from schemas.catalog import CategoryIn, ProductCreate, ProductUpdate, VariantsIn
from services.catalog_service import product_has_orders, slugify
from utils.auth import require_admin
from utils.normalize import ValidationError, to_bool, to_page

logger = logging.getLogger(__name__)

admin_catalog_bp = Blueprint('admin_catalog', __name__)


# =============================================================================
# Products
# =============================================================================

@admin_catalog_bp.route("/products", methods=["GET"])
@require_admin
def admin_list_products():
    try:
        page, limit = to_page(request.args.get("page"), request.args.get("limit"),
                              default_limit=DEFAULT_PAGE_SIZE, max_limit=MAX_PAGE_SIZE)
    except ValidationError as e:
        return make_error_response("INVALID_PARAMS", str(e), field=e.field)

    query = Product.query
    search = (request.args.get("search") or "").strip().lower()
    if search:
        query = query.filter(db.func.lower(Product.name).like(f"%{search}%"))
    total = query.count()
    products = query.order_by(Product.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        "data": [p.to_dict(include_variants=True) for p in products],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    })


@admin_catalog_bp.route("/products", methods=["POST"])
@require_admin
def admin_create_product():
    try:
        payload = ProductCreate.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    if payload.category_id is not None and db.session.get(Category, payload.category_id) is None:
        return make_error_response("INVALID_PARAMS", "Unknown category", field="categoryId")

    product = Product(**payload.model_dump())
    db.session.add(product)
    db.session.commit()
    logger.info(f"Product {product.id} created: {product.name}")
    return jsonify({"data": product.to_dict(include_variants=True)}), 201


@admin_catalog_bp.route("/products/<int:product_id>", methods=["PATCH", "PUT"])
@require_admin
def admin_update_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        return make_error_response("NOT_FOUND", f"Product {product_id} not found")

    try:
        payload = ProductUpdate.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("category_id") is not None and db.session.get(Category, changes["category_id"]) is None:
        return make_error_response("INVALID_PARAMS", "Unknown category", field="categoryId")

    for key, value in changes.items():
        setattr(product, key, value)

    if product.on_sale and product.sale_price is not None and product.sale_price >= product.price:
        db.session.rollback()
        return make_error_response("INVALID_PARAMS", "salePrice must be lower than price", field="salePrice")

    db.session.commit()
    return jsonify({"data": product.to_dict(include_variants=True)})


@admin_catalog_bp.route("/products/<int:product_id>", methods=["DELETE"])
@require_admin
def admin_delete_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        return make_error_response("NOT_FOUND", f"Product {product_id} not found")

    if product_has_orders(product.id):
        product.is_active = False
        db.session.commit()
        logger.info(f"Product {product.id} deactivated (referenced by orders)")
        return jsonify({"success": True, "softDeleted": True})

    db.session.delete(product)
    db.session.commit()
    logger.info(f"Product {product_id} deleted")
    return jsonify({"success": True, "softDeleted": False})


@admin_catalog_bp.route("/products/<int:product_id>/variants", methods=["PUT"])
@require_admin
def admin_upsert_variants(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        return make_error_response("NOT_FOUND", f"Product {product_id} not found")

    try:
        payload = VariantsIn.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    for item in payload.variants:
        variant = product.find_variant(item.color, item.size)
        if variant is None:
            variant = ProductVariant(color=item.color, size=item.size)
            product.variants.append(variant)
        variant.stock = item.stock
        variant.sku = item.sku

    db.session.commit()
    return jsonify({"data": [v.to_dict() for v in product.variants]})


# =============================================================================
# Categories
# =============================================================================

@admin_catalog_bp.route("/categories", methods=["POST"])
@require_admin
def admin_create_category():
    try:
        payload = CategoryIn.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    slug = payload.slug or slugify(payload.name)
    if Category.query.filter_by(slug=slug).first() is not None:
        return make_error_response("CONFLICT", f"Category slug '{slug}' already exists", field="slug")

    category = Category(**{**payload.model_dump(), "slug": slug})
    db.session.add(category)
    db.session.commit()
    return jsonify({"data": category.to_dict()}), 201


@admin_catalog_bp.route("/categories/<int:category_id>", methods=["PUT", "PATCH"])
@require_admin
def admin_update_category(category_id):
    category = db.session.get(Category, category_id)
    if category is None:
        return make_error_response("NOT_FOUND", f"Category {category_id} not found")

    try:
        payload = CategoryIn.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    slug = payload.slug or category.slug
    clash = Category.query.filter(Category.slug == slug, Category.id != category.id).first()
    if clash is not None:
        return make_error_response("CONFLICT", f"Category slug '{slug}' already exists", field="slug")

    for key, value in payload.model_dump().items():
        setattr(category, key, value)
    category.slug = slug
    db.session.commit()
    return jsonify({"data": category.to_dict()})


@admin_catalog_bp.route("/categories/<int:category_id>", methods=["DELETE"])
@require_admin
def admin_delete_category(category_id):
    category = db.session.get(Category, category_id)
    if category is None:
        return make_error_response("NOT_FOUND", f"Category {category_id} not found")

    product_count = category.products.count()
    if product_count:
        return make_error_response(
            "CONFLICT", "Category still has products",
            details={"productCount": product_count},
        )

    db.session.delete(category)
    db.session.commit()
    return jsonify({"success": True})


# =============================================================================
# Reviews
# =============================================================================

@admin_catalog_bp.route("/reviews", methods=["GET"])
@require_admin
def admin_list_reviews():
    try:
        approved = to_bool(request.args.get("approved"), default=False, field="approved")
    except ValidationError as e:
        return make_error_response("INVALID_PARAMS", str(e), field=e.field)

    reviews = Review.query.filter_by(is_approved=approved).order_by(Review.created_at.desc()).limit(200).all()
    return jsonify({"data": [r.to_dict() for r in reviews]})


@admin_catalog_bp.route("/reviews/<int:review_id>/approve", methods=["POST"])
@require_admin
def admin_approve_review(review_id):
    review = db.session.get(Review, review_id)
    if review is None:
        return make_error_response("NOT_FOUND", f"Review {review_id} not found")
    review.is_approved = True
    db.session.commit()
    return jsonify({"data": review.to_dict()})


@admin_catalog_bp.route("/reviews/<int:review_id>", methods=["DELETE"])
@require_admin
def admin_delete_review(review_id):
    review = db.session.get(Review, review_id)
    if review is None:
        return make_error_response("NOT_FOUND", f"Review {review_id} not found")
    db.session.delete(review)
    db.session.commit()
    return jsonify({"success": True})
