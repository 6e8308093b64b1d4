"""
Store Settings Routes

Public:
- GET    /api/settings/shipping-options         - Checkout shipping methods

Admin:
- GET    /api/admin/settings/store              - Effective store settings
- PUT    /api/admin/settings/store              - Partial update (null resets a field)
- GET    /api/admin/settings/shipping-options   - Shipping methods
- PUT    /api/admin/settings/shipping-options   - Replace the list
- DELETE /api/admin/settings/shipping-options   - Back to the built-in list
"""
from flask import Blueprint, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from api.middleware.error_envelope import validation_error_response
from schemas.admin import ShippingOptionsUpdate, StoreSettingsUpdate
from services import settings_service
from utils.auth import require_admin

settings_bp = Blueprint('settings', __name__)
admin_settings_bp = Blueprint('admin_settings', __name__)


@settings_bp.route("/shipping-options", methods=["GET"])
def public_shipping_options():
    return jsonify({"data": settings_service.get_shipping_options()})


@admin_settings_bp.route("/store", methods=["GET"])
@require_admin
def get_store_settings():
    return jsonify({"data": settings_service.get_store_settings()})


@admin_settings_bp.route("/store", methods=["PUT"])
@require_admin
def update_store_settings():
    try:
        payload = StoreSettingsUpdate.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)
    return jsonify({"data": settings_service.update_store_settings(payload)})


@admin_settings_bp.route("/shipping-options", methods=["GET"])
@require_admin
def get_shipping_options():
    return jsonify({"data": settings_service.get_shipping_options()})


@admin_settings_bp.route("/shipping-options", methods=["PUT"])
@require_admin
def replace_shipping_options():
    body = request.get_json(silent=True)
    # The storefront admin sends the bare list
    if isinstance(body, list):
        body = {"options": body}
    try:
        payload = ShippingOptionsUpdate.model_validate(body or {})
    except PydanticValidationError as e:
        return validation_error_response(e)
    return jsonify({"data": settings_service.update_shipping_options(payload)})


@admin_settings_bp.route("/shipping-options", methods=["DELETE"])
@require_admin
def reset_shipping_options():
    return jsonify({"data": settings_service.reset_shipping_options()})
