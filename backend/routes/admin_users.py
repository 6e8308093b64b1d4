"""
Admin User Routes - back-office accounts

Endpoints:
- GET    /api/admin/users          - List (search, page, limit)
- POST   /api/admin/users          - Create an account
- GET    /api/admin/users/<id>     - Detail
- PATCH  /api/admin/users/<id>     - Update name, email, password, role, active flag
- DELETE /api/admin/users/<id>     - Delete

The last active admin can never be demoted, deactivated or deleted (409).
"""
import math

from flask import Blueprint, g, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from schemas.admin import UserCreate, UserUpdate
from services import user_service
from services.user_service import UserConflict, UserNotFound
from utils.auth import require_admin
from utils.normalize import ValidationError, to_page

admin_users_bp = Blueprint('admin_users', __name__)


@admin_users_bp.route("", methods=["GET"])
@require_admin
def list_users():
    try:
        page, limit = to_page(request.args.get("page"), request.args.get("limit"),
                              default_limit=20, max_limit=50)
    except ValidationError as e:
        return make_error_response("INVALID_PARAMS", str(e), field=e.field)

    search = (request.args.get("search") or "").strip()[:100] or None
    users, total = user_service.list_users(search=search, page=page, limit=limit)
    return jsonify({
        "data": [u.to_dict() for u in users],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    })


@admin_users_bp.route("", methods=["POST"])
@require_admin
def create_user():
    try:
        payload = UserCreate.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    try:
        user = user_service.create_user(payload)
    except UserConflict as e:
        return make_error_response("CONFLICT", str(e), field="email")
    return jsonify({"data": user.to_dict()}), 201


@admin_users_bp.route("/<int:user_id>", methods=["GET"])
@require_admin
def get_user(user_id):
    try:
        user = user_service.get_user(user_id)
    except UserNotFound as e:
        return make_error_response("NOT_FOUND", str(e))
    return jsonify({"data": user.to_dict()})


@admin_users_bp.route("/<int:user_id>", methods=["PATCH"])
@require_admin
def update_user(user_id):
    try:
        user = user_service.get_user(user_id)
    except UserNotFound as e:
        return make_error_response("NOT_FOUND", str(e))
    try:
        payload = UserUpdate.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    try:
        user = user_service.update_user(user, payload, acting_user=g.current_user)
    except UserConflict as e:
        return make_error_response("CONFLICT", str(e))
    return jsonify({"data": user.to_dict()})


@admin_users_bp.route("/<int:user_id>", methods=["DELETE"])
@require_admin
def delete_user(user_id):
    try:
        user = user_service.get_user(user_id)
        user_service.delete_user(user, acting_user=g.current_user)
    except UserNotFound as e:
        return make_error_response("NOT_FOUND", str(e))
    except UserConflict as e:
        return make_error_response("CONFLICT", str(e))
    return jsonify({"success": True})
