"""
Cron Routes - maintenance trigger for an external scheduler

Endpoints:
- GET /api/cron/orders - Run every maintenance job
  Requires `Authorization: Bearer <CRON_SECRET>`.
"""
import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from api.middleware.error_envelope import make_error_response
from services import order_maintenance
from utils.rate_limiter import limiter

logger = logging.getLogger(__name__)

cron_bp = Blueprint('cron', __name__)


def _authorized() -> bool:
    secret = current_app.config.get("CRON_SECRET")
    if not secret:
        return False
    header = request.headers.get("Authorization") or ""
    return hmac.compare_digest(header, f"Bearer {secret}")


@cron_bp.route("/orders", methods=["GET", "POST"])
@limiter.exempt
def run_order_maintenance():
    if not _authorized():
        return make_error_response("UNAUTHORIZED", "Invalid cron credentials")

    results = order_maintenance.run_all()
    logger.info(f"Cron maintenance finished: {results}")
    return jsonify({"success": True, "results": results})
