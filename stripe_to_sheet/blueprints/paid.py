"""Paid-status blueprint: public read endpoints.

Route Map:
  GET /health           liveness, no auth
  GET /check?email=...  { paid: bool, status?: str }

Both are called cross-origin from the client app, so they carry open
CORS headers. /check always answers 200: a sheet failure or an exceeded
rate limit reads as { paid: false }.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from stripe_to_sheet.extensions import get_relay, limiter
from stripe_to_sheet.services.paid_status import NOT_PAID
from stripe_to_sheet.services.row_store import RowStoreError

logger = logging.getLogger(__name__)

SERVICE_NAME = "stripe-to-sheet"

paid_bp = Blueprint("paid", __name__)


def mask_email(email):
    """f***@bar.com style, for logs."""
    local, at, domain = email.partition("@")
    if not at:
        return "***"
    return f"{local[:1]}***@{domain}"


@paid_bp.after_request
def add_cors_headers(response):
    """Add CORS headers so browser clients on other origins can call us."""
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


@paid_bp.errorhandler(429)
def rate_limited(e):
    """Over the /check limit reads as unpaid, still a 200."""
    logger.warning(f"check rate limited for {request.remote_addr}: {e.description}")
    return jsonify(NOT_PAID.to_dict()), 200


@paid_bp.route("/health")
def health():
    return jsonify(ok=True, service=SERVICE_NAME)


@paid_bp.route("/check")
@limiter.limit(lambda: current_app.config["CHECK_RATE_LIMIT"])
def check():
    """Is this Google account a paying user?

    Only status "active" is paid. Rows with no status are legacy rows and
    count as active.
    """
    email = (request.args.get("email") or "").strip()
    if not email:
        return jsonify(NOT_PAID.to_dict())

    try:
        result = get_relay().query.check(email)
    except RowStoreError as e:
        logger.error(f"check failed for {mask_email(email)}: {e}")
        result = NOT_PAID

    return jsonify(result.to_dict())
