"""Webhooks blueprint: /webhook

Receives Stripe webhook events. Raw body is required for signature
verification, so the body is never parsed before verify_webhook_signature.

Responses:
  400  empty body / missing signature or secret / verification failed
  200  {"received": true}, including ignored events and no-op updates
  500  the sheet write failed (Stripe retries the delivery)
"""

import logging

import stripe
from flask import Blueprint, Response, jsonify, request

from stripe_to_sheet.extensions import get_relay
from stripe_to_sheet.services.event_normalizer import Activate, normalize_event
from stripe_to_sheet.services.row_store import RowStoreError
from stripe_to_sheet.services.stripe_service import verify_webhook_signature

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


def _text(message, status):
    return Response(message, status=status, mimetype="text/plain")


@webhooks_bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """Verify, normalize and reconcile one Stripe event."""
    payload = request.get_data()
    if not payload:
        logger.warning("Webhook: empty body")
        return _text("Empty body", 400)

    relay = get_relay()
    webhook_secret = relay.settings.webhook_secret
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header or not webhook_secret:
        logger.warning("Webhook: missing Stripe-Signature or STRIPE_WEBHOOK_SECRET")
        return _text("Bad request", 400)

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(payload, sig_header, webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return _text(f"Webhook Error: {e}", 400)

    intent = normalize_event(event, relay.settings.email_field_key)

    # --- Reconcile into the sheet ---
    try:
        outcome = relay.reconciler.apply(intent)
    except RowStoreError as e:
        logger.error(f"Webhook {event.get('id')}: sheet write failed: {e}")
        if isinstance(intent, Activate):
            return _text("Append failed", 500)
        return _text("Update failed", 500)

    logger.info(f"Webhook {event.get('id')} ({event.get('type')}): {outcome}")
    return jsonify(received=True), 200
