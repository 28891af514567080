"""Stripe service: webhook signature verification.

Stripe is the only party allowed to write to the sheet, so every webhook
body is checked against the endpoint signing secret before it is parsed.
"""

import json
import logging

import stripe

logger = logging.getLogger(__name__)


def verify_webhook_signature(payload, sig_header, webhook_secret):
    """Verify the Stripe-Signature header and decode the event.

    Args:
        payload: raw request body (bytes or str), exactly as received.
        sig_header: value of the Stripe-Signature header.
        webhook_secret: endpoint signing secret (whsec_...).

    Returns the event as a plain dict.
    Raises stripe.SignatureVerificationError on a bad signature or a
    timestamp outside Stripe's tolerance window, ValueError when the body
    is not a JSON object.
    """
    # Signed over the text body; older stripe releases do not decode bytes
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")

    stripe.WebhookSignature.verify_header(
        payload,
        sig_header,
        webhook_secret,
        tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
    )

    event = json.loads(payload)
    if not isinstance(event, dict):
        raise ValueError("Event payload is not a JSON object")
    return event
