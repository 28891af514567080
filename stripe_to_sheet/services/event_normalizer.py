"""Event normalizer: verified Stripe event -> intent.

Maps the loosely-typed event envelope onto one of three intents:
- Activate(email, subscription_id)       checkout.session.completed
- UpdateStatus(subscription_id, status)  customer.subscription.updated / .deleted
- Ignore(event_type, reason)             everything else, or a payload missing
                                         the identifiers we need

Every parser is fallible: a missing required field yields Ignore instead of
passing None deeper. This module never touches the row store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stripe_to_sheet.signals import event_ignored

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_CANCELED = "canceled"


@dataclass(frozen=True)
class Activate:
    email: str
    subscription_id: str = ""


@dataclass(frozen=True)
class UpdateStatus:
    subscription_id: str
    status: str


@dataclass(frozen=True)
class Ignore:
    event_type: str
    reason: str


def _as_dict(value):
    return value if isinstance(value, dict) else {}


def _text(value):
    """Trimmed string, "" for None."""
    if value is None:
        return ""
    return str(value).strip()


# ──────────────────────────────────────────────
# Email resolution (checkout sessions)
# ──────────────────────────────────────────────

def resolve_session_email(session, email_field_key=""):
    """Find the customer's Google account email on a Checkout Session.

    Order:
      1. custom_fields matching email_field_key (any field when unset):
         text value, then dropdown value
      2. when no key is configured: the first non-empty text custom field
      3. customer_email, customer_details.email, customer_details.customer_email

    Returns the trimmed value (original case) or "" when nothing is found.
    """
    custom_fields = session.get("custom_fields")
    if isinstance(custom_fields, list) and custom_fields:
        for field in custom_fields:
            field = _as_dict(field)
            key = _text(field.get("key"))
            if email_field_key and key != email_field_key:
                continue
            for kind in ("text", "dropdown"):
                value = _text(_as_dict(field.get(kind)).get("value"))
                if value:
                    return value

        if not email_field_key:
            for field in custom_fields:
                value = _text(_as_dict(_as_dict(field).get("text")).get("value"))
                if value:
                    return value

    details = _as_dict(session.get("customer_details"))
    for candidate in (
        session.get("customer_email"),
        details.get("email"),
        details.get("customer_email"),
    ):
        value = _text(candidate)
        if value:
            return value
    return ""


# ──────────────────────────────────────────────
# Per-type parsers
# ──────────────────────────────────────────────

def _parse_checkout_completed(event_type, obj, email_field_key):
    if not obj:
        return Ignore(event_type, "missing session object")

    email = resolve_session_email(obj, email_field_key)
    if not email:
        logger.warning(
            f"{event_type}: Google account email not found. "
            f"custom_fields={obj.get('custom_fields')!r}"
        )
        return Ignore(event_type, "no email on session")

    subscription = obj.get("subscription")
    subscription_id = str(subscription) if subscription else ""
    return Activate(email=email.lower(), subscription_id=subscription_id)


def _parse_subscription_updated(event_type, obj, email_field_key):
    subscription_id = _text(obj.get("id"))
    if not subscription_id:
        return Ignore(event_type, "missing subscription id")
    status = obj.get("status")
    return UpdateStatus(
        subscription_id=subscription_id,
        status=str(status) if status else "",
    )


def _parse_subscription_deleted(event_type, obj, email_field_key):
    logger.info(
        f"{event_type} received: subscription={obj.get('id')} "
        f"customer={obj.get('customer')} status={obj.get('status')} "
        f"canceled_at={obj.get('canceled_at')}"
    )
    subscription_id = _text(obj.get("id"))
    if not subscription_id:
        return Ignore(event_type, "missing subscription id")
    # Deletion always forces canceled, whatever status the payload carries
    return UpdateStatus(subscription_id=subscription_id, status=STATUS_CANCELED)


def _parse_customer_deleted(event_type, obj, email_field_key):
    # Known gap: this event carries no subscription id and we keep no
    # customer -> email mapping. Cancellation arrives via
    # customer.subscription.deleted instead.
    logger.warning(
        f"{event_type}: customer={obj.get('id')} email={obj.get('email')}: "
        "no subscription id available, expecting customer.subscription.deleted"
    )
    return Ignore(event_type, "no subscription id on customer.deleted")


PARSERS = {
    "checkout.session.completed": _parse_checkout_completed,
    "customer.subscription.updated": _parse_subscription_updated,
    "customer.subscription.deleted": _parse_subscription_deleted,
    "customer.deleted": _parse_customer_deleted,
}


def normalize_event(event, email_field_key=""):
    """Map a verified event envelope to exactly one intent.

    Args:
        event: the decoded event dict ({"id", "type", "data": {"object": ...}}).
        email_field_key: Checkout custom field key holding the email ("" = any).

    Returns Activate, UpdateStatus, or Ignore.
    """
    event = _as_dict(event)
    event_type = _text(event.get("type"))
    obj = _as_dict(_as_dict(event.get("data")).get("object"))

    logger.info(
        f"Webhook received: {event_type} id={event.get('id')} "
        f"object={obj.get('object')}:{obj.get('id')}"
    )

    parser = PARSERS.get(event_type)
    if parser is None:
        logger.info(f"Unhandled event type: {event_type}")
        intent = Ignore(event_type, "unhandled event type")
    else:
        intent = parser(event_type, obj, email_field_key)

    if isinstance(intent, Ignore):
        logger.info(f"Ignoring {event_type}: {intent.reason}")
        event_ignored.send(None, event_type=event_type, reason=intent.reason)
    return intent
