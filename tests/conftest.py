"""Shared test fixtures for the stripe-to-sheet test suite.

Provides:
- app: Flask app configured for testing (in-memory row store, no rate limits)
- store: the app's InMemoryRowStore, emptied around every test
- client: Flask test client
- sign: builds a real Stripe-Signature header for a payload
- post_event: signs an event dict and POSTs it to /webhook
- signals_log: records every relay signal sent during a test
"""

import hashlib
import hmac
import json
import time

import pytest

from stripe_to_sheet import create_app
from stripe_to_sheet import signals as relay_signals

SHEET = "有料ユーザー"
WEBHOOK_SECRET = "whsec_test_fake"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def store(app):
    """Empty in-memory sheet for each test."""
    store = app.extensions["sheet_relay"].store
    store.reset()
    yield store
    store.reset()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def _sign(payload, secret=WEBHOOK_SECRET, timestamp=None):
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def sign():
    """Stripe-Signature header builder: sign(payload, secret=..., timestamp=...)."""
    return _sign


@pytest.fixture
def post_event(client):
    """POST a correctly signed event dict to /webhook."""

    def _post(event, secret=WEBHOOK_SECRET):
        payload = json.dumps(event)
        return client.post(
            "/webhook",
            data=payload,
            content_type="application/json",
            headers={"Stripe-Signature": _sign(payload, secret)},
        )

    return _post


@pytest.fixture
def signals_log():
    """Collect (signal name, kwargs) for every relay signal sent in the test."""
    log = []
    names = [
        "event_ignored",
        "row_created",
        "row_updated",
        "subscription_unmatched",
        "store_failed",
    ]
    receivers = []
    for name in names:
        def receiver(sender, _name=name, **kwargs):
            log.append((_name, kwargs))

        getattr(relay_signals, name).connect(receiver, weak=False)
        receivers.append((name, receiver))

    yield log

    for name, receiver in receivers:
        getattr(relay_signals, name).disconnect(receiver)
