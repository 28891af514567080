"""Tests for configuration and app wiring.

Covers:
- Config.validate reports missing required variables
- RelaySettings built from app config
- create_app boots with missing config (warning only)
- Signature verification helper
"""

import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
import stripe

from stripe_to_sheet import create_app
from stripe_to_sheet.config import Config, RelaySettings, config_by_name
from stripe_to_sheet.services.stripe_service import verify_webhook_signature

REQUIRED = ["STRIPE_WEBHOOK_SECRET", "SPREADSHEET_ID", "GOOGLE_APPLICATION_CREDENTIALS_JSON"]


class TestValidate:

    def test_missing_vars_listed(self, monkeypatch):
        for name in REQUIRED + ["ROW_STORE_BACKEND"]:
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_x")

        with pytest.raises(RuntimeError) as exc:
            Config.validate()
        assert "SPREADSHEET_ID" in str(exc.value)
        assert "GOOGLE_APPLICATION_CREDENTIALS_JSON" in str(exc.value)
        assert "STRIPE_WEBHOOK_SECRET" not in str(exc.value)

    def test_all_present(self, monkeypatch):
        for name in REQUIRED:
            monkeypatch.setenv(name, "x")
        Config.validate()

    def test_memory_backend_needs_only_secret(self, monkeypatch):
        for name in REQUIRED:
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("ROW_STORE_BACKEND", "memory")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_x")
        Config.validate()


class TestRelaySettings:

    def test_from_mapping(self):
        settings = RelaySettings.from_mapping({
            "STRIPE_WEBHOOK_SECRET": "whsec_x",
            "SPREADSHEET_ID": "sheet123",
            "GOOGLE_APPLICATION_CREDENTIALS_JSON": "{}",
            "GOOGLE_ACCOUNT_FIELD_KEY": " google_account ",
            "SHEET_NAME": "Paid",
            "ROW_STORE_BACKEND": "memory",
            "SHEETS_TIMEOUT": "7.5",
        })
        assert settings.webhook_secret == "whsec_x"
        assert settings.email_field_key == "google_account"
        assert settings.sheet_name == "Paid"
        assert settings.sheets_timeout == 7.5

    def test_defaults(self):
        settings = RelaySettings.from_mapping({"STRIPE_WEBHOOK_SECRET": ""})
        assert settings.webhook_secret is None
        assert settings.spreadsheet_id is None
        assert settings.email_field_key == ""
        assert settings.sheet_name == "有料ユーザー"
        assert settings.row_store_backend == "sheets"

    def test_settings_are_frozen(self, app):
        settings = app.extensions["sheet_relay"].settings
        with pytest.raises(AttributeError):
            settings.sheet_name = "other"


class TestCreateApp:

    def test_boots_without_config(self, monkeypatch, caplog):
        for name in REQUIRED + ["ROW_STORE_BACKEND"]:
            monkeypatch.delenv(name, raising=False)

        app = create_app("production")

        assert "Missing required environment variables" in caplog.text
        assert app.test_client().get("/health").status_code == 200

    def test_unknown_backend_boots_and_fails_per_call(self, monkeypatch, sign):
        class ExcelConfig(config_by_name["testing"]):
            ROW_STORE_BACKEND = "excel"

        monkeypatch.setitem(config_by_name, "excel", ExcelConfig)
        app = create_app("excel")
        client = app.test_client()

        assert client.get("/health").status_code == 200
        resp = client.get("/check?email=a@b.com")
        assert resp.status_code == 200
        assert resp.get_json() == {"paid": False}

        payload = json.dumps({
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {"object": {"customer_email": "a@b.com", "subscription": "sub_1"}},
        })
        resp = client.post(
            "/webhook",
            data=payload,
            content_type="application/json",
            headers={"Stripe-Signature": sign(payload)},
        )
        assert resp.status_code == 500
        assert resp.data == b"Append failed"

    def test_wires_components(self, app):
        components = app.extensions["sheet_relay"]
        assert components.reconciler.store is components.store
        assert components.query.store is components.store
        assert components.reconciler.sheet_name == "有料ユーザー"


class TestVerifyWebhookSignature:

    def _header(self, payload, secret="whsec_x", timestamp=None):
        timestamp = timestamp or int(time.time())
        signature = hmac.new(
            secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256
        ).hexdigest()
        return f"t={timestamp},v1={signature}"

    def test_returns_plain_dict(self):
        payload = json.dumps({"id": "evt_1", "type": "customer.deleted"})
        event = verify_webhook_signature(payload.encode(), self._header(payload), "whsec_x")
        assert event == {"id": "evt_1", "type": "customer.deleted"}

    def test_bad_signature(self):
        payload = json.dumps({"id": "evt_1"})
        with pytest.raises(stripe.SignatureVerificationError):
            verify_webhook_signature(payload, self._header(payload, "whsec_other"), "whsec_x")

    def test_non_object_payload(self):
        payload = "[1, 2]"
        with pytest.raises(ValueError):
            verify_webhook_signature(payload, self._header(payload), "whsec_x")

    def test_stale_timestamp(self):
        payload = json.dumps({"id": "evt_1", "type": "customer.deleted"})
        stale = int(time.time()) - 30 * 24 * 3600
        with pytest.raises(stripe.SignatureVerificationError):
            verify_webhook_signature(
                payload.encode(), self._header(payload, timestamp=stale), "whsec_x"
            )

    def test_verifies_decoded_body_within_tolerance(self):
        payload = json.dumps({"id": "evt_1", "type": "customer.deleted"})
        with patch.object(stripe.WebhookSignature, "verify_header") as verify:
            verify_webhook_signature(payload.encode(), "t=1,v1=x", "whsec_x")

        args, kwargs = verify.call_args
        assert args[0] == payload
        assert isinstance(args[0], str)
        assert kwargs["tolerance"] == stripe.Webhook.DEFAULT_TOLERANCE
