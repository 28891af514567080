import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RelaySettings:
    """Settings the relay components need, read once from app.config.

    Built at startup and injected into the row store, normalizer,
    reconciler and query so no business logic reads the environment.
    """

    webhook_secret: Optional[str]
    spreadsheet_id: Optional[str]
    credentials_json: Optional[str]
    email_field_key: str = ""
    sheet_name: str = "有料ユーザー"
    row_store_backend: str = "sheets"
    sheets_timeout: float = 30

    @classmethod
    def from_mapping(cls, config):
        return cls(
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET") or None,
            spreadsheet_id=config.get("SPREADSHEET_ID") or None,
            credentials_json=config.get("GOOGLE_APPLICATION_CREDENTIALS_JSON") or None,
            email_field_key=(config.get("GOOGLE_ACCOUNT_FIELD_KEY") or "").strip(),
            sheet_name=config.get("SHEET_NAME") or "有料ユーザー",
            row_store_backend=config.get("ROW_STORE_BACKEND") or "sheets",
            sheets_timeout=float(config.get("SHEETS_TIMEOUT") or 30),
        )


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    SPREADSHEET_ID = os.environ.get("SPREADSHEET_ID")
    # Service account key JSON, pasted as a single line.
    GOOGLE_APPLICATION_CREDENTIALS_JSON = os.environ.get(
        "GOOGLE_APPLICATION_CREDENTIALS_JSON"
    )

    # --- Optional ---
    # Key of the Checkout custom field holding the Google account email.
    # Empty means "first text custom field".
    GOOGLE_ACCOUNT_FIELD_KEY = os.environ.get("GOOGLE_ACCOUNT_FIELD_KEY", "")
    SHEET_NAME = os.environ.get("SHEET_NAME", "有料ユーザー")

    # --- Row store ---
    ROW_STORE_BACKEND = os.environ.get("ROW_STORE_BACKEND", "sheets")  # sheets | memory
    SHEETS_TIMEOUT = float(os.environ.get("SHEETS_TIMEOUT", 30))

    # --- Rate limiting (public /check endpoint) ---
    CHECK_RATE_LIMIT = os.environ.get("CHECK_RATE_LIMIT", "120 per minute")

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "STRIPE_WEBHOOK_SECRET",
            "SPREADSHEET_ID",
            "GOOGLE_APPLICATION_CREDENTIALS_JSON",
        ]
        # The in-memory store needs no spreadsheet
        if os.environ.get("ROW_STORE_BACKEND", "sheets") == "memory":
            required = ["STRIPE_WEBHOOK_SECRET"]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Webhook and sheet calls will fail until set."
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing: in-memory row store, rate limiting off."""

    TESTING = True
    DEBUG = True
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    SPREADSHEET_ID = "sheet_test_fake"
    GOOGLE_APPLICATION_CREDENTIALS_JSON = None
    GOOGLE_ACCOUNT_FIELD_KEY = "google_account"
    SHEET_NAME = "有料ユーザー"
    ROW_STORE_BACKEND = "memory"
    RATELIMIT_ENABLED = False  # disable rate limiting in tests

    @staticmethod
    def validate():
        """Skip validation in test mode, everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production (Render)."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
