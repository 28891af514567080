import json
import logging
import os

import click
from flask import Flask, jsonify, request

from stripe_to_sheet.config import config_by_name
from stripe_to_sheet.extensions import get_relay, limiter, relay


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    # Boot anyway: webhook and sheet calls fail until the config is fixed.
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    limiter.init_app(app)
    relay.init_app(app)

    # --- Register blueprints ---
    from stripe_to_sheet.blueprints.paid import paid_bp
    from stripe_to_sheet.blueprints.webhooks import webhooks_bp

    app.register_blueprint(paid_bp)
    app.register_blueprint(webhooks_bp)

    # --- CORS preflight ---
    @app.before_request
    def answer_preflight():
        """Answer every OPTIONS request with an empty 200."""
        if request.method == "OPTIONS":
            return "", 200

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify(error="Not found"), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(error="Method not allowed"), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(error="Internal server error"), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    from stripe_to_sheet.services.event_normalizer import normalize_event
    from stripe_to_sheet.services.row_store import (
        RowStoreError,
        a1_range,
        cell,
        split_header,
    )

    @app.cli.command("check-paid")
    @click.argument("email")
    def check_paid(email):
        """Run the paid-status lookup for EMAIL against the sheet.

        Usage:
            flask check-paid someone@example.com
        """
        try:
            result = get_relay().query.check(email)
        except RowStoreError as e:
            raise click.ClickException(f"Sheet lookup failed: {e}")
        click.echo(json.dumps(result.to_dict()))

    @app.cli.command("verify-sheet")
    def verify_sheet():
        """Read the paid-users tab and summarize what the relay sees.

        Reports header detection and how many rows count as paid, legacy
        (empty status, treated as paid) and unpaid.
        """
        components = get_relay()
        sheet_name = components.settings.sheet_name
        try:
            rows = components.store.get_range(a1_range(sheet_name, "A:C"))
        except RowStoreError as e:
            raise click.ClickException(f"Cannot read sheet '{sheet_name}': {e}")

        header_offset, data_rows = split_header(rows)
        paid = legacy = unpaid = 0
        for row in data_rows:
            if not cell(row, 0):
                continue
            status = cell(row, 1)
            if not status:
                legacy += 1
            elif status.lower() == "active":
                paid += 1
            else:
                unpaid += 1

        click.echo(f"Sheet:     {sheet_name}")
        click.echo(f"Header:    {'yes' if header_offset else 'no'}")
        click.echo(f"Data rows: {len(data_rows)}")
        click.echo(f"  active:  {paid}")
        click.echo(f"  legacy:  {legacy}")
        click.echo(f"  unpaid:  {unpaid}")

    @app.cli.command("replay-event")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    def replay_event(path):
        """Apply a saved Stripe event JSON file to the sheet.

        For recovering a delivery that failed on our side. The file is
        trusted as-is: no signature check.

        Usage:
            flask replay-event evt_1Abc.json
        """
        with open(path, encoding="utf-8") as f:
            try:
                event = json.load(f)
            except ValueError as e:
                raise click.ClickException(f"Invalid event JSON: {e}")
        if not isinstance(event, dict):
            raise click.ClickException("Event file must hold a JSON object")

        components = get_relay()
        intent = normalize_event(event, components.settings.email_field_key)
        try:
            outcome = components.reconciler.apply(intent)
        except RowStoreError as e:
            raise click.ClickException(f"Sheet write failed: {e}")
        click.echo(f"{event.get('id', '(no id)')} {event.get('type')}: {outcome}")
