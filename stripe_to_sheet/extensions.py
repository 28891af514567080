"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from stripe_to_sheet.config import RelaySettings
from stripe_to_sheet.services.paid_status import PaidStatusQuery
from stripe_to_sheet.services.reconciler import Reconciler
from stripe_to_sheet.services.row_store import build_row_store

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, applied per-route
    storage_uri="memory://",
)


class SheetRelay:
    """Wires settings, row store, reconciler and query onto the app.

    Components live in app.extensions["sheet_relay"]; routes and CLI
    commands reach them through get_relay().
    """

    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        settings = RelaySettings.from_mapping(app.config)
        store = build_row_store(settings)
        app.extensions["sheet_relay"] = RelayComponents(
            settings=settings,
            store=store,
            reconciler=Reconciler(store, settings.sheet_name),
            query=PaidStatusQuery(store, settings.sheet_name),
        )


class RelayComponents:
    def __init__(self, settings, store, reconciler, query):
        self.settings = settings
        self.store = store
        self.reconciler = reconciler
        self.query = query


def get_relay():
    """Relay components of the current app."""
    return current_app.extensions["sheet_relay"]


relay = SheetRelay()
