"""Outcome signals for the relay.

Emitted alongside the log lines so callers (and tests) can observe what
happened to an event without parsing log text. Same mechanism as
flask.signals.

    from stripe_to_sheet.signals import row_created

    @row_created.connect
    def on_created(sender, email, subscription_id, row_number):
        ...
"""

from blinker import Namespace

_signals = Namespace()

# Normalizer mapped a verified event to Ignore. kwargs: event_type, reason
event_ignored = _signals.signal("event-ignored")

# Reconciler appended a new record. kwargs: email, subscription_id, row_number
row_created = _signals.signal("row-created")

# Reconciler overwrote an existing record.
# kwargs: row_number, values, email or subscription_id
row_updated = _signals.signal("row-updated")

# Status update found no row with that subscription id. kwargs: subscription_id, status
subscription_unmatched = _signals.signal("subscription-unmatched")

# A row store call raised. kwargs: operation, error
store_failed = _signals.signal("store-failed")
