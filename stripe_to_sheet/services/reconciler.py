"""User record reconciler: applies intents to the paid-users sheet.

Sheet layout: A=email, B=status, C=subscription_id, optional header row.

- Activate: find the row by email (trimmed, case-insensitive) and overwrite
  B:C with active / subscription id, or append a new row.
- UpdateStatus: find the row by subscription id (trimmed, case-sensitive)
  and overwrite B. No match is a logged no-op, never a new row.

Both are overwrite-only, so replaying an intent is harmless.

Race window: every write is "read A:C, scan, write one row" with no
compare-and-swap (Sheets has no conditional write). Two intents hitting the
same row concurrently can lose one update; a concurrent Activate for a new
email can append a duplicate row. Stripe's retry of a failed delivery is the
only recovery path.
"""

import logging

from stripe_to_sheet.services.event_normalizer import (
    STATUS_ACTIVE,
    Activate,
    Ignore,
    UpdateStatus,
)
from stripe_to_sheet.services.row_store import (
    RowStoreError,
    a1_range,
    cell,
    sheet_row_number,
    split_header,
)
from stripe_to_sheet.signals import (
    row_created,
    row_updated,
    store_failed,
    subscription_unmatched,
)

logger = logging.getLogger(__name__)

EMAIL_COL = 0
STATUS_COL = 1
SUBSCRIPTION_COL = 2


class Reconciler:
    """Applies Activate / UpdateStatus intents to a RowStore."""

    def __init__(self, store, sheet_name):
        self.store = store
        self.sheet_name = sheet_name

    def apply(self, intent):
        """Apply one intent. Returns the outcome name.

        Outcomes: created | updated | unmatched | skipped | ignored.
        Raises RowStoreError if the store fails.
        """
        if isinstance(intent, Activate):
            return self.activate(intent.email, intent.subscription_id)
        if isinstance(intent, UpdateStatus):
            return self.update_status(intent.subscription_id, intent.status)
        if isinstance(intent, Ignore):
            return "ignored"
        raise TypeError(f"Unknown intent: {intent!r}")

    # ── Store access ──

    def _call(self, operation, fn, *args):
        try:
            return fn(*args)
        except RowStoreError as e:
            logger.error(f"Row store {operation} failed: {e}", exc_info=True)
            store_failed.send(self, operation=operation, error=e)
            raise

    def _load(self):
        rows = self._call("get_range", self.store.get_range, a1_range(self.sheet_name, "A:C"))
        return split_header(rows)

    # ── Intents ──

    def activate(self, email, subscription_id=""):
        """Upsert the row for email with status=active.

        Activation always wins: an existing row's status and subscription id
        are overwritten unconditionally.
        """
        normalized = (email or "").strip().lower()
        sub_id = (subscription_id or "").strip()
        if not normalized:
            logger.warning("activate: empty email, nothing to do")
            return "skipped"

        header_offset, rows = self._load()

        for i, row in enumerate(rows):
            if cell(row, EMAIL_COL).lower() != normalized:
                continue
            row_number = sheet_row_number(header_offset, i)
            values = [STATUS_ACTIVE, sub_id]
            self._call(
                "update_cells",
                self.store.update_cells,
                a1_range(self.sheet_name, f"B{row_number}:C{row_number}"),
                [values],
            )
            logger.info(
                f"activate: updated row {row_number} {normalized} "
                f"{STATUS_ACTIVE} {sub_id or '(no sub)'}"
            )
            row_updated.send(self, row_number=row_number, values=values, email=normalized)
            return "updated"

        self._call(
            "append_row",
            self.store.append_row,
            a1_range(self.sheet_name, "A:C"),
            [normalized, STATUS_ACTIVE, sub_id],
        )
        row_number = sheet_row_number(header_offset, len(rows))
        logger.info(f"activate: appended {normalized} {STATUS_ACTIVE} {sub_id or '(no sub)'}")
        row_created.send(
            self, email=normalized, subscription_id=sub_id, row_number=row_number
        )
        return "created"

    def update_status(self, subscription_id, status):
        """Set the status of the row holding subscription_id.

        No matching row is a warning, not an error: the subscription event
        may have raced ahead of checkout.session.completed, or the id was
        never recorded.
        """
        sub_id = (subscription_id or "").strip()
        status = (status or "").strip()
        if not sub_id or not status:
            logger.warning(
                f"update_status: missing subscription_id or status "
                f"(subscription_id={sub_id!r}, status={status!r})"
            )
            return "skipped"

        header_offset, rows = self._load()
        logger.info(f"update_status: scanning {len(rows)} data rows for {sub_id}")

        for i, row in enumerate(rows):
            if cell(row, SUBSCRIPTION_COL) != sub_id:
                continue
            row_number = sheet_row_number(header_offset, i)
            self._call(
                "update_cells",
                self.store.update_cells,
                a1_range(self.sheet_name, f"B{row_number}"),
                [[status]],
            )
            logger.info(f"update_status: row {row_number} {sub_id} -> {status}")
            row_updated.send(
                self, row_number=row_number, values=[status], subscription_id=sub_id
            )
            return "updated"

        known = [cell(row, SUBSCRIPTION_COL) for row in rows]
        logger.warning(
            f"update_status: no row for subscription_id {sub_id}. "
            f"Known ids: {[k for k in known if k]}"
        )
        subscription_unmatched.send(self, subscription_id=sub_id, status=status)
        return "unmatched"
