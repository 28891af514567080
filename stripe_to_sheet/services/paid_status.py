"""Paid-status query: "is this email a paying user?"

Reads the same sheet the reconciler writes. Only status "active"
(case-insensitive) is paid. A row with an empty status column predates
status tracking and counts as active.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from stripe_to_sheet.services.event_normalizer import STATUS_ACTIVE
from stripe_to_sheet.services.row_store import RowStoreError, a1_range, cell, split_header
from stripe_to_sheet.signals import store_failed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaidStatus:
    paid: bool
    status: Optional[str] = None

    def to_dict(self):
        result = {"paid": self.paid}
        if self.status:
            result["status"] = self.status
        return result


NOT_PAID = PaidStatus(paid=False)


class PaidStatusQuery:
    """Point lookups against the paid-users sheet."""

    def __init__(self, store, sheet_name):
        self.store = store
        self.sheet_name = sheet_name

    def check(self, email):
        """Look up email (raw input, may be untrimmed / mixed case).

        Returns a PaidStatus. Empty input returns NOT_PAID without touching
        the store. Raises RowStoreError on store failure; the HTTP layer
        turns that into {"paid": false}.
        """
        normalized = (email or "").strip().lower()
        if not normalized:
            return NOT_PAID

        try:
            rows = self.store.get_range(a1_range(self.sheet_name, "A:B"))
        except RowStoreError as e:
            store_failed.send(self, operation="get_range", error=e)
            raise
        _, rows = split_header(rows)

        for row in rows:
            if cell(row, 0).lower() != normalized:
                continue
            status = cell(row, 1)
            # Legacy rows (email only) are treated as active
            effective = status or STATUS_ACTIVE
            return PaidStatus(paid=effective.lower() == STATUS_ACTIVE, status=effective)

        return NOT_PAID
