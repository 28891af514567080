"""Tests for the paid-status query.

Covers:
- active / past_due / canceled / unknown statuses
- Legacy rows (no status) count as active
- Trimmed, case-insensitive email matching
- Empty input short-circuits without reading the sheet
- Header row is never matched
- Store failures propagate and emit store-failed
- Activate followed by a query reads back as paid
"""

from unittest.mock import MagicMock

import pytest

from stripe_to_sheet.services.paid_status import NOT_PAID, PaidStatus, PaidStatusQuery
from stripe_to_sheet.services.reconciler import Reconciler
from stripe_to_sheet.services.row_store import InMemoryRowStore, RowStoreError

SHEET = "Users"


@pytest.fixture
def sheet():
    store = InMemoryRowStore()
    store.load(SHEET, [
        ["Email", "Status", "Subscription"],
        ["active@b.com", "active", "sub_1"],
        ["late@b.com", "past_due", "sub_2"],
        ["gone@b.com", "canceled", "sub_3"],
        ["legacy@b.com"],
        ["shouty@b.com", "ACTIVE", "sub_4"],
        ["trial@b.com", "trialing", "sub_5"],
    ])
    return store


@pytest.fixture
def query(sheet):
    return PaidStatusQuery(sheet, SHEET)


class TestPaidStatusQuery:

    def test_active(self, query):
        assert query.check("active@b.com") == PaidStatus(paid=True, status="active")

    @pytest.mark.parametrize("email,status", [
        ("late@b.com", "past_due"),
        ("gone@b.com", "canceled"),
        ("trial@b.com", "trialing"),
    ])
    def test_not_active_statuses(self, query, email, status):
        assert query.check(email) == PaidStatus(paid=False, status=status)

    def test_legacy_row_is_active(self, query):
        assert query.check("legacy@b.com") == PaidStatus(paid=True, status="active")

    def test_status_case_is_echoed(self, query):
        assert query.check("shouty@b.com") == PaidStatus(paid=True, status="ACTIVE")

    def test_email_is_trimmed_and_case_insensitive(self, query):
        assert query.check("  Active@B.COM  ").paid is True

    def test_unknown_email(self, query):
        assert query.check("nobody@b.com") == NOT_PAID
        assert NOT_PAID.to_dict() == {"paid": False}

    def test_header_is_not_a_user(self, query):
        assert query.check("email") == NOT_PAID

    def test_empty_input_skips_store(self):
        store = MagicMock()
        query = PaidStatusQuery(store, SHEET)

        assert query.check("   ") == NOT_PAID
        assert query.check(None) == NOT_PAID
        store.get_range.assert_not_called()

    def test_reads_email_and_status_columns(self):
        store = MagicMock()
        store.get_range.return_value = []
        PaidStatusQuery(store, SHEET).check("a@b.com")
        store.get_range.assert_called_once_with("'Users'!A:B")

    def test_store_failure_propagates(self, signals_log):
        store = MagicMock()
        store.get_range.side_effect = RowStoreError("timeout")

        with pytest.raises(RowStoreError):
            PaidStatusQuery(store, SHEET).check("a@b.com")
        assert signals_log[0][0] == "store_failed"

    def test_to_dict_includes_status(self):
        assert PaidStatus(paid=False, status="past_due").to_dict() == {
            "paid": False,
            "status": "past_due",
        }


class TestReadAfterWrite:
    """Activate then query against the same store."""

    def test_activate_then_check(self):
        store = InMemoryRowStore()
        Reconciler(store, SHEET).activate("Fresh@B.com", "sub_9")
        assert PaidStatusQuery(store, SHEET).check(" fresh@b.com ") == PaidStatus(
            paid=True, status="active"
        )

    def test_cancel_then_check(self, sheet, query):
        Reconciler(sheet, SHEET).update_status("sub_1", "canceled")
        assert query.check("active@b.com") == PaidStatus(paid=False, status="canceled")
