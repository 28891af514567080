"""Row store: the spreadsheet the relay reads and writes.

Two backends share the RowStore contract:
- GoogleSheetsStore: Sheets REST API v4 over a service-account session (prod).
- InMemoryRowStore: process-local table with the same A1 addressing (tests, dev).
An unknown backend name gets UnavailableRowStore, which fails every call.

Contract (all the reconciler relies on):
    get_range(cell_range)           -> rows of string cells
    append_row(cell_range, row)     -> inserts after the last row, no dedupe
    update_cells(cell_range, values) -> overwrites a bounded region

No transactions, no locking, no compare-and-swap. Any concurrency safety
above this line is advisory only.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from urllib.parse import quote

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"

# First-cell marker of an optional header row
HEADER_MARKER = "email"


class RowStoreError(RuntimeError):
    """Any failure talking to the row store (config, auth, transport, API)."""


# ──────────────────────────────────────────────
# Range helpers
# ──────────────────────────────────────────────

def a1_range(sheet_name, cells):
    """Build an A1 range for a sheet tab, e.g. a1_range("Users", "A:C") -> 'Users'!A:C."""
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'!{cells}"


def split_header(rows):
    """Split off an optional header row.

    The first row is a header when its first cell contains "email"
    (case-insensitive). Returns (header_offset, data_rows).
    """
    if not rows:
        return 0, []
    first = cell(rows[0], 0).lower()
    if HEADER_MARKER in first:
        return 1, rows[1:]
    return 0, rows


def cell(row, index):
    """Trimmed string value of row[index], "" when the cell is missing."""
    if index < len(row) and row[index] is not None:
        return str(row[index]).strip()
    return ""


def sheet_row_number(header_offset, data_index):
    """1-based sheet row of the data row at data_index (0-based)."""
    return header_offset + data_index + 1


_A1_RE = re.compile(
    r"^(?:'(?P<quoted>(?:[^']|'')+)'|(?P<plain>[^'!]+))!"
    r"(?P<c1>[A-Z]+)(?P<r1>\d+)?(?::(?P<c2>[A-Z]+)(?P<r2>\d+)?)?$"
)


def _column_index(letters):
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


def parse_a1(cell_range):
    """Parse 'Sheet'!B2:C5 into (sheet, first_col, first_row, last_col, last_row).

    Columns and rows are 0-based. Rows are None for whole-column ranges.
    Raises RowStoreError on anything else.
    """
    match = _A1_RE.match(cell_range or "")
    if not match:
        raise RowStoreError(f"Unsupported range: {cell_range!r}")

    sheet = match.group("quoted")
    sheet = sheet.replace("''", "'") if sheet is not None else match.group("plain")

    first_col = _column_index(match.group("c1"))
    last_col = _column_index(match.group("c2")) if match.group("c2") else first_col
    r1, r2 = match.group("r1"), match.group("r2")
    first_row = int(r1) - 1 if r1 else None
    if r2:
        last_row = int(r2) - 1
    elif r1 and not match.group("c2"):
        last_row = first_row  # single cell
    else:
        last_row = None
    return sheet, first_col, first_row, last_col, last_row


# ──────────────────────────────────────────────
# Contract
# ──────────────────────────────────────────────

class RowStore(ABC):
    """Thin contract over a remote tabular store."""

    @abstractmethod
    def get_range(self, cell_range):
        """Return the rows in cell_range as lists of string cells."""

    @abstractmethod
    def append_row(self, cell_range, row):
        """Insert row after the last row of the table in cell_range."""

    @abstractmethod
    def update_cells(self, cell_range, values):
        """Overwrite the bounded region cell_range with values (list of rows)."""


# ──────────────────────────────────────────────
# Google Sheets backend
# ──────────────────────────────────────────────

class GoogleSheetsStore(RowStore):
    """Sheets REST API v4 via an authorized requests session.

    The session is built lazily on first use so the app still boots when
    credentials are missing. Calls then fail with RowStoreError.
    """

    def __init__(self, spreadsheet_id, credentials_json, timeout=30):
        self.spreadsheet_id = spreadsheet_id
        self.credentials_json = credentials_json
        self.timeout = timeout
        self._session = None

    def _get_session(self):
        if not self.spreadsheet_id or not self.credentials_json:
            raise RowStoreError(
                "SPREADSHEET_ID or GOOGLE_APPLICATION_CREDENTIALS_JSON is not set"
            )
        if self._session is None:
            try:
                info = json.loads(self.credentials_json)
            except ValueError as e:
                raise RowStoreError("Invalid GOOGLE_APPLICATION_CREDENTIALS_JSON") from e
            try:
                credentials = service_account.Credentials.from_service_account_info(
                    info, scopes=SHEETS_SCOPES
                )
            except (ValueError, KeyError) as e:
                raise RowStoreError(f"Invalid service account credentials: {e}") from e
            self._session = AuthorizedSession(credentials)
        return self._session

    def _values_url(self, cell_range, suffix=""):
        return (
            f"{SHEETS_API_BASE}/{self.spreadsheet_id}/values/"
            f"{quote(cell_range, safe='')}{suffix}"
        )

    def _request(self, method, url, **kwargs):
        session = self._get_session()
        try:
            resp = session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except (requests.RequestException, GoogleAuthError) as e:
            raise RowStoreError(f"Sheets {method} failed: {e}") from e
        return resp.json() if resp.content else {}

    def get_range(self, cell_range):
        data = self._request("GET", self._values_url(cell_range))
        return [[str(v) for v in row] for row in data.get("values", [])]

    def append_row(self, cell_range, row):
        self._request(
            "POST",
            self._values_url(cell_range, ":append"),
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [list(row)]},
        )

    def update_cells(self, cell_range, values):
        self._request(
            "PUT",
            self._values_url(cell_range),
            params={"valueInputOption": "RAW"},
            json={"range": cell_range, "values": values},
        )


# ──────────────────────────────────────────────
# In-memory backend
# ──────────────────────────────────────────────

class InMemoryRowStore(RowStore):
    """Process-local stand-in for a spreadsheet.

    Mirrors what the reconciler can observe from Sheets: A1 addressing,
    1-based rows, and trailing empty cells trimmed from returned rows.
    """

    def __init__(self):
        self._sheets = {}

    def reset(self):
        self._sheets.clear()

    def load(self, sheet_name, rows):
        """Replace a tab's contents (seeding for tests and local dev)."""
        self._sheets[sheet_name] = [[str(v) for v in row] for row in rows]

    def rows(self, sheet_name):
        """Raw copy of a tab, untrimmed."""
        return [list(row) for row in self._sheets.get(sheet_name, [])]

    def get_range(self, cell_range):
        sheet, first_col, first_row, last_col, last_row = parse_a1(cell_range)
        table = self._sheets.get(sheet, [])
        start = first_row or 0
        stop = len(table) if last_row is None else min(last_row + 1, len(table))

        result = []
        for row in table[start:stop]:
            values = row[first_col:last_col + 1]
            while values and values[-1] == "":
                values.pop()
            result.append(values)
        while result and not result[-1]:
            result.pop()
        return result

    def append_row(self, cell_range, row):
        sheet, first_col, _, _, _ = parse_a1(cell_range)
        table = self._sheets.setdefault(sheet, [])
        table.append([""] * first_col + [str(v) for v in row])

    def update_cells(self, cell_range, values):
        sheet, first_col, first_row, _, _ = parse_a1(cell_range)
        if first_row is None:
            raise RowStoreError(f"update_cells needs a bounded range: {cell_range!r}")
        table = self._sheets.setdefault(sheet, [])
        for offset, new_row in enumerate(values):
            index = first_row + offset
            while len(table) <= index:
                table.append([])
            target = table[index]
            needed = first_col + len(new_row)
            if len(target) < needed:
                target.extend([""] * (needed - len(target)))
            for col, value in enumerate(new_row):
                target[first_col + col] = str(value)


class UnavailableRowStore(RowStore):
    """Placeholder for a misconfigured backend: every call raises RowStoreError."""

    def __init__(self, reason):
        self.reason = reason

    def get_range(self, cell_range):
        raise RowStoreError(self.reason)

    def append_row(self, cell_range, row):
        raise RowStoreError(self.reason)

    def update_cells(self, cell_range, values):
        raise RowStoreError(self.reason)


def build_row_store(settings):
    """Pick the row store backend named by settings.row_store_backend."""
    if settings.row_store_backend == "memory":
        logger.info("Using in-memory row store")
        return InMemoryRowStore()
    if settings.row_store_backend != "sheets":
        reason = f"Unknown ROW_STORE_BACKEND: {settings.row_store_backend!r}"
        logger.warning(f"{reason}. Sheet calls will fail until it is fixed.")
        return UnavailableRowStore(reason)
    return GoogleSheetsStore(
        spreadsheet_id=settings.spreadsheet_id,
        credentials_json=settings.credentials_json,
        timeout=settings.sheets_timeout,
    )
