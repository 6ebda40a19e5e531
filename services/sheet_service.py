# services/sheet_service.py
import logging
from dataclasses import dataclass, field
from typing import List

from googleapiclient.errors import HttpError

from infra.google_client import get_sheets_service

logger = logging.getLogger(__name__)


class SheetConfigError(RuntimeError):
    pass


@dataclass
class SheetSnapshot:
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)   # rows[0] is sheet row 2


def column_letter(index: int) -> str:
    """0-based column index -> A1 letters (0 -> A, 26 -> AA)."""
    letters = ""
    n = index + 1
    while n:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def describe_http_error(e: HttpError) -> str:
    status = getattr(e.resp, "status", "unknown")
    try:
        body = e.content.decode("utf-8", errors="ignore")
    except Exception:
        body = str(e)
    return f"HTTP {status}: {body}"


class ScheduleSheet:
    """The schedule tab of a spreadsheet: read everything, write one cell at a time."""

    def __init__(self, spreadsheet_id: str, tab: str | None = None, service=None):
        self.spread_id = spreadsheet_id
        self.tab = tab or None
        self._service = service

    @property
    def sheet(self):
        if self._service is None:
            self._service = get_sheets_service()
        return self._service

    def _tab_title(self) -> str:
        if not self.tab:
            # no tab configured -> first sheet, like sheetsByIndex[0]
            meta = self.sheet.get(
                spreadsheetId=self.spread_id,
                fields="sheets.properties.title"
            ).execute()
            sheets = meta.get("sheets") or []
            if not sheets:
                raise SheetConfigError(f"spreadsheet {self.spread_id} has no sheets")
            self.tab = sheets[0]["properties"]["title"]
        return self.tab

    def _a1(self, cells: str) -> str:
        title = self._tab_title().replace("'", "''")
        return f"'{title}'!{cells}"

    def load(self) -> SheetSnapshot:
        """Header row plus every data row of the tab."""
        if not self.spread_id:
            raise SheetConfigError("SPREADSHEET_ID is not set")
        try:
            resp = self.sheet.values().get(
                spreadsheetId=self.spread_id,
                range=self._a1("A1:ZZ")
            ).execute()
        except HttpError as e:
            raise RuntimeError(f"sheet read failed ({describe_http_error(e)})") from e

        values = resp.get("values", [])
        if not values:
            return SheetSnapshot(headers=[])
        logger.debug("[SHEET] %s loaded %d data rows", self.tab, len(values) - 1)
        return SheetSnapshot(headers=values[0], rows=values[1:])

    def update_cell(self, row_number: int, column_index: int, value: str):
        """row_number is the 1-based sheet row, column_index 0-based."""
        cell = f"{column_letter(column_index)}{row_number}"
        body = {"values": [[value]]}
        try:
            return self.sheet.values().update(
                spreadsheetId=self.spread_id,
                range=self._a1(cell),
                valueInputOption="USER_ENTERED",
                body=body
            ).execute()
        except HttpError as e:
            raise RuntimeError(f"sheet update {cell} failed ({describe_http_error(e)})") from e
