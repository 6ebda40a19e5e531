# services/schedule.py
"""
Schedule sheet rows: header mapping, due-row filter and recipient lookup.

Nothing here talks to the network; the dispatcher feeds it the values read
from the sheet.
"""
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Iterable, Iterator, List, Mapping, Optional
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

STATE_PENDING = "送信待機"
STATE_SENT    = "送信済み"

DEFAULT_TIMEZONE = ZoneInfo("Asia/Tokyo")

# field -> header text in row 1
DEFAULT_HEADERS = {
    "state":     "状態",
    "message":   "メッセージ内容",
    "group":     "グループ",
    "users":     "ユーザーID",
    "send_time": "送信時間",
}


class SheetSchemaError(RuntimeError):
    pass


@dataclass(frozen=True)
class ScheduledRow:
    row_number: int        # 1-based row in the sheet (row 1 = header)
    state: str
    message: str
    group_id: str
    user_ids_raw: str
    send_time_raw: str


@dataclass(frozen=True)
class Target:
    kind: str              # "user" | "group" | "row"
    id: str

    def to_dict(self) -> dict:
        return {"type": self.kind, "id": self.id}


def _cell(values: List[str], idx: int) -> str:
    # the Sheets API drops trailing empty cells
    if idx < len(values) and values[idx] is not None:
        return str(values[idx])
    return ""


@dataclass(frozen=True)
class ColumnMap:
    state: int
    message: int
    group: int
    users: int
    send_time: int

    @classmethod
    def resolve(cls, headers: List[str], names: Optional[Mapping[str, str]] = None) -> "ColumnMap":
        names = {**DEFAULT_HEADERS, **(names or {})}
        stripped = [(h or "").strip() for h in headers]

        found, missing = {}, []
        for field, header in names.items():
            try:
                found[field] = stripped.index(header.strip())
            except ValueError:
                missing.append(header)
        if missing:
            raise SheetSchemaError(f"required column(s) not found in header row: {', '.join(missing)}")
        return cls(**found)

    def read(self, row_number: int, values: List[str]) -> ScheduledRow:
        return ScheduledRow(
            row_number=row_number,
            state=_cell(values, self.state),
            message=_cell(values, self.message),
            group_id=_cell(values, self.group),
            user_ids_raw=_cell(values, self.users),
            send_time_raw=_cell(values, self.send_time),
        )


# two different fill-in dates; a value that leaves year, month or day out
# comes back different under each and is rejected
_FILL_A = datetime(2000, 1, 1)
_FILL_B = datetime(2001, 2, 2)


def parse_send_time(raw: str, tz: tzinfo = DEFAULT_TIMEZONE) -> Optional[datetime]:
    """Parse a send-time cell; naive values are taken as local time in `tz`. None if unparsable."""
    text = (raw or "").strip()
    if not text:
        return None
    try:
        dt = date_parser.parse(text, default=_FILL_A)
        if dt.replace(tzinfo=None) != date_parser.parse(text, default=_FILL_B).replace(tzinfo=None):
            return None
        # an offset of a day or more only fails here
        dt.utcoffset()
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def is_due(row: ScheduledRow, now: datetime, pending: str = STATE_PENDING,
           tz: tzinfo = DEFAULT_TIMEZONE) -> bool:
    if row.state.strip() != pending:
        return False
    send_time = parse_send_time(row.send_time_raw, tz)
    if send_time is None:
        return False
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    try:
        return send_time < now
    except (TypeError, ValueError):
        return False


def eligible_rows(rows: Iterable[ScheduledRow], now: datetime, pending: str = STATE_PENDING,
                  tz: tzinfo = DEFAULT_TIMEZONE) -> Iterator[ScheduledRow]:
    return (row for row in rows if is_due(row, now, pending, tz))


def resolve_targets(row: ScheduledRow) -> List[Target]:
    # individual users win over the group column
    user_ids = [s.strip() for s in (row.user_ids_raw or "").split(",")]
    user_ids = [s for s in user_ids if s]
    if user_ids:
        return [Target("user", uid) for uid in user_ids]

    group_id = (row.group_id or "").strip()
    if group_id:
        return [Target("group", group_id)]
    return []
