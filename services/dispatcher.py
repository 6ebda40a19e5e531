# services/dispatcher.py
"""
Send due messages from the schedule sheet.

One run:
  1) resolve the access token (given, or from the token provider)
  2) read the sheet and map the header row
  3) pick "pending" rows whose send time has passed
  4) send each row to its users (one call per user) or to its group
  5) mark rows with at least one accepted call as "sent", one cell write per row

Only steps 1) to 3) can fail the run. A failed call, a failed write or an
unexpected error inside one row is recorded in `errors` and the run moves
on; such a row stays pending and is picked up again next time.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Callable, List, Mapping, Optional, Union
from zoneinfo import ZoneInfo

from infra.works_client import WorksApiError, WorksClient
from services.schedule import (
    DEFAULT_TIMEZONE, STATE_PENDING, STATE_SENT,
    ColumnMap, ScheduledRow, Target, eligible_rows, resolve_targets,
)
from services.sheet_service import ScheduleSheet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpFailure:
    status: int
    body: str

    def to_dict(self) -> dict:
        return {"type": "http", "status": self.status, "body": self.body}


@dataclass(frozen=True)
class TransportFailure:
    message: str

    def to_dict(self) -> dict:
        return {"type": "transport", "message": self.message}


@dataclass(frozen=True)
class WriteBackFailure:
    message: str

    def to_dict(self) -> dict:
        return {"type": "write_back", "message": self.message}


@dataclass(frozen=True)
class ProcessingFailure:
    message: str

    def to_dict(self) -> dict:
        return {"type": "processing", "message": self.message}


Cause = Union[HttpFailure, TransportFailure, WriteBackFailure, ProcessingFailure]


@dataclass(frozen=True)
class ErrorEntry:
    row: int
    target: Target
    cause: Cause

    def to_dict(self) -> dict:
        return {"row": self.row, "target": self.target.to_dict(), "cause": self.cause.to_dict()}


@dataclass
class DispatchResult:
    success: bool
    count: int = 0            # due rows found, before any send
    sent_count: int = 0       # rows marked sent in this run
    skipped_count: int = 0    # due rows without any recipient
    errors: List[ErrorEntry] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "DispatchResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success":       True,
            "count":         self.count,
            "sent_count":    self.sent_count,
            "skipped_count": self.skipped_count,
            "errors":        [e.to_dict() for e in self.errors],
        }


def _error_text(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class Dispatcher:

    def __init__(self, sheet, client, token_provider: Callable[[], str],
                 headers: Optional[Mapping[str, str]] = None,
                 pending: str = STATE_PENDING, sent: str = STATE_SENT,
                 tz: tzinfo = DEFAULT_TIMEZONE,
                 clock: Optional[Callable[[], datetime]] = None):
        self.sheet = sheet
        self.client = client
        self.token_provider = token_provider
        self.headers = headers
        self.pending = pending
        self.sent = sent
        self.tz = tz
        self.clock = clock or (lambda: datetime.now(self.tz))

    def send_pending_messages(self, access_token: Optional[str] = None) -> dict:
        return self.dispatch(access_token).to_dict()

    def dispatch(self, access_token: Optional[str] = None) -> DispatchResult:
        try:
            token = access_token or self.token_provider()
            snapshot = self.sheet.load()
            columns = ColumnMap.resolve(snapshot.headers, self.headers)
            rows = [columns.read(n, values) for n, values in enumerate(snapshot.rows, start=2)]
            due = list(eligible_rows(rows, self.clock(), self.pending, self.tz))
        except Exception as e:
            logger.exception("[DISPATCH] run aborted before sending")
            return DispatchResult.failed(_error_text(e))

        result = DispatchResult(success=True, count=len(due))
        logger.info("[DISPATCH] %d due row(s) of %d", len(due), len(rows))

        for row in due:
            try:
                self._process_row(token, row, columns, result)
            except Exception as e:
                logger.exception("[DISPATCH] row %d: unexpected error", row.row_number)
                result.errors.append(ErrorEntry(
                    row.row_number, Target("row", str(row.row_number)), ProcessingFailure(_error_text(e))
                ))

        logger.info("[DISPATCH] done: due=%d sent=%d skipped=%d errors=%d",
                    result.count, result.sent_count, result.skipped_count, len(result.errors))
        return result

    def _process_row(self, token: str, row: ScheduledRow, columns: ColumnMap, result: DispatchResult):
        targets = resolve_targets(row)
        if not targets:
            logger.debug("[DISPATCH] row %d has no user or group, skipped", row.row_number)
            result.skipped_count += 1
            return

        delivered = False
        for target in targets:
            if self._send_one(token, row, target, result):
                delivered = True

        if not delivered:
            logger.warning("[DISPATCH] row %d: every send failed, stays %s", row.row_number, self.pending)
            return

        try:
            self.sheet.update_cell(row.row_number, columns.state, self.sent)
        except Exception as e:
            logger.exception("[DISPATCH] row %d: sent but state write failed", row.row_number)
            result.errors.append(ErrorEntry(
                row.row_number, Target("row", str(row.row_number)), WriteBackFailure(_error_text(e))
            ))
            return
        result.sent_count += 1

    def _send_one(self, token: str, row: ScheduledRow, target: Target, result: DispatchResult) -> bool:
        try:
            self.client.send(token, target, row.message)
        except WorksApiError as e:
            logger.warning("[DISPATCH] row %d %s %s rejected: HTTP %s",
                           row.row_number, target.kind, target.id, e.status)
            result.errors.append(ErrorEntry(row.row_number, target, HttpFailure(e.status, e.body)))
            return False
        except Exception as e:
            logger.warning("[DISPATCH] row %d %s %s failed: %r",
                           row.row_number, target.kind, target.id, e)
            result.errors.append(ErrorEntry(row.row_number, target, TransportFailure(_error_text(e))))
            return False
        logger.info("[DISPATCH] row %d -> %s %s ok", row.row_number, target.kind, target.id)
        return True


def build_dispatcher(config, token_provider: Callable[[], str]) -> Dispatcher:
    """Dispatcher wired to the Google sheet and LINE WORKS from a Flask config mapping."""
    sheet = ScheduleSheet(config.get("SPREADSHEET_ID"), tab=config.get("SHEET_TAB"))
    client = WorksClient(
        bot_id=config.get("WORKS_BOT_ID"),
        api_base=config.get("WORKS_API_BASE") or "https://www.worksapis.com/v1.0",
        timeout=config.get("WORKS_HTTP_TIMEOUT") or 15,
    )
    headers = {
        "state":     config.get("HEADER_STATE"),
        "message":   config.get("HEADER_MESSAGE"),
        "group":     config.get("HEADER_GROUP"),
        "users":     config.get("HEADER_USERS"),
        "send_time": config.get("HEADER_SEND_TIME"),
    }
    return Dispatcher(
        sheet, client, token_provider,
        headers={k: v for k, v in headers.items() if v},
        pending=config.get("STATE_PENDING") or STATE_PENDING,
        sent=config.get("STATE_SENT") or STATE_SENT,
        tz=ZoneInfo(config.get("SCHEDULE_TIMEZONE") or "Asia/Tokyo"),
    )


def get_dispatcher(app) -> Dispatcher:
    """The app's dispatcher, built on first use."""
    dispatcher = app.extensions.get("dispatcher")
    if dispatcher is None:
        tokens = app.extensions["works_token"]
        dispatcher = build_dispatcher(app.config, tokens.get_server_access_token)
        app.extensions["dispatcher"] = dispatcher
    return dispatcher
