"""Mini README: Ledger store backed by the remote driver API.

Structure:
    * RemoteLedgerStore - ``LedgerStore`` speaking JSON over ``httpx``.

Endpoints used (relative to the configured base URL):
    * ``GET /transactions`` and ``POST /transactions``
    * ``GET /driver/day/current``
    * ``POST /driver/day/open`` and ``POST /driver/day/close``

The server stamps each day with a calendar ``date``. When the record
carries ``opened_at`` the day id is taken from the shift day containing
that instant instead, so a day opened before the shift start hour lands in
the same ledger as the rows recorded during it.

The server is the authority on day status. It has no edit or delete
endpoints, so this store declares both capabilities unsupported. A missing
current day (``404`` or an empty body) is reported as ``None``; network
failures, timeouts and ``5xx`` answers raise ``TransientIOError`` so they
are never mistaken for an empty result.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..finance.errors import (
    AlreadyOpenConflict,
    ClosedLedgerError,
    DegradedRowError,
    LedgerError,
    TransientIOError,
    ValidationError,
)
from ..finance.ledger import DayStatus, Transaction, TransactionDraft, parse_instant
from ..logging_utils import get_logger
from ..reconciliation.rows import coerce_row
from ..shifts.window import DEFAULT_START_HOUR, parse_day_id, shift_day_for
from .base import CurrentDayStatus, LedgerStore, RawRow

LOGGER = get_logger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, Mapping):
        for key in ("message", "error", "detail"):
            if payload.get(key):
                return str(payload[key])
    return str(payload)[:200]


class RemoteLedgerStore(LedgerStore):
    """Ledger store delegating to the hosted driver API."""

    backend_name = "remote"
    supports_edit = False
    supports_delete = False

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        tz: tzinfo = timezone.utc,
        start_hour: int = DEFAULT_START_HOUR,
    ) -> None:
        self.tz = tz
        self.start_hour = start_hour
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)
        if client is not None:
            self._client.headers.update(headers)
        LOGGER.debug("Remote ledger store targeting %s", self._client.base_url)

    @classmethod
    def from_settings(cls, settings: Any) -> "RemoteLedgerStore":
        return cls(
            settings.api_base_url,
            settings.api_token,
            timeout=settings.api_timeout_seconds,
            tz=settings.resolve_timezone(),
            start_hour=settings.shift_start_hour,
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TransportError as error:
            raise TransientIOError(f"{method} {path} failed: {error}") from error
        if response.status_code >= 500:
            raise TransientIOError(
                f"{method} {path} answered {response.status_code}: {_error_detail(response)}"
            )
        LOGGER.debug("%s %s -> %s", method, path, response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as error:
            raise TransientIOError(f"Unreadable response from {response.request.url}") from error

    @staticmethod
    def _raise_client_error(response: httpx.Response, action: str) -> None:
        if response.status_code < 400:
            return
        detail = _error_detail(response)
        if response.status_code in (400, 422):
            raise ValidationError(f"Server rejected {action}: {detail}")
        raise LedgerError(f"{action} failed with HTTP {response.status_code}: {detail}")

    def fetch_transactions(self, driver_id: str) -> List[RawRow]:
        response = self._request("GET", "/transactions")
        self._raise_client_error(response, "listing transactions")
        payload = self._json(response)
        if isinstance(payload, Mapping):
            payload = payload.get("transactions", payload.get("data"))
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TransientIOError("Transaction listing was not a JSON array")
        return [row for row in payload if isinstance(row, Mapping)]

    def fetch_current_day_status(self, driver_id: str) -> Optional[CurrentDayStatus]:
        response = self._request("GET", "/driver/day/current")
        if response.status_code == 404:
            return None
        self._raise_client_error(response, "reading the current day")
        payload = self._json(response)
        if not payload:
            return None
        return self._parse_day(payload)

    def _parse_day(self, payload: Any) -> CurrentDayStatus:
        if not isinstance(payload, Mapping):
            raise TransientIOError(f"Unexpected day payload: {payload!r}")
        try:
            raw_date = str(payload.get("date") or "")[:10]
            parse_day_id(raw_date)
            opened = payload.get("opened_at")
            closed = payload.get("closed_at")
            opened_at = parse_instant(opened) if opened else None
            day_id = raw_date
            if opened_at is not None:
                # Same shift-day boundary the reconciler buckets rows by.
                day_id = shift_day_for(opened_at, tz=self.tz, start_hour=self.start_hour)
                if day_id != raw_date:
                    LOGGER.debug(
                        "Server day %s opened at %s belongs to shift day %s", raw_date, opened, day_id
                    )
            return CurrentDayStatus(
                day_id=day_id,
                status=DayStatus.from_str(payload.get("status")),
                opened_at=opened_at,
                closed_at=parse_instant(closed) if closed else None,
            )
        except ValidationError as error:
            raise TransientIOError(f"Unreadable day record: {error}") from error

    def persist_transaction(self, driver_id: str, draft: TransactionDraft) -> Transaction:
        response = self._request(
            "POST",
            "/transactions",
            json={
                "amount": draft.amount,
                "type": draft.transaction_type.value,
                "description": draft.client_name,
            },
        )
        if response.status_code == 409:
            raise ClosedLedgerError("current")
        self._raise_client_error(response, "creating a transaction")
        payload = self._json(response)
        try:
            stored = coerce_row(payload or {})
        except DegradedRowError as error:
            raise TransientIOError(f"Server returned an unreadable transaction: {error}") from error
        LOGGER.info("Stored remote transaction %s", stored.transaction_id)
        return stored

    def set_day_status(
        self, driver_id: str, day_id: str, status: DayStatus, *, at: datetime
    ) -> CurrentDayStatus:
        status = DayStatus.from_str(status)
        if status is DayStatus.OPEN:
            return self._open_day()
        return self._close_day(day_id)

    def _open_day(self) -> CurrentDayStatus:
        response = self._request("POST", "/driver/day/open")
        if response.status_code == 409 or (
            response.status_code == 400 and "open" in _error_detail(response).lower()
        ):
            current = self.fetch_current_day_status("")
            raise AlreadyOpenConflict(
                f"Server refused to open a day: {_error_detail(response)}",
                open_day_id=current.day_id if current and current.is_open else None,
            )
        self._raise_client_error(response, "opening a day")
        record = self._parse_day(self._json(response))
        LOGGER.info("Server opened day %s", record.day_id)
        return record

    def _close_day(self, day_id: str) -> CurrentDayStatus:
        current = self.fetch_current_day_status("")
        if current is None or not current.is_open or current.day_id != day_id:
            LOGGER.info("Day %s is not open on the server; treating it as closed", day_id)
            if current is not None and current.day_id == day_id:
                return current
            return CurrentDayStatus(day_id=day_id, status=DayStatus.CLOSED)
        response = self._request("POST", "/driver/day/close")
        if response.status_code in (404, 409):
            refreshed = self.fetch_current_day_status("")
            if refreshed is not None and refreshed.day_id == day_id:
                return refreshed
            return CurrentDayStatus(day_id=day_id, status=DayStatus.CLOSED)
        self._raise_client_error(response, "closing a day")
        record = self._parse_day(self._json(response))
        LOGGER.info("Server closed day %s", record.day_id)
        return record

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
        super().close()

    def metadata(self) -> Dict[str, object]:
        details = super().metadata()
        details["base_url"] = str(self._client.base_url)
        return details
