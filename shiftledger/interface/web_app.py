"""Mini README: FastAPI JSON service over the ledger manager.

Structure:
    * create_application - application factory wiring routes to a manager.
    * status_for_error - mapping from engine errors to HTTP status codes.

The service exposes the driver's ledgers, the shift window of each day and
the mutation workflow (open/close day, add/edit/delete transactions). An
``AutoCloseMonitor`` follows the selected day for the lifetime of the app.
Rendering is left to clients; every route answers JSON.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Form, HTTPException
from fastapi.responses import JSONResponse

from ..configuration import get_settings
from ..finance.errors import (
    AlreadyOpenConflict,
    ClosedLedgerError,
    LedgerError,
    MultipleOpenLedgersError,
    NoLedgerSelectedError,
    ShiftEndedError,
    TransientIOError,
    UnsupportedOperation,
    ValidationError,
)
from ..finance.ledger import Driver, Ledger, filter_transactions
from ..ledgers import LedgerManager
from ..logging_utils import get_logger
from ..shifts import AutoCloseMonitor

LOGGER = get_logger(__name__)

_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (UnsupportedOperation, 405),
    (ClosedLedgerError, 409),
    (AlreadyOpenConflict, 409),
    (MultipleOpenLedgersError, 409),
    (NoLedgerSelectedError, 409),
    (ShiftEndedError, 409),
    (TransientIOError, 503),
)


def status_for_error(error: Exception) -> int:
    """Return the HTTP status that best describes an engine error."""

    if isinstance(error, KeyError):
        return 404
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 502


def _http_error(error: Exception) -> HTTPException:
    detail: Dict[str, Any] = {"error": type(error).__name__, "message": str(error).strip("'\"")}
    if isinstance(error, AlreadyOpenConflict):
        detail["open_day_id"] = error.open_day_id
    return HTTPException(status_code=status_for_error(error), detail=detail)


def create_application(
    manager: Optional[LedgerManager] = None,
    *,
    monitor: Optional[AutoCloseMonitor] = None,
) -> FastAPI:
    """Create the FastAPI application with routes and dependencies."""

    settings = get_settings()
    if manager is None:
        manager = LedgerManager.from_settings(settings)
    if monitor is None:
        monitor = AutoCloseMonitor(
            manager,
            interval_seconds=settings.auto_close_interval_seconds,
            clock=manager.clock,
        )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if manager.driver is not None:
            try:
                manager.refresh()
            except LedgerError as error:
                LOGGER.warning("Initial refresh failed: %s", error)
        monitor.attach()
        try:
            yield
        finally:
            monitor.stop()
            manager.store.close()

    app = FastAPI(title="Shift Ledger", version="0.1.0", lifespan=lifespan)
    app.state.manager = manager
    app.state.monitor = monitor

    def ledger_overview(ledger: Ledger) -> Dict[str, Any]:
        summary = ledger.summary()
        return {
            "id": ledger.day_id,
            "status": ledger.status.value,
            "transaction_count": summary.transaction_count,
            "net": summary.net,
        }

    def ledger_detail(ledger: Ledger, transactions: Optional[list] = None) -> Dict[str, Any]:
        payload = ledger.as_dict()
        payload["window"] = manager.window_for(ledger.day_id).as_dict(manager.clock())
        if transactions is not None:
            payload["transactions"] = [item.as_dict() for item in transactions]
        return payload

    @app.get("/ledgers")
    def list_ledgers() -> JSONResponse:
        """Return every ledger, newest first, with the selected day."""

        stale = manager.stale_open_ledger()
        ledgers = [ledger_overview(ledger) for ledger in manager.ledgers]
        LOGGER.debug("Returning %s ledgers", len(ledgers))
        return JSONResponse(
            {
                "driver": manager.driver.as_dict() if manager.driver else None,
                "current_day_id": manager.current_day_id,
                "stale_open_day_id": stale.day_id if stale else None,
                "ledgers": ledgers,
            }
        )

    @app.get("/ledgers/{day_id}")
    def ledger_view(
        day_id: str,
        query: Optional[str] = None,
        kind: Optional[str] = None,
        sort: str = "time",
    ) -> JSONResponse:
        """Return one ledger with its shift window and filtered transactions."""

        try:
            ledger = manager.get_ledger(day_id)
            transactions = filter_transactions(
                ledger.transactions, query=query, transaction_type=kind, sort_by=sort
            )
        except (LedgerError, KeyError) as error:
            raise _http_error(error) from error
        return JSONResponse(ledger_detail(ledger, transactions))

    @app.post("/ledgers/{day_id}/select")
    def select_ledger(day_id: str) -> JSONResponse:
        try:
            ledger = manager.select_day(day_id)
        except (LedgerError, KeyError) as error:
            raise _http_error(error) from error
        return JSONResponse(ledger_detail(ledger))

    @app.post("/session/driver")
    def sign_in(
        name: str = Form(...),
        mobile: str = Form(...),
    ) -> JSONResponse:
        """Sign a driver in (identified by mobile number) and load their days."""

        if not name.strip() or not mobile.strip():
            raise _http_error(ValidationError("Name and mobile are required."))
        driver = Driver(driver_id=mobile.strip(), name=name.strip(), mobile=mobile.strip())
        try:
            result = manager.sign_in(driver)
        except LedgerError as error:
            raise _http_error(error) from error
        return JSONResponse(
            {
                "driver": driver.as_dict(),
                "ledgers": [ledger_overview(ledger) for ledger in result.ledgers],
                "failed_sources": result.failed_sources,
            }
        )

    @app.post("/refresh")
    def refresh() -> JSONResponse:
        try:
            result = manager.refresh()
        except LedgerError as error:
            raise _http_error(error) from error
        return JSONResponse(
            {
                "ledgers": [ledger_overview(ledger) for ledger in result.ledgers],
                "failed_sources": result.failed_sources,
            }
        )

    @app.post("/day/open")
    def open_day() -> JSONResponse:
        """Open today's shift day and select it."""

        try:
            ledger = manager.open_day()
        except LedgerError as error:
            raise _http_error(error) from error
        LOGGER.info("Day %s opened via API", ledger.day_id)
        return JSONResponse(ledger_detail(ledger))

    @app.post("/day/close")
    def close_day() -> JSONResponse:
        try:
            ledger = manager.close_day()
        except LedgerError as error:
            raise _http_error(error) from error
        return JSONResponse(ledger_detail(ledger))

    @app.post("/transactions")
    def add_transaction(
        client_name: str = Form(...),
        amount: str = Form(...),
        kind: str = Form(...),
    ) -> JSONResponse:
        """Record an income or expense on the selected day."""

        try:
            transaction = manager.add_transaction(client_name, amount, kind)
        except LedgerError as error:
            raise _http_error(error) from error
        return JSONResponse(transaction.as_dict(), status_code=201)

    @app.put("/transactions/{transaction_id}")
    def edit_transaction(
        transaction_id: str,
        client_name: Optional[str] = Form(None),
        amount: Optional[str] = Form(None),
        kind: Optional[str] = Form(None),
    ) -> JSONResponse:
        try:
            transaction = manager.edit_transaction(
                transaction_id, client_name=client_name, amount=amount, transaction_type=kind
            )
        except (LedgerError, KeyError) as error:
            raise _http_error(error) from error
        return JSONResponse(transaction.as_dict())

    @app.delete("/transactions/{transaction_id}")
    def delete_transaction(transaction_id: str) -> JSONResponse:
        try:
            manager.delete_transaction(transaction_id)
        except (LedgerError, KeyError) as error:
            raise _http_error(error) from error
        return JSONResponse({"deleted": transaction_id})

    @app.get("/notices")
    def notices() -> JSONResponse:
        return JSONResponse({"notices": [notice.as_dict() for notice in manager.notices]})

    return app
