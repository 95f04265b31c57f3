"""
Period View

Holds what one viewer is looking at: a user, a period selection, and the
latest PeriodReport for that selection. Its data lifecycle is an explicit
state machine:

    IDLE (no user) -> LOADING -> READY | ERROR
    READY / ERROR  -> LOADING on any trigger

Triggers are a selection change, a local bus notification, or a remote
change event. All three feed request_refresh(), which collapses bursts
inside the debounce window into one fetch. The fetch reads the selection
current at that moment.

Every fetch is tagged with a generation number. A result is applied only
when it belongs to the newest fetch and the user and selection have not
changed since it started.
"""

import asyncio
from enum import Enum
from typing import Optional, Union

import structlog

from ledger.audit import AuditLogger
from ledger.config import get_settings
from ledger.engine import aggregate
from ledger.models.entry import Entry, PeriodReport
from ledger.queries import PeriodSelection
from ledger.services.storage import (
    EntryStoreInterface,
    PersistenceError,
    StoreConnectionError,
)
from ledger.sync import ChangeBus, RemoteChangeListener


logger = structlog.get_logger(__name__)


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class LedgerView:
    """
    Keeps one period's report in step with the store.

    Observers subscribe to `updates` and read `report`, `entries`,
    `state` and `error` when called. They are notified whenever the view
    reaches READY or ERROR.
    """

    def __init__(
        self,
        store: EntryStoreInterface,
        bus: ChangeBus,
        selection: Optional[PeriodSelection] = None,
        debounce_seconds: Optional[float] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if debounce_seconds is None:
            debounce_seconds = get_settings().ledger.refresh_debounce_seconds

        self._store = store
        self._bus = bus
        self._selection = selection or PeriodSelection.current()
        self._debounce = debounce_seconds
        self._audit_logger = audit_logger

        self._user_id: Optional[str] = None
        self._state = ViewState.IDLE
        self._report: Optional[PeriodReport] = None
        self._entries: list[Entry] = []
        self._error: Optional[str] = None

        self._generation = 0
        self._pending: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._bus_unsubscribe = None
        self._closed = False

        self._remote = RemoteChangeListener(store, self.request_refresh, audit_logger)
        self.updates = ChangeBus(name="view")
        self.fetch_count = 0

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def selection(self) -> PeriodSelection:
        return self._selection

    @property
    def report(self) -> Optional[PeriodReport]:
        return self._report

    @property
    def entries(self) -> list[Entry]:
        return list(self._entries)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def remote(self) -> RemoteChangeListener:
        return self._remote

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self, user_id: Optional[str] = None) -> None:
        """Start listening to the bus and, once a user is known, the store."""
        if self._closed:
            raise RuntimeError("View is closed")
        if self._bus_unsubscribe is None:
            self._bus_unsubscribe = self._bus.subscribe(self.request_refresh)
        await self.set_user(user_id)

    async def set_user(self, user_id: Optional[str]) -> None:
        """
        Switch the viewed user. None returns the view to IDLE.

        The remote subscription follows the user. If it cannot be
        established the view still refreshes on local changes.
        """
        user_id = user_id or None
        if user_id == self._user_id and (user_id is None or self._remote.is_active):
            return

        self._user_id = user_id
        self._report = None
        self._entries = []
        self._error = None
        # Results of fetches for the previous user are no longer wanted
        self._generation += 1

        if user_id is None:
            self._cancel_pending()
            await self._remote.deactivate()
            self._state = ViewState.IDLE
            return

        try:
            await self._remote.activate(user_id)
        except PersistenceError as e:
            logger.warning("remote_listener_unavailable", user_id=user_id, error=str(e))

        self.request_refresh()

    async def close(self) -> None:
        """Stop listening everywhere and drop in-flight work."""
        self._closed = True
        if self._bus_unsubscribe is not None:
            self._bus_unsubscribe()
            self._bus_unsubscribe = None
        await self._remote.deactivate()
        self._cancel_pending()
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def select(
        self,
        year: Union[str, int, None] = None,
        month: Optional[str] = None,
    ) -> None:
        """Change the period selection and schedule a refresh."""
        selection = self._selection
        if year is not None:
            selection = selection.with_year(year)
        if month is not None:
            selection = selection.with_month(month)
        if selection == self._selection:
            return
        self._selection = selection
        self.request_refresh()

    def request_refresh(self) -> None:
        """
        Ask for a refresh. Requests arriving while one is already
        scheduled are absorbed by it.
        """
        if self._closed or self._user_id is None:
            return
        # A newer fetch is coming: whatever is in flight is already stale
        self._generation += 1
        self._state = ViewState.LOADING
        if self._pending is not None:
            return
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self._debounce, self._launch_refresh)

    def _launch_refresh(self) -> None:
        self._pending = None
        task = asyncio.ensure_future(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    # -------------------------------------------------------------------------
    # Fetch
    # -------------------------------------------------------------------------

    def _is_current(
        self,
        generation: int,
        user_id: str,
        selection: PeriodSelection,
    ) -> bool:
        return (
            generation == self._generation
            and user_id == self._user_id
            and selection == self._selection
        )

    async def refresh(self) -> None:
        """Fetch the current selection from the store and re-aggregate."""
        user_id = self._user_id
        if user_id is None:
            self._state = ViewState.IDLE
            return

        selection = self._selection
        self._generation += 1
        generation = self._generation
        self._state = ViewState.LOADING
        self.fetch_count += 1

        query = selection.to_query(user_id)
        try:
            entries = await self._store.query(query.user_id, query.year, query.month)
            report = aggregate(entries)
        except PersistenceError as e:
            if self._is_current(generation, user_id, selection):
                logger.warning(
                    "refresh_failed",
                    user_id=user_id,
                    period=selection.label,
                    error=str(e),
                )
                await self._fail(e, user_id, selection)
            return
        except Exception as e:
            logger.exception("refresh_crashed", user_id=user_id, period=selection.label)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"user_id": user_id, "period": selection.label},
                )
            if self._is_current(generation, user_id, selection):
                self._error = str(e)
                self._state = ViewState.ERROR
                self.updates.notify()
            return

        if not self._is_current(generation, user_id, selection):
            logger.debug(
                "stale_fetch_discarded",
                user_id=user_id,
                period=selection.label,
            )
            return

        self._entries = entries
        self._report = report
        self._error = None
        self._state = ViewState.READY
        self.updates.notify()

    async def _fail(
        self,
        error: PersistenceError,
        user_id: str,
        selection: PeriodSelection,
    ) -> None:
        self._error = str(error)
        self._state = ViewState.ERROR
        self.updates.notify()
        if not self._audit_logger:
            return
        if isinstance(error, StoreConnectionError):
            await self._audit_logger.log_external_service_error("entry_store", str(error))
        await self._audit_logger.log_refresh_failed(user_id, selection.label, str(error))

    async def settle(self) -> None:
        """Wait until no refresh is scheduled or running."""
        while self._pending is not None or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self._debounce)
