"""
Remote Change Listener

Feeds the store's change feed into the same refresh path as the local
bus. Changes made by other sessions or devices reach the view this way.
"""

import asyncio
from typing import Callable, Optional

import structlog

from ledger.audit import AuditLogger
from ledger.models.entry import ChangeEvent
from ledger.services.storage import EntryStoreInterface, PersistenceError, Unsubscribe


logger = structlog.get_logger(__name__)


class RemoteChangeListener:
    """
    One standing change-feed subscription, scoped to the current user.

    activate(None) is allowed and leaves the listener inactive until a
    user id is known. Switching users tears down the old subscription
    before the new one starts.
    """

    def __init__(
        self,
        store: EntryStoreInterface,
        on_change: Callable[[], None],
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._on_change = on_change
        self._audit_logger = audit_logger
        self._user_id: Optional[str] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        # Held for each activate/deactivate: at most one live subscription
        self._lock = asyncio.Lock()

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_active(self) -> bool:
        return self._unsubscribe is not None

    async def activate(self, user_id: Optional[str]) -> None:
        """
        Subscribe for user_id, replacing any subscription for another user.

        Raises:
            PersistenceError: If the store refuses the subscription
        """
        async with self._lock:
            await self._activate(user_id)

    async def _activate(self, user_id: Optional[str]) -> None:
        if self.is_active and user_id == self._user_id:
            return

        await self._deactivate()

        if not user_id:
            logger.debug("remote_listener_deferred")
            return

        try:
            unsubscribe = await self._store.subscribe_to_changes(user_id, self._handle)
        except PersistenceError as e:
            logger.warning("remote_subscription_failed", user_id=user_id, error=str(e))
            raise

        self._user_id = user_id
        self._unsubscribe = unsubscribe
        logger.info("remote_subscription_started", user_id=user_id)
        if self._audit_logger:
            await self._audit_logger.log_remote_subscription(user_id, started=True)

    async def deactivate(self) -> None:
        """End the current subscription, if any."""
        async with self._lock:
            await self._deactivate()

    async def _deactivate(self) -> None:
        unsubscribe, user_id = self._unsubscribe, self._user_id
        self._unsubscribe = None
        self._user_id = None
        if unsubscribe is None:
            return

        unsubscribe()
        logger.info("remote_subscription_stopped", user_id=user_id)
        if self._audit_logger and user_id:
            await self._audit_logger.log_remote_subscription(user_id, started=False)

    def _handle(self, event: ChangeEvent) -> None:
        if self._unsubscribe is None or event.user_id != self._user_id:
            # Late delivery for a subscription that has already ended
            return
        logger.debug(
            "remote_change_received",
            user_id=event.user_id,
            kind=event.kind.value,
        )
        self._on_change()
