"""
Synchronization Bus

In-process publish/subscribe signal meaning "entries changed, re-fetch".
It carries no data. One bus is built at startup and handed to every
component that mutates entries or shows them.

Delivery rules:
- callbacks run synchronously, in registration order
- a callback registered during notify() is not called in that pass
- a callback unsubscribed during notify() is skipped if not yet reached
- a callback that raises is logged; the rest still run
"""

from typing import Callable

import structlog


Callback = Callable[[], None]

logger = structlog.get_logger(__name__)


class _Subscription:
    __slots__ = ("callback", "active")

    def __init__(self, callback: Callback):
        self.callback = callback
        self.active = True


class ChangeBus:
    """Zero-payload notification bus."""

    def __init__(self, name: str = "entries"):
        self._name = name
        self._subscriptions: list[_Subscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __bool__(self) -> bool:
        # Truthy even with no subscribers
        return True

    def subscribe(self, callback: Callback) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function removing exactly this registration. Safe to call
            any number of times.
        """
        subscription = _Subscription(callback)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscriptions.remove(subscription)

        return unsubscribe

    def notify(self) -> None:
        """Call every currently registered callback once."""
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.callback()
            except Exception:
                logger.exception(
                    "change_listener_failed",
                    bus=self._name,
                    callback=getattr(subscription.callback, "__qualname__", repr(subscription.callback)),
                )
