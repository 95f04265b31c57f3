"""Synchronization: the local change bus and the remote change listener."""

from ledger.sync.bus import ChangeBus
from ledger.sync.remote import RemoteChangeListener

__all__ = ["ChangeBus", "RemoteChangeListener"]
