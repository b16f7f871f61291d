"""
Explicit lock/change state shared by form sessions.

One ChangeSession exists per domain connection and is passed by reference
to every FormSession. Its state has a defined lifecycle:

    connect(...)         created when a connection is made
    commit() / discard() replaced with has_changes=False
    load_lock_state(...) re-read on reconnect
    most_recent          read at any time
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from cfe.operations import ChangeOperations, FailureType, TransportError

logger = logging.getLogger(__name__)

FORBIDDEN = 403


@dataclass(frozen=True)
class ChangeState:
    is_lock_owner: bool = False
    has_changes: bool = False
    supports_changes: bool = False
    lock_owner: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isLockOwner": self.is_lock_owner,
            "hasChanges": self.has_changes,
            "supportsChanges": self.supports_changes,
        }


ChangeListener = Callable[[str, str, ChangeState, Optional[str]], None]


class ChangeSession:
    def __init__(self, username: Optional[str] = None):
        self.username = username
        self._state = ChangeState()
        self._listeners: List[ChangeListener] = []

    @property
    def most_recent(self) -> ChangeState:
        return self._state

    def connect(self, raw: Dict[str, Any]) -> ChangeState:
        """Compute the derived flags from a change-manager reply and keep them."""
        lock_owner = raw.get("lockOwner")
        self._state = ChangeState(
            is_lock_owner=lock_owner is not None and lock_owner == self.username,
            has_changes=bool(raw.get("hasChanges", False)),
            supports_changes=bool(raw.get("supportsChanges", False)),
            lock_owner=lock_owner,
        )
        return self._state

    def reset(self) -> ChangeState:
        self._state = ChangeState()
        return self._state

    async def load_lock_state(self, operations: ChangeOperations) -> ChangeState:
        """
        Re-read lock state on reconnect.

        A 403 from the REST API means no domain connection yet; that resolves
        to the default state. Any other failure propagates.
        """
        try:
            reply = await operations.get_lock_state()
        except TransportError as e:
            self.reset()
            if e.failure_type == FailureType.CBE_REST_API and e.status == FORBIDDEN:
                logger.info("Lock state unavailable (not connected); using defaults")
                return self._state
            raise
        return self.connect(reply.get("changeManager", {}))

    async def commit(self, operations: ChangeOperations) -> ChangeState:
        await operations.commit_changes()
        return self._cleared()

    async def discard(self, operations: ChangeOperations) -> ChangeState:
        await operations.discard_changes()
        return self._cleared()

    def _cleared(self) -> ChangeState:
        self._state = ChangeState(
            is_lock_owner=self._state.is_lock_owner,
            has_changes=False,
            supports_changes=self._state.supports_changes,
            lock_owner=self._state.lock_owner,
        )
        return self._state

    # =========================================================================
    # MODIFICATION SIGNAL
    # =========================================================================

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def signal_modified(self, source: str, action: str, state: ChangeState, uri: Optional[str] = None) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(source, action, state, uri)
