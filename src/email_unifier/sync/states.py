"""Per-key sync lifecycle: states, events and the transition map."""

from __future__ import annotations

from enum import Enum

from email_unifier.exceptions import InvalidTransitionError


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    FAILED = "failed"


class SyncEvent(str, Enum):
    """Events that can trigger state transitions in a sync run."""

    START = "start"
    PAGE_FETCHED = "page_fetched"
    RECONCILED = "reconciled"
    NEXT_PAGE = "next_page"
    COMPLETE = "complete"
    FAIL = "fail"
    RESET = "reset"


# All valid (current_state, event) -> next_state mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[SyncState, SyncEvent], SyncState] = {
    (SyncState.IDLE, SyncEvent.START): SyncState.FETCHING,
    (SyncState.FETCHING, SyncEvent.PAGE_FETCHED): SyncState.RECONCILING,
    (SyncState.RECONCILING, SyncEvent.RECONCILED): SyncState.PERSISTING,
    (SyncState.PERSISTING, SyncEvent.NEXT_PAGE): SyncState.FETCHING,
    (SyncState.PERSISTING, SyncEvent.COMPLETE): SyncState.IDLE,
    (SyncState.FETCHING, SyncEvent.FAIL): SyncState.FAILED,
    (SyncState.RECONCILING, SyncEvent.FAIL): SyncState.FAILED,
    (SyncState.PERSISTING, SyncEvent.FAIL): SyncState.FAILED,
    (SyncState.FAILED, SyncEvent.RESET): SyncState.IDLE,
}

ACTIVE_STATES: frozenset[SyncState] = frozenset(
    {SyncState.FETCHING, SyncState.RECONCILING, SyncState.PERSISTING}
)


class SyncStateMachine:
    """Finite state machine for one (account, category) sync run.

    Usage::

        sm = SyncStateMachine()
        sm.trigger(SyncEvent.START)         # -> FETCHING
        sm.trigger(SyncEvent.PAGE_FETCHED)  # -> RECONCILING
        sm.trigger(SyncEvent.RECONCILED)    # -> PERSISTING
        sm.trigger(SyncEvent.COMPLETE)      # -> IDLE
    """

    def __init__(self, initial_state: SyncState = SyncState.IDLE) -> None:
        self._state = initial_state
        self._history: list[tuple[SyncState, SyncEvent, SyncState]] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in ACTIVE_STATES

    @property
    def history(self) -> list[tuple[SyncState, SyncEvent, SyncState]]:
        return list(self._history)

    def trigger(self, event: SyncEvent) -> SyncState:
        """Apply ``event`` and return the new state.

        Raises:
            InvalidTransitionError: If ``event`` is not valid in the current state.
        """
        key = (self._state, SyncEvent(event))
        if key not in TRANSITIONS:
            raise InvalidTransitionError(
                f"Cannot apply '{event}' in state '{self._state.value}'"
            )
        next_state = TRANSITIONS[key]
        self._history.append((self._state, key[1], next_state))
        self._state = next_state
        return next_state
