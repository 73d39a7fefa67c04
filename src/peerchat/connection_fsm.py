"""
PeerChat - Connection State Machine for the chat session lifecycle.

Created by orpheus497

Tracks one peer session through identity assignment, outbound connect
attempts, open channels, closes and transport errors. Events that have no
entry in the transition table leave the state untouched.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .constants import STATE_HISTORY_MAX

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Where a peer session currently stands."""

    IDLE = "idle"  # Provider not yet open
    PEER_ID_ASSIGNED = "peer-id-assigned"  # Local identity known, no channel
    CONNECTING = "connecting"  # Outbound connect attempt in progress
    CONNECTED = "connected"  # Channel open
    DISCONNECTED = "disconnected"  # Channel closed
    ERROR = "error"  # Transport-level failure, non-terminal


class ConnectionEvent(Enum):
    """Inputs to the session state machine."""

    PEER_ID_ASSIGNED = "peer_id_assigned"  # Provider assigned the local identity
    CONNECT_REQUESTED = "connect_requested"  # User started an outbound attempt
    CHANNEL_OPENED = "channel_opened"  # Inbound or outbound channel is open
    CHANNEL_CLOSED = "channel_closed"  # Active channel closed
    ERROR_OCCURRED = "error_occurred"  # Provider or channel reported an error


@dataclass
class StateTransition:
    """One accepted transition, kept in the history."""

    from_state: ConnectionState
    event: ConnectionEvent
    to_state: ConnectionState
    timestamp: float = field(default_factory=time.time)


def _build_transitions() -> Dict[ConnectionState, Dict[ConnectionEvent, ConnectionState]]:
    S, E = ConnectionState, ConnectionEvent
    table = {
        S.IDLE: {E.PEER_ID_ASSIGNED: S.PEER_ID_ASSIGNED},
        S.PEER_ID_ASSIGNED: {E.CONNECT_REQUESTED: S.CONNECTING, E.CHANNEL_OPENED: S.CONNECTED},
        S.CONNECTING: {E.CHANNEL_OPENED: S.CONNECTED, E.CHANNEL_CLOSED: S.DISCONNECTED},
        S.CONNECTED: {E.CHANNEL_CLOSED: S.DISCONNECTED},
        S.DISCONNECTED: {E.CONNECT_REQUESTED: S.CONNECTING, E.CHANNEL_OPENED: S.CONNECTED},
        S.ERROR: {
            E.PEER_ID_ASSIGNED: S.PEER_ID_ASSIGNED,
            E.CONNECT_REQUESTED: S.CONNECTING,
            E.CHANNEL_OPENED: S.CONNECTED,
        },
    }
    # Any state may fail
    for targets in table.values():
        targets[E.ERROR_OCCURRED] = S.ERROR
    return table


class ConnectionStateMachine:
    """
    Finite state machine for the peer session lifecycle.

    CONNECTED is only reachable once the local identity has been assigned,
    including when leaving ERROR. The reason of the latest error is kept
    until the next successful non-error transition.

    Attributes:
        current_state: State the session is in
        previous_state: State before the latest transition
        error_message: Reason of the latest error, if still in effect
        transition_history: Recent accepted transitions, oldest first
    """

    TRANSITIONS = _build_transitions()

    REQUIRES_PEER_ID = frozenset(
        {ConnectionEvent.CONNECT_REQUESTED, ConnectionEvent.CHANNEL_OPENED}
    )

    def __init__(self, initial_state: ConnectionState = ConnectionState.IDLE):
        self.current_state = initial_state
        self.previous_state: Optional[ConnectionState] = None
        self.state_entry_time = time.time()
        self.error_message: Optional[str] = None
        self.peer_id_assigned = initial_state == ConnectionState.PEER_ID_ASSIGNED
        self.transition_history: List[StateTransition] = []
        self.max_history = STATE_HISTORY_MAX

        self.on_state_change: Optional[Callable[[ConnectionState, ConnectionState], None]] = None
        self.on_connected: Optional[Callable[[], None]] = None
        self.on_disconnected: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

    def transition(self, event: ConnectionEvent, error_msg: Optional[str] = None) -> bool:
        """
        Apply an event to the current state.

        Args:
            event: What happened
            error_msg: Reason, used only with ERROR_OCCURRED

        Returns:
            True if the event was accepted, False if it was ignored
        """
        if not self.is_valid_transition(self.current_state, event):
            logger.warning(f"Ignoring {event.name} in state {self.current_state.name}")
            return False

        old_state = self.current_state
        new_state = self.TRANSITIONS[old_state][event]

        if event is ConnectionEvent.ERROR_OCCURRED:
            self.error_message = error_msg or "Unknown error"
        else:
            self.error_message = None
        if new_state is ConnectionState.PEER_ID_ASSIGNED:
            self.peer_id_assigned = True

        self.previous_state = old_state
        self.current_state = new_state
        self.state_entry_time = time.time()
        self._record(StateTransition(old_state, event, new_state))

        logger.info(f"Connection state {old_state.name} -> {new_state.name} on {event.name}")

        self._fire("state change", self.on_state_change, old_state, new_state)
        if new_state is ConnectionState.CONNECTED:
            self._fire("connected", self.on_connected)
        elif new_state is ConnectionState.DISCONNECTED:
            self._fire("disconnected", self.on_disconnected)
        elif new_state is ConnectionState.ERROR:
            self._fire("error", self.on_error, self.error_message)

        return True

    def _record(self, entry: StateTransition) -> None:
        self.transition_history.append(entry)
        excess = len(self.transition_history) - self.max_history
        if excess > 0:
            del self.transition_history[:excess]

    @staticmethod
    def _fire(name: str, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Connection {name} callback failed: {e}")

    def is_valid_transition(self, from_state: ConnectionState, event: ConnectionEvent) -> bool:
        """Check whether event is accepted in from_state."""
        if event not in self.TRANSITIONS.get(from_state, {}):
            return False
        return self.peer_id_assigned or event not in self.REQUIRES_PEER_ID

    def can_connect(self) -> bool:
        """Check whether an outbound connect attempt is allowed right now."""
        return self.is_valid_transition(self.current_state, ConnectionEvent.CONNECT_REQUESTED)

    def get_state(self) -> ConnectionState:
        return self.current_state

    def get_previous_state(self) -> Optional[ConnectionState]:
        return self.previous_state

    def get_error_message(self) -> Optional[str]:
        return self.error_message

    def get_time_in_state(self) -> float:
        """Seconds since the latest transition."""
        return time.time() - self.state_entry_time

    def is_connected(self) -> bool:
        return self.current_state is ConnectionState.CONNECTED

    def is_connecting(self) -> bool:
        return self.current_state is ConnectionState.CONNECTING

    def is_error(self) -> bool:
        return self.current_state is ConnectionState.ERROR

    def get_history(self, count: int = 10) -> List[StateTransition]:
        """Return up to count of the most recent transitions."""
        return self.transition_history[-count:]

    def has_visited(self, state: ConnectionState) -> bool:
        """Check whether any recorded transition entered state."""
        return any(t.to_state is state for t in self.transition_history)

    def get_statistics(self) -> Dict[str, Any]:
        """
        Summarize the machine for diagnostics.

        Returns:
            Current and previous state names, error, transition and
            per-event counts
        """
        counts = Counter(t.event.name for t in self.transition_history)
        return {
            "current_state": self.current_state.name,
            "previous_state": self.previous_state.name if self.previous_state else None,
            "time_in_state": self.get_time_in_state(),
            "error_message": self.error_message,
            "total_transitions": len(self.transition_history),
            "event_counts": dict(counts),
            "is_connected": self.is_connected(),
            "is_error": self.is_error(),
        }

    def __repr__(self) -> str:
        return f"<ConnectionStateMachine {self.current_state.name} for {self.get_time_in_state():.1f}s>"
