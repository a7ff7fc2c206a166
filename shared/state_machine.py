from enum import Enum
from typing import Optional, Callable, List
from dataclasses import dataclass

from .errors import StateError


class MatchStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class TournamentState(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class Transition:
    from_state: Enum
    to_state: Enum
    action: str
    guard: Optional[Callable] = None


class StateMachine:
    """Table driven state machine; subclasses provide the tables."""

    STATES = None
    INITIAL = None
    TERMINAL = ()
    TRANSITIONS: List[Transition] = []
    ALLOWED_ACTIONS = {}

    def __init__(self, initial_state=None):
        self._state = initial_state if initial_state is not None else self.INITIAL
        self._history: List[tuple] = []

    @property
    def state(self):
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in self.TERMINAL

    @property
    def allowed_actions(self) -> List[str]:
        return self.ALLOWED_ACTIONS.get(self._state, [])

    def can_transition(self, action: str) -> bool:
        return self._find(action) is not None

    def can_transition_to(self, target) -> bool:
        return any(t.from_state == self._state and t.to_state == target for t in self.TRANSITIONS)

    def can_perform(self, action: str) -> bool:
        return action in self.allowed_actions

    def _find(self, action: str) -> Optional[Transition]:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                return t
        return None

    def transition(self, action: str, guard_context: dict = None):
        t = self._find(action)
        if t is None:
            raise StateError(
                self._state.value,
                None,
                f"No valid transition for action '{action}' from state '{self._state.value}'"
            )
        return self._apply(t, guard_context)

    def transition_to(self, target, guard_context: dict = None):
        target = self.STATES(target)
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.to_state == target:
                return self._apply(t, guard_context)
        raise StateError(self._state.value, target.value)

    def _apply(self, t: Transition, guard_context: dict = None):
        if t.guard and guard_context is not None:
            if not t.guard(guard_context):
                raise StateError(
                    self._state.value,
                    t.to_state.value,
                    f"Guard condition failed for action '{t.action}'"
                )

        old_state = self._state
        self._state = t.to_state
        self._history.append((old_state, t.action, self._state))
        return self._state

    def get_history(self) -> List[tuple]:
        return self._history.copy()

    @classmethod
    def from_state_string(cls, state_str: str) -> "StateMachine":
        try:
            state = cls.STATES(state_str)
        except ValueError:
            state = cls.INITIAL
        return cls(initial_state=state)


def min_participants_guard(min_count: int = 2):
    def guard(context: dict) -> bool:
        participants = context.get("participants", [])
        return len(participants) >= min_count
    return guard


class MatchStateMachine(StateMachine):
    STATES = MatchStatus
    INITIAL = MatchStatus.UPCOMING
    TERMINAL = (MatchStatus.COMPLETED, MatchStatus.CANCELLED)

    TRANSITIONS = [
        Transition(MatchStatus.UPCOMING, MatchStatus.ONGOING, "start", min_participants_guard(2)),
        Transition(MatchStatus.UPCOMING, MatchStatus.COMPLETED, "complete", min_participants_guard(2)),
        Transition(MatchStatus.UPCOMING, MatchStatus.CANCELLED, "cancel"),
        Transition(MatchStatus.UPCOMING, MatchStatus.EXPIRED, "expire"),
        Transition(MatchStatus.ONGOING, MatchStatus.COMPLETED, "complete", min_participants_guard(2)),
        Transition(MatchStatus.ONGOING, MatchStatus.CANCELLED, "cancel"),
        Transition(MatchStatus.EXPIRED, MatchStatus.CANCELLED, "cancel"),
    ]

    ALLOWED_ACTIONS = {
        MatchStatus.UPCOMING: ["join", "leave", "record_score", "start", "complete", "cancel", "expire"],
        MatchStatus.ONGOING: ["record_score", "complete", "cancel"],
        MatchStatus.EXPIRED: ["cancel"],
        MatchStatus.CANCELLED: ["delete"],
        MatchStatus.COMPLETED: [],
    }


class TournamentStateMachine(StateMachine):
    STATES = TournamentState
    INITIAL = TournamentState.UPCOMING
    TERMINAL = (TournamentState.COMPLETED, TournamentState.CANCELLED)

    TRANSITIONS = [
        Transition(TournamentState.UPCOMING, TournamentState.ONGOING, "start", min_participants_guard(2)),
        Transition(TournamentState.UPCOMING, TournamentState.CANCELLED, "cancel"),
        Transition(TournamentState.ONGOING, TournamentState.COMPLETED, "complete"),
        Transition(TournamentState.ONGOING, TournamentState.CANCELLED, "cancel"),
    ]

    ALLOWED_ACTIONS = {
        TournamentState.UPCOMING: ["join", "leave", "start", "update", "cancel", "delete"],
        TournamentState.ONGOING: ["advance", "update", "cancel"],
        TournamentState.COMPLETED: ["delete"],
        TournamentState.CANCELLED: ["delete"],
    }
