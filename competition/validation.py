"""
Pure rule checks for matches and tournaments.

Nothing here touches the session or the event bus: every method either
returns normalised values or raises one of the ``shared.errors`` kinds
before any mutation happens.
"""
from datetime import datetime
from numbers import Number
from typing import Callable, Optional, Tuple

from shared.errors import (
    CapacityError, ConflictError, PermissionError, ScheduleError, StateError, ValidationError
)
from shared.state_machine import (
    MatchStateMachine, MatchStatus, TournamentState, TournamentStateMachine
)
from .rules import MATCH_RULE_KEYS, TOURNAMENT_RULE_KEYS, normalize_rules
from . import schedule

MATCH_TYPES = ('public', 'private')
TOURNAMENT_FORMATS = ('single_elimination',)
MAX_SPORT_LENGTH = 100
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_REASON_LENGTH = 500

CLOSED_REGISTRATION = (
    TournamentState.ONGOING.value,
    TournamentState.COMPLETED.value,
    TournamentState.CANCELLED.value,
)
STRUCTURAL_FIELDS = ('format', 'max_participants', 'start_date')
UPDATABLE_FIELDS = ('name', 'description', 'sport', 'rules', 'entry_fee', 'end_date') + STRUCTURAL_FIELDS


def _text(data: dict, key: str, max_length: int, required: bool = False, default: str = None) -> Optional[str]:
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be text")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{key} is required")
    if len(value) > max_length:
        raise ValidationError(f"{key} cannot exceed {max_length} characters")
    return value


def _whole_number(value, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be a whole number")
    return value


def validate_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    return _text({'reason': reason}, 'reason', MAX_REASON_LENGTH) or None


class MatchValidationService:
    def __init__(self, clock: Callable = schedule.utcnow, public_capacity: int = 10,
                 private_capacity: int = 2):
        self.clock = clock
        self.public_capacity = public_capacity
        self.private_capacity = private_capacity

    def validate_schedule(self, schedule_date, schedule_time, tz_name: str = schedule.DEFAULT_TIMEZONE,
                          duration_minutes: int = None, now: datetime = None) -> datetime:
        """Returns the naive UTC start; raises ScheduleError unless it lies strictly after now."""
        scheduled_at = schedule.combine(schedule_date, schedule_time, tz_name)
        schedule.validate_duration(duration_minutes)
        if scheduled_at <= (now or self.clock()):
            raise ScheduleError("Match must be scheduled in the future")
        return scheduled_at

    def validate_create(self, data: dict, now: datetime = None) -> dict:
        if not isinstance(data, dict):
            raise ValidationError("Match data must be a mapping")

        sport = _text(data, 'sport', MAX_SPORT_LENGTH, required=True)
        match_type = data.get('type') or 'public'
        if match_type not in MATCH_TYPES:
            raise ValidationError(f"type must be one of {', '.join(MATCH_TYPES)}")

        sched = data.get('schedule') or {}
        if not isinstance(sched, dict):
            raise ValidationError("schedule must be a mapping")
        tz_name = sched.get('timezone') or schedule.DEFAULT_TIMEZONE
        duration = sched.get('duration_minutes')
        scheduled_at = self.validate_schedule(sched.get('date'), sched.get('time'), tz_name, duration, now)

        max_participants = data.get('max_participants')
        if max_participants is None:
            max_participants = self.public_capacity if match_type == 'public' else self.private_capacity
        elif _whole_number(max_participants, 'max_participants') < 2:
            raise ValidationError("max_participants must be at least 2")

        venue_id = data.get('venue_id')
        if venue_id is not None and not isinstance(venue_id, str):
            raise ValidationError("venue_id must be text")

        return {
            'sport': sport,
            'match_type': match_type,
            'schedule_date': schedule.parse_date(sched.get('date')),
            'schedule_time': schedule.parse_time(sched.get('time')),
            'timezone': tz_name,
            'duration_minutes': duration,
            'scheduled_at': scheduled_at,
            'max_participants': max_participants,
            'venue_id': venue_id,
            'rules': normalize_rules(data.get('rules'), MATCH_RULE_KEYS),
        }

    def validate_can_join(self, match, user_id: str):
        if match.status != MatchStatus.UPCOMING.value:
            raise StateError(match.status, None, f"Cannot join a {match.status} match")
        if match.is_participant(user_id):
            raise ConflictError("Already a participant in this match")
        if match.participant_count >= match.max_participants:
            raise CapacityError(match.max_participants, "Match is full")

    def validate_can_leave(self, match, user_id: str):
        if not match.is_participant(user_id):
            raise ConflictError("Not a participant in this match")
        if match.is_creator(user_id):
            raise PermissionError("Match creator cannot leave the match")
        if match.status != MatchStatus.UPCOMING.value:
            raise StateError(match.status, None, f"Cannot leave a {match.status} match")

    def validate_is_creator(self, match, user_id: str):
        if not match.is_creator(user_id):
            raise PermissionError("Only the match creator can do this")

    def validate_is_participant(self, match, user_id: str):
        if not match.is_participant(user_id):
            raise PermissionError("Only match participants can do this")

    def validate_status_change(self, match, new_status) -> MatchStatus:
        try:
            target = MatchStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown match status '{new_status}'")
        if target == MatchStatus.EXPIRED:
            raise StateError(match.status, target.value, "Matches expire automatically once their slot has passed")

        sm = MatchStateMachine.from_state_string(match.status)
        sm.transition_to(target, guard_context={'participants': match.participants or []})
        return target

    def validate_scores(self, match, scores: dict, winner_id: str = None) -> dict:
        if match.status not in (MatchStatus.UPCOMING.value, MatchStatus.ONGOING.value):
            raise StateError(match.status, None, f"Cannot record scores on a {match.status} match")
        if not isinstance(scores, dict):
            raise ValidationError("Scores must be a mapping of participant to score")

        normalized = {}
        for participant, score in scores.items():
            if not match.is_participant(participant):
                raise ConflictError("Scores can only be recorded for match participants")
            if isinstance(score, bool) or not isinstance(score, Number):
                raise ValidationError("Scores must be numeric")
            normalized[participant] = score

        if winner_id is not None:
            if not match.is_participant(winner_id):
                raise ConflictError("Winner must be a match participant")
            MatchStateMachine.from_state_string(match.status).transition_to(
                MatchStatus.COMPLETED, guard_context={'participants': match.participants or []}
            )
        return normalized

    def validate_can_cancel(self, match, user_id: str):
        self.validate_is_creator(match, user_id)
        if match.status == MatchStatus.COMPLETED.value:
            raise ConflictError("Cannot cancel a completed match")
        if match.status == MatchStatus.CANCELLED.value:
            raise ConflictError("Match is already cancelled")

    def validate_can_delete(self, match, user_id: str):
        self.validate_is_creator(match, user_id)
        if match.status != MatchStatus.CANCELLED.value:
            raise ConflictError("Only cancelled matches can be deleted")


class TournamentValidationService:
    def __init__(self, clock: Callable = schedule.utcnow, min_capacity: int = 4,
                 max_capacity: int = 256, default_capacity: int = 16):
        self.clock = clock
        self.min_capacity = min_capacity
        self.max_capacity = max_capacity
        self.default_capacity = default_capacity

    def validate_start_date(self, start_date, end_date=None, now: datetime = None) -> Tuple[datetime, Optional[datetime]]:
        start = schedule.parse_datetime(start_date) if start_date is not None else None
        if start is None:
            raise ScheduleError("Start date is required")
        if start <= (now or self.clock()):
            raise ScheduleError("Start date must be in the future")

        end = schedule.parse_datetime(end_date) if end_date is not None else None
        if end is not None and end <= start:
            raise ScheduleError("End date must be after start date")
        return start, end

    def validate_capacity(self, max_participants) -> int:
        _whole_number(max_participants, 'max_participants')
        if max_participants < self.min_capacity:
            raise ValidationError(f"Tournament must allow at least {self.min_capacity} participants")
        if max_participants > self.max_capacity:
            raise ValidationError(f"Tournament cannot exceed {self.max_capacity} participants")
        return max_participants

    def validate_entry_fee(self, entry_fee) -> float:
        if isinstance(entry_fee, bool) or not isinstance(entry_fee, Number):
            raise ValidationError("entry_fee must be a number")
        if entry_fee < 0:
            raise ValidationError("Entry fee cannot be negative")
        return entry_fee

    def validate_format(self, fmt) -> str:
        if fmt not in TOURNAMENT_FORMATS:
            raise ValidationError(f"Unsupported tournament format '{fmt}'")
        return fmt

    def validate_create(self, data: dict, now: datetime = None) -> dict:
        if not isinstance(data, dict):
            raise ValidationError("Tournament data must be a mapping")

        start, end = self.validate_start_date(data.get('start_date'), data.get('end_date'), now)
        max_participants = data.get('max_participants')
        return {
            'name': _text(data, 'name', MAX_NAME_LENGTH, required=True),
            'description': _text(data, 'description', MAX_DESCRIPTION_LENGTH),
            'sport': _text(data, 'sport', MAX_SPORT_LENGTH, default='General') or 'General',
            'format': self.validate_format(data.get('format') or 'single_elimination'),
            'max_participants': self.validate_capacity(
                self.default_capacity if max_participants is None else max_participants
            ),
            'start_date': start,
            'end_date': end,
            'entry_fee': self.validate_entry_fee(data.get('entry_fee', 0)),
            'rules': normalize_rules(data.get('rules'), TOURNAMENT_RULE_KEYS),
        }

    def validate_is_organizer(self, tournament, user_id: str):
        if not tournament.is_organizer(user_id):
            raise PermissionError("Only the tournament organizer can do this")

    def validate_can_join(self, tournament, user_id: str):
        if tournament.status != TournamentState.UPCOMING.value:
            raise StateError(tournament.status, None, f"Registration is closed for a {tournament.status} tournament")
        if tournament.is_participant(user_id):
            raise ConflictError("Already registered for this tournament")
        if tournament.is_full:
            raise CapacityError(tournament.max_participants, "Tournament is full")

    def validate_can_leave(self, tournament, user_id: str):
        if not tournament.is_participant(user_id):
            raise ConflictError("Not registered for this tournament")
        if tournament.is_organizer(user_id):
            raise PermissionError("Tournament organizer cannot leave the tournament")
        if tournament.status in CLOSED_REGISTRATION:
            raise StateError(tournament.status, None, f"Cannot leave a {tournament.status} tournament")

    def validate_can_start(self, tournament, user_id: str):
        self.validate_is_organizer(tournament, user_id)
        sm = TournamentStateMachine.from_state_string(tournament.status)
        sm.transition('start', guard_context={'participants': tournament.participants or []})

    def validate_can_advance(self, tournament, user_id: str):
        """The organizer or any registered participant may report a bracket result."""
        if not (tournament.is_organizer(user_id) or tournament.is_participant(user_id)):
            raise PermissionError("Only the organizer or a participant can report a result")
        if tournament.status != TournamentState.ONGOING.value:
            raise StateError(tournament.status, None, "Bracket can only advance while the tournament is ongoing")
        if not tournament.bracket:
            raise StateError(tournament.status, None, "Tournament bracket not initialized")

    def validate_update(self, tournament, user_id: str, updates: dict, now: datetime = None) -> dict:
        self.validate_is_organizer(tournament, user_id)
        if tournament.status == TournamentState.COMPLETED.value:
            raise ConflictError("Cannot update a completed tournament")
        if tournament.status == TournamentState.CANCELLED.value:
            raise StateError(tournament.status, None, "Cannot update a cancelled tournament")
        if not isinstance(updates, dict) or not updates:
            raise ValidationError("No updates supplied")

        unknown = [k for k in updates if k not in UPDATABLE_FIELDS]
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        structural = [k for k in updates if k in STRUCTURAL_FIELDS]
        if structural and tournament.status != TournamentState.UPCOMING.value:
            raise StateError(
                tournament.status, None,
                f"Cannot change {', '.join(sorted(structural))} once the tournament has started"
            )

        normalized = {}
        if 'name' in updates:
            normalized['name'] = _text(updates, 'name', MAX_NAME_LENGTH, required=True)
        if 'description' in updates:
            normalized['description'] = _text(updates, 'description', MAX_DESCRIPTION_LENGTH)
        if 'sport' in updates:
            normalized['sport'] = _text(updates, 'sport', MAX_SPORT_LENGTH, required=True)
        if 'rules' in updates:
            normalized['rules'] = normalize_rules(updates['rules'], TOURNAMENT_RULE_KEYS)
        if 'entry_fee' in updates:
            normalized['entry_fee'] = self.validate_entry_fee(updates['entry_fee'])
        if 'format' in updates:
            normalized['format'] = self.validate_format(updates['format'])
        if 'max_participants' in updates:
            capacity = self.validate_capacity(updates['max_participants'])
            if capacity < tournament.participant_count:
                raise ConflictError("Capacity cannot drop below the current participant count")
            normalized['max_participants'] = capacity

        if 'start_date' in updates or 'end_date' in updates:
            start = updates.get('start_date', tournament.start_date)
            end = updates.get('end_date', tournament.end_date)
            if 'start_date' in updates:
                start, end = self.validate_start_date(start, end, now or self.clock())
                normalized['start_date'] = start
            elif end is not None:
                end = schedule.parse_datetime(end)
                if end <= tournament.start_date:
                    raise ScheduleError("End date must be after start date")
            if 'end_date' in updates:
                normalized['end_date'] = end
        return normalized

    def validate_can_cancel(self, tournament, user_id: str):
        self.validate_is_organizer(tournament, user_id)
        TournamentStateMachine.from_state_string(tournament.status).transition('cancel')

    def validate_can_delete(self, tournament, user_id: str):
        self.validate_is_organizer(tournament, user_id)
        if tournament.status == TournamentState.ONGOING.value:
            raise ConflictError("Cannot delete an ongoing tournament")
