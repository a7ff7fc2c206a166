import math
from datetime import datetime
from typing import Optional

from flask_sqlalchemy import SQLAlchemy

from shared.errors import CapacityError, ValidationError
from shared.state_machine import MatchStatus, TournamentState
from .bracket import Bracket
from .schedule import DEFAULT_DURATION_MINUTES, expires_at, format_duration, utcnow

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value else None


def _check_roster(participants, max_participants):
    if len(set(participants)) != len(participants):
        raise ValidationError("Participants must be unique")
    if max_participants and len(participants) > max_participants:
        raise CapacityError(max_participants)


class Match(db.Model):
    __tablename__ = 'matches'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.String(50), unique=True, nullable=False, index=True)
    sport = db.Column(db.String(100), nullable=False, index=True)

    # Schedule: local date/time in `timezone`; scheduled_at is the same instant in UTC
    schedule_date = db.Column(db.Date, nullable=False)
    schedule_time = db.Column(db.String(5), nullable=False)
    timezone = db.Column(db.String(64), nullable=False, default='UTC')
    duration_minutes = db.Column(db.Integer, nullable=True)
    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)

    venue_id = db.Column(db.String(100), nullable=True)  # opaque, stored only
    match_type = db.Column(db.String(20), nullable=False, default='public')
    status = db.Column(db.String(20), nullable=False, default=MatchStatus.UPCOMING.value, index=True)
    created_by = db.Column(db.String(100), nullable=False, index=True)

    participants = db.Column(db.JSON, nullable=False, default=list)
    max_participants = db.Column(db.Integer, nullable=False, default=10)
    scores = db.Column(db.JSON, nullable=False, default=dict)
    winner_id = db.Column(db.String(100), nullable=True)
    rules = db.Column(db.JSON, nullable=False, default=dict)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {'version_id_col': version}

    @property
    def participant_count(self) -> int:
        return len(self.participants or [])

    @property
    def formatted_duration(self) -> Optional[str]:
        return format_duration(self.duration_minutes)

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.participants or [])

    def is_creator(self, user_id: str) -> bool:
        return self.created_by == user_id

    def is_expired(self, now: datetime = None, default_duration: int = DEFAULT_DURATION_MINUTES) -> bool:
        if self.status == MatchStatus.COMPLETED.value or self.scheduled_at is None:
            return False
        now = now or utcnow()
        return now > expires_at(self.scheduled_at, self.duration_minutes, default_duration)

    def expire_if_due(self, now: datetime = None, default_duration: int = DEFAULT_DURATION_MINUTES) -> bool:
        """UPCOMING -> EXPIRED once the scheduled slot has passed."""
        # status is None on a new instance until the column default applies at flush
        status = self.status or MatchStatus.UPCOMING.value
        if status == MatchStatus.UPCOMING.value and self.is_expired(now, default_duration):
            self.status = MatchStatus.EXPIRED.value
            return True
        return False

    def before_save(self, now: datetime = None, default_duration: int = DEFAULT_DURATION_MINUTES) -> bool:
        expired = self.expire_if_due(now, default_duration)

        participants = self.participants or []
        _check_roster(participants, self.max_participants)
        if self.created_by not in participants:
            raise ValidationError("Creator must be a participant")
        if self.winner_id and self.winner_id not in participants:
            raise ValidationError("Winner must be a participant")
        return expired

    def to_dict(self):
        return {
            'match_id': self.match_id,
            'sport': self.sport,
            'schedule': {
                'date': _iso(self.schedule_date),
                'time': self.schedule_time,
                'timezone': self.timezone,
                'duration_minutes': self.duration_minutes,
            },
            'scheduled_at': _iso(self.scheduled_at),
            'formatted_duration': self.formatted_duration,
            'venue_id': self.venue_id,
            'type': self.match_type,
            'status': self.status,
            'created_by': self.created_by,
            'participants': list(self.participants or []),
            'participant_count': self.participant_count,
            'max_participants': self.max_participants,
            'scores': dict(self.scores or {}),
            'winner_id': self.winner_id,
            'rules': dict(self.rules or {}),
            'cancellation_reason': self.cancellation_reason,
            'version': self.version,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    sport = db.Column(db.String(100), nullable=False, default='General', index=True)
    format = db.Column(db.String(50), nullable=False, default='single_elimination')
    status = db.Column(db.String(20), nullable=False, default=TournamentState.UPCOMING.value, index=True)
    organizer_id = db.Column(db.String(100), nullable=False, index=True)

    participants = db.Column(db.JSON, nullable=False, default=list)
    max_participants = db.Column(db.Integer, nullable=False, default=16)

    start_date = db.Column(db.DateTime, nullable=False, index=True)
    end_date = db.Column(db.DateTime, nullable=True)

    bracket = db.Column(db.JSON, nullable=True)
    standings = db.Column(db.JSON, nullable=False, default=list)
    rules = db.Column(db.JSON, nullable=False, default=dict)
    entry_fee = db.Column(db.Float, nullable=False, default=0)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {'version_id_col': version}

    @property
    def participant_count(self) -> int:
        return len(self.participants or [])

    @property
    def is_full(self) -> bool:
        return self.participant_count >= self.max_participants

    @property
    def duration(self) -> Optional[str]:
        if not self.start_date or not self.end_date:
            return None
        days = math.ceil((self.end_date - self.start_date).total_seconds() / 86400)
        return "1 day" if days == 1 else f"{days} days"

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.participants or [])

    def is_organizer(self, user_id: str) -> bool:
        return self.organizer_id == user_id

    def get_bracket(self) -> Optional[Bracket]:
        return Bracket.from_dict(self.bracket) if self.bracket else None

    def set_bracket(self, bracket: Bracket):
        # JSON columns are only change-tracked on reassignment
        self.bracket = bracket.to_dict()

    def before_save(self):
        _check_roster(self.participants or [], self.max_participants)

    def to_dict(self, include_bracket: bool = True):
        data = {
            'tournament_id': self.tournament_id,
            'name': self.name,
            'description': self.description,
            'sport': self.sport,
            'format': self.format,
            'status': self.status,
            'organizer_id': self.organizer_id,
            'participants': list(self.participants or []),
            'participant_count': self.participant_count,
            'max_participants': self.max_participants,
            'is_full': self.is_full,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'duration': self.duration,
            'standings': list(self.standings or []),
            'rules': dict(self.rules or {}),
            'entry_fee': self.entry_fee,
            'cancellation_reason': self.cancellation_reason,
            'version': self.version,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_bracket:
            data['bracket'] = self.bracket
        return data
