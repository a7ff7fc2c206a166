import logging
from typing import Callable, List, Tuple

from sqlalchemy import String, cast, func, or_
from sqlalchemy.orm.exc import StaleDataError

from shared.errors import ConcurrencyError, NotFoundError
from shared.state_machine import MatchStatus, TournamentState
from .models import db, Match, Tournament
from .schedule import DEFAULT_DURATION_MINUTES, utcnow

logger = logging.getLogger(__name__)


class Repository:
    """
    Persistence for one aggregate type.

    Every write commits immediately and rolls the session back on failure.
    Read-modify-write sequences go through ``atomic``, which relies on the
    model's ``version_id_col`` and replays the whole unit on a stale write.
    """

    model = None
    id_field = None
    resource = None

    def __init__(self, retry_limit: int = 3, clock: Callable = utcnow):
        self.retry_limit = retry_limit
        self.clock = clock

    @property
    def session(self):
        return db.session

    def get(self, public_id: str):
        return self.model.query.filter_by(**{self.id_field: public_id}).first()

    def get_or_raise(self, public_id: str):
        entity = self.get(public_id)
        if entity is None:
            raise NotFoundError(self.resource, public_id)
        return entity

    def before_save(self, entity):
        entity.before_save()

    def add(self, entity):
        try:
            self.before_save(entity)
            self.session.add(entity)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return entity

    def save(self, entity):
        try:
            self.before_save(entity)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return entity

    def delete(self, entity):
        try:
            self.session.delete(entity)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def atomic(self, public_id: str, mutate: Callable) -> Tuple[object, object]:
        """
        Load, mutate and save ``public_id`` as one optimistic unit.

        ``mutate(entity)`` validates and changes the entity and may return a
        value. When another writer got there first the session is rolled back
        and the unit is replayed against the fresh row. Returns
        ``(entity, value)``.
        """
        def unit(entity):
            result = mutate(entity)
            self.save(entity)
            return result

        return self._replay(public_id, unit)

    def atomic_delete(self, public_id: str, check: Callable = None):
        """Load, check and delete ``public_id``, replaying on a stale version like ``atomic``."""
        def unit(entity):
            if check:
                check(entity)
            self.delete(entity)

        entity, _ = self._replay(public_id, unit)
        return entity

    def _replay(self, public_id: str, unit: Callable) -> Tuple[object, object]:
        attempt = 0
        while True:
            attempt += 1
            entity = self.get_or_raise(public_id)
            try:
                return entity, unit(entity)
            except StaleDataError:
                # save() and delete() roll back, so the next get() re-reads the row
                if attempt >= self.retry_limit:
                    logger.error(f"{self.resource} {public_id}: giving up after {attempt} stale writes")
                    raise ConcurrencyError(
                        f"{self.resource} was modified concurrently, please retry"
                    )
                logger.warning(f"{self.resource} {public_id}: stale write, retrying ({attempt}/{self.retry_limit})")
            except Exception:
                self.session.rollback()
                raise


class MatchRepository(Repository):
    model = Match
    id_field = 'match_id'
    resource = 'Match'

    def __init__(self, retry_limit: int = 3, clock: Callable = utcnow,
                 default_duration: int = DEFAULT_DURATION_MINUTES):
        super().__init__(retry_limit=retry_limit, clock=clock)
        self.default_duration = default_duration

    def before_save(self, entity: Match):
        if entity.before_save(self.clock(), self.default_duration):
            logger.info(f"Match {entity.match_id} expired")

    def list_for_user(self, user_id: str, status: str = None) -> List[Match]:
        """Matches the user created or takes part in, soonest first."""
        query = Match.query.filter(
            or_(
                Match.created_by == user_id,
                cast(Match.participants, String).like(f'%"{user_id}"%')
            )
        )
        if status:
            query = query.filter_by(status=status)
        matches = query.order_by(Match.scheduled_at.asc()).all()
        # LIKE on serialized JSON can over-match; confirm membership
        return [m for m in matches if m.is_creator(user_id) or m.is_participant(user_id)]

    def list_upcoming(self, limit: int = 20, now=None, sport: str = None) -> List[Match]:
        query = Match.query.filter(
            Match.status == MatchStatus.UPCOMING.value,
            Match.scheduled_at > (now or self.clock())
        )
        if sport:
            query = query.filter(Match.sport == sport)
        return query.order_by(Match.scheduled_at.asc()).limit(limit).all()

    def list_by_sport(self, sport: str, limit: int = 20) -> List[Match]:
        return (
            Match.query.filter(func.lower(Match.sport) == sport.strip().lower())
            .order_by(Match.scheduled_at.asc())
            .limit(limit)
            .all()
        )


class TournamentRepository(Repository):
    model = Tournament
    id_field = 'tournament_id'
    resource = 'Tournament'

    def list_tournaments(self, status: str = None, sport: str = None,
                         limit: int = 50, offset: int = 0) -> List[Tournament]:
        query = Tournament.query
        if status:
            query = query.filter_by(status=status)
        if sport:
            query = query.filter_by(sport=sport)
        query = query.order_by(Tournament.start_date.asc())
        return query.offset(offset).limit(limit).all()

    def list_upcoming(self, limit: int = 20, now=None) -> List[Tournament]:
        return (
            Tournament.query.filter(
                Tournament.status == TournamentState.UPCOMING.value,
                Tournament.start_date > (now or self.clock())
            )
            .order_by(Tournament.start_date.asc())
            .limit(limit)
            .all()
        )

    def list_for_user(self, user_id: str) -> List[Tournament]:
        tournaments = Tournament.query.filter(
            or_(
                Tournament.organizer_id == user_id,
                cast(Tournament.participants, String).like(f'%"{user_id}"%')
            )
        ).order_by(Tournament.start_date.asc()).all()
        return [t for t in tournaments if t.is_organizer(user_id) or t.is_participant(user_id)]
