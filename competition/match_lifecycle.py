import uuid
import logging
from typing import Callable, List, Optional

from shared.state_machine import MatchStatus
from .models import Match
from .schedule import DEFAULT_DURATION_MINUTES, utcnow
from .validation import validate_reason

logger = logging.getLogger(__name__)


class MatchLifecycleService:
    """
    Orchestrates the match lifecycle:
    - create / get / list
    - join and leave through the participant manager
    - creator-driven status changes, cancellation and deletion
    - participant score recording

    Each successful mutation is committed first and then emits exactly one event.
    """

    def __init__(self, repository, validator, participants, publisher,
                 clock: Callable = utcnow, default_duration: int = DEFAULT_DURATION_MINUTES):
        self.repository = repository
        self.validator = validator
        self.participants = participants
        self.publisher = publisher
        self.clock = clock
        self.default_duration = default_duration

    def _expire_if_due(self, match: Match):
        match.expire_if_due(self.clock(), self.default_duration)

    def create(self, user_id: str, data: dict) -> Match:
        fields = self.validator.validate_create(data, now=self.clock())

        match = Match(
            match_id=f"m_{uuid.uuid4().hex[:12]}",
            created_by=user_id,
            participants=[user_id],
            scores={},
            status=MatchStatus.UPCOMING.value,
            **fields
        )
        self.repository.add(match)
        logger.info(f"Match {match.match_id} created by {user_id} ({match.sport})")

        self.publisher.match_created(match)
        return match

    def get(self, match_id: str) -> Match:
        return self.repository.get_or_raise(match_id)

    def join(self, user_id: str, match_id: str) -> Match:
        def check(match):
            self._expire_if_due(match)
            self.validator.validate_can_join(match, user_id)

        return self.participants.add_participant(match_id, user_id, check)

    def leave(self, user_id: str, match_id: str) -> Match:
        def check(match):
            self._expire_if_due(match)
            self.validator.validate_can_leave(match, user_id)

        return self.participants.remove_participant(match_id, user_id, check)

    def update_status(self, match_id: str, new_status, user_id: str) -> Match:
        def mutate(match):
            self._expire_if_due(match)
            self.validator.validate_is_creator(match, user_id)
            target = self.validator.validate_status_change(match, new_status)
            old_status = match.status
            match.status = target.value
            return old_status

        match, old_status = self.repository.atomic(match_id, mutate)
        logger.info(f"Match {match_id}: {old_status} -> {match.status}")

        if match.status == MatchStatus.COMPLETED.value:
            self.publisher.match_completed(match)
        elif match.status == MatchStatus.CANCELLED.value:
            self.publisher.match_cancelled(match, match.cancellation_reason)
        else:
            self.publisher.status_changed(match, old_status, match.status)
        return match

    def update_score(self, user_id: str, match_id: str, scores: dict, winner_id: str = None) -> Match:
        def mutate(match):
            self._expire_if_due(match)
            self.validator.validate_is_participant(match, user_id)
            normalized = self.validator.validate_scores(match, scores, winner_id)
            match.scores = {**(match.scores or {}), **normalized}
            if winner_id is not None:
                match.winner_id = winner_id
                match.status = MatchStatus.COMPLETED.value

        match, _ = self.repository.atomic(match_id, mutate)

        if winner_id is not None:
            logger.info(f"Match {match_id} completed, winner {winner_id}")
            self.publisher.match_completed(match)
        else:
            logger.info(f"Match {match_id}: scores updated by {user_id}")
            self.publisher.score_updated(match, user_id)
        return match

    def cancel(self, match_id: str, user_id: str, reason: Optional[str] = None) -> Match:
        reason = validate_reason(reason)

        def mutate(match):
            self._expire_if_due(match)
            self.validator.validate_can_cancel(match, user_id)
            match.status = MatchStatus.CANCELLED.value
            match.cancellation_reason = reason

        match, _ = self.repository.atomic(match_id, mutate)
        logger.info(f"Match {match_id} cancelled by {user_id}")

        self.publisher.match_cancelled(match, reason)
        return match

    def delete(self, match_id: str, user_id: str):
        def check(match):
            self.validator.validate_can_delete(match, user_id)

        self.repository.atomic_delete(match_id, check)
        logger.info(f"Match {match_id} deleted by {user_id}")

        self.publisher.match_deleted(match_id, user_id)

    def list_for_user(self, user_id: str, status: str = None) -> List[Match]:
        return self.repository.list_for_user(user_id, status=status)

    def list_upcoming(self, limit: int = 20, now=None, sport: str = None) -> List[Match]:
        return self.repository.list_upcoming(limit=limit, now=now or self.clock(), sport=sport)

    def list_by_sport(self, sport: str, limit: int = 20) -> List[Match]:
        return self.repository.list_by_sport(sport, limit=limit)
