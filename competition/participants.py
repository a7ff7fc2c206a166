import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ParticipantManager:
    """
    Adds and removes participants, persists, then emits.

    Rule checks are not done here: callers pass a ``check`` callable that runs
    against the freshly loaded entity inside the optimistic unit, so a replay
    after a lost race re-validates against the current row.
    """

    def __init__(self, repository, publisher):
        self.repository = repository
        self.publisher = publisher

    def add_participant(self, public_id: str, user_id: str, check: Optional[Callable] = None):
        def mutate(entity):
            if check:
                check(entity)
            entity.participants = list(entity.participants or []) + [user_id]

        entity, _ = self.repository.atomic(public_id, mutate)
        logger.info(f"{self.repository.resource} {public_id}: {user_id} joined ({entity.participant_count} participants)")
        self.emit_joined(entity, user_id)
        return entity

    def remove_participant(self, public_id: str, user_id: str, check: Optional[Callable] = None):
        def mutate(entity):
            if check:
                check(entity)
            entity.participants = [p for p in (entity.participants or []) if p != user_id]

        entity, _ = self.repository.atomic(public_id, mutate)
        logger.info(f"{self.repository.resource} {public_id}: {user_id} left")
        self.emit_left(entity, user_id)
        return entity

    def emit_joined(self, entity, user_id: str):
        raise NotImplementedError

    def emit_left(self, entity, user_id: str):
        raise NotImplementedError


class MatchParticipantManager(ParticipantManager):
    def emit_joined(self, match, user_id: str):
        self.publisher.player_joined(match, user_id)

    def emit_left(self, match, user_id: str):
        self.publisher.player_left(match, user_id)


class TournamentParticipantManager(ParticipantManager):
    def emit_joined(self, tournament, user_id: str):
        self.publisher.participant_joined(tournament, user_id)

    def emit_left(self, tournament, user_id: str):
        self.publisher.participant_left(tournament, user_id)
