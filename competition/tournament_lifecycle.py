import uuid
import logging
from typing import Callable, List, Optional

from shared.state_machine import TournamentState, TournamentStateMachine
from .bracket import BracketBuilder, SEEDING_STRATEGIES
from .models import Tournament
from .schedule import utcnow
from .validation import validate_reason

logger = logging.getLogger(__name__)


class TournamentLifecycleService:
    """
    Manages tournament lifecycle:
    - Create/update/cancel/delete tournament records
    - Registration through the participant manager
    - Bracket generation on start and advancement to completion
    """

    def __init__(self, repository, validator, participants, publisher,
                 bracket_builder: BracketBuilder = None, clock: Callable = utcnow):
        self.repository = repository
        self.validator = validator
        self.participants = participants
        self.publisher = publisher
        self.bracket_builder = bracket_builder or BracketBuilder()
        self.clock = clock

    def _builder_for(self, tournament: Tournament) -> BracketBuilder:
        seeding = (tournament.rules or {}).get('seeding')
        if seeding:
            return BracketBuilder(SEEDING_STRATEGIES[seeding]())
        return self.bracket_builder

    def create(self, user_id: str, data: dict) -> Tournament:
        """Create a new tournament in upcoming state with no participants."""
        fields = self.validator.validate_create(data, now=self.clock())

        tournament = Tournament(
            tournament_id=f"t_{uuid.uuid4().hex[:12]}",
            organizer_id=user_id,
            participants=[],
            standings=[],
            status=TournamentState.UPCOMING.value,
            **fields
        )
        self.repository.add(tournament)
        logger.info(f"Tournament {tournament.tournament_id} created by {user_id}: {tournament.name}")

        self.publisher.tournament_created(tournament)
        return tournament

    def get(self, tournament_id: str) -> Tournament:
        return self.repository.get_or_raise(tournament_id)

    def list_tournaments(self, status: str = None, sport: str = None,
                         limit: int = 50, offset: int = 0) -> List[Tournament]:
        return self.repository.list_tournaments(status=status, sport=sport, limit=limit, offset=offset)

    def list_upcoming(self, limit: int = 20) -> List[Tournament]:
        return self.repository.list_upcoming(limit=limit, now=self.clock())

    def list_for_user(self, user_id: str) -> List[Tournament]:
        return self.repository.list_for_user(user_id)

    def join(self, user_id: str, tournament_id: str) -> Tournament:
        def check(tournament):
            self.validator.validate_can_join(tournament, user_id)

        return self.participants.add_participant(tournament_id, user_id, check)

    def leave(self, user_id: str, tournament_id: str) -> Tournament:
        def check(tournament):
            self.validator.validate_can_leave(tournament, user_id)

        return self.participants.remove_participant(tournament_id, user_id, check)

    def start(self, tournament_id: str, user_id: str) -> Tournament:
        """Seed the bracket, settle byes and move the tournament to ongoing."""
        def mutate(tournament):
            self.validator.validate_can_start(tournament, user_id)

            bracket = self._builder_for(tournament).build(list(tournament.participants))
            bracket.settle_byes()

            tournament.set_bracket(bracket)
            tournament.standings = list(tournament.participants)
            tournament.status = TournamentState.ONGOING.value

        tournament, _ = self.repository.atomic(tournament_id, mutate)
        logger.info(f"Tournament {tournament_id} started with {tournament.participant_count} participants")

        self.publisher.tournament_started(tournament)
        return tournament

    def advance_bracket(self, tournament_id: str, match_id: str, winner_id: str, user_id: str) -> Tournament:
        """
        Record the winner of a pending bracket match.

        The winner moves into round + 1 at position // 2 (participant1 for an
        even position, participant2 for an odd one). Winning the final
        completes the tournament with the winner first in the standings.
        """
        def mutate(tournament):
            self.validator.validate_can_advance(tournament, user_id)

            bracket = tournament.get_bracket()
            played = bracket.record_winner(match_id, winner_id)
            tournament.set_bracket(bracket)

            if not bracket.is_complete:
                return played, None

            sm = TournamentStateMachine.from_state_string(tournament.status)
            tournament.status = sm.transition('complete').value
            tournament.standings = bracket.final_standings(list(tournament.participants))
            return played, bracket.champion

        tournament, (played, champion) = self.repository.atomic(tournament_id, mutate)

        if champion:
            logger.info(f"Tournament {tournament_id} completed, winner {champion}")
            self.publisher.tournament_completed(tournament, champion)
        else:
            logger.info(f"Tournament {tournament_id}: {played.match_id} won by {winner_id}")
            self.publisher.bracket_advanced(tournament, played)
        return tournament

    def update(self, tournament_id: str, user_id: str, updates: dict) -> Tournament:
        def mutate(tournament):
            changes = self.validator.validate_update(tournament, user_id, updates, now=self.clock())
            for field, value in changes.items():
                setattr(tournament, field, value)
            return list(changes)

        tournament, fields = self.repository.atomic(tournament_id, mutate)
        logger.info(f"Tournament {tournament_id} updated: {', '.join(sorted(fields))}")

        self.publisher.tournament_updated(tournament, fields)
        return tournament

    def cancel(self, tournament_id: str, user_id: str, reason: Optional[str] = None) -> Tournament:
        reason = validate_reason(reason)

        def mutate(tournament):
            self.validator.validate_can_cancel(tournament, user_id)
            tournament.status = TournamentState.CANCELLED.value
            tournament.cancellation_reason = reason

        tournament, _ = self.repository.atomic(tournament_id, mutate)
        logger.info(f"Tournament {tournament_id} cancelled by {user_id}")

        self.publisher.tournament_cancelled(tournament, reason)
        return tournament

    def delete(self, tournament_id: str, user_id: str):
        def check(tournament):
            self.validator.validate_can_delete(tournament, user_id)

        self.repository.atomic_delete(tournament_id, check)
        logger.info(f"Tournament {tournament_id} deleted by {user_id}")

        self.publisher.tournament_deleted(tournament_id, user_id)

    def leaderboard(self, tournament_id: str) -> List[str]:
        tournament = self.repository.get_or_raise(tournament_id)
        return list(tournament.standings or tournament.participants or [])
