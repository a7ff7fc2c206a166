"""
Event publishers: shape payloads and hand them to the injected bus.

Publishing is fire-and-forget. A bus failure is logged and swallowed so it can
never undo a change that has already been committed.
"""
import logging
from typing import Iterable, Optional

from shared.events import EventType

logger = logging.getLogger(__name__)


class EventPublisher:
    def __init__(self, bus):
        self.bus = bus

    def _publish(self, event_type: EventType, aggregate_id: str, payload: dict) -> bool:
        try:
            self.bus.publish(event_type, aggregate_id, payload)
            return True
        except Exception:
            logger.exception(f"Failed to publish {event_type.value} for {aggregate_id}")
            return False


class MatchEventPublisher(EventPublisher):
    def match_created(self, match) -> bool:
        return self._publish(EventType.MATCH_CREATED, match.match_id, {
            'match_id': match.match_id,
            'created_by': match.created_by,
            'sport': match.sport,
            'scheduled_date': match.scheduled_at.isoformat(),
            'type': match.match_type,
        })

    def player_joined(self, match, user_id: str) -> bool:
        return self._publish(EventType.PLAYER_JOINED, match.match_id, {
            'match_id': match.match_id,
            'user_id': user_id,
            'sport': match.sport,
            'participant_count': match.participant_count,
        })

    def player_left(self, match, user_id: str) -> bool:
        return self._publish(EventType.PLAYER_LEFT, match.match_id, {
            'match_id': match.match_id,
            'user_id': user_id,
            'sport': match.sport,
        })

    def status_changed(self, match, old_status: str, new_status: str) -> bool:
        return self._publish(EventType.MATCH_STATUS_CHANGED, match.match_id, {
            'match_id': match.match_id,
            'old_status': old_status,
            'new_status': new_status,
        })

    def score_updated(self, match, updated_by: str) -> bool:
        return self._publish(EventType.MATCH_SCORE_UPDATED, match.match_id, {
            'match_id': match.match_id,
            'scores': dict(match.scores or {}),
            'updated_by': updated_by,
        })

    def match_completed(self, match) -> bool:
        return self._publish(EventType.MATCH_COMPLETED, match.match_id, {
            'match_id': match.match_id,
            'winner_id': match.winner_id,
            'participants': list(match.participants or []),
            'sport': match.sport,
        })

    def match_cancelled(self, match, reason: Optional[str] = None) -> bool:
        return self._publish(EventType.MATCH_CANCELLED, match.match_id, {
            'match_id': match.match_id,
            'reason': reason,
        })

    def match_deleted(self, match_id: str, deleted_by: str) -> bool:
        return self._publish(EventType.MATCH_DELETED, match_id, {
            'match_id': match_id,
            'deleted_by': deleted_by,
        })


class TournamentEventPublisher(EventPublisher):
    def tournament_created(self, tournament) -> bool:
        return self._publish(EventType.TOURNAMENT_CREATED, tournament.tournament_id, {
            'tournament_id': tournament.tournament_id,
            'name': tournament.name,
            'sport': tournament.sport,
            'organizer_id': tournament.organizer_id,
            'start_date': tournament.start_date.isoformat(),
        })

    def participant_joined(self, tournament, user_id: str) -> bool:
        return self._publish(EventType.PARTICIPANT_JOINED, tournament.tournament_id, {
            'tournament_id': tournament.tournament_id,
            'user_id': user_id,
            'participant_count': tournament.participant_count,
        })

    def participant_left(self, tournament, user_id: str) -> bool:
        return self._publish(EventType.PARTICIPANT_LEFT, tournament.tournament_id, {
            'tournament_id': tournament.tournament_id,
            'user_id': user_id,
        })

    def tournament_started(self, tournament) -> bool:
        return self._publish(EventType.TOURNAMENT_STARTED, tournament.tournament_id, {
            'tournament_id': tournament.tournament_id,
            'participant_count': tournament.participant_count,
        })

    def bracket_advanced(self, tournament, bracket_match) -> bool:
        return self._publish(EventType.BRACKET_ADVANCED, tournament.tournament_id, {
            'tournament_id': tournament.tournament_id,
            'match_id': bracket_match.match_id,
            'round': bracket_match.round,
            'winner_id': bracket_match.winner,
        })

    def tournament_completed(self, tournament, winner_id: str) -> bool:
        return self._publish(EventType.TOURNAMENT_COMPLETED, tournament.tournament_id, {
            'tournament_id': tournament.tournament_id,
            'winner_id': winner_id,
            'participants': list(tournament.participants or []),
        })

    def tournament_updated(self, tournament, fields: Iterable[str]) -> bool:
        return self._publish(EventType.TOURNAMENT_UPDATED, tournament.tournament_id, {
            'tournament_id': tournament.tournament_id,
            'fields': sorted(fields),
        })

    def tournament_cancelled(self, tournament, reason: Optional[str] = None) -> bool:
        return self._publish(EventType.TOURNAMENT_CANCELLED, tournament.tournament_id, {
            'tournament_id': tournament.tournament_id,
            'reason': reason,
        })

    def tournament_deleted(self, tournament_id: str, deleted_by: str) -> bool:
        return self._publish(EventType.TOURNAMENT_DELETED, tournament_id, {
            'tournament_id': tournament_id,
            'deleted_by': deleted_by,
        })
