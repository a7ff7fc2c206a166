"""
Unit tests for MatchValidationService and TournamentValidationService.
Validators are pure, so these tests run on transient model instances.
"""
from datetime import datetime, timedelta

import pytest
from shared.errors import (
    CapacityError, ConflictError, PermissionError, ScheduleError, StateError, ValidationError
)
from competition.models import Match, Tournament
from competition.validation import MatchValidationService, TournamentValidationService

NOW = datetime(2030, 6, 1, 12, 0)


def make_match(**kwargs):
    fields = dict(
        match_id='m_test', sport='Tennis', created_by='alice', participants=['alice'],
        max_participants=2, status='upcoming', scheduled_at=NOW + timedelta(days=1)
    )
    fields.update(kwargs)
    return Match(**fields)


def make_tournament(**kwargs):
    fields = dict(
        tournament_id='t_test', name='Open', organizer_id='olivia', participants=[],
        max_participants=4, status='upcoming', start_date=NOW + timedelta(days=7)
    )
    fields.update(kwargs)
    return Tournament(**fields)


@pytest.fixture
def match_validator():
    return MatchValidationService(clock=lambda: NOW)


@pytest.fixture
def tournament_validator():
    return TournamentValidationService(clock=lambda: NOW)


class TestValidateSchedule:
    """Tests for validate_schedule."""

    def test_future_schedule_passes(self, match_validator):
        assert match_validator.validate_schedule('2030-06-02', '09:00') == datetime(2030, 6, 2, 9, 0)

    def test_now_is_not_future(self, match_validator):
        with pytest.raises(ScheduleError):
            match_validator.validate_schedule('2030-06-01', '12:00')

    def test_past_schedule_fails(self, match_validator):
        with pytest.raises(ScheduleError):
            match_validator.validate_schedule('2030-05-31', '09:00')

    def test_non_string_timezone(self, match_validator):
        with pytest.raises(ScheduleError):
            match_validator.validate_schedule('2030-06-02', '09:00', 5)

    def test_trailing_junk_in_date(self, match_validator):
        with pytest.raises(ScheduleError):
            match_validator.validate_schedule('2030-06-02garbage', '09:00')

    def test_timezone_moves_the_instant(self, match_validator):
        # 13:00 in Berlin (UTC+2) is 11:00 UTC, before NOW
        with pytest.raises(ScheduleError):
            match_validator.validate_schedule('2030-06-01', '13:00', 'Europe/Berlin')

    def test_duration_bounds(self, match_validator):
        with pytest.raises(ScheduleError):
            match_validator.validate_schedule('2030-06-02', '09:00', duration_minutes=600)


class TestValidateCreateMatch:
    """Tests for match create payloads."""

    def payload(self, **overrides):
        data = {
            'sport': ' Padel ',
            'schedule': {'date': '2030-06-03', 'time': '18:00'},
        }
        data.update(overrides)
        return data

    def test_defaults(self, match_validator):
        fields = match_validator.validate_create(self.payload())

        assert fields['sport'] == 'Padel'
        assert fields['match_type'] == 'public'
        assert fields['max_participants'] == 10
        assert fields['timezone'] == 'UTC'
        assert fields['rules'] == {}

    def test_private_default_capacity(self, match_validator):
        fields = match_validator.validate_create(self.payload(type='private'))
        assert fields['max_participants'] == 2

    def test_explicit_capacity(self, match_validator):
        fields = match_validator.validate_create(self.payload(type='private', max_participants=4))
        assert fields['max_participants'] == 4

    def test_capacity_below_two(self, match_validator):
        with pytest.raises(ValidationError):
            match_validator.validate_create(self.payload(max_participants=1))

    def test_sport_required(self, match_validator):
        with pytest.raises(ValidationError):
            match_validator.validate_create(self.payload(sport='   '))

    def test_unknown_type(self, match_validator):
        with pytest.raises(ValidationError):
            match_validator.validate_create(self.payload(type='secret'))

    def test_unknown_rule(self, match_validator):
        with pytest.raises(ValidationError):
            match_validator.validate_create(self.payload(rules={'dress_code': 'white'}))


class TestMatchJoinLeave:
    """Tests for validate_can_join / validate_can_leave."""

    def test_join_open_match(self, match_validator):
        match_validator.validate_can_join(make_match(), 'bob')

    @pytest.mark.parametrize("status", ['ongoing', 'completed', 'cancelled', 'expired'])
    def test_join_closed_match(self, match_validator, status):
        with pytest.raises(StateError):
            match_validator.validate_can_join(make_match(status=status), 'bob')

    def test_join_twice(self, match_validator):
        with pytest.raises(ConflictError):
            match_validator.validate_can_join(make_match(participants=['alice', 'bob']), 'alice')

    def test_join_full(self, match_validator):
        with pytest.raises(CapacityError) as exc_info:
            match_validator.validate_can_join(make_match(participants=['alice', 'bob']), 'carol')
        assert isinstance(exc_info.value, ConflictError)
        assert 'bob' not in exc_info.value.message

    def test_leave_as_participant(self, match_validator):
        match_validator.validate_can_leave(make_match(participants=['alice', 'bob']), 'bob')

    def test_leave_not_participant(self, match_validator):
        with pytest.raises(ConflictError):
            match_validator.validate_can_leave(make_match(), 'bob')

    @pytest.mark.parametrize("status", ['upcoming', 'ongoing', 'completed', 'cancelled', 'expired'])
    def test_creator_never_leaves(self, match_validator, status):
        with pytest.raises(PermissionError):
            match_validator.validate_can_leave(make_match(status=status), 'alice')

    def test_leave_after_start(self, match_validator):
        with pytest.raises(StateError):
            match_validator.validate_can_leave(make_match(participants=['alice', 'bob'], status='ongoing'), 'bob')


class TestMatchStatusAndScores:
    """Tests for status changes, scores, cancel and delete checks."""

    def test_status_change_needs_two_participants(self, match_validator):
        with pytest.raises(StateError):
            match_validator.validate_status_change(make_match(), 'ongoing')

    def test_status_change_ok(self, match_validator):
        target = match_validator.validate_status_change(make_match(participants=['alice', 'bob']), 'ongoing')
        assert target.value == 'ongoing'

    def test_unknown_status(self, match_validator):
        with pytest.raises(ValidationError):
            match_validator.validate_status_change(make_match(), 'paused')

    def test_expired_is_not_a_manual_target(self, match_validator):
        with pytest.raises(StateError):
            match_validator.validate_status_change(make_match(participants=['alice', 'bob']), 'expired')

    def test_scores_for_participants_only(self, match_validator):
        match = make_match(participants=['alice', 'bob'])
        with pytest.raises(ConflictError):
            match_validator.validate_scores(match, {'carol': 3})

    def test_scores_must_be_numeric(self, match_validator):
        match = make_match(participants=['alice', 'bob'])
        with pytest.raises(ValidationError):
            match_validator.validate_scores(match, {'alice': 'six'})

    def test_winner_must_be_participant(self, match_validator):
        match = make_match(participants=['alice', 'bob'])
        with pytest.raises(ConflictError):
            match_validator.validate_scores(match, {'alice': 6}, winner_id='carol')

    def test_cancel_completed(self, match_validator):
        with pytest.raises(ConflictError):
            match_validator.validate_can_cancel(make_match(status='completed'), 'alice')

    def test_cancel_twice(self, match_validator):
        with pytest.raises(ConflictError):
            match_validator.validate_can_cancel(make_match(status='cancelled'), 'alice')

    def test_cancel_by_stranger(self, match_validator):
        with pytest.raises(PermissionError):
            match_validator.validate_can_cancel(make_match(), 'mallory')

    def test_delete_requires_cancelled(self, match_validator):
        with pytest.raises(ConflictError):
            match_validator.validate_can_delete(make_match(), 'alice')
        match_validator.validate_can_delete(make_match(status='cancelled'), 'alice')


class TestTournamentCreate:
    """Tests for tournament create payloads."""

    def payload(self, **overrides):
        data = {'name': ' Spring Cup ', 'start_date': '2030-06-10T09:00:00'}
        data.update(overrides)
        return data

    def test_defaults(self, tournament_validator):
        fields = tournament_validator.validate_create(self.payload())

        assert fields['name'] == 'Spring Cup'
        assert fields['sport'] == 'General'
        assert fields['format'] == 'single_elimination'
        assert fields['max_participants'] == 16
        assert fields['entry_fee'] == 0
        assert fields['end_date'] is None

    @pytest.mark.parametrize("capacity", [3, 257, '16', True])
    def test_capacity_bounds(self, tournament_validator, capacity):
        with pytest.raises(ValidationError):
            tournament_validator.validate_create(self.payload(max_participants=capacity))

    def test_name_too_long(self, tournament_validator):
        with pytest.raises(ValidationError):
            tournament_validator.validate_create(self.payload(name='x' * 101))

    def test_description_too_long(self, tournament_validator):
        with pytest.raises(ValidationError):
            tournament_validator.validate_create(self.payload(description='x' * 1001))

    def test_negative_fee(self, tournament_validator):
        with pytest.raises(ValidationError):
            tournament_validator.validate_create(self.payload(entry_fee=-5))

    def test_only_single_elimination(self, tournament_validator):
        with pytest.raises(ValidationError):
            tournament_validator.validate_create(self.payload(format='double_elimination'))

    def test_start_in_past(self, tournament_validator):
        with pytest.raises(ScheduleError):
            tournament_validator.validate_create(self.payload(start_date='2030-05-01'))

    def test_end_before_start(self, tournament_validator):
        with pytest.raises(ScheduleError):
            tournament_validator.validate_create(self.payload(end_date='2030-06-09'))


class TestTournamentRegistration:
    """Tests for tournament join/leave/start checks."""

    def test_join_open(self, tournament_validator):
        tournament_validator.validate_can_join(make_tournament(), 'a')

    @pytest.mark.parametrize("status", ['ongoing', 'completed', 'cancelled'])
    def test_join_closed(self, tournament_validator, status):
        with pytest.raises(StateError):
            tournament_validator.validate_can_join(make_tournament(status=status), 'a')

    def test_join_full(self, tournament_validator):
        with pytest.raises(CapacityError):
            tournament_validator.validate_can_join(make_tournament(participants=['a', 'b', 'c', 'd']), 'e')

    def test_join_twice(self, tournament_validator):
        with pytest.raises(ConflictError):
            tournament_validator.validate_can_join(make_tournament(participants=['a']), 'a')

    @pytest.mark.parametrize("status", ['ongoing', 'completed', 'cancelled'])
    def test_leave_closed(self, tournament_validator, status):
        with pytest.raises(StateError):
            tournament_validator.validate_can_leave(make_tournament(participants=['a', 'b'], status=status), 'a')

    def test_organizer_cannot_leave(self, tournament_validator):
        with pytest.raises(PermissionError):
            tournament_validator.validate_can_leave(make_tournament(participants=['olivia', 'a']), 'olivia')

    def test_start_by_organizer_only(self, tournament_validator):
        with pytest.raises(PermissionError):
            tournament_validator.validate_can_start(make_tournament(participants=['a', 'b']), 'a')

    def test_start_needs_two(self, tournament_validator):
        with pytest.raises(StateError):
            tournament_validator.validate_can_start(make_tournament(participants=['a']), 'olivia')


class TestTournamentUpdate:
    """Tests for validate_update."""

    def test_rename(self, tournament_validator):
        changes = tournament_validator.validate_update(make_tournament(), 'olivia', {'name': 'Renamed'})
        assert changes == {'name': 'Renamed'}

    def test_completed_is_conflict(self, tournament_validator):
        with pytest.raises(ConflictError):
            tournament_validator.validate_update(make_tournament(status='completed'), 'olivia', {'name': 'x'})

    def test_cancelled_is_state_error(self, tournament_validator):
        with pytest.raises(StateError):
            tournament_validator.validate_update(make_tournament(status='cancelled'), 'olivia', {'name': 'x'})

    def test_structural_change_after_start(self, tournament_validator):
        with pytest.raises(StateError):
            tournament_validator.validate_update(
                make_tournament(status='ongoing'), 'olivia', {'max_participants': 8}
            )

    def test_description_change_after_start(self, tournament_validator):
        changes = tournament_validator.validate_update(
            make_tournament(status='ongoing'), 'olivia', {'description': 'Semi finals on court 1'}
        )
        assert changes == {'description': 'Semi finals on court 1'}

    def test_capacity_below_roster(self, tournament_validator):
        tournament = make_tournament(max_participants=8, participants=['a', 'b', 'c', 'd', 'e'])
        with pytest.raises(ConflictError):
            tournament_validator.validate_update(tournament, 'olivia', {'max_participants': 4})

    def test_unknown_field(self, tournament_validator):
        with pytest.raises(ValidationError):
            tournament_validator.validate_update(make_tournament(), 'olivia', {'organizer_id': 'mallory'})

    def test_not_organizer(self, tournament_validator):
        with pytest.raises(PermissionError):
            tournament_validator.validate_update(make_tournament(), 'a', {'name': 'x'})

    def test_delete_while_ongoing(self, tournament_validator):
        with pytest.raises(ConflictError):
            tournament_validator.validate_can_delete(make_tournament(status='ongoing'), 'olivia')

    def test_cancel_completed(self, tournament_validator):
        with pytest.raises(StateError):
            tournament_validator.validate_can_cancel(make_tournament(status='completed'), 'olivia')
