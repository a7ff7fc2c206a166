"""
Pytest configuration and fixtures for competition engine tests.
"""
import os
import sys
from datetime import datetime, timedelta

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from competition.app import create_app
from competition.bracket import BracketBuilder, OrderedSeeding
from competition.models import db

START = datetime(2030, 6, 1, 12, 0)


class FakeClock:
    """Naive UTC clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def reset(self):
        self.now = START


def match_data(clock, **overrides):
    """Valid create payload for a match two days after the clock."""
    day = clock() + timedelta(days=2)
    data = {
        'sport': 'Tennis',
        'type': 'public',
        'schedule': {
            'date': day.date().isoformat(),
            'time': '18:30',
            'timezone': 'UTC',
            'duration_minutes': 90,
        },
        'venue_id': 'venue-42',
        'rules': {'format': 'singles', 'sets': 3},
    }
    data.update(overrides)
    return data


def tournament_data(clock, **overrides):
    """Valid create payload for a tournament a week after the clock."""
    data = {
        'name': 'Summer Open',
        'description': 'Club championship',
        'sport': 'Tennis',
        'max_participants': 16,
        'start_date': (clock() + timedelta(days=7)).isoformat(),
        'end_date': (clock() + timedelta(days=9)).isoformat(),
        'rules': {'match_format': 'best of 3'},
    }
    data.update(overrides)
    return data


@pytest.fixture(scope='session')
def clock():
    return FakeClock()


@pytest.fixture(scope='session')
def app(clock):
    """Create application for testing."""
    app = create_app(
        'testing',
        clock=clock,
        bracket_builder=BracketBuilder(OrderedSeeding())
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app, clock):
    """Empty tables, a reset clock and an empty event log for every test."""
    with app.app_context():
        db.session.remove()

        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        clock.reset()
        app.event_bus.clear()

        yield db.session

        db.session.rollback()


@pytest.fixture
def bus(app, db_session):
    return app.event_bus


@pytest.fixture
def matches(app, db_session):
    return app.matches


@pytest.fixture
def tournaments(app, db_session):
    return app.tournaments


@pytest.fixture
def sample_match(matches, clock):
    """Public tennis match created by alice."""
    return matches.create('alice', match_data(clock))


@pytest.fixture
def sample_tournament(tournaments, clock):
    """Upcoming tournament organised by olivia."""
    return tournaments.create('olivia', tournament_data(clock))


@pytest.fixture
def four_player_tournament(tournaments, sample_tournament):
    """Sample tournament with a, b, c, d registered in that order."""
    for user in ('a', 'b', 'c', 'd'):
        tournaments.join(user, sample_tournament.tournament_id)
    return tournaments.get(sample_tournament.tournament_id)


@pytest.fixture
def mock_bus(mocker):
    """Bus double for publisher tests."""
    bus = mocker.MagicMock()
    bus.publish = mocker.MagicMock()
    return bus


@pytest.fixture
def match_payload(clock):
    return lambda **overrides: match_data(clock, **overrides)


@pytest.fixture
def tournament_payload(clock):
    return lambda **overrides: tournament_data(clock, **overrides)
