import os
import logging
from typing import Callable

from flask import Flask

from shared.pubsub import LocalEventBus, RedisEventBus
from .config import config
from .models import db
from .bracket import BracketBuilder
from .match_lifecycle import MatchLifecycleService
from .participants import MatchParticipantManager, TournamentParticipantManager
from .publishers import MatchEventPublisher, TournamentEventPublisher
from .pubsub_manager import GooglePubSubEventBus
from .repositories import MatchRepository, TournamentRepository
from .schedule import utcnow
from .tournament_lifecycle import TournamentLifecycleService
from .validation import MatchValidationService, TournamentValidationService

logger = logging.getLogger(__name__)


def build_event_bus(app: Flask):
    """Pick the event transport named by EVENT_BUS."""
    kind = app.config.get('EVENT_BUS', 'local')
    if kind == 'local':
        return LocalEventBus()
    if kind == 'redis':
        return RedisEventBus(app.config['REDIS_URL'])
    if kind == 'gcp':
        return GooglePubSubEventBus(project_id=app.config.get('GCP_PROJECT_ID') or None)
    raise ValueError(f"Unknown EVENT_BUS '{kind}'")


def configure_logging(app: Flask):
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    for name in ('competition', 'shared'):
        logging.getLogger(name).setLevel(level)


def create_app(config_name: str = None, overrides: dict = None,
               event_bus=None, clock: Callable = utcnow,
               bracket_builder: BracketBuilder = None) -> Flask:
    """Application factory: wires persistence, the event bus and every service once."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    if overrides:
        app.config.update(overrides)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    with app.app_context():
        db.create_all()

    bus = event_bus or build_event_bus(app)
    retry_limit = app.config['OPTIMISTIC_RETRY_LIMIT']
    default_duration = app.config['MATCH_DEFAULT_DURATION_MINUTES']

    match_repository = MatchRepository(retry_limit=retry_limit, clock=clock, default_duration=default_duration)
    match_publisher = MatchEventPublisher(bus)
    matches = MatchLifecycleService(
        repository=match_repository,
        validator=MatchValidationService(
            clock=clock,
            public_capacity=app.config['PUBLIC_MATCH_CAPACITY'],
            private_capacity=app.config['PRIVATE_MATCH_CAPACITY']
        ),
        participants=MatchParticipantManager(match_repository, match_publisher),
        publisher=match_publisher,
        clock=clock,
        default_duration=default_duration
    )

    tournament_repository = TournamentRepository(retry_limit=retry_limit, clock=clock)
    tournament_publisher = TournamentEventPublisher(bus)
    tournaments = TournamentLifecycleService(
        repository=tournament_repository,
        validator=TournamentValidationService(
            clock=clock,
            min_capacity=app.config['TOURNAMENT_MIN_PARTICIPANTS'],
            max_capacity=app.config['TOURNAMENT_MAX_PARTICIPANTS'],
            default_capacity=app.config['TOURNAMENT_DEFAULT_CAPACITY']
        ),
        participants=TournamentParticipantManager(tournament_repository, tournament_publisher),
        publisher=tournament_publisher,
        bracket_builder=bracket_builder,
        clock=clock
    )

    # Store services on app for access by the API layer
    app.event_bus = bus
    app.matches = matches
    app.tournaments = tournaments

    logger.info(f"Competition engine ready ({config_name}, event bus: {type(bus).__name__})")
    return app
