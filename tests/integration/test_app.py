"""
Integration tests for the application factory and event bus selection.
"""
import pytest
from flask import Flask

from shared.pubsub import LocalEventBus, RedisEventBus
from competition.app import build_event_bus, create_app
from competition.pubsub_manager import GooglePubSubEventBus


def app_with(**config):
    app = Flask(__name__)
    app.config.update(config)
    return app


class TestBuildEventBus:
    def test_local(self):
        assert isinstance(build_event_bus(app_with(EVENT_BUS='local')), LocalEventBus)

    def test_redis(self, mocker):
        from_url = mocker.patch('redis.from_url')

        bus = build_event_bus(app_with(EVENT_BUS='redis', REDIS_URL='redis://cache:6379'))

        assert isinstance(bus, RedisEventBus)
        assert from_url.call_args[0][0] == 'redis://cache:6379'
        assert from_url.call_args[1]['decode_responses'] is True

    def test_gcp_local_dev(self):
        bus = build_event_bus(app_with(EVENT_BUS='gcp', GCP_PROJECT_ID='local-dev'))

        assert isinstance(bus, GooglePubSubEventBus)
        assert bus.is_local is True

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_event_bus(app_with(EVENT_BUS='carrier-pigeon'))


class TestCreateApp:
    def test_services_are_wired(self, app):
        assert isinstance(app.event_bus, LocalEventBus)
        assert app.matches.publisher.bus is app.event_bus
        assert app.tournaments.participants.repository is app.tournaments.repository
        assert app.config['TESTING'] is True

    def test_overrides_reach_services(self, tmp_path):
        app = create_app('testing', overrides={
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'cfg.db'}",
            'OPTIMISTIC_RETRY_LIMIT': 5,
            'PRIVATE_MATCH_CAPACITY': 4,
            'TOURNAMENT_DEFAULT_CAPACITY': 32,
        })

        assert app.matches.repository.retry_limit == 5
        assert app.matches.validator.private_capacity == 4
        assert app.tournaments.validator.default_capacity == 32

    def test_injected_bus_wins(self, tmp_path, mock_bus):
        app = create_app('testing', overrides={
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'bus.db'}",
        }, event_bus=mock_bus)

        assert app.event_bus is mock_bus
