from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
import json


class EventType(str, Enum):
    # Match lifecycle
    MATCH_CREATED = "match.created"
    MATCH_STATUS_CHANGED = "match.status.changed"
    MATCH_SCORE_UPDATED = "match.score.updated"
    MATCH_COMPLETED = "match.completed"
    MATCH_CANCELLED = "match.cancelled"
    MATCH_DELETED = "match.deleted"

    # Match participation
    PLAYER_JOINED = "match.player.joined"
    PLAYER_LEFT = "match.player.left"

    # Tournament lifecycle
    TOURNAMENT_CREATED = "tournament.created"
    TOURNAMENT_UPDATED = "tournament.updated"
    TOURNAMENT_STARTED = "tournament.started"
    TOURNAMENT_COMPLETED = "tournament.completed"
    TOURNAMENT_CANCELLED = "tournament.cancelled"
    TOURNAMENT_DELETED = "tournament.deleted"

    # Tournament participation and bracket
    PARTICIPANT_JOINED = "tournament.participant.joined"
    PARTICIPANT_LEFT = "tournament.participant.left"
    BRACKET_ADVANCED = "tournament.bracket.advanced"

    @property
    def aggregate_type(self) -> str:
        return self.value.split(".", 1)[0]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


@dataclass
class Event:
    type: EventType
    aggregate_id: str
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = utc_timestamp()
        if self.data is None:
            self.data = {}

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, EventType) else self.type

    @property
    def aggregate_type(self) -> str:
        return self.type_name.split(".", 1)[0]

    def to_dict(self) -> dict:
        return {
            "type": self.type_name,
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]) if data["type"] in [e.value for e in EventType] else data["type"],
            aggregate_id=data["aggregate_id"],
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))
