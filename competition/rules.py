"""
Typed rule maps for matches and tournaments.

Rules are a flat key/value map with a bounded key set. Every key has one
accepted Python type; anything else is rejected with a ValidationError.
"""
from typing import Dict, Mapping, Optional

from shared.errors import ValidationError

MATCH_RULE_KEYS = {
    'format': str,               # e.g. "singles", "5v5"
    'sets': int,
    'points_to_win': int,
    'time_limit_minutes': int,
    'team_size': int,
    'skill_level': str,
    'allow_substitutes': bool,
    'notes': str,
}

TOURNAMENT_RULE_KEYS = {
    'match_format': str,
    'sets': int,
    'points_to_win': int,
    'time_limit_minutes': int,
    'team_size': int,
    'check_in_minutes': int,
    'seeding': str,              # "random" or "ordered"
    'notes': str,
}

RULE_CHOICES = {
    'seeding': ('random', 'ordered'),
}

MAX_TEXT_LENGTH = 500


def normalize_rules(rules: Optional[Mapping], schema: Dict[str, type]) -> dict:
    if rules is None:
        return {}
    if not isinstance(rules, Mapping):
        raise ValidationError("Rules must be a mapping")

    normalized = {}
    for key, value in rules.items():
        expected = schema.get(key)
        if expected is None:
            raise ValidationError(f"Unknown rule '{key}'")
        if value is None:
            continue

        # bool is an int subclass; keep them apart
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValidationError(f"Rule '{key}' must be an integer")
        if expected is int and value < 0:
            raise ValidationError(f"Rule '{key}' cannot be negative")
        if expected is bool and not isinstance(value, bool):
            raise ValidationError(f"Rule '{key}' must be true or false")
        if expected is str:
            if not isinstance(value, str):
                raise ValidationError(f"Rule '{key}' must be text")
            value = value.strip()
            if len(value) > MAX_TEXT_LENGTH:
                raise ValidationError(f"Rule '{key}' cannot exceed {MAX_TEXT_LENGTH} characters")
        if key in RULE_CHOICES and value not in RULE_CHOICES[key]:
            raise ValidationError(f"Rule '{key}' must be one of {', '.join(RULE_CHOICES[key])}")

        normalized[key] = value
    return normalized
