"""
Single-elimination bracket construction and advancement.

Round 1 pairs consecutive entries of the seeded order; an odd entry out gets a
bye. Later rounds start as empty ``waiting`` placeholders. Round ``r`` position
``p`` is fed by round ``r - 1`` positions ``2p`` (participant1) and ``2p + 1``
(participant2). When position ``2p + 1`` does not exist the match is a bye and
settles as soon as its single participant arrives.
"""
import math
import random
from dataclasses import dataclass, field, asdict
from typing import Dict, Iterable, List, Optional

from shared.errors import ConflictError, NotFoundError, StateError, ValidationError

WAITING = 'waiting'
PENDING = 'pending'
COMPLETED = 'completed'


class RandomSeeding:
    """Uniform random permutation (Fisher-Yates via ``random.shuffle``)."""

    name = 'random'

    def __init__(self, rng: random.Random = None):
        self.rng = rng or random.Random()

    def order(self, participants: Iterable[str]) -> List[str]:
        shuffled = list(participants)
        self.rng.shuffle(shuffled)
        return shuffled


class OrderedSeeding:
    """Keeps registration order. Used for deterministic brackets."""

    name = 'ordered'

    def order(self, participants: Iterable[str]) -> List[str]:
        return list(participants)


SEEDING_STRATEGIES = {
    RandomSeeding.name: RandomSeeding,
    OrderedSeeding.name: OrderedSeeding,
}


def match_id_for(round_num: int, position: int) -> str:
    return f"r{round_num}_m{position}"


@dataclass
class BracketMatch:
    match_id: str
    round: int
    position: int
    participant1: Optional[str] = None
    participant2: Optional[str] = None
    winner: Optional[str] = None
    status: str = WAITING
    is_bye: bool = False

    @property
    def seated(self) -> List[str]:
        return [p for p in (self.participant1, self.participant2) if p is not None]

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BracketMatch":
        return cls(
            match_id=data['match_id'],
            round=data['round'],
            position=data['position'],
            participant1=data.get('participant1'),
            participant2=data.get('participant2'),
            winner=data.get('winner'),
            status=data.get('status', WAITING),
            is_bye=data.get('is_bye', False)
        )


@dataclass
class Bracket:
    rounds: int
    matches: List[BracketMatch] = field(default_factory=list)
    seeding: str = RandomSeeding.name

    def find(self, match_id: str) -> Optional[BracketMatch]:
        for m in self.matches:
            if m.match_id == match_id:
                return m
        return None

    def at(self, round_num: int, position: int) -> Optional[BracketMatch]:
        for m in self.matches:
            if m.round == round_num and m.position == position:
                return m
        return None

    def round_matches(self, round_num: int) -> List[BracketMatch]:
        return sorted(
            (m for m in self.matches if m.round == round_num),
            key=lambda m: m.position
        )

    @property
    def final(self) -> BracketMatch:
        return self.round_matches(self.rounds)[0]

    @property
    def is_complete(self) -> bool:
        return self.final.status == COMPLETED

    @property
    def champion(self) -> Optional[str]:
        return self.final.winner if self.is_complete else None

    def pending_matches(self) -> List[BracketMatch]:
        return [m for m in self.matches if m.status == PENDING]

    def settle_byes(self) -> List[BracketMatch]:
        """Push every bye winner forward. Returns the matches settled as byes."""
        settled = []
        for round_num in range(1, self.rounds + 1):
            for m in self.round_matches(round_num):
                if m.status == COMPLETED and m.winner is not None:
                    settled.extend(self._propagate(m))
                elif m.status == WAITING and self._is_structural_bye(m):
                    settled.extend(self._settle_bye(m))
        return settled

    def record_winner(self, match_id: str, winner: str) -> BracketMatch:
        """Complete a pending match and move its winner on. Validates before mutating."""
        m = self.find(match_id)
        if m is None:
            raise NotFoundError('Bracket match', match_id)
        if m.status != PENDING:
            raise StateError(m.status, COMPLETED, f"Bracket match {match_id} is not pending")
        if winner not in m.seated:
            raise ConflictError("Winner must be one of the match participants")

        m.winner = winner
        m.status = COMPLETED
        self._propagate(m)
        return m

    def _feeder_exists(self, m: BracketMatch, slot: int) -> bool:
        return self.at(m.round - 1, 2 * m.position + slot) is not None

    def _is_structural_bye(self, m: BracketMatch) -> bool:
        return (
            m.round > 1
            and m.participant1 is not None
            and m.participant2 is None
            and not self._feeder_exists(m, 1)
        )

    def _settle_bye(self, m: BracketMatch) -> List[BracketMatch]:
        m.winner = m.participant1
        m.status = COMPLETED
        m.is_bye = True
        return [m] + self._propagate(m)

    def _propagate(self, m: BracketMatch) -> List[BracketMatch]:
        if m.round >= self.rounds:
            return []
        nxt = self.at(m.round + 1, m.position // 2)
        if nxt is None or nxt.status == COMPLETED:
            return []

        if m.position % 2 == 0:
            if nxt.participant1 == m.winner:
                return []
            nxt.participant1 = m.winner
        else:
            if nxt.participant2 == m.winner:
                return []
            nxt.participant2 = m.winner

        if nxt.participant1 is not None and nxt.participant2 is not None:
            nxt.status = PENDING
            return []
        if self._is_structural_bye(nxt):
            return self._settle_bye(nxt)
        return []

    def final_standings(self, participants: List[str]) -> List[str]:
        """Champion first, then everyone else by the round they went out in, deepest first."""
        eliminated_in: Dict[str, int] = {}
        for m in self.matches:
            if m.status != COMPLETED or m.is_bye:
                continue
            for p in m.seated:
                if p != m.winner:
                    eliminated_in[p] = m.round

        champion = self.champion
        order = {p: i for i, p in enumerate(participants)}
        rest = [p for p in participants if p != champion]
        rest.sort(key=lambda p: (-eliminated_in.get(p, 0), order[p]))
        return ([champion] if champion else []) + rest

    def to_dict(self) -> dict:
        return {
            'type': 'single_elimination',
            'rounds': self.rounds,
            'seeding': self.seeding,
            'matches': [m.to_dict() for m in self.matches],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bracket":
        return cls(
            rounds=data['rounds'],
            matches=[BracketMatch.from_dict(m) for m in data.get('matches', [])],
            seeding=data.get('seeding', RandomSeeding.name)
        )


class BracketBuilder:
    def __init__(self, seeding=None):
        self.seeding = seeding or RandomSeeding()

    def build(self, participants: List[str]) -> Bracket:
        if len(participants) < 2:
            raise ValidationError("A bracket needs at least 2 participants")
        if len(set(participants)) != len(participants):
            raise ValidationError("Bracket participants must be unique")

        seeded = self.seeding.order(participants)
        rounds = math.ceil(math.log2(len(seeded)))

        matches = []
        for i in range(0, len(seeded), 2):
            position = i // 2
            if i + 1 >= len(seeded):
                matches.append(BracketMatch(
                    match_id=match_id_for(1, position),
                    round=1,
                    position=position,
                    participant1=seeded[i],
                    winner=seeded[i],
                    status=COMPLETED,
                    is_bye=True
                ))
            else:
                matches.append(BracketMatch(
                    match_id=match_id_for(1, position),
                    round=1,
                    position=position,
                    participant1=seeded[i],
                    participant2=seeded[i + 1],
                    status=PENDING
                ))

        previous_size = len(matches)
        for round_num in range(2, rounds + 1):
            size = math.ceil(previous_size / 2)
            for position in range(size):
                matches.append(BracketMatch(
                    match_id=match_id_for(round_num, position),
                    round=round_num,
                    position=position
                ))
            previous_size = size

        return Bracket(rounds=rounds, matches=matches, seeding=getattr(self.seeding, 'name', 'custom'))
