"""Work out which concrete team a user expected to see in a bracket slot.

Older predictions only record the winning *slot*, so for rounds 2-6 the
team a user meant has to be reconstructed by walking back through their own
earlier picks until a round-1 match (whose teams are always real) or a
prediction with a cached ``predicted_team_name`` is reached.

A ``TeamResolver`` is built for one user from a snapshot of the bracket and
keeps its memo on the instance, so two concurrent requests never share
cached answers.  ``None`` means the user's bracket is incomplete at that node;
it is a normal outcome, not an error.
"""

from typing import Iterable, Optional

from bracket_engine import topology
from bracket_engine.errors import TopologyError

PLACEHOLDER_TEAM = 'TBD'


def is_known_team(name: Optional[str]) -> bool:
    return bool(name and name.strip() and name.strip().upper() != PLACEHOLDER_TEAM)


class TeamResolver:
    """Read-only view over all matches and a single user's predictions."""

    def __init__(self, matches: Iterable, predictions: Iterable):
        self._matches = {(m.round, m.match_number): m for m in matches}
        self._predictions = {p.match_id: p for p in predictions}
        self._memo: dict[tuple, Optional[str]] = {}

    def match_at(self, round_number: int, match_index: int):
        return self._matches.get((round_number, match_index + 1))

    def prediction_for(self, match):
        return self._predictions.get(match.id)

    def feeder(self, match, slot: str):
        """Previous-round match whose winner fills ``slot`` of ``match``."""
        source_index = topology.feeding_match(match.round, match.match_number - 1, slot)
        return self.match_at(match.round - 1, source_index)

    def resolve(self, match, slot: str) -> Optional[str]:
        """Team the user predicted to occupy ``slot`` of ``match``."""
        if not topology.FIRST_ROUND <= match.round <= topology.CHAMPIONSHIP_ROUND:
            raise TopologyError(f'Round {match.round} is outside 1..{topology.CHAMPIONSHIP_ROUND}')

        key = (match.id, slot)
        if key in self._memo:
            return self._memo[key]

        team = self._resolve_uncached(match, slot)
        self._memo[key] = team
        return team

    def _resolve_uncached(self, match, slot: str) -> Optional[str]:
        if match.round == topology.FIRST_ROUND:
            team = match.team1 if slot == topology.SLOT_A else match.team2
            return team if is_known_team(team) else None

        own = self.prediction_for(match)
        if own is not None and own.predicted_winner == slot and is_known_team(own.predicted_team_name):
            return own.predicted_team_name

        previous = self.feeder(match, slot)
        if previous is None:
            return None
        return self.predicted_winner_of(previous)

    def predicted_winner_of(self, match) -> Optional[str]:
        """Team the user picked to win ``match``, or None if they made no pick."""
        prediction = self.prediction_for(match)
        if prediction is None:
            return None
        if is_known_team(prediction.predicted_team_name):
            return prediction.predicted_team_name
        return self.resolve(match, prediction.predicted_winner)
