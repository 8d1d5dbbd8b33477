"""Decide whether a prediction on a completed match is eligible for points.

A round 2+ pick only counts if the user's own bracket sent the right teams
into the match.  Under the default ``participants`` rule both teams that
actually met must be the two teams the user advanced from the feeder
matches, in either orientation.  The older ``winner`` rule only asks that the
actual winner is one of the user's advanced teams.
"""

import re
from decimal import Decimal
from typing import Optional

from bracket_engine import scoring, topology
from bracket_engine.scoring import DEFAULT_POLICY, PATH_RULE_WINNER, ScoringPolicy

PENDING = 'pending'
INVALID_PATH = 'invalid_path'
WRONG_WINNER = 'wrong_winner'
SCORED = 'scored'

_WHITESPACE = re.compile(r'\s+')


def normalize_team_name(name: Optional[str]) -> str:
    return _WHITESPACE.sub(' ', (name or '').strip().lower())


def predicted_participants(match, resolver) -> tuple[Optional[str], Optional[str]]:
    """The teams the user advanced out of the two feeder matches."""
    teams = []
    for slot in topology.SLOTS:
        previous = resolver.feeder(match, slot)
        teams.append(resolver.predicted_winner_of(previous) if previous is not None else None)
    return teams[0], teams[1]


def is_valid_bracket_path(prediction, match, resolver, policy: ScoringPolicy = DEFAULT_POLICY) -> bool:
    if match.round == topology.FIRST_ROUND:
        return True
    if not match.completed:
        return False

    predicted_a, predicted_b = predicted_participants(match, resolver)
    if predicted_a is None or predicted_b is None:
        return False

    predicted = {normalize_team_name(predicted_a), normalize_team_name(predicted_b)}

    if policy.path_rule == PATH_RULE_WINNER:
        return normalize_team_name(match.winning_team) in predicted

    actual = {normalize_team_name(match.team1), normalize_team_name(match.team2)}
    return predicted == actual


def prediction_outcome(prediction, match, resolver, policy: ScoringPolicy = DEFAULT_POLICY) -> str:
    if not match.completed:
        return PENDING
    if not is_valid_bracket_path(prediction, match, resolver, policy):
        return INVALID_PATH
    if prediction.predicted_winner != match.winner:
        return WRONG_WINNER
    return SCORED


def points_for(prediction, match, resolver, policy: ScoringPolicy = DEFAULT_POLICY) -> Optional[Decimal]:
    """Points for a prediction; None while the match is pending, 0 on an invalid path."""
    outcome = prediction_outcome(prediction, match, resolver, policy)
    if outcome == PENDING:
        return None
    if outcome == INVALID_PATH:
        return Decimal('0.00')
    return scoring.score(
        prediction.predicted_winner,
        prediction.predicted_total_sets,
        match.winner,
        match.total_sets,
        match.round,
        policy,
    )
