"""Point calculation for bracket predictions.

Scoring rules:

- Wrong winner: 0 points
- Correct winner: 1 point
- Correct winner and correct total sets: 1 point x round multiplier

The multiplier table and the bracket-path rule form a versioned
``ScoringPolicy`` so an administrative recompute always runs against an
explicit table rather than whatever constants are current.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Mapping, Optional

from bracket_engine.topology import SLOT_A, SLOT_B

PATH_RULE_PARTICIPANTS = 'participants'
PATH_RULE_WINNER = 'winner'
PATH_RULES = (PATH_RULE_PARTICIPANTS, PATH_RULE_WINNER)

VALID_TOTAL_SETS = (3, 4, 5)
SETS_TO_WIN = 3

DEFAULT_ROUND_MULTIPLIERS = {
    1: Decimal('1.10'),  # Round of 64
    2: Decimal('1.25'),  # Round of 32
    3: Decimal('1.50'),  # Sweet 16
    4: Decimal('1.75'),  # Elite 8
    5: Decimal('2.00'),  # Final Four
    6: Decimal('2.50'),  # Championship
}

_CENTS = Decimal('0.01')


@dataclass(frozen=True)
class ScoringPolicy:
    version: str
    round_multipliers: Mapping[int, Decimal] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_ROUND_MULTIPLIERS))
    )
    path_rule: str = PATH_RULE_PARTICIPANTS
    base_points: Decimal = Decimal('1')

    def __post_init__(self):
        if self.path_rule not in PATH_RULES:
            raise ValueError(f'Unknown bracket path rule {self.path_rule!r}')
        multipliers = {int(k): Decimal(str(v)) for k, v in self.round_multipliers.items()}
        object.__setattr__(self, 'round_multipliers', MappingProxyType(multipliers))

    @property
    def max_points(self) -> Decimal:
        return self.base_points * max(self.round_multipliers.values(), default=Decimal('1'))


DEFAULT_POLICY = ScoringPolicy(version='2024.1')


def policy_from_config(config: Mapping) -> ScoringPolicy:
    """Build the policy from Flask config, falling back to the defaults."""
    multipliers = config.get('ROUND_MULTIPLIERS') or DEFAULT_ROUND_MULTIPLIERS
    return ScoringPolicy(
        version=str(config.get('SCORING_POLICY_VERSION') or DEFAULT_POLICY.version),
        round_multipliers=multipliers,
        path_rule=config.get('BRACKET_PATH_RULE') or PATH_RULE_PARTICIPANTS,
    )


def round_multiplier(round_number: int, policy: ScoringPolicy = DEFAULT_POLICY) -> Decimal:
    # Unknown rounds should not happen; score them without a bonus.
    return policy.round_multipliers.get(round_number, Decimal('1'))


def score(
    predicted_slot: str,
    predicted_total_sets: int,
    winning_slot: str,
    total_sets: int,
    round_number: int,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Decimal:
    """Return the points a single prediction earns against an actual result."""
    if predicted_slot != winning_slot:
        return Decimal('0.00')

    points = policy.base_points
    if predicted_total_sets == total_sets:
        points = points * round_multiplier(round_number, policy)

    return points.quantize(_CENTS, rounding=ROUND_HALF_UP)


def total_sets(team1_sets: Optional[int], team2_sets: Optional[int]) -> int:
    return (team1_sets or 0) + (team2_sets or 0)


def winner_from_sets(team1_sets: int, team2_sets: int) -> Optional[str]:
    """Best of five: the first side to three sets wins, otherwise undecided."""
    if team1_sets >= SETS_TO_WIN and team1_sets > team2_sets:
        return SLOT_A
    if team2_sets >= SETS_TO_WIN and team2_sets > team1_sets:
        return SLOT_B
    return None
