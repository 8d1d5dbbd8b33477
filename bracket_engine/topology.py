"""Shape of the fixed 64-team, six-round single-elimination bracket.

Positions are addressed by ``(round, match_index)`` where ``match_index`` is
0-based within the round (``match_number - 1``).  Each match in rounds 2-6 is
fed by two matches of the previous round; slot ``team1`` is filled by the
winner of the first feeder and slot ``team2`` by the second.

Not every round pairs its feeders sequentially.  The Elite 8 mirrors the
Sweet 16 (regional crossover) and the Final Four crosses the Elite 8:

    round 2, 3, 6   sequential   i <- (2i, 2i+1)
    round 4         reversed     i <- (2r, 2r+1), r = (matches in round 4 - 1) - i
    round 5         cross        i <- (i, i+2)
"""

from bracket_engine.errors import TopologyError

FIRST_ROUND = 1
CHAMPIONSHIP_ROUND = 6

SLOT_A = 'team1'
SLOT_B = 'team2'
SLOTS = (SLOT_A, SLOT_B)

MATCHES_PER_ROUND = {1: 32, 2: 16, 3: 8, 4: 4, 5: 2, 6: 1}

ROUND_NAMES = {
    1: 'Round of 64',
    2: 'Round of 32',
    3: 'Sweet 16',
    4: 'Elite 8',
    5: 'Final Four',
    6: 'Championship',
}

SEQUENTIAL = 'sequential'
REVERSED = 'reversed'
CROSS = 'cross'

PAIRING_RULES = {
    2: SEQUENTIAL,
    3: SEQUENTIAL,
    4: REVERSED,
    5: CROSS,
    6: SEQUENTIAL,
}


def _check_round(round_number: int) -> None:
    if round_number not in MATCHES_PER_ROUND:
        raise TopologyError(f'Round {round_number} is outside 1..{CHAMPIONSHIP_ROUND}')


def _check_index(round_number: int, match_index: int) -> None:
    _check_round(round_number)
    count = MATCHES_PER_ROUND[round_number]
    if not 0 <= match_index < count:
        raise TopologyError(
            f'Match index {match_index} does not exist in round {round_number} ({count} matches)'
        )


def match_count(round_number: int) -> int:
    _check_round(round_number)
    return MATCHES_PER_ROUND[round_number]


def round_name(round_number: int) -> str:
    return ROUND_NAMES.get(round_number, f'Round {round_number}')


def slot_position(slot: str) -> int:
    """0 for ``team1``, 1 for ``team2``."""
    try:
        return SLOTS.index(slot)
    except ValueError:
        raise TopologyError(f'Unknown slot {slot!r}') from None


def feeding_matches(round_number: int, match_index: int) -> tuple[int, int]:
    """Return the previous-round indices feeding slots ``team1`` and ``team2``."""
    if round_number == FIRST_ROUND:
        raise TopologyError('Round 1 matches are seeded directly and have no feeders')
    _check_index(round_number, match_index)

    rule = PAIRING_RULES[round_number]
    if rule == SEQUENTIAL:
        pair = (match_index * 2, match_index * 2 + 1)
    elif rule == REVERSED:
        mirrored = (MATCHES_PER_ROUND[round_number] - 1) - match_index
        pair = (mirrored * 2, mirrored * 2 + 1)
    elif rule == CROSS:
        pair = (match_index, match_index + 2)
    else:  # pragma: no cover - table is static
        raise TopologyError(f'No pairing rule for round {round_number}')

    previous_count = MATCHES_PER_ROUND[round_number - 1]
    for index in pair:
        if not 0 <= index < previous_count:
            raise TopologyError(
                f'Round {round_number} match {match_index} points at missing '
                f'round {round_number - 1} match {index}'
            )
    return pair


def feeding_match(round_number: int, match_index: int, slot: str) -> int:
    return feeding_matches(round_number, match_index)[slot_position(slot)]


def _build_inverse() -> dict[tuple[int, int], tuple[int, str]]:
    inverse = {}
    for round_number in range(FIRST_ROUND + 1, CHAMPIONSHIP_ROUND + 1):
        for match_index in range(MATCHES_PER_ROUND[round_number]):
            for slot, source in zip(SLOTS, feeding_matches(round_number, match_index)):
                inverse[(round_number - 1, source)] = (match_index, slot)
    return inverse


# Derived from the forward table so the two can never disagree.
_FEEDS_INTO = _build_inverse()


def feeds_into(round_number: int, match_index: int) -> tuple[int, str]:
    """Return ``(next_round_index, slot)`` that the winner of this match moves into."""
    if round_number == CHAMPIONSHIP_ROUND:
        raise TopologyError('The championship match does not feed any later match')
    _check_index(round_number, match_index)
    return _FEEDS_INTO[(round_number, match_index)]

