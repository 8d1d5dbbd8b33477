"""Forward walk through the bracket for cascading deletes.

Later picks are built on earlier ones: the winner a user chose for a match is
the team they carry into the match it feeds.  Removing or changing that pick
invalidates the chain of picks above it, one match per round up to the
championship.
"""

from bracket_engine import topology


def next_position(round_number: int, match_index: int):
    """``(round, match_index)`` of the match this one feeds, or None after the final."""
    if round_number >= topology.CHAMPIONSHIP_ROUND:
        return None
    next_index, _slot = topology.feeds_into(round_number, match_index)
    return round_number + 1, next_index


def downstream_positions(round_number: int, match_index: int):
    """Yield every later position that depends on ``(round_number, match_index)``."""
    position = next_position(round_number, match_index)
    while position is not None:
        yield position
        position = next_position(*position)


def dependent_picks(resolver, match):
    """Later predictions stacked on ``match``, in round order.

    The walk stops at the first later match the user has not predicted; that
    gap already breaks the chain above it.
    """
    chain = []
    for round_number, match_index in downstream_positions(match.round, match.match_number - 1):
        later = resolver.match_at(round_number, match_index)
        if later is None:
            break
        prediction = resolver.prediction_for(later)
        if prediction is None:
            break
        chain.append(prediction)
    return chain


def cascade_chain(resolver, match):
    """The user's pick on ``match`` (if any) followed by its dependent picks."""
    own = resolver.prediction_for(match)
    head = [own] if own is not None else []
    return head + dependent_picks(resolver, match)
