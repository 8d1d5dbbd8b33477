"""Bracket shape: feeder pairings per round and their inverse."""

import pytest

from bracket_engine import topology
from bracket_engine.cascade import downstream_positions, next_position
from bracket_engine.errors import TopologyError


class TestFeedingMatches:
    @pytest.mark.parametrize('round_number', [2, 3, 6])
    def test_sequential_rounds_pair_neighbours(self, round_number):
        for match_index in range(topology.match_count(round_number)):
            assert topology.feeding_matches(round_number, match_index) == (2 * match_index, 2 * match_index + 1)

    def test_elite_eight_mirrors_sweet_sixteen(self):
        assert [topology.feeding_matches(4, i) for i in range(4)] == [
            (6, 7),
            (4, 5),
            (2, 3),
            (0, 1),
        ]

    def test_elite_eight_fourth_match_is_fed_by_first_two_sweet_sixteen_matches(self):
        assert topology.feeding_matches(4, 3) == (0, 1)
        assert topology.feeding_matches(4, 3) != (6, 7)

    def test_final_four_crosses_elite_eight(self):
        assert topology.feeding_matches(5, 0) == (0, 2)
        assert topology.feeding_matches(5, 1) == (1, 3)

    def test_feeding_match_picks_slot(self):
        assert topology.feeding_match(5, 1, topology.SLOT_A) == 1
        assert topology.feeding_match(5, 1, topology.SLOT_B) == 3

    def test_same_answer_every_call(self):
        for round_number in range(2, 7):
            for match_index in range(topology.match_count(round_number)):
                first = topology.feeding_matches(round_number, match_index)
                assert topology.feeding_matches(round_number, match_index) == first

    @pytest.mark.parametrize(
        'round_number, match_index',
        [(1, 0), (0, 0), (7, 0), (2, -1), (2, 16), (4, 4), (5, 2), (6, 1)],
    )
    def test_out_of_range_positions_raise(self, round_number, match_index):
        with pytest.raises(TopologyError):
            topology.feeding_matches(round_number, match_index)

    def test_unknown_slot_raises(self):
        with pytest.raises(TopologyError):
            topology.feeding_match(2, 0, 'team3')


class TestFeedsInto:
    def test_inverse_of_forward_table(self):
        for round_number in range(2, 7):
            for match_index in range(topology.match_count(round_number)):
                for slot in topology.SLOTS:
                    source = topology.feeding_match(round_number, match_index, slot)
                    assert topology.feeds_into(round_number - 1, source) == (match_index, slot)

    def test_every_match_feeds_exactly_one_later_slot(self):
        for round_number in range(1, 6):
            targets = [topology.feeds_into(round_number, i) for i in range(topology.match_count(round_number))]
            assert len(set(targets)) == len(targets) == topology.match_count(round_number + 1) * 2

    def test_reversed_and_cross_rounds(self):
        assert topology.feeds_into(3, 0) == (3, topology.SLOT_A)
        assert topology.feeds_into(3, 7) == (0, topology.SLOT_B)
        assert topology.feeds_into(4, 2) == (0, topology.SLOT_B)
        assert topology.feeds_into(4, 1) == (1, topology.SLOT_A)

    def test_championship_feeds_nothing(self):
        with pytest.raises(TopologyError):
            topology.feeds_into(6, 0)

    def test_out_of_range_index(self):
        with pytest.raises(TopologyError):
            topology.feeds_into(1, 32)


class TestRoundHelpers:
    def test_match_counts(self):
        assert [topology.match_count(r) for r in range(1, 7)] == [32, 16, 8, 4, 2, 1]
        assert sum(topology.MATCHES_PER_ROUND.values()) == 63

    def test_match_count_rejects_unknown_round(self):
        with pytest.raises(TopologyError):
            topology.match_count(7)

    def test_round_names(self):
        assert topology.round_name(4) == 'Elite 8'
        assert topology.round_name(6) == 'Championship'


class TestDownstreamPositions:
    def test_path_from_first_match_crosses_regions(self):
        assert list(downstream_positions(1, 0)) == [(2, 0), (3, 0), (4, 3), (5, 1), (6, 0)]

    def test_championship_has_no_downstream(self):
        assert list(downstream_positions(6, 0)) == []
        assert next_position(6, 0) is None

    def test_path_length_matches_rounds_remaining(self):
        for round_number in range(1, 7):
            for match_index in range(topology.match_count(round_number)):
                assert len(list(downstream_positions(round_number, match_index))) == 6 - round_number
