"""Recording results, scoring, recomputation and standings."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

import services
from bracket_engine.errors import NotFoundError, PreconditionViolation, StorageUnavailable, ValidationError
from bracket_engine.scoring import PATH_RULE_WINNER, ScoringPolicy
from models import db, Match, Prediction


def _points(prediction_id):
    return db.session.get(Prediction, prediction_id).points_earned


class TestOnMatchCompleted:
    def test_scores_every_prediction(self, user, other_user, pick, match_at):
        right = pick(user, 1, 1, winner='team1', sets=3)
        wrong = pick(other_user, 1, 1, winner='team2', sets=3)

        summary = services.on_match_completed(match_at(1, 1).id, 'team1', 3, 0)
        assert summary.predictions_checked == 2
        assert summary.points_changed == 2
        assert _points(right.id) == Decimal('1.10')
        assert _points(wrong.id) == Decimal('0')

    def test_correct_winner_wrong_sets(self, user, pick, match_at):
        prediction = pick(user, 1, 1, winner='team1', sets=3)
        services.on_match_completed(match_at(1, 1).id, 'team1', 3, 1)
        assert _points(prediction.id) == Decimal('1.00')

    def test_stamps_policy_version(self, user, pick, match_at):
        prediction = pick(user, 1, 1)
        services.on_match_completed(match_at(1, 1).id, 'team1', 3, 0)
        assert db.session.get(Prediction, prediction.id).scoring_version == '2024.1'

    def test_redelivery_changes_nothing(self, user, pick, match_at):
        prediction = pick(user, 1, 1)
        match_id = match_at(1, 1).id
        services.on_match_completed(match_id, 'team1', 3, 0)

        again = services.on_match_completed(match_id, 'team1', 3, 0)
        assert again.predictions_checked == 1
        assert again.points_changed == 0
        assert _points(prediction.id) == Decimal('1.10')

    def test_correction_rescores(self, user, pick, match_at):
        prediction = pick(user, 1, 1, winner='team1')
        match_id = match_at(1, 1).id
        services.on_match_completed(match_id, 'team1', 3, 0)

        summary = services.on_match_completed(match_id, 'team2', 2, 3)
        assert summary.points_changed == 1
        assert _points(prediction.id) == Decimal('0')
        assert match_at(2, 1).team1 == 'Texas'

    def test_winner_advances_into_next_round(self, flask_app, match_at):
        services.on_match_completed(match_at(1, 1).id, 'team1', 3, 2)
        services.on_match_completed(match_at(1, 2).id, 'team2', 0, 3)
        second_round = match_at(2, 1)
        assert (second_round.team1, second_round.team2) == ('Nebraska', 'Stanford')

    def test_sweet_sixteen_winner_enters_mirrored_elite_eight_match(self, flask_app, match_at):
        sweet_sixteen = match_at(3, 1)
        sweet_sixteen.team1, sweet_sixteen.team2 = 'Nebraska', 'Penn State'
        db.session.commit()

        services.on_match_completed(sweet_sixteen.id, 'team2', 1, 3)
        assert match_at(4, 4).team1 == 'Penn State'
        assert match_at(4, 1).team1 == 'TBD'

    @pytest.mark.parametrize('winner, sets', [
        ('team1', (2, 3)),
        ('team1', (2, 1)),
        ('team2', (3, 3)),
        ('nobody', (3, 0)),
        ('team1', (4, 2)),
    ])
    def test_invalid_result_is_rejected(self, flask_app, match_at, winner, sets):
        match_id = match_at(1, 1).id
        with pytest.raises(ValidationError):
            services.on_match_completed(match_id, winner, *sets)
        match = db.session.get(Match, match_id)
        assert match.completed is False
        assert match.winner is None

    def test_unknown_match(self, flask_app):
        with pytest.raises(NotFoundError):
            services.on_match_completed(999, 'team1', 3, 0)

    def test_storage_failure_leaves_match_open(self, flask_app, match_at, monkeypatch):
        def broken_advance(match):
            raise OperationalError('UPDATE', {}, Exception('connection reset'))

        monkeypatch.setattr(services, 'advance_winner', broken_advance)
        match_id = match_at(1, 1).id

        with pytest.raises(StorageUnavailable) as excinfo:
            services.on_match_completed(match_id, 'team1', 3, 0)
        assert excinfo.value.status_code == 503
        assert db.session.get(Match, match_id).completed is False


class TestLaterRoundScoring:
    @pytest.fixture
    def played_second_round(self, flask_app, match_at):
        """Nebraska and Wisconsin win round 1; their round 2 match is still open"""
        services.on_match_completed(match_at(1, 1).id, 'team1', 3, 0)
        services.on_match_completed(match_at(1, 2).id, 'team1', 3, 1)
        return match_at(2, 1)

    def test_right_path_earns_round_multiplier(self, user, pick, played_second_round):
        pick(user, 1, 1, winner='team1')
        pick(user, 1, 2, winner='team1')
        prediction = pick(user, 2, 1, winner='team1', sets=4)

        services.on_match_completed(played_second_round.id, 'team1', 3, 1)
        assert _points(prediction.id) == Decimal('1.25')

    def test_wrong_path_earns_nothing(self, user, pick, played_second_round):
        pick(user, 1, 1, winner='team1')
        pick(user, 1, 2, winner='team2')
        prediction = pick(user, 2, 1, winner='team1', sets=3)

        services.on_match_completed(played_second_round.id, 'team1', 3, 0)
        assert _points(prediction.id) == Decimal('0')

    def test_winner_rule_accepts_partial_path(self, user, pick, played_second_round):
        pick(user, 1, 1, winner='team1')
        pick(user, 1, 2, winner='team2')
        prediction = pick(user, 2, 1, winner='team1', sets=3)
        loose = ScoringPolicy(version='loose', path_rule=PATH_RULE_WINNER)

        services.on_match_completed(played_second_round.id, 'team1', 3, 1, policy=loose)
        assert _points(prediction.id) == Decimal('1.00')


class TestRecalculate:
    def test_requires_completed_match(self, flask_app, match_at):
        with pytest.raises(PreconditionViolation):
            services.recalculate_match(match_at(1, 1).id)

    def test_recalculate_match(self, user, pick, match_at):
        prediction = pick(user, 1, 1)
        match_id = match_at(1, 1).id
        services.on_match_completed(match_id, 'team1', 3, 0)

        stored = db.session.get(Prediction, prediction.id)
        stored.points_earned = Decimal('9.99')
        db.session.commit()

        summary = services.recalculate_match(match_id)
        assert summary.points_changed == 1
        assert _points(prediction.id) == Decimal('1.10')

    def test_recalculate_all_with_new_policy(self, user, pick, match_at):
        first = pick(user, 1, 1)
        second = pick(user, 1, 2, winner='team2', sets=4)
        services.on_match_completed(match_at(1, 1).id, 'team1', 3, 0)
        services.on_match_completed(match_at(1, 2).id, 'team2', 1, 3)

        policy = ScoringPolicy(version='2025.1', round_multipliers={1: 2})
        summaries = services.recalculate_all(policy)
        assert [summary.match_id for summary in summaries] == [match_at(1, 1).id, match_at(1, 2).id]
        assert sum(summary.points_changed for summary in summaries) == 2
        assert _points(first.id) == Decimal('2.00')
        assert _points(second.id) == Decimal('2.00')
        assert db.session.get(Prediction, first.id).scoring_version == '2025.1'

    def test_recalculate_all_with_nothing_played(self, flask_app):
        assert services.recalculate_all() == []


class TestMatchTeamsUpdated:
    def test_sets_teams(self, flask_app, match_at):
        match = services.on_match_teams_updated(match_at(2, 1).id, ' Nebraska ', 'Wisconsin')
        assert (match.team1, match.team2) == ('Nebraska', 'Wisconsin')

    def test_played_match_is_rescored(self, user, pick, match_at):
        pick(user, 1, 1, winner='team1')
        pick(user, 1, 2, winner='team2')
        prediction = pick(user, 2, 1, winner='team1', sets=3)
        second_round = match_at(2, 1)
        second_round.team1, second_round.team2 = 'Nebraska', 'Wisconsin'
        second_round.record_result('team1', 3, 0)
        db.session.commit()
        services.recalculate_match(second_round.id)
        assert _points(prediction.id) == Decimal('0')

        services.on_match_teams_updated(second_round.id, None, 'Stanford')
        assert _points(prediction.id) == Decimal('1.25')

    def test_renamed_team_still_scores_later_rounds(self, user, match_at):
        for round_number, match_number in [(1, 1), (1, 2), (2, 1)]:
            services.create_prediction(user.id, match_at(round_number, match_number).id, 'team1', 3)

        services.on_match_teams_updated(match_at(1, 1).id, 'Nebraska Huskers', None)
        services.on_match_completed(match_at(1, 1).id, 'team1', 3, 0)
        services.on_match_completed(match_at(1, 2).id, 'team1', 3, 0)
        services.on_match_completed(match_at(2, 1).id, 'team1', 3, 0)

        later = Prediction.query.filter_by(user_id=user.id, match_id=match_at(2, 1).id).one()
        assert later.predicted_team_name == 'Nebraska Huskers'
        assert later.points_earned == Decimal('1.25')

    def test_rename_after_result_reaches_next_round(self, flask_app, match_at):
        services.on_match_completed(match_at(1, 1).id, 'team1', 3, 0)
        services.on_match_teams_updated(match_at(1, 1).id, 'Nebraska Huskers', None)
        assert match_at(2, 1).team1 == 'Nebraska Huskers'

    def test_unresolvable_cached_names(self, user, other_user, pick, match_at):
        kept = pick(user, 2, 1, winner='team2', team_name='Stanford')
        stale = pick(other_user, 2, 1, winner='team1', team_name='Nebraska')

        services.on_match_teams_updated(match_at(1, 1).id, 'Nebraska Huskers', None)
        assert db.session.get(Prediction, kept.id).predicted_team_name == 'Stanford'
        assert db.session.get(Prediction, stale.id).predicted_team_name is None


class TestLeaderboard:
    def test_ranked_by_points(self, user, other_user, admin_user, pick, match_at):
        pick(user, 1, 1, winner='team1', sets=3)
        pick(user, 1, 2, winner='team1', sets=3)
        pick(other_user, 1, 1, winner='team1', sets=4)
        services.on_match_completed(match_at(1, 1).id, 'team1', 3, 0)
        services.on_match_completed(match_at(1, 2).id, 'team2', 0, 3)

        board = services.leaderboard()
        assert [entry.display_name for entry in board] == ['Alice', 'Bob', 'Referee']
        assert [entry.rank for entry in board] == [1, 2, 3]
        assert board[0].total_points == Decimal('1.10')
        assert board[0].correct_predictions == 1
        assert board[0].total_predictions == 2
        assert board[1].total_points == Decimal('1.00')
        assert board[2].to_dict()['totalPoints'] == 0.0


class TestBackfill:
    def test_fills_resolvable_names(self, user, pick):
        first = pick(user, 1, 1, winner='team2')
        second = pick(user, 2, 1, winner='team1')
        orphan = pick(user, 2, 2, winner='team1')

        result = services.backfill_predicted_team_names()
        assert result.updated == 2
        assert result.skipped == [orphan.id]
        assert db.session.get(Prediction, first.id).predicted_team_name == 'Texas'
        assert db.session.get(Prediction, second.id).predicted_team_name == 'Texas'

    def test_existing_names_are_left_alone(self, user, pick):
        pick(user, 1, 1, team_name='Nebraska')
        result = services.backfill_predicted_team_names()
        assert result.updated == 0
        assert result.skipped == []
