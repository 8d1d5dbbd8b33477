"""Storage-bound bracket operations.

Every public function here is one unit of work: it either commits all of its
writes or rolls the session back.  Mutations of a user's bracket take a row
lock on the user first so two requests for the same user are applied one
after the other; different users never wait on each other.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy.exc import DBAPIError, IntegrityError

from bracket_engine import topology
from bracket_engine.cascade import cascade_chain, dependent_picks, downstream_positions
from bracket_engine.errors import (
    BracketError,
    DuplicateResourceError,
    NotFoundError,
    PermissionDenied,
    PreconditionViolation,
    StorageUnavailable,
    ValidationError,
)
from bracket_engine.resolution import TeamResolver, is_known_team
from bracket_engine.scoring import DEFAULT_POLICY, VALID_TOTAL_SETS, ScoringPolicy
from bracket_engine.validator import normalize_team_name, points_for
from models import db, User, Match, Prediction, advance_winner, current_time


@dataclass
class RecomputeSummary:
    match_id: int
    predictions_checked: int = 0
    points_changed: int = 0

    def to_dict(self) -> dict:
        return {
            'matchId': self.match_id,
            'predictionsUpdated': self.predictions_checked,
            'pointsChanged': self.points_changed,
        }


@dataclass
class LeaderboardEntry:
    user_id: int
    display_name: str
    total_points: Decimal
    correct_predictions: int
    total_predictions: int
    rank: int = 0

    def to_dict(self) -> dict:
        return {
            'userId': self.user_id,
            'displayName': self.display_name,
            'totalPoints': float(self.total_points),
            'correctPredictions': self.correct_predictions,
            'totalPredictions': self.total_predictions,
            'rank': self.rank,
        }


@dataclass
class BackfillResult:
    updated: int = 0
    skipped: list[int] = field(default_factory=list)


@contextmanager
def unit_of_work(action: str):
    try:
        yield db.session
        db.session.commit()
    except BracketError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning(f"Conflict during {action}: {exc.orig}")
        raise DuplicateResourceError() from exc
    except DBAPIError as exc:
        db.session.rollback()
        current_app.logger.error(f"Storage error during {action}: {exc}")
        raise StorageUnavailable() from exc
    except Exception:
        db.session.rollback()
        raise


def _active_policy(policy: Optional[ScoringPolicy]) -> ScoringPolicy:
    if policy is not None:
        return policy
    return current_app.extensions.get('scoring_policy', DEFAULT_POLICY)


def _lock_user(user_id: int) -> User:
    user = User.query.filter_by(id=user_id).with_for_update().first()
    if not user:
        raise NotFoundError('User not found')
    return user


def _get_match(match_id: int, lock: bool = False) -> Match:
    query = Match.query.filter_by(id=match_id)
    if lock:
        query = query.with_for_update()
    match = query.first()
    if not match:
        raise NotFoundError('Match not found')
    return match


def _owned_prediction(user_id: int, prediction_id: int) -> Prediction:
    prediction = db.session.get(Prediction, prediction_id)
    if not prediction:
        raise NotFoundError('Prediction not found')
    if prediction.user_id != user_id:
        raise PermissionDenied()
    return prediction


def _ensure_mutable(user: User, match: Match, verb: str) -> None:
    if user.bracket_submitted:
        current_app.logger.warning(f"User {user.id} tried to {verb} a prediction after submitting")
        raise PreconditionViolation(f'Cannot {verb} predictions after bracket is submitted')
    if match.completed:
        current_app.logger.warning(f"User {user.id} tried to {verb} a prediction on completed match {match.id}")
        raise PreconditionViolation(f'Cannot {verb} prediction for completed match')


def _validate_pick(predicted_winner, predicted_total_sets) -> None:
    if predicted_winner not in topology.SLOTS:
        raise ValidationError('Invalid winner selection')
    if predicted_total_sets not in VALID_TOTAL_SETS:
        raise ValidationError('Invalid total sets')


def resolver_for(user_id: int) -> TeamResolver:
    """Snapshot of the whole bracket plus one user's predictions."""
    return TeamResolver(Match.query.all(), Prediction.query.filter_by(user_id=user_id).all())


def _resolvers_for(user_ids: Iterable[int]) -> dict[int, TeamResolver]:
    user_ids = set(user_ids)
    if not user_ids:
        return {}
    matches = Match.query.all()
    by_user: dict[int, list[Prediction]] = {user_id: [] for user_id in user_ids}
    for prediction in Prediction.query.filter(Prediction.user_id.in_(user_ids)).all():
        by_user[prediction.user_id].append(prediction)
    return {user_id: TeamResolver(matches, predictions) for user_id, predictions in by_user.items()}


def resolve_predicted_team(user_id: int, match: Match, slot: str) -> Optional[str]:
    return resolver_for(user_id).resolve(match, slot)


# ----------------------------------------------------------------------
# Prediction CRUD
# ----------------------------------------------------------------------
def create_prediction(user_id: int, match_id: int, predicted_winner: str, predicted_total_sets: int) -> Prediction:
    _validate_pick(predicted_winner, predicted_total_sets)

    with unit_of_work('create prediction'):
        user = _lock_user(user_id)
        match = _get_match(match_id)
        _ensure_mutable(user, match, 'make')

        if Prediction.query.filter_by(user_id=user.id, match_id=match.id).first():
            raise DuplicateResourceError('You have already predicted this match')

        prediction = Prediction(
            user_id=user.id,
            match_id=match.id,
            predicted_winner=predicted_winner,
            predicted_total_sets=predicted_total_sets,
        )
        db.session.add(prediction)
        db.session.flush()
        prediction.predicted_team_name = resolver_for(user.id).resolve(match, predicted_winner)

    current_app.logger.info(f"User {user_id} predicted {predicted_winner} in match {match_id}")
    return prediction


def update_prediction(
    user_id: int,
    prediction_id: int,
    predicted_winner: Optional[str] = None,
    predicted_total_sets: Optional[int] = None,
) -> tuple[Prediction, list[int]]:
    """Edit a pick; changing the winner drops the later picks built on it."""
    removed: list[int] = []

    with unit_of_work('update prediction'):
        user = _lock_user(user_id)
        prediction = _owned_prediction(user_id, prediction_id)
        match = prediction.match
        _ensure_mutable(user, match, 'update')

        new_winner = predicted_winner if predicted_winner is not None else prediction.predicted_winner
        new_sets = predicted_total_sets if predicted_total_sets is not None else prediction.predicted_total_sets
        _validate_pick(new_winner, new_sets)

        winner_changed = new_winner != prediction.predicted_winner
        if winner_changed:
            for dependent in dependent_picks(resolver_for(user_id), match):
                removed.append(dependent.id)
                db.session.delete(dependent)

        prediction.predicted_winner = new_winner
        prediction.predicted_total_sets = new_sets

        if winner_changed:
            # The cached name belongs to the old pick and must not short-circuit resolution.
            prediction.predicted_team_name = None
            db.session.flush()
            prediction.predicted_team_name = resolver_for(user_id).resolve(match, new_winner)

    if removed:
        current_app.logger.info(
            f"Prediction {prediction_id} changed winner; removed dependent predictions {removed}"
        )
    return prediction, removed


def _cascade_delete(user_id: int, match: Match) -> list[int]:
    deleted: list[int] = []
    for prediction in cascade_chain(resolver_for(user_id), match):
        deleted.append(prediction.id)
        db.session.delete(prediction)
    return deleted


def delete_with_cascade(user_id: int, match_id: int) -> list[int]:
    """Delete the user's pick on a match and every later pick stacked on it."""
    with unit_of_work('cascade delete'):
        _lock_user(user_id)
        match = _get_match(match_id)
        deleted = _cascade_delete(user_id, match)

    if deleted:
        current_app.logger.info(f"Cascade from match {match_id} removed predictions {deleted} for user {user_id}")
    return deleted


def delete_prediction(user_id: int, prediction_id: int) -> list[int]:
    with unit_of_work('delete prediction'):
        user = _lock_user(user_id)
        prediction = _owned_prediction(user_id, prediction_id)
        match = prediction.match
        _ensure_mutable(user, match, 'delete')
        deleted = _cascade_delete(user_id, match)

    current_app.logger.info(f"User {user_id} deleted predictions {deleted}")
    return deleted


def submit_bracket(user_id: int) -> User:
    with unit_of_work('submit bracket'):
        user = _lock_user(user_id)
        if user.bracket_submitted:
            raise PreconditionViolation('Bracket already submitted')
        user.bracket_submitted = True
        user.bracket_submitted_at = current_time()

    current_app.logger.info(f"User {user_id} submitted their bracket")
    return user


# ----------------------------------------------------------------------
# Results and scoring
# ----------------------------------------------------------------------
def _score_match(match: Match, policy: ScoringPolicy) -> RecomputeSummary:
    summary = RecomputeSummary(match_id=match.id)
    predictions = Prediction.query.filter_by(match_id=match.id).all()
    resolvers = _resolvers_for(p.user_id for p in predictions)

    for prediction in predictions:
        points = points_for(prediction, match, resolvers[prediction.user_id], policy)
        summary.predictions_checked += 1

        current = prediction.points_earned
        if current is None or Decimal(current) != points or prediction.scoring_version != policy.version:
            summary.points_changed += 1
        prediction.points_earned = points
        prediction.scoring_version = policy.version

    return summary


def on_match_completed(
    match_id: int,
    winning_slot: str,
    team1_sets: int,
    team2_sets: int,
    policy: Optional[ScoringPolicy] = None,
) -> RecomputeSummary:
    """Record a result from the feed and score every prediction on the match.

    Safe to deliver more than once: scores are recomputed from stored state.
    A different result for a completed match is treated as a correction.
    """
    policy = _active_policy(policy)

    with unit_of_work('record result'):
        match = _get_match(match_id, lock=True)
        if match.completed:
            same = (match.winner, match.team1_sets, match.team2_sets) == (winning_slot, team1_sets, team2_sets)
            if same:
                current_app.logger.info(f"Result for match {match_id} re-delivered; recomputing")
            else:
                current_app.logger.warning(f"Correcting result of match {match_id}")

        match.record_result(winning_slot, team1_sets, team2_sets)
        advance_winner(match)
        summary = _score_match(match, policy)

    current_app.logger.info(
        f"Match {match_id} scored: {summary.predictions_checked} predictions, "
        f"{summary.points_changed} changed (policy {policy.version})"
    )
    return summary


def recalculate_match(match_id: int, policy: Optional[ScoringPolicy] = None) -> RecomputeSummary:
    policy = _active_policy(policy)

    with unit_of_work('recalculate match'):
        match = _get_match(match_id, lock=True)
        if not match.completed or not match.winner:
            raise PreconditionViolation('Match must be completed first')
        summary = _score_match(match, policy)

    current_app.logger.info(f"Recalculated match {match_id}: {summary.points_changed} changed")
    return summary


def recalculate_all(policy: Optional[ScoringPolicy] = None) -> list[RecomputeSummary]:
    policy = _active_policy(policy)

    with unit_of_work('recalculate all'):
        completed = (
            Match.query.filter_by(completed=True)
            .order_by(Match.round.asc(), Match.match_number.asc())
            .all()
        )
        summaries = [_score_match(match, policy) for match in completed]

    changed = sum(s.points_changed for s in summaries)
    current_app.logger.info(f"Recalculated {len(summaries)} completed matches; {changed} predictions changed")
    return summaries


def _refresh_cached_names(match: Match, renamed: set[str]) -> list[Match]:
    """Re-resolve cached team names on ``match`` and every match it feeds.

    A cached name that can no longer be resolved is kept unless it is one of
    the ``renamed`` (normalised) team names.  Returns the affected matches in
    round order.
    """
    affected = [match]
    for round_number, match_index in downstream_positions(match.round, match.index):
        later = Match.query.filter_by(round=round_number, match_number=match_index + 1).first()
        if later is not None:
            affected.append(later)

    predictions = Prediction.query.filter(Prediction.match_id.in_([m.id for m in affected])).all()
    previous = {p.id: p.predicted_team_name for p in predictions}
    for prediction in predictions:
        prediction.predicted_team_name = None
    db.session.flush()

    resolvers = _resolvers_for(p.user_id for p in predictions)
    round_of = {m.id: m.round for m in affected}
    for prediction in sorted(predictions, key=lambda p: round_of[p.match_id]):
        team = resolvers[prediction.user_id].resolve(prediction.match, prediction.predicted_winner)
        if team is None and normalize_team_name(previous[prediction.id]) not in renamed:
            team = previous[prediction.id]
        prediction.predicted_team_name = team
    return affected


def on_match_teams_updated(match_id: int, team1: Optional[str], team2: Optional[str]) -> Match:
    """Set the real teams of a match.

    Cached team names on this match and the matches it feeds are refreshed,
    and any of those that have been played are rescored.
    """
    with unit_of_work('update match teams'):
        match = _get_match(match_id, lock=True)
        renamed: set[str] = set()
        for slot, name in zip(topology.SLOTS, (team1, team2)):
            if not name:
                continue
            old, new = match.team_in(slot), name.strip()
            if old != new and is_known_team(old):
                renamed.add(normalize_team_name(old))
            setattr(match, slot, new)

        if match.completed:
            advance_winner(match)

        policy = _active_policy(None)
        for affected in _refresh_cached_names(match, renamed):
            if affected.completed:
                _score_match(affected, policy)

    if renamed:
        current_app.logger.info(f"Match {match_id} teams renamed from {sorted(renamed)}; cached names refreshed")
    return match


# ----------------------------------------------------------------------
# Reporting and maintenance
# ----------------------------------------------------------------------
def leaderboard() -> list[LeaderboardEntry]:
    entries: list[LeaderboardEntry] = []
    for user in User.query.order_by(User.id.asc()).all():
        earned = [Decimal(p.points_earned) for p in user.predictions if p.points_earned is not None]
        entries.append(
            LeaderboardEntry(
                user_id=user.id,
                display_name=user.public_name,
                total_points=sum(earned, Decimal('0')),
                correct_predictions=len([points for points in earned if points > 0]),
                total_predictions=len(user.predictions),
            )
        )

    entries.sort(key=lambda entry: (entry.total_points, entry.correct_predictions), reverse=True)
    for position, entry in enumerate(entries, start=1):
        entry.rank = position
    return entries


def backfill_predicted_team_names() -> BackfillResult:
    """Fill in ``predicted_team_name`` for picks that only recorded a slot."""
    result = BackfillResult()

    with unit_of_work('backfill team names'):
        pending = (
            Prediction.query.join(Match)
            .filter(Prediction.predicted_team_name.is_(None))
            .order_by(Match.round.asc(), Match.match_number.asc(), Prediction.created_at.asc())
            .all()
        )
        resolvers = _resolvers_for(p.user_id for p in pending)

        for prediction in pending:
            team = resolvers[prediction.user_id].resolve(prediction.match, prediction.predicted_winner)
            if is_known_team(team):
                prediction.predicted_team_name = team
                result.updated += 1
            else:
                result.skipped.append(prediction.id)

    current_app.logger.info(f"Backfilled {result.updated} team names; skipped {len(result.skipped)}")
    return result
