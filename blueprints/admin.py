"""Administrator routes: recording results and recomputing points."""

from flask import Blueprint, jsonify, request

from bracket_engine.errors import ValidationError
from blueprints.auth import require_admin
from blueprints.utils import int_field
from models import db, Match
import services

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


@admin_bp.route('/matches/completed')
@require_admin
def completed_matches():
    matches = (
        Match.query.filter_by(completed=True)
        .order_by(Match.round.asc(), Match.match_number.asc())
        .all()
    )
    return jsonify([match.to_dict() for match in matches])


@admin_bp.route('/matches/<int:match_id>/complete', methods=['POST'])
@require_admin
def complete_match(match_id: int):
    """Record a result (results feed or manual entry) and score the match."""
    payload = request.get_json(silent=True) or {}
    winner = payload.get('winner')
    if not winner or payload.get('team1Sets') is None or payload.get('team2Sets') is None:
        raise ValidationError('Winner, team1Sets, and team2Sets are required')

    summary = services.on_match_completed(
        match_id,
        winner,
        int_field(payload, 'team1Sets'),
        int_field(payload, 'team2Sets'),
    )
    match = db.session.get(Match, match_id)
    body = summary.to_dict()
    body['message'] = 'Match completed and points calculated'
    body['match'] = match.to_dict()
    return jsonify(body)


@admin_bp.route('/matches/<int:match_id>/recalculate', methods=['POST'])
@require_admin
def recalculate_match(match_id: int):
    summary = services.recalculate_match(match_id)
    body = summary.to_dict()
    body['message'] = 'Points recalculated successfully'
    return jsonify(body)


@admin_bp.route('/recalculate', methods=['POST'])
@require_admin
def recalculate_all():
    summaries = services.recalculate_all()
    return jsonify({
        'message': 'All completed matches recalculated',
        'matches': [summary.to_dict() for summary in summaries],
        'pointsChanged': sum(summary.points_changed for summary in summaries),
    })


@admin_bp.route('/matches/<int:match_id>/teams', methods=['PUT'])
@require_admin
def update_match_teams(match_id: int):
    payload = request.get_json(silent=True) or {}
    if not payload.get('team1') and not payload.get('team2'):
        raise ValidationError('Provide team1 and/or team2')
    match = services.on_match_teams_updated(match_id, payload.get('team1'), payload.get('team2'))
    return jsonify(match.to_dict())


@admin_bp.route('/backfill-team-names', methods=['POST'])
@require_admin
def backfill_team_names():
    result = services.backfill_predicted_team_names()
    return jsonify({'updated': result.updated, 'skipped': result.skipped})
