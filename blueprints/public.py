"""Public-facing routes for viewing the bracket, picks and standings."""

from flask import Blueprint, abort, jsonify, request

from models import db, Match, Prediction, User
import services

public_bp = Blueprint("public", __name__)


@public_bp.route("/matches")
def list_matches():
    query = Match.query
    round_number = request.args.get("round", type=int)
    if round_number:
        query = query.filter_by(round=round_number)
    matches = query.order_by(Match.round.asc(), Match.match_number.asc()).all()
    return jsonify([match.to_dict() for match in matches])


@public_bp.route("/matches/<int:match_id>")
def match_detail(match_id: int):
    match = db.session.get(Match, match_id)
    if not match:
        abort(404)
    return jsonify(match.to_dict())


@public_bp.route("/leaderboard")
def leaderboard():
    return jsonify([entry.to_dict() for entry in services.leaderboard()])


@public_bp.route("/users/<int:user_id>/predictions")
def user_predictions(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        abort(404)

    predictions = (
        Prediction.query.join(Match)
        .filter(Prediction.user_id == user.id)
        .order_by(Match.round.asc(), Match.match_number.asc())
        .all()
    )
    return jsonify({
        "user": {"id": user.id, "displayName": user.public_name, "bracketSubmitted": bool(user.bracket_submitted)},
        "predictions": [prediction.to_dict() for prediction in predictions],
    })
