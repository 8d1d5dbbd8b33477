"""Routes for a user's own predictions."""

from flask import Blueprint, g, jsonify, request

from bracket_engine.errors import ValidationError
from blueprints.auth import login_required
from blueprints.utils import int_field
from models import Match, Prediction
import services

predictions_bp = Blueprint('predictions', __name__, url_prefix='/predictions')


@predictions_bp.route('', methods=['GET'])
@login_required
def list_predictions():
    predictions = (
        Prediction.query.join(Match)
        .filter(Prediction.user_id == g.current_user.id)
        .order_by(Match.round.asc(), Match.match_number.asc())
        .all()
    )
    return jsonify([prediction.to_dict() for prediction in predictions])


@predictions_bp.route('', methods=['POST'])
@login_required
def create_prediction():
    payload = request.get_json(silent=True) or {}
    if not payload.get('predictedWinner'):
        raise ValidationError('Missing required fields')

    prediction = services.create_prediction(
        g.current_user.id,
        int_field(payload, 'matchId'),
        payload['predictedWinner'],
        int_field(payload, 'predictedTotalSets'),
    )
    return jsonify(prediction.to_dict()), 201


@predictions_bp.route('/<int:prediction_id>', methods=['PUT'])
@login_required
def update_prediction(prediction_id: int):
    payload = request.get_json(silent=True) or {}
    prediction, removed = services.update_prediction(
        g.current_user.id,
        prediction_id,
        predicted_winner=payload.get('predictedWinner'),
        predicted_total_sets=int_field(payload, 'predictedTotalSets', required=False),
    )
    body = prediction.to_dict()
    body['removedPredictionIds'] = removed
    return jsonify(body)


@predictions_bp.route('/<int:prediction_id>', methods=['DELETE'])
@login_required
def delete_prediction(prediction_id: int):
    deleted = services.delete_prediction(g.current_user.id, prediction_id)
    return jsonify({'message': 'Prediction deleted successfully', 'deletedPredictionIds': deleted})
