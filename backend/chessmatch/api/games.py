from flask import Blueprint, jsonify, request, current_app
from chessmatch.errors import ValidationError


games = Blueprint('games', __name__)


def _runtime():
    return current_app.extensions['chessmatch']


def _user_id(data):
    user_id = data.get('userId')
    if not user_id:
        raise ValidationError('userId is required')
    return user_id


@games.route('', methods=['GET'])
def list_open_games():
    return jsonify({'games': _runtime().lobby.open_games()})


@games.route('', methods=['POST'])
def create_game():
    data = request.get_json(silent=True) or {}
    # Goes through the lobby so lobby members hear about it like a socket create
    game = _runtime().lobby.create(_user_id(data), data.get('timeControl'))
    return jsonify({'game': game.to_dict()}), 201


@games.route('/<string:game_id>', methods=['GET'])
def get_game(game_id):
    game = _runtime().lifecycle.get(game_id)
    return jsonify({'game': game.to_dict()})


@games.route('/<string:game_id>/clock', methods=['GET'])
def get_clock(game_id):
    lifecycle = _runtime().lifecycle
    game = lifecycle.require_in_progress(game_id)
    return jsonify(lifecycle.read_clock(game).to_dict())


@games.route('/<string:game_id>', methods=['DELETE'])
def cancel_game(game_id):
    data = request.get_json(silent=True) or {}
    _runtime().lobby.cancel(game_id, _user_id(data))
    return jsonify({'message': 'Game cancelled', 'gameId': game_id})


@games.route('/user/<string:user_id>/active', methods=['GET'])
def get_active_game(user_id):
    game = _runtime().lifecycle.active_game_for(user_id)
    return jsonify({'game': game.to_dict() if game else None})
