from flask import Blueprint, jsonify, request, current_app
from carguessr import get_engine
from carguessr.errors import GameError, InvalidInput
from carguessr.services.game.sessions import generate_session_id
from carguessr.socketio_events import notify_challenge_update, notify_leaderboard_update

api = Blueprint('api', __name__)


@api.errorhandler(GameError)
def handle_game_error(exc):
    current_app.logger.info(f"[api-error] path={request.path} code={exc.code} message={exc.message}")
    return jsonify(exc.to_dict()), exc.http_status


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput('Invalid request format')
    return data


@api.route('/')
def index():
    return jsonify({'message': 'Welcome to the CarGuessr game server!'})


@api.route('/sessions', methods=['POST'])
def start_session():
    data = request.get_json(silent=True) or {}
    session = get_engine().start_session(
        data.get('gameMode') or 'zero',
        data.get('difficulty') or 'hard',
        session_id=data.get('sessionId'),
    )
    return jsonify(session), 201


@api.route('/sessions/<string:session_id>', methods=['GET'])
def get_session(session_id):
    return jsonify(get_engine().get_session(session_id))


@api.route('/listing', methods=['GET'])
def next_listing():
    session_id = request.headers.get('X-Session-ID') or generate_session_id()
    listing = get_engine().get_next_listing(
        session_id,
        difficulty=request.args.get('difficulty'),
        mode=request.args.get('mode'),
    )
    return jsonify(listing)


@api.route('/sessions/<string:session_id>/guess', methods=['POST'])
def submit_guess(session_id):
    data = _json_body()
    outcome = get_engine().submit_guess(session_id, data.get('listingId'), data.get('guessedPrice'))
    if outcome.is_complete and outcome.challenge_code:
        notify_challenge_update(outcome.challenge_code)
    return jsonify(outcome.to_dict())


@api.route('/sessions/<string:session_id>/finish', methods=['POST'])
def finish_session(session_id):
    return jsonify(get_engine().finish_session(session_id))


@api.route('/leaderboard', methods=['GET'])
def leaderboard():
    limit = request.args.get('limit')
    if limit is not None:
        try:
            limit = int(limit)
        except ValueError:
            raise InvalidInput("Limit must be a positive whole number")
    entries = get_engine().query_leaderboard(
        request.args.get('mode'),
        request.args.get('difficulty') or None,
        limit,
    )
    return jsonify(entries)


@api.route('/leaderboard/submit', methods=['POST'])
def submit_score():
    data = _json_body()
    entry, rank = get_engine().submit_leaderboard_entry(
        data.get('name'),
        data.get('score'),
        data.get('gameMode'),
        data.get('difficulty') or 'hard',
        session_id=data.get('sessionId'),
    )
    notify_leaderboard_update(entry['gameMode'], entry['difficulty'], entry, rank)
    return jsonify({'message': 'Score submitted successfully!', 'position': rank, 'entry': entry})


@api.route('/leaderboard/status', methods=['GET'])
def leaderboard_status():
    return jsonify(get_engine().leaderboard_status())


@api.route('/challenges', methods=['POST'])
def create_challenge():
    data = _json_body()
    created = get_engine().create_friend_challenge(
        data.get('title'),
        data.get('difficulty') or 'easy',
        data.get('name'),
        max_participants=data.get('maxParticipants'),
    )
    return jsonify(created), 201


@api.route('/challenges/<string:code>', methods=['GET'])
def get_challenge(code):
    return jsonify(get_engine().get_friend_challenge(code))


@api.route('/challenges/<string:code>/join', methods=['POST'])
def join_challenge(code):
    data = _json_body()
    joined = get_engine().join_friend_challenge(code, data.get('name'))
    notify_challenge_update(joined['challengeCode'])
    return jsonify(joined), 201


@api.route('/challenges/<string:code>/leaderboard', methods=['GET'])
def challenge_leaderboard(code):
    return jsonify(get_engine().challenge_standings(code))
