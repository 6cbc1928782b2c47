from flask_socketio import join_room, leave_room, emit
from carguessr import socketio
from carguessr.errors import GameError
from carguessr.services.game.settings import DIFFICULTIES, GAME_MODES
from carguessr.validation import normalize_challenge_code

NAMESPACE = '/ws'


def challenge_room(code: str) -> str:
    return f"challenge:{code}"


def leaderboard_room(game_mode: str, difficulty: str) -> str:
    return f"leaderboard:{game_mode}:{difficulty}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def _challenge_code(data):
    try:
        return normalize_challenge_code((data or {}).get('challenge_code'))
    except GameError as exc:
        emit('error', {'message': exc.message})
        return None


def handle_join_challenge(data):
    code = _challenge_code(data)
    if not code:
        return
    room = challenge_room(code)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_challenge(data):
    code = _challenge_code(data)
    if not code:
        return
    room = challenge_room(code)
    leave_room(room)
    emit('left', {'room': room})


def handle_join_leaderboard(data):
    game_mode = (data or {}).get('game_mode')
    difficulty = (data or {}).get('difficulty')
    if game_mode not in GAME_MODES or difficulty not in DIFFICULTIES:
        emit('error', {'message': 'game_mode and difficulty are required'})
        return
    room = leaderboard_room(game_mode, difficulty)
    join_room(room)
    emit('joined', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def notify_leaderboard_update(game_mode: str, difficulty: str, entry: dict, rank: int) -> None:
    socketio.emit('leaderboard_update', {'entry': entry, 'rank': rank},
                  to=leaderboard_room(game_mode, difficulty), namespace=NAMESPACE)


def notify_challenge_update(code: str) -> None:
    socketio.emit('challenge_update', {'challenge_code': code}, to=challenge_room(code), namespace=NAMESPACE)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_challenge', handle_join_challenge, namespace=namespace)
        socketio.on_event('leave_challenge', handle_leave_challenge, namespace=namespace)
        socketio.on_event('join_leaderboard', handle_join_leaderboard, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
