from flask_socketio import join_room, leave_room, emit
from sketchrounds import socketio
from sketchrounds.services.timers.broadcast import NAMESPACE, channel_name


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_join_game(data):
    game_id = (data or {}).get('gameId')
    if not game_id:
        emit('error', {'message': 'gameId is required'})
        return
    room = channel_name(game_id)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_game(data):
    game_id = (data or {}).get('gameId')
    if not game_id:
        emit('error', {'message': 'gameId is required'})
        return
    room = channel_name(game_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('join_game', handle_join_game, namespace=NAMESPACE)
    socketio.on_event('leave_game', handle_leave_game, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)

    if testing:
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_game', handle_join_game, namespace='/')
        socketio.on_event('leave_game', handle_leave_game, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
