from flask_socketio import join_room, leave_room, emit
from flask_login import current_user


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_round(data):
    round_id = (data or {}).get('round_id')
    if round_id is None:
        emit('error', {'message': 'round_id is required'})
        return
    room = f"round:{round_id}"
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_round(data):
    round_id = (data or {}).get('round_id')
    if round_id is None:
        emit('error', {'message': 'round_id is required'})
        return
    room = f"round:{round_id}"
    leave_room(room)
    emit('left', {'room': room})


def handle_join_user(data=None):
    # Personal notification room; only for the logged-in user themselves
    if not current_user.is_authenticated:
        emit('error', {'message': 'Login required'})
        return
    room = f"user:{current_user.id}"
    join_room(room)
    emit('joined', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from betpool import socketio

    handlers = {
        'connect': handle_connect,
        'join_round': handle_join_round,
        'leave_round': handle_leave_round,
        'join_user': handle_join_user,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
