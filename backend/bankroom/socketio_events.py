from flask_socketio import join_room, leave_room, emit
from flask import current_app
from bankroom import socketio
from bankroom.services.identity import find_profile_by_token
from bankroom.services.ledger import store
from bankroom.services.ledger.fanout import NAMESPACE, room_channel


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    current_app.logger.debug(f"[ws-disconnect] reason={reason}")


def handle_subscribe_room(data):
    room_id = (data or {}).get('room_id')
    token = (data or {}).get('token')
    if not room_id:
        emit('error', {'message': 'room_id is required', 'code': 'validation_error'})
        return
    profile = find_profile_by_token(token)
    if profile is None:
        emit('error', {'message': 'Sessão não encontrada', 'code': 'unauthorized', 'room_id': room_id})
        return
    member = store.get_member(room_id, profile.id)
    if member is None or not member.is_active:
        emit('error', {'message': 'Jogador não está na sala', 'code': 'not_in_room', 'room_id': room_id})
        return
    join_room(room_channel(room_id))
    current_app.logger.info(f"[ws-subscribe] room={room_id} profile={profile.id}")
    emit('subscribed', {'room_id': room_id})


def handle_unsubscribe_room(data):
    room_id = (data or {}).get('room_id')
    if not room_id:
        emit('error', {'message': 'room_id is required', 'code': 'validation_error'})
        return
    leave_room(room_channel(room_id))
    emit('unsubscribed', {'room_id': room_id})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('subscribe_room', handle_subscribe_room, namespace=namespace)
        socketio.on_event('unsubscribe_room', handle_unsubscribe_room, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
