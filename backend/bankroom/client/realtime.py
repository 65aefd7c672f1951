"""Subscribe to a room's "something changed" signals over Socket.IO."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import socketio
from socketio.exceptions import SocketIOError

from bankroom.services.ledger.fanout import MEMBERS_CHANGED, NAMESPACE, ROOM_CHANGED, TRANSACTIONS_CHANGED

logger = logging.getLogger(__name__)

Callback = Optional[Callable[[], None]]


@dataclass
class RoomHandlers:
    on_room_change: Callback = None
    on_members_change: Callback = None
    on_transactions_change: Callback = None

    @classmethod
    def all(cls, callback: Callable[[], None]) -> 'RoomHandlers':
        return cls(callback, callback, callback)


def subscribe(room_id: str, handlers: RoomHandlers, *, url: str, token: str,
              client: Optional[socketio.Client] = None) -> Callable[[], None]:
    """Start delivering signals for room_id; returns the unsubscribe function.

    Signals carry no data: handlers should re-fetch room, members and
    transactions together. After unsubscribe() returns no handler runs again
    and the connection is closed.
    """
    sio = client or socketio.Client(reconnection=True)
    active = threading.Event()
    active.set()

    def _dispatch(callback: Callback):
        def handler(data=None):
            if not active.is_set() or (data or {}).get('room_id') != room_id:
                return
            if callback is not None:
                callback()
        return handler

    def _subscribe_room():
        # Also runs after reconnects, the server forgets rooms on disconnect
        if active.is_set():
            sio.emit('subscribe_room', {'room_id': room_id, 'token': token}, namespace=NAMESPACE)

    def _on_error(data=None):
        logger.warning("Realtime subscription error for room %s: %s", room_id, data)

    sio.on('connect', _subscribe_room, namespace=NAMESPACE)
    sio.on('error', _on_error, namespace=NAMESPACE)
    sio.on(ROOM_CHANGED, _dispatch(handlers.on_room_change), namespace=NAMESPACE)
    sio.on(MEMBERS_CHANGED, _dispatch(handlers.on_members_change), namespace=NAMESPACE)
    sio.on(TRANSACTIONS_CHANGED, _dispatch(handlers.on_transactions_change), namespace=NAMESPACE)
    sio.connect(url, namespaces=[NAMESPACE])

    def unsubscribe() -> None:
        if not active.is_set():
            return
        active.clear()
        try:
            sio.emit('unsubscribe_room', {'room_id': room_id}, namespace=NAMESPACE)
        except SocketIOError as e:
            logger.debug("Unsubscribe for room %s not delivered: %s", room_id, e)
        sio.disconnect()

    return unsubscribe
