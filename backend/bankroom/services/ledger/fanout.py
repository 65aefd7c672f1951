"""Realtime fan-out of "something changed" signals for a room.

Signals carry only the room id. Subscribers react by re-fetching the room,
its members and its transactions; nothing in a signal is authoritative.
Operations queue signals on the database session and they are emitted only
once the surrounding transaction has committed.
"""

from typing import Iterable

from bankroom import db, socketio

NAMESPACE = '/ws'

ROOM_CHANGED = 'room_changed'
MEMBERS_CHANGED = 'members_changed'
TRANSACTIONS_CHANGED = 'transactions_changed'
SIGNALS = (ROOM_CHANGED, MEMBERS_CHANGED, TRANSACTIONS_CHANGED)

_PENDING_KEY = 'bankroom.pending_signals'


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


def queue_signals(room_id: str, signals: Iterable[str]) -> None:
    pending = db.session.info.setdefault(_PENDING_KEY, [])
    for signal in signals:
        if (room_id, signal) not in pending:
            pending.append((room_id, signal))


def discard_pending() -> None:
    db.session.info.pop(_PENDING_KEY, None)


def flush_pending() -> None:
    for room_id, signal in db.session.info.pop(_PENDING_KEY, []):
        notify_room(room_id, signal)


def notify_room(room_id: str, *signals: str) -> None:
    for signal in signals or SIGNALS:
        socketio.emit(signal, {'room_id': room_id}, to=room_channel(room_id), namespace=NAMESPACE)
