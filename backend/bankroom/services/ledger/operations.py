"""Ledger operations: the only code that mutates rooms, members and the log.

Each public function is a single database transaction. It either commits
completely or rolls back and raises a LedgerError, so readers never see a
partial result. Every operation starts by bumping ``room.version`` with one
UPDATE: that takes the room row's write lock until commit, which makes all
mutations of one room linearizable. Debits are conditional UPDATEs, so the
affordability check and the write are one statement.
"""

import functools
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bankroom import db
from bankroom.models import (
    BANK,
    MAX_AMOUNT,
    ROOM_IN_GAME,
    ROOM_LOBBY,
    TX_P2P,
    TX_PAY_BANK,
    TX_RECEIVE_BANK,
    TX_UNDO,
    Counterparty,
    Profile,
    Room,
    RoomMember,
    Transaction,
    utcnow,
)
from . import fanout, store
from .codes import ROOM_CODE_LENGTH, generate_unique_room_code, normalize_room_code
from .errors import (
    AlreadyStarted,
    Conflict,
    Forbidden,
    InsufficientFunds,
    InvalidState,
    NothingToUndo,
    NotFound,
    NotInRoom,
    RoomFull,
    ValidationError,
)

MAX_ROOM_NAME_LENGTH = 64
MAX_NOTE_LENGTH = 140


def atomic(fn):
    """Run fn in one transaction: commit and emit queued signals, or roll back."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            result = fn(*args, **kwargs)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            fanout.discard_pending()
            current_app.logger.warning(f"[ledger-conflict] {fn.__name__}: {exc.orig}")
            raise Conflict() from exc
        except Exception:
            db.session.rollback()
            fanout.discard_pending()
            raise
        fanout.flush_pending()
        return result

    return wrapper


# ---- validation helpers ----

def _require_int(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{label} inválido')
    return value


def validate_amount(amount) -> int:
    """A positive int no larger than the configured MAX_AMOUNT."""
    amount = _require_int(amount, 'Valor')
    if amount <= 0:
        raise ValidationError('O valor deve ser maior que zero')
    limit = int(current_app.config.get('MAX_AMOUNT', MAX_AMOUNT))
    if amount > limit:
        raise ValidationError(f'O valor deve ser no máximo {limit}')
    return amount


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    if not isinstance(note, str):
        raise ValidationError('Observação inválida')
    note = note.strip()
    if len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(f'A observação deve ter no máximo {MAX_NOTE_LENGTH} caracteres')
    return note or None


def _require_profile(profile_id: Optional[str]) -> Profile:
    profile = store.get_profile(profile_id) if profile_id else None
    if profile is None:
        raise NotFound('Perfil não encontrado')
    return profile


# ---- row level primitives ----

def _lock_room(room_id: str) -> Room:
    """Bump the room version (taking its row lock) and return the fresh row."""
    result = db.session.execute(
        db.update(Room)
        .where(Room.id == room_id)
        .values(version=Room.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFound('Sala não encontrada')
    return db.session.get(Room, room_id, populate_existing=True)


def _require_active_member(room_id: str, profile_id: Optional[str]) -> RoomMember:
    member = RoomMember.query.filter_by(room_id=room_id, profile_id=profile_id, is_active=True).first()
    if member is None:
        raise NotInRoom()
    return member


def _debit(room_id: str, profile_id: str, amount: int) -> None:
    result = db.session.execute(
        db.update(RoomMember)
        .where(
            RoomMember.room_id == room_id,
            RoomMember.profile_id == profile_id,
            RoomMember.is_active.is_(True),
            RoomMember.balance >= amount,
        )
        .values(balance=RoomMember.balance - amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientFunds()


def _adjust(room_id: str, profile_id: str, delta: int) -> None:
    """Unconditional balance change; used for credits and undo legs."""
    result = db.session.execute(
        db.update(RoomMember)
        .where(RoomMember.room_id == room_id, RoomMember.profile_id == profile_id)
        .values(balance=RoomMember.balance + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotInRoom()


def _append(room: Room, tx_type: str, source: Counterparty, destination: Counterparty,
            amount: int, note: Optional[str], original_id: Optional[str] = None) -> Transaction:
    tx = Transaction(
        room_id=room.id,
        seq=room.version,
        created_at=utcnow(),
        type=tx_type,
        from_profile_id=source.column_value,
        to_profile_id=destination.column_value,
        amount=amount,
        note=note,
        original_transaction_id=original_id,
    )
    db.session.add(tx)
    db.session.flush()
    # Single level undo: only the newest non-undo entry is undoable
    room.undoable_transaction_id = None if tx_type == TX_UNDO else tx.id
    db.session.add(room)
    fanout.queue_signals(room.id, fanout.SIGNALS)
    return tx


# ---- operations ----

@atomic
def create_room(name, initial_balance, max_players, caller_profile_id: str) -> Room:
    cfg = current_app.config
    if not isinstance(name, str) or not name.strip():
        raise ValidationError('Informe o nome da sala')
    name = name.strip()
    if len(name) > MAX_ROOM_NAME_LENGTH:
        raise ValidationError(f'O nome da sala deve ter no máximo {MAX_ROOM_NAME_LENGTH} caracteres')
    initial_balance = _require_int(initial_balance, 'Dinheiro inicial')
    min_balance = int(cfg.get('MIN_INITIAL_BALANCE', 1000))
    max_balance = int(cfg.get('MAX_INITIAL_BALANCE', 1000000000))
    if not min_balance <= initial_balance <= max_balance:
        raise ValidationError(f'Dinheiro inicial deve estar entre {min_balance} e {max_balance}')
    max_players = _require_int(max_players, 'Máximo de jogadores')
    min_players = int(cfg.get('MIN_PLAYERS', 2))
    max_allowed = int(cfg.get('MAX_PLAYERS', 8))
    if not min_players <= max_players <= max_allowed:
        raise ValidationError(f'Máximo de jogadores deve estar entre {min_players} e {max_allowed}')
    _require_profile(caller_profile_id)

    code = generate_unique_room_code(
        lambda c: Room.query.filter_by(code=c).first() is not None,
        max_attempts=int(cfg.get('ROOM_CODE_MAX_ATTEMPTS', 20)),
    )
    if code is None:
        raise Conflict('Não foi possível gerar um código de sala. Tente novamente.')

    room = Room(
        code=code,
        name=name,
        initial_balance=initial_balance,
        max_players=max_players,
        host_profile_id=caller_profile_id,
        status=ROOM_LOBBY,
        version=0,
    )
    db.session.add(room)
    db.session.flush()
    db.session.add(RoomMember(room_id=room.id, profile_id=caller_profile_id, balance=initial_balance, is_active=True))
    fanout.queue_signals(room.id, (fanout.ROOM_CHANGED, fanout.MEMBERS_CHANGED))
    current_app.logger.info(f"[room-create] room={room.id} code={code} host={caller_profile_id}")
    return room


@atomic
def join_room_by_code(code, caller_profile_id: str) -> Room:
    code = normalize_room_code(code if isinstance(code, str) else None)
    if len(code) != ROOM_CODE_LENGTH:
        raise ValidationError('Código da sala inválido')
    _require_profile(caller_profile_id)
    found = store.get_room_by_code(code)
    if found is None:
        raise NotFound('Sala não encontrada')
    room = _lock_room(found.id)

    member = RoomMember.query.filter_by(room_id=room.id, profile_id=caller_profile_id).first()
    if member is None:
        # Newcomers only while in the lobby and while there is a free seat
        if room.status != ROOM_LOBBY:
            raise AlreadyStarted('Sala não está no lobby: partida já iniciada')
        active = RoomMember.query.filter_by(room_id=room.id, is_active=True).count()
        if active >= room.max_players:
            raise RoomFull()
        db.session.add(RoomMember(room_id=room.id, profile_id=caller_profile_id,
                                  balance=room.initial_balance, is_active=True))
        current_app.logger.info(f"[room-join] room={room.id} profile={caller_profile_id}")
    elif not member.is_active:
        member.is_active = True
        db.session.add(member)
        current_app.logger.info(f"[room-rejoin] room={room.id} profile={caller_profile_id} balance={member.balance}")
    fanout.queue_signals(room.id, (fanout.MEMBERS_CHANGED,))
    return room


@atomic
def start_game(room_id: str, caller_profile_id: str) -> Room:
    room = _lock_room(room_id)
    if room.host_profile_id != caller_profile_id:
        raise Forbidden('Apenas o anfitrião pode iniciar a partida')
    if room.status == ROOM_IN_GAME:
        raise InvalidState('A partida já foi iniciada')
    room.status = ROOM_IN_GAME
    db.session.add(room)
    fanout.queue_signals(room.id, (fanout.ROOM_CHANGED,))
    current_app.logger.info(f"[room-start] room={room.id}")
    return room


@atomic
def transfer_p2p(room_id: str, from_profile_id: str, to_profile_id: str, amount, note=None) -> Transaction:
    amount = validate_amount(amount)
    if from_profile_id == to_profile_id:
        raise ValidationError('Não é possível transferir para si mesmo')
    note = _clean_note(note)
    room = _lock_room(room_id)
    _require_active_member(room.id, from_profile_id)
    _require_active_member(room.id, to_profile_id)
    _debit(room.id, from_profile_id, amount)
    _adjust(room.id, to_profile_id, amount)
    tx = _append(room, TX_P2P, Counterparty.player(from_profile_id), Counterparty.player(to_profile_id), amount, note)
    current_app.logger.info(f"[transfer] room={room.id} from={from_profile_id} to={to_profile_id} amount={amount}")
    return tx


@atomic
def pay_to_bank(room_id: str, from_profile_id: str, amount, note=None) -> Transaction:
    amount = validate_amount(amount)
    note = _clean_note(note)
    room = _lock_room(room_id)
    _require_active_member(room.id, from_profile_id)
    _debit(room.id, from_profile_id, amount)
    tx = _append(room, TX_PAY_BANK, Counterparty.player(from_profile_id), BANK, amount, note)
    current_app.logger.info(f"[pay-bank] room={room.id} from={from_profile_id} amount={amount}")
    return tx


@atomic
def receive_from_bank(room_id: str, to_profile_id: str, amount, note=None) -> Transaction:
    amount = validate_amount(amount)
    note = _clean_note(note)
    room = _lock_room(room_id)
    _require_active_member(room.id, to_profile_id)
    _adjust(room.id, to_profile_id, amount)
    tx = _append(room, TX_RECEIVE_BANK, BANK, Counterparty.player(to_profile_id), amount, note)
    current_app.logger.info(f"[receive-bank] room={room.id} to={to_profile_id} amount={amount}")
    return tx


@atomic
def undo_last_transaction(room_id: str, caller_profile_id: str,
                          expected_transaction_id: Optional[str] = None) -> Transaction:
    """Reverse the newest transaction of the room.

    When the caller passes the id it believes is the head of the log and a
    newer transaction got in first, fail with Conflict instead of undoing
    something the caller never saw.
    """
    room = _lock_room(room_id)
    if room.host_profile_id != caller_profile_id:
        raise Forbidden('Apenas o anfitrião pode desfazer transações')
    target_id = room.undoable_transaction_id
    if target_id is None:
        raise NothingToUndo()
    if expected_transaction_id is not None and expected_transaction_id != target_id:
        raise Conflict('A última transação mudou. Atualize e tente novamente.')
    original = db.session.get(Transaction, target_id)
    if original is None or original.room_id != room.id:
        raise Conflict()

    source, destination = original.source, original.destination
    if not source.is_bank:
        _adjust(room.id, source.profile_id, original.amount)
    if not destination.is_bank:
        _adjust(room.id, destination.profile_id, -original.amount)
    tx = _append(room, TX_UNDO, destination, source, int(original.amount),
                 (f'Desfeito: {original.note}' if original.note else 'Desfeito')[:MAX_NOTE_LENGTH], original_id=original.id)
    current_app.logger.info(f"[undo] room={room.id} original={original.id} type={original.type} amount={original.amount}")
    return tx


@atomic
def leave_room(room_id: str, caller_profile_id: str) -> None:
    room = _lock_room(room_id)
    member = _require_active_member(room.id, caller_profile_id)
    member.is_active = False
    db.session.add(member)
    fanout.queue_signals(room.id, (fanout.MEMBERS_CHANGED,))
    current_app.logger.info(f"[room-leave] room={room.id} profile={caller_profile_id} balance={member.balance}")
