from bankroom import db
from flask_login import UserMixin
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
import uuid

# Wire id and label used for the bank on every client-facing payload
BANK_ID = 'BANCO'
BANK_LABEL = 'Banco'
DEFAULT_PLAYER_NAME = 'Jogador'
DEFAULT_AVATAR = '👤'

# Largest amount one transaction may move; keeps balances far inside BigInteger
MAX_AMOUNT = 1_000_000_000_000

ROOM_LOBBY = 'lobby'
ROOM_IN_GAME = 'in_game'

TX_P2P = 'p2p'
TX_PAY_BANK = 'pay_bank'
TX_RECEIVE_BANK = 'receive_bank'
TX_INITIAL = 'initial'
TX_UNDO = 'undo'

# Display category shown by clients for each stored transaction type
TX_CATEGORIES = {
    TX_P2P: 'player-to-player',
    TX_PAY_BANK: 'player-to-bank',
    TX_RECEIVE_BANK: 'bank-to-player',
    TX_INITIAL: 'bank-to-player',
    TX_UNDO: 'bank-to-player',
}


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Counterparty:
    """One leg of a money movement: a player (by profile id) or the bank.

    The bank is stored as NULL in the transaction table and never has a
    balance of its own.
    """

    kind: str
    profile_id: Optional[str] = None

    @classmethod
    def player(cls, profile_id: str) -> 'Counterparty':
        if not profile_id:
            raise ValueError('player counterparty requires a profile id')
        return cls('player', profile_id)

    @classmethod
    def from_column(cls, value: Optional[str]) -> 'Counterparty':
        return BANK if value is None else cls.player(value)

    @property
    def is_bank(self) -> bool:
        return self.kind == 'bank'

    @property
    def column_value(self) -> Optional[str]:
        return None if self.is_bank else self.profile_id

    @property
    def wire_id(self) -> str:
        return BANK_ID if self.is_bank else self.profile_id


BANK = Counterparty('bank')


def resolve_avatar(avatar_token: Optional[str]) -> str:
    # Older profiles stored picture URLs; only emoji/short tokens are rendered
    if not avatar_token or avatar_token.startswith('http'):
        return DEFAULT_AVATAR
    return avatar_token


class Profile(UserMixin, db.Model):
    __tablename__ = 'profile'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    display_name = db.Column(db.String(32), nullable=True)
    avatar_token = db.Column(db.String(16), nullable=True)
    auth_token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def name(self) -> str:
        return self.display_name or DEFAULT_PLAYER_NAME

    @property
    def avatar(self) -> str:
        return resolve_avatar(self.avatar_token)

    def to_dict(self):
        return {
            'id': self.id,
            'display_name': self.name,
            'avatar': self.avatar,
        }


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    initial_balance = db.Column(db.BigInteger, nullable=False)
    max_players = db.Column(db.Integer, nullable=False)
    host_profile_id = db.Column(db.String(36), db.ForeignKey('profile.id'), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ROOM_LOBBY)  # lobby, in_game
    # Bumped by every ledger mutation; the bump takes the row lock that
    # serialises writers of one room and stamps transaction sequence numbers.
    version = db.Column(db.Integer, nullable=False, default=0)
    # The only transaction that may currently be undone (NULL: nothing to undo)
    undoable_transaction_id = db.Column(
        db.String(36),
        db.ForeignKey('ledger_transaction.id', name='fk_room_undoable_transaction_id', use_alter=True),
        nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    members = db.relationship('RoomMember', back_populates='room', lazy='dynamic')

    @property
    def is_started(self) -> bool:
        return self.status == ROOM_IN_GAME

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'initial_balance': int(self.initial_balance),
            'max_players': self.max_players,
            'host_profile_id': self.host_profile_id,
            'status': self.status,
            'is_started': self.is_started,
            'undoable_transaction_id': self.undoable_transaction_id,
        }


class RoomMember(db.Model):
    __tablename__ = 'room_member'
    __table_args__ = (db.UniqueConstraint('room_id', 'profile_id', name='uq_room_member_room_profile'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(36), db.ForeignKey('room.id'), nullable=False, index=True)
    profile_id = db.Column(db.String(36), db.ForeignKey('profile.id'), nullable=False)
    balance = db.Column(db.BigInteger, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    room = db.relationship('Room', back_populates='members')
    profile = db.relationship('Profile')


class Transaction(db.Model):
    __tablename__ = 'ledger_transaction'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'seq', name='uq_ledger_transaction_room_seq'),
        db.CheckConstraint('amount > 0', name='ck_ledger_transaction_amount_positive'),
    )
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    room_id = db.Column(db.String(36), db.ForeignKey('room.id'), nullable=False, index=True)
    seq = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    type = db.Column(db.String(16), nullable=False)
    from_profile_id = db.Column(db.String(36), db.ForeignKey('profile.id'), nullable=True)
    to_profile_id = db.Column(db.String(36), db.ForeignKey('profile.id'), nullable=True)
    amount = db.Column(db.BigInteger, nullable=False)
    note = db.Column(db.String(140), nullable=True)
    original_transaction_id = db.Column(db.String(36), db.ForeignKey('ledger_transaction.id'), nullable=True)

    @property
    def source(self) -> Counterparty:
        return Counterparty.from_column(self.from_profile_id)

    @property
    def destination(self) -> Counterparty:
        return Counterparty.from_column(self.to_profile_id)

    def to_dict(self, profiles=None):
        """Serialize with counterpart names resolved from a fetch_profiles() map."""
        profiles = profiles or {}

        def _name(party: Counterparty) -> str:
            if party.is_bank:
                return BANK_LABEL
            found = profiles.get(party.profile_id)
            return found['display_name'] if found else DEFAULT_PLAYER_NAME

        source, destination = self.source, self.destination
        return {
            'id': self.id,
            'room_id': self.room_id,
            'seq': self.seq,
            'timestamp': self.created_at.isoformat() if self.created_at else None,
            'type': self.type,
            'category': TX_CATEGORIES.get(self.type, 'player-to-player'),
            'from_id': source.wire_id,
            'to_id': destination.wire_id,
            'from_name': _name(source),
            'to_name': _name(destination),
            'amount': int(self.amount),
            'note': self.note,
            'original_transaction_id': self.original_transaction_id,
        }
