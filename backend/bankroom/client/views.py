"""Read-only projections of server state held by the client.

These are rebuilt from API responses on every refresh and never mutated.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

BANK_ID = 'BANCO'


@dataclass(frozen=True)
class Player:
    id: str
    name: str
    avatar: str
    balance: int
    is_host: bool
    is_me: bool

    @classmethod
    def from_dict(cls, data: dict) -> 'Player':
        return cls(
            id=data['id'],
            name=data['name'],
            avatar=data['avatar'],
            balance=int(data['balance']),
            is_host=bool(data['is_host']),
            is_me=bool(data['is_me']),
        )


@dataclass(frozen=True)
class RoomView:
    id: str
    name: str
    code: str
    initial_balance: int
    max_players: int
    is_started: bool
    host_profile_id: str
    players: List[Player] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, data: dict) -> 'RoomView':
        room = data['room']
        return cls(
            id=room['id'],
            name=room['name'],
            code=room['code'],
            initial_balance=int(room['initial_balance']),
            max_players=int(room['max_players']),
            is_started=bool(room['is_started']),
            host_profile_id=room['host_profile_id'],
            players=[Player.from_dict(p) for p in data.get('players', [])],
        )

    @property
    def me(self) -> Optional[Player]:
        return next((p for p in self.players if p.is_me), None)

    def player(self, profile_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == profile_id), None)


@dataclass(frozen=True)
class TransactionView:
    id: str
    timestamp: Optional[datetime]
    type: str
    category: str
    from_id: str
    to_id: str
    from_name: str
    to_name: str
    amount: int
    note: Optional[str] = None
    original_transaction_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'TransactionView':
        timestamp = data.get('timestamp')
        return cls(
            id=data['id'],
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
            type=data['type'],
            category=data['category'],
            from_id=data['from_id'],
            to_id=data['to_id'],
            from_name=data['from_name'],
            to_name=data['to_name'],
            amount=int(data['amount']),
            note=data.get('note'),
            original_transaction_id=data.get('original_transaction_id'),
        )

    @property
    def involves_bank(self) -> bool:
        return BANK_ID in (self.from_id, self.to_id)
