"""Read side of the ledger: rooms with members, transaction history, profiles.

All functions here are side-effect free and safe to call at any time.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from bankroom import db
from bankroom.models import DEFAULT_AVATAR, DEFAULT_PLAYER_NAME, Profile, Room, RoomMember, Transaction
from .codes import normalize_room_code


@dataclass
class MemberSnapshot:
    profile_id: str
    name: str
    avatar: str
    balance: int
    is_host: bool
    is_me: bool

    def to_dict(self):
        return {
            'id': self.profile_id,
            'name': self.name,
            'avatar': self.avatar,
            'balance': self.balance,
            'is_host': self.is_host,
            'is_me': self.is_me,
        }


@dataclass
class RoomSnapshot:
    room: Room
    members: List[MemberSnapshot] = field(default_factory=list)

    def to_dict(self):
        return {
            'room': self.room.to_dict(),
            'players': [m.to_dict() for m in self.members],
        }


def get_room(room_id: str) -> Optional[Room]:
    return db.session.get(Room, room_id)


def get_room_by_code(code: str) -> Optional[Room]:
    return Room.query.filter_by(code=normalize_room_code(code)).first()


def get_profile(profile_id: str) -> Optional[Profile]:
    return db.session.get(Profile, profile_id)


def get_member(room_id: str, profile_id: str) -> Optional[RoomMember]:
    return RoomMember.query.filter_by(room_id=room_id, profile_id=profile_id).first()


def fetch_room_with_members(room_id: str, requesting_profile_id: Optional[str]) -> Optional[RoomSnapshot]:
    """Return the room and its active members, or None if the room does not exist."""
    room = get_room(room_id)
    if room is None:
        return None
    rows = (
        RoomMember.query.filter_by(room_id=room.id, is_active=True)
        .order_by(RoomMember.joined_at, RoomMember.id)
        .all()
    )
    profiles = fetch_profiles(r.profile_id for r in rows)
    members = []
    for row in rows:
        profile = profiles.get(row.profile_id)
        members.append(MemberSnapshot(
            profile_id=row.profile_id,
            name=profile['display_name'] if profile else DEFAULT_PLAYER_NAME,
            avatar=profile['avatar'] if profile else DEFAULT_AVATAR,
            balance=int(row.balance),
            is_host=row.profile_id == room.host_profile_id,
            is_me=row.profile_id == requesting_profile_id,
        ))
    return RoomSnapshot(room=room, members=members)


def fetch_transactions(room_id: str) -> List[Transaction]:
    """Full history of a room, most recent first."""
    return (
        Transaction.query.filter_by(room_id=room_id)
        .order_by(Transaction.seq.desc())
        .all()
    )


def fetch_profiles(ids: Iterable[Optional[str]]) -> Dict[str, dict]:
    """Batched lookup id -> {display_name, avatar}; unknown ids are left out."""
    unique = {i for i in ids if i}
    if not unique:
        return {}
    rows = Profile.query.filter(Profile.id.in_(unique)).all()
    return {p.id: {'display_name': p.name, 'avatar': p.avatar} for p in rows}


def transactions_to_dicts(transactions: List[Transaction]) -> List[dict]:
    ids = []
    for tx in transactions:
        ids.extend((tx.from_profile_id, tx.to_profile_id))
    profiles = fetch_profiles(ids)
    return [tx.to_dict(profiles) for tx in transactions]
