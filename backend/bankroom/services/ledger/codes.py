import secrets
from typing import Callable, Optional

# No 0/O, 1/I: codes are read aloud and copied by hand across the table
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 6


def normalize_room_code(raw: Optional[str]) -> str:
    """Trim, uppercase and cut user input down to a room code."""
    return (raw or '').strip().upper()[:ROOM_CODE_LENGTH]


def generate_room_code() -> str:
    return ''.join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def generate_unique_room_code(exists: Callable[[str], bool], max_attempts: int = 20) -> Optional[str]:
    """Generate codes until one is not taken; None after max_attempts collisions."""
    for _ in range(max_attempts):
        code = generate_room_code()
        if not exists(code):
            return code
    return None
