"""Payment links carried by QR codes.

A payment intent ("pay <amount> to <profile> in room <code>") travels as a
URL in two equivalent forms with identical query parameters::

    bankgame://pay?v=1&room=AB12CD&to=<uuid>[&amount=500][&note=Aluguel]
    https://<host>/pay?v=1&room=AB12CD&to=<uuid>[&amount=500][&note=Aluguel]

The custom scheme opens the app directly; the https form is for scanners and
browsers that refuse unknown schemes. ``decode`` reads scanner or clipboard
input, so it never raises: anything malformed yields ``None``.
"""

import re
from dataclasses import dataclass
from typing import Mapping, NamedTuple, Optional, Sequence, Union
from urllib.parse import parse_qs, quote, urlencode, urlsplit

from bankroom.models import MAX_AMOUNT
from bankroom.services.ledger.codes import ROOM_CODE_LENGTH, normalize_room_code

PAY_LINK_VERSION = 1
DEFAULT_SCHEME = 'bankgame'
DEFAULT_BASE_URL = 'https://bankgame.app'

_UUID_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)
_ROOM_RE = re.compile(r'[A-Z0-9]{%d}' % ROOM_CODE_LENGTH)
# ASCII digits only, never longer than MAX_AMOUNT itself
_AMOUNT_RE = re.compile(r'[0-9]{1,%d}' % len(str(MAX_AMOUNT)))

QueryParams = Mapping[str, Sequence[str]]


@dataclass(frozen=True)
class PaymentIntent:
    room: str
    to: str
    amount: Optional[int] = None
    note: Optional[str] = None
    v: int = PAY_LINK_VERSION


class PayLinks(NamedTuple):
    primary: str
    fallback: str


def _query(intent: PaymentIntent) -> str:
    params = [('v', str(intent.v)), ('room', intent.room), ('to', intent.to)]
    if intent.amount is not None and intent.amount > 0:
        params.append(('amount', str(intent.amount)))
    if intent.note:
        params.append(('note', intent.note))
    return urlencode(params, quote_via=quote)


def encode(room_code: str, to_profile_id: str, amount: Optional[int] = None, note: Optional[str] = None,
           scheme: str = DEFAULT_SCHEME, base_url: str = DEFAULT_BASE_URL) -> PayLinks:
    intent = PaymentIntent(room=normalize_room_code(room_code), to=to_profile_id, amount=amount, note=note)
    qs = _query(intent)
    return PayLinks(
        primary=f"{scheme}://pay?{qs}",
        fallback=f"{base_url.rstrip('/')}/pay?{qs}",
    )


def parse_amount(text: str) -> Optional[int]:
    """Amount typed or carried as text; None unless plain digits within MAX_AMOUNT."""
    if not isinstance(text, str) or not _AMOUNT_RE.fullmatch(text):
        return None
    amount = int(text)
    return amount if amount <= MAX_AMOUNT else None


def _first(params: QueryParams, key: str) -> str:
    values = params.get(key)
    if not values:
        return ''
    value = values[0] if not isinstance(values, str) else values
    return value.strip()


def decode_query(params: QueryParams, require_version: bool = True) -> Optional[PaymentIntent]:
    """Validate already-split query parameters into a PaymentIntent."""
    version = _first(params, 'v')
    if version or require_version:
        if version != str(PAY_LINK_VERSION):
            return None
    room = _first(params, 'room').upper()
    if not _ROOM_RE.fullmatch(room):
        return None
    to = _first(params, 'to')
    if not _UUID_RE.match(to):
        return None
    amount_raw = _first(params, 'amount')
    amount = None
    if amount_raw:
        amount = parse_amount(amount_raw)
        if amount is None:
            return None
    note = _first(params, 'note') or None
    return PaymentIntent(room=room, to=to, amount=amount, note=note)


def _is_pay_location(parts, scheme: str) -> bool:
    if parts.scheme.lower() == scheme.lower():
        return (parts.netloc == 'pay' and parts.path in ('', '/')) or parts.path == '/pay'
    if parts.scheme.lower() == 'https':
        return bool(parts.netloc) and (parts.path == '/pay' or parts.path.endswith('/pay'))
    return False


def decode(text, scheme: str = DEFAULT_SCHEME) -> Optional[PaymentIntent]:
    """Parse either link form; None for anything that is not a valid v1 link."""
    if not isinstance(text, str):
        return None
    try:
        parts = urlsplit(text.strip())
        if not _is_pay_location(parts, scheme):
            return None
        params = parse_qs(parts.query, keep_blank_values=True)
    except ValueError:
        return None
    return decode_query(params)


# ---- in-app re-entry route: /game?pay=1&room=...&to=...&amount=...&note=... ----

def to_route_query(intent: PaymentIntent) -> str:
    return 'pay=1&' + _query(intent)


def decode_route(query: Union[str, QueryParams]) -> Optional[PaymentIntent]:
    """Turn the re-entry route query into the same intent a scanned code gives."""
    if isinstance(query, str):
        try:
            query = parse_qs(query.lstrip('?'), keep_blank_values=True)
        except ValueError:
            return None
    if _first(query, 'pay') != '1':
        return None
    return decode_query(query, require_version=False)
