"""HTTP client for the ledger server"""

from typing import Dict, List, Optional

import httpx

from bankroom.services.ledger.errors import NotFound
from .errors import NetworkError, UnexpectedResponse, error_from_payload
from .views import RoomView, TransactionView


class LedgerClient:
    """Blocking client for the room ledger API.

    Every call is one round-trip. Failures raise the LedgerError subclass
    named by the server's error code, or NetworkError when the server could
    not be reached.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 5.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.token = token
        self._http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = {'Authorization': f'Bearer {self.token}'} if self.token else {}
        try:
            response = self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError() from e
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if response.is_error:
            raise error_from_payload(response.status_code, payload)
        if not isinstance(payload, dict):
            raise UnexpectedResponse()
        return payload

    # ---- identity ----

    def sign_in_anonymously(self) -> dict:
        """Create a new anonymous profile and start using its token."""
        data = self._request('POST', '/api/auth/anonymous')
        self.token = data['token']
        return data

    def get_session(self) -> dict:
        return self._request('GET', '/api/auth/session')['profile']

    def update_profile(self, display_name: str, avatar: str) -> dict:
        return self._request('PUT', '/api/profile', json={'display_name': display_name, 'avatar': avatar})['profile']

    def fetch_profiles(self, ids: List[str]) -> Dict[str, dict]:
        if not ids:
            return {}
        return self._request('GET', '/api/profiles', params={'ids': ','.join(sorted(set(ids)))})['profiles']

    # ---- ledger store reads ----

    def fetch_room_with_members(self, room_id: str) -> Optional[RoomView]:
        try:
            return RoomView.from_snapshot(self._request('GET', f'/api/rooms/{room_id}'))
        except NotFound:
            return None

    def fetch_transactions(self, room_id: str) -> List[TransactionView]:
        data = self._request('GET', f'/api/rooms/{room_id}/transactions')
        return [TransactionView.from_dict(t) for t in data['transactions']]

    # ---- ledger operations ----

    def create_room(self, name: str, initial_balance: int, max_players: int) -> RoomView:
        data = self._request('POST', '/api/rooms', json={
            'name': name,
            'initial_balance': initial_balance,
            'max_players': max_players,
        })
        return RoomView.from_snapshot(data)

    def join_room_by_code(self, code: str) -> RoomView:
        return RoomView.from_snapshot(self._request('POST', '/api/rooms/join', json={'code': code}))

    def start_game(self, room_id: str) -> RoomView:
        return RoomView.from_snapshot(self._request('POST', f'/api/rooms/{room_id}/start'))

    def transfer_p2p(self, room_id: str, to_profile_id: str, amount: int, note: Optional[str] = None) -> TransactionView:
        data = self._request('POST', f'/api/rooms/{room_id}/transfers', json={
            'to_profile_id': to_profile_id,
            'amount': amount,
            'note': note,
        })
        return TransactionView.from_dict(data['transaction'])

    def pay_bank(self, room_id: str, amount: int, note: Optional[str] = None,
                 profile_id: Optional[str] = None) -> TransactionView:
        data = self._request('POST', f'/api/rooms/{room_id}/bank/pay', json={
            'profile_id': profile_id,
            'amount': amount,
            'note': note,
        })
        return TransactionView.from_dict(data['transaction'])

    def receive_bank(self, room_id: str, amount: int, note: Optional[str] = None,
                     profile_id: Optional[str] = None) -> TransactionView:
        data = self._request('POST', f'/api/rooms/{room_id}/bank/receive', json={
            'profile_id': profile_id,
            'amount': amount,
            'note': note,
        })
        return TransactionView.from_dict(data['transaction'])

    def undo_last_transaction(self, room_id: str, expected_transaction_id: Optional[str] = None) -> TransactionView:
        data = self._request('POST', f'/api/rooms/{room_id}/undo', json={
            'expected_transaction_id': expected_transaction_id,
        })
        return TransactionView.from_dict(data['transaction'])

    def leave_room(self, room_id: str) -> None:
        self._request('POST', f'/api/rooms/{room_id}/leave')

    def payment_links(self, room_id: str, amount: Optional[int] = None, note: Optional[str] = None) -> dict:
        """Links (``primary`` and ``fallback``) for a QR code that pays the caller."""
        params = {}
        if amount:
            params['amount'] = str(amount)
        if note:
            params['note'] = note
        return self._request('GET', f'/api/rooms/{room_id}/paylink', params=params)
