"""Client session: identity restore, rejoin on startup and room actions.

The controller owns the only copy of room state on the device, a
``RoomCache`` that is replaced wholesale after every action and every
realtime signal. Nothing ever patches balances locally.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from bankroom.paylink import PaymentIntent
from bankroom.services.ledger.codes import ROOM_CODE_LENGTH
from bankroom.services.ledger.errors import AlreadyStarted, LedgerError, NotFound, Unauthorized
from .errors import UnexpectedResponse
from .realtime import RoomHandlers
from .views import Player, RoomView, TransactionView

logger = logging.getLogger(__name__)

# Labels recorded when a member operates the bank for another player
BANK_PAYS_NOTE = 'Pagamento do Banco'
BANK_RECEIVES_NOTE = 'Pagamento ao Banco'

# Rejoin failures meaning "this room is gone for you": show the notice
ROOM_UNAVAILABLE_CODES = frozenset({NotFound.code, AlreadyStarted.code})


class SessionState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZING = 'initializing'
    READY = 'ready'
    REJOIN_FAILED = 'rejoin_failed'


@dataclass(frozen=True)
class RoomCache:
    room: Optional[RoomView] = None
    transactions: List[TransactionView] = field(default_factory=list)

    @property
    def me(self) -> Optional[Player]:
        return self.room.me if self.room else None

    @property
    def head(self) -> Optional[TransactionView]:
        return self.transactions[0] if self.transactions else None


@dataclass(frozen=True)
class TransferPrefill:
    """A transfer form to open pre-filled (from a QR code or deep link)."""

    room_id: str
    to_profile_id: str
    amount: Optional[int] = None
    note: Optional[str] = None


class SessionController:
    """Drives one client session.

    ``api`` is a LedgerClient (or anything with the same methods), ``storage``
    a ClientStorage, and ``subscriber`` an optional ``(room_id, handlers) ->
    unsubscribe`` callable used by watch_room().
    """

    def __init__(self, api, storage, subscriber: Optional[Callable] = None):
        self._api = api
        self._storage = storage
        self._subscriber = subscriber
        self._lock = threading.RLock()
        self._closed = threading.Event()
        self._attempted = False
        self._thread: Optional[threading.Thread] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.state = SessionState.UNINITIALIZED
        self.cache = RoomCache()
        self.profile_id: Optional[str] = None
        self.last_error: Optional[LedgerError] = None
        self.last_balance_pulse: Optional[str] = None  # 'in' / 'out'

    # ---- lifecycle ----

    @property
    def view(self) -> Optional[str]:
        """Screen the session belongs on: 'game', 'lobby' or None (no room)."""
        room = self.cache.room
        if room is None:
            return None
        return 'game' if room.is_started else 'lobby'

    def _claim(self) -> bool:
        with self._lock:
            if self._attempted or self._closed.is_set():
                return False
            self._attempted = True
            self.state = SessionState.INITIALIZING
            return True

    def start(self) -> Optional[threading.Thread]:
        """Run the startup rejoin in the background; only the first call does anything."""
        if not self._claim():
            return None
        self._thread = threading.Thread(target=self._rejoin, name='session-rejoin', daemon=True)
        self._thread.start()
        return self._thread

    def initialize(self) -> SessionState:
        """Restore identity and rejoin the remembered room, at most once."""
        if self._claim():
            self._rejoin()
        return self.state

    def _rejoin(self) -> None:
        try:
            self._ensure_identity()
            if self._closed.is_set():
                return
            code = self._storage.get_room_code()
            if not code or len(code) != ROOM_CODE_LENGTH:
                self._finish(SessionState.READY)
                return
            room = self._api.join_room_by_code(code)
            if self._closed.is_set():
                return
            transactions = self._api.fetch_transactions(room.id) if room.is_started else []
            if self._closed.is_set():
                return
            logger.info("[rejoin] room=%s code=%s started=%s", room.id, room.code, room.is_started)
            self._finish(SessionState.READY, RoomCache(room, transactions))
        except LedgerError as e:
            if self._closed.is_set():
                return
            self._storage.clear_room_code()
            if e.code in ROOM_UNAVAILABLE_CODES:
                logger.info("[rejoin] room unavailable: %s", e)
                self._finish(SessionState.REJOIN_FAILED, error=e)
            else:
                logger.warning("[rejoin] failed (%s): %s", e.code, e)
                self._finish(SessionState.READY, error=e)
        except Exception:
            if self._closed.is_set():
                return
            logger.exception("[rejoin] unexpected failure")
            self._storage.clear_room_code()
            self._finish(SessionState.READY, error=UnexpectedResponse())

    def _finish(self, state: SessionState, cache: Optional[RoomCache] = None,
                error: Optional[LedgerError] = None) -> None:
        with self._lock:
            if self._closed.is_set():
                return
            self.cache = cache or RoomCache()
            self.last_error = error
            self.state = state

    def dismiss_rejoin_notice(self) -> None:
        with self._lock:
            if self.state == SessionState.REJOIN_FAILED:
                self.state = SessionState.READY

    def close(self) -> None:
        """Tear down: late results are discarded and realtime is released."""
        self._closed.set()
        self.unwatch_room()

    def _ensure_identity(self) -> None:
        token = self._storage.get_auth_token()
        if token:
            self._api.token = token
            try:
                self.profile_id = self._api.get_session()['id']
                return
            except Unauthorized:
                logger.info("Stored session rejected, signing in again")
        data = self._api.sign_in_anonymously()
        if self._closed.is_set():
            return
        self.profile_id = data['profile']['id']
        self._storage.set_identity(self.profile_id, data['token'])

    # ---- cache ----

    def _require_room(self) -> RoomView:
        room = self.cache.room
        if room is None:
            raise NotFound('Nenhuma sala ativa')
        return room

    def _adopt(self, room: RoomView, transactions: List[TransactionView]) -> None:
        with self._lock:
            if self._closed.is_set():
                return
            self.cache = RoomCache(room, transactions)
        self._storage.set_room_code(room.code)

    def refresh(self) -> None:
        """Re-fetch room, members and transactions together and replace the cache."""
        room = self.cache.room
        if room is None or self._closed.is_set():
            return
        fresh = self._api.fetch_room_with_members(room.id)
        transactions = self._api.fetch_transactions(room.id)
        if fresh is None:
            return
        with self._lock:
            if self._closed.is_set() or self.cache.room is None or self.cache.room.id != fresh.id:
                return
            before = self.cache.me.balance if self.cache.me else 0
            after = fresh.me.balance if fresh.me else before
            self.last_balance_pulse = 'in' if after > before else 'out' if after < before else None
            self.cache = RoomCache(fresh, transactions)

    # ---- profile & rooms ----

    def set_profile(self, display_name: str, avatar: str) -> dict:
        return self._api.update_profile(display_name, avatar)

    def create_room(self, name: str, initial_balance: int, max_players: int) -> RoomView:
        room = self._api.create_room(name, initial_balance, max_players)
        self._adopt(room, [])
        return room

    def join_room(self, code: str) -> RoomView:
        room = self._api.join_room_by_code(code)
        transactions = self._api.fetch_transactions(room.id) if room.is_started else []
        self._adopt(room, transactions)
        return room

    def leave_room(self) -> None:
        room = self.cache.room
        self.unwatch_room()
        try:
            if room is not None:
                self._api.leave_room(room.id)
        finally:
            self._storage.clear_room_code()
            with self._lock:
                self.cache = RoomCache()

    def start_game(self) -> None:
        self._api.start_game(self._require_room().id)
        self.refresh()

    # ---- money ----

    def transfer_to_player(self, to_profile_id: str, amount: int, note: Optional[str] = None) -> TransactionView:
        tx = self._api.transfer_p2p(self._require_room().id, to_profile_id, amount, note)
        self.refresh()
        return tx

    def pay_bank(self, amount: int, note: Optional[str] = None) -> TransactionView:
        tx = self._api.pay_bank(self._require_room().id, amount, note)
        self.refresh()
        return tx

    def receive_from_bank(self, amount: int, note: Optional[str] = None) -> TransactionView:
        tx = self._api.receive_bank(self._require_room().id, amount, note)
        self.refresh()
        return tx

    def bank_pay_to_player(self, profile_id: str, amount: int, note: Optional[str] = BANK_PAYS_NOTE) -> TransactionView:
        tx = self._api.receive_bank(self._require_room().id, amount, note, profile_id=profile_id)
        self.refresh()
        return tx

    def bank_receive_from_player(self, profile_id: str, amount: int,
                                 note: Optional[str] = BANK_RECEIVES_NOTE) -> TransactionView:
        tx = self._api.pay_bank(self._require_room().id, amount, note, profile_id=profile_id)
        self.refresh()
        return tx

    def undo_last_transaction(self) -> TransactionView:
        head = self.cache.head
        tx = self._api.undo_last_transaction(self._require_room().id, head.id if head else None)
        self.refresh()
        return tx

    # ---- payment links ----

    def handle_pay_intent(self, intent: PaymentIntent) -> Optional[TransferPrefill]:
        """Prefill a transfer for a scanned code, joining its room first if needed.

        Returns None when the room is still in the lobby: transfers open once
        the host starts the game.
        """
        room = self.cache.room
        if room is None or room.code != intent.room:
            room = self.join_room(intent.room)
        if not room.is_started:
            return None
        return TransferPrefill(room.id, intent.to, intent.amount, intent.note)

    # ---- realtime ----

    def watch_room(self) -> None:
        room = self._require_room()
        if self._subscriber is None:
            return
        self.unwatch_room()
        self._unsubscribe = self._subscriber(room.id, RoomHandlers.all(self._on_signal))

    def unwatch_room(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def _on_signal(self) -> None:
        try:
            self.refresh()
        except LedgerError as e:
            logger.warning("Refresh after realtime signal failed: %s", e)
