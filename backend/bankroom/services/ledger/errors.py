"""Ledger error kinds.

Every failure of a ledger operation is one of these classes. The ``code`` is
the stable, machine-readable kind sent over the wire next to the human
readable message, so clients never have to match on message text.
"""


class LedgerError(Exception):
    """Base class for ledger failures"""

    code = 'ledger_error'
    status = 400
    default_message = 'Operação recusada'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(LedgerError):
    """Bad input shape or range"""

    code = 'validation_error'
    status = 400
    default_message = 'Dados inválidos'


class Unauthorized(LedgerError):
    """No (valid) caller identity"""

    code = 'unauthorized'
    status = 401
    default_message = 'Sessão não encontrada. Tente novamente.'


class Forbidden(LedgerError):
    """Caller lacks the required role (host only actions)"""

    code = 'forbidden'
    status = 403
    default_message = 'Apenas o anfitrião pode fazer isso'


class NotInRoom(LedgerError):
    code = 'not_in_room'
    status = 403
    default_message = 'Jogador não está na sala'


class NotFound(LedgerError):
    code = 'not_found'
    status = 404
    default_message = 'Sala não encontrada'


class InsufficientFunds(LedgerError):
    code = 'insufficient_funds'
    status = 409
    default_message = 'Saldo insuficiente'


class RoomFull(LedgerError):
    code = 'room_full'
    status = 409
    default_message = 'Sala cheia'


class AlreadyStarted(LedgerError):
    code = 'already_started'
    status = 409
    default_message = 'Partida já iniciada'


class InvalidState(LedgerError):
    code = 'invalid_state'
    status = 409
    default_message = 'A sala não está no estado esperado'


class NothingToUndo(LedgerError):
    code = 'nothing_to_undo'
    status = 409
    default_message = 'Nenhuma transação para desfazer'


class Conflict(LedgerError):
    """Lost a race against another writer; re-read state and retry"""

    code = 'conflict'
    status = 409
    default_message = 'A sala mudou. Atualize e tente novamente.'


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        Unauthorized,
        Forbidden,
        NotInRoom,
        NotFound,
        InsufficientFunds,
        RoomFull,
        AlreadyStarted,
        InvalidState,
        NothingToUndo,
        Conflict,
    )
}
