"""Client view of ledger failures.

Server errors arrive as ``{"error": message, "code": kind}`` and are raised
again as the same LedgerError subclasses the server used. Transport failures
become NetworkError; nothing is retried automatically.
"""

from bankroom.services.ledger.errors import ERRORS_BY_CODE, LedgerError


class NetworkError(LedgerError):
    """The server could not be reached; the user may retry the action"""

    code = 'network_error'
    status = None
    default_message = 'Conexão com o servidor não disponível. Tente novamente.'


class UnexpectedResponse(LedgerError):
    code = 'unexpected_response'
    status = None
    default_message = 'Resposta inesperada do servidor'


def error_from_payload(status_code: int, payload) -> LedgerError:
    payload = payload if isinstance(payload, dict) else {}
    message = payload.get('error')
    cls = ERRORS_BY_CODE.get(payload.get('code'))
    if cls is None:
        return UnexpectedResponse(message or f'{UnexpectedResponse.default_message} ({status_code})')
    return cls(message)
