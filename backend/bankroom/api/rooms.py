from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from bankroom import paylink
from bankroom.services.ledger import operations, store
from bankroom.services.ledger.errors import LedgerError, NotFound, NotInRoom, ValidationError

rooms = Blueprint('rooms', __name__)


@rooms.errorhandler(LedgerError)
def handle_ledger_error(exc):
    return jsonify({'error': exc.message, 'code': exc.code}), exc.status


def _json() -> dict:
    return request.get_json(silent=True) or {}


def _int_field(data: dict, key: str, label: str):
    value = data.get(key)
    if isinstance(value, str):
        parsed = paylink.parse_amount(value.strip())
        if parsed is None:
            raise ValidationError(f'{label} inválido')
        return parsed
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{label} inválido')
    return value


def _snapshot(room_id: str):
    snapshot = store.fetch_room_with_members(room_id, current_user.id)
    if snapshot is None:
        raise NotFound('Sala não encontrada')
    return snapshot.to_dict()


def _require_member(room_id: str) -> None:
    if store.get_room(room_id) is None:
        raise NotFound('Sala não encontrada')
    if store.get_member(room_id, current_user.id) is None:
        raise NotInRoom()


def _transaction_response(tx):
    return jsonify({'transaction': store.transactions_to_dicts([tx])[0]}), 201


@rooms.route('', methods=['POST'])
@login_required
def create_room():
    data = _json()
    room = operations.create_room(
        data.get('name'),
        _int_field(data, 'initial_balance', 'Dinheiro inicial'),
        _int_field(data, 'max_players', 'Máximo de jogadores'),
        current_user.id,
    )
    return jsonify(_snapshot(room.id)), 201


@rooms.route('/join', methods=['POST'])
@login_required
def join_room():
    room = operations.join_room_by_code(_json().get('code'), current_user.id)
    return jsonify(_snapshot(room.id))


@rooms.route('/<string:room_id>', methods=['GET'])
@login_required
def get_room(room_id):
    _require_member(room_id)
    return jsonify(_snapshot(room_id))


@rooms.route('/<string:room_id>/transactions', methods=['GET'])
@login_required
def get_transactions(room_id):
    _require_member(room_id)
    transactions = store.fetch_transactions(room_id)
    return jsonify({'transactions': store.transactions_to_dicts(transactions)})


@rooms.route('/<string:room_id>/start', methods=['POST'])
@login_required
def start_game(room_id):
    operations.start_game(room_id, current_user.id)
    return jsonify(_snapshot(room_id))


@rooms.route('/<string:room_id>/transfers', methods=['POST'])
@login_required
def transfer(room_id):
    data = _json()
    # The sender is always the authenticated caller
    tx = operations.transfer_p2p(
        room_id,
        current_user.id,
        data.get('to_profile_id'),
        _int_field(data, 'amount', 'Valor'),
        data.get('note'),
    )
    return _transaction_response(tx)


@rooms.route('/<string:room_id>/bank/pay', methods=['POST'])
@login_required
def pay_bank(room_id):
    data = _json()
    # Bank mode: an active member may operate the bank on behalf of another
    profile_id = data.get('profile_id') or current_user.id
    if profile_id != current_user.id:
        _require_active_caller(room_id)
    tx = operations.pay_to_bank(room_id, profile_id, _int_field(data, 'amount', 'Valor'), data.get('note'))
    return _transaction_response(tx)


@rooms.route('/<string:room_id>/bank/receive', methods=['POST'])
@login_required
def receive_bank(room_id):
    data = _json()
    profile_id = data.get('profile_id') or current_user.id
    if profile_id != current_user.id:
        _require_active_caller(room_id)
    tx = operations.receive_from_bank(room_id, profile_id, _int_field(data, 'amount', 'Valor'), data.get('note'))
    return _transaction_response(tx)


@rooms.route('/<string:room_id>/undo', methods=['POST'])
@login_required
def undo(room_id):
    tx = operations.undo_last_transaction(room_id, current_user.id, _json().get('expected_transaction_id'))
    return _transaction_response(tx)


@rooms.route('/<string:room_id>/leave', methods=['POST'])
@login_required
def leave(room_id):
    operations.leave_room(room_id, current_user.id)
    return jsonify({'ok': True})


@rooms.route('/<string:room_id>/paylink', methods=['GET'])
@login_required
def get_paylink(room_id):
    """Links for a QR code asking other players to pay the caller."""
    _require_active_caller(room_id)
    room = store.get_room(room_id)
    amount = request.args.get('amount', '').strip()
    if amount:
        amount = operations.validate_amount(paylink.parse_amount(amount))
    links = paylink.encode(
        room.code,
        current_user.id,
        amount=amount or None,
        note=request.args.get('note', '').strip() or None,
        scheme=current_app.config.get('PAY_LINK_SCHEME', paylink.DEFAULT_SCHEME),
        base_url=current_app.config.get('PAY_LINK_BASE_URL', paylink.DEFAULT_BASE_URL),
    )
    return jsonify(links._asdict())


def _require_active_caller(room_id: str) -> None:
    member = store.get_member(room_id, current_user.id)
    if member is None or not member.is_active:
        if store.get_room(room_id) is None:
            raise NotFound('Sala não encontrada')
        raise NotInRoom()
