from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from bankroom.services import identity
from bankroom.services.ledger import store
from bankroom.services.ledger.errors import LedgerError

auth = Blueprint('auth', __name__)


@auth.errorhandler(LedgerError)
def handle_ledger_error(exc):
    return jsonify({'error': exc.message, 'code': exc.code}), exc.status


@auth.route('/auth/anonymous', methods=['POST'])
def sign_in_anonymously():
    """Issue a new anonymous profile and the bearer token that identifies it."""
    profile = identity.create_anonymous_profile()
    return jsonify({'profile': profile.to_dict(), 'token': profile.auth_token}), 201


@auth.route('/auth/session', methods=['GET'])
@login_required
def get_session():
    return jsonify({'profile': current_user.to_dict()})


@auth.route('/profile', methods=['GET'])
@login_required
def get_profile():
    return jsonify({'profile': current_user.to_dict()})


@auth.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    profile = identity.update_profile(
        current_user._get_current_object(),
        data.get('display_name'),
        data.get('avatar'),
    )
    return jsonify({'profile': profile.to_dict()})


@auth.route('/profiles', methods=['GET'])
@login_required
def get_profiles():
    ids = [i.strip() for i in request.args.get('ids', '').split(',') if i.strip()]
    return jsonify({'profiles': store.fetch_profiles(ids)})
