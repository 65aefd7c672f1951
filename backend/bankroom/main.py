from flask import Blueprint, current_app, jsonify, redirect, request
from bankroom import paylink

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the bank room server!'})

@main.route('/pay')
def pay_redirect():
    """HTTPS fallback for QR payment links: hand the payload to the game screen."""
    intent = paylink.decode_query(request.args.to_dict(flat=False))
    if intent is None:
        current_app.logger.info(f"[pay-redirect] invalid link args={request.query_string.decode(errors='replace')}")
        return redirect('/rooms')
    return redirect(f"/game?{paylink.to_route_query(intent)}")
