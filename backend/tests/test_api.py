from urllib.parse import parse_qs, urlsplit

import pytest

from bankroom.models import MAX_AMOUNT


def create_room(client, headers, **overrides):
    body = {'name': 'Mesa', 'initial_balance': 15000, 'max_players': 4}
    body.update(overrides)
    return client.post('/api/rooms', json=body, headers=headers)


def started_room(client, sign_in):
    """Ana hosts, Bia joins, game started. Returns (room, ana, bia) with headers."""
    ana, ana_h = sign_in('Ana')
    bia, bia_h = sign_in('Bia')
    room = create_room(client, ana_h).get_json()['room']
    client.post('/api/rooms/join', json={'code': room['code']}, headers=bia_h)
    client.post(f"/api/rooms/{room['id']}/start", headers=ana_h)
    return room, (ana, ana_h), (bia, bia_h)


def player_balances(client, room_id, headers):
    players = client.get(f'/api/rooms/{room_id}', headers=headers).get_json()['players']
    return {p['name']: p['balance'] for p in players}


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_anonymous_sign_in_and_session(client):
    res = client.post('/api/auth/anonymous')
    assert res.status_code == 201
    data = res.get_json()
    assert data['token']
    assert data['profile']['display_name'] == 'Jogador'
    assert data['profile']['avatar'] == '👤'

    res = client.get('/api/auth/session', headers={'Authorization': f"Bearer {data['token']}"})
    assert res.status_code == 200
    assert res.get_json()['profile']['id'] == data['profile']['id']


def test_requests_without_token_are_unauthorized(client):
    for res in (
        client.get('/api/auth/session'),
        client.post('/api/rooms', json={}),
        client.get('/api/rooms/whatever', headers={'Authorization': 'Bearer nope'}),
    ):
        assert res.status_code == 401
        assert res.get_json()['code'] == 'unauthorized'


def test_update_profile_and_lookup(client, sign_in):
    ana, headers = sign_in()
    res = client.put('/api/profile', json={'display_name': '  Ana ', 'avatar': '🐱'}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()['profile'] == {'id': ana['id'], 'display_name': 'Ana', 'avatar': '🐱'}

    res = client.put('/api/profile', json={'display_name': '', 'avatar': '🐱'}, headers=headers)
    assert res.status_code == 400
    assert res.get_json()['code'] == 'validation_error'

    res = client.get(f"/api/profiles?ids={ana['id']},unknown", headers=headers)
    assert res.get_json()['profiles'] == {ana['id']: {'display_name': 'Ana', 'avatar': '🐱'}}


def test_create_room_returns_snapshot(client, sign_in):
    ana, headers = sign_in('Ana')
    res = create_room(client, headers, initial_balance='20000')
    assert res.status_code == 201
    data = res.get_json()
    assert data['room']['initial_balance'] == 20000
    assert data['room']['is_started'] is False
    assert data['room']['host_profile_id'] == ana['id']
    assert data['players'] == [{
        'id': ana['id'], 'name': 'Ana', 'avatar': '🎩', 'balance': 20000, 'is_host': True, 'is_me': True,
    }]


def test_create_room_validation_error(client, sign_in):
    _, headers = sign_in('Ana')
    res = create_room(client, headers, max_players=12)
    assert res.status_code == 400
    body = res.get_json()
    assert body['code'] == 'validation_error'
    assert body['error']


def test_join_flow_and_errors(client, sign_in):
    _, ana_h = sign_in('Ana')
    bia, bia_h = sign_in('Bia')
    _, caio_h = sign_in('Caio')
    room = create_room(client, ana_h, max_players=2).get_json()['room']

    res = client.post('/api/rooms/join', json={'code': room['code'].lower()}, headers=bia_h)
    assert res.status_code == 200
    players = res.get_json()['players']
    assert [p['name'] for p in players] == ['Ana', 'Bia']
    assert [p['is_me'] for p in players] == [False, True]

    res = client.post('/api/rooms/join', json={'code': room['code']}, headers=caio_h)
    assert res.status_code == 409
    assert res.get_json()['code'] == 'room_full'

    res = client.post('/api/rooms/join', json={'code': 'ZZZZZ'}, headers=caio_h)
    assert res.status_code == 400

    missing = 'YYYYYY' if room['code'] != 'YYYYYY' else 'ZZZZZZ'
    res = client.post('/api/rooms/join', json={'code': missing}, headers=caio_h)
    assert res.status_code == 404
    assert res.get_json()['code'] == 'not_found'

    # Rejoin of an existing member does not count against capacity
    assert client.post('/api/rooms/join', json={'code': room['code']}, headers=bia_h).status_code == 200


def test_only_host_starts_and_late_joiners_are_refused(client, sign_in):
    _, ana_h = sign_in('Ana')
    _, bia_h = sign_in('Bia')
    _, late_h = sign_in('Dani')
    room = create_room(client, ana_h).get_json()['room']
    client.post('/api/rooms/join', json={'code': room['code']}, headers=bia_h)

    res = client.post(f"/api/rooms/{room['id']}/start", headers=bia_h)
    assert res.status_code == 403
    assert res.get_json()['code'] == 'forbidden'

    res = client.post(f"/api/rooms/{room['id']}/start", headers=ana_h)
    assert res.status_code == 200
    assert res.get_json()['room']['is_started'] is True

    res = client.post(f"/api/rooms/{room['id']}/start", headers=ana_h)
    assert res.get_json()['code'] == 'invalid_state'

    res = client.post('/api/rooms/join', json={'code': room['code']}, headers=late_h)
    assert res.status_code == 409
    assert res.get_json()['code'] == 'already_started'


def test_transfer_then_undo_over_http(client, sign_in):
    room, (ana, ana_h), (bia, bia_h) = started_room(client, sign_in)
    url = f"/api/rooms/{room['id']}"

    res = client.post(f'{url}/transfers', json={'to_profile_id': bia['id'], 'amount': 2000, 'note': 'Aluguel'},
                      headers=ana_h)
    assert res.status_code == 201
    tx = res.get_json()['transaction']
    assert tx['type'] == 'p2p'
    assert tx['category'] == 'player-to-player'
    assert (tx['from_name'], tx['to_name'], tx['amount'], tx['note']) == ('Ana', 'Bia', 2000, 'Aluguel')
    assert player_balances(client, room['id'], bia_h) == {'Ana': 13000, 'Bia': 17000}

    res = client.post(f'{url}/undo', json={'expected_transaction_id': tx['id']}, headers=bia_h)
    assert res.status_code == 403

    res = client.post(f'{url}/undo', json={'expected_transaction_id': tx['id']}, headers=ana_h)
    assert res.status_code == 201
    undo = res.get_json()['transaction']
    assert undo['type'] == 'undo'
    assert undo['original_transaction_id'] == tx['id']
    assert (undo['from_id'], undo['to_id']) == (bia['id'], ana['id'])

    res = client.post(f'{url}/undo', json={}, headers=ana_h)
    assert res.status_code == 409
    assert res.get_json()['code'] == 'nothing_to_undo'

    history = client.get(f'{url}/transactions', headers=bia_h).get_json()['transactions']
    assert [t['type'] for t in history] == ['undo', 'p2p']
    assert player_balances(client, room['id'], ana_h) == {'Ana': 15000, 'Bia': 15000}


def test_insufficient_funds_over_http(client, sign_in):
    room, (ana, ana_h), (bia, _) = started_room(client, sign_in)
    res = client.post(f"/api/rooms/{room['id']}/transfers", json={'to_profile_id': bia['id'], 'amount': '15001'},
                      headers=ana_h)
    assert res.status_code == 409
    assert res.get_json()['code'] == 'insufficient_funds'

    res = client.post(f"/api/rooms/{room['id']}/transfers", json={'to_profile_id': bia['id'], 'amount': 'muito'},
                      headers=ana_h)
    assert res.status_code == 400


def test_bank_endpoints_and_bank_mode(client, sign_in):
    room, (ana, ana_h), (bia, bia_h) = started_room(client, sign_in)
    url = f"/api/rooms/{room['id']}"

    tx = client.post(f'{url}/bank/pay', json={'amount': 1500}, headers=ana_h).get_json()['transaction']
    assert (tx['from_id'], tx['to_id'], tx['to_name']) == (ana['id'], 'BANCO', 'Banco')
    assert tx['category'] == 'player-to-bank'

    # Ana operates the bank for Bia
    res = client.post(f'{url}/bank/receive', json={'profile_id': bia['id'], 'amount': 200,
                                                   'note': 'Pagamento do Banco'}, headers=ana_h)
    assert res.status_code == 201
    tx = res.get_json()['transaction']
    assert (tx['from_id'], tx['to_id'], tx['category']) == ('BANCO', bia['id'], 'bank-to-player')
    assert player_balances(client, room['id'], bia_h) == {'Ana': 13500, 'Bia': 15200}


def test_bank_mode_requires_active_operator(client, sign_in):
    room, (ana, _), (bia, bia_h) = started_room(client, sign_in)
    _, outsider_h = sign_in('Eva')
    res = client.post(f"/api/rooms/{room['id']}/bank/receive", json={'profile_id': ana['id'], 'amount': 10},
                      headers=outsider_h)
    assert res.status_code == 403
    assert res.get_json()['code'] == 'not_in_room'


def test_room_reads_require_membership(client, sign_in):
    room, _, (bia, bia_h) = started_room(client, sign_in)
    _, outsider_h = sign_in('Eva')
    assert client.get(f"/api/rooms/{room['id']}", headers=outsider_h).status_code == 403
    assert client.get(f"/api/rooms/{room['id']}/transactions", headers=outsider_h).status_code == 403
    assert client.get('/api/rooms/missing', headers=outsider_h).status_code == 404

    # Leaving keeps read access; the member just drops out of the list
    assert client.post(f"/api/rooms/{room['id']}/leave", headers=bia_h).get_json() == {'ok': True}
    res = client.get(f"/api/rooms/{room['id']}", headers=bia_h)
    assert res.status_code == 200
    assert [p['name'] for p in res.get_json()['players']] == ['Ana']
    assert client.post(f"/api/rooms/{room['id']}/leave", headers=bia_h).status_code == 403


def test_paylink_for_caller(client, sign_in):
    room, (ana, ana_h), _ = started_room(client, sign_in)
    res = client.get(f"/api/rooms/{room['id']}/paylink?amount=500&note=Aluguel", headers=ana_h)
    assert res.status_code == 200
    links = res.get_json()
    expected = f"v=1&room={room['code']}&to={ana['id']}&amount=500&note=Aluguel"
    assert links['primary'] == f'bankgame://pay?{expected}'
    assert links['fallback'] == f'https://bankgame.app/pay?{expected}'

    res = client.get(f"/api/rooms/{room['id']}/paylink?amount=-1", headers=ana_h)
    assert res.status_code == 400


def test_pay_fallback_redirects_into_game(client):
    to = '3fa85f64-5717-4562-b3fc-2c963f66afa6'
    res = client.get(f'/pay?v=1&room=ab12cd&to={to}&amount=500&note=Aluguel%20da%20casa')
    assert res.status_code == 302
    location = urlsplit(res.headers['Location'])
    assert location.path == '/game'
    params = parse_qs(location.query)
    assert params == {
        'pay': ['1'], 'v': ['1'], 'room': ['AB12CD'], 'to': [to], 'amount': ['500'], 'note': ['Aluguel da casa'],
    }


def test_pay_fallback_invalid_link_goes_to_rooms(client):
    res = client.get('/pay?v=2&room=AB12CD&to=3fa85f64-5717-4562-b3fc-2c963f66afa6')
    assert res.status_code == 302
    assert urlsplit(res.headers['Location']).path == '/rooms'


@pytest.mark.parametrize('amount', ['²', '٣', '9' * 5000, 10 ** 20, '1000000000001'])
def test_out_of_range_amounts_are_validation_errors(client, sign_in, amount):
    room, (ana, ana_h), (bia, bia_h) = started_room(client, sign_in)
    url = f"/api/rooms/{room['id']}"

    for path, body in (('/bank/receive', {'amount': amount}),
                       ('/bank/pay', {'amount': amount}),
                       ('/transfers', {'to_profile_id': bia['id'], 'amount': amount})):
        res = client.post(url + path, json=body, headers=ana_h)
        assert res.status_code == 400, path
        assert res.get_json()['code'] == 'validation_error'

    res = client.get(f'{url}/paylink', query_string={'amount': str(amount)}, headers=ana_h)
    assert res.status_code == 400
    assert client.get(f'{url}/transactions', headers=bia_h).get_json()['transactions'] == []


def test_largest_amount_is_accepted(client, sign_in):
    room, (ana, ana_h), (_, bia_h) = started_room(client, sign_in)
    url = f"/api/rooms/{room['id']}"
    res = client.post(f'{url}/bank/receive', json={'amount': str(MAX_AMOUNT)}, headers=ana_h)
    assert res.status_code == 201
    assert player_balances(client, room['id'], bia_h)['Ana'] == 15000 + MAX_AMOUNT
