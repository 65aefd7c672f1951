import pytest

from bankroom import paylink
from bankroom.models import MAX_AMOUNT
from bankroom.paylink import PaymentIntent

TO = '3fa85f64-5717-4562-b3fc-2c963f66afa6'


def test_decode_custom_scheme():
    intent = paylink.decode(f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount=500&note=Aluguel')
    assert intent == PaymentIntent(room='AB12CD', to=TO, amount=500, note='Aluguel', v=1)


@pytest.mark.parametrize('text', [
    f'bankgame:/pay?v=1&room=AB12CD&to={TO}',
    f'bankgame:///pay?v=1&room=AB12CD&to={TO}',
    f'https://bankgame.app/pay?v=1&room=AB12CD&to={TO}',
    f'https://example.org/some/prefix/pay?v=1&room=ab12cd&to={TO}',
    f'  bankgame://pay?v=1&room=%20ab12cd%20&to={TO}&amount=&note=  ',
])
def test_decode_accepted_forms(text):
    assert paylink.decode(text) == PaymentIntent(room='AB12CD', to=TO)


@pytest.mark.parametrize('text', [
    None,
    42,
    '',
    'hello world',
    f'bankgame://pay?v=2&room=AB12CD&to={TO}',
    f'bankgame://pay?room=AB12CD&to={TO}',
    f'bankgame://pay?v=1&room=AB12C&to={TO}',
    f'bankgame://pay?v=1&room=AB12CDE&to={TO}',
    f'bankgame://pay?v=1&room=AB-2CD&to={TO}',
    'bankgame://pay?v=1&room=AB12CD&to=not-a-uuid',
    f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount=-5',
    f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount=1.5',
    f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount=abc',
    f'bankgame://send?v=1&room=AB12CD&to={TO}',
    f'otherapp://pay?v=1&room=AB12CD&to={TO}',
    f'http://bankgame.app/pay?v=1&room=AB12CD&to={TO}',
    f'https://bankgame.app/payment?v=1&room=AB12CD&to={TO}',
    'https://[broken/pay?v=1',
    f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount=' + '9' * 5000,
    f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount=1000000000001',
    f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount=\u00b2',
    f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount=%D9%A3',
])
def test_decode_rejects_garbage(text):
    assert paylink.decode(text) is None


def test_encode_parameter_order_and_forms():
    links = paylink.encode('ab12cd', TO, amount=500, note='Aluguel da casa')
    expected = f'v=1&room=AB12CD&to={TO}&amount=500&note=Aluguel%20da%20casa'
    assert links.primary == f'bankgame://pay?{expected}'
    assert links.fallback == f'https://bankgame.app/pay?{expected}'


def test_encode_omits_empty_amount_and_note():
    links = paylink.encode('AB12CD', TO, amount=0, note='')
    assert links.primary == f'bankgame://pay?v=1&room=AB12CD&to={TO}'


def test_decode_is_idempotent_over_encode():
    links = paylink.encode('AB12CD', TO, amount=1200, note='Pão & café? 50%')
    first = paylink.decode(links.primary)
    assert first == paylink.decode(links.fallback)
    again = paylink.decode(paylink.encode(first.room, first.to, first.amount, first.note).primary)
    assert again == first
    assert first.note == 'Pão & café? 50%'


def test_route_query_round_trip():
    intent = PaymentIntent(room='AB12CD', to=TO, amount=500, note='Aluguel')
    query = paylink.to_route_query(intent)
    assert query.startswith('pay=1&v=1&room=AB12CD')
    assert paylink.decode_route(query) == intent
    assert paylink.decode_route('?' + query) == intent


def test_decode_route_without_version_and_rejections():
    assert paylink.decode_route(f'pay=1&room=AB12CD&to={TO}') == PaymentIntent(room='AB12CD', to=TO)
    assert paylink.decode_route(f'room=AB12CD&to={TO}') is None
    assert paylink.decode_route(f'pay=1&v=3&room=AB12CD&to={TO}') is None
    assert paylink.decode_route({'pay': ['1'], 'room': ['AB12CD'], 'to': ['nope']}) is None


def test_decode_accepts_the_largest_amount():
    intent = paylink.decode(f'bankgame://pay?v=1&room=AB12CD&to={TO}&amount={MAX_AMOUNT}')
    assert intent.amount == MAX_AMOUNT


@pytest.mark.parametrize('text, expected', [
    ('500', 500),
    ('0', 0),
    (str(MAX_AMOUNT), MAX_AMOUNT),
    (str(MAX_AMOUNT + 1), None),
    ('9' * 5000, None),
    ('²', None),
    ('٣', None),
    ('1_000', None),
    (' 5', None),
    ('', None),
    (None, None),
])
def test_parse_amount(text, expected):
    assert paylink.parse_amount(text) == expected
