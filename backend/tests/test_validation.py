from datetime import datetime, timezone
from decimal import Decimal
import pytest
from werkzeug.exceptions import BadRequest
from repairdesk.utils.validation import collect, parse_decimal, parse_datetime, parse_int, parse_bool, choice, reject_blank


def test_collect_distinguishes_absent_from_null():
    spec = {'title': lambda v, k: v, 'cost': (parse_decimal, {'minimum': Decimal('0')})}
    assert collect({'title': 'x'}, spec) == {'title': 'x'}
    assert collect({'cost': None}, spec) == {'cost': None}
    assert collect({'cost': 0.1}, spec) == {'cost': Decimal('0.1')}


def test_numbers_reject_bools_and_bounds():
    with pytest.raises(BadRequest):
        parse_int(True, 'quantity')
    with pytest.raises(BadRequest):
        parse_decimal('NaN', 'cost')
    with pytest.raises(BadRequest):
        parse_decimal('100.01', 'tax_rate', maximum=Decimal('100'))
    assert parse_int('7', 'n') == 7


def test_datetimes_are_naive_local():
    naive = parse_datetime('2026-03-10T10:00:00', 'start_time')
    assert naive == datetime(2026, 3, 10, 10, 0, 0)
    aware = parse_datetime('2026-03-10T10:00:00Z', 'start_time')
    assert aware.tzinfo is None
    assert aware == datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)


def test_bool_choice_and_blank():
    assert parse_bool(False, 'billable') is False
    with pytest.raises(BadRequest):
        parse_bool('yes', 'billable')
    assert choice(('a', 'b'))('a', 'kind') == 'a'
    with pytest.raises(BadRequest):
        choice(('a', 'b'))('c', 'kind')
    with pytest.raises(BadRequest):
        reject_blank({'title': ''}, 'title')
    reject_blank({'notes': None}, 'title')
