import pytest
from decimal import Decimal

import numpy as np

from app.engine.state import Side
from app.utils import (
    clamp,
    currency_units,
    deserialize_state,
    is_finite_number,
    money,
    quantize_multiplier,
    safe_divide,
    safe_number,
    serialize_state,
)

@pytest.mark.parametrize("value, expected", [
    (5, Decimal('5')),
    ('12.5', Decimal('12.5')),
    (-3, Decimal('0')),
    (None, Decimal('0')),
    ('abc', Decimal('0')),
    (float('nan'), Decimal('0')),
    (float('inf'), Decimal('0')),
    (True, Decimal('0')),
])
def test_safe_number(value, expected):
    assert safe_number(value) == expected

def test_is_finite_number():
    assert is_finite_number('1e3')
    assert not is_finite_number('Infinity')
    assert not is_finite_number(object())

def test_safe_divide():
    assert safe_divide(Decimal('10'), Decimal('4')) == Decimal('2.5')
    assert safe_divide(Decimal('10'), Decimal('0')) == Decimal('0')
    assert safe_divide(Decimal('10'), Decimal('-2')) == Decimal('0')
    assert safe_divide(Decimal('NaN'), Decimal('2')) == Decimal('0')

def test_currency_units_floors():
    assert currency_units('250.9') == Decimal('250')
    assert currency_units(0.7) == Decimal('0')
    assert currency_units(-4) == Decimal('0')

def test_rounding_helpers():
    assert quantize_multiplier(1.0199999) == Decimal('1.02')
    assert money('1.23456789') == Decimal('1.234568')
    assert clamp(Decimal('5'), 0, 3) == Decimal('3')
    assert clamp(Decimal('-1'), 0, 3) == Decimal('0')

def test_serialize_state():
    state = {
        'pools': {Side.YES: Decimal('10.5'), Side.NO: Decimal('0')},
        'winner': Side.NO,
        'goals': np.int64(2),
        'history': (Decimal('1'), 2),
    }
    data = deserialize_state(serialize_state(state))
    assert data == {
        'pools': {'YES': '10.5', 'NO': '0'},
        'winner': 'NO',
        'goals': 2,
        'history': ['1', 2],
    }

def test_serialize_state_rejects_unknown_types():
    with pytest.raises(TypeError):
        serialize_state({'x': object()})
