import pytest
from decimal import Decimal
from unittest.mock import patch

from app.config import ENV_OVERRIDES, apply_env_overrides, load_env
from app.engine.params import (
    ExchangeParams,
    fee_rate,
    get_default_crash_params,
    get_default_exchange_params,
    validate_crash_params,
    validate_exchange_params,
)

def test_get_default_exchange_params():
    params = get_default_exchange_params()
    assert params['fee_rate'] == 0.03
    assert params['cashout_policy'] == 'MARK_TO_MARKET'
    assert params['countdown_seconds'] == 0
    assert params['match_minutes'] == 90
    assert params['side_names'] == {'YES': "Arsenal", 'NO': "Liverpool"}
    expected_keys = {'market_name', 'side_names', 'initial_pools', 'fee_rate', 'cashout_policy',
                     'countdown_seconds', 'countdown_interval_ms', 'tick_ms', 'match_minutes',
                     'max_goals', 'outcome_seed'}
    assert set(params.keys()) == expected_keys

def test_get_default_crash_params():
    params = get_default_crash_params()
    assert params['initial_liquidity'] == 0.0
    assert params['start_multiplier'] == 0.50
    assert params['multiplier_step'] == 0.02
    assert params['countdown_seconds'] == 10
    assert params['tick_ms'] == 1200

def test_defaults_are_valid():
    try:
        validate_exchange_params(get_default_exchange_params())
        validate_crash_params(get_default_crash_params())
    except ValueError:
        pytest.fail("Default params raised ValueError")

@pytest.mark.parametrize("rate", [-0.01, 1.0, 2.5])
def test_validate_fee_rate(rate: float):
    params: ExchangeParams = get_default_exchange_params()
    params['fee_rate'] = rate
    with pytest.raises(ValueError, match="fee_rate must be in \\[0,1\\)"):
        validate_exchange_params(params)

def test_validate_exchange_params_invalid():
    params = get_default_exchange_params()
    params['cashout_policy'] = 'KELLY'
    with pytest.raises(ValueError, match="cashout_policy"):
        validate_exchange_params(params)

    params = get_default_exchange_params()
    params['tick_ms'] = 0
    with pytest.raises(ValueError, match="intervals must be positive"):
        validate_exchange_params(params)

    params = get_default_exchange_params()
    params['initial_pools'] = {'YES': -5.0, 'NO': 0.0}
    with pytest.raises(ValueError, match="non-negative"):
        validate_exchange_params(params)

    params = get_default_exchange_params()
    params['side_names'] = {'YES': "Home"}
    with pytest.raises(ValueError, match="side_names"):
        validate_exchange_params(params)

def test_validate_crash_params_invalid():
    params = get_default_crash_params()
    params['multiplier_step'] = 0.0
    with pytest.raises(ValueError, match="multiplier_step must be >0"):
        validate_crash_params(params)

    params = get_default_crash_params()
    params['initial_liquidity'] = -1.0
    with pytest.raises(ValueError, match="initial_liquidity"):
        validate_crash_params(params)

def test_fee_rate_is_exact_decimal():
    assert fee_rate(get_default_exchange_params()) == Decimal('0.03')

def test_apply_env_overrides_converts_types():
    env = {'EXIT_FEE_RATE': '0.05', 'CASHOUT_POLICY': 'ratio', 'OUTCOME_SEED': '11', 'TICK_MS': '250'}
    params = apply_env_overrides(get_default_exchange_params(), env)
    assert params['fee_rate'] == 0.05
    assert params['cashout_policy'] == 'RATIO'
    assert params['outcome_seed'] == 11
    assert params['tick_ms'] == 250
    validate_exchange_params(params)

def test_apply_env_overrides_ignores_unknown_keys():
    defaults = get_default_crash_params()
    params = apply_env_overrides(defaults, {'EXIT_FEE_RATE': '0.5', 'MULTIPLIER_STEP': '0.05'})
    assert 'fee_rate' not in params
    assert params['multiplier_step'] == 0.05
    # Defaults are not mutated
    assert defaults['multiplier_step'] == 0.02

def test_apply_env_overrides_rejects_bad_value():
    with pytest.raises(ValueError, match="COUNTDOWN_SECONDS"):
        apply_env_overrides(get_default_crash_params(), {'COUNTDOWN_SECONDS': 'ten'})

@patch('app.config.load_dotenv')
def test_load_env_reads_only_set_keys(mock_load_dotenv, monkeypatch):
    for key in ENV_OVERRIDES:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv('TICK_MS', ' 500 ')
    monkeypatch.setenv('OUTCOME_SEED', '')
    assert load_env() == {'TICK_MS': '500'}
    mock_load_dotenv.assert_called_once()
