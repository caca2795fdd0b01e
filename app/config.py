from typing_extensions import TypedDict
import os
from dotenv import load_dotenv

# Optional overrides; unset keys keep the defaults below
ENV_OVERRIDES = {
    'EXIT_FEE_RATE': 'fee_rate',
    'CASHOUT_POLICY': 'cashout_policy',
    'OUTCOME_SEED': 'outcome_seed',
    'TICK_MS': 'tick_ms',
    'COUNTDOWN_SECONDS': 'countdown_seconds',
    'MULTIPLIER_STEP': 'multiplier_step',
}

def load_env() -> dict[str, str]:
    # Try to load from .env file (for local development)
    load_dotenv()

    env_vars = {}
    for key in ENV_OVERRIDES:
        value = os.getenv(key)
        if value is not None and value.strip() != '':
            env_vars[key] = value.strip()
    return env_vars

class ExchangeParams(TypedDict):
    market_name: str
    side_names: dict[str, str]
    initial_pools: dict[str, float]
    fee_rate: float
    cashout_policy: str  # 'RATIO' or 'MARK_TO_MARKET'
    countdown_seconds: int
    countdown_interval_ms: int
    tick_ms: int
    match_minutes: int
    max_goals: int
    outcome_seed: int | None

class CrashParams(TypedDict):
    initial_liquidity: float
    start_multiplier: float
    multiplier_step: float
    countdown_seconds: int
    countdown_interval_ms: int
    tick_ms: int

def get_default_exchange_params() -> ExchangeParams:
    return ExchangeParams(
        market_name="Arsenal vs Liverpool",
        side_names={'YES': "Arsenal", 'NO': "Liverpool"},
        initial_pools={'YES': 0.0, 'NO': 0.0},
        fee_rate=0.03,
        cashout_policy='MARK_TO_MARKET',
        countdown_seconds=0,  # The match goes live as soon as it is started
        countdown_interval_ms=1000,
        tick_ms=1000,  # One match minute per second
        match_minutes=90,
        max_goals=4,
        outcome_seed=None,
    )

def get_default_crash_params() -> CrashParams:
    return CrashParams(
        initial_liquidity=0.0,  # Player-funded: liquidity grows only with stakes
        start_multiplier=0.50,
        multiplier_step=0.02,
        countdown_seconds=10,
        countdown_interval_ms=1000,
        tick_ms=1200,
    )

def apply_env_overrides(params: dict, env: dict[str, str] | None = None) -> dict:
    """
    Merge environment overrides into a params dict, converting to the type of the default.
    Keys the params dict does not define are ignored.
    """
    env = load_env() if env is None else env
    merged = dict(params)
    for env_key, param_key in ENV_OVERRIDES.items():
        if env_key not in env or param_key not in merged:
            continue
        raw = env[env_key]
        current = merged[param_key]
        try:
            if param_key == 'outcome_seed' or isinstance(current, int) and not isinstance(current, bool):
                merged[param_key] = int(raw)
            elif isinstance(current, float):
                merged[param_key] = float(raw)
            else:
                merged[param_key] = raw.upper()
        except ValueError:
            raise ValueError(f"Invalid value for {env_key}: {raw!r}")
    return merged
