import time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from app.config import get_default_crash_params, get_default_exchange_params
from app.engine.rounds import EndTag, Phase
from app.runner.timer_service import TimerService, tick_interval_ms
from app.services.crash import CrashSimulator
from app.services.exchange import ExchangeSimulator


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def fast_crash() -> CrashSimulator:
    params = get_default_crash_params()
    params['countdown_seconds'] = 2
    params['countdown_interval_ms'] = 5
    params['tick_ms'] = 5
    return CrashSimulator(params)


def test_tick_interval_per_phase():
    params = get_default_crash_params()
    assert tick_interval_ms(params, Phase.COUNTDOWN) == 1000
    assert tick_interval_ms(params, Phase.LIVE) == 1200


def test_timer_drives_round_to_crash(fast_crash: CrashSimulator):
    fast_crash.add_stake(100)
    fast_crash.start_round()
    timer = TimerService(fast_crash)
    timer.start_timer_service()
    try:
        assert wait_for(lambda: fast_crash.get_phase() == Phase.ENDED)
        assert wait_for(lambda: not timer.is_running())
    finally:
        timer.stop(timeout=1.0)
    assert fast_crash.get_round()['end_tag'] == EndTag.CRASHED
    assert fast_crash.crashed_at == Decimal('1.02')


def test_timer_ends_match_at_full_time():
    params = get_default_exchange_params()
    params['tick_ms'] = 1
    params['outcome_seed'] = 3
    sim = ExchangeSimulator(params)
    sim.start_round()
    timer = TimerService(sim)
    timer.start_timer_service()
    try:
        assert wait_for(lambda: sim.get_phase() == Phase.ENDED)
    finally:
        timer.stop(timeout=1.0)
    assert sim.get_settlement()['meta']['end_reason'] == 'timer'
    assert sim.get_round()['minute'] == 90


def test_no_ticks_after_reset(fast_crash: CrashSimulator):
    fast_crash.params['tick_ms'] = 50
    fast_crash.add_stake(10_000)
    fast_crash.start_round()
    timer = TimerService(fast_crash)
    timer.start_timer_service()
    try:
        assert wait_for(lambda: fast_crash.get_phase() == Phase.LIVE)
        fast_crash.reset()
        assert wait_for(lambda: not timer.is_running())
    finally:
        timer.stop(timeout=1.0)
    assert fast_crash.get_round()['round_id'] == 2
    assert fast_crash.get_round()['tick_count'] == 0
    assert fast_crash.get_phase() == Phase.IDLE


def test_stop_joins_thread(fast_crash: CrashSimulator):
    fast_crash.params['tick_ms'] = 1000
    fast_crash.add_stake(100)
    fast_crash.start_round()
    timer = TimerService(fast_crash)
    timer.start_timer_service()
    assert wait_for(lambda: fast_crash.get_phase() == Phase.LIVE)
    timer.stop(timeout=2.0)
    assert not timer.is_running()
    assert fast_crash.get_phase() == Phase.LIVE


def test_loop_exits_when_round_not_running():
    simulator = MagicMock()
    simulator.get_round.return_value = {'round_id': 1, 'phase': Phase.IDLE}
    timer = TimerService(simulator)
    timer.round_id = 1
    timer.monitor_loop()
    simulator.advance_tick.assert_not_called()
    assert timer.ticks == 0


def test_loop_stops_on_rejected_tick():
    simulator = MagicMock()
    simulator.params = {'countdown_interval_ms': 1, 'tick_ms': 1}
    simulator.get_round.return_value = {'round_id': 4, 'phase': Phase.LIVE}
    simulator.advance_tick.return_value = {'ok': False, 'reason': 'WrongPhase', 'message': 'stale'}
    timer = TimerService(simulator)
    timer.round_id = 4
    timer.monitor_loop()
    simulator.advance_tick.assert_called_once_with(4)
    assert timer.ticks == 1
