import logging
import threading
from typing import Any, Dict, Optional, Protocol

from app.engine.rounds import Phase, RoundState

logger = logging.getLogger(__name__)

class TickTarget(Protocol):
    params: Dict[str, Any]

    def get_round(self) -> RoundState: ...

    def advance_tick(self, round_id: Optional[int] = None) -> Dict[str, Any]: ...

def tick_interval_ms(params: Dict[str, Any], phase: Phase) -> int:
    if phase == Phase.COUNTDOWN:
        return int(params['countdown_interval_ms'])
    return int(params['tick_ms'])

class TimerService:
    """
    Background driver that calls advance_tick() on a simulator at the
    countdown interval during Countdown and the tick interval while Live.

    Each tick is bound to the round id that was current when the service
    started, so ticks that land after a reset are ignored by the simulator.
    """

    def __init__(self, simulator: TickTarget):
        self.simulator = simulator
        self.round_id: Optional[int] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0

    def start_timer_service(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self.round_id = self.simulator.get_round()['round_id']
        self._stop.clear()
        self._thread = threading.Thread(target=self.monitor_loop, daemon=True)
        self._thread.start()
        logger.info(f"Timer started for round {self.round_id}")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        logger.info(f"Timer stopped for round {self.round_id} after {self.ticks} ticks")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def monitor_loop(self) -> None:
        while not self._stop.is_set():
            round_state = self.simulator.get_round()
            if round_state['round_id'] != self.round_id:
                logger.debug(f"Round {self.round_id} was reset; timer exiting")
                break
            if round_state['phase'] not in (Phase.COUNTDOWN, Phase.LIVE):
                break

            interval_s = tick_interval_ms(self.simulator.params, round_state['phase']) / 1000.0
            if self._stop.wait(interval_s):
                break

            result = self.simulator.advance_tick(self.round_id)
            self.ticks += 1
            if not result['ok']:
                logger.debug(f"Tick rejected: {result['message']}")
                break
