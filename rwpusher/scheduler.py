"""Periodic push loop: gather, translate, encode and deliver."""
import threading
import time
import logging
from typing import Optional

from rwpusher.errors import PushError
from rwpusher.metrics import PusherMetrics
from rwpusher.series import PushOutcome, PusherState
from rwpusher.translate import metric_families_to_timeseries
from rwpusher.wire import build_write_request

logger = logging.getLogger(__name__)


class PushScheduler:
    """
    Drives one push cycle per interval until stopped.

    The gatherer must provide ``gather() -> List[MetricFamily]`` and the
    client ``store(payload: bytes)``. At most one cycle runs at a time and
    the interval wait is only re-armed after the previous cycle returns.
    """

    def __init__(
        self,
        gatherer,
        client,
        interval_s: float = 5.0,
        self_metrics: Optional[PusherMetrics] = None
    ):
        if interval_s <= 0:
            raise ValueError(f"Push interval must be positive, got {interval_s}")

        self.gatherer = gatherer
        self.client = client
        self.interval_s = interval_s
        self.self_metrics = self_metrics

        self.push_count = 0
        self.last_outcome: Optional[PushOutcome] = None

        self._state = PusherState.IDLE
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> PusherState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: PusherState):
        with self._state_lock:
            # Stopped is terminal
            if self._state is not PusherState.STOPPED:
                self._state = state

    def wait_next(self) -> bool:
        """Block until the next tick (True) or cancellation (False)."""
        return not self._stop.wait(self.interval_s)

    def push_once(self) -> PushOutcome:
        """Run the full pipeline once; stage failures become a failed outcome."""
        self._set_state(PusherState.PUSHING)
        start = time.time()
        series_count = 0

        try:
            families = self.gatherer.gather()
            series = metric_families_to_timeseries(families)
            series_count = len(series)
            payload = build_write_request(series)
            self.client.store(payload)
            outcome = PushOutcome(success=True, series_count=series_count)
            logger.info(f"Pushed {series_count} series to remote write endpoint")
        except PushError as e:
            outcome = PushOutcome(
                success=False,
                series_count=series_count,
                error_kind=e.kind,
                error=str(e)
            )
            logger.error(f"Push failed ({e.kind.value}): {e}")
        finally:
            self._set_state(PusherState.IDLE)

        outcome.duration_s = time.time() - start
        self.push_count += 1
        self.last_outcome = outcome

        if self.self_metrics:
            self.self_metrics.record_outcome(outcome)

        return outcome

    def run(self):
        """Run the push loop until stop() is called."""
        logger.info(f"Starting remote write pusher (interval {self.interval_s}s)")

        try:
            while self.wait_next():
                try:
                    self.push_once()
                except Exception as e:
                    logger.error(f"Unexpected error in push cycle: {e}", exc_info=True)
                    self._set_state(PusherState.IDLE)
        finally:
            self._set_state(PusherState.STOPPED)
            logger.info(f"Remote write pusher stopped after {self.push_count} pushes")

    def start(self) -> threading.Thread:
        """Run the push loop in a background daemon thread."""
        if self._thread is not None:
            raise RuntimeError("Pusher already started")

        self._thread = threading.Thread(
            target=run_pusher_thread,
            args=(self,),
            name="remote-write-pusher",
            daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None):
        """Request shutdown; an in-flight push is allowed to finish."""
        logger.info("Stopping remote write pusher")
        self._stop.set()

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Pusher thread still running after {timeout}s")
        elif self._thread is None:
            self._set_state(PusherState.STOPPED)

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()


def run_pusher_thread(pusher: PushScheduler):
    """Run the pusher in a separate thread."""
    try:
        pusher.run()
    except Exception as e:
        logger.error(f"Pusher thread error: {e}", exc_info=True)
