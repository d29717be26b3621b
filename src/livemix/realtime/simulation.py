"""Simulated playback clocks.

Stands in for the media backend's clocks during dry runs: every instance
whose transport is ``playing`` advances at wall-clock speed over a fixed
duration, reports normalized progress to the signal channel, and reports
``end`` once it reaches 1.0. Pausing freezes a clock; ``stop`` rewinds it;
a seek jumps it to the seek start (in seconds).
"""

import logging
import threading
import time

from ..graph.manager import GraphManager, TransportState
from .signals import SignalChannel

logger = logging.getLogger(__name__)

END_EVENT = "end"


class SimulatedPlayback:
    """Emits progress and ``end`` signals for playing instances."""

    def __init__(
        self,
        graph: GraphManager,
        signals: SignalChannel,
        duration_s: float = 10.0,
        interval_s: float = 0.05,
    ):
        self.graph = graph
        self.signals = signals
        self.duration_s = duration_s
        self.interval_s = interval_s

        self._elapsed: dict[str, float] = {}
        self._segments: dict[str, tuple[float, float] | None] = {}
        self._ended: set[str] = set()
        self._last_time: float | None = None
        self._lock = threading.Lock()
        self.shutdown_event = threading.Event()
        self.worker_thread: threading.Thread | None = None

    def step(self, dt: float):
        """Advance every playing clock by ``dt`` seconds and emit signals."""
        with self._lock:
            for name in self.graph.instance_names():
                instance = self.graph.get(name)

                if instance.segment != self._segments.get(name):
                    self._segments[name] = instance.segment
                    if instance.segment is not None:
                        self._elapsed[name] = min(self.duration_s, max(0.0, instance.segment[0]))
                        self._ended.discard(name)

                if instance.transport == TransportState.STOPPED:
                    self._elapsed.pop(name, None)
                    self._ended.discard(name)
                    continue
                if instance.transport != TransportState.PLAYING or name in self._ended:
                    continue

                elapsed = min(self.duration_s, self._elapsed.get(name, 0.0) + dt)
                self._elapsed[name] = elapsed
                self.signals.on_progress(instance.handle, elapsed / self.duration_s)
                if elapsed >= self.duration_s:
                    self._ended.add(name)
                    logger.info(f"Simulated clock {name} reached the end")
                    self.signals.on_callback(instance.handle, END_EVENT)

    def start(self):
        """Start the clock thread."""
        if self.worker_thread is not None and self.worker_thread.is_alive():
            return
        self.shutdown_event.clear()
        self._last_time = time.monotonic()
        self.worker_thread = threading.Thread(
            target=self.worker_loop, name="livemix-simulation", daemon=True
        )
        self.worker_thread.start()
        logger.info(f"Simulated playback started ({self.duration_s:g}s per clock)")

    def stop(self):
        """Stop the clock thread."""
        self.shutdown_event.set()
        if self.worker_thread and self.worker_thread.is_alive():
            if threading.current_thread() != self.worker_thread:
                self.worker_thread.join(timeout=5.0)
        self.worker_thread = None

    def worker_loop(self):
        while not self.shutdown_event.is_set() and not self.signals.closed:
            self.shutdown_event.wait(self.interval_s)
            now = time.monotonic()
            self.step(now - self._last_time)
            self._last_time = now
