"""Inbound signal channel.

Media nodes run on their own threads and report back through
``on_progress`` and ``on_callback``. Signals are queued in arrival order and
consumed by the single scheduler loop. Closing the channel unsubscribes every
producer: later signals are dropped.
"""

import logging
import math
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SignalKind(Enum):
    PROGRESS = "progress"
    CALLBACK = "callback"
    STOP = "stop"


@dataclass(frozen=True)
class Signal:
    """One signal from a node (or a stop request from the host)."""

    kind: SignalKind
    source: Any = None
    value: float | None = None
    event: str | None = None
    timestamp: float = field(default_factory=time.monotonic)


class SignalChannel:
    """Thread-safe queue of signals from node producers to the scheduler."""

    def __init__(self, maxsize: int = 0):
        self._queue: queue.Queue[Signal] = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def dropped(self) -> int:
        """Number of signals rejected because the channel was closed or full."""
        return self._dropped

    def _put(self, signal: Signal) -> bool:
        if self._closed.is_set():
            self._dropped += 1
            logger.debug(f"Channel closed, dropping {signal.kind.value} from {signal.source}")
            return False
        try:
            self._queue.put_nowait(signal)
        except queue.Full:
            self._dropped += 1
            logger.warning(f"Signal queue full, dropping {signal.kind.value} from {signal.source}")
            return False
        return True

    def on_progress(self, handle: Any, value: float) -> bool:
        """Report normalized playback progress of a clock-bearing node.

        Returns:
            False if the signal was dropped
        """
        value = float(value)
        if math.isnan(value):
            logger.warning(f"Ignoring NaN progress from {handle}")
            return False
        return self._put(Signal(SignalKind.PROGRESS, source=handle, value=max(0.0, value)))

    def on_callback(self, handle: Any, event: str) -> bool:
        """Report a discrete node event such as ``end``.

        Returns:
            False if the signal was dropped
        """
        return self._put(Signal(SignalKind.CALLBACK, source=handle, event=event))

    def request_stop(self, reason: str = "stop requested") -> bool:
        """Ask the consuming loop to terminate the run."""
        return self._put(Signal(SignalKind.STOP, event=reason))

    def get(self, timeout: float | None = None) -> Signal | None:
        """Wait up to ``timeout`` seconds for the next signal."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_nowait(self) -> Signal | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> int:
        """Stop accepting signals and discard queued ones.

        Returns:
            Number of queued signals discarded
        """
        self._closed.set()
        discarded = 0
        while self.get_nowait() is not None:
            discarded += 1
        if discarded:
            logger.debug(f"Discarded {discarded} queued signal(s) on close")
        return discarded
