"""Event scheduler - the single decision loop of a run.

The scheduler:
- Fires ``pre`` groups once, in declaration order, when the run starts
- Consumes progress and callback signals in arrival order
- Fires each progress trigger at most once, per clock in (threshold, order) order
- Fires callback triggers on every matching event, terminal events only once
- Ticks the interpolation engine at a fixed period, independent of signals
- Ends the run on ``terminate``, on a stop request, or once nothing is pending

Dispatch never waits for animations: a window move only registers a task and
the loop goes straight back to signal intake.

State machine: IDLE -> RUNNING -> DRAINING -> TERMINATED
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum

from ..config import RuntimeConfig
from ..graph.manager import GraphManager
from ..script.schema import Program, TriggerBinding
from .executor import ActionExecutor, GroupResult
from .interpolation import InterpolationEngine
from .signals import Signal, SignalChannel, SignalKind

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """State of the EventScheduler."""

    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class EventScheduler:
    """Matches signals against triggers and dispatches action groups.

    ``handle()`` and ``tick()`` can be driven directly (tests, embedding in a
    host loop) or by ``start()``, which runs the loop on a daemon thread.
    """

    def __init__(
        self,
        program: Program,
        graph: GraphManager,
        executor: ActionExecutor,
        engine: InterpolationEngine,
        signals: SignalChannel,
        config: RuntimeConfig | None = None,
        on_state_change: Callable[[SchedulerState], None] | None = None,
        on_dispatch: Callable[[TriggerBinding, GroupResult], None] | None = None,
    ):
        """Initialize the scheduler.

        Args:
            program: Compiled program providing the trigger bindings
            graph: Graph manager the actions mutate
            executor: Executor applying dispatched groups
            engine: Interpolation engine advanced on every tick
            signals: Channel delivering node signals
            config: Runtime settings (tick period, terminal events)
            on_state_change: Callback for scheduler state changes
            on_dispatch: Callback after each dispatched group
        """
        self.program = program
        self.graph = graph
        self.executor = executor
        self.engine = engine
        self.signals = signals
        self.config = config or RuntimeConfig()
        self.on_state_change = on_state_change or (lambda _: None)
        self.on_dispatch = on_dispatch or (lambda _b, _r: None)

        self.state = SchedulerState.IDLE
        self.dispatched: list[TriggerBinding] = []
        self.error: BaseException | None = None
        self.termination_reason: str | None = None

        self._pre = program.pre_bindings()
        self._progress: dict[str, list[TriggerBinding]] = {}
        for binding in program.progress_bindings():
            self._progress.setdefault(binding.trigger.clock, []).append(binding)
        self._callbacks: dict[tuple[str, str], list[TriggerBinding]] = {}
        for binding in program.callback_bindings():
            key = (binding.trigger.instance, binding.trigger.event)
            self._callbacks.setdefault(key, []).append(binding)

        self._fired: set[int] = set()
        self._terminal_seen: set[tuple[str, str]] = set()
        self._lock = threading.RLock()
        self._done = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _set_state(self, state: SchedulerState):
        if state == self.state:
            return
        logger.info(f"Scheduler {self.state.value} -> {state.value}")
        self.state = state
        self.on_state_change(state)

    @property
    def running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    @property
    def terminated(self) -> bool:
        return self.state == SchedulerState.TERMINATED

    def pending_triggers(self) -> list[TriggerBinding]:
        """Bindings that can still fire and keep the run alive.

        These are unfired progress triggers and callback triggers on
        terminal events that have not been seen yet. Callbacks on recurring
        events never keep a run alive on their own.
        """
        with self._lock:
            pending = [
                b
                for bindings in self._progress.values()
                for b in bindings
                if b.order not in self._fired
            ]
            for key, bindings in self._callbacks.items():
                if key[1] in self.config.terminal_events and key not in self._terminal_seen:
                    pending.extend(bindings)
            return sorted(pending, key=lambda b: b.order)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def begin(self):
        """Enter RUNNING and fire the ``pre`` groups in declaration order."""
        with self._lock:
            if self.state != SchedulerState.IDLE:
                return
            self._set_state(SchedulerState.RUNNING)
            for binding in self._pre:
                if not self.running:
                    break
                self._dispatch(binding)
            self._check_drain()

    def _dispatch(self, binding: TriggerBinding):
        self._fired.add(binding.order)
        self.dispatched.append(binding)
        logger.info(f"Trigger fired: {binding.describe()} (line {binding.lineno})")
        result = self.executor.execute(binding.group)
        self.on_dispatch(binding, result)
        if result.terminate:
            self.terminate(f"terminate on line {binding.lineno}")

    def handle(self, signal: Signal):
        """Process one signal. Ignored unless the scheduler is RUNNING."""
        with self._lock:
            if not self.running:
                logger.debug(f"Ignoring {signal.kind.value} signal in state {self.state.value}")
                return

            if signal.kind == SignalKind.STOP:
                self.terminate(signal.event or "stop requested")
                return

            name = self.graph.instance_for_handle(signal.source)
            if name is None:
                logger.warning(f"Signal from unknown node {signal.source!r} ignored")
                return

            if signal.kind == SignalKind.PROGRESS:
                self._on_progress(name, signal.value)
            else:
                self._on_callback(name, signal.event)

    def _on_progress(self, clock: str, value: float):
        self.graph.record_progress(clock, value)
        logger.debug(f"Progress {clock} = {value:g}")
        # Sorted by (threshold, order), so the first unreached one ends the scan
        for binding in self._progress.get(clock, []):
            if binding.order in self._fired:
                continue
            if value < binding.trigger.threshold:
                break
            self._dispatch(binding)
            if not self.running:
                return

    def _on_callback(self, instance: str, event: str):
        key = (instance, event)
        terminal = event in self.config.terminal_events
        if terminal:
            if key in self._terminal_seen:
                logger.debug(f"Terminal event {event} from {instance} already handled")
                return
            self._terminal_seen.add(key)
        logger.info(f"Callback {event} from {instance}")
        for binding in self._callbacks.get(key, []):
            self._dispatch(binding)
            if not self.running:
                return

    def tick(self) -> list[str]:
        """Advance animations and end the run if nothing is left to do.

        Returns:
            Instances whose animation retired on this tick
        """
        with self._lock:
            if not self.running:
                return []
            retired = self.engine.advance(self.graph)
            self._check_drain()
            return retired

    def _check_drain(self):
        if not self.running:
            return
        if self.pending_triggers() or self.engine.active_count():
            return
        self._finish("timeline complete", cancel=False)

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def terminate(self, reason: str = "terminate"):
        """End the run now: cancel animations and unsubscribe all signals.

        Effects already committed by dispatched groups are kept.
        """
        with self._lock:
            if self.state in (SchedulerState.DRAINING, SchedulerState.TERMINATED):
                return
            self._finish(reason, cancel=True)

    def _finish(self, reason: str, cancel: bool):
        self.termination_reason = reason
        self._set_state(SchedulerState.DRAINING)
        if cancel:
            self.engine.cancel_all()
        self.signals.close()
        self._set_state(SchedulerState.TERMINATED)
        logger.info(f"Run ended: {reason}")
        self._done.set()

    def stop(self, reason: str = "stop requested"):
        """Request termination from any thread."""
        if self._thread is not None and self._thread.is_alive():
            if threading.current_thread() != self._thread:
                self.signals.request_stop(reason)
                return
        self.terminate(reason)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run(self):
        """Run the decision loop on the calling thread until the run ends."""
        period = self.config.tick_interval_s
        try:
            self.begin()
            next_tick = time.monotonic() + period
            while self.running:
                timeout = max(0.0, next_tick - time.monotonic())
                signal = self.signals.get(timeout=timeout)
                if signal is not None:
                    self.handle(signal)
                if time.monotonic() >= next_tick:
                    self.tick()
                    next_tick = time.monotonic() + period
        except Exception as e:
            logger.error(f"Scheduler failed: {e}", exc_info=True)
            with self._lock:
                self.error = e
                if not self.terminated:
                    self._finish(f"error: {e}", cancel=True)
        finally:
            self._done.set()

    def start(self) -> threading.Thread:
        """Run the loop on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.info("Scheduler already running")
            return self._thread
        self._thread = threading.Thread(target=self.run, name="livemix-scheduler", daemon=True)
        self._thread.start()
        return self._thread

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the run to end.

        Returns:
            True if the run ended, False on timeout

        Raises:
            Exception: the error that ended the run, if any
        """
        finished = self._done.wait(timeout)
        if finished and self._thread is not None:
            self._thread.join(timeout=5.0)
        if self.error is not None:
            raise self.error
        return finished
