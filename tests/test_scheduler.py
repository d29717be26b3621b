"""Tests for the event scheduler."""

import math
from unittest.mock import MagicMock

import pytest

from livemix.config import RuntimeConfig
from livemix.errors import NoActiveTaskError
from livemix.realtime.scheduler import EventScheduler, SchedulerState
from livemix.realtime.signals import Signal, SignalKind

from .script_helpers import DEMO_SCRIPT, WINDOW_SCRIPT


def progress(runtime, clock, value):
    runtime.scheduler.handle(Signal(SignalKind.PROGRESS, source=clock, value=value))


def callback(runtime, instance, event):
    runtime.scheduler.handle(Signal(SignalKind.CALLBACK, source=instance, event=event))


def fired(runtime):
    return [b.describe() for b in runtime.scheduler.dispatched]


THRESHOLDS = """\
new mp3input s a.mp3
on pre act s play start
on progress s 0.5 act s prop src location string b.mp3
on progress s 0.2 act s prop src location string c.mp3
on progress s 0.5 act s prop src location string d.mp3
on callback s end terminate
"""


class TestPreTriggers:
    """pre groups run once, before anything else."""

    def test_pre_fires_on_begin(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)

        runtime.begin()

        assert runtime.scheduler.state == SchedulerState.RUNNING
        assert fired(runtime) == ["pre"]

    def test_begin_is_idempotent(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)

        runtime.begin()
        runtime.begin()

        assert fired(runtime) == ["pre"]

    def test_queued_signals_wait_for_pre(self, make_runtime):
        """Signals that arrive before the run starts are handled after pre."""
        runtime = make_runtime(DEMO_SCRIPT)
        runtime.on_progress("movie", 0.9)
        runtime.on_callback("movie", "end")

        runtime.start()
        assert runtime.wait(timeout=5.0)

        assert fired(runtime) == [
            "pre",
            "progress movie 0.25",
            "progress movie 0.5",
            "callback movie end",
        ]
        assert runtime.scheduler.termination_reason.startswith("terminate")


class TestProgressTriggers:
    """Progress triggers fire once each, in threshold order."""

    def test_one_jump_fires_in_threshold_then_declaration_order(self, make_runtime, recorder):
        runtime = make_runtime(THRESHOLDS)
        runtime.begin()

        progress(runtime, "s", 0.6)

        assert fired(runtime) == ["pre", "progress s 0.2", "progress s 0.5", "progress s 0.5"]
        locations = [c.args[2].value for c in recorder.calls_to("set_property", "s")]
        assert locations == ["a.mp3", "c.mp3", "b.mp3", "d.mp3"]

    def test_thresholds_fire_as_progress_crosses_them(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)
        runtime.begin()

        progress(runtime, "s", 0.1)
        assert fired(runtime) == ["pre"]
        progress(runtime, "s", 0.2)
        assert fired(runtime) == ["pre", "progress s 0.2"]
        progress(runtime, "s", 0.7)
        assert len(fired(runtime)) == 4

    def test_each_trigger_fires_once(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)
        runtime.begin()

        progress(runtime, "s", 0.6)
        progress(runtime, "s", 0.3)
        progress(runtime, "s", 0.9)

        assert len(fired(runtime)) == 4

    def test_progress_is_recorded_per_clock(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)
        runtime.begin()

        progress(runtime, "s", 0.4)

        assert runtime.graph.progress("s") == 0.4


class TestCallbackTriggers:
    """Callback triggers fire per event; terminal events only once."""

    SCRIPT = """\
new mp3input s a.mp3
on callback s loop act s seek 0 1
on callback s end act s play stop
"""

    def test_recurring_event_fires_every_time(self, make_runtime):
        runtime = make_runtime(self.SCRIPT)
        runtime.begin()

        callback(runtime, "s", "loop")
        callback(runtime, "s", "loop")

        assert fired(runtime) == ["callback s loop", "callback s loop"]

    def test_terminal_event_fires_once(self, make_runtime):
        runtime = make_runtime(self.SCRIPT, RuntimeConfig(terminal_events=["end"]))
        runtime.begin()

        callback(runtime, "s", "end")
        callback(runtime, "s", "end")

        assert fired(runtime) == ["callback s end"]

    def test_terminal_callbacks_keep_the_run_alive(self, make_runtime):
        runtime = make_runtime(self.SCRIPT)
        runtime.begin()

        assert runtime.scheduler.running
        callback(runtime, "s", "end")
        runtime.scheduler.tick()

        assert runtime.scheduler.terminated
        assert runtime.scheduler.termination_reason == "timeline complete"

    def test_unknown_source_is_ignored(self, make_runtime, caplog):
        runtime = make_runtime(self.SCRIPT)
        runtime.begin()

        callback(runtime, "ghost", "end")

        assert fired(runtime) == []
        assert "unknown node" in caplog.text


class TestAnimationAndTermination:
    """Window moves keep running until they retire or the run terminates."""

    def test_cosine_move_midpoint(self, make_runtime):
        runtime = make_runtime(WINDOW_SCRIPT)
        runtime.begin()

        progress(runtime, "w", 0.5)
        runtime.scheduler.tick()

        x, y = runtime.engine.position("w", 0.5)
        expected = 10 * (1 - math.cos(0.5 * math.pi)) / 2
        assert (x, y) == pytest.approx((expected, expected))
        assert (x, y) == pytest.approx((5.0, 5.0))
        window = runtime.graph.window_geometry("w")
        assert window.visible
        assert (window.x, window.y) == (5, 5)

    def test_terminate_mid_animation_cancels_task(self, make_runtime):
        runtime = make_runtime(WINDOW_SCRIPT)
        runtime.begin()
        progress(runtime, "w", 0.5)
        runtime.scheduler.tick()

        callback(runtime, "w", "end")

        assert runtime.scheduler.state == SchedulerState.TERMINATED
        with pytest.raises(NoActiveTaskError):
            runtime.engine.position("w", 0.75)
        assert runtime.signals.closed
        assert not runtime.on_progress("w", 0.9)

    def test_committed_effects_survive_terminate(self, make_runtime):
        runtime = make_runtime(WINDOW_SCRIPT)
        runtime.begin()
        progress(runtime, "w", 0.5)
        runtime.scheduler.tick()

        runtime.scheduler.terminate("test")

        assert runtime.graph.window_geometry("w").visible
        assert (runtime.graph.window_geometry("w").x, runtime.graph.window_geometry("w").y) == (5, 5)

    def test_animation_keeps_run_alive_until_retired(self, make_runtime):
        runtime = make_runtime(
            "new xoutput w 0 0 10 10\n"
            "new mp4input clip c.mp4\n"
            "on pre act w window move clip 0 0 0 0.5 100 0 linear linear\n"
        )
        runtime.begin()

        runtime.scheduler.tick()
        assert runtime.scheduler.running

        progress(runtime, "clip", 0.6)
        assert runtime.scheduler.tick() == ["w"]
        assert runtime.scheduler.terminated
        assert runtime.graph.window_geometry("w").x == 100

    def test_overlapping_moves_on_different_windows(self, make_runtime):
        runtime = make_runtime(
            "new xoutput a 0 0 10 10\n"
            "new xoutput b 0 0 10 10\n"
            "new mp4input clip c.mp4\n"
            "on progress clip 0.1 act a window move clip 0.1 0 0 0.5 100 0 linear linear\n"
            "on progress clip 0.3 act b window move clip 0.3 0 0 0.7 0 100 linear linear\n"
        )
        runtime.begin()

        progress(runtime, "clip", 0.1)
        progress(runtime, "clip", 0.4)
        runtime.scheduler.tick()

        assert runtime.engine.active_count() == 2
        assert runtime.graph.window_geometry("a").x == 75
        assert runtime.graph.window_geometry("b").y == 25


class TestLifecycle:
    """State machine and loop behaviour."""

    def test_script_with_only_pre_drains_immediately(self, make_runtime):
        states = []
        runtime = make_runtime("new aoutput a\non pre act a play start\n")
        runtime.scheduler.on_state_change = states.append

        runtime.begin()

        assert states == [
            SchedulerState.RUNNING,
            SchedulerState.DRAINING,
            SchedulerState.TERMINATED,
        ]

    def test_signals_are_ignored_after_termination(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)
        runtime.begin()
        runtime.scheduler.terminate("done")

        progress(runtime, "s", 0.9)

        assert fired(runtime) == ["pre"]

    def test_pending_triggers(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)
        runtime.begin()

        assert len(runtime.scheduler.pending_triggers()) == 4
        progress(runtime, "s", 0.3)
        assert len(runtime.scheduler.pending_triggers()) == 3

    def test_stop_from_another_thread(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)
        runtime.start()

        runtime.stop("operator")

        assert runtime.wait(timeout=5.0)
        assert runtime.scheduler.termination_reason == "operator"

    def test_fatal_error_is_reraised_from_wait(self, make_runtime):
        runtime = make_runtime(THRESHOLDS)
        executor = MagicMock()
        executor.execute.side_effect = RuntimeError("backend exploded")
        scheduler = EventScheduler(
            runtime.program,
            runtime.graph,
            executor,
            runtime.engine,
            runtime.signals,
            runtime.config,
        )

        scheduler.start()

        with pytest.raises(RuntimeError, match="backend exploded"):
            scheduler.wait(timeout=5.0)
        assert scheduler.terminated
