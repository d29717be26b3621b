"""End-to-end tests for LiveMixRuntime."""

import pytest

from livemix.config import RuntimeConfig
from livemix.errors import DanglingReferenceError, PlugConflictError
from livemix.graph.collaborator import RecordingCollaborator
from livemix.graph.manager import TransportState
from livemix.realtime.simulation import SimulatedPlayback
from livemix.runtime import LiveMixRuntime

from .script_helpers import DEMO_SCRIPT

PASSTHROUGH = "raw m 1 proxysrc name=in ! proxysink name=out\nwar\n"


class TestBuild:
    """build() validates before touching the backend."""

    def test_instance_exposes_template_ports(self, recorder):
        runtime = LiveMixRuntime.from_script(PASSTHROUGH + "new m inst1\n", recorder)

        runtime.build()

        assert set(runtime.graph.ports("inst1")) == {"in", "out"}
        assert runtime.built

    def test_structural_error_creates_nothing(self, recorder):
        runtime = LiveMixRuntime.from_script(
            "new mp3input a a.mp3\nplug audio_out a audio_in speakers\n", recorder
        )

        with pytest.raises(DanglingReferenceError):
            runtime.build()
        assert recorder.calls == []
        assert not runtime.built

    def test_build_is_idempotent(self, recorder):
        runtime = LiveMixRuntime.from_script(DEMO_SCRIPT, recorder)

        first = runtime.build()
        calls = len(recorder.calls)

        assert runtime.build() is first
        assert len(recorder.calls) == calls

    def test_plugs_are_applied_in_order(self, recorder):
        runtime = LiveMixRuntime.from_script(DEMO_SCRIPT, recorder)

        runtime.build()

        assert runtime.graph.edges() == [
            ("movie", "video_out", "f", "video_in"),
            ("f", "video_out", "screen", "video_in"),
            ("movie", "audio_out", "speakers", "audio_in"),
        ]


class TestDoublePlug:
    """A second plug into the same input port."""

    SCRIPT = PASSTHROUGH + (
        "new m a\n"
        "new m b\n"
        "new m c\n"
        "plug out a in c\n"
        "plug out b in c\n"
    )

    def test_default_policy_rewires(self, recorder):
        runtime = LiveMixRuntime.from_script(self.SCRIPT, recorder)

        runtime.build()

        assert runtime.graph.source_of("c", "in") == ("b", "out")
        assert len(recorder.calls_to("connect")) == 2

    def test_error_policy_rejects_before_building(self, recorder):
        runtime = LiveMixRuntime.from_script(
            self.SCRIPT, recorder, RuntimeConfig(rewire_policy="error")
        )

        with pytest.raises(PlugConflictError):
            runtime.build()
        assert recorder.calls == []


class TestRun:
    """Threaded runs driven by simulated clocks."""

    def test_full_run_with_simulated_playback(self):
        recorder = RecordingCollaborator()
        runtime = LiveMixRuntime.from_script(
            DEMO_SCRIPT, recorder, RuntimeConfig(tick_interval_ms=2)
        )
        runtime.build()
        playback = SimulatedPlayback(runtime.graph, runtime.signals, duration_s=0.2, interval_s=0.01)
        playback.start()
        try:
            finished = runtime.run(timeout=10.0)
        finally:
            playback.stop()

        assert finished
        assert [b.describe() for b in runtime.scheduler.dispatched] == [
            "pre",
            "progress movie 0.25",
            "progress movie 0.5",
            "callback movie end",
        ]
        assert runtime.scheduler.termination_reason.startswith("terminate")
        assert runtime.graph.window_geometry("screen").visible
        assert runtime.graph.transport_state("movie") == TransportState.PLAYING

    def test_move_ending_with_its_clock_completes_the_run(self):
        recorder = RecordingCollaborator()
        runtime = LiveMixRuntime.from_script(
            "new xoutput w 0 0 10 10\n"
            "on pre wrap\n"
            "act w play start\n"
            "act w window move w 0.0 0 0 1.0 10 10 mcos mcos\n"
            "parw\n",
            recorder,
            RuntimeConfig(tick_interval_ms=2),
        )
        runtime.build()
        playback = SimulatedPlayback(runtime.graph, runtime.signals, duration_s=0.2, interval_s=0.01)
        playback.start()
        try:
            finished = runtime.run(timeout=10.0)
        finally:
            playback.stop()

        assert finished
        assert runtime.scheduler.termination_reason == "timeline complete"
        assert runtime.graph.progress("w") == 1.0
        window = runtime.graph.window_geometry("w")
        assert (window.x, window.y) == (10, 10)
        assert runtime.engine.active_count() == 0

    def test_run_times_out_and_stops(self, recorder):
        runtime = LiveMixRuntime.from_script(
            "new mp3input s a.mp3\non callback s end terminate\n", recorder
        )

        assert not runtime.run(timeout=0.05)
        assert runtime.scheduler.terminated
        assert runtime.scheduler.termination_reason == "timeout"

    def test_from_file(self, tmp_path, recorder):
        script = tmp_path / "show.lm"
        script.write_text("new aoutput a\non pre act a play start\n")

        runtime = LiveMixRuntime.from_file(script, recorder)

        assert runtime.run(timeout=5.0)
        assert runtime.graph.transport_state("a") == TransportState.PLAYING
