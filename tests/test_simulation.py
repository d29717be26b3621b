"""Tests for simulated playback clocks."""

import pytest

from livemix.realtime.signals import SignalKind
from livemix.realtime.simulation import SimulatedPlayback


def drain(signals):
    out = []
    while (signal := signals.get_nowait()) is not None:
        out.append(signal)
    return out


@pytest.fixture
def runtime(make_runtime):
    return make_runtime("new mp3input s a.mp3\nnew aoutput idle\n")


@pytest.fixture
def playback(runtime):
    return SimulatedPlayback(runtime.graph, runtime.signals, duration_s=2.0)


class TestSimulatedPlayback:
    """Tests for SimulatedPlayback.step."""

    def test_only_playing_instances_report(self, runtime, playback):
        runtime.graph.set_transport("s", "start")

        playback.step(0.5)

        (signal,) = drain(runtime.signals)
        assert signal.kind == SignalKind.PROGRESS
        assert signal.source == "s"
        assert signal.value == pytest.approx(0.25)

    def test_end_is_reported_once(self, runtime, playback):
        runtime.graph.set_transport("s", "start")

        playback.step(1.5)
        playback.step(1.5)
        playback.step(1.5)

        signals = drain(runtime.signals)
        assert [s.kind for s in signals] == [
            SignalKind.PROGRESS,
            SignalKind.PROGRESS,
            SignalKind.CALLBACK,
        ]
        assert signals[1].value == 1.0
        assert signals[2].event == "end"

    def test_pause_freezes_clock(self, runtime, playback):
        runtime.graph.set_transport("s", "start")
        playback.step(0.5)
        runtime.graph.set_transport("s", "pause")
        playback.step(0.5)
        runtime.graph.set_transport("s", "start")
        playback.step(0.5)

        values = [s.value for s in drain(runtime.signals)]
        assert values == pytest.approx([0.25, 0.5])

    def test_stop_rewinds(self, runtime, playback):
        runtime.graph.set_transport("s", "start")
        playback.step(1.0)
        runtime.graph.set_transport("s", "stop")
        playback.step(1.0)
        runtime.graph.set_transport("s", "start")
        playback.step(0.5)

        values = [s.value for s in drain(runtime.signals)]
        assert values == pytest.approx([0.5, 0.25])

    def test_seek_jumps_to_segment_start(self, runtime, playback):
        runtime.graph.set_transport("s", "start")
        playback.step(0.2)
        runtime.graph.set_transport("s", "seek", 1.0, 2.0)
        playback.step(0.2)

        values = [s.value for s in drain(runtime.signals)]
        assert values == pytest.approx([0.1, 0.6])

    def test_thread_stops_when_channel_closes(self, runtime, playback):
        playback.interval_s = 0.01
        playback.start()

        runtime.signals.close()
        playback.worker_thread.join(timeout=5.0)

        assert not playback.worker_thread.is_alive()
        playback.stop()
