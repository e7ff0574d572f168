"""
Tests for the ordered playback queue.

Tests cover:
- Handles play back-to-back in enqueue order
- Abort of the playing handle reports elapsed seconds and fraction
- Aborted queued handles are skipped without callbacks
- abort(raise_canceled=True), abort links
- stop_playback(), volume, nicify, dispose
"""
from __future__ import annotations

import threading

import numpy as np
import pytest

from conftest import FakeClock, FakeDevice, wait_for
from tts_stream.core.config import PlaybackConfig
from tts_stream.core.errors import EngineDisposedError
from tts_stream.tts.playback import HandleState, PlaybackHandle, PlaybackQueue


def config(**overrides) -> PlaybackConfig:
    values = {"sample_rate": 10, "poll_interval_s": 0.005, "nicify": False}
    values.update(overrides)
    return PlaybackConfig(**values)


@pytest.fixture
def queues():
    created = []

    def factory(device, **overrides):
        queue = PlaybackQueue(device, config(**overrides), clock=device.clock)
        created.append(queue)
        return queue

    yield factory
    for queue in created:
        queue.dispose(timeout=1.0)


class TestPlaybackHandle:
    def test_initial_state(self):
        handle = PlaybackHandle(np.zeros(4))
        assert handle.state is HandleState.QUEUED
        assert not handle.aborted
        assert not handle.done

    def test_abort_queued_handle(self):
        canceled = []
        handle = PlaybackHandle(np.zeros(4), on_canceled=lambda s, f: canceled.append((s, f)))

        assert handle.abort() is True
        assert handle.abort() is False
        assert handle.state is HandleState.ABORTED
        assert canceled == []

    def test_abort_raise_canceled(self):
        canceled = []
        handle = PlaybackHandle(np.zeros(4), on_canceled=lambda s, f: canceled.append((s, f)))

        handle.abort(raise_canceled=True)
        assert canceled == [(0.0, 0.0)]

    def test_link_abort(self):
        segment, pause = PlaybackHandle(np.zeros(4)), PlaybackHandle(np.zeros(4))
        segment.link_abort(pause)

        segment.abort()
        assert pause.aborted

    def test_link_after_abort_fires_immediately(self):
        segment, pause = PlaybackHandle(np.zeros(4)), PlaybackHandle(np.zeros(4))
        segment.abort()
        segment.link_abort(pause)
        assert pause.aborted

    def test_link_is_one_way(self):
        segment, pause = PlaybackHandle(np.zeros(4)), PlaybackHandle(np.zeros(4))
        segment.link_abort(pause)

        pause.abort()
        assert not segment.aborted


class TestOrdering:
    def test_back_to_back_in_order(self, queues):
        device = FakeDevice(sample_rate=10)
        queue = queues(device)
        spoken = []

        for value in (0.1, 0.2, 0.3):
            queue.enqueue(np.full(5, value, dtype=np.float32), on_spoken=lambda v=value: spoken.append(v))

        assert queue.wait_until_idle(timeout=5.0)
        assert spoken == [0.1, 0.2, 0.3]
        assert [float(b[0]) for b in device.buffers] == pytest.approx([0.1, 0.2, 0.3])
        assert queue.stats().handles_spoken == 3

    def test_started_before_spoken(self, queues):
        queue = queues(FakeDevice(sample_rate=10))
        calls = []

        handle = queue.enqueue(np.ones(5), on_started=lambda: calls.append("started"),
                               on_spoken=lambda: calls.append("spoken"))

        assert queue.wait_until_idle(timeout=5.0)
        assert calls == ["started", "spoken"]
        assert handle.state is HandleState.COMPLETED

    def test_failing_callback_does_not_stop_queue(self, queues):
        queue = queues(FakeDevice(sample_rate=10))
        spoken = []

        def broken():
            raise RuntimeError("callback bug")

        queue.enqueue(np.ones(5), on_spoken=broken)
        queue.enqueue(np.ones(5), on_spoken=lambda: spoken.append(True))

        assert queue.wait_until_idle(timeout=5.0)
        assert spoken == [True]


class TestAbort:
    def test_abort_mid_playback_reports_extent(self, queues):
        clock = FakeClock()
        device = FakeDevice(clock, sample_rate=10, instant=False)
        queue = queues(device)
        canceled = []
        finished = threading.Event()

        def on_canceled(seconds, fraction):
            canceled.append((seconds, fraction))
            finished.set()

        # 5 seconds of audio at 10 Hz
        handle = queue.enqueue(np.ones(50, dtype=np.float32), on_canceled=on_canceled)
        assert device.played.wait(2.0)
        clock.advance(2.5)
        handle.abort()

        assert finished.wait(2.0)
        seconds, fraction = canceled[0]
        assert seconds == pytest.approx(2.5)
        assert fraction == pytest.approx(0.5)
        assert handle.state is HandleState.ABORTED
        assert queue.stats().handles_canceled == 1

    def test_natural_end_with_slow_device(self, queues):
        clock = FakeClock()
        device = FakeDevice(clock, sample_rate=10, instant=False)
        queue = queues(device)
        spoken = threading.Event()

        queue.enqueue(np.ones(20, dtype=np.float32), on_spoken=spoken.set)
        assert device.played.wait(2.0)
        clock.advance(2.0)

        assert spoken.wait(2.0)

    def test_aborted_queued_handle_skipped(self, queues):
        clock = FakeClock()
        device = FakeDevice(clock, sample_rate=10, instant=False)
        queue = queues(device)
        second_calls = []

        first = queue.enqueue(np.ones(50, dtype=np.float32))
        second = queue.enqueue(
            np.ones(50, dtype=np.float32),
            on_started=lambda: second_calls.append("started"),
            on_canceled=lambda s, f: second_calls.append("canceled"),
        )
        assert device.played.wait(2.0)
        second.abort()
        first.abort()

        assert queue.wait_until_idle(timeout=5.0)
        assert second_calls == []
        stats = queue.stats()
        assert stats.handles_canceled == 1
        assert stats.handles_skipped == 1
        assert len(device.buffers) == 1

    def test_stop_playback_clears_queue(self, queues):
        clock = FakeClock()
        device = FakeDevice(clock, sample_rate=10, instant=False)
        queue = queues(device)

        handles = [queue.enqueue(np.ones(50, dtype=np.float32)) for _ in range(3)]
        assert device.played.wait(2.0)
        queue.stop_playback()

        assert queue.wait_until_idle(timeout=5.0)
        assert all(h.aborted for h in handles)
        assert queue.stats().queued == 0
        assert len(device.buffers) == 1

    def test_stop_playback_keep_queue(self, queues):
        clock = FakeClock()
        device = FakeDevice(clock, sample_rate=10, instant=False)
        queue = queues(device)

        first = queue.enqueue(np.ones(50, dtype=np.float32))
        second = queue.enqueue(np.ones(50, dtype=np.float32))
        assert device.played.wait(2.0)
        device.played.clear()
        queue.stop_playback(clear_queue=False)

        assert device.played.wait(2.0)
        assert first.aborted
        assert second.state is HandleState.IN_PROGRESS
        second.abort()


class TestSettings:
    def test_volume_clamped(self, queues):
        device = FakeDevice(sample_rate=10)
        queue = queues(device)

        queue.set_volume(1.7)
        assert queue.volume == 1.0
        assert device.volume == 1.0

        queue.set_volume(-1)
        assert queue.volume == 0.0

    def test_nicify_trims_before_device(self, queues):
        device = FakeDevice(sample_rate=10)
        queue = queues(device, nicify=True)

        queue.enqueue(np.array([0.0, 0.0, 0.5, 0.5, 0.0], dtype=np.float32))
        assert queue.wait_until_idle(timeout=5.0)
        assert device.buffers[0].tolist() == [0.5, 0.5]

    def test_nicify_toggle(self, queues):
        device = FakeDevice(sample_rate=10)
        queue = queues(device, nicify=True)
        queue.nicify = False

        queue.enqueue(np.array([0.0, 0.5, 0.0], dtype=np.float32))
        assert queue.wait_until_idle(timeout=5.0)
        assert len(device.buffers[0]) == 3
        assert queue.stats().nicify is False


    def test_idle_wait_from_config(self, queues):
        device = FakeDevice(sample_rate=10)
        queue = queues(device, idle_wait_s=0.02)
        timeouts = []
        wait = queue._cond.wait

        def recording_wait(timeout=None):
            timeouts.append(timeout)
            return wait(timeout)

        queue._cond.wait = recording_wait
        assert wait_for(lambda: 0.02 in timeouts)

class TestDispose:
    def test_enqueue_after_dispose(self):
        device = FakeDevice(sample_rate=10)
        queue = PlaybackQueue(device, config(), clock=device.clock)
        queue.dispose()

        assert device.closed
        assert queue.stats().disposed
        with pytest.raises(EngineDisposedError):
            queue.enqueue(np.ones(5))

    def test_dispose_aborts_pending(self):
        clock = FakeClock()
        device = FakeDevice(clock, sample_rate=10, instant=False)
        queue = PlaybackQueue(device, config(), clock=clock)

        playing = queue.enqueue(np.ones(50, dtype=np.float32))
        waiting = queue.enqueue(np.ones(50, dtype=np.float32))
        assert device.played.wait(2.0)
        queue.dispose(timeout=2.0)

        assert playing.aborted
        assert waiting.aborted
