"""Tests for the FIFO job scheduler."""
from __future__ import annotations

import threading

import pytest

from conftest import FakeBackend, wait_for
from tts_stream.core.errors import EngineDisposedError
from tts_stream.tts.job import Job, JobState
from tts_stream.tts.scheduler import JobScheduler
from tts_stream.tts.vocab import DEFAULT_VOCABULARY as vocab


def make_job(voice, *texts) -> Job:
    return Job.create([vocab.encode(t) for t in texts], voice)


@pytest.fixture
def scheduler_factory():
    created = []

    def factory(backend, **kwargs):
        scheduler = JobScheduler(backend, idle_wait_s=0.01, **kwargs)
        created.append(scheduler)
        return scheduler

    yield factory
    for scheduler in created:
        scheduler.dispose(timeout=1.0)


class TestOrdering:
    def test_jobs_run_in_fifo_order(self, voice, scheduler_factory):
        backend = FakeBackend()
        scheduler = scheduler_factory(backend)

        a = scheduler.enqueue(make_job(voice, "a", "b"))
        b = scheduler.enqueue(make_job(voice, "c"))

        assert wait_for(lambda: a.is_done and b.is_done)
        assert backend.calls == [tuple(vocab.encode(t)) for t in ("a", "b", "c")]
        assert a.state is JobState.COMPLETED
        assert b.state is JobState.COMPLETED

    def test_later_job_waits_for_earlier(self, voice, scheduler_factory):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        scheduler = scheduler_factory(backend)

        a = scheduler.enqueue(make_job(voice, "a"))
        b = scheduler.enqueue(make_job(voice, "b"))
        assert backend.entered.wait(2.0)

        assert scheduler.active_job is a
        assert b.state is JobState.QUEUED
        assert scheduler.stats().queued == 1
        gate.set()
        assert wait_for(lambda: b.is_done)

    def test_enqueue_returns_job(self, voice, scheduler_factory):
        scheduler = scheduler_factory(FakeBackend())
        job = make_job(voice, "a")
        assert scheduler.enqueue(job) is job


class TestCancellation:
    def test_cancel_active_job_moves_on(self, voice, scheduler_factory):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        scheduler = scheduler_factory(backend)

        a = scheduler.enqueue(make_job(voice, "a", "b"))
        b = scheduler.enqueue(make_job(voice, "c"))
        assert backend.entered.wait(2.0)
        a.cancel()
        gate.set()

        assert wait_for(lambda: b.is_done)
        assert a.is_canceled
        assert b.state is JobState.COMPLETED
        assert backend.calls == [tuple(vocab.encode("a")), tuple(vocab.encode("c"))]

    def test_queued_canceled_job_is_skipped(self, voice, scheduler_factory):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        scheduler = scheduler_factory(backend)

        a = scheduler.enqueue(make_job(voice, "a"))
        b = scheduler.enqueue(make_job(voice, "b"))
        c = scheduler.enqueue(make_job(voice, "c"))
        assert backend.entered.wait(2.0)
        b.cancel()
        gate.set()

        assert wait_for(lambda: a.is_done and c.is_done)
        assert tuple(vocab.encode("b")) not in backend.calls
        assert wait_for(lambda: scheduler.stats().jobs_canceled == 1)


class TestFailures:
    def test_failed_job_canceled_and_not_retried(self, voice, scheduler_factory):
        backend = FakeBackend(fail_when=lambda call: call == 0)
        scheduler = scheduler_factory(backend)

        a = scheduler.enqueue(make_job(voice, "a", "b"))
        b = scheduler.enqueue(make_job(voice, "c"))

        assert wait_for(lambda: b.is_done)
        assert a.is_canceled
        assert b.state is JobState.COMPLETED
        assert backend.calls.count(tuple(vocab.encode("a"))) == 1

        stats = scheduler.stats()
        assert stats.jobs_failed == 1
        assert stats.jobs_completed == 1

    def test_custom_error_handler(self, voice, scheduler_factory):
        failures = []
        backend = FakeBackend(fail_when=lambda call: call == 0)
        scheduler = scheduler_factory(backend, on_error=lambda job, exc: failures.append((job, exc)))

        a = scheduler.enqueue(make_job(voice, "a"))
        b = scheduler.enqueue(make_job(voice, "b"))

        assert wait_for(lambda: b.is_done)
        assert failures[0][0] is a
        assert failures[0][1].code == "INFERENCE_FAILED"
        # The handler decided not to cancel; the worker still moved on
        assert not a.is_done

    def test_failing_error_handler_cancels(self, voice, scheduler_factory):
        def handler(job, exc):
            raise RuntimeError("handler bug")

        backend = FakeBackend(fail_when=lambda call: call == 0)
        scheduler = scheduler_factory(backend, on_error=handler)

        a = scheduler.enqueue(make_job(voice, "a"))
        assert wait_for(lambda: a.is_done)
        assert a.is_canceled


class TestDispose:
    def test_dispose_cancels_pending_and_rejects_new(self, voice):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        scheduler = JobScheduler(backend, idle_wait_s=0.01)

        a = scheduler.enqueue(make_job(voice, "a"))
        b = scheduler.enqueue(make_job(voice, "b"))
        assert backend.entered.wait(2.0)

        scheduler.dispose(timeout=0.1)
        gate.set()

        assert a.is_canceled
        assert b.is_canceled
        assert scheduler.disposed
        assert scheduler.stats().disposed
        assert backend.closed == 1
        with pytest.raises(EngineDisposedError):
            scheduler.enqueue(make_job(voice, "c"))

    def test_dispose_twice(self):
        backend = FakeBackend()
        scheduler = JobScheduler(backend, idle_wait_s=0.01)
        scheduler.dispose()
        scheduler.dispose()
        assert backend.closed == 1
