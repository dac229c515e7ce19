import threading

import numpy as np

from audiowaveformlib.events import EventBus
from audiowaveformlib.models import JobPriority, JobStatus, SamplingJob
from audiowaveformlib.scheduler import SamplingScheduler


def _job(source, name: str, order: list, *, gate: threading.Event | None = None,
         started: threading.Event | None = None, done: threading.Event | None = None,
         results: list | None = None) -> SamplingJob:
    def work(cancelled):
        if started is not None:
            started.set()
        if gate is not None:
            assert gate.wait(5)
        order.append(name)
        return np.zeros(1, dtype=np.float32)

    def on_complete(samples):
        if results is not None:
            results.append((name, samples))
        if done is not None:
            done.set()

    return SamplingJob(source=source, work=work, on_complete=on_complete)


def test_high_priority_jumps_queued_normal_jobs(dummy_source) -> None:
    order: list = []
    scheduler = SamplingScheduler(autostart=False)
    scheduler.submit(_job(dummy_source, "A", order))
    scheduler.submit(_job(dummy_source, "B", order))
    scheduler.submit(_job(dummy_source, "C", order), high_priority=True)

    finished = scheduler.run_all()

    assert order == ["C", "A", "B"]
    assert [j.status for j in finished] == [JobStatus.COMPLETED] * 3
    assert finished[0].priority is JobPriority.HIGH


def test_running_job_is_not_preempted(dummy_source) -> None:
    order: list = []
    gate, a_started, b_done = threading.Event(), threading.Event(), threading.Event()
    scheduler = SamplingScheduler()
    try:
        scheduler.submit(_job(dummy_source, "A", order, gate=gate, started=a_started))
        assert a_started.wait(5)
        scheduler.submit(_job(dummy_source, "B", order, done=b_done))
        scheduler.submit(_job(dummy_source, "C", order), high_priority=True)
        gate.set()
        assert b_done.wait(5)
    finally:
        scheduler.shutdown()

    assert order == ["A", "C", "B"]


def test_fifo_within_priority_class(dummy_source) -> None:
    order: list = []
    scheduler = SamplingScheduler(autostart=False)
    for name in ("n1", "n2"):
        scheduler.submit(_job(dummy_source, name, order))
    scheduler.submit(_job(dummy_source, "h1", order), high_priority=True)
    scheduler.submit(_job(dummy_source, "h2", order), high_priority=True)
    scheduler.run_all()
    # each high-priority submission goes to the head
    assert order == ["h2", "h1", "n1", "n2"]


def test_cancelled_job_is_skipped_without_work(dummy_source) -> None:
    order: list = []
    results: list = []
    events: list = []
    bus = EventBus()
    bus.subscribe("job.skipped", lambda **data: events.append(data["job_id"]))
    scheduler = SamplingScheduler(event_bus=bus, autostart=False)

    job = scheduler.submit(_job(dummy_source, "A", order, results=results))
    scheduler.cancel(job)
    scheduler.run_all()

    assert order == []
    assert job.status is JobStatus.CANCELLED
    assert results == [("A", None)]
    assert events == [job.job_id]


def test_failing_job_reports_failure(dummy_source) -> None:
    results: list = []

    def work(cancelled):
        raise RuntimeError("decoder exploded")

    job = SamplingJob(source=dummy_source, work=work,
                      on_complete=lambda samples: results.append(samples))
    scheduler = SamplingScheduler(autostart=False)
    scheduler.submit(job)
    scheduler.run_all()

    assert job.status is JobStatus.FAILED
    assert "decoder exploded" in job.error
    assert results == [None]
    assert job.completed_at is not None


def test_events_follow_job_lifecycle(dummy_source) -> None:
    seen: list = []
    bus = EventBus()
    for name in ("job.submitted", "job.start", "job.complete"):
        bus.subscribe(name, lambda _name=name, **data: seen.append(_name))
    scheduler = SamplingScheduler(event_bus=bus, autostart=False)
    scheduler.submit(_job(dummy_source, "A", []))
    scheduler.run_all()
    assert seen == ["job.submitted", "job.start", "job.complete"]


def test_one_job_runs_at_a_time(dummy_source) -> None:
    active = 0
    peak = 0
    lock = threading.Lock()
    all_done = threading.Event()
    remaining = [6]

    def work(cancelled):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        with lock:
            active -= 1
        return np.zeros(1, dtype=np.float32)

    def on_complete(samples):
        with lock:
            remaining[0] -= 1
            if remaining[0] == 0:
                all_done.set()

    scheduler = SamplingScheduler()
    try:
        for i in range(6):
            scheduler.submit(SamplingJob(source=dummy_source, work=work, on_complete=on_complete),
                             high_priority=bool(i % 2))
        # a manual drain racing the worker must not overlap with it
        scheduler.run_all()
        assert all_done.wait(5)
    finally:
        scheduler.shutdown()
    assert peak == 1


def test_pending_lists_queue_in_dispatch_order(dummy_source) -> None:
    scheduler = SamplingScheduler(autostart=False)
    a = scheduler.submit(_job(dummy_source, "A", []))
    b = scheduler.submit(_job(dummy_source, "B", []), high_priority=True)
    assert scheduler.pending() == [b, a]
