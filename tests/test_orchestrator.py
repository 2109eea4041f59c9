"""Tests for the job orchestrator."""

import asyncio

import pytest
from openpyxl import load_workbook

from vahan_extractor.core.config import AuthConfig, ExtractionConfig
from vahan_extractor.models.job import JobStatus
from vahan_extractor.services.orchestrator import JobNotFound, JobNotStartable, SessionBusy

from conftest import FakeExtractor, FakeSession


async def run_job(orchestrator, job_id):
    await orchestrator.start(job_id)
    await orchestrator.wait()


async def test_flaky_vehicle_recovers_and_all_succeed(make_orchestrator, create_job, store):
    extractor = FakeExtractor(flaky={"CD02": 2})
    orchestrator = make_orchestrator(extractor=extractor)
    job = await create_job(["AB01", "cd 02", "EF03"])

    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.COMPLETED
    assert (job.total_vehicles, job.processed_vehicles) == (3, 3)
    assert (job.successful_extractions, job.failed_extractions) == (3, 0)
    assert job.output_file_path is not None
    results = await store.get_all_results(job.id)
    assert [r.vehicle_number for r in results] == ["AB01", "CD02", "EF03"]
    assert all(r.success for r in results)


async def test_mixed_outcomes_complete_in_order(make_orchestrator, create_job, store, tmp_path):
    """One vehicle keeps failing; the job still completes with results in input order."""
    extractor = FakeExtractor(failing={"CD02"})
    session = FakeSession()
    orchestrator = make_orchestrator(extractor=extractor, sessions=session)
    job = await create_job(["AB01", "cd 02", "EF03"])

    events = []
    await orchestrator.subscribe_progress(job.id, events.append)
    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.COMPLETED
    assert job.processed_vehicles == 3
    assert job.successful_extractions == 2
    assert job.failed_extractions == 1

    results = await store.get_all_results(job.id)
    assert [r.vehicle_number for r in results] == ["AB01", "CD02", "EF03"]
    assert [r.success for r in results] == [True, False, True]
    assert results[1].error_message == "No details for CD02"
    assert results[0].maker == "MAKER-AB01"

    # First attempt plus two retries, each retry preceded by a recovery
    assert extractor.attempts("CD02") == 3
    assert extractor.attempts("AB01") == 1
    assert session.navigations == 1 + 2

    workbook = load_workbook(job.output_file_path)
    rows = list(workbook["Results"].iter_rows(values_only=True))
    assert rows[0][0] == "vehicle_number"
    assert [row[0] for row in rows[1:]] == ["AB01", "CD02", "EF03"]

    assert events[0].message == "Current status: pending"
    assert events[-1].status == JobStatus.COMPLETED
    assert events[-1].message == "Extraction complete"
    messages = [e.message for e in events]
    assert messages.index("Processing CD02") < messages.index("Completed CD02")


async def test_progress_counters_stay_consistent(make_orchestrator, create_job):
    orchestrator = make_orchestrator(extractor=FakeExtractor(failing={"B2", "D4"}))
    job = await create_job(["A1", "B2", "C3", "D4"])

    events = []
    await orchestrator.subscribe_progress(job.id, events.append)
    await run_job(orchestrator, job.id)

    previous = 0
    for event in events:
        assert event.processed == event.successful + event.failed
        assert event.processed <= event.total
        assert event.processed >= previous
        previous = event.processed
    assert events[-1].processed == 4
    assert events[-1].failed == 2


async def test_flaky_vehicle_recovers_within_retries(make_orchestrator, create_job, store):
    extractor = FakeExtractor(flaky={"AB01": 2})
    session = FakeSession()
    orchestrator = make_orchestrator(extractor=extractor, sessions=session)
    job = await create_job(["AB01"])

    await run_job(orchestrator, job.id)

    results = await store.get_all_results(job.id)
    assert results[0].success is True
    assert extractor.attempts("AB01") == 3
    assert session.navigations == 1 + 2


async def test_item_timeout_becomes_failed_result(make_orchestrator, create_job, store):
    config = ExtractionConfig(
        max_retries=1, retry_delay=0, retry_jitter=0, item_timeout=0.05, item_delay=0
    )
    extractor = FakeExtractor(delay=1.0)
    orchestrator = make_orchestrator(extractor=extractor, extraction_config=config)
    job = await create_job(["AB01"])

    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.COMPLETED
    assert job.failed_extractions == 1
    results = await store.get_all_results(job.id)
    assert results[0].error_message == "TimeoutError"
    assert extractor.attempts("AB01") == 2


async def test_cancel_between_items(make_orchestrator, create_job, store):
    extractor = FakeExtractor()
    orchestrator = make_orchestrator(extractor=extractor)
    job = await create_job(["V1", "V2", "V3", "V4", "V5"])

    async def cancel_on_second(vehicle_number):
        if vehicle_number == "V2":
            await orchestrator.cancel(job.id)

    extractor.on_extract = cancel_on_second
    events = []
    await orchestrator.subscribe_progress(job.id, events.append)
    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.CANCELLED
    assert job.processed_vehicles == 2
    assert extractor.calls == ["V1", "V2"]
    assert len(await store.get_all_results(job.id)) == 2
    assert job.output_file_path is None
    assert events[-1].status == JobStatus.CANCELLED
    assert orchestrator.active_job_id is None


async def test_cancel_during_last_item_prevents_completion(make_orchestrator, create_job, store):
    extractor = FakeExtractor()
    orchestrator = make_orchestrator(extractor=extractor)
    job = await create_job(["V1", "V2"])

    async def cancel_on_last(vehicle_number):
        if vehicle_number == "V2":
            await orchestrator.cancel(job.id)

    extractor.on_extract = cancel_on_last
    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.CANCELLED
    assert job.processed_vehicles == 2
    assert job.output_file_path is None


async def test_cancel_is_idempotent(make_orchestrator, create_job):
    orchestrator = make_orchestrator()
    job = await create_job(["AB01"])

    first = await orchestrator.cancel(job.id)
    second = await orchestrator.cancel(job.id)

    assert first.status == JobStatus.CANCELLED
    assert second.status == JobStatus.CANCELLED


async def test_cancel_terminal_job_leaves_it_unchanged(make_orchestrator, create_job):
    orchestrator = make_orchestrator()
    job = await create_job(["AB01"])
    await run_job(orchestrator, job.id)

    job = await orchestrator.cancel(job.id)
    assert job.status == JobStatus.COMPLETED


async def test_cancel_unknown_job_returns_none(make_orchestrator):
    orchestrator = make_orchestrator()
    assert await orchestrator.cancel("missing") is None


async def test_auth_gate_waits_for_login(make_orchestrator, create_job, store):
    session = FakeSession(auth_answers=[False, False, True])
    orchestrator = make_orchestrator(sessions=session)
    job = await create_job(["AB01"])

    statuses = []
    await orchestrator.subscribe_progress(job.id, lambda e: statuses.append(e.status))
    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.COMPLETED
    assert session.auth_checks == 3
    assert statuses.index(JobStatus.WAITING_AUTH) < statuses.index(JobStatus.RUNNING)


async def test_auth_timeout_fails_job(make_orchestrator, create_job, store):
    session = FakeSession(authenticated=False)
    extractor = FakeExtractor()
    orchestrator = make_orchestrator(
        sessions=session,
        extractor=extractor,
        auth_config=AuthConfig(poll_interval=0.01, max_wait=0.05),
    )
    job = await create_job(["AB01"])

    events = []
    await orchestrator.subscribe_progress(job.id, events.append)
    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "Authentication timeout"
    assert extractor.calls == []
    assert events[-1].message == "Authentication timeout"


async def test_cancel_while_waiting_for_auth(make_orchestrator, create_job, store):
    session = FakeSession(authenticated=False)
    extractor = FakeExtractor()
    orchestrator = make_orchestrator(
        sessions=session,
        extractor=extractor,
        auth_config=AuthConfig(poll_interval=10, max_wait=60),
    )
    job = await create_job(["AB01"])

    await orchestrator.start(job.id)
    await asyncio.sleep(0.05)
    assert (await store.get_job(job.id)).status == JobStatus.WAITING_AUTH

    await orchestrator.cancel(job.id)
    await asyncio.wait_for(orchestrator.wait(), timeout=2)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.CANCELLED
    assert extractor.calls == []


async def test_session_failure_fails_job(make_orchestrator, create_job, store):
    orchestrator = make_orchestrator(sessions=FakeSession(fail_acquire=True))
    job = await create_job(["AB01"])

    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.FAILED
    assert "Failed to launch browser" in job.error_message
    assert orchestrator.active_job_id is None


async def test_warm_up_failure_is_not_fatal(make_orchestrator, create_job, store, fake_session):
    fake_session.fail_warm_up = True
    orchestrator = make_orchestrator()
    job = await create_job(["AB01"])

    await run_job(orchestrator, job.id)

    assert (await store.get_job(job.id)).status == JobStatus.COMPLETED


async def test_late_subscriber_gets_final_state(make_orchestrator, create_job):
    orchestrator = make_orchestrator()
    job = await create_job(["AB01", "CD02", "EF03"])
    await run_job(orchestrator, job.id)

    events = []
    await orchestrator.subscribe_progress(job.id, events.append)

    assert len(events) == 1
    assert events[0].status == JobStatus.COMPLETED
    assert events[0].processed == 3
    assert events[0].total == 3


async def test_restart_failed_job_replaces_results(make_orchestrator, create_job, store, tmp_path):
    writes = {"n": 0}

    def flaky_writer(job_id, rows):
        writes["n"] += 1
        if writes["n"] == 1:
            raise OSError("disk full")
        return str(tmp_path / f"{job_id}_results.xlsx")

    orchestrator = make_orchestrator(write_results_fn=flaky_writer)
    job = await create_job(["AB01", "CD02", "EF03"])

    await run_job(orchestrator, job.id)
    job = await store.get_job(job.id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "disk full"
    assert len(await store.get_all_results(job.id)) == 3

    await run_job(orchestrator, job.id)
    job = await store.get_job(job.id)
    assert job.status == JobStatus.COMPLETED
    assert job.error_message is None
    assert job.processed_vehicles == 3
    results = await store.get_all_results(job.id)
    assert [r.vehicle_number for r in results] == ["AB01", "CD02", "EF03"]


async def test_start_unknown_job(make_orchestrator):
    orchestrator = make_orchestrator()
    with pytest.raises(JobNotFound):
        await orchestrator.start("missing")


async def test_start_completed_job_rejected(make_orchestrator, create_job):
    orchestrator = make_orchestrator()
    job = await create_job(["AB01"])
    await run_job(orchestrator, job.id)

    with pytest.raises(JobNotStartable):
        await orchestrator.start(job.id)


async def test_start_cancelled_job_rejected(make_orchestrator, create_job):
    orchestrator = make_orchestrator()
    job = await create_job(["AB01"])
    await orchestrator.cancel(job.id)

    with pytest.raises(JobNotStartable):
        await orchestrator.start(job.id)


async def test_second_job_rejected_while_session_busy(make_orchestrator, create_job, store):
    orchestrator = make_orchestrator(
        sessions=FakeSession(authenticated=False),
        auth_config=AuthConfig(poll_interval=10, max_wait=60),
    )
    first = await create_job(["AB01"])
    second = await create_job(["CD02"])

    await orchestrator.start(first.id)
    assert orchestrator.active_job_id == first.id

    with pytest.raises(SessionBusy):
        await orchestrator.start(second.id)
    assert (await store.get_job(second.id)).status == JobStatus.PENDING

    await orchestrator.stop()
    assert (await store.get_job(first.id)).status == JobStatus.CANCELLED
    assert orchestrator.active_job_id is None


def cancel_before_status_write(monkeypatch, store, orchestrator, status):
    """Commit a cancel just before the orchestrator's next write of ``status``."""
    original = store.update_job_status
    raced = []

    async def update_job_status(job_id, new_status, *args, **kwargs):
        if new_status == status and not raced:
            raced.append(job_id)
            await orchestrator.cancel(job_id)
        return await original(job_id, new_status, *args, **kwargs)

    monkeypatch.setattr(store, "update_job_status", update_job_status)
    return raced


async def test_cancel_racing_running_write_stays_cancelled(
    make_orchestrator, create_job, store, monkeypatch
):
    extractor = FakeExtractor()
    orchestrator = make_orchestrator(extractor=extractor)
    job = await create_job(["AB01", "CD02"])
    raced = cancel_before_status_write(monkeypatch, store, orchestrator, JobStatus.RUNNING)

    events = []
    await orchestrator.subscribe_progress(job.id, events.append)
    await run_job(orchestrator, job.id)

    assert raced == [job.id]
    job = await store.get_job(job.id)
    assert job.status == JobStatus.CANCELLED
    assert extractor.calls == []
    assert "Starting extraction" not in [e.message for e in events]
    assert events[-1].status == JobStatus.CANCELLED


async def test_cancel_racing_auth_timeout_stays_cancelled(
    make_orchestrator, create_job, store, monkeypatch
):
    orchestrator = make_orchestrator(
        sessions=FakeSession(authenticated=False),
        auth_config=AuthConfig(poll_interval=0.01, max_wait=0.05),
    )
    job = await create_job(["AB01"])
    cancel_before_status_write(monkeypatch, store, orchestrator, JobStatus.FAILED)

    events = []
    await orchestrator.subscribe_progress(job.id, events.append)
    await run_job(orchestrator, job.id)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.CANCELLED
    assert job.error_message is None
    assert JobStatus.FAILED not in [e.status for e in events]
    assert events[-1].message == "Job cancelled"


async def test_cancel_interrupts_pacing_delay(make_orchestrator, create_job, store):
    extractor = FakeExtractor()
    orchestrator = make_orchestrator(
        extractor=extractor,
        extraction_config=ExtractionConfig(
            max_retries=0, retry_delay=0, retry_jitter=0, item_timeout=5, item_delay=30
        ),
    )
    job = await create_job(["AB01", "CD02"])

    await orchestrator.start(job.id)
    while (await store.get_job(job.id)).processed_vehicles < 1:
        await asyncio.sleep(0.01)

    await orchestrator.cancel(job.id)
    await asyncio.wait_for(orchestrator.wait(), timeout=2)

    job = await store.get_job(job.id)
    assert job.status == JobStatus.CANCELLED
    assert extractor.calls == ["AB01"]
