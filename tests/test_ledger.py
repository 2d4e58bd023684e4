from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from listing_pipeline.core.exceptions import JobNotFoundError
from listing_pipeline.models import QUEUED, StepName, StepRecord, StepStatus
from listing_pipeline.services.ledger import JobLedger


def _record(step: StepName, status: StepStatus = StepStatus.COMPLETED, **data) -> StepRecord:
    return StepRecord(step, status, datetime.now(timezone.utc), data)


async def test_unknown_job_is_not_found() -> None:
    ledger = JobLedger()

    with pytest.raises(JobNotFoundError):
        await ledger.get("missing")


async def test_registered_job_is_queued_without_steps() -> None:
    ledger = JobLedger()

    await ledger.register("job-1")
    status = await ledger.get("job-1")

    assert status.current_status == QUEUED
    assert status.current_step is None
    assert status.steps == []
    assert status.to_dict()["id"] == "job-1"


async def test_started_moves_cursor_without_adding_a_record() -> None:
    ledger = JobLedger()
    await ledger.register("job-1")

    await ledger.mark_started("job-1", StepName.VALIDATION)
    status = await ledger.get("job-1")

    assert status.current_step is StepName.VALIDATION
    assert status.current_status == "started"
    assert status.steps == []


async def test_append_keeps_order_and_updates_cursor() -> None:
    ledger = JobLedger()

    await ledger.append("job-1", _record(StepName.VALIDATION, fileCount=2))
    await ledger.append("job-1", _record(StepName.SETTINGS, StepStatus.COMPLETED_WITH_WARNINGS))
    status = await ledger.get("job-1")

    assert [record.step for record in status.steps] == [StepName.VALIDATION, StepName.SETTINGS]
    assert status.current_step is StepName.SETTINGS
    assert status.current_status == "completed_with_warnings"
    assert status.to_dict()["steps"][0]["fileCount"] == 2


async def test_snapshot_is_detached_from_ledger() -> None:
    ledger = JobLedger()
    await ledger.append("job-1", _record(StepName.VALIDATION))

    snapshot = await ledger.get("job-1")
    snapshot.steps.clear()
    snapshot.current_status = "tampered"

    status = await ledger.get("job-1")
    assert len(status.steps) == 1
    assert status.current_status == "completed"


async def test_concurrent_jobs_keep_their_own_order() -> None:
    ledger = JobLedger()
    steps = list(StepName)[:5]

    async def writer(job_id: str) -> None:
        for step in steps:
            await ledger.append(job_id, _record(step))
            await asyncio.sleep(0)

    await asyncio.gather(*(writer(f"job-{index}") for index in range(20)))

    for index in range(20):
        status = await ledger.get(f"job-{index}")
        assert [record.step for record in status.steps] == steps
