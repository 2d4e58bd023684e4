from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional

from listing_pipeline.core.exceptions import JobNotFoundError
from listing_pipeline.models import QUEUED, JobStatus, StepName, StepRecord, StepStatus


class _JobEntry:
    __slots__ = ("status", "lock")

    def __init__(self, status: JobStatus) -> None:
        self.status = status
        self.lock = asyncio.Lock()


class JobLedger:
    """In-memory, append-only record of every job's step outcomes.

    The table lock only guards creating and looking up entries; each job
    carries its own lock so appends to one job stay ordered without holding
    up other jobs. Reads hand out copies, never the live status.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, _JobEntry] = {}
        self._lock = asyncio.Lock()

    async def register(self, job_id: str, start_time: Optional[datetime] = None) -> JobStatus:
        entry = await self._entry(job_id, create=True, start_time=start_time)
        return self._snapshot(entry)

    async def mark_started(self, job_id: str, step: StepName) -> None:
        entry = await self._entry(job_id, create=True)
        async with entry.lock:
            entry.status.current_step = step
            entry.status.current_status = StepStatus.STARTED.value

    async def append(self, job_id: str, record: StepRecord) -> JobStatus:
        entry = await self._entry(job_id, create=True)
        async with entry.lock:
            entry.status.steps.append(record)
            entry.status.current_step = record.step
            entry.status.current_status = record.status.value
            return self._snapshot(entry)

    async def get(self, job_id: str) -> JobStatus:
        entry = await self._entry(job_id, create=False)
        async with entry.lock:
            return self._snapshot(entry)

    async def _entry(self, job_id: str, create: bool, start_time: Optional[datetime] = None) -> _JobEntry:
        async with self._lock:
            entry = self._jobs.get(job_id)
            if entry is None:
                if not create:
                    raise JobNotFoundError(job_id)
                status = JobStatus(
                    job_id=job_id,
                    start_time=start_time or datetime.now(timezone.utc),
                    current_status=QUEUED,
                )
                entry = self._jobs[job_id] = _JobEntry(status)
            return entry

    @staticmethod
    def _snapshot(entry: _JobEntry) -> JobStatus:
        status = entry.status
        return JobStatus(
            job_id=status.job_id,
            start_time=status.start_time,
            current_step=status.current_step,
            current_status=status.current_status,
            steps=list(status.steps),
        )
