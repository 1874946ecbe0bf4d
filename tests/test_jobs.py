from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mutate.application import JobService
from mutate.core.errors import ConfigurationNotFound, JobNotFound, JobStateError
from mutate.core.schema import Configuration
from mutate.domain import Job, JobStatus
from mutate.infrastructure import InMemoryConfigStore, InMemoryJobStore, InMemoryQueueBroker

from workbooks import rule


def _job(status: JobStatus = JobStatus.PENDING) -> Job:
    return Job(id="job-1", organization_id="org", configuration_id="cfg", file_name="in.xlsx", status=status)


def _service(**config_overrides):
    data = {"id": "cfg", "organizationId": "org", "rules": [rule("EVALUATE_FORMULAS")]}
    data.update(config_overrides)
    jobs = InMemoryJobStore()
    broker = InMemoryQueueBroker()
    service = JobService(jobs, InMemoryConfigStore([Configuration.from_dict(data)]), broker, id_factory=lambda: "job-1")
    return service, jobs, broker


# ----------------------------------------------------------------------
# lifecycle
# ----------------------------------------------------------------------
def test_happy_path_transitions():
    job = _job()

    job.transition(JobStatus.PROCESSING)
    job.transition(JobStatus.COMPLETED)

    assert job.status is JobStatus.COMPLETED
    assert job.status.terminal


@pytest.mark.parametrize(
    "start, target",
    [
        (JobStatus.PENDING, JobStatus.COMPLETED),
        (JobStatus.PENDING, JobStatus.FAILED),
        (JobStatus.COMPLETED, JobStatus.PROCESSING),
        (JobStatus.COMPLETED, JobStatus.FAILED),
        (JobStatus.FAILED, JobStatus.PROCESSING),
        (JobStatus.FAILED, JobStatus.COMPLETED),
    ],
)
def test_illegal_transitions_raise(start, target):
    job = _job(start)

    with pytest.raises(JobStateError):
        job.transition(target)
    assert job.status is start


def test_failed_job_can_be_picked_up_again_on_redelivery():
    job = _job(JobStatus.FAILED)

    job.transition(JobStatus.PROCESSING, redelivery=True)

    assert job.status is JobStatus.PROCESSING


def test_abandoned_processing_job_restarts_on_redelivery():
    job = _job(JobStatus.PROCESSING)

    with pytest.raises(JobStateError):
        job.transition(JobStatus.PROCESSING)
    job.transition(JobStatus.PROCESSING, redelivery=True)

    assert job.status is JobStatus.PROCESSING


def test_completed_job_stays_completed_on_redelivery():
    job = _job(JobStatus.COMPLETED)

    assert not job.can_transition(JobStatus.PROCESSING, redelivery=True)


def test_progress_is_clamped():
    jobs = InMemoryJobStore()
    jobs.add(_job())

    jobs.set_progress("job-1", 140)
    assert jobs.get("job-1").progress == 100
    jobs.set_progress("job-1", -5)
    assert jobs.get("job-1").progress == 0
    with pytest.raises(JobNotFound):
        jobs.set_progress("missing", 10)


# ----------------------------------------------------------------------
# service
# ----------------------------------------------------------------------
def test_submit_creates_pending_job_and_enqueues():
    service, jobs, broker = _service()

    async def scenario():
        job = await service.submit(
            organization_id="org",
            configuration_id="cfg",
            file_name="../../etc/report.xlsx",
            data=b"bytes",
            callback_url="https://hooks.example.com/a",
            priority="high",
        )
        return job, await broker.receive(timeout=0)

    job, message = asyncio.run(scenario())

    assert job.status is JobStatus.PENDING
    assert job.file_name == "report.xlsx"
    assert jobs.get("job-1") is job
    assert message.id == "job-1"
    assert message.priority == 1
    assert message.max_attempts == 3
    assert message.payload.file_bytes() == b"bytes"
    assert message.payload.callback_url == "https://hooks.example.com/a"


@pytest.mark.parametrize(
    "overrides, organization_id",
    [({}, "another-org"), ({"isActive": False}, "org")],
)
def test_submit_rejects_unusable_configuration(overrides, organization_id):
    service, jobs, _ = _service(**overrides)

    with pytest.raises(ConfigurationNotFound):
        asyncio.run(
            service.submit(organization_id=organization_id, configuration_id="cfg", file_name="in.xlsx", data=b"x")
        )
    assert jobs.list() == []


def test_get_status_view():
    service, jobs, _ = _service()
    jobs.add(_job())

    view = service.get_status("job-1")

    assert view == {
        "jobId": "job-1",
        "status": "pending",
        "progress": 0,
        "downloadUrl": None,
        "executionLog": [],
        "error": None,
    }
    with pytest.raises(JobNotFound):
        service.get_status("missing")
