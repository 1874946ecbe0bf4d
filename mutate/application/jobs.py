"""Application service for job submission and status."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Callable

from mutate.core.errors import ConfigurationNotFound, JobNotFound
from mutate.core.schema import JobOptions, QueueJobPayload
from mutate.domain import Job
from mutate.infrastructure import ConfigStore, JobStore, QueueBroker, attempts_for_file_size
from mutate.infrastructure.queue import Priority

logger = logging.getLogger(__name__)


class JobService:
    """Coordinates job-related use cases."""

    def __init__(
        self,
        jobs: JobStore,
        configurations: ConfigStore,
        broker: QueueBroker,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._jobs = jobs
        self._configurations = configurations
        self._broker = broker
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)

    async def submit(
        self,
        *,
        organization_id: str,
        configuration_id: str,
        file_name: str,
        data: bytes,
        callback_url: str | None = None,
        priority: Priority = "normal",
        debug: bool = False,
    ) -> Job:
        configuration = self._configurations.get(configuration_id)
        if (
            configuration is None
            or not configuration.is_active
            or configuration.organization_id != organization_id
        ):
            raise ConfigurationNotFound(configuration_id)

        safe_name = Path(file_name).name or "upload.xlsx"
        job = Job(
            id=self._id_factory(),
            organization_id=organization_id,
            configuration_id=configuration_id,
            file_name=safe_name,
            callback_url=callback_url,
        )
        self._jobs.add(job)

        payload = QueueJobPayload.from_file(
            job_id=job.id,
            organization_id=organization_id,
            configuration_id=configuration_id,
            file_name=safe_name,
            data=data,
            callback_url=callback_url,
            options=JobOptions(debug=debug),
        )
        await self._broker.enqueue(
            payload,
            priority=priority,
            max_attempts=attempts_for_file_size(len(data)),
        )
        logger.info("Submitted job %s for configuration %s (%s bytes)", job.id, configuration_id, len(data))
        return job

    def get_status(self, job_id: str) -> dict[str, Any]:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job.status_view()
