"""Queue-driven transformation worker.

One message is one job.  The worker marks the job ``processing``, loads the
configuration, optionally archives the input, runs the rule engine in a
thread, uploads the encoded output and finally hands a notification to the
webhook dispatcher.  Whatever goes wrong along the way, the job ends up
``failed`` with a failure webhook attempted before the exception is handed
back to the broker.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from mutate.config import Settings
from mutate.core.engine import ExecutionLog, transform_workbook
from mutate.core.errors import ConfigurationNotFound, JobNotFound, JobTimeout, is_retryable
from mutate.core.schema import Configuration, QueueJobPayload, WebhookPayload
from mutate.domain import Job, JobStatus, WebhookDelivery
from mutate.exporters import DefaultOutputEncoder, OutputEncoder, output_file_name
from mutate.infrastructure import (
    BillingTracker,
    BlobStore,
    ConfigStore,
    JobStore,
    NoOpBillingTracker,
    QueueBroker,
    QueueMessage,
)
from mutate.webhooks import EVENT_COMPLETED, EVENT_FAILED, WebhookDispatcher

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 10
PROGRESS_CONFIGURED = 20
PROGRESS_INPUT_STORED = 30
PROGRESS_TRANSFORMED = 70
PROGRESS_UPLOADED = 90
PROGRESS_DONE = 100

# progress hooks run beside the job and are dropped after this many seconds
PROGRESS_HOOK_TIMEOUT = 5.0

ProgressHook = Callable[[int], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass(slots=True)
class JobResult:
    job_id: str
    status: JobStatus
    output_key: str | None = None
    download_url: str | None = None
    execution_log: list[str] = field(default_factory=list)
    error: str | None = None
    delivery: WebhookDelivery | None = None

    @classmethod
    def from_job(cls, job: Job, delivery: WebhookDelivery | None = None) -> "JobResult":
        return cls(
            job_id=job.id,
            status=job.status,
            output_key=job.metadata.output_key,
            download_url=job.metadata.output_url,
            execution_log=list(job.metadata.execution_log),
            error=job.metadata.error,
            delivery=delivery,
        )


class TransformationWorker:
    def __init__(
        self,
        broker: QueueBroker,
        configurations: ConfigStore,
        jobs: JobStore,
        blobs: BlobStore,
        dispatcher: WebhookDispatcher,
        *,
        billing: BillingTracker | None = None,
        encoder: OutputEncoder | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
        progress_timeout: float = PROGRESS_HOOK_TIMEOUT,
    ) -> None:
        self._broker = broker
        self._configurations = configurations
        self._jobs = jobs
        self._blobs = blobs
        self._dispatcher = dispatcher
        self._billing = billing or NoOpBillingTracker()
        self._encoder = encoder or DefaultOutputEncoder()
        self._settings = settings or Settings()
        self._clock = clock
        self._progress_timeout = progress_timeout
        self._running = False
        self._reports: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def run(self, *, poll_interval: float = 1.0) -> None:
        """Process messages until :meth:`stop` is called or the broker closes."""

        self._running = True
        logger.info("Transformation worker started")
        try:
            while self._running:
                message = await self._broker.receive(timeout=poll_interval)
                if message is None:
                    continue
                await self.handle(message)
        finally:
            await self.drain()
        logger.info("Transformation worker stopped")

    def stop(self) -> None:
        self._running = False

    async def drain(self) -> None:
        """Wait for outstanding progress reports."""

        while self._reports:
            await asyncio.gather(*list(self._reports), return_exceptions=True)

    async def handle(self, message: QueueMessage) -> JobResult | None:
        """Process one message and settle it with the broker."""

        async def report(progress: int) -> None:
            await self._broker.report_progress(message, progress)

        try:
            result = await self.process(message.payload, redelivery=message.redelivered, progress=report)
        except Exception as exc:
            await self._broker.nack(message, exc, retryable=is_retryable(exc))
            return None
        await self._broker.ack(message)
        return result

    # ------------------------------------------------------------------
    # side channels
    # ------------------------------------------------------------------
    def _progress(self, job: Job, value: int, hook: ProgressHook | None) -> None:
        try:
            self._jobs.set_progress(job.id, value)
        except Exception:
            logger.warning("Progress update to %s%% failed for job %s", value, job.id, exc_info=True)
        if hook is None:
            return
        task = asyncio.create_task(self._report(job.id, value, hook), name=f"progress-{job.id}-{value}")
        self._reports.add(task)
        task.add_done_callback(self._reports.discard)

    async def _report(self, job_id: str, value: int, hook: ProgressHook) -> None:
        try:
            await asyncio.wait_for(hook(value), timeout=self._progress_timeout)
        except Exception:
            logger.warning("Progress report of %s%% dropped for job %s", value, job_id, exc_info=True)

    def _track_complete(self, job: Job, payload: QueueJobPayload) -> None:
        try:
            self._billing.track_conversion_complete(
                job.organization_id,
                job.id,
                payload.conversion_type,
                payload.file_size,
            )
        except Exception:
            logger.warning("Billing hook failed for completed job %s", job.id, exc_info=True)

    def _track_failure(self, job: Job) -> None:
        try:
            self._billing.track_conversion_failure(job.organization_id, job.id)
        except Exception:
            logger.warning("Billing hook failed for failed job %s", job.id, exc_info=True)

    async def _notify(
        self,
        job: Job,
        payload: QueueJobPayload,
        configuration: Configuration | None,
        event_type: str,
    ) -> WebhookDelivery | None:
        webhook = WebhookPayload(
            job_id=job.id,
            status="completed" if job.status is JobStatus.COMPLETED else "failed",
            organization_id=job.organization_id,
            configuration_id=job.configuration_id,
            download_url=job.metadata.output_url,
            expires_at=_iso(job.metadata.expires_at) if job.metadata.expires_at else None,
            error=job.metadata.error,
            execution_log=list(job.metadata.execution_log),
            completed_at=_iso(job.metadata.completed_at or self._clock()),
            file_size=job.metadata.file_size,
            original_file_name=job.file_name,
        )
        try:
            return await self._dispatcher.dispatch(
                webhook,
                configuration=configuration,
                callback_url=payload.callback_url or job.callback_url,
                event_type=event_type,
            )
        except Exception:
            logger.exception("Could not hand job %s to the webhook dispatcher", job.id)
            return None

    # ------------------------------------------------------------------
    # pipeline
    # ------------------------------------------------------------------
    async def _archive_input(self, job: Job, data: bytes) -> None:
        key = f"inputs/{job.organization_id}/{job.id}/{job.file_name}"
        await asyncio.to_thread(self._blobs.upload, key, data, None)
        try:
            job.metadata.input_key = key
            job.metadata.input_url = self._blobs.presign(key, self._settings.file_ttl)
            self._jobs.save(job)
        except Exception:
            logger.warning("Could not record archived input for job %s", job.id, exc_info=True)

    async def _run_pipeline(
        self,
        job: Job,
        payload: QueueJobPayload,
        progress: ProgressHook | None,
    ) -> Configuration:
        configuration = self._configurations.get(payload.configuration_id)
        if configuration is None or not configuration.is_active:
            raise ConfigurationNotFound(payload.configuration_id)
        self._progress(job, PROGRESS_CONFIGURED, progress)

        data = payload.file_bytes()
        job.metadata.file_size = len(data)
        if self._settings.archive_inputs:
            await self._archive_input(job, data)
        self._progress(job, PROGRESS_INPUT_STORED, progress)

        log = ExecutionLog(clock=self._clock)
        outcome = await asyncio.to_thread(transform_workbook, data, configuration.rules, log=log)
        job.metadata.execution_log = outcome.log
        if outcome.error is not None:
            raise outcome.error
        self._progress(job, PROGRESS_TRANSFORMED, progress)

        sheet_name, grid = outcome.output_sheet()
        encoded = self._encoder.encode(grid, configuration.output_format)
        file_name = output_file_name(payload.file_name, encoded.extension)
        key = f"outputs/{job.organization_id}/{job.id}/{file_name}"
        await asyncio.to_thread(self._blobs.upload, key, encoded.data, encoded.content_type)

        ttl = self._settings.file_ttl
        job.metadata.output_key = key
        job.metadata.output_url = self._blobs.presign(key, ttl)
        job.metadata.expires_at = self._clock() + timedelta(seconds=ttl)
        job.metadata.file_size = encoded.size
        self._jobs.save(job)
        logger.info(
            "Job %s wrote %s (%s rows from sheet %r, %s bytes)",
            job.id,
            key,
            encoded.row_count,
            sheet_name,
            encoded.size,
        )
        self._progress(job, PROGRESS_UPLOADED, progress)
        return configuration

    async def _fail(self, job: Job, payload: QueueJobPayload, exc: BaseException) -> None:
        if job.status.terminal:
            logger.warning("Job %s is already %s, ignoring late failure: %s", job.id, job.status.value, exc)
            return
        job.metadata.error = str(exc) or exc.__class__.__name__
        job.metadata.completed_at = self._clock()
        job.transition(JobStatus.FAILED)
        try:
            self._jobs.save(job)
        except Exception:
            logger.exception("Could not persist failure of job %s", job.id)

        # tracebacks only for failures that are not plain domain outcomes
        logger.error("Job %s failed: %s", job.id, job.metadata.error, exc_info=exc if is_retryable(exc) else None)

        self._track_failure(job)
        try:
            configuration = self._configurations.get(payload.configuration_id)
        except Exception:
            logger.warning("Could not load configuration for failure webhook of job %s", job.id, exc_info=True)
            configuration = None
        await self._notify(job, payload, configuration, EVENT_FAILED)

    async def process(
        self,
        payload: QueueJobPayload,
        *,
        redelivery: bool = False,
        progress: ProgressHook | None = None,
    ) -> JobResult:
        """Run one job end to end; failures are recorded and re-raised."""

        job = self._jobs.get(payload.job_id)
        if job is None:
            raise JobNotFound(payload.job_id)
        if job.status is JobStatus.COMPLETED:
            logger.info("Job %s is already completed, skipping", job.id)
            return JobResult.from_job(job)

        if job.status is JobStatus.PROCESSING:
            logger.warning("Job %s was left processing by an earlier delivery, restarting", job.id)
        job.transition(JobStatus.PROCESSING, redelivery=redelivery)
        job.metadata.started_at = self._clock()
        job.metadata.completed_at = None
        job.metadata.error = None
        job.metadata.output_key = job.metadata.output_url = job.metadata.expires_at = None
        self._jobs.save(job)
        logger.info("Processing job %s (%s) with configuration %s", job.id, payload.file_name, payload.configuration_id)
        self._progress(job, PROGRESS_STARTED, progress)

        # the timeout covers the work only; completion below is never cut short
        timeout = self._settings.job_timeout
        try:
            configuration = await asyncio.wait_for(
                self._run_pipeline(job, payload, progress),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = JobTimeout(job.id, timeout)
            await self._fail(job, payload, error)
            raise error from None
        except Exception as exc:
            await self._fail(job, payload, exc)
            raise

        job.transition(JobStatus.COMPLETED)
        job.metadata.completed_at = self._clock()
        job.progress = PROGRESS_DONE
        self._jobs.save(job)
        self._progress(job, PROGRESS_DONE, progress)

        self._track_complete(job, payload)
        result = JobResult.from_job(job)
        result.delivery = await self._notify(job, payload, configuration, EVENT_COMPLETED)
        logger.info("Job %s completed", job.id)
        return result
