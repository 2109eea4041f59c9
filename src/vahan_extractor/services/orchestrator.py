"""Job orchestration: auth gate, sequential vehicle loop, cancellation, finalization."""

import asyncio
from functools import partial
from typing import Callable, Optional, Protocol

import structlog

from vahan_extractor.core.config import AuthConfig, ExtractionConfig, StorageConfig
from vahan_extractor.models.job import Job, JobProgress, JobStatus
from vahan_extractor.models.vehicle import VehicleResult
from vahan_extractor.services.extractor import ItemExtractor
from vahan_extractor.services.job_store import JobStore
from vahan_extractor.services.progress_hub import ProgressCallback, ProgressHub
from vahan_extractor.services.retry import RetryPolicy
from vahan_extractor.services.spreadsheet import read_vehicle_numbers, write_results

logger = structlog.get_logger()

AUTH_TIMEOUT_MESSAGE = "Authentication timeout"

ItemKeyReader = Callable[[str], list[str]]
ResultWriter = Callable[[str, list[VehicleResult]], str]


class JobNotFound(LookupError):
    """No job with the given id."""


class JobNotStartable(ValueError):
    """The job's status does not allow starting it."""


class SessionBusy(RuntimeError):
    """Another job currently occupies the browser session."""


class SessionManager(Protocol):
    """What the orchestrator needs from the browser session owner."""

    async def acquire(self): ...

    async def check_authenticated(self) -> bool: ...

    async def navigate_home(self) -> None: ...


class CancellationToken:
    """Cooperative cancellation flag for one job run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        return self.cancelled


class JobOrchestrator:
    """Drives one job at a time from pending to a terminal state.

    At most one job occupies the browser session: ``start`` raises SessionBusy
    while a run is active. Item failures become failed results; anything else
    that escapes the per-item retry envelope fails the whole job.
    """

    def __init__(
        self,
        store: JobStore,
        hub: ProgressHub,
        sessions: SessionManager,
        extractor: ItemExtractor,
        auth_config: Optional[AuthConfig] = None,
        extraction_config: Optional[ExtractionConfig] = None,
        storage_config: Optional[StorageConfig] = None,
        read_item_keys: ItemKeyReader = read_vehicle_numbers,
        write_results_fn: Optional[ResultWriter] = None,
    ):
        self.store = store
        self.hub = hub
        self.sessions = sessions
        self.extractor = extractor
        self.auth_config = auth_config or AuthConfig()
        self.extraction_config = extraction_config or ExtractionConfig()
        storage_config = storage_config or StorageConfig()
        self._read_item_keys = read_item_keys
        self._write_results = write_results_fn or partial(
            write_results, storage_config.results_dir
        )
        self.retry_policy = RetryPolicy(
            max_attempts=self.extraction_config.max_retries,
            delay=self.extraction_config.retry_delay,
            jitter=self.extraction_config.retry_jitter,
            recover=sessions.navigate_home,
        )

        self._tokens: dict[str, CancellationToken] = {}
        self._active_job_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active_job_id(self) -> Optional[str]:
        return self._active_job_id

    def is_active(self, job_id: str) -> bool:
        return self._active_job_id == job_id

    async def start(self, job_id: str) -> Job:
        """Begin running a pending or failed job in the background.

        Raises:
            JobNotFound: Unknown job id
            JobNotStartable: Job is not pending or failed
            SessionBusy: Another job is running
        """
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if not job.is_startable:
            raise JobNotStartable(f"Cannot start job with status: {job.status.value}")
        if self._active_job_id is not None:
            raise SessionBusy(f"Job {self._active_job_id} is already running")

        # Claim the session before any await so concurrent starts cannot both pass
        self._active_job_id = job_id
        token = CancellationToken()
        self._tokens[job_id] = token

        try:
            if job.status == JobStatus.FAILED or job.processed_vehicles:
                job = await self.store.reset_for_restart(job_id)
        except Exception:
            self._release(job_id)
            raise

        self._task = asyncio.create_task(self._run(job_id, token), name=f"job-{job_id}")
        logger.info("job_started", job_id=job_id, total=job.total_vehicles)
        return job

    async def cancel(self, job_id: str) -> Optional[Job]:
        """Flag a job as cancelled and mark it so unless already terminal.

        The running loop notices the flag at the next item boundary or auth
        poll; an extraction already in flight is not interrupted.
        """
        token = self._tokens.get(job_id)
        if token is not None:
            token.cancel()

        job = await self.store.get_job(job_id)
        if job is None:
            return None
        if job.is_terminal:
            return job

        job = await self.store.update_job_status(job_id, JobStatus.CANCELLED)
        logger.info("job_cancel_requested", job_id=job_id)
        if token is None:
            self._publish(job, "Job cancelled")
        return job

    async def subscribe_progress(
        self, job_id: str, callback: ProgressCallback
    ) -> Callable[[], None]:
        """Subscribe to a job's progress; the callback gets the current state at once."""
        return await self.hub.subscribe(job_id, callback)

    async def wait(self) -> None:
        """Wait for the active run, if any, to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def stop(self) -> None:
        """Cancel the active run and wait for it to settle (shutdown)."""
        if self._active_job_id is not None:
            await self.cancel(self._active_job_id)
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self, job_id: str, token: CancellationToken) -> None:
        log = logger.bind(job_id=job_id)
        try:
            await self._execute(job_id, token, log)
        except Exception as e:
            log.exception("job_failed", error=str(e))
            await self._fail(job_id, str(e) or type(e).__name__)
        finally:
            self._release(job_id)

    def _release(self, job_id: str) -> None:
        self._tokens.pop(job_id, None)
        if self._active_job_id == job_id:
            self._active_job_id = None

    async def _execute(self, job_id: str, token: CancellationToken, log) -> None:
        job = await self._require_job(job_id)

        if not await self.sessions.check_authenticated():
            job = await self.store.update_job_status(
                job_id, JobStatus.WAITING_AUTH, only_if_active=True
            )
            if token.cancelled:
                await self._finish_cancelled(job_id, log)
                return
            self._publish(job, "Waiting for authentication")
            log.info("job_waiting_auth")

            await self.sessions.acquire()
            if not await self._wait_for_auth(job_id, token, log):
                return

        if token.cancelled:
            await self._finish_cancelled(job_id, log)
            return

        job = await self.store.update_job_status(job_id, JobStatus.RUNNING, only_if_active=True)
        # A cancel committed during the write keeps the job cancelled
        if token.cancelled:
            await self._finish_cancelled(job_id, log)
            return
        self._publish(job, "Starting extraction")
        await self._extract_all(job, token, log)

    async def _wait_for_auth(self, job_id: str, token: CancellationToken, log) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.auth_config.max_wait

        while True:
            if token.cancelled:
                await self._finish_cancelled(job_id, log)
                return False
            if await self.sessions.check_authenticated():
                log.info("job_authenticated")
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                log.warning("job_auth_timeout", max_wait=self.auth_config.max_wait)
                await self._fail(job_id, AUTH_TIMEOUT_MESSAGE)
                return False
            await token.wait(min(self.auth_config.poll_interval, remaining))

    async def _extract_all(self, job: Job, token: CancellationToken, log) -> None:
        job_id = job.id
        vehicle_numbers = await asyncio.to_thread(self._read_item_keys, job.input_file_path)
        page = await self.sessions.acquire()

        log.info("browser_warm_up")
        try:
            await self.sessions.navigate_home()
        except Exception as e:
            log.warning("browser_warm_up_failed", error=str(e))

        rows: list[VehicleResult] = []
        processed = successful = failed = 0

        def sink(message: str) -> None:
            log.info("extractor", message=message)

        for vehicle_number in vehicle_numbers:
            if token.cancelled:
                await self._finish_cancelled(job_id, log)
                return

            self._publish(
                job.model_copy(
                    update={
                        "status": JobStatus.RUNNING,
                        "processed_vehicles": processed,
                        "successful_extractions": successful,
                        "failed_extractions": failed,
                    }
                ),
                f"Processing {vehicle_number}",
                current_vehicle=vehicle_number,
            )

            result = await self._extract_one(page, vehicle_number, sink, log)
            rows.append(result)

            processed += 1
            if result.success:
                successful += 1
            else:
                failed += 1

            job = await self.store.record_item(job_id, result, processed, successful, failed)
            self._publish(job, f"Completed {vehicle_number}", current_vehicle=vehicle_number)

            if self.extraction_config.item_delay > 0:
                await token.wait(self.extraction_config.item_delay)

        # A cancel that arrived during the last item still wins over completion
        if token.cancelled:
            await self._finish_cancelled(job_id, log)
            return

        location = await asyncio.to_thread(self._write_results, job_id, rows)
        await self.store.set_job_output_location(job_id, location)
        job = await self.store.update_job_status(
            job_id, JobStatus.COMPLETED, only_if_active=True
        )
        if job is not None and job.status == JobStatus.CANCELLED:
            self._publish(job, "Job cancelled")
            log.info("job_cancelled", processed=job.processed_vehicles)
            return
        self._publish(job, "Extraction complete")
        log.info("job_completed", successful=successful, failed=failed)

    async def _extract_one(self, page, vehicle_number: str, sink, log) -> VehicleResult:
        """Run one extraction inside the retry envelope. Never raises."""

        async def attempt() -> VehicleResult:
            return await asyncio.wait_for(
                self.extractor.extract(page, vehicle_number, sink),
                timeout=self.extraction_config.item_timeout,
            )

        def on_attempt_failure(attempt_number: int, error: Exception) -> None:
            log.warning(
                "vehicle_attempt_failed",
                vehicle_number=vehicle_number,
                attempt=attempt_number,
                error=str(error) or type(error).__name__,
            )

        try:
            return await self.retry_policy.run(attempt, on_attempt_failure)
        except Exception as e:
            log.error("vehicle_failed", vehicle_number=vehicle_number, error=str(e))
            return VehicleResult.failure(vehicle_number, str(e) or type(e).__name__)

    async def _finish_cancelled(self, job_id: str, log) -> None:
        job = await self.store.update_job_status(job_id, JobStatus.CANCELLED)
        self._publish(job, "Job cancelled")
        log.info("job_cancelled", processed=job.processed_vehicles if job else None)

    async def _fail(self, job_id: str, message: str) -> None:
        job = await self.store.update_job_status(
            job_id, JobStatus.FAILED, message, only_if_active=True
        )
        if job is None:
            return
        if job.status == JobStatus.CANCELLED:
            self._publish(job, "Job cancelled")
            return
        text = message if message == AUTH_TIMEOUT_MESSAGE else f"Error: {message}"
        self._publish(job, text)

    async def _require_job(self, job_id: str) -> Job:
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def _publish(
        self,
        job: Optional[Job],
        message: str,
        current_vehicle: Optional[str] = None,
    ) -> None:
        if job is None:
            return
        self.hub.publish(job.id, JobProgress.from_job(job, message, current_vehicle))
