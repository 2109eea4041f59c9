"""Database-backed job and result store."""

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database.session import SessionLocal
from ..models.job import Job, JobStatus
from ..models.vehicle import VehicleResult
from ..repositories.job_repository import JobRepository
from ..repositories.result_repository import VehicleResultRepository

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Interrupted by server restart"


class JobStore:
    """Durable record of jobs and their per-vehicle results.

    Each method runs in its own session and commits before returning, so the
    persisted state always reflects the last completed step.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = SessionLocal):
        self._session_factory = session_factory

    def _get_session(self) -> AsyncSession:
        """Get a new database session."""
        return self._session_factory()

    async def create_job(
        self,
        input_file_path: str,
        input_file_name: str,
        total_vehicles: int,
    ) -> Job:
        """Create a new pending job."""
        job = Job(
            id=str(uuid4()),
            status=JobStatus.PENDING,
            input_file_path=input_file_path,
            input_file_name=input_file_name,
            total_vehicles=total_vehicles,
        )

        async with self._get_session() as session:
            repo = JobRepository(session)
            job_orm = await repo.create_from_pydantic(job)
            await session.commit()
            logger.info(f"Job created: {job.id} ({total_vehicles} vehicles)")
            return repo.to_pydantic(job_orm)

    async def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        async with self._get_session() as session:
            repo = JobRepository(session)
            job_orm = await repo.get(job_id)
            return repo.to_pydantic(job_orm) if job_orm else None

    async def list_jobs(self, page: int = 1, page_size: int = 10) -> tuple[list[Job], int]:
        """Get one page of jobs (newest first) and the total job count."""
        async with self._get_session() as session:
            repo = JobRepository(session)
            return await repo.get_page(page, page_size), await repo.count()

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        only_if_active: bool = False,
    ) -> Optional[Job]:
        """Update a job's status, with an error message for failures.

        With ``only_if_active`` the write is skipped when the job is already
        terminal; the returned job then shows the status that was kept.
        """
        async with self._get_session() as session:
            repo = JobRepository(session)
            job = await repo.update_status(job_id, status, error_message, only_if_active)
            if job:
                await session.commit()
                if job.status == status:
                    logger.info(f"Job {job_id} status: {status.value}")
                else:
                    logger.info(f"Job {job_id} kept status {job.status.value}, not {status.value}")
            return job

    async def update_job_counters(
        self,
        job_id: str,
        processed: int,
        successful: int,
        failed: int,
    ) -> Optional[Job]:
        """Update a job's progress counters."""
        async with self._get_session() as session:
            repo = JobRepository(session)
            job = await repo.update_counters(job_id, processed, successful, failed)
            if job:
                await session.commit()
            return job

    async def append_item_result(self, job_id: str, result: VehicleResult) -> VehicleResult:
        """Append one vehicle result to a job."""
        async with self._get_session() as session:
            stored = await VehicleResultRepository(session).append(job_id, result)
            await session.commit()
            return stored

    async def record_item(
        self,
        job_id: str,
        result: VehicleResult,
        processed: int,
        successful: int,
        failed: int,
    ) -> Optional[Job]:
        """Append a vehicle result and update counters in one transaction."""
        async with self._get_session() as session:
            await VehicleResultRepository(session).append(job_id, result)
            job = await JobRepository(session).update_counters(
                job_id, processed, successful, failed
            )
            await session.commit()
            return job

    async def set_job_output_location(self, job_id: str, location: str) -> Optional[Job]:
        """Record where the results artifact was written."""
        async with self._get_session() as session:
            repo = JobRepository(session)
            job = await repo.set_output_file(job_id, location)
            if job:
                await session.commit()
                logger.info(f"Job {job_id} results written to {location}")
            return job

    async def reset_for_restart(self, job_id: str) -> Optional[Job]:
        """Drop a job's previous results and zero its counters before a new run."""
        async with self._get_session() as session:
            removed = await VehicleResultRepository(session).delete_for_job(job_id)
            job = await JobRepository(session).reset_progress(job_id)
            await session.commit()
            if job:
                logger.info(f"Job {job_id} reset for restart ({removed} old results removed)")
            return job

    async def delete_job(self, job_id: str) -> bool:
        """Delete a job and its results."""
        async with self._get_session() as session:
            await VehicleResultRepository(session).delete_for_job(job_id)
            deleted = await JobRepository(session).delete_by_id(job_id)
            await session.commit()
            if deleted:
                logger.info(f"Job deleted: {job_id}")
            return deleted

    async def get_results(
        self,
        job_id: str,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
    ) -> tuple[list[VehicleResult], int]:
        """Get one page of a job's results and the matching total."""
        async with self._get_session() as session:
            repo = VehicleResultRepository(session)
            results = await repo.get_for_job(job_id, search, page, page_size)
            return results, await repo.count_for_job(job_id, search)

    async def get_all_results(self, job_id: str) -> list[VehicleResult]:
        """Get every result of a job in the order they were recorded."""
        async with self._get_session() as session:
            return await VehicleResultRepository(session).get_for_job(job_id)

    async def fail_interrupted_jobs(self, message: str = INTERRUPTED_MESSAGE) -> int:
        """Mark jobs left in flight by a previous process as failed.

        Returns:
            Number of jobs marked failed
        """
        async with self._get_session() as session:
            repo = JobRepository(session)
            stale = await repo.get_by_statuses([JobStatus.RUNNING, JobStatus.WAITING_AUTH])
            for job_orm in stale:
                await repo.update_status(job_orm.id, JobStatus.FAILED, message)
            await session.commit()

        if stale:
            logger.warning(f"Marked {len(stale)} interrupted job(s) as failed")
        return len(stale)
