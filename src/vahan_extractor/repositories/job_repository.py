"""Job repository for database operations."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models.job import JobORM
from ..models.job import TERMINAL_STATUSES, Job, JobStatus
from .base import BaseRepository


class JobRepository(BaseRepository[JobORM]):
    """Repository for job database operations."""

    def __init__(self, session: AsyncSession):
        """Initialize job repository."""
        super().__init__(JobORM, session)

    async def create_from_pydantic(self, job: Job) -> JobORM:
        """
        Create job from Pydantic model.

        Args:
            job: Pydantic Job model

        Returns:
            ORM job instance
        """
        job_orm = JobORM(
            id=job.id,
            status=job.status.value,
            input_file_path=job.input_file_path,
            input_file_name=job.input_file_name,
            output_file_path=job.output_file_path,
            total_vehicles=job.total_vehicles,
            processed_vehicles=job.processed_vehicles,
            successful_extractions=job.successful_extractions,
            failed_extractions=job.failed_extractions,
            error_message=job.error_message,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )
        return await self.create(job_orm)

    def to_pydantic(self, job_orm: JobORM) -> Job:
        """
        Convert ORM model to Pydantic model.

        Args:
            job_orm: ORM job instance

        Returns:
            Pydantic Job model
        """
        return Job(
            id=job_orm.id,
            status=JobStatus(job_orm.status),
            input_file_path=job_orm.input_file_path,
            input_file_name=job_orm.input_file_name,
            output_file_path=job_orm.output_file_path,
            total_vehicles=job_orm.total_vehicles,
            processed_vehicles=job_orm.processed_vehicles,
            successful_extractions=job_orm.successful_extractions,
            failed_extractions=job_orm.failed_extractions,
            error_message=job_orm.error_message,
            created_at=job_orm.created_at,
            updated_at=job_orm.updated_at,
        )

    async def get_page(self, page: int, page_size: int) -> list[Job]:
        """
        Get one page of jobs, newest first.

        Args:
            page: 1-based page number
            page_size: Jobs per page

        Returns:
            List of jobs on the page
        """
        result = await self.session.execute(
            select(JobORM)
            .order_by(JobORM.created_at.desc(), JobORM.id)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        return [self.to_pydantic(job) for job in result.scalars().all()]

    async def count(self) -> int:
        """Count all jobs."""
        return await self.count_where()

    async def get_by_statuses(self, statuses: list[JobStatus]) -> list[JobORM]:
        """
        Get jobs in any of the given statuses.

        Args:
            statuses: Statuses to match

        Returns:
            List of ORM jobs
        """
        result = await self.session.execute(
            select(JobORM).where(JobORM.status.in_([s.value for s in statuses]))
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        only_if_active: bool = False,
    ) -> Optional[Job]:
        """
        Update job status.

        Args:
            job_id: Job ID
            status: New status
            error_message: Error description, stored only for failed jobs
            only_if_active: Leave a job that is already terminal untouched

        Returns:
            The job as stored afterwards, or None if not found
        """
        values = {"status": status.value}
        if status == JobStatus.FAILED:
            values["error_message"] = error_message
        if not only_if_active:
            return self._to_pydantic_or_none(await self.modify(job_id, **values))

        await self.update_where(
            job_id,
            JobORM.status.notin_([s.value for s in TERMINAL_STATUSES]),
            **values,
        )
        return self._to_pydantic_or_none(
            await self.session.get(JobORM, job_id, populate_existing=True)
        )

    async def update_counters(
        self,
        job_id: str,
        processed: int,
        successful: int,
        failed: int,
    ) -> Optional[Job]:
        """
        Update progress counters.

        Args:
            job_id: Job ID
            processed: Vehicles processed so far
            successful: Successful extractions so far
            failed: Failed extractions so far

        Returns:
            Updated job or None if not found

        Raises:
            ValueError: If the counters are inconsistent with each other or the total
        """
        job_orm = await self.get(job_id)
        if not job_orm:
            return None

        if processed != successful + failed:
            raise ValueError(
                f"processed ({processed}) must equal successful ({successful}) + failed ({failed})"
            )
        if processed > job_orm.total_vehicles:
            raise ValueError(
                f"processed ({processed}) exceeds total ({job_orm.total_vehicles})"
            )

        job_orm = await self.modify(
            job_id,
            processed_vehicles=processed,
            successful_extractions=successful,
            failed_extractions=failed,
        )
        return self.to_pydantic(job_orm)

    async def set_output_file(self, job_id: str, output_file_path: str) -> Optional[Job]:
        """Record the location of the written results file."""
        job_orm = await self.modify(job_id, output_file_path=output_file_path)
        return self._to_pydantic_or_none(job_orm)

    async def reset_progress(self, job_id: str) -> Optional[Job]:
        """
        Reset a job for a fresh run: zero counters, clear error/output, back to pending.

        Args:
            job_id: Job ID

        Returns:
            Updated job or None if not found
        """
        job_orm = await self.modify(
            job_id,
            status=JobStatus.PENDING.value,
            processed_vehicles=0,
            successful_extractions=0,
            failed_extractions=0,
            error_message=None,
            output_file_path=None,
        )
        return self._to_pydantic_or_none(job_orm)

    def _to_pydantic_or_none(self, job_orm: Optional[JobORM]) -> Optional[Job]:
        return self.to_pydantic(job_orm) if job_orm else None
