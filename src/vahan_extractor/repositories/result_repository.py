"""Vehicle result repository for database operations."""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models.vehicle_result import VehicleResultORM
from ..models.vehicle import EXTRACTED_FIELD_NAMES, SectionStatus, VehicleResult
from .base import BaseRepository


class VehicleResultRepository(BaseRepository[VehicleResultORM]):
    """Repository for per-vehicle result rows. Rows are append-only."""

    def __init__(self, session: AsyncSession):
        """Initialize vehicle result repository."""
        super().__init__(VehicleResultORM, session)

    async def append(self, job_id: str, result: VehicleResult) -> VehicleResult:
        """
        Append a result row for a job.

        Args:
            job_id: Owning job ID
            result: Extraction outcome

        Returns:
            Stored result with id, job_id and created_at populated
        """
        next_sequence = await self.session.execute(
            select(func.coalesce(func.max(VehicleResultORM.sequence), 0) + 1).where(
                VehicleResultORM.job_id == job_id
            )
        )
        result_orm = VehicleResultORM(
            id=str(uuid4()),
            job_id=job_id,
            created_at=datetime.utcnow(),
            sequence=int(next_sequence.scalar_one()),
            vehicle_number=result.vehicle_number,
            success=result.success,
            error_message=result.error_message,
            **result.extracted_fields(),
        )
        return self.to_pydantic(await self.create(result_orm))

    def to_pydantic(self, result_orm: VehicleResultORM) -> VehicleResult:
        """
        Convert ORM model to Pydantic model.

        Args:
            result_orm: ORM result instance

        Returns:
            Pydantic VehicleResult model
        """
        fields = {name: getattr(result_orm, name) for name in EXTRACTED_FIELD_NAMES}
        fields["sld_status"] = SectionStatus(fields["sld_status"] or SectionStatus.MISSING)
        fields["permit_status"] = SectionStatus(fields["permit_status"] or SectionStatus.MISSING)
        return VehicleResult(
            id=result_orm.id,
            job_id=result_orm.job_id,
            created_at=result_orm.created_at,
            vehicle_number=result_orm.vehicle_number,
            success=result_orm.success,
            error_message=result_orm.error_message,
            **fields,
        )

    async def get_for_job(
        self,
        job_id: str,
        search: Optional[str] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> list[VehicleResult]:
        """
        Get results for a job in insertion order.

        Args:
            job_id: Job ID
            search: Optional substring filter on the vehicle number
            page: Optional 1-based page number
            page_size: Results per page (required with page)

        Returns:
            List of results
        """
        query = select(VehicleResultORM).where(VehicleResultORM.job_id == job_id)
        if search:
            query = query.where(VehicleResultORM.vehicle_number.contains(search.upper()))
        query = query.order_by(VehicleResultORM.sequence.asc())
        if page is not None and page_size is not None:
            query = query.limit(page_size).offset((page - 1) * page_size)

        result = await self.session.execute(query)
        return [self.to_pydantic(row) for row in result.scalars().all()]

    async def count_for_job(self, job_id: str, search: Optional[str] = None) -> int:
        """Count results for a job, optionally filtered by vehicle number."""
        criteria = [VehicleResultORM.job_id == job_id]
        if search:
            criteria.append(VehicleResultORM.vehicle_number.contains(search.upper()))
        return await self.count_where(*criteria)

    async def delete_for_job(self, job_id: str) -> int:
        """
        Delete every result row of a job.

        Args:
            job_id: Job ID

        Returns:
            Number of rows deleted
        """
        return await self.delete_where(VehicleResultORM.job_id == job_id)
