"""Job management API endpoints."""

import asyncio
import logging
from pathlib import Path
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse, Response, StreamingResponse

from vahan_extractor.api.deps import JobStoreDep, OrchestratorDep, SettingsDep
from vahan_extractor.models.job import Job, JobList, JobStatus
from vahan_extractor.models.vehicle import (
    COLUMN_DEFINITIONS,
    ColumnDefinition,
    DownloadRequest,
    ExportFormat,
    ResultPage,
)
from vahan_extractor.services.orchestrator import JobNotFound, JobNotStartable, SessionBusy
from vahan_extractor.services.spreadsheet import (
    SUPPORTED_INPUT_SUFFIXES,
    InputFileError,
    count_vehicle_numbers,
    export_filename,
    export_results,
    resolve_columns,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])

MEDIA_TYPES = {
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ExportFormat.CSV: "text/csv",
}


async def _get_job_or_404(job_store, job_id: str) -> Job:
    job = await job_store.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("", response_model=Job)
async def create_job(
    job_store: JobStoreDep,
    app_settings: SettingsDep,
    file: UploadFile = File(...),
) -> Job:
    """Upload a vehicle list and create a pending job for it."""
    filename = Path(file.filename or "").name
    if Path(filename).suffix.lower() not in SUPPORTED_INPUT_SUFFIXES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Use one of: {', '.join(SUPPORTED_INPUT_SUFFIXES)}",
        )

    upload_dir = Path(app_settings.storage.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    file_path = upload_dir / f"{uuid4()}_{filename}"

    with open(file_path, "wb") as f:
        while chunk := await file.read(1024 * 1024):
            f.write(chunk)

    try:
        total = await asyncio.to_thread(count_vehicle_numbers, file_path)
    except InputFileError as e:
        file_path.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Input uploaded: {filename} ({total} vehicles)")
    return await job_store.create_job(str(file_path), filename, total)


@router.get("", response_model=JobList)
async def list_jobs(
    job_store: JobStoreDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
) -> JobList:
    """List jobs, newest first."""
    jobs, total = await job_store.list_jobs(page, page_size)
    return JobList(jobs=jobs, total=total, page=page, page_size=page_size)


@router.get("/{job_id}", response_model=Job)
async def get_job(
    job_id: str,
    job_store: JobStoreDep,
) -> Job:
    """Get a specific job."""
    return await _get_job_or_404(job_store, job_id)


@router.post("/{job_id}/start", response_model=Job)
async def start_job(
    job_id: str,
    orchestrator: OrchestratorDep,
) -> Job:
    """Start (or restart after failure) a job in the background."""
    try:
        return await orchestrator.start(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    except JobNotStartable as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionBusy as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{job_id}/cancel", response_model=Job)
async def cancel_job(
    job_id: str,
    job_store: JobStoreDep,
    orchestrator: OrchestratorDep,
) -> Job:
    """Cancel a pending, waiting or running job."""
    job = await _get_job_or_404(job_store, job_id)
    if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel job with status: {job.status.value}",
        )

    job = await orchestrator.cancel(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.delete("/{job_id}")
async def delete_job(
    job_id: str,
    job_store: JobStoreDep,
    orchestrator: OrchestratorDep,
) -> dict:
    """Delete a job, its results and its files."""
    job = await _get_job_or_404(job_store, job_id)
    if orchestrator.is_active(job_id):
        raise HTTPException(status_code=400, detail="Cannot delete a job while it is running")

    for path in (job.input_file_path, job.output_file_path):
        if path:
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to remove {path}: {e}")

    await job_store.delete_job(job_id)
    return {"status": "deleted", "job_id": job_id}


@router.get("/{job_id}/progress")
async def job_progress(
    job_id: str,
    job_store: JobStoreDep,
    orchestrator: OrchestratorDep,
) -> StreamingResponse:
    """Stream a job's progress as Server-Sent Events.

    SSE Format:
        event: progress
        data: {"job_id": "...", "status": "running", "processed": 3, ...}

    The first event is the current state; the stream ends after a terminal one.
    """
    await _get_job_or_404(job_store, job_id)

    async def event_generator() -> AsyncGenerator[str, None]:
        async for event in orchestrator.hub.stream(job_id):
            yield f"event: progress\ndata: {event.model_dump_json()}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{job_id}/results", response_model=ResultPage)
async def get_results(
    job_id: str,
    job_store: JobStoreDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: str | None = None,
) -> ResultPage:
    """Get one page of a job's results, optionally filtered by vehicle number."""
    await _get_job_or_404(job_store, job_id)
    results, total = await job_store.get_results(job_id, page, page_size, search)
    return ResultPage(results=results, total=total, page=page, page_size=page_size)


@router.get("/{job_id}/results/columns", response_model=list[ColumnDefinition])
async def get_result_columns(job_id: str) -> list[ColumnDefinition]:
    """List the columns available for export."""
    return COLUMN_DEFINITIONS


@router.post("/{job_id}/results/download")
async def download_selected_results(
    job_id: str,
    request: DownloadRequest,
    job_store: JobStoreDep,
) -> Response:
    """Export the chosen result columns as xlsx or csv."""
    job = await _get_job_or_404(job_store, job_id)
    try:
        columns = resolve_columns(request.columns)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    results = await job_store.get_all_results(job_id)
    if not results:
        raise HTTPException(status_code=404, detail="No results for this job")

    content = await asyncio.to_thread(export_results, results, columns, request.format)
    filename = export_filename(job.input_file_name, request.format)
    return Response(
        content=content,
        media_type=MEDIA_TYPES[request.format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{job_id}/results/download")
async def download_results(
    job_id: str,
    job_store: JobStoreDep,
) -> FileResponse:
    """Download the results workbook written when the job completed."""
    job = await _get_job_or_404(job_store, job_id)
    if not job.output_file_path or not Path(job.output_file_path).exists():
        raise HTTPException(status_code=404, detail="Results file not available")

    return FileResponse(
        job.output_file_path,
        media_type=MEDIA_TYPES[ExportFormat.XLSX],
        filename=export_filename(job.input_file_name, ExportFormat.XLSX),
    )
