"""
Async Full-OCR Jobs
===================

Caller-driven full OCR for documents the extraction pipeline flagged with
ocr_status=pending. Jobs run in a worker thread and are tracked with
progress and optional webhook notifications.
"""

import asyncio
import logging
import tempfile
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

import requests as http_requests
from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from pydantic import BaseModel

from tiered_extraction.backends.base import BasePageRecognizer
from tiered_extraction.ocr import FullOCRRunner, OCRRunResult, OCRRunStatus
from tiered_extraction.usage import can_perform_ocr, estimate_ocr_cost

logger = logging.getLogger(__name__)

JOB_EXPIRY_HOURS = 24

_PROGRESS = {
    OCRRunStatus.PENDING: 5,
    OCRRunStatus.PROCESSING: 10,
    OCRRunStatus.COMPLETED: 100,
    OCRRunStatus.FAILED: 100,
}


class JobStatus(str, Enum):
    """Status of an async OCR job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobResponse(BaseModel):
    """Job status response."""

    job_id: str
    status: JobStatus
    file_name: str
    progress: int  # 0-100
    total_pages: int
    credits: int
    created_at: str
    started_at: str | None = None
    completed_at: str | None = None
    processing_time_ms: float | None = None
    error: str | None = None


class AsyncOCRResponse(BaseModel):
    """Response from starting an async OCR job."""

    job_id: str
    status: JobStatus
    total_pages: int
    credits: int
    estimated_cost_usd: float
    status_url: str
    result_url: str


class Job:
    """Internal job representation."""

    def __init__(
        self,
        job_id: str,
        file_name: str,
        file_path: Path,
        total_pages: int,
        user_tier: str = "free",
        credits: int = 0,
        callback_url: str | None = None,
    ):
        self.job_id = job_id
        self.file_name = file_name
        self.file_path = file_path
        self.total_pages = total_pages
        self.user_tier = user_tier
        self.credits = credits
        self.callback_url = callback_url
        self.status = JobStatus.PENDING
        self.progress = 0
        self.created_at = datetime.utcnow()
        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None
        self.processing_time_ms: float | None = None
        self.result: dict[str, Any] | None = None
        self.error: str | None = None


class JobStore(ABC):
    """Abstract job storage. Extend with RedisJobStore for production."""

    @abstractmethod
    def create(self, job: Job) -> str: ...

    @abstractmethod
    def get(self, job_id: str) -> Job | None: ...

    @abstractmethod
    def update(self, job_id: str, **kwargs: Any) -> None: ...

    @abstractmethod
    def cleanup_expired(self) -> int: ...


class InMemoryJobStore(JobStore):
    """Simple in-memory job storage for development."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    def create(self, job: Job) -> str:
        self._jobs[job.job_id] = job
        return job.job_id

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def update(self, job_id: str, **kwargs: Any) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        for key, value in kwargs.items():
            if hasattr(job, key):
                setattr(job, key, value)

    def cleanup_expired(self) -> int:
        """Remove jobs older than JOB_EXPIRY_HOURS."""
        cutoff = datetime.utcnow() - timedelta(hours=JOB_EXPIRY_HOURS)
        expired = [
            jid for jid, job in self._jobs.items() if job.created_at < cutoff
        ]
        for jid in expired:
            job = self._jobs.pop(jid)
            if job.file_path.exists():
                job.file_path.unlink(missing_ok=True)
        return len(expired)


def _serialize_result(job: Job, result: OCRRunResult) -> dict[str, Any]:
    """Convert OCRRunResult to a JSON-serializable dict."""
    return {
        "success": result.status == OCRRunStatus.COMPLETED,
        "file_name": job.file_name,
        "ocr_status": result.status.value,
        "total_pages": result.total_pages,
        "content": result.content,
        "word_count": len(result.content.split()),
        "failed_pages": list(result.failed_pages),
        "credits": job.credits,
        "metadata": result.metadata,
    }


def process_job(job: Job, store: JobStore, get_runner_fn: Any) -> None:
    """Run full OCR for a job in the background."""
    store.update(job.job_id, started_at=datetime.utcnow())

    def on_status(status: OCRRunStatus) -> None:
        # Terminal states are written once the result is known
        if status in (OCRRunStatus.PENDING, OCRRunStatus.PROCESSING):
            store.update(
                job.job_id,
                status=JobStatus(status.value),
                progress=_PROGRESS[status],
            )

    try:
        runner: FullOCRRunner = get_runner_fn()
        source = job.file_path.read_bytes()
        result = runner.run(source, page_count=job.total_pages, on_status=on_status)

        if result.status == OCRRunStatus.COMPLETED:
            store.update(
                job.job_id,
                status=JobStatus.COMPLETED,
                completed_at=datetime.utcnow(),
                progress=100,
                processing_time_ms=result.metadata.get("processing_time_ms"),
                result=_serialize_result(job, result),
            )
        else:
            store.update(
                job.job_id,
                status=JobStatus.FAILED,
                completed_at=datetime.utcnow(),
                progress=100,
                error=result.error or "OCR failed",
            )

    except Exception as e:
        logger.exception("Job %s failed: %s", job.job_id, e)
        store.update(
            job.job_id,
            status=JobStatus.FAILED,
            completed_at=datetime.utcnow(),
            progress=100,
            error=str(e),
        )

    finally:
        if job.file_path.exists():
            job.file_path.unlink(missing_ok=True)

    # Send webhook notification if configured
    if job.callback_url:
        _send_webhook(job, store)


def _send_webhook(job: Job, store: JobStore) -> None:
    """Send webhook notification for completed/failed job."""
    updated_job = store.get(job.job_id)
    if updated_job is None or not updated_job.callback_url:
        return

    payload = {
        "job_id": updated_job.job_id,
        "status": updated_job.status.value,
        "file_name": updated_job.file_name,
        "ocr_status": updated_job.status.value,
    }

    try:
        http_requests.post(updated_job.callback_url, json=payload, timeout=10)
        logger.info("Webhook sent for job %s to %s", job.job_id, job.callback_url)
    except Exception as e:
        logger.warning("Webhook failed for job %s: %s", job.job_id, e)


def create_router(store: JobStore, get_runner_fn: Any) -> APIRouter:
    """Create the async OCR jobs APIRouter."""
    router = APIRouter(tags=["Async Jobs"])

    @router.post(
        "/api/v1/ocr/async",
        response_model=AsyncOCRResponse,
        status_code=202,
    )
    async def ocr_async(
        file: UploadFile = File(..., description="PDF file to OCR"),
        user_tier: str = Query(default="free", description="User tier: free or custom"),
        monthly_ocr_used: int = Query(default=0, ge=0, description="OCR runs already used this month"),
        callback_url: str | None = Query(
            default=None, description="Webhook URL for completion notification"
        ),
    ) -> AsyncOCRResponse:
        """
        Start a full OCR job for a scanned document.

        Returns a job ID immediately. Poll the status URL for progress.
        """
        if not file.filename or not file.filename.lower().endswith(".pdf"):
            raise HTTPException(status_code=400, detail="Only PDF files are supported")

        content = await file.read()
        try:
            page_count = BasePageRecognizer.page_count(content)
        except Exception as e:
            raise HTTPException(status_code=422, detail=f"Could not open document: {e}")

        allowance = can_perform_ocr(monthly_ocr_used, user_tier, page_count)
        if not allowance.allowed:
            raise HTTPException(status_code=403, detail=allowance.reason)

        store.cleanup_expired()

        # Save file to persistent temp location (not auto-deleted)
        tmp_dir = Path(tempfile.mkdtemp(prefix="tieredocr_"))
        tmp_path = tmp_dir / file.filename
        tmp_path.write_bytes(content)

        estimate = estimate_ocr_cost(page_count, user_tier)
        job_id = str(uuid.uuid4())
        job = Job(
            job_id=job_id,
            file_name=file.filename,
            file_path=tmp_path,
            total_pages=page_count,
            user_tier=user_tier,
            credits=int(estimate["credits"]),
            callback_url=callback_url,
        )
        store.create(job)

        loop = asyncio.get_event_loop()
        loop.run_in_executor(None, process_job, job, store, get_runner_fn)

        logger.info(
            "Async OCR job %s created for %s: pages=%d, credits=%d",
            job_id,
            file.filename,
            page_count,
            job.credits,
        )

        return AsyncOCRResponse(
            job_id=job_id,
            status=JobStatus.PENDING,
            total_pages=page_count,
            credits=job.credits,
            estimated_cost_usd=estimate["estimated_cost_usd"],
            status_url=f"/api/v1/jobs/{job_id}",
            result_url=f"/api/v1/jobs/{job_id}/result",
        )

    @router.get("/api/v1/jobs/{job_id}", response_model=JobResponse)
    async def get_job_status(job_id: str) -> JobResponse:
        """Get status and progress of an async OCR job."""
        job = store.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")

        return JobResponse(
            job_id=job.job_id,
            status=job.status,
            file_name=job.file_name,
            progress=job.progress,
            total_pages=job.total_pages,
            credits=job.credits,
            created_at=job.created_at.isoformat(),
            started_at=job.started_at.isoformat() if job.started_at else None,
            completed_at=job.completed_at.isoformat() if job.completed_at else None,
            processing_time_ms=job.processing_time_ms,
            error=job.error,
        )

    @router.get("/api/v1/jobs/{job_id}/result")
    async def get_job_result(job_id: str) -> dict[str, Any]:
        """Get OCR result for a completed job. Returns 409 if still processing."""
        job = store.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")

        if job.status == JobStatus.PENDING:
            raise HTTPException(status_code=409, detail="Job is pending")

        if job.status == JobStatus.PROCESSING:
            raise HTTPException(status_code=409, detail="Job is still processing")

        if job.status == JobStatus.FAILED:
            raise HTTPException(
                status_code=500, detail=job.error or "OCR failed"
            )

        if job.result is None:
            raise HTTPException(status_code=500, detail="Result not available")

        return job.result

    return router
