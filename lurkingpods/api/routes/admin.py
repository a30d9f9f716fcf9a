"""
Operator endpoints: content generation, jobs, categories and maintenance.

All routes require the ``X-Admin-Key`` header.
"""

from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from ...errors import ConflictError, ProviderError, ValidationFailed
from ...models import JobStatus, Podcast
from ...orchestrator import ContentGenerationOrchestrator
from ...services import CategoryService, PodcastService, collect_stats
from ...utils.logger import setup_logger
from ..auth import admin_generate_limit, verify_admin_key
from ..dependencies import get_category_service, get_orchestrator, get_podcast_service
from ..schemas import (
    CategoryCreateRequest,
    CategoryDetailResponse,
    DeleteExpiredResponse,
    ErrorResponse,
    FeaturedRequest,
    GenerateContentRequest,
    GenerationResultResponse,
    JobListResponse,
    JobResponse,
    PodcastDetail,
    StatsResponse,
)

logger = setup_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(verify_admin_key)])

# Errors raised while a job is generating; they are already recorded on the job
GENERATION_ERRORS = (ProviderError, ValidationFailed, ConflictError)


def _run_generation(request: Request, orchestrator: ContentGenerationOrchestrator,
                    run: Callable[[str], Podcast], job_id: str, message: str):
    try:
        podcast = run(job_id)
    except GENERATION_ERRORS as e:
        job = orchestrator.get_job(job_id)
        logger.error(f"Generation for job {job_id} failed: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=ErrorResponse(
                error="GenerationFailed",
                message="Content generation failed",
                detail={
                    "job_id": job.id,
                    "status": job.status,
                    "retry_count": job.retry_count,
                    "max_retries": job.max_retries,
                },
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(),
        )
    return GenerationResultResponse(
        job_id=job_id,
        status=JobStatus.COMPLETED.value,
        podcast_id=podcast.id,
        message=message,
    )


# Generation blocks on provider calls, so these handlers are sync and run in the threadpool
@router.post("/generate-content", response_model=GenerationResultResponse,
             dependencies=[Depends(admin_generate_limit)],
             responses={502: {"model": ErrorResponse, "description": "Generation failed"}})
def generate_content(
    body: GenerateContentRequest,
    request: Request,
    orchestrator: ContentGenerationOrchestrator = Depends(get_orchestrator),
):
    """Create a job for a category and language and process it synchronously."""
    job = orchestrator.create_job(body.category_id, body.language, body.max_retries)
    return _run_generation(
        request, orchestrator, orchestrator.process_job, job.id,
        "Content generation completed successfully",
    )


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(
    job_status: Optional[JobStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    orchestrator: ContentGenerationOrchestrator = Depends(get_orchestrator),
):
    jobs = orchestrator.list_jobs(job_status, limit=limit, offset=offset)
    return JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total_count=len(jobs),
        limit=limit,
        offset=offset,
    )


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, orchestrator: ContentGenerationOrchestrator = Depends(get_orchestrator)):
    return JobResponse.model_validate(orchestrator.get_job(job_id))


@router.post("/jobs/{job_id}/retry", response_model=GenerationResultResponse,
             responses={502: {"model": ErrorResponse, "description": "Generation failed"}})
def retry_job(
    job_id: str,
    request: Request,
    orchestrator: ContentGenerationOrchestrator = Depends(get_orchestrator),
):
    return _run_generation(
        request, orchestrator, orchestrator.retry_failed_job, job_id,
        "Job retried successfully",
    )


@router.delete("/podcasts/expired", response_model=DeleteExpiredResponse)
async def delete_expired_podcasts(podcasts: PodcastService = Depends(get_podcast_service)):
    deleted = podcasts.delete_expired()
    return DeleteExpiredResponse(deleted_count=deleted, message="Expired podcasts deleted successfully")


@router.patch("/podcasts/{podcast_id}/featured", response_model=PodcastDetail)
async def set_featured(
    podcast_id: str,
    request: FeaturedRequest,
    podcasts: PodcastService = Depends(get_podcast_service),
):
    return PodcastDetail.model_validate(podcasts.set_featured(podcast_id, request.is_featured))


@router.get("/stats", response_model=StatsResponse)
async def stats():
    return StatsResponse(**collect_stats())


@router.post("/categories", response_model=CategoryDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    request: CategoryCreateRequest,
    categories: CategoryService = Depends(get_category_service),
):
    return CategoryDetailResponse.model_validate(categories.create(request.model_dump()))
