"""
Content generation orchestration.

Drives a ContentGenerationJob from ``pending`` to ``completed`` or ``failed``:
script generation, audio synthesis, storage upload and podcast persistence.
Every job status write is a compare-and-swap on the current status.
"""

from typing import Any, Dict, Iterable, List, Optional

from .content_generator import GeminiScriptGenerator, Script
from .errors import (
    EntityNotFound,
    InvalidStatusTransition,
    JobNotRetryable,
    LurkingPodsError,
    ValidationFailed,
)
from .lifecycle import (
    JobState,
    can_retry,
    changed_fields,
    ensure_transition,
    mark_as_completed,
    mark_as_failed,
    mark_as_started,
    podcast_expiry,
    reset_for_retry,
)
from .models import ContentGenerationJob, DEFAULT_MAX_RETRIES, JobStatus, Language, Podcast
from .repository import CategoryRepository, JobRepository, PodcastRepository
from .storage import AUDIO_CONTENT_TYPE, get_storage_manager, podcast_object_name
from .text_to_speech import AudioSynthesizer
from .utils.dates import utcnow
from .utils.logger import setup_logger
from .validation import validate_language, validate_podcast

logger = setup_logger(__name__)


class ContentGenerationOrchestrator:
    """
    Runs content generation jobs.

    All collaborators are passed in so tests and workers can supply their own
    providers and storage.
    """

    def __init__(self, jobs: JobRepository, podcasts: PodcastRepository,
                 categories: CategoryRepository, script_generator, audio_synthesizer, storage):
        self.jobs = jobs
        self.podcasts = podcasts
        self.categories = categories
        self.script_generator = script_generator
        self.audio_synthesizer = audio_synthesizer
        self.storage = storage

    # Job management

    def create_job(self, category_id: str, language: str,
                   max_retries: int = DEFAULT_MAX_RETRIES) -> ContentGenerationJob:
        """
        Create a pending job for a category and language.

        Raises:
            ValidationFailed: for an unsupported language or ``max_retries < 1``
            EntityNotFound: if the category does not exist
        """
        validate_language(language)
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 1:
            raise ValidationFailed("max_retries", "must be at least 1")
        self.categories.get_or_raise(category_id)

        job = self.jobs.create(
            category_id=category_id,
            language=language,
            status=JobStatus.PENDING,
            started_at=utcnow(),
            retry_count=0,
            max_retries=max_retries,
        )
        logger.info(f"Created job {job.id} for category {category_id} ({language})")
        return job

    def get_job(self, job_id: str) -> ContentGenerationJob:
        return self.jobs.get_or_raise(job_id)

    def list_jobs(self, status: Optional[str] = None, limit: int = 50,
                  offset: int = 0) -> List[ContentGenerationJob]:
        filters = {}
        if status is not None:
            filters["status"] = JobStatus(status)
        return self.jobs.query(order_by="-created_at", limit=limit, offset=offset, **filters)

    # Processing

    def process_job(self, job_id: str) -> Podcast:
        """
        Generate the podcast for a pending job.

        Args:
            job_id: Job identifier

        Returns:
            The persisted podcast

        Raises:
            EntityNotFound: if the job does not exist
            InvalidStatusTransition: if the job is not pending
            ProviderError, ValidationFailed: after the failure is recorded on the job
        """
        job = JobState.from_record(self.jobs.get_or_raise(job_id))
        ensure_transition(job.status, JobStatus.GENERATING)
        job = self._persist(job, mark_as_started(job))
        logger.info(f"Processing job {job_id}: {job.category_id} ({job.language})")

        try:
            script = self.script_generator.generate(self._category_name(job.category_id), job.language)
            audio = self.audio_synthesizer.synthesize(
                script.content, job.language, script.speaker_1_voice_id, script.speaker_2_voice_id
            )
            audio_url = self.storage.upload(
                audio,
                podcast_object_name(job.language, job.category_id, job.id),
                AUDIO_CONTENT_TYPE,
            )
            podcast = self._create_podcast(job, script, audio_url)
        except Exception as e:
            self._record_failure(job, e)
            raise

        self._persist(job, mark_as_completed(job, podcast.id))
        logger.info(f"Job {job_id} completed with podcast {podcast.id}")
        return podcast

    def retry_failed_job(self, job_id: str) -> Podcast:
        """
        Reset a failed job to pending and process it again.

        Raises:
            EntityNotFound: if the job does not exist
            JobNotRetryable: if the job is not failed or has used all its retries
        """
        job = JobState.from_record(self.jobs.get_or_raise(job_id))
        if not can_retry(job):
            raise JobNotRetryable(job.id, job.status.value, job.retry_count, job.max_retries)

        self._persist(job, reset_for_retry(job))
        logger.info(f"Retrying job {job_id} (attempt {job.retry_count + 1} of {job.max_retries})")
        return self.process_job(job_id)

    def retry_failed_jobs(self) -> Dict[str, str]:
        """Retry every retryable failed job; returns the outcome per job id."""
        outcomes = {}
        failed = self.jobs.query(
            ContentGenerationJob.retry_count < ContentGenerationJob.max_retries,
            order_by="created_at",
            status=JobStatus.FAILED,
        )
        for record in failed:
            try:
                self.retry_failed_job(record.id)
                outcomes[record.id] = JobStatus.COMPLETED.value
            except LurkingPodsError as e:
                logger.error(f"Retry of job {record.id} failed: {e.message}")
                outcomes[record.id] = e.message
        return outcomes

    def run_daily_generation(self, languages: Iterable[str] = (Language.EN.value, Language.TR.value)
                             ) -> Dict[str, Any]:
        """Create and process one job per active category and language."""
        results = {"completed": [], "failed": []}
        for category in self.categories.query(order_by="sort_order", is_active=True):
            for language in languages:
                job = self.create_job(category.id, language)
                try:
                    self.process_job(job.id)
                    results["completed"].append(job.id)
                except LurkingPodsError as e:
                    logger.error(f"Daily generation for {category.name} ({language}) failed: {e.message}")
                    results["failed"].append(job.id)
        logger.info(
            f"Daily generation finished: {len(results['completed'])} completed, "
            f"{len(results['failed'])} failed"
        )
        return results

    # Internals

    def _category_name(self, category_id: str) -> str:
        category = self.categories.get(category_id)
        if category is None:
            logger.warning(f"Category {category_id} not found, using its id as the topic")
            return category_id
        return category.display_name_en

    def _create_podcast(self, job: JobState, script: Script, audio_url: str) -> Podcast:
        created_at = utcnow()
        data = {
            "category_id": job.category_id,
            "language": job.language,
            "title": script.title,
            "description": script.description,
            "script_content": script.content,
            "audio_file_url": audio_url,
            "audio_duration": script.duration,
            "speaker_1_voice_id": script.speaker_1_voice_id,
            "speaker_2_voice_id": script.speaker_2_voice_id,
            "quality_score": script.quality_score,
            "generation_date": created_at,
            "created_at": created_at,
            "expires_at": podcast_expiry(created_at),
        }
        validate_podcast(data)
        return self.podcasts.create(**data)

    def _persist(self, before: JobState, after: JobState) -> JobState:
        """Write ``after`` only if the stored job still has ``before.status``."""
        ensure_transition(before.status, after.status)
        if not self.jobs.update_if(before.id, {"status": before.status}, **changed_fields(before, after)):
            current = self.jobs.get(before.id)
            if current is None:
                raise EntityNotFound(self.jobs.entity_name, before.id)
            raise InvalidStatusTransition(current.status, after.status.value)
        return after

    def _record_failure(self, job: JobState, error: Exception) -> None:
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        logger.error(f"Job {job.id} failed: {message}")
        try:
            self._persist(job, mark_as_failed(job, message))
        except LurkingPodsError as e:
            logger.error(f"Could not record failure of job {job.id}: {e.message}")


def build_orchestrator(session_factory=None) -> ContentGenerationOrchestrator:
    """Orchestrator wired to the database, Gemini, ElevenLabs and S3 from the environment."""
    kwargs = {"session_factory": session_factory} if session_factory else {}
    return ContentGenerationOrchestrator(
        jobs=JobRepository(**kwargs),
        podcasts=PodcastRepository(**kwargs),
        categories=CategoryRepository(**kwargs),
        script_generator=GeminiScriptGenerator(),
        audio_synthesizer=AudioSynthesizer(),
        storage=get_storage_manager(),
    )
