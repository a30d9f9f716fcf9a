"""
FastAPI dependency providers.

Each provider builds a service over the shared database session factory.
Tests replace them through ``app.dependency_overrides``.
"""

from fastapi import Depends

from ..content_generator import GeminiScriptGenerator
from ..orchestrator import ContentGenerationOrchestrator
from ..repository import (
    CategoryRepository,
    JobRepository,
    NotificationRepository,
    PodcastRepository,
    SubscriptionRepository,
    UserRepository,
)
from ..services import (
    CategoryService,
    NotificationService,
    PodcastService,
    SubscriptionService,
    UserService,
)
from ..storage import StorageManager, get_storage_manager
from ..text_to_speech import AudioSynthesizer


def get_storage() -> StorageManager:
    return get_storage_manager()


def get_script_generator() -> GeminiScriptGenerator:
    return GeminiScriptGenerator()


def get_audio_synthesizer() -> AudioSynthesizer:
    return AudioSynthesizer()


def get_user_service() -> UserService:
    return UserService(UserRepository())


def get_category_service() -> CategoryService:
    return CategoryService(CategoryRepository())


def get_podcast_service(storage=Depends(get_storage)) -> PodcastService:
    return PodcastService(PodcastRepository(), storage=storage)


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService(SubscriptionRepository(), UserRepository())


def get_notification_service() -> NotificationService:
    return NotificationService(NotificationRepository(), UserRepository())


def get_orchestrator(
    storage=Depends(get_storage),
    script_generator=Depends(get_script_generator),
    audio_synthesizer=Depends(get_audio_synthesizer),
) -> ContentGenerationOrchestrator:
    return ContentGenerationOrchestrator(
        jobs=JobRepository(),
        podcasts=PodcastRepository(),
        categories=CategoryRepository(),
        script_generator=script_generator,
        audio_synthesizer=audio_synthesizer,
        storage=storage,
    )
