"""Categories, the daily mix and podcast playback."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...models import User
from ...services import CategoryService, PodcastService
from ...validation import validate_language
from ..auth import content_limit, get_optional_user, require_access
from ..dependencies import get_category_service, get_podcast_service
from ..schemas import (
    CategoryPodcastsResponse,
    CategoryResponse,
    DailyMixResponse,
    PlayResponse,
    PodcastDetail,
    PodcastSummary,
)

router = APIRouter(prefix="/content", tags=["content"], dependencies=[Depends(content_limit)])


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(
    language: Optional[str] = Query(None, description="en or tr; defaults to the user's preference"),
    user: Optional[User] = Depends(get_optional_user),
    categories: CategoryService = Depends(get_category_service),
):
    """Active categories, localized."""
    language = validate_language(language or (user.language_preference if user else "en"))
    return [CategoryService.localize(category, language) for category in categories.list_active()]


@router.get("/daily-mix", response_model=DailyMixResponse)
async def daily_mix(
    language: Optional[str] = Query(None, description="en or tr; defaults to the user's preference"),
    user: User = Depends(require_access),
    podcasts: PodcastService = Depends(get_podcast_service),
):
    """Today's podcasts, featured episodes first."""
    mix = podcasts.daily_mix(language or user.language_preference)
    return DailyMixResponse(
        podcasts=[PodcastSummary.model_validate(podcast) for podcast in mix],
        next_update=PodcastService.next_refresh(),
        total_count=len(mix),
    )


@router.get("/category/{category_id}", response_model=CategoryPodcastsResponse)
async def category_podcasts(
    category_id: str,
    language: Optional[str] = Query(None, description="en or tr; defaults to the user's preference"),
    user: User = Depends(require_access),
    categories: CategoryService = Depends(get_category_service),
    podcasts: PodcastService = Depends(get_podcast_service),
):
    categories.get(category_id)
    results = podcasts.by_category(category_id, language or user.language_preference)
    return CategoryPodcastsResponse(
        category_id=category_id,
        podcasts=[PodcastSummary.model_validate(podcast) for podcast in results],
        total_count=len(results),
    )


@router.get("/podcast/{podcast_id}", response_model=PodcastDetail)
async def get_podcast(
    podcast_id: str,
    user: User = Depends(require_access),
    podcasts: PodcastService = Depends(get_podcast_service),
):
    return PodcastDetail.model_validate(podcasts.get(podcast_id))


@router.post("/podcast/{podcast_id}/play", response_model=PlayResponse)
async def record_play(
    podcast_id: str,
    user: User = Depends(require_access),
    podcasts: PodcastService = Depends(get_podcast_service),
):
    podcast = podcasts.record_play(podcast_id)
    return PlayResponse(id=podcast.id, play_count=podcast.play_count)
