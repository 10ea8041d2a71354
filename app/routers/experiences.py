from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from loguru import logger

from app.cache import get_browse_cache, invalidate_browse_cache, set_browse_cache
from app.crud import booking_crud, experience_crud
from app.deps import (
    can_block_experience,
    can_book_experience,
    can_create_experience,
    get_current_user,
)
from app.errors import NotFoundError
from app.lifecycle import Transition
from app.policy import Action, CurrentUser, ensure_allowed
from app.schemas import (
    BookingCreate,
    BookingResponse,
    ExperienceCreate,
    ExperiencePage,
    ExperienceResponse,
    ExperienceFilters,
    Pagination,
)

router = APIRouter(prefix="/experiences", tags=["experiences"])


@router.get("/", response_model=ExperiencePage)
async def browse_experiences(
    filters: Annotated[ExperienceFilters, Query()],
) -> ExperiencePage:
    """Public listing of published experiences. No authentication required."""
    key = filters.cache_key()
    cached = await get_browse_cache(key)
    if cached is not None:
        logger.debug("Cache hit for browse: {}", key)
        return ExperiencePage(**cached)

    logger.debug("Cache miss for browse: {}", key)
    items, total = await experience_crud.browse(filters)
    page = ExperiencePage(
        experiences=items,
        pagination=Pagination(page=filters.page, limit=filters.limit, total=total),
    )
    await set_browse_cache(key, page.model_dump(mode="json"))
    return page


@router.post("/", response_model=ExperienceResponse, status_code=status.HTTP_201_CREATED)
async def create_experience(
    payload: ExperienceCreate,
    current_user: CurrentUser = Depends(can_create_experience),
) -> ExperienceResponse:
    return await experience_crud.create_experience(payload, created_by=current_user.id)


@router.patch("/{experience_id}/publish", response_model=ExperienceResponse)
async def publish_experience(
    experience_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
) -> ExperienceResponse:
    # Lookup precedes the ownership check: unknown ids are 404 even for callers
    # who could not publish them.
    experience = await experience_crud.get_experience(experience_id)
    if experience is None:
        raise NotFoundError("Experience not found")

    ensure_allowed(current_user, Action.PUBLISH_EXPERIENCE, experience)

    published = await experience_crud.transition(experience_id, Transition.PUBLISH)
    await invalidate_browse_cache()
    return published


@router.patch("/{experience_id}/block", response_model=ExperienceResponse)
async def block_experience(
    experience_id: UUID,
    _: CurrentUser = Depends(can_block_experience),
) -> ExperienceResponse:
    """Admin only. Idempotent: blocking a blocked experience succeeds."""
    blocked = await experience_crud.transition(experience_id, Transition.BLOCK)
    await invalidate_browse_cache()
    return blocked


@router.post(
    "/{experience_id}/book",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def book_experience(
    experience_id: UUID,
    payload: BookingCreate,
    current_user: CurrentUser = Depends(can_book_experience),
) -> BookingResponse:
    """
    Role is checked by the dependency and seats by the body schema before any
    store access; existence, status and duplicates are checked by the store.
    """
    return await booking_crud.create_booking(
        experience_id=experience_id,
        user_id=current_user.id,
        seats=payload.seats,
    )
