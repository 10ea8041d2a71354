from uuid import UUID

from fastapi import APIRouter, Depends

from app.crud import booking_crud
from app.deps import get_current_user
from app.errors import NotFoundError
from app.policy import Action, CurrentUser, ensure_allowed
from app.schemas import BookingFilters, BookingResponse

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[BookingResponse]:
    """Callers see their own bookings; admins see everyone's."""
    if current_user.is_admin:
        return await booking_crud.list_bookings(filters=filters)
    return await booking_crud.list_bookings(filters=filters, user_id=current_user.id)


@router.patch("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
) -> BookingResponse:
    booking = await booking_crud.get_booking(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")

    ensure_allowed(current_user, Action.CANCEL_BOOKING, booking)

    cancelled = await booking_crud.cancel_booking(booking_id)
    if not cancelled:
        raise NotFoundError("Booking not found")
    return cancelled
