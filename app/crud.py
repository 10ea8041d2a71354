from __future__ import annotations

from uuid import UUID

from loguru import logger
from tortoise import timezone
from tortoise.exceptions import IntegrityError

from app.errors import ConflictError, ErrorCode, NotFoundError, ValidationError
from app.lifecycle import (
    BOOKABLE_STATUS,
    BROWSABLE_STATUS,
    Transition,
    apply_transition,
    sources_for,
)
from app.models import Booking, BookingStatus, Experience, Task, TaskStatus, User
from app.roles import Role
from app.schemas import (
    BookingFilters,
    BookingResponse,
    ExperienceCreate,
    ExperienceFilters,
    ExperienceResponse,
    SortDirection,
    TaskResponse,
    TaskWrite,
    UserResponse,
)

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCRUD:
    async def create_user(
        self, email: str, password_hash: str, role: Role, name: str = ""
    ) -> User:
        """Insert a user; the unique email index is the authority on duplicates."""
        if await User.filter(email=email).exists():
            raise ConflictError("User already exists", code=ErrorCode.EMAIL_TAKEN)
        try:
            return await User.create(
                email=email, password_hash=password_hash, role=role, name=name.strip()
            )
        except IntegrityError:
            raise ConflictError("User already exists", code=ErrorCode.EMAIL_TAKEN) from None

    async def get_by_email(self, email: str) -> User | None:
        return await User.get_or_none(email=email)

    async def list_users(self) -> list[UserResponse]:
        users = await User.all()
        return [UserResponse.model_validate(u, from_attributes=True) for u in users]

    async def ensure_admin(self, email: str, password_hash: str) -> bool:
        """Create the bootstrap admin if missing. Returns True when a row was inserted."""
        _, created = await User.get_or_create(
            email=email,
            defaults={"password_hash": password_hash, "role": Role.ADMIN},
        )
        return created


# ---------------------------------------------------------------------------
# Experiences
# ---------------------------------------------------------------------------


class ExperienceCRUD:
    async def create_experience(
        self, payload: ExperienceCreate, created_by: UUID
    ) -> ExperienceResponse:
        inst = await Experience.create(
            title=payload.title,
            description=payload.description,
            location=payload.location,
            price=payload.price,
            start_time=payload.start_time,
            created_by=created_by,
        )
        logger.info("Experience {} created by {} (draft)", inst.id, created_by)
        return ExperienceResponse.model_validate(inst, from_attributes=True)

    async def get_experience(self, experience_id: UUID) -> ExperienceResponse | None:
        inst = await Experience.get_or_none(id=experience_id)
        if not inst:
            return None
        return ExperienceResponse.model_validate(inst, from_attributes=True)

    async def transition(
        self, experience_id: UUID, transition: Transition
    ) -> ExperienceResponse:
        """
        Apply a lifecycle transition as a conditional write: the UPDATE only
        matches rows still in a status the transition is defined from, so a
        concurrent transition cannot be overwritten from a stale read.
        """
        inst = await Experience.get_or_none(id=experience_id)
        if not inst:
            raise NotFoundError("Experience not found")

        target = apply_transition(inst.status, transition)
        updated = await Experience.filter(
            id=experience_id, status__in=list(sources_for(transition))
        ).update(status=target, updated_at=timezone.now())
        if not updated:
            # Status moved underneath us; report against the fresh state.
            await inst.refresh_from_db()
            apply_transition(inst.status, transition)
        await inst.refresh_from_db()

        logger.info("Experience {} is now {}", experience_id, inst.status)
        return ExperienceResponse.model_validate(inst, from_attributes=True)

    async def browse(
        self, filters: ExperienceFilters
    ) -> tuple[list[ExperienceResponse], int]:
        """
        Public listing. Only published experiences are ever visible here,
        whatever filters the caller supplies.
        """
        qs = Experience.filter(status=BROWSABLE_STATUS)

        if filters.location is not None:
            qs = qs.filter(location__icontains=filters.location)
        if filters.from_ is not None:
            qs = qs.filter(start_time__gte=filters.from_)
        if filters.to is not None:
            qs = qs.filter(start_time__lte=filters.to)

        total = await qs.count()

        order = "start_time" if filters.sort == SortDirection.ASC else "-start_time"
        offset = (filters.page - 1) * filters.limit
        rows = await qs.order_by(order).offset(offset).limit(filters.limit)

        return (
            [ExperienceResponse.model_validate(r, from_attributes=True) for r in rows],
            total,
        )


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class BookingCRUD:
    async def create_booking(
        self, experience_id: UUID, user_id: UUID, seats: int
    ) -> BookingResponse:
        """
        Book `seats` on an experience for `user_id`. Checks run in order and
        the first failure wins:

          1. experience exists                     -> NOT_FOUND
          2. experience is published               -> BOOKING_NOT_ALLOWED
          3. no confirmed booking for (user, exp)  -> BOOKING_EXISTS
          4. insert a confirmed booking

        Step 3 is a fast path only. The unique (user_id, experience_id, active)
        constraint decides races: the losing insert raises IntegrityError and
        is reported as BOOKING_EXISTS.
        """
        experience = await Experience.get_or_none(id=experience_id)
        if experience is None:
            raise NotFoundError("Experience not found")

        if experience.status != BOOKABLE_STATUS:
            raise ValidationError(
                "Experience is not published",
                code=ErrorCode.BOOKING_NOT_ALLOWED,
                details=[f"status: {experience.status}"],
            )

        if await Booking.filter(
            experience_id=experience_id,
            user_id=user_id,
            status=BookingStatus.CONFIRMED,
        ).exists():
            logger.info("Duplicate booking rejected: user={} experience={}", user_id, experience_id)
            raise ConflictError("Booking already exists", code=ErrorCode.BOOKING_EXISTS)

        try:
            inst = await Booking.create(
                experience_id=experience_id,
                user_id=user_id,
                seats=seats,
                status=BookingStatus.CONFIRMED,
                active=True,
            )
        except IntegrityError:
            logger.info(
                "Concurrent duplicate booking rejected by store: user={} experience={}",
                user_id,
                experience_id,
            )
            raise ConflictError("Booking already exists", code=ErrorCode.BOOKING_EXISTS) from None

        logger.info("Booking {} confirmed: user={} experience={} seats={}", inst.id, user_id, experience_id, seats)
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def get_booking(self, booking_id: UUID) -> BookingResponse | None:
        inst = await Booking.get_or_none(id=booking_id)
        if not inst:
            return None
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def list_bookings(
        self,
        filters: BookingFilters,
        user_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.all()

        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if filters.experience_id is not None:
            qs = qs.filter(experience_id=filters.experience_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)

        offset = (filters.page - 1) * filters.page_size
        qs = qs.offset(offset).limit(filters.page_size)

        bookings = await qs
        return [
            BookingResponse.model_validate(b, from_attributes=True) for b in bookings
        ]

    async def cancel_booking(self, booking_id: UUID) -> BookingResponse | None:
        """Confirmed -> cancelled. Clearing `active` frees the pair for rebooking."""
        updated = await Booking.filter(
            id=booking_id, status=BookingStatus.CONFIRMED
        ).update(
            status=BookingStatus.CANCELLED, active=None, updated_at=timezone.now()
        )
        inst = await Booking.get_or_none(id=booking_id)
        if not inst:
            return None
        if not updated:
            raise ConflictError(
                "Booking is already cancelled", code=ErrorCode.INVALID_TRANSITION
            )
        logger.info("Booking {} cancelled", booking_id)
        return BookingResponse.model_validate(inst, from_attributes=True)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCRUD:
    async def create_task(self, payload: TaskWrite, owner_id: UUID) -> TaskResponse:
        inst = await Task.create(
            title=payload.title,
            description=payload.description,
            status=payload.status or TaskStatus.TODO,
            owner_id=owner_id,
        )
        return TaskResponse.model_validate(inst, from_attributes=True)

    async def list_tasks(self, owner_id: UUID | None = None) -> list[TaskResponse]:
        qs = Task.all() if owner_id is None else Task.filter(owner_id=owner_id)
        return [TaskResponse.model_validate(t, from_attributes=True) for t in await qs]

    async def get_task(self, task_id: UUID) -> TaskResponse | None:
        inst = await Task.get_or_none(id=task_id)
        if not inst:
            return None
        return TaskResponse.model_validate(inst, from_attributes=True)

    async def update_task(self, task_id: UUID, payload: TaskWrite) -> TaskResponse | None:
        inst = await Task.get_or_none(id=task_id)
        if not inst:
            return None
        inst.title = payload.title
        inst.description = payload.description
        if payload.status is not None:
            inst.status = payload.status
        await inst.save()
        return TaskResponse.model_validate(inst, from_attributes=True)

    async def delete_task(self, task_id: UUID) -> bool:
        deleted = await Task.filter(id=task_id).delete()
        return deleted > 0


user_crud = UserCRUD()
experience_crud = ExperienceCRUD()
booking_crud = BookingCRUD()
task_crud = TaskCRUD()
