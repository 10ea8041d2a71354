"""
Store-level tests: real Tortoise models on in-memory SQLite.

These cover the guarantees that cannot be shown with mocks: the booking
uniqueness constraint under concurrency, conditional lifecycle writes and
the published-only browse filter.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from app.crud import booking_crud, experience_crud, task_crud, user_crud
from app.errors import ConflictError, ErrorCode, NotFoundError, ValidationError
from app.lifecycle import ExperienceStatus, Transition
from app.models import Booking, BookingStatus
from app.roles import Role
from app.schemas import (
    BookingFilters,
    ExperienceCreate,
    ExperienceFilters,
    SortDirection,
    TaskWrite,
)

from .factories import HOST_ID, START, USER_ID

pytestmark = pytest.mark.usefixtures("db")


async def make_experience(
    status: ExperienceStatus = ExperienceStatus.DRAFT,
    location: str = "NYC",
    start_time: datetime = START,
    title: str = "City Walk",
):
    exp = await experience_crud.create_experience(
        ExperienceCreate(title=title, location=location, price=50, start_time=start_time),
        created_by=HOST_ID,
    )
    if status == ExperienceStatus.PUBLISHED:
        exp = await experience_crud.transition(exp.id, Transition.PUBLISH)
    elif status == ExperienceStatus.BLOCKED:
        exp = await experience_crud.transition(exp.id, Transition.BLOCK)
    return exp


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycleWrites:
    async def test_created_as_draft(self):
        exp = await make_experience()
        assert exp.status == ExperienceStatus.DRAFT
        assert exp.created_by == HOST_ID

    async def test_publish_then_block(self):
        exp = await make_experience()
        published = await experience_crud.transition(exp.id, Transition.PUBLISH)
        assert published.status == ExperienceStatus.PUBLISHED
        blocked = await experience_crud.transition(exp.id, Transition.BLOCK)
        assert blocked.status == ExperienceStatus.BLOCKED

    async def test_block_is_idempotent(self):
        exp = await make_experience()
        first = await experience_crud.transition(exp.id, Transition.BLOCK)
        second = await experience_crud.transition(exp.id, Transition.BLOCK)
        assert first.status == second.status == ExperienceStatus.BLOCKED

    async def test_blocked_cannot_be_republished(self):
        exp = await make_experience(ExperienceStatus.BLOCKED)
        with pytest.raises(ConflictError) as exc_info:
            await experience_crud.transition(exp.id, Transition.PUBLISH)
        assert exc_info.value.code == ErrorCode.INVALID_TRANSITION
        assert (await experience_crud.get_experience(exp.id)).status == ExperienceStatus.BLOCKED

    async def test_unknown_experience(self):
        with pytest.raises(NotFoundError):
            await experience_crud.transition(uuid4(), Transition.BLOCK)

    async def test_created_by_survives_transitions(self):
        exp = await make_experience(ExperienceStatus.BLOCKED)
        assert (await experience_crud.get_experience(exp.id)).created_by == HOST_ID


# ---------------------------------------------------------------------------
# Booking protocol
# ---------------------------------------------------------------------------


class TestBookingProtocol:
    async def test_city_walk_scenario(self):
        exp = await make_experience()
        assert exp.status == ExperienceStatus.DRAFT

        exp = await experience_crud.transition(exp.id, Transition.PUBLISH)
        assert exp.status == ExperienceStatus.PUBLISHED

        booking = await booking_crud.create_booking(exp.id, USER_ID, seats=2)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.seats == 2

        with pytest.raises(ConflictError) as exc_info:
            await booking_crud.create_booking(exp.id, USER_ID, seats=1)
        assert exc_info.value.code == ErrorCode.BOOKING_EXISTS
        assert exc_info.value.status_code == 409

    async def test_unknown_experience_is_not_found(self):
        with pytest.raises(NotFoundError):
            await booking_crud.create_booking(uuid4(), USER_ID, seats=1)

    async def test_draft_is_not_bookable(self):
        exp = await make_experience()
        with pytest.raises(ValidationError) as exc_info:
            await booking_crud.create_booking(exp.id, USER_ID, seats=1)
        assert exc_info.value.code == ErrorCode.BOOKING_NOT_ALLOWED

    async def test_blocked_draft_is_not_bookable_by_anyone(self):
        exp = await make_experience()
        await experience_crud.transition(exp.id, Transition.BLOCK)
        for user_id in (USER_ID, uuid4()):
            with pytest.raises(ValidationError) as exc_info:
                await booking_crud.create_booking(exp.id, user_id, seats=1)
            assert exc_info.value.code == ErrorCode.BOOKING_NOT_ALLOWED
            assert exc_info.value.status_code == 400

    async def test_different_users_can_book_same_experience(self):
        exp = await make_experience(ExperienceStatus.PUBLISHED)
        await booking_crud.create_booking(exp.id, USER_ID, seats=1)
        await booking_crud.create_booking(exp.id, uuid4(), seats=1)
        assert await Booking.filter(experience_id=exp.id).count() == 2

    @pytest.mark.parametrize("attempts", [2, 5, 10])
    async def test_concurrent_bookings_yield_exactly_one_success(self, attempts):
        exp = await make_experience(ExperienceStatus.PUBLISHED)

        results = await asyncio.gather(
            *(booking_crud.create_booking(exp.id, USER_ID, seats=2) for _ in range(attempts)),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        conflicts = [
            r for r in results
            if isinstance(r, ConflictError) and r.code == ErrorCode.BOOKING_EXISTS
        ]
        assert len(successes) == 1
        assert len(conflicts) == attempts - 1
        assert (
            await Booking.filter(
                experience_id=exp.id, user_id=USER_ID, status=BookingStatus.CONFIRMED
            ).count()
            == 1
        )

    async def test_store_constraint_rejects_duplicate_confirmed_rows(self):
        """The unique index holds even when the application pre-check is bypassed."""
        from tortoise.exceptions import IntegrityError

        exp = await make_experience(ExperienceStatus.PUBLISHED)
        await Booking.create(experience_id=exp.id, user_id=USER_ID, seats=1)
        with pytest.raises(IntegrityError):
            await Booking.create(experience_id=exp.id, user_id=USER_ID, seats=1)

    async def test_cancelled_booking_does_not_block_rebooking(self):
        exp = await make_experience(ExperienceStatus.PUBLISHED)
        first = await booking_crud.create_booking(exp.id, USER_ID, seats=2)

        cancelled = await booking_crud.cancel_booking(first.id)
        assert cancelled.status == BookingStatus.CANCELLED

        again = await booking_crud.create_booking(exp.id, USER_ID, seats=1)
        assert again.status == BookingStatus.CONFIRMED

        # A second cancel/rebook cycle keeps working: cancelled rows never collide.
        await booking_crud.cancel_booking(again.id)
        await booking_crud.create_booking(exp.id, USER_ID, seats=1)
        assert await Booking.filter(user_id=USER_ID, status=BookingStatus.CONFIRMED).count() == 1

    async def test_cancel_twice_is_rejected(self):
        exp = await make_experience(ExperienceStatus.PUBLISHED)
        booking = await booking_crud.create_booking(exp.id, USER_ID, seats=1)
        await booking_crud.cancel_booking(booking.id)
        with pytest.raises(ConflictError):
            await booking_crud.cancel_booking(booking.id)

    async def test_concurrent_cancels_only_one_wins(self):
        exp = await make_experience(ExperienceStatus.PUBLISHED)
        booking = await booking_crud.create_booking(exp.id, USER_ID, seats=1)

        results = await asyncio.gather(
            *(booking_crud.cancel_booking(booking.id) for _ in range(5)),
            return_exceptions=True,
        )
        cancelled = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(cancelled) == 1
        assert len(conflicts) == 4
        assert all(c.code == ErrorCode.INVALID_TRANSITION for c in conflicts)

    async def test_cancel_unknown_returns_none(self):
        assert await booking_crud.cancel_booking(uuid4()) is None

    async def test_list_bookings_scoped_to_user(self):
        exp = await make_experience(ExperienceStatus.PUBLISHED)
        await booking_crud.create_booking(exp.id, USER_ID, seats=1)
        await booking_crud.create_booking(exp.id, uuid4(), seats=1)

        mine = await booking_crud.list_bookings(BookingFilters(), user_id=USER_ID)
        everyone = await booking_crud.list_bookings(BookingFilters())
        assert [b.user_id for b in mine] == [USER_ID]
        assert len(everyone) == 2


# ---------------------------------------------------------------------------
# Browse
# ---------------------------------------------------------------------------


class TestBrowse:
    async def test_only_published_are_visible(self):
        published = await make_experience(ExperienceStatus.PUBLISHED)
        await make_experience(ExperienceStatus.DRAFT)
        await make_experience(ExperienceStatus.BLOCKED)

        items, total = await experience_crud.browse(ExperienceFilters())
        assert total == 1
        assert [e.id for e in items] == [published.id]

    @pytest.mark.parametrize(
        "filters",
        [
            ExperienceFilters(),
            ExperienceFilters(location="nyc"),
            ExperienceFilters(from_=START - timedelta(days=1), to=START + timedelta(days=1)),
            ExperienceFilters(sort=SortDirection.DESC, limit=100),
        ],
    )
    async def test_non_published_never_leak_through_filters(self, filters):
        await make_experience(ExperienceStatus.DRAFT)
        await make_experience(ExperienceStatus.BLOCKED)
        exp = await make_experience(ExperienceStatus.PUBLISHED)
        await experience_crud.transition(exp.id, Transition.BLOCK)

        items, total = await experience_crud.browse(filters)
        assert items == []
        assert total == 0

    async def test_location_is_case_insensitive_substring(self):
        await make_experience(ExperienceStatus.PUBLISHED, location="New York City")
        await make_experience(ExperienceStatus.PUBLISHED, location="Boston")

        items, total = await experience_crud.browse(ExperienceFilters(location="york"))
        assert total == 1
        assert items[0].location == "New York City"

    async def test_date_range_is_inclusive(self):
        day = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        for offset in (-1, 0, 1, 2):
            await make_experience(
                ExperienceStatus.PUBLISHED, start_time=day + timedelta(days=offset)
            )

        items, total = await experience_crud.browse(
            ExperienceFilters(from_=day, to=day + timedelta(days=1))
        )
        assert total == 2
        assert [e.start_time for e in items] == [day, day + timedelta(days=1)]

    async def test_sort_and_pagination(self):
        day = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        for offset in range(5):
            await make_experience(
                ExperienceStatus.PUBLISHED,
                start_time=day + timedelta(days=offset),
                title=f"Walk {offset}",
            )

        asc, total = await experience_crud.browse(ExperienceFilters(page=2, limit=2))
        assert total == 5
        assert [e.title for e in asc] == ["Walk 2", "Walk 3"]

        desc, total = await experience_crud.browse(
            ExperienceFilters(page=1, limit=2, sort=SortDirection.DESC)
        )
        assert total == 5
        assert [e.title for e in desc] == ["Walk 4", "Walk 3"]

        beyond, total = await experience_crud.browse(ExperienceFilters(page=9, limit=2))
        assert beyond == []
        assert total == 5


# ---------------------------------------------------------------------------
# Users and tasks
# ---------------------------------------------------------------------------


class TestUsers:
    async def test_duplicate_email_is_email_taken(self):
        await user_crud.create_user("a@example.com", "hash", Role.USER)
        with pytest.raises(ConflictError) as exc_info:
            await user_crud.create_user("a@example.com", "hash", Role.HOST)
        assert exc_info.value.code == ErrorCode.EMAIL_TAKEN

    async def test_ensure_admin_is_idempotent(self):
        assert await user_crud.ensure_admin("root@example.com", "hash") is True
        assert await user_crud.ensure_admin("root@example.com", "hash") is False
        admin = await user_crud.get_by_email("root@example.com")
        assert admin.role == Role.ADMIN

    async def test_list_users_omits_password_hash(self):
        await user_crud.create_user("a@example.com", "hash", Role.USER)
        users = await user_crud.list_users()
        assert "password_hash" not in users[0].model_dump()


class TestTasks:
    async def test_crud_cycle(self):
        task = await task_crud.create_task(TaskWrite(title="Plan"), owner_id=USER_ID)
        assert task.status == "todo"

        updated = await task_crud.update_task(task.id, TaskWrite(title="Plan more", status="done"))
        assert updated.title == "Plan more"
        assert updated.status == "done"

        assert [t.id for t in await task_crud.list_tasks(owner_id=USER_ID)] == [task.id]
        assert await task_crud.list_tasks(owner_id=uuid4()) == []

        assert await task_crud.delete_task(task.id) is True
        assert await task_crud.get_task(task.id) is None
        assert await task_crud.delete_task(task.id) is False
