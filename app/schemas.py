from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

from app.lifecycle import ExperienceStatus
from app.models import BookingStatus, TaskStatus
from app.roles import Role

# Column limits from app.models; longer input is a 400, not a store error.
TITLE_MAX_LENGTH = 200
EMAIL_MAX_LENGTH = 255
# Signed 32-bit INTEGER column.
INT_COLUMN_MAX = 2**31 - 1

NonEmptyStr = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=TITLE_MAX_LENGTH)
]
EMAIL_PATTERN = r"^\S+@\S+\.\S+$"
Email = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True, to_lower=True, max_length=EMAIL_MAX_LENGTH, pattern=EMAIL_PATTERN
    ),
]


def _reject_bool(v: object) -> object:
    # bool is an int subclass and lax mode would read `true` as 1.
    if isinstance(v, bool):
        raise ValueError("must be an integer, not a boolean")
    return v


WholeNumber = Annotated[int, BeforeValidator(_reject_bool)]


def _to_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Auth / users
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    email: Email
    password: str = Field(min_length=6)
    name: str = Field(default="", max_length=100)
    # Any Role parses here; the policy decides which ones may self-register.
    role: Role = Role.USER


class LoginRequest(BaseModel):
    email: Email
    password: str = Field(min_length=1)


class UserSummary(BaseModel):
    id: UUID
    role: Role


class AuthResponse(BaseModel):
    token: str
    user: UserSummary


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: str
    role: Role
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Experiences
# ---------------------------------------------------------------------------


class ExperienceCreate(BaseModel):
    """
    Field order is the validation order: title, location, price, start_time.
    The first reported error names the first offending field.
    """

    title: NonEmptyStr
    location: NonEmptyStr
    price: WholeNumber = Field(ge=0, le=INT_COLUMN_MAX)
    start_time: datetime = Field(validation_alias=AliasChoices("start_time", "startTime"))
    description: str = Field(default="", max_length=5000)

    @field_validator("start_time", mode="after")
    @classmethod
    def normalise_start_time(cls, v: datetime) -> datetime:
        return _to_utc(v)

    @field_validator("description", mode="after")
    @classmethod
    def strip_description(cls, v: str) -> str:
        return v.strip()


class ExperienceResponse(BaseModel):
    id: UUID
    title: str
    description: str
    location: str
    price: int
    start_time: datetime
    created_by: UUID
    status: ExperienceStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


class ExperienceFilters(BaseModel):
    """
    Bind via `Annotated[ExperienceFilters, Query()]` so the `from` alias
    (a Python keyword) is honoured as the query parameter name.
    """

    location: str | None = None
    from_: datetime | None = Field(default=None, alias="from")
    to: datetime | None = None
    sort: SortDirection = SortDirection.ASC

    # Pagination
    page: int = Field(default=1, ge=1, le=INT_COLUMN_MAX)
    limit: int = Field(default=10, ge=1, le=INT_COLUMN_MAX)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("sort", mode="before")
    @classmethod
    def lenient_sort(cls, v: object) -> SortDirection:
        # Anything other than "desc" sorts ascending.
        if isinstance(v, str) and v.strip().lower() == SortDirection.DESC:
            return SortDirection.DESC
        return SortDirection.ASC

    @field_validator("from_", "to", mode="after")
    @classmethod
    def normalise_bounds(cls, v: datetime | None) -> datetime | None:
        return _to_utc(v) if v is not None else None

    @field_validator("location", mode="after")
    @classmethod
    def blank_location_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    def cache_key(self) -> str:
        return ":".join(
            [
                (self.location or "").lower(),
                self.from_.isoformat() if self.from_ else "",
                self.to.isoformat() if self.to else "",
                self.sort.value,
                str(self.page),
                str(self.limit),
            ]
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int


class ExperiencePage(BaseModel):
    experiences: list[ExperienceResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    seats: WholeNumber = Field(ge=1, le=INT_COLUMN_MAX)


class BookingResponse(BaseModel):
    id: UUID
    experience_id: UUID
    user_id: UUID
    seats: int
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    experience_id: UUID | None = None
    status: BookingStatus | None = None

    # Pagination
    page: int = Field(default=1, ge=1, le=INT_COLUMN_MAX)
    page_size: int = Field(default=20, ge=1, le=100)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskWrite(BaseModel):
    title: NonEmptyStr
    description: str = ""
    status: TaskStatus | None = None

    @field_validator("description", mode="after")
    @classmethod
    def strip_description(cls, v: str) -> str:
        return v.strip()


class TaskResponse(BaseModel):
    id: UUID
    title: str
    description: str
    status: TaskStatus
    owner_id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

