from enum import StrEnum

from tortoise import fields
from tortoise.models import Model

from app.lifecycle import INITIAL_STATUS, ExperienceStatus
from app.roles import Role


class AbstractModel(Model):
    id = fields.UUIDField(primary_key=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        abstract = True


class BookingStatus(StrEnum):
    CONFIRMED = "confirmed"  # active seat reservation
    CANCELLED = "cancelled"  # terminal, frees the (user, experience) pair


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class User(AbstractModel):
    email = fields.CharField(max_length=255, unique=True)
    name = fields.CharField(max_length=100, default="")
    password_hash = fields.CharField(max_length=128)
    role = fields.CharEnumField(Role, default=Role.USER)

    class Meta:  # type: ignore
        table = "users"
        ordering = ["created_at"]


class Experience(AbstractModel):
    title = fields.CharField(max_length=200)
    description = fields.TextField(default="")
    location = fields.CharField(max_length=200)
    price = fields.IntField()  # whole currency units, >= 0
    start_time = fields.DatetimeField()
    created_by = fields.UUIDField()  # host/admin who created it, never reassigned
    status = fields.CharEnumField(ExperienceStatus, default=INITIAL_STATUS)

    class Meta:  # type: ignore
        table = "experiences"
        indexes = (("location", "start_time"), ("created_by", "status"))


class Booking(AbstractModel):
    experience_id = fields.UUIDField()
    user_id = fields.UUIDField()
    seats = fields.IntField()
    status = fields.CharEnumField(BookingStatus, default=BookingStatus.CONFIRMED)

    # True while confirmed, NULL once cancelled. NULLs never collide in a
    # unique index, so the constraint below only covers confirmed rows.
    active = fields.BooleanField(null=True, default=True)

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]
        unique_together = (("user_id", "experience_id", "active"),)


class Task(AbstractModel):
    title = fields.CharField(max_length=200)
    description = fields.TextField(default="")
    status = fields.CharEnumField(TaskStatus, default=TaskStatus.TODO)
    owner_id = fields.UUIDField()

    class Meta:  # type: ignore
        table = "tasks"
        ordering = ["-created_at"]
