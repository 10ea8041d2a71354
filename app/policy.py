"""
Authorization policy.

Every endpoint consults this one table instead of carrying its own role
checks. `decide` is pure: it never touches the store and never raises.
`ensure_allowed` turns a denial into the matching AppError.

Resources are duck-typed: experiences expose `created_by`, tasks expose
`owner_id`, bookings expose `user_id`, and signup passes the requested Role.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any
from uuid import UUID

from app.errors import AuthorizationError, ErrorCode, ValidationError
from app.roles import SELF_SERVICE_ROLES, Role


@dataclass(frozen=True)
class CurrentUser:
    """The principal attached to one request, rebuilt from its token."""

    id: UUID
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class Action(StrEnum):
    SIGNUP = "signup"
    CREATE_EXPERIENCE = "createExperience"
    PUBLISH_EXPERIENCE = "publishExperience"
    BLOCK_EXPERIENCE = "blockExperience"
    BOOK_EXPERIENCE = "bookExperience"
    CANCEL_BOOKING = "cancelBooking"
    LIST_ALL_USERS = "listAllUsers"
    MUTATE_TASK = "mutateTask"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    code: ErrorCode | None = None
    reason: str = ""


ALLOW = Decision(allowed=True)

Predicate = Callable[[CurrentUser | None, Any], bool]


@dataclass(frozen=True)
class Rule:
    predicate: Predicate
    deny_code: ErrorCode = ErrorCode.FORBIDDEN
    deny_reason: str = "Access denied"


def _has_role(*roles: Role) -> Predicate:
    def _check(principal: CurrentUser | None, _resource: Any) -> bool:
        return principal is not None and principal.role in roles

    return _check


def _admin_or(owner_attr: str, *roles: Role) -> Predicate:
    """
    Admin always passes. Otherwise the principal must own the resource
    (resource.<owner_attr> == principal.id) and, when roles are given,
    hold one of them.
    """

    def _check(principal: CurrentUser | None, resource: Any) -> bool:
        if principal is None:
            return False
        if principal.is_admin:
            return True
        if roles and principal.role not in roles:
            return False
        return resource is not None and getattr(resource, owner_attr, None) == principal.id

    return _check


def _self_service_role(_principal: CurrentUser | None, requested: Any) -> bool:
    return requested in SELF_SERVICE_ROLES


POLICY: dict[Action, Rule] = {
    Action.SIGNUP: Rule(
        _self_service_role,
        deny_code=ErrorCode.VALIDATION_ERROR,
        deny_reason="Role must be user or host",
    ),
    Action.CREATE_EXPERIENCE: Rule(_has_role(Role.HOST, Role.ADMIN)),
    Action.PUBLISH_EXPERIENCE: Rule(_admin_or("created_by", Role.HOST)),
    Action.BLOCK_EXPERIENCE: Rule(_has_role(Role.ADMIN)),
    Action.BOOK_EXPERIENCE: Rule(
        _has_role(Role.USER, Role.ADMIN),
        deny_code=ErrorCode.BOOKING_FORBIDDEN,
        deny_reason="Hosts cannot book",
    ),
    Action.CANCEL_BOOKING: Rule(_admin_or("user_id")),
    Action.LIST_ALL_USERS: Rule(_has_role(Role.ADMIN)),
    Action.MUTATE_TASK: Rule(_admin_or("owner_id")),
}


def decide(principal: CurrentUser | None, action: Action, resource: Any = None) -> Decision:
    rule = POLICY[action]
    if rule.predicate(principal, resource):
        return ALLOW
    return Decision(allowed=False, code=rule.deny_code, reason=rule.deny_reason)


def ensure_allowed(
    principal: CurrentUser | None, action: Action, resource: Any = None
) -> None:
    """Raise the AppError matching a denial; return quietly on allow."""
    decision = decide(principal, action, resource)
    if decision.allowed:
        return
    if decision.code == ErrorCode.VALIDATION_ERROR:
        raise ValidationError(decision.reason)
    raise AuthorizationError(decision.reason, code=decision.code)
