from fastapi import Depends, Header
from fastapi.security import HTTPBearer

from app import credentials
from app.errors import AuthenticationError, ErrorCode
from app.policy import Action, CurrentUser, ensure_allowed
from app.roles import ROLE_DESCRIPTIONS

# Documents the Bearer scheme in OpenAPI; parsing is done by get_current_user
# so missing and malformed headers map to distinct error codes.
bearer_scheme = HTTPBearer(
    auto_error=False,
    description="JWT from /auth/login. Roles: "
    + "; ".join(f"{role}: {text}" for role, text in ROLE_DESCRIPTIONS.items()),
)


def get_current_user(
    authorization: str | None = Header(default=None),
    _: object = Depends(bearer_scheme),
) -> CurrentUser:
    """
    Resolve the principal from `Authorization: Bearer <jwt>`.

    - no header            -> 401 AUTH_MISSING
    - not a Bearer header  -> 401 AUTH_INVALID
    - bad/expired token    -> 401 AUTH_UNAUTHORIZED
    """
    if not authorization:
        raise AuthenticationError("No token provided", code=ErrorCode.AUTH_MISSING)

    scheme, _sep, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid token format", code=ErrorCode.AUTH_INVALID)

    return credentials.verify_token(token.strip())


def require(action: Action):
    """
    Factory that returns a dependency enforcing a resource-free policy action.

    Usage:
        @router.post("/experiences")
        async def route(user = Depends(require(Action.CREATE_EXPERIENCE))):
            ...

    Actions that depend on a loaded resource (publish, task mutation, ...)
    call `ensure_allowed` in the route after the lookup instead.
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        ensure_allowed(current_user, action)
        return current_user

    return _dep


# ---------------------------------------------------------------------------
# Pre-built policy dependencies
# ---------------------------------------------------------------------------

can_create_experience = require(Action.CREATE_EXPERIENCE)
can_block_experience = require(Action.BLOCK_EXPERIENCE)
can_book_experience = require(Action.BOOK_EXPERIENCE)
can_list_users = require(Action.LIST_ALL_USERS)
