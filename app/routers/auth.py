from fastapi import APIRouter, status
from loguru import logger

from app import credentials
from app.crud import user_crud
from app.errors import AuthenticationError, ErrorCode
from app.policy import Action, ensure_allowed
from app.schemas import AuthResponse, LoginRequest, SignupRequest, UserSummary

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest) -> AuthResponse:
    # Self-registration is limited to user/host; admin is a VALIDATION_ERROR.
    ensure_allowed(None, Action.SIGNUP, payload.role)

    password_hash = await credentials.hash_password_async(payload.password)
    user = await user_crud.create_user(
        email=payload.email,
        password_hash=password_hash,
        role=payload.role,
        name=payload.name,
    )
    logger.info("User {} signed up as {}", user.id, user.role)

    token = credentials.issue_token(user.id, user.email, user.role)
    return AuthResponse(token=token, user=UserSummary(id=user.id, role=user.role))


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest) -> AuthResponse:
    """Unknown email and wrong password fail identically with AUTH_INVALID."""
    user = await user_crud.get_by_email(payload.email)
    valid = await credentials.verify_password_async(
        payload.password, user.password_hash if user else None
    )
    if user is None or not valid:
        raise AuthenticationError("Invalid credentials", code=ErrorCode.AUTH_INVALID)

    token = credentials.issue_token(user.id, user.email, user.role)
    return AuthResponse(token=token, user=UserSummary(id=user.id, role=user.role))
