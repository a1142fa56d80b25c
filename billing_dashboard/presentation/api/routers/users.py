"""API router for user authentication and activity history."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ....core.dependencies import get_activity_logger, get_user_service
from ....domain.errors import ValidationError
from ....domain.models import User
from ....services.activity_service import ActivityLogger
from ....services.user_service import UserService
from ..dependencies import get_current_user
from ..errors import to_http_exception
from ..schemas.common import Pagination
from ..schemas.user_schemas import (
    ActivityListResponse,
    ActivityResponse,
    UserLoginRequest,
    UserLoginResponse,
    UserRegisterRequest,
    UserResponse,
)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("/register", response_model=UserLoginResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: UserRegisterRequest,
    user_service: UserService = Depends(get_user_service),
) -> UserLoginResponse:
    """Register a new user and return an access token."""
    try:
        user = user_service.register(
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
    except ValidationError as exc:
        raise to_http_exception(exc) from exc

    return UserLoginResponse(
        access_token=user_service.create_token(user),
        user=UserResponse.from_domain(user),
    )


@router.post("/login", response_model=UserLoginResponse)
def login(
    payload: UserLoginRequest,
    user_service: UserService = Depends(get_user_service),
) -> UserLoginResponse:
    """Login user and return JWT token."""
    result = user_service.login(payload.email, payload.password)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    user, token = result
    return UserLoginResponse(access_token=token, user=UserResponse.from_domain(user))


@router.post("/logout")
def logout(
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
) -> dict:
    """Record a logout for the current user."""
    user_service.logout(current_user)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Get current user information."""
    return UserResponse.from_domain(current_user)


@router.get("/activities", response_model=ActivityListResponse)
def list_activities(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    activity_logger: ActivityLogger = Depends(get_activity_logger),
) -> ActivityListResponse:
    """Get the current user's activity trail, newest first."""
    items, total = activity_logger.list_for_user(current_user.id, page=page, limit=limit)
    return ActivityListResponse(
        items=[ActivityResponse.from_domain(item) for item in items],
        pagination=Pagination.build(page, limit, total),
    )
