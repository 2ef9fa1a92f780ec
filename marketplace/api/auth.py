from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from typing import Optional

from marketplace.config import get_settings
from marketplace.database import get_db
from marketplace.api.dependencies import get_current_user
from marketplace.models.user import User
from marketplace.services.auth_service import AuthService
from marketplace.services.exceptions import AuthenticationError, ConflictError
from marketplace.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["Auth"])

settings = get_settings()

REFRESH_COOKIE_NAME = "refreshToken"


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=refresh_token,
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite="strict",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        path="/api/v1/auth",
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an account",
    description="Create a VILLAGER (seller) or USER (buyer) account."
)
def register(
    data: RegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Register an account.

    - **email**: Login email, must be unique
    - **password**: At least 6 characters
    - **role**: VILLAGER or USER (default USER)
    - **farm_name**: Farm display name for villagers
    """
    service = AuthService(db)

    try:
        user = service.register(data)
    except ConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )

    return RegisterResponse(
        **UserResponse.model_validate(user).model_dump(),
        message="User registered successfully."
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Log in",
    description="Returns an access token and sets the refresh token as an HttpOnly cookie."
)
def login(
    data: LoginRequest,
    response: Response,
    db: Session = Depends(get_db)
):
    """Log in with email and password."""
    service = AuthService(db)

    try:
        user = service.authenticate(data.email, data.password)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    access_token, refresh_token = service.issue_tokens(user)
    _set_refresh_cookie(response, refresh_token)

    return TokenResponse(access_token=access_token, user=UserResponse.model_validate(user))


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh tokens",
    description="Exchange the refresh token cookie for a new token pair."
)
def refresh(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE_NAME),
    db: Session = Depends(get_db)
):
    """Rotate the refresh token; the presented one can't be used again."""
    if not refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token missing"
        )

    try:
        user, access_token, new_refresh_token = AuthService(db).rotate(refresh_token)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    _set_refresh_cookie(response, new_refresh_token)
    return TokenResponse(access_token=access_token, user=UserResponse.model_validate(user))


@router.post(
    "/logout",
    summary="Log out",
    description="Revoke the refresh token cookie."
)
def logout(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE_NAME),
    db: Session = Depends(get_db)
):
    """Log out."""
    if refresh_token:
        AuthService(db).revoke(refresh_token)
    response.delete_cookie(REFRESH_COOKIE_NAME, path="/api/v1/auth")
    return {"message": "Logged out successfully."}


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Current account"
)
def me(current_user: User = Depends(get_current_user)):
    """Get the account the access token belongs to."""
    return current_user
