from fastapi import APIRouter, Depends, Response

from api.deps import get_auth_service, get_current_user, get_settings
from api.routing import LimitedBodyRoute
from core.config import Settings
from core.security import TOKEN_COOKIE
from schemas.user import Identity, LoginRequest, SignupRequest, TokenResponse, UserResponse
from schemas.video import Ack
from services.auth_service import AuthService

router = APIRouter(tags=["auth"], route_class=LimitedBodyRoute)


def _set_token_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
    )


@router.post("/signup", response_model=TokenResponse)
def signup(
    payload: SignupRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    token, user = service.signup(
        payload.username, payload.email, payload.password, payload.confirmPassword
    )
    _set_token_cookie(response, token, settings)
    return TokenResponse(token=token, user=user)


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    token, user = service.login(payload.email, payload.password)
    _set_token_cookie(response, token, settings)
    return TokenResponse(token=token, user=user)


@router.get("/user", response_model=UserResponse)
def current_user(user: Identity = Depends(get_current_user)):
    return UserResponse(user=user)


@router.post("/logout", response_model=Ack)
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return Ack(message="Logged out")
