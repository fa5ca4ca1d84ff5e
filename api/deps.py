from fastapi import Depends, Request

from core.config import Settings
from core.security import TOKEN_COOKIE, extract_credential, verify
from schemas.user import Identity
from services.auth_service import AuthService
from services.video_service import VideoService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_video_service(request: Request) -> VideoService:
    return request.app.state.video_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_current_user(request: Request, settings: Settings = Depends(get_settings)) -> Identity:
    token = extract_credential(
        request.headers.get("Authorization"),
        request.cookies.get(TOKEN_COOKIE),
    )
    return verify(token, settings.JWT_SECRET_KEY, settings.JWT_ALGORITHM)

