import logging
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes.auth import router as auth_router
from api.routes.videos import router as videos_router
from core.config import Settings
from core.errors import register_exception_handlers
from services.auth_service import AuthService
from services.registry import (
    InMemoryUserRepository,
    InMemoryVideoRepository,
    UserRepository,
    VideoRepository,
)
from services.storage import StoragePathResolver
from services.video_service import VideoService

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    video_repository: Optional[VideoRepository] = None,
    user_repository: Optional[UserRepository] = None,
) -> FastAPI:
    settings = settings or Settings()
    prefix = settings.API_PREFIX.rstrip("/")

    storage = StoragePathResolver(settings.UPLOAD_DIR)
    storage.ensure_root()

    if video_repository is None:
        video_repository = InMemoryVideoRepository(stream_prefix=f"{prefix}/videos")
    if user_repository is None:
        user_repository = InMemoryUserRepository()

    app = FastAPI(title="Video hosting API", version="1.0.0", debug=settings.DEBUG)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Range"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )

    app.state.settings = settings
    app.state.video_service = VideoService(
        repository=video_repository,
        storage=storage,
        max_upload_size=settings.MAX_UPLOAD_SIZE,
        default_thumbnail=settings.DEFAULT_THUMBNAIL,
    )
    app.state.auth_service = AuthService(
        repository=user_repository,
        secret_key=settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
        token_ttl=timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS),
    )

    if settings.DEFAULT_USER_USERNAME and settings.DEFAULT_USER_EMAIL and settings.DEFAULT_USER_PASSWORD:
        app.state.auth_service.seed_user(
            settings.DEFAULT_USER_USERNAME,
            settings.DEFAULT_USER_EMAIL,
            settings.DEFAULT_USER_PASSWORD,
        )

    register_exception_handlers(app, debug=settings.DEBUG)
    app.include_router(auth_router, prefix=prefix)
    app.include_router(videos_router, prefix=prefix)

    logger.info(f"Serving uploads from {storage.root}")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = Settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        logger.info("Starting server...")
        uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)
    except Exception as e:
        logger.error(f"Server failed to start: {e}", exc_info=True)
