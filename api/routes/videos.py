import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, StreamingResponse

from api.deps import get_current_user, get_settings, get_video_service
from core.config import Settings
from schemas.user import Identity
from schemas.video import Ack, UploadResponse, VideoItem
from services.video_service import VideoService, parse_range

logger = logging.getLogger(__name__)

router = APIRouter(tags=["videos"])


@router.post("/upload", response_model=UploadResponse)
async def upload_video(
    request: Request,
    user: Identity = Depends(get_current_user),
    service: VideoService = Depends(get_video_service),
):
    # the body is only read once the caller is authenticated
    service.check_declared_size(request.headers.get("content-length"))

    video = await service.receive(
        owner=user,
        body=request.stream(),
        content_type=request.headers.get("content-type", ""),
    )
    return UploadResponse(video=video)


@router.get("/videos", response_model=List[VideoItem])
def list_videos(service: VideoService = Depends(get_video_service)):
    return service.list_videos()


@router.head("/videos/{key}")
def head_video(
    key: str,
    service: VideoService = Depends(get_video_service),
    settings: Settings = Depends(get_settings),
):
    video = service.get_video(key)
    if video is not None:
        return JSONResponse(jsonable_encoder(video))

    _, file_size = service.locate(key)
    return Response(
        status_code=200,
        headers={
            "Accept-Ranges": "bytes",
            "Content-Length": str(file_size),
            "Content-Type": settings.VIDEO_MEDIA_TYPE,
        },
    )


@router.get("/videos/{key}")
async def get_or_stream_video(
    key: str,
    range: Optional[str] = Header(None),
    service: VideoService = Depends(get_video_service),
    settings: Settings = Depends(get_settings),
):
    """
    A video id answers with the catalog record; a stored file name
    (as found in a record's url) streams the file.
    """
    video = service.get_video(key)
    if video is not None:
        return video

    path, file_size = service.locate(key)
    content_type = settings.VIDEO_MEDIA_TYPE

    if range is None:
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Length": str(file_size),
            "Content-Type": content_type,
        }
        return StreamingResponse(
            service.stream(path, 0, file_size - 1), headers=headers, media_type=content_type
        )

    start, end = parse_range(range, file_size)
    content_length = end - start + 1
    headers = {
        "Content-Range": f"bytes {start}-{end}/{file_size}",
        "Accept-Ranges": "bytes",
        "Content-Length": str(content_length),
        "Content-Type": content_type,
    }
    return StreamingResponse(
        service.stream(path, start, end),
        status_code=206,
        headers=headers,
        media_type=content_type,
    )


@router.delete("/videos/{video_id}", response_model=Ack)
def delete_video(
    video_id: str,
    user: Identity = Depends(get_current_user),
    service: VideoService = Depends(get_video_service),
):
    service.delete(video_id)
    logger.info(f"Video {video_id} deleted by {user.username}")
    return Ack(message="Video deleted")


@router.get("/health")
def health():
    return {"status": "ok", "message": "Server is running"}
