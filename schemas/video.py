from datetime import datetime

from pydantic import BaseModel


class VideoRecord(BaseModel):
    id: str
    title: str
    stored_filename: str
    size: int
    uploaded_at: datetime
    duration: float = 0.0
    thumbnail: str
    owner_id: str
    owner_name: str


class VideoItem(VideoRecord):
    url: str            # derived at read time, never stored


class UploadResponse(BaseModel):
    success: bool = True
    video: VideoItem


class Ack(BaseModel):
    success: bool = True
    message: str
