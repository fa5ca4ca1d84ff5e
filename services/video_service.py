import logging
import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Tuple

import aiofiles
import anyio

from core.config import CHUNK_SIZE
from core.errors import (
    NotFoundError,
    PayloadTooLargeError,
    RangeNotSatisfiableError,
    StorageError,
    ValidationError,
)
from schemas.user import Identity
from schemas.video import VideoItem, VideoRecord
from services.form_stream import PART_BEGIN, PART_DATA, PART_END, FormPart, FormStream
from services.registry import VideoRepository
from services.storage import StoragePathResolver

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".mp4"
_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,16}$")

# room for multipart boundaries and the small text fields
MULTIPART_ALLOWANCE = 64 * 1024

TEXT_FIELDS = ("title", "duration", "thumbnail")
MAX_FIELD_SIZE = 64 * 1024
MAX_FORM_PARTS = 16

_DIGITS_RE = re.compile(r"[0-9]+")


def parse_range(range_header: str, file_size: int) -> Tuple[int, int]:
    """
    Parse a header like: Range: bytes=start-end
    Return (start, end) inclusive.

    Only a single range is served; multi-range requests are refused.
    """
    try:
        units, _, rng = range_header.partition("=")
        if units.lower() != "bytes" or not rng or "," in rng:
            raise ValueError
        start_str, _, end_str = rng.partition("-")

        if start_str == "" and end_str == "":
            raise ValueError
        # int() alone would let through "+5", "1_0" and padded numbers
        for part in (start_str, end_str):
            if part and not _DIGITS_RE.fullmatch(part):
                raise ValueError

        if start_str == "":
            # suffix range: last N bytes
            length = int(end_str)
            if length <= 0:
                raise ValueError
            start = max(file_size - length, 0)
            end = file_size - 1
        else:
            start = int(start_str)
            end = int(end_str) if end_str else file_size - 1

        if start < 0 or end < start or end >= file_size:
            raise ValueError

        return start, end
    except ValueError:
        raise RangeNotSatisfiableError(file_size)


async def file_iterator(path: Path, start: int, end: int, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """
    Yield bytes start..end (inclusive) of the file. A fresh handle is
    opened per call; closing the generator early releases it.
    """
    read_bytes = 0
    to_read = end - start + 1
    async with aiofiles.open(path, "rb") as f:
        await f.seek(start)
        while read_bytes < to_read:
            data = await f.read(min(chunk_size, to_read - read_bytes))
            if not data:
                logger.warning(f"{path.name} shrank while streaming ({read_bytes}/{to_read} bytes sent)")
                break
            read_bytes += len(data)
            yield data


def parse_duration(raw: Optional[str]) -> float:
    if raw is None or str(raw).strip() == "":
        return 0.0
    try:
        duration = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("Duration must be a number")
    if duration < 0 or duration != duration:
        raise ValidationError("Duration must be a non-negative number")
    return duration


def stored_extension(original_name: str) -> str:
    ext = os.path.splitext(original_name)[1]
    return ext if _EXTENSION_RE.match(ext) else DEFAULT_EXTENSION


class _UploadTarget:
    """The file an incoming video part is written to."""

    def __init__(self, vid: str, stored_name: str, path: Path, original_name: str) -> None:
        self.vid = vid
        self.stored_name = stored_name
        self.path = path
        self.original_name = original_name
        self.size = 0
        self._out = None

    async def open(self) -> None:
        self._out = await aiofiles.open(self.path, "wb")

    async def write(self, data: bytes) -> None:
        await self._out.write(data)

    async def close(self) -> None:
        if self._out is not None:
            out, self._out = self._out, None
            await out.close()


class VideoService:
    def __init__(
        self,
        repository: VideoRepository,
        storage: StoragePathResolver,
        max_upload_size: int,
        default_thumbnail: str = "/images/default-thumbnail.jpg",
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.max_upload_size = max_upload_size
        self.default_thumbnail = default_thumbnail
        self.chunk_size = chunk_size

    def check_declared_size(self, content_length: Optional[str]) -> None:
        """Reject a request whose declared body can't fit before reading it."""
        if not content_length:
            return
        try:
            declared = int(content_length)
        except ValueError:
            raise ValidationError("Invalid Content-Length header")
        if declared > self.max_upload_size + MULTIPART_ALLOWANCE:
            raise PayloadTooLargeError(f"File exceeds the {self.max_upload_size} byte limit")

    async def _open_target(self, filename: str) -> _UploadTarget:
        original_name = Path(filename).name
        vid = str(uuid.uuid4())
        stored_name = f"{vid}{stored_extension(original_name)}"
        target = _UploadTarget(vid, stored_name, self.storage.resolve(stored_name), original_name)
        await target.open()
        return target

    async def _abort(self, target: Optional[_UploadTarget]) -> None:
        if target is None:
            return
        with anyio.CancelScope(shield=True):
            await target.close()
        self.storage.discard(target.path)

    async def _read_form(self, body: AsyncIterator[bytes], form: FormStream):
        async for chunk in body:
            for event in form.feed(chunk):
                yield event
        for event in form.finish():
            yield event

    async def _receive_body(
        self, body: AsyncIterator[bytes], content_type: str
    ) -> Tuple[Optional[_UploadTarget], Dict[str, str]]:
        """
        Stream the form body, writing the `video` part straight to its
        final path and collecting the small text fields.
        """
        form = FormStream(content_type)
        fields: Dict[str, str] = {}
        target: Optional[_UploadTarget] = None
        part: Optional[FormPart] = None
        writing = False
        buffer = bytearray()
        parts = 0

        try:
            async for kind, payload in self._read_form(body, form):
                if kind == PART_BEGIN:
                    parts += 1
                    if parts > MAX_FORM_PARTS:
                        raise ValidationError("Too many form fields")
                    part = payload
                    buffer.clear()
                    if part.name == "video" and part.filename:
                        if target is not None:
                            raise ValidationError("Only one video file may be uploaded")
                        target = await self._open_target(part.filename)
                        writing = True
                elif kind == PART_DATA:
                    if writing:
                        target.size += len(payload)
                        if target.size > self.max_upload_size:
                            raise PayloadTooLargeError(f"File exceeds the {self.max_upload_size} byte limit")
                        await target.write(payload)
                    elif part is not None and not part.is_file:
                        buffer += payload
                        if len(buffer) > MAX_FIELD_SIZE:
                            raise PayloadTooLargeError(f"Form field {part.name!r} is too large")
                elif kind == PART_END:
                    if writing:
                        await target.close()
                        writing = False
                    elif part is not None and not part.is_file and part.name in TEXT_FIELDS:
                        fields[part.name] = buffer.decode("utf-8", errors="replace")
                    part = None
            if writing:
                raise ValidationError("Malformed multipart body: video part was not terminated")
        except OSError as e:
            await self._abort(target)
            raise StorageError(f"Failed to store video file: {e}")
        except BaseException:
            # covers limit overruns, bad input and client disconnects
            await self._abort(target)
            raise

        return target, fields

    async def receive(self, owner: Identity, body: AsyncIterator[bytes], content_type: str) -> VideoItem:
        target, fields = await self._receive_body(body, content_type)
        if target is None:
            raise ValidationError("No file uploaded")

        try:
            video_duration = parse_duration(fields.get("duration"))
        except ValidationError:
            self.storage.discard(target.path)
            raise

        record = VideoRecord(
            id=target.vid,
            title=fields.get("title", "").strip() or target.original_name,
            stored_filename=target.stored_name,
            size=target.size,
            uploaded_at=datetime.now(timezone.utc),
            duration=video_duration,
            thumbnail=fields.get("thumbnail", "").strip() or self.default_thumbnail,
            owner_id=owner.id,
            owner_name=owner.username,
        )

        try:
            self.repository.insert(record)
        except Exception as e:
            self.storage.discard(target.path)
            logger.error(f"Registry insert failed for {target.vid}: {e}", exc_info=True)
            raise StorageError("Failed to register video")

        logger.info(f"Stored video {target.vid} ({target.size} bytes) for user {owner.username}")
        return self.repository.to_item(record)

    def list_videos(self) -> List[VideoItem]:
        return self.repository.list_all()

    def get_video(self, video_id: str) -> Optional[VideoItem]:
        record = self.repository.find_by_id(video_id)
        return self.repository.to_item(record) if record else None

    def delete(self, video_id: str) -> VideoRecord:
        """
        Drop the record first, then the file. A failed file removal is
        reported but the record stays gone.
        """
        record = self.repository.remove_by_id(video_id)
        if record is None:
            raise NotFoundError("Video not found")

        logger.info(f"Removed video {video_id} from catalog")
        try:
            self.storage.remove(record.stored_filename)
        except StorageError as e:
            raise StorageError(f"Video removed from catalog but file cleanup failed: {e.message}")
        return record

    def locate(self, filename: str) -> Tuple[Path, int]:
        """
        Find the backing file for a stored file name and stat it now;
        the registry and the disk are both consulted.
        """
        record = self.repository.find_by_filename(filename)
        if record is None:
            raise NotFoundError("Video not found")

        path = self.storage.resolve(record.stored_filename)
        try:
            file_size = path.stat().st_size
        except FileNotFoundError:
            raise NotFoundError("Video not found")
        except OSError as e:
            raise StorageError(f"Error streaming video: {e}")
        return path, file_size

    def stream(self, path: Path, start: int, end: int) -> AsyncIterator[bytes]:
        return file_iterator(path, start, end, self.chunk_size)
