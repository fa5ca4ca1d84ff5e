import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from schemas.user import UserRecord
from schemas.video import VideoItem, VideoRecord


class DuplicateKeyError(ValueError):
    pass


class VideoRepository(ABC):
    """
    Catalog of video metadata. The registry is the source of truth for
    what gets listed; files on disk are managed separately.
    """

    def __init__(self, stream_prefix: str = "/api/videos") -> None:
        self.stream_prefix = stream_prefix.rstrip("/")

    def url_for(self, record: VideoRecord) -> str:
        return f"{self.stream_prefix}/{record.stored_filename}"

    def to_item(self, record: VideoRecord) -> VideoItem:
        return VideoItem(**record.model_dump(), url=self.url_for(record))

    @abstractmethod
    def insert(self, record: VideoRecord) -> VideoRecord:
        ...

    @abstractmethod
    def list_all(self) -> List[VideoItem]:
        ...

    @abstractmethod
    def find_by_id(self, video_id: str) -> Optional[VideoRecord]:
        ...

    @abstractmethod
    def find_by_filename(self, filename: str) -> Optional[VideoRecord]:
        ...

    @abstractmethod
    def remove_by_id(self, video_id: str) -> Optional[VideoRecord]:
        ...


class InMemoryVideoRepository(VideoRepository):
    def __init__(self, stream_prefix: str = "/api/videos") -> None:
        super().__init__(stream_prefix)
        self._videos: Dict[str, VideoRecord] = {}
        self._by_filename: Dict[str, str] = {}
        self._lock = threading.Lock()

    def insert(self, record: VideoRecord) -> VideoRecord:
        with self._lock:
            if record.id in self._videos:
                raise DuplicateKeyError(f"Video {record.id} already registered")
            if record.stored_filename in self._by_filename:
                raise DuplicateKeyError(f"File {record.stored_filename} already registered")
            self._videos[record.id] = record
            self._by_filename[record.stored_filename] = record.id
        return record

    def list_all(self) -> List[VideoItem]:
        with self._lock:
            records = list(self._videos.values())
        return [self.to_item(r) for r in records]

    def find_by_id(self, video_id: str) -> Optional[VideoRecord]:
        with self._lock:
            return self._videos.get(video_id)

    def find_by_filename(self, filename: str) -> Optional[VideoRecord]:
        with self._lock:
            video_id = self._by_filename.get(filename)
            return self._videos.get(video_id) if video_id else None

    def remove_by_id(self, video_id: str) -> Optional[VideoRecord]:
        with self._lock:
            record = self._videos.pop(video_id, None)
            if record is not None:
                self._by_filename.pop(record.stored_filename, None)
            return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._videos)


class UserRepository(ABC):
    @abstractmethod
    def add(self, user: UserRecord) -> UserRecord:
        ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[UserRecord]:
        ...


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self._users: Dict[str, UserRecord] = {}
        self._lock = threading.Lock()

    def add(self, user: UserRecord) -> UserRecord:
        # uniqueness check and insert happen under one lock
        with self._lock:
            for existing in self._users.values():
                if existing.email == user.email or existing.username == user.username:
                    raise DuplicateKeyError("User already exists")
            self._users[user.id] = user
        return user

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return user
        return None
