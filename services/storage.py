import logging
from pathlib import Path

from core.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)


class StoragePathResolver:
    """
    Maps stored file names onto paths inside a single upload root.

    Only bare file names are accepted, so a resolved path can never
    leave the root.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, filename: str) -> Path:
        if (
            not filename
            or filename in (".", "..")
            or "/" in filename
            or "\\" in filename
            or "\x00" in filename
        ):
            raise ValidationError(f"Invalid file name: {filename!r}")

        self.ensure_root()
        path = self.root / filename
        if path.resolve().parent != self.root:
            raise ValidationError(f"Invalid file name: {filename!r}")
        return path

    def discard(self, path: Path) -> None:
        """Best-effort removal of a partially written file."""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial file {path}: {e}")

    def remove(self, filename: str) -> None:
        path = self.resolve(filename)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete video file: {e}")
