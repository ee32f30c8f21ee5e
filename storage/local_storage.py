"""
Local disk storage for complaint photos.
Files live under UPLOADS_DIR and are served publicly from /uploads/<filename>.
"""
import shutil
import time
from pathlib import Path
from typing import BinaryIO, Optional

from core.logger import logger


class LocalMediaStorage:
    """Stores uploaded images under a directory and deletes them best-effort."""

    def __init__(self, root_dir: Path, url_prefix: str = "uploads"):
        """
        Args:
            root_dir: Directory files are written to
            url_prefix: Public path prefix recorded on the complaint (e.g. "uploads")
        """
        self.root_dir = Path(root_dir)
        self.url_prefix = url_prefix.strip("/")
        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Read-only containers: uploads will fail but the API still starts
            logger.warning(f"Could not create uploads directory {self.root_dir}: {e}")

    def _new_filename(self, extension: str) -> str:
        """Timestamp (epoch millis) + original extension, bumped on collision."""
        stamp = int(time.time() * 1000)
        while (self.root_dir / f"{stamp}{extension}").exists():
            stamp += 1
        return f"{stamp}{extension}"

    def save(self, fileobj: BinaryIO, original_filename: str) -> str:
        """
        Write an uploaded file to disk.

        Args:
            fileobj: Readable binary file object
            original_filename: Client filename, used only for its extension

        Returns:
            Public relative path, e.g. "uploads/1717000000000.jpg"
        """
        extension = Path(original_filename or "").suffix.lower()
        filename = self._new_filename(extension)
        destination = self.root_dir / filename
        with open(destination, "wb") as buffer:
            shutil.copyfileobj(fileobj, buffer)
        logger.info(f"Stored upload {original_filename!r} as {filename}")
        return f"{self.url_prefix}/{filename}"

    def resolve(self, public_path: str) -> Optional[Path]:
        """Map a stored public path back onto a file inside root_dir (None if it escapes)."""
        if not public_path:
            return None
        name = Path(public_path.replace("\\", "/")).name
        if not name:
            return None
        candidate = self.root_dir / name
        if candidate.resolve().parent != self.root_dir.resolve():
            return None
        return candidate

    def delete(self, public_path: Optional[str]) -> bool:
        """
        Best-effort delete. A missing file is not an error; failures are logged.

        Returns:
            True if a file was removed
        """
        path = self.resolve(public_path) if public_path else None
        if path is None:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Image already gone: {public_path}")
            return False
        except OSError as e:
            logger.warning(f"Failed to delete image {public_path}: {e}")
            return False
        logger.info(f"Deleted image {public_path}")
        return True
