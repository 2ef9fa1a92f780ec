"""
Storage for uploaded product images
"""
from abc import ABC, abstractmethod
from pathlib import Path
import logging
import re
import time

from marketplace.config import get_settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


class ImageStorage(ABC):
    """Abstract interface for image storage backends"""

    @abstractmethod
    def save(self, filename: str, data: bytes) -> str:
        """
        Store an image.

        Args:
            filename: Original file name supplied by the client
            data: Image bytes

        Returns:
            Relative path the image can be served from
        """
        pass

    @abstractmethod
    def delete(self, image_path: str) -> bool:
        """
        Delete an image.

        Args:
            image_path: Path returned by save()

        Returns:
            True if successful, False otherwise
        """
        pass


class LocalImageStorage(ImageStorage):
    """Writes images into UPLOAD_DIR, served statically under /uploads."""

    def __init__(self, upload_dir: str = None):
        self.upload_dir = Path(upload_dir or get_settings().UPLOAD_DIR)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def save(self, filename: str, data: bytes) -> str:
        # Prefix with a millisecond timestamp so uploads never overwrite each other
        safe_name = _UNSAFE_CHARS_RE.sub("_", Path(filename or "image").name) or "image"
        stored_name = f"{int(time.time() * 1000)}-{safe_name}"
        target = self.upload_dir / stored_name
        counter = 1
        while target.exists():
            target = self.upload_dir / f"{int(time.time() * 1000)}-{counter}-{safe_name}"
            counter += 1

        target.write_bytes(data)
        logger.info(f"Stored image {target}")
        return f"uploads/{target.name}"

    def delete(self, image_path: str) -> bool:
        target = self.upload_dir / Path(image_path).name
        try:
            target.unlink()
            return True
        except FileNotFoundError:
            logger.warning(f"Image {target} already removed")
            return False
        except OSError as e:
            logger.error(f"Error deleting image file {target}: {e}")
            return False
