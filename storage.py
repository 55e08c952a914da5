"""Local-disk storage for listing images, served under /images."""

import logging
import os
import time
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

from fastapi import UploadFile

from config import settings
from errors import PayloadTooLarge, UnsupportedMediaType, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_FORMATS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
SUPPORTED_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
PUBLIC_PREFIX = "/images"
_CHUNK = 64 * 1024


class ImageStorage:
    def __init__(self, directory: str, max_bytes: int, max_files: int, field: str = "images"):
        self.directory = Path(directory)
        self.max_bytes = max_bytes
        self.max_files = max_files
        self.field = field

    def ensure_directory(self) -> Path:
        if not self.directory.exists():
            self.directory.mkdir(parents=True, exist_ok=True)
            logger.info("Created upload directory: %s", self.directory.resolve())
        return self.directory

    def check_type(self, upload: UploadFile) -> str:
        ext = Path(upload.filename or "").suffix.lower()
        content_type = (upload.content_type or "").lower()
        if ext not in SUPPORTED_IMAGE_FORMATS or content_type not in SUPPORTED_MIME_TYPES:
            raise UnsupportedMediaType("Only image files are allowed (jpeg, jpg, png, gif, webp).")
        return ext

    def _target(self, ext: str) -> Path:
        name = f"{self.field}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"
        return self.directory / name

    def save(self, upload: UploadFile, ext: Optional[str] = None) -> str:
        """Write one upload to disk and return its public reference."""
        ext = ext or self.check_type(upload)
        self.ensure_directory()
        path = self._target(ext)
        written = 0
        with open(path, "wb") as buffer:
            while True:
                chunk = upload.file.read(_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    break
                buffer.write(chunk)
        if written > self.max_bytes:
            path.unlink(missing_ok=True)
            raise PayloadTooLarge(f"File too large. Max {self.max_bytes // (1024 * 1024)}MB per image.")
        if written == 0:
            path.unlink(missing_ok=True)
            raise ValidationError(f"File is empty: {upload.filename}")
        return f"{PUBLIC_PREFIX}/{path.name}"

    def save_all(self, uploads: Sequence[UploadFile]) -> List[str]:
        files = [u for u in (uploads or []) if u is not None and u.filename]
        if not files:
            raise ValidationError("Product image is required.")
        if len(files) > self.max_files:
            raise PayloadTooLarge(f"Too many images. Max {self.max_files} per listing.")
        exts = [self.check_type(u) for u in files]

        saved: List[str] = []
        try:
            for upload, ext in zip(files, exts):
                saved.append(self.save(upload, ext))
        except (PayloadTooLarge, ValidationError):
            for ref in saved:
                self.path_for(ref).unlink(missing_ok=True)
            raise
        return saved

    def path_for(self, reference: str) -> Path:
        return self.directory / Path(reference).name

    def health(self) -> dict:
        return {
            "imagesFolder": str(self.directory.resolve()),
            "exists": self.directory.exists(),
            "readable": self.directory.is_dir() and os.access(self.directory, os.R_OK),
        }


def get_storage() -> ImageStorage:
    return ImageStorage(settings.UPLOAD_DIR, settings.MAX_IMAGE_BYTES, settings.MAX_IMAGES)
