import os
import re
import stat
import uuid
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

import aiofiles
import aiofiles.os
import logging

from cdn_server import config
from cdn_server.logger_config import structured_log

FILENAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]+$')

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".pdf": "application/pdf",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def is_valid_filename(name: str) -> bool:
    """Check that a filename only uses letters, digits, hyphen, underscore and dot."""
    return bool(FILENAME_PATTERN.fullmatch(name))


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


class StorageManager:
    def __init__(self, upload_dir: Path, logger: logging.Logger, chunk_size: int = config.CHUNK_SIZE):
        self.upload_dir = Path(upload_dir)
        self.logger = logger
        self.chunk_size = chunk_size

    @property
    def root(self) -> Path:
        return self.upload_dir.resolve()

    async def initialize(self):
        """Create the upload directory and log the files it already holds."""
        self.logger.info(f"Initializing storage in {self.upload_dir}...")
        await aiofiles.os.makedirs(self.upload_dir, mode=0o755, exist_ok=True)

        file_count = 0
        total_size = 0
        with os.scandir(self.upload_dir) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            if not entry.is_file():
                continue
            size = entry.stat().st_size
            file_count += 1
            total_size += size
            self.logger.info(structured_log("Stored file", event="stored_file", filename=entry.name, size=size))

        self.logger.info(structured_log(
            "Storage initialized",
            event="storage_initialized",
            files=file_count,
            total_mb=f"{total_size / (1024*1024):.2f}",
        ))

    def safe_join(self, relative_path: str) -> Optional[Path]:
        """Join a client-supplied path onto the upload directory.

        Returns None when the canonical result is not strictly inside the
        upload directory (traversal, the directory itself, invalid bytes).
        """
        relative = relative_path.lstrip("/\\")
        if not relative:
            return None

        root = self.root
        try:
            candidate = (root / relative).resolve()
        except (OSError, ValueError):
            return None

        if candidate == root or not candidate.is_relative_to(root):
            return None
        return candidate

    def sanitize_filename(self, raw_name: Optional[str]) -> Optional[str]:
        """Trim and validate an uploaded filename, returning None if it is unsafe."""
        if raw_name is None:
            return None
        name = raw_name.strip()
        if not name or not is_valid_filename(name):
            return None
        target = self.safe_join(name)
        if target is None or target.parent != self.root:
            return None
        return name

    async def resolve_download(self, url_path: str) -> Tuple[Path, os.stat_result]:
        """Find the stored file for a request path.

        Raises:
            FileNotFoundError: If the path escapes the upload directory, does not exist or is not a file
            OSError: For any other stat failure
        """
        target = self.safe_join(url_path)
        if target is None:
            self.logger.warning(structured_log("Rejected path", event="path_rejected", path=url_path))
            raise FileNotFoundError(url_path)

        try:
            file_stat = await aiofiles.os.stat(target)
        except NotADirectoryError as e:
            raise FileNotFoundError(url_path) from e

        if not stat.S_ISREG(file_stat.st_mode):
            raise FileNotFoundError(url_path)
        return target, file_stat

    async def iter_file(self, path: Path) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, 'rb') as file:
            while chunk := await file.read(self.chunk_size):
                yield chunk

    async def save_upload(self, filename: str, source) -> int:
        """Stream an uploaded file into the upload directory.

        Args:
            filename: A name already accepted by sanitize_filename
            source: Object with an async read(size) method

        Returns:
            int: Number of bytes written

        Raises:
            ValueError: If the filename does not resolve inside the upload directory
            OSError: If the directory or file cannot be created or written
        """
        target = self.safe_join(filename)
        if target is None:
            raise ValueError(f"Invalid filename: {filename!r}")

        await aiofiles.os.makedirs(self.upload_dir, mode=0o755, exist_ok=True)

        # Readers and concurrent writers only ever see a complete file
        partial = target.with_name(f".{filename}.{uuid.uuid4().hex}.part")
        size = 0
        try:
            async with aiofiles.open(partial, 'wb') as f:
                while chunk := await source.read(self.chunk_size):
                    size += len(chunk)
                    await f.write(chunk)
            await aiofiles.os.replace(partial, target)
        except BaseException:
            if await aiofiles.os.path.exists(partial):
                await aiofiles.os.remove(partial)
            raise
        return size
