"""
LexFill - File Storage
======================
Original uploads and generated documents on the local filesystem.
"""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import aiofiles

from config import get_settings
from exceptions import StorageError
from logging_config import get_logger

logger = get_logger(__name__)

UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: Optional[str]) -> str:
    """Strip directories and unusual characters from a client supplied name."""
    name = os.path.basename(filename or "").strip()
    name = UNSAFE_FILENAME_RE.sub("_", name).strip("._")
    return name or "document"


def upload_root(upload_dir: Optional[str] = None) -> Path:
    return Path(upload_dir or get_settings().upload_dir).resolve()


def upload_path(document_id: Any, filename: Optional[str], upload_dir: Optional[str] = None) -> Path:
    """<upload_dir>/<document id>_<filename>"""
    return upload_root(upload_dir) / f"{document_id}_{safe_filename(filename)}"


def generated_path(document_id: Any, upload_dir: Optional[str] = None) -> Path:
    """<upload_dir>/generated/<document id>_<timestamp>.docx"""
    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S%f")
    return upload_root(upload_dir) / "generated" / f"{document_id}_{stamp}.docx"


async def save_file(path: Path, content: bytes) -> Path:
    """Write bytes to `path`, creating parent directories."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)
    except OSError as e:
        raise StorageError("Failed to store file", path=str(path), original_error=e) from e

    logger.info("Stored file", path=str(path), size=len(content))
    return path


def delete_files(paths: Iterable[Optional[str]]) -> int:
    """Remove files that exist; returns how many were deleted."""
    deleted = 0
    for path in paths:
        if not path:
            continue
        try:
            os.remove(path)
            deleted += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Failed to delete file", path=path, error=str(e))
    return deleted
