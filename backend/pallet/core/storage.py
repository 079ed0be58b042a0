# pallet/core/storage.py
"""
Local attachment storage under settings.UPLOAD_DIR.

Each stored file gets exactly one canonical web path, /uploads/<dir>/<name>,
which is what the database keeps. resolve_path() is the only mapping back to
the filesystem.
"""
from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from fastapi import HTTPException, UploadFile, status

from pallet.core.config import settings
from pallet.core.roles import FileType

LOGGER = logging.getLogger(__name__)

WEB_PREFIX = "/uploads"

IMAGE_DIR = "images"
MATERIAL_DIR = "materials"
QRCODE_DIR = "qrcode"

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif"})
ARCHIVE_EXTENSIONS = frozenset({"zip", "rar", "7z"})

_CHUNK_SIZE = 1024 * 1024
_MB = 1024 * 1024


@dataclass(frozen=True)
class StoredFile:
    file_name: str
    file_path: str
    file_size: int


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR)


def extension_of(filename: Optional[str]) -> str:
    name = (filename or "").strip().lower()
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1]


def classify(filename: Optional[str]) -> FileType:
    """Extension-derived type. Unknown extensions are rejected outright."""
    ext = extension_of(filename)
    if ext in IMAGE_EXTENSIONS:
        return FileType.IMAGE
    if ext in ARCHIVE_EXTENSIONS:
        return FileType.MATERIAL
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "error": "UNSUPPORTED_FILE_TYPE",
            "message": f"Unsupported file type: .{ext}" if ext else "File has no extension",
            "allowed": sorted(IMAGE_EXTENSIONS | ARCHIVE_EXTENSIONS),
        },
    )


def max_bytes(file_type: FileType) -> int:
    if file_type == FileType.IMAGE:
        return settings.MAX_FILE_SIZE * _MB
    return settings.MAX_ZIP_SIZE * _MB


def _directory_for(file_type: FileType) -> str:
    return IMAGE_DIR if file_type == FileType.IMAGE else MATERIAL_DIR


def web_path(directory: str, name: str) -> str:
    return f"{WEB_PREFIX}/{directory}/{name}"


def resolve_path(path: str) -> Path:
    """
    Map a canonical web path back to the filesystem. Paths escaping the
    upload root are refused.
    """
    rel = PurePosixPath(path)
    parts = rel.parts
    if len(parts) < 2 or parts[0] != "/" or parts[1] != WEB_PREFIX.strip("/"):
        raise ValueError(f"Not an upload path: {path!r}")
    inner = PurePosixPath(*parts[2:])
    if not inner.parts or any(p in {"..", ""} for p in inner.parts):
        raise ValueError(f"Not an upload path: {path!r}")
    return upload_root().joinpath(*inner.parts)


async def save_upload(file: UploadFile, expected: FileType) -> StoredFile:
    """
    Stream an upload to disk after type and size checks. The partial file is
    removed when the size ceiling is crossed.
    """
    file_type = classify(file.filename)
    if file_type != expected:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "UNSUPPORTED_FILE_TYPE",
                "message": (
                    "Only images (jpg, jpeg, png, gif) are accepted"
                    if expected == FileType.IMAGE
                    else "Only archives (zip, rar, 7z) are accepted"
                ),
            },
        )

    limit = max_bytes(file_type)
    directory = _directory_for(file_type)
    name = f"{uuid.uuid4().hex}.{extension_of(file.filename)}"
    target = upload_root() / directory / name
    target.parent.mkdir(parents=True, exist_ok=True)

    size = 0
    with target.open("wb") as out:
        while True:
            chunk = await file.read(_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > limit:
                break
            out.write(chunk)

    if size > limit:
        target.unlink(missing_ok=True)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "FILE_TOO_LARGE",
                "message": f"File exceeds the {limit // _MB}MB limit",
                "limit_mb": limit // _MB,
            },
        )

    return StoredFile(
        file_name=(file.filename or name)[:255],
        file_path=web_path(directory, name),
        file_size=size,
    )


def save_bytes(directory: str, name: str, data: bytes) -> str:
    target = upload_root() / directory / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return web_path(directory, name)


def copy_file(path: str) -> Optional[str]:
    """
    Duplicate a stored file under a fresh name in the same directory.
    Returns the new web path, or None when the source is missing.
    """
    try:
        source = resolve_path(path)
    except ValueError:
        LOGGER.warning("Refusing to copy non-upload path %s", path)
        return None

    if not source.is_file():
        LOGGER.warning("Attachment file missing, not copied: %s", source)
        return None

    directory = PurePosixPath(path).parts[2]
    ext = source.suffix.lstrip(".")
    name = f"{uuid.uuid4().hex}.{ext}" if ext else uuid.uuid4().hex
    target = upload_root() / directory / name
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)
    return web_path(directory, name)


def remove_file(path: Optional[str]) -> bool:
    """
    Best-effort physical removal. Missing files and OS errors are logged and
    swallowed so the surrounding operation still completes.
    """
    if not path:
        return False
    try:
        target = resolve_path(path)
    except ValueError:
        LOGGER.warning("Refusing to remove non-upload path %s", path)
        return False

    try:
        target.unlink()
    except FileNotFoundError:
        LOGGER.warning("Attachment file already missing: %s", target)
        return False
    except OSError:
        LOGGER.warning("Could not remove attachment file %s", target, exc_info=True)
        return False
    return True


def remove_files(paths) -> int:
    """remove_file() over many paths; returns how many were actually removed."""
    return sum(1 for p in paths if remove_file(p))
