"""
Local scratch storage for multipart uploads.

Uploaded files are written here before processing and removed afterwards.
Anything left behind (crashed requests) is swept at start-up and by the admin
clean-up endpoint.
"""

import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List

from fastapi import HTTPException, UploadFile

from storefront.config import get_uploads_dir
from storefront.images import format_bytes, get_content_type

logger = logging.getLogger("storefront.uploads")

CHUNK_SIZE = 1024 * 1024


@dataclass
class StoredUpload:
    path: str
    original_name: str
    size: int
    content_type: str

    def read(self) -> bytes:
        with open(self.path, "rb") as f:
            return f.read()

    def discard(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("uploads: could not remove %s: %s", self.path, e)


def ensure_uploads_dir() -> str:
    path = get_uploads_dir()
    os.makedirs(path, exist_ok=True)
    return path


def safe_filename(name: str) -> str:
    base = os.path.basename(name or "upload")
    return re.sub(r"[^A-Za-z0-9._-]", "_", base)


def save_upload(file: UploadFile, max_bytes: int) -> StoredUpload:
    """Stream an UploadFile to the uploads directory; 413 when over max_bytes."""
    directory = ensure_uploads_dir()
    target = os.path.join(directory, f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_filename(file.filename)}")
    size = 0
    with open(target, "wb") as out:
        while True:
            chunk = file.file.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                out.close()
                os.remove(target)
                raise HTTPException(
                    status_code=413,
                    detail=f"File too large. Maximum size is {format_bytes(max_bytes)}",
                )
            out.write(chunk)
    return StoredUpload(
        path=target,
        original_name=file.filename or "upload",
        size=size,
        content_type=file.content_type or get_content_type(file.filename or ""),
    )


def cleanup_old_files(max_age_minutes: int = 60) -> Dict[str, Any]:
    """Delete regular files older than max_age_minutes from the uploads directory."""
    directory = get_uploads_dir()
    result: Dict[str, Any] = {"deletedCount": 0, "deletedFiles": [], "errors": []}
    if not os.path.isdir(directory):
        return result
    cutoff = time.time() - max_age_minutes * 60
    for name in os.listdir(directory):
        path = os.path.join(directory, name)
        try:
            if os.path.isfile(path) and os.path.getmtime(path) < cutoff:
                os.remove(path)
                result["deletedCount"] += 1
                result["deletedFiles"].append(name)
        except OSError as e:
            logger.warning("uploads: cleanup failed for %s: %s", name, e)
            result["errors"].append({"file": name, "error": str(e)})
    logger.info("uploads: cleanup max_age_minutes=%s deleted=%s", max_age_minutes, result["deletedCount"])
    return result


def uploads_info() -> Dict[str, Any]:
    directory = get_uploads_dir()
    files: List[Dict[str, Any]] = []
    if os.path.isdir(directory):
        now = time.time()
        for name in sorted(os.listdir(directory)):
            path = os.path.join(directory, name)
            if not os.path.isfile(path):
                continue
            stat = os.stat(path)
            files.append({
                "name": name,
                "size": stat.st_size,
                "sizeFormatted": format_bytes(stat.st_size),
                "ageMinutes": round((now - stat.st_mtime) / 60, 1),
            })
    total = sum(f["size"] for f in files)
    return {
        "directory": directory,
        "exists": os.path.isdir(directory),
        "totalFiles": len(files),
        "totalSize": total,
        "totalSizeFormatted": format_bytes(total),
        "files": files,
    }
