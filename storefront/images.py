"""
Image upload filtering and optimization (Pillow).

Uploads are resized to fit inside a bounding box (never enlarged), rotated
according to their EXIF orientation, stripped of metadata and re-encoded.
PNG and GIF keep their format; everything else becomes WebP.
"""

import io
import logging
import math
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, UploadFile
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger("storefront.images")

IMAGE_EXTENSIONS = (
    "jpg", "jpeg", "png", "gif", "webp", "bmp", "svg", "tiff", "tif",
    "ico", "jfif", "pjpeg", "pjp", "avif",
)
# Formats Pillow can decode for re-encoding; the rest are stored as uploaded
OPTIMIZABLE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "tif", "avif")

CONTENT_TYPES = {
    "jpg": "image/jpeg", "jpeg": "image/jpeg", "jfif": "image/jpeg",
    "pjpeg": "image/jpeg", "pjp": "image/jpeg",
    "png": "image/png", "gif": "image/gif", "webp": "image/webp",
    "bmp": "image/bmp", "svg": "image/svg+xml", "tiff": "image/tiff",
    "tif": "image/tiff", "ico": "image/x-icon", "avif": "image/avif",
}

MB = 1024 * 1024


@dataclass
class OptimizedImage:
    content: bytes
    filename: str
    format: str
    original_size: int
    optimized_size: int

    @property
    def compression_ratio(self) -> float:
        if not self.original_size:
            return 0.0
        return round((1 - self.optimized_size / self.original_size) * 100, 2)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES.get(self.format, "application/octet-stream")


def extension(filename: Optional[str]) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


def get_content_type(filename: str) -> str:
    return CONTENT_TYPES.get(extension(filename), "application/octet-stream")


def format_bytes(size: int) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024 ** i), 2)
    return f"{value:g} {units[i]}"


def check_image_file(file: UploadFile) -> UploadFile:
    """Reject uploads whose extension is not an image type (400)."""
    if extension(file.filename) not in IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail="Only image files are allowed! Supported formats: " + ", ".join(IMAGE_EXTENSIONS),
        )
    return file


def check_csv_file(file: UploadFile) -> UploadFile:
    if extension(file.filename) != "csv":
        raise HTTPException(status_code=400, detail="Only CSV files are allowed!")
    return file


def _output_format(source_ext: str, requested: str) -> str:
    if requested != "auto":
        return requested
    if source_ext in ("png", "gif"):
        return source_ext
    return "webp"


def optimize_image(
    data: bytes,
    filename: str,
    max_width: int = 1920,
    max_height: int = 1080,
    quality: int = 85,
    fmt: str = "auto",
) -> OptimizedImage:
    """
    Resize and re-encode an image.

    Raises ValueError when the bytes are not a decodable image.
    """
    source_ext = extension(filename)
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Cannot decode image {filename}: {e}") from e

    img = ImageOps.exif_transpose(img)
    img.thumbnail((max_width, max_height))

    out_format = _output_format(source_ext, fmt)
    buf = io.BytesIO()
    if out_format == "webp":
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() or img.mode == "P" else "RGB")
        img.save(buf, format="WEBP", quality=quality, method=4)
    elif out_format in ("jpeg", "jpg"):
        out_format = "jpeg"
        if img.mode != "RGB":
            img = img.convert("RGB")
        img.save(buf, format="JPEG", quality=quality, progressive=True, optimize=True)
    elif out_format == "png":
        img.save(buf, format="PNG", optimize=True)
    elif out_format == "gif":
        img.save(buf, format="GIF")
    else:
        raise ValueError(f"Unsupported output format: {out_format}")

    base = os.path.splitext(os.path.basename(filename))[0]
    ext = "jpg" if out_format == "jpeg" else out_format
    content = buf.getvalue()
    return OptimizedImage(
        content=content,
        filename=f"{base}_optimized.{ext}",
        format=ext,
        original_size=len(data),
        optimized_size=len(content),
    )


def optimize_or_original(
    data: bytes, filename: str, max_width: int = 1920, max_height: int = 1080, quality: int = 85
) -> OptimizedImage:
    """Optimize when possible; otherwise return the upload untouched."""
    if extension(filename) in OPTIMIZABLE_EXTENSIONS:
        try:
            result = optimize_image(data, filename, max_width, max_height, quality)
            logger.info(
                "images: optimized file=%s %s -> %s (%.1f%% smaller)",
                filename, format_bytes(result.original_size),
                format_bytes(result.optimized_size), result.compression_ratio,
            )
            return result
        except Exception as e:
            logger.warning("images: optimization failed file=%s error=%s, using original", filename, e)
    ext = extension(filename) or "bin"
    return OptimizedImage(
        content=data,
        filename=os.path.basename(filename),
        format=ext,
        original_size=len(data),
        optimized_size=len(data),
    )
