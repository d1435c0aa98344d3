"""
Helpers for images kept in Supabase Storage buckets.

Deletions and bucket creation are best-effort: failures are logged and do not
fail the request that triggered them.
"""

import logging
import time
from typing import List, Optional

from storefront.images import optimize_or_original
from storefront.supabase_client import SupabaseClient
from storefront.uploads import StoredUpload, safe_filename

logger = logging.getLogger("storefront.storage")

REMOVE_BATCH_SIZE = 50


def ensure_bucket(supabase: SupabaseClient, bucket: str) -> None:
    try:
        names = {b.get("name") or b.get("id") for b in supabase.list_buckets()}
        if bucket not in names:
            supabase.create_bucket(bucket, public=True)
            logger.info("storage: created bucket=%s", bucket)
    except Exception as e:
        logger.warning("storage: could not verify bucket=%s error=%s", bucket, e)


def store_image(
    supabase: SupabaseClient,
    bucket: str,
    folder: str,
    upload: StoredUpload,
    max_width: int = 1920,
    max_height: int = 1080,
    quality: int = 85,
) -> str:
    """Optimize an uploaded image, put it under `folder/` and return its public URL."""
    image = optimize_or_original(upload.read(), upload.original_name, max_width, max_height, quality)
    path = f"{folder}/{int(time.time() * 1000)}-{safe_filename(image.filename)}"
    supabase.upload(bucket, path, image.content, content_type=image.content_type)
    return supabase.public_url(bucket, path)


def delete_by_url(supabase: SupabaseClient, bucket: str, url: Optional[str]) -> bool:
    """Remove the object behind a public URL if it lives in our storage."""
    if not supabase.is_storage_url(url):
        return False
    path = supabase.path_from_public_url(url, bucket)
    if not path:
        return False
    try:
        supabase.remove_files(bucket, [path])
        logger.info("storage: removed bucket=%s path=%s", bucket, path)
        return True
    except Exception as e:
        logger.warning("storage: remove failed bucket=%s path=%s error=%s", bucket, path, e)
        return False


def remove_paths(supabase: SupabaseClient, bucket: str, paths: List[str]) -> int:
    """Remove objects in batches; returns how many were removed."""
    removed = 0
    for i in range(0, len(paths), REMOVE_BATCH_SIZE):
        batch = paths[i:i + REMOVE_BATCH_SIZE]
        try:
            supabase.remove_files(bucket, batch)
            removed += len(batch)
        except Exception as e:
            logger.warning("storage: batch remove failed bucket=%s size=%s error=%s", bucket, len(batch), e)
    return removed


def remove_folder(supabase: SupabaseClient, bucket: str, folder: str) -> int:
    """Remove every object under `folder/`, recursing into sub-folders."""
    try:
        entries = supabase.list_files(bucket, prefix=folder, limit=1000)
    except Exception as e:
        logger.warning("storage: list failed bucket=%s folder=%s error=%s", bucket, folder, e)
        return 0
    files, removed = [], 0
    for entry in entries:
        name = entry.get("name")
        if not name:
            continue
        if entry.get("id") is None:
            # folders have no id in storage listings
            removed += remove_folder(supabase, bucket, f"{folder}/{name}")
        else:
            files.append(f"{folder}/{name}")
    return removed + remove_paths(supabase, bucket, files)
