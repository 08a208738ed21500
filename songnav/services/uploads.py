"""
Church Song Navigator - Upload Handler

Takes a file from a multipart form, stores it in the object store under a
collision-resistant key and hands back the public URL the admin page puts
into the song form::

    sheets/1741600000000-3f9c2a1b-Amazing_Grace.png
    audio/1741600000000-77d0e4c2-Amazing_Grace.mp3

No retries and no cleanup: a failed put surfaces to the caller.
"""

import asyncio
import time
import uuid
from typing import Any

from loguru import logger
from starlette.datastructures import UploadFile

from songnav.config import MAX_UPLOAD_BYTES, MAX_UPLOAD_MB, UPLOAD_NAMESPACES
from songnav.storage import DEFAULT_CONTENT_TYPE, get_object_store
from songnav.utils import sanitize_filename

_READ_CHUNK = 1024 * 1024


class UploadError(Exception):
    """Base class; ``status_code`` is the HTTP status the route answers with."""

    status_code = 500


class UploadValidationError(UploadError):
    status_code = 400


class UploadTooLargeError(UploadError):
    status_code = 413


class StorageNotConfiguredError(UploadError):
    status_code = 500


def build_storage_key(kind: str, filename: str, now_ms: int | None = None) -> str:
    """``<namespace>/<epoch-ms>-<random>-<sanitized filename>``."""
    namespace = UPLOAD_NAMESPACES[kind]
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    token = uuid.uuid4().hex[:8]
    return f"{namespace}/{stamp}-{token}-{sanitize_filename(filename)}"


async def _read_limited(upload: UploadFile) -> bytes:
    chunks = []
    total = 0
    while chunk := await upload.read(_READ_CHUNK):
        total += len(chunk)
        if total > MAX_UPLOAD_BYTES:
            raise UploadTooLargeError(f"文件过大，最大 {MAX_UPLOAD_MB}MB")
        chunks.append(chunk)
    return b"".join(chunks)


async def upload_file(kind: str, upload: Any) -> str:
    """
    Store an uploaded file and return its public URL.

    *kind* is ``"sheet"`` or ``"audio"``.  *upload* is whatever the form held
    under the file field; anything that is not a named file is rejected
    before the object store is touched.
    """
    if not isinstance(upload, UploadFile) or not upload.filename:
        raise UploadValidationError("没有选择文件")

    store = get_object_store()
    if store is None:
        raise StorageNotConfiguredError(
            "对象存储未配置 (set R2_BUCKET, R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY and PUBLIC_BASE_URL)"
        )

    data = await _read_limited(upload)
    key = build_storage_key(kind, upload.filename)
    content_type = upload.content_type or DEFAULT_CONTENT_TYPE

    # boto3 is blocking; keep it off the event loop.
    result = await asyncio.to_thread(store.put, key, data, content_type)
    url = store.public_url(result["key"])

    logger.info("📤 {} upload stored: {} ({} bytes)", kind, key, len(data))
    return url
