"""
Church Song Navigator - Admin JSON Routes

Endpoints behind the admin page:
- login (password -> admin token cookie)
- save a weekly collection (flat form or JSON payload)
- sheet-music / audio uploads to the object store
- password change
- collection history: paged list, fetch for editing, delete, batch delete

Every response is ``{"success": bool, ...}``; failures carry ``error`` with
a message the admin page shows as-is.
"""

import json
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from songnav.auth import (
    WRONG_PASSWORD_MESSAGE,
    admin_required,
    set_admin_cookie,
    verify_password,
)
from songnav.config import ADMIN_TOKEN, DEFAULT_PER_PAGE
from songnav.database import (
    CollectionNotFoundError,
    DuplicateWeekLabelError,
    delete_collection,
    delete_collections,
    get_collection,
    get_config,
    list_collections_page,
    save_collection,
    set_password,
)
from songnav.models import CollectionSave
from songnav.services.collections import parse_song_form
from songnav.services.uploads import UploadError, upload_file
from songnav.utils import to_int

router = APIRouter(tags=["Admin"])

_admin_only = [Depends(admin_required)]

EMPTY_WEEK_LABEL = "周次标签不能为空"
EMPTY_PASSWORD = "密码不能为空"
INVALID_COLLECTION_ID = "无效的周次ID"
COLLECTION_NOT_FOUND = "未找到该周次"
DUPLICATE_WEEK_LABEL = "该周次标签已被其他周次使用"
INVALID_ID_LIST = "无效的ID列表"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )


def _is_json(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("application/json")


async def _read_save_payload(request: Request) -> CollectionSave:
    """Build a :class:`CollectionSave` from either a JSON body or the admin form."""
    if _is_json(request):
        return CollectionSave.model_validate(await request.json())

    form = await request.form()
    raw_id = form.get("collectionId")
    collection_id: Optional[int] = None
    if isinstance(raw_id, str) and raw_id.strip():
        collection_id = to_int(raw_id)
        if collection_id is None:
            raise ValueError(INVALID_COLLECTION_ID)

    week_label = form.get("weekLabel")
    church_name = form.get("churchName")
    return CollectionSave(
        week_label=week_label if isinstance(week_label, str) else "",
        church_name=church_name if isinstance(church_name, str) else None,
        collection_id=collection_id,
        songs=parse_song_form(form),
    )


def _parse_id_list(raw: Any) -> Optional[List[int]]:
    """Accept a JSON array (or its string form) of ids; None if malformed."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if not isinstance(raw, list) or not raw:
        return None
    ids = [to_int(item) for item in raw]
    if any(i is None for i in ids):
        return None
    return ids


async def _store_upload(request: Request, field: str, kind: str, url_key: str) -> JSONResponse:
    form = await request.form()
    try:
        url = await upload_file(kind, form.get(field))
    except UploadError as e:
        logger.warning("⚠️ {} upload rejected: {}", kind, e)
        return _error(e.status_code, str(e))
    except Exception as e:
        logger.error("❌ {} upload failed: {}", kind, e)
        return _error(500, str(e))
    return JSONResponse(content={"success": True, url_key: url})


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------
@router.post("/admin")
async def admin_login(password: str = Form("")):
    """Exchange the admin password for the admin token cookie."""
    config = await get_config()
    if not verify_password(password, config.get("admin_password")):
        logger.warning("🔒 Failed admin login attempt")
        return _error(403, WRONG_PASSWORD_MESSAGE)

    logger.info("🔓 Admin logged in")
    response = JSONResponse(content={"success": True, "token": ADMIN_TOKEN})
    set_admin_cookie(response)
    return response


# ---------------------------------------------------------------------------
# Save collection
# ---------------------------------------------------------------------------
@router.post("/admin/save", dependencies=_admin_only)
async def admin_save(request: Request):
    """Create or replace a weekly collection."""
    try:
        payload = await _read_save_payload(request)
    except ValidationError as e:
        return _error(400, f"无效的数据: {e.error_count()} 个字段错误")
    except ValueError as e:
        # Malformed JSON body or a non-numeric collectionId.
        return _error(400, str(e))

    week_label = payload.week_label.strip()
    if not week_label:
        return _error(400, EMPTY_WEEK_LABEL)

    try:
        collection_id = await save_collection(
            week_label,
            payload.songs,
            collection_id=payload.collection_id,
            church_name=payload.church_name,
        )
    except CollectionNotFoundError:
        return _error(404, COLLECTION_NOT_FOUND)
    except DuplicateWeekLabelError:
        return _error(400, DUPLICATE_WEEK_LABEL)
    except Exception as e:
        logger.error("❌ Failed to save collection '{}': {}", week_label, e)
        return _error(500, str(e))

    return JSONResponse(content={"success": True, "collectionId": collection_id})


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------
@router.post("/admin/upload-sheet", dependencies=_admin_only)
async def admin_upload_sheet(request: Request):
    """Upload one sheet-music image; returns its public URL."""
    return await _store_upload(request, "sheetFile", "sheet", "imageUrl")


@router.post("/admin/upload-audio", dependencies=_admin_only)
async def admin_upload_audio(request: Request):
    """Upload one audio file; returns its public URL."""
    return await _store_upload(request, "audioFile", "audio", "audioUrl")


# ---------------------------------------------------------------------------
# Password
# ---------------------------------------------------------------------------
@router.post("/admin/save-password", dependencies=_admin_only)
async def admin_save_password(new_password: str = Form("", alias="newPassword")):
    """Replace the admin password."""
    if not new_password.strip():
        return _error(400, EMPTY_PASSWORD)

    try:
        await set_password(new_password)
    except Exception as e:
        logger.error("❌ Failed to change admin password: {}", e)
        return _error(500, str(e))
    return JSONResponse(content={"success": True})


# ---------------------------------------------------------------------------
# Collection history
# ---------------------------------------------------------------------------
@router.get("/admin/collections", dependencies=_admin_only)
async def admin_list_collections(request: Request):
    """One page of collections, newest first."""
    page = to_int(request.query_params.get("page"), 1)
    per_page = to_int(request.query_params.get("perPage"), DEFAULT_PER_PAGE)

    try:
        result = await list_collections_page(page, per_page)
    except Exception as e:
        logger.error("❌ Failed to list collections: {}", e)
        return _error(500, str(e))

    return JSONResponse(
        content={
            "success": True,
            "collections": result["collections"],
            "total": result["total"],
            "page": result["page"],
            "perPage": result["per_page"],
        }
    )


@router.get("/admin/edit/{collection_id}", dependencies=_admin_only)
async def admin_edit_collection(collection_id: str):
    """Full collection (songs and sheets) for loading into the edit form."""
    cid = to_int(collection_id)
    if cid is None:
        return _error(400, INVALID_COLLECTION_ID)

    try:
        collection = await get_collection(cid)
    except Exception as e:
        logger.error("❌ Failed to load collection {}: {}", cid, e)
        return _error(500, str(e))

    if collection is None:
        return _error(404, COLLECTION_NOT_FOUND)
    return JSONResponse(content={"success": True, "collection": collection})


@router.delete("/admin/delete/{collection_id}", dependencies=_admin_only)
async def admin_delete_collection(collection_id: str):
    """Delete one collection with its songs and sheets."""
    cid = to_int(collection_id)
    if cid is None:
        return _error(400, INVALID_COLLECTION_ID)

    try:
        deleted = await delete_collection(cid)
    except Exception as e:
        logger.error("❌ Failed to delete collection {}: {}", cid, e)
        return _error(500, str(e))

    if not deleted:
        return _error(404, COLLECTION_NOT_FOUND)
    return JSONResponse(content={"success": True, "message": "删除成功"})


@router.post("/admin/delete-multiple", dependencies=_admin_only)
async def admin_delete_multiple(request: Request):
    """Delete several collections; ``ids`` is a JSON array (form field or JSON body)."""
    try:
        if _is_json(request):
            body = await request.json()
            raw = body.get("ids") if isinstance(body, dict) else None
        else:
            raw = (await request.form()).get("ids")
    except ValueError:
        return _error(400, INVALID_ID_LIST)

    ids = _parse_id_list(raw)
    if ids is None:
        return _error(400, INVALID_ID_LIST)

    try:
        deleted = await delete_collections(ids)
    except Exception as e:
        logger.error("❌ Failed to delete collections {}: {}", ids, e)
        return _error(500, str(e))

    if deleted == 0:
        return _error(404, COLLECTION_NOT_FOUND)
    return JSONResponse(
        content={"success": True, "message": f"已删除 {deleted} 个周次", "deleted": deleted}
    )
