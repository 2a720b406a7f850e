"""Admin console helpers (stats, CSV export, avatars) and self-service avatar upload."""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import StreamingResponse

from src.admin.export import stream_users_csv, export_filename
from src.auth.dependencies import get_current_user, require_admin, get_admin_service
from src.database import get_db_manager

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/admin", tags=["console"])
avatar_router = APIRouter(prefix="/api/v1/avatar", tags=["avatar"])


async def _read(file: Optional[UploadFile]):
    if file is None:
        return None, None
    return await file.read(), file.content_type


@router.get("/stats")
async def stats(admin: dict = Depends(require_admin)):
    return get_admin_service().stats()


@router.get("/users/export")
async def export_users(admin: dict = Depends(require_admin)):
    logger.info(f"📤 User export requested by {admin['email']}")
    return StreamingResponse(
        stream_users_csv(get_db_manager()),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.post("/users/{user_id}/avatar")
async def upload_user_avatar(user_id: str, file: Optional[UploadFile] = File(None),
                             admin: dict = Depends(require_admin)):
    content, content_type = await _read(file)
    return get_admin_service().update_avatar(user_id, content, content_type)


@router.delete("/users/{user_id}/avatar")
async def delete_user_avatar(user_id: str, admin: dict = Depends(require_admin)):
    return get_admin_service().delete_avatar(user_id)


@avatar_router.post("")
async def upload_avatar(file: Optional[UploadFile] = File(None), current_user: dict = Depends(get_current_user)):
    content, content_type = await _read(file)
    return get_admin_service().update_avatar(current_user["user_id"], content, content_type)


@avatar_router.delete("")
async def delete_avatar(current_user: dict = Depends(get_current_user)):
    return get_admin_service().delete_avatar(current_user["user_id"])
