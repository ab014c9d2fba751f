from urllib.parse import quote

import aiofiles.os
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse

from uplite import views
from uplite.config import Settings
from uplite.dependencies import get_settings, get_storage_manager
from uplite.logger_config import get_logger
from uplite.services.auth import require_auth
from uplite.services.storage_manager import StorageManager
from uplite.services.upload_service import UploadReceiver

logger = get_logger("routes")

router = APIRouter(dependencies=[Depends(require_auth)])


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def internal_error(message: str, error: Exception) -> HTTPException:
    logger.error(f"{message}: {str(error)}", exc_info=True)
    return HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/", response_class=HTMLResponse)
async def list_files(
    settings: Settings = Depends(get_settings),
    storage: StorageManager = Depends(get_storage_manager),
):
    try:
        files = await storage.list_files()
    except OSError as e:
        raise internal_error("Error reading files", e)
    return views.render_index(files, settings)


@router.post("/upload")
async def upload_files(request: Request, settings: Settings = Depends(get_settings)):
    """Store every ``file`` part of a multipart form and go back to the listing."""
    stored = await UploadReceiver(settings).receive(request)

    logger.info(f"Uploaded files: {', '.join(stored)}")
    return RedirectResponse(url="/", status_code=302)


@router.get("/info/{filename:path}", response_class=HTMLResponse)
async def file_info(
    filename: str,
    request: Request,
    storage: StorageManager = Depends(get_storage_manager),
):
    try:
        info = await storage.file_info(filename, client_address(request))
    except OSError as e:
        raise internal_error("Error getting file info", e)
    if info is None:
        raise HTTPException(status_code=404, detail="File not found.")
    return views.render_info(info)


@router.get("/delete/{filename:path}", response_class=HTMLResponse)
async def confirm_delete(filename: str, storage: StorageManager = Depends(get_storage_manager)):
    try:
        exists = await storage.exists(filename)
    except OSError as e:
        raise internal_error("Error checking file existence for deletion", e)
    if not exists:
        logger.warning(f"Attempted to access deletion page for non-existent file: {filename}")
        raise HTTPException(status_code=404, detail="File not found.")
    return views.render_confirm_delete(storage.resolve(filename).name)


@router.post("/delete/{filename:path}")
async def delete_file(filename: str, storage: StorageManager = Depends(get_storage_manager)):
    try:
        deleted = await storage.delete_file(filename)
    except OSError as e:
        raise internal_error("Error deleting file", e)
    if not deleted:
        logger.warning(f"Attempted to delete non-existent file: {filename}")
    return RedirectResponse(url="/", status_code=302)


@router.api_route("/files", methods=["GET", "HEAD"], include_in_schema=False)
async def browse_root():
    return RedirectResponse(url="/files/", status_code=301)


@router.api_route("/files/{path:path}", methods=["GET", "HEAD"])
async def browse(path: str, storage: StorageManager = Depends(get_storage_manager)):
    """Serve a file from the upload tree, or an index page for a directory."""
    target = storage.resolve_tree_path(path)
    if target is None or not await aiofiles.os.path.exists(target):
        raise HTTPException(status_code=404, detail="Not Found")

    if not await aiofiles.os.path.isdir(target):
        return FileResponse(target)

    if path and not path.endswith("/"):
        return RedirectResponse(url=f"/files/{quote(path)}/", status_code=301)

    try:
        entries = await storage.list_directory(target)
    except OSError as e:
        raise internal_error(f"Error listing directory {path}", e)
    is_root = target == storage.upload_dir.resolve()
    return HTMLResponse(views.render_directory_index(f"/files/{path}", entries, is_root))
