"""
api/routes/files.py -- File upload and metadata endpoints.

Routes:
  POST /api/files        -- multipart upload (files.create), slowapi-limited per client
  GET  /api/files        -- caller's own files, newest first (files.read)
  GET  /api/files/{id}   -- metadata for the owner or a files.manage holder

The upload limit is on top of the gatekeeper's "api" class limit: uploads
are expensive, so they get their own, tighter quota.

Files owned by someone else are reported as 404, same as files that do not
exist, so ids cannot be probed.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, FileListResponse, FileMetadataResponse, PaginationMeta
from audit.logger import FAILURE, AuditLogger, client_info
from auth.dependencies import require_permission
from auth.models import SessionContext
from core.config import get_settings
from core.errors import NotFoundError, ValidationError
from rbac.service import AccessControl
from uploads.models import UploadedFile
from uploads.storage import LocalStorage
from uploads.store import FileStore

_settings = get_settings()

router = APIRouter()


def _store_upload(request: Request, user_id: str, data: bytes, original_name: str, mime_type: str | None) -> UploadedFile:
    """Validate, write and register one upload, auditing the outcome. Blocking."""
    storage: LocalStorage = request.app.state.storage
    file_store: FileStore = request.app.state.file_store
    audit: AuditLogger = request.app.state.audit
    client = client_info(request)

    try:
        record = storage.save(data, original_name, mime_type, uploaded_by=user_id)
    except ValidationError as exc:
        audit.record(
            "FILE_UPLOAD",
            "file",
            user_id=user_id,
            status=FAILURE,
            details={"original_name": original_name, "mime_type": mime_type, "reason": exc.message},
            client=client,
        )
        raise

    try:
        file_store.create(record)
    except Exception:
        storage.delete(record)
        raise

    audit.record(
        "FILE_UPLOAD",
        "file",
        user_id=user_id,
        resource_id=record.id,
        details={"original_name": original_name, "mime_type": record.mime_type, "size": record.size},
        client=client,
    )
    return record


@router.post("/files", response_model=FileMetadataResponse, status_code=201)
@limiter.limit(_settings.upload_rate_limit)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    ctx: SessionContext = Depends(require_permission("files", "create")),
) -> FileMetadataResponse:
    """Store one uploaded file and record FILE_UPLOAD.

    At most max_file_size + 1 bytes are read, which is enough to tell that a
    file is too large without buffering all of it. Disk and database work
    runs in the threadpool.
    """
    data = await file.read(request.app.state.storage.max_size + 1)
    record = await run_in_threadpool(
        _store_upload, request, ctx.user.id, data, file.filename or "upload", file.content_type
    )
    return FileMetadataResponse.from_file(record)


@router.get("/files", response_model=FileListResponse)
def list_files(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    ctx: SessionContext = Depends(require_permission("files", "read")),
) -> FileListResponse:
    file_store: FileStore = request.app.state.file_store
    records = file_store.list_for_user(ctx.user.id, limit=limit, offset=(page - 1) * limit)
    return FileListResponse(
        items=[FileMetadataResponse.from_file(r) for r in records],
        pagination=PaginationMeta.build(page, limit, file_store.count_for_user(ctx.user.id)),
    )


@router.get("/files/{file_id}", response_model=FileMetadataResponse)
def get_file(
    request: Request,
    file_id: str,
    ctx: SessionContext = Depends(require_permission("files", "read")),
) -> FileMetadataResponse:
    file_store: FileStore = request.app.state.file_store
    access: AccessControl = request.app.state.access
    record = file_store.get(file_id)
    if record is None or (record.uploaded_by != ctx.user.id and not access.authorize(ctx.user.id, "files", "manage")):
        raise NotFoundError("File not found.")
    return FileMetadataResponse.from_file(record)
