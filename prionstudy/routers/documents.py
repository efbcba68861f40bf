import logging
import os
import tempfile
import aiofiles
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from prionstudy.auth import UserPrincipal, get_current_user
from prionstudy.config import get_settings
from prionstudy.exceptions import ForbiddenError, ValidationError
from prionstudy.schemas.consent import PARTICIPANT_ID_RE
from prionstudy.schemas.document import DocumentDeleteResult, DocumentStatus, DocumentUploadResult
from prionstudy.services.document_service import ALLOWED_EXTENSIONS, document_service
from prionstudy.services.record_store import record_store

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_access(user: UserPrincipal, key: str) -> None:
    if not PARTICIPANT_ID_RE.match(key):
        raise ValidationError("Invalid document id")
    if not user.is_admin and record_store.find(user.as_record(), key) is None:
        raise ForbiddenError(f"Access denied: {key} is not in your assigned list")


@router.post("/upload-document", response_model=DocumentUploadResult)
async def upload_document(
    document: UploadFile = File(...),
    filename: str = Form(...),
    docType: str = Form("CI"),
    current_user: UserPrincipal = Depends(get_current_user),
):
    _check_access(current_user, filename)
    ext = os.path.splitext(document.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(f"File type '{ext}' not allowed ({', '.join(ALLOWED_EXTENSIONS)})")

    content = await document.read()
    if len(content) > get_settings().max_upload_bytes:
        raise ValidationError("File too large")

    fd, tmp_path = tempfile.mkstemp(suffix=ext)
    os.close(fd)
    try:
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(content)
        result = await document_service.upload(tmp_path, filename, docType)
    finally:
        os.remove(tmp_path)

    logger.info("%s uploaded %s document for %s", current_user.username, docType, filename)
    return result


@router.get("/check-document/{record_id}", response_model=DocumentStatus)
async def check_document(
    record_id: str,
    docType: str = Query("CI"),
    current_user: UserPrincipal = Depends(get_current_user),
):
    _check_access(current_user, record_id)
    return {"success": True, **await document_service.exists(record_id, docType)}


@router.delete("/delete-document/{record_id}", response_model=DocumentDeleteResult)
async def delete_document(
    record_id: str,
    docType: str = Query("CI"),
    current_user: UserPrincipal = Depends(get_current_user),
):
    _check_access(current_user, record_id)
    result = await document_service.delete(record_id, docType)
    logger.info("%s deleted %s document for %s", current_user.username, docType, record_id)
    return result
