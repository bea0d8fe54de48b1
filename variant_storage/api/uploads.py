"""
Upload API endpoints.
Multipart uploads go through the storage engine; stored files can be deleted.
"""

import logging
import time
from typing import AsyncIterator, Dict, Union

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status

from variant_storage.core.errors import (
    ObjectNotFoundError,
    ResolverError,
    StoreError,
    TransformError,
)
from variant_storage.engine.storage import VariantStorageEngine
from variant_storage.s3.config import READ_CHUNK_SIZE
from variant_storage.schemas import (
    DeleteResponse,
    FileDescriptor,
    ResultRecord,
    SuccessResponse,
    UploadedFile,
    VariantLocation,
)
from variant_storage.utils.content_type import detect_content_type

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/uploads",
    tags=["uploads"]
)

UploadResult = Union[ResultRecord, Dict[str, VariantLocation]]


def get_engine(request: Request) -> VariantStorageEngine:
    """Storage engine created at application startup."""
    return request.app.state.engine


def uploaded_file_from(upload: UploadFile) -> UploadedFile:
    """
    Wrap a FastAPI upload as an engine upload.

    Content-Type is auto-detected from the file name when the client sent
    none or a generic one.
    """
    name = upload.filename or "upload"

    async def chunk_iterator() -> AsyncIterator[bytes]:
        while True:
            chunk = await upload.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk

    return UploadedFile(
        original_name=name,
        mimetype=detect_content_type(name, upload.content_type),
        stream=chunk_iterator(),
    )


@router.post("", response_model=SuccessResponse[UploadResult], response_model_exclude_none=True)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    engine: VariantStorageEngine = Depends(get_engine)
):
    """
    Upload a file (multipart form field ``file``).

    Stores the file itself, or each variant the sizes resolver asks for.

    Example:
        curl -X POST "http://server/uploads" -F "file=@photo.jpg"

    Returns:
        The stored record, or a suffix-keyed map of stored variants
    """
    start_time = time.time()
    uploaded = uploaded_file_from(file)

    try:
        logger.info(f"[UPLOAD] Starting: {uploaded.original_name} ({uploaded.mimetype})")
        result = await engine.handle_file(request, uploaded)

    except ResolverError as e:
        logger.error(f"[UPLOAD] Resolver error: {uploaded.original_name} :: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except TransformError as e:
        logger.error(f"[UPLOAD] Transform error: {uploaded.original_name} :: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )
    except StoreError as e:
        logger.error(f"[UPLOAD] Store error: {uploaded.original_name} :: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to store file: {e}"
        )
    finally:
        await file.close()

    duration = time.time() - start_time
    logger.info(f"[UPLOAD] Completed: {uploaded.original_name} in {duration:.2f}s")

    return SuccessResponse(
        success=True,
        message="File stored successfully",
        data=result
    )


@router.delete("/{filename:path}", response_model=SuccessResponse[DeleteResponse])
async def delete_file(
    filename: str,
    request: Request,
    engine: VariantStorageEngine = Depends(get_engine)
):
    """
    Delete a stored file.

    Args:
        filename: Recorded filename of the stored file

    Returns:
        Deletion result
    """
    try:
        await engine.remove_file(request, FileDescriptor(filename=filename))

    except ObjectNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except ResolverError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    logger.info(f"Deletion successful: {filename}")

    return SuccessResponse(
        success=True,
        message="File deleted successfully",
        data=DeleteResponse(filename=filename, deleted=True)
    )
