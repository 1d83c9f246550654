"""
Upload API Routes
Stores a single media file and returns the URL vendors should fetch.
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from app.api.deps import get_current_user_id, get_gateway
from app.schemas.generation import UploadResponse
from app.services.gateway import ServiceGateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    gateway: ServiceGateway = Depends(get_gateway),
):
    """
    Upload one file.

    durable=False means the file only reached local scratch space and its URL
    cannot be fetched by external services.
    """
    data = await file.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Empty file"
        )

    stored = await gateway.upload_file(
        data,
        file.filename or "upload",
        file.content_type or "application/octet-stream",
        owner=user_id,
    )
    logger.info(f"[Uploads] {file.filename} -> {stored.url} (durable={stored.durable})")
    return UploadResponse(url=stored.url, durable=stored.durable)
