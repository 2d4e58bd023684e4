from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from listing_pipeline.core.config import ESTIMATED_PROCESSING_TIME, Settings, get_settings
from listing_pipeline.core.exceptions import JobNotFoundError
from listing_pipeline.dependencies import get_auth_context, get_orchestrator
from listing_pipeline.models import AuthContext, ImageItem, SubmissionOptions
from listing_pipeline.schemas import JobCreatedResponse, JobStatusResponse
from listing_pipeline.services.orchestrator import PipelineOrchestrator
from listing_pipeline.services.utils import safe_filename

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api/v1", tags=["jobs"])


async def _read_upload(upload: UploadFile, index: int) -> ImageItem:
    contents = await upload.read()
    await upload.close()
    return ImageItem(
        content=contents,
        media_type=(upload.content_type or "application/octet-stream").lower(),
        size=len(contents),
        name=safe_filename(upload.filename or f"image-{index + 1}"),
    )


@api_router.post(
    "/upload",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobCreatedResponse,
    name="upload_images",
)
async def upload_images(
    request: Request,
    files: Optional[List[UploadFile]] = File(default=None),
    price: Optional[float] = Form(default=None, gt=0),
    quantity: Optional[int] = Form(default=None, ge=1),
    auth: AuthContext = Depends(get_auth_context),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> JobCreatedResponse:
    if not files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")
    if len(files) > settings.max_upload_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files: at most {settings.max_upload_files} images per upload",
        )

    batch = [await _read_upload(upload, index) for index, upload in enumerate(files)]
    defaults = SubmissionOptions()
    options = SubmissionOptions(
        price=price if price is not None else defaults.price,
        quantity=quantity if quantity is not None else defaults.quantity,
    )
    job_id = await orchestrator.submit(batch, options, auth)

    return JobCreatedResponse(
        job_id=job_id,
        file_count=len(batch),
        estimated_time=ESTIMATED_PROCESSING_TIME,
        status_url=str(request.url_for("get_job_status", job_id=job_id)),
    )


@api_router.get("/status/{job_id}", response_model=JobStatusResponse, name="get_job_status")
async def get_job_status(job_id: str, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)) -> JobStatusResponse:
    try:
        job = await orchestrator.get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return JobStatusResponse.model_validate(job.to_dict())
