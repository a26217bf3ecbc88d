"""Packing API endpoints: job lifecycle, verification, evidence and seals."""
from typing import Optional, List
import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.api.deps import DB, CurrentUser, require_permissions
from app.core.exceptions import ValidationError
from app.core.storage import PHOTO_EXTENSIONS, PhotoStorage, get_photo_storage
from app.models.packing import PhotoType
from app.schemas.base import ApiResponse, ok
from app.schemas.packing import (
    StartPackingRequest,
    StartPackingResponse,
    VerifyItemRequest,
    VerifyItemResponse,
    CompletePackingRequest,
    CompletePackingResponse,
    ReassignJobRequest,
    PackingJobResponse,
    JobStatusResponse,
    PackingSLASummary,
    PhotoEvidenceResponse,
    SealGenerateResponse,
    SealVerifyRequest,
    SealVerifyResponse,
)
from app.services.packing_service import PackingService
from app.services.sla_service import SLAService
from app.services import seal_service


router = APIRouter()

MAX_PHOTO_BYTES = 10 * 1024 * 1024  # 10MB
ALLOWED_PHOTO_TYPES = set(PHOTO_EXTENSIONS)


# ==================== JOB LIFECYCLE ====================

@router.post(
    "/start",
    response_model=ApiResponse[StartPackingResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("packing:manage"))]
)
async def start_packing(
    data: StartPackingRequest,
    db: DB,
    current_user: CurrentUser,
):
    """Open a packing job for a completed picking wave."""
    result = await PackingService(db).start_packing(
        wave_id=data.wave_id,
        packer_id=data.packer_id,
        priority=data.priority,
        workflow_type=data.workflow_type,
        special_instructions=data.special_instructions,
        user_id=current_user.id,
    )
    return ok(
        StartPackingResponse.model_validate(result),
        "Packing job created",
        status_code=status.HTTP_201_CREATED,
    )


@router.post(
    "/verify",
    response_model=ApiResponse[VerifyItemResponse],
    dependencies=[Depends(require_permissions("packing:execute"))]
)
async def verify_item(
    data: VerifyItemRequest,
    db: DB,
    current_user: CurrentUser,
):
    """Record the packed quantity for one order line."""
    result = await PackingService(db).verify_item(
        job_id=data.job_id,
        order_id=data.order_id,
        sku=data.sku,
        packed_quantity=data.packed_quantity,
        notes=data.verification_notes,
        user_id=current_user.id,
    )
    return ok(VerifyItemResponse.model_validate(result))


@router.post(
    "/complete",
    response_model=ApiResponse[CompletePackingResponse],
    dependencies=[Depends(require_permissions("packing:execute"))]
)
async def complete_packing(
    data: CompletePackingRequest,
    db: DB,
    current_user: CurrentUser,
):
    """Attach photo and seal evidence and hand the job to dispatch."""
    result = await PackingService(db).complete_packing(
        job_id=data.job_id,
        photos=[p.model_dump() for p in data.photos],
        seals=[s.model_dump() for s in data.seals],
        user_id=current_user.id,
    )
    return ok(CompletePackingResponse.model_validate(result), "Packing completed")


@router.get(
    "/status/{job_id}",
    response_model=ApiResponse[JobStatusResponse],
    dependencies=[Depends(require_permissions("packing:view"))]
)
async def get_job_status(
    job_id: uuid.UUID,
    db: DB,
):
    result = await PackingService(db).get_job_status(job_id)
    return ok(JobStatusResponse.model_validate(result))


@router.get(
    "/awaiting-handover",
    response_model=ApiResponse[List[PackingJobResponse]],
    dependencies=[Depends(require_permissions("packing:view"))]
)
async def get_jobs_awaiting_handover(
    db: DB,
):
    """Packed jobs waiting for a rider, most urgent first."""
    jobs = await PackingService(db).get_jobs_awaiting_handover()
    return ok([PackingJobResponse.model_validate(j) for j in jobs])


@router.get(
    "/sla-status",
    response_model=ApiResponse[PackingSLASummary],
    dependencies=[Depends(require_permissions("packing:view"))]
)
async def get_packing_sla_status(
    db: DB,
):
    result = await SLAService(db).packing_sla_status()
    return ok(PackingSLASummary.model_validate(result))


@router.put(
    "/{job_id}/reassign",
    response_model=ApiResponse[PackingJobResponse],
    dependencies=[Depends(require_permissions("packing:manage"))]
)
async def reassign_job(
    job_id: uuid.UUID,
    data: ReassignJobRequest,
    db: DB,
    current_user: CurrentUser,
):
    job = await PackingService(db).reassign_job(
        job_id, data.new_packer_id, data.reason, user_id=current_user.id
    )
    return ok(PackingJobResponse.model_validate(job), "Packing job reassigned")


# ==================== PHOTO EVIDENCE ====================

@router.post(
    "/{job_id}/photos",
    response_model=ApiResponse[PhotoEvidenceResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("packing:execute"))]
)
async def upload_photo(
    job_id: uuid.UUID,
    db: DB,
    file: UploadFile = File(...),
    photo_type: PhotoType = Form(..., alias="photoType"),
    order_id: Optional[uuid.UUID] = Form(None, alias="orderId"),
    location: Optional[str] = Form(None),
    device: Optional[str] = Form(None),
    storage: PhotoStorage = Depends(get_photo_storage),
):
    """
    Upload a packing photo to object storage and record it as evidence.

    Accepts JPEG, PNG or WebP up to 10MB.
    """
    if file.content_type not in ALLOWED_PHOTO_TYPES:
        raise ValidationError(
            f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_PHOTO_TYPES))}"
        )

    content = await file.read()
    if len(content) > MAX_PHOTO_BYTES:
        raise ValidationError("File too large. Maximum size: 10MB")

    photo = await PackingService(db).upload_photo(
        job_id,
        content,
        photo_type,
        storage,
        content_type=file.content_type,
        order_id=order_id,
        metadata={"location": location, "device": device},
    )
    return ok(
        PhotoEvidenceResponse.model_validate(photo),
        "Photo uploaded",
        status_code=status.HTTP_201_CREATED,
    )


# ==================== SEALS ====================

@router.post(
    "/seals/generate",
    response_model=ApiResponse[SealGenerateResponse],
    dependencies=[Depends(require_permissions("packing:execute"))]
)
async def generate_seal():
    """Issue a new tamper seal number and its integrity hash."""
    seal = seal_service.generate_seal()
    return ok(SealGenerateResponse(
        seal_number=seal.seal_number,
        timestamp=seal.timestamp,
        nonce=seal.nonce,
        hash=seal.hash,
        expires_at=seal.expires_at,
    ))


@router.post(
    "/seals/verify",
    response_model=ApiResponse[SealVerifyResponse],
    dependencies=[Depends(require_permissions("packing:view"))]
)
async def verify_seal(
    data: SealVerifyRequest,
):
    parsed = seal_service.parse_seal(data.seal_number)
    return ok(SealVerifyResponse(
        seal_number=data.seal_number,
        valid=parsed is not None and seal_service.verify_seal(data.seal_number, data.expected_hash),
        expired=seal_service.is_expired(data.seal_number),
        timestamp=parsed.timestamp if parsed else None,
        nonce=parsed.nonce if parsed else None,
    ))
