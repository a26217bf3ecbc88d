"""Pydantic schemas for packing jobs, verification, photos and seals."""
from pydantic import Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema
from typing import Any, Dict, Optional, List
from datetime import datetime
import uuid

from app.models.picking import WavePriority
from app.models.packing import WorkflowType, PhotoType, SealType


# ==================== REQUESTS ====================

class StartPackingRequest(BaseCreateSchema):
    wave_id: uuid.UUID
    packer_id: Optional[uuid.UUID] = None
    priority: Optional[WavePriority] = None
    workflow_type: Optional[WorkflowType] = None
    special_instructions: Optional[str] = None


class VerifyItemRequest(BaseCreateSchema):
    job_id: uuid.UUID
    order_id: uuid.UUID
    sku: str = Field(..., min_length=1)
    packed_quantity: int = Field(..., ge=0)
    verification_notes: Optional[str] = None


class PhotoInput(BaseCreateSchema):
    photo_type: PhotoType
    photo_url: str = Field(..., min_length=1)
    thumbnail_url: Optional[str] = None
    order_id: Optional[uuid.UUID] = None
    photo_metadata: Optional[Dict[str, Any]] = None


class SealInput(BaseCreateSchema):
    seal_number: str = Field(..., min_length=1)
    seal_type: SealType = SealType.PLASTIC
    order_id: Optional[uuid.UUID] = None


class CompletePackingRequest(BaseCreateSchema):
    job_id: uuid.UUID
    photos: List[PhotoInput] = Field(default_factory=list)
    seals: List[SealInput] = Field(default_factory=list)


class ReassignJobRequest(BaseCreateSchema):
    new_packer_id: uuid.UUID
    reason: str = Field(..., min_length=1)


class SealVerifyRequest(BaseCreateSchema):
    seal_number: str = Field(..., min_length=1)
    expected_hash: str = Field(..., min_length=1)


# ==================== RESPONSES ====================

class PackingJobResponse(BaseResponseSchema):
    """Packing job response schema."""
    id: uuid.UUID
    job_number: str
    wave_id: uuid.UUID
    packer_id: Optional[uuid.UUID] = None
    status: str
    priority: str
    workflow_type: str
    total_items: int
    packed_items: int
    verified_items: int
    estimated_duration: int
    sla_deadline: datetime
    special_instructions: Optional[str] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    handover_at: Optional[datetime] = None
    created_at: datetime


class PackingItemResponse(BaseResponseSchema):
    id: uuid.UUID
    job_id: uuid.UUID
    order_id: uuid.UUID
    sku: str
    product_name: Optional[str] = None
    quantity: int
    picked_quantity: int
    packed_quantity: int
    verified_quantity: int
    status: str
    verification_notes: Optional[str] = None


class PhotoEvidenceResponse(BaseResponseSchema):
    id: uuid.UUID
    job_id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    photo_type: str
    photo_url: str
    thumbnail_url: Optional[str] = None
    photo_metadata: Optional[Dict[str, Any]] = None
    verification_status: str
    created_at: datetime


class SealResponse(BaseResponseSchema):
    id: uuid.UUID
    seal_number: str
    job_id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    seal_type: str
    applied_at: datetime
    applied_by: Optional[uuid.UUID] = None
    verification_status: str


class StartPackingResponse(BaseResponseSchema):
    job: PackingJobResponse
    items: List[PackingItemResponse]


class JobProgress(BaseResponseSchema):
    total_items: int
    packed_items: int
    verified_items: int
    percentage: int


class VerifyItemResponse(BaseResponseSchema):
    item: PackingItemResponse
    progress: JobProgress


class CompletePackingResponse(BaseResponseSchema):
    job: PackingJobResponse
    photos: List[PhotoEvidenceResponse]
    seals: List[SealResponse]


class JobSLA(BaseResponseSchema):
    deadline: datetime
    remaining: int
    status: str
    is_critical: bool = False


class JobStatusResponse(BaseResponseSchema):
    id: uuid.UUID
    job_number: str
    status: str
    packer_id: Optional[uuid.UUID] = None
    progress: JobProgress
    sla: JobSLA
    items: List[PackingItemResponse]
    photos: List[PhotoEvidenceResponse]
    seals: List[SealResponse]


class PackingSLAEntry(BaseResponseSchema):
    id: uuid.UUID
    job_number: str
    status: str
    sla_deadline: datetime
    remaining_minutes: int
    sla_status: str
    is_critical: bool


class PackingSLASummary(BaseResponseSchema):
    total_jobs: int
    on_track: int
    at_risk: int
    breached: int
    critical_jobs: int
    average_remaining_time: int
    on_track_percentage: int
    at_risk_percentage: int
    breached_percentage: int
    jobs: List[PackingSLAEntry]


class SealGenerateResponse(BaseResponseSchema):
    seal_number: str
    timestamp: int
    nonce: str
    hash: str
    expires_at: datetime


class SealVerifyResponse(BaseResponseSchema):
    seal_number: str
    valid: bool
    expired: bool
    timestamp: Optional[int] = None
    nonce: Optional[str] = None
