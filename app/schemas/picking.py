"""Pydantic schemas for picking waves, picklist items and exceptions."""
from pydantic import Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema
from typing import Optional, List
from datetime import datetime
import uuid

from app.models.picking import WavePriority, ExceptionStatus


# ==================== WAVE SCHEMAS ====================

class WaveGenerateRequest(BaseCreateSchema):
    """Request to batch orders into picking waves."""
    order_ids: List[uuid.UUID] = Field(default_factory=list)
    priority: WavePriority = WavePriority.MEDIUM
    max_orders_per_wave: int = Field(20, ge=1, le=500)
    route_optimization: bool = True
    fefo_required: bool = False
    tags_and_bags: bool = False


class WaveCancelRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1, max_length=500)


class WaveResponse(BaseResponseSchema):
    """Picking wave response schema."""
    id: uuid.UUID
    wave_number: str
    status: str
    priority: str
    picker_id: Optional[uuid.UUID] = None
    total_orders: int
    total_items: int
    estimated_duration: int
    sla_deadline: datetime
    route_optimization: bool
    fefo_required: bool
    tags_and_bags: bool
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime


class WaveListResponse(BaseResponseSchema):
    """Paginated wave list."""
    items: List[WaveResponse]
    total: int
    page: int = 1
    limit: int = 10
    pages: int = 1


class WaveGenerateResponse(BaseResponseSchema):
    waves: List[WaveResponse]
    total_waves: int
    total_orders: int


class WaveAssignment(BaseResponseSchema):
    wave_id: uuid.UUID
    wave_number: str
    picker_id: uuid.UUID
    picker_email: Optional[str] = None
    assigned_at: datetime


class WaveAssignResponse(BaseResponseSchema):
    assignments: List[WaveAssignment]
    total_assigned: int
    message: Optional[str] = None


# ==================== PICKLIST ITEM SCHEMAS ====================

class PicklistItemResponse(BaseResponseSchema):
    """Picklist item response schema."""
    id: uuid.UUID
    wave_id: uuid.UUID
    order_id: uuid.UUID
    sku: str
    product_name: str
    bin_location: str
    quantity: int
    picked_quantity: int
    status: str
    fefo_batch: Optional[str] = None
    expiry_date: Optional[datetime] = None
    scan_sequence: int
    partial_reason: Optional[str] = None
    partial_photo: Optional[str] = None
    notes: Optional[str] = None
    picked_at: Optional[datetime] = None
    picked_by: Optional[uuid.UUID] = None


class StartPickingResponse(BaseResponseSchema):
    wave: WaveResponse
    items: List[PicklistItemResponse]


# ==================== PICK ACTION SCHEMAS ====================

class ScanItemRequest(BaseCreateSchema):
    """Scan of a SKU at a bin."""
    sku: Optional[str] = None
    bin_location: Optional[str] = None
    quantity: int = Field(1, ge=1)


class ScanItemResponse(BaseResponseSchema):
    item: PicklistItemResponse
    wave_completed: bool
    remaining_items: int


class PartialPickRequest(BaseCreateSchema):
    """Report a short pick (stock-out, damage, expiry)."""
    sku: Optional[str] = None
    bin_location: Optional[str] = None
    reason: str = Field(..., min_length=1, max_length=50)
    picked_quantity: int = 0
    photo: Optional[str] = None
    notes: Optional[str] = None


class PickingExceptionResponse(BaseResponseSchema):
    id: uuid.UUID
    wave_id: uuid.UUID
    order_id: uuid.UUID
    sku: str
    exception_type: str
    severity: str
    description: str
    reported_by: uuid.UUID
    reported_at: datetime
    status: str
    sla_deadline: datetime
    resolution: Optional[str] = None
    resolved_at: Optional[datetime] = None


class PartialPickResponse(BaseResponseSchema):
    item: PicklistItemResponse
    exception: Optional[PickingExceptionResponse] = None


class PickingMetrics(BaseResponseSchema):
    total_items: int
    picked_items: int
    partial_items: int
    accuracy: float


class CompletePickingResponse(BaseResponseSchema):
    wave_id: uuid.UUID
    wave_number: str
    status: str
    completed_at: Optional[datetime] = None
    metrics: PickingMetrics


class ResolveExceptionRequest(BaseCreateSchema):
    resolution: str = Field(..., min_length=1)
    status: ExceptionStatus = ExceptionStatus.RESOLVED


# ==================== SLA / ALERT SCHEMAS ====================

class WaveSLAEntry(BaseResponseSchema):
    id: uuid.UUID
    wave_number: str
    status: str
    priority: str
    sla_deadline: datetime
    sla_status: str
    hours_to_deadline: float


class WaveSLASummary(BaseResponseSchema):
    total: int
    on_time: int
    at_risk: int
    breached: int
    on_time_percentage: int
    at_risk_percentage: int
    breached_percentage: int
    waves: List[WaveSLAEntry]


class ExpiryAlert(BaseResponseSchema):
    id: uuid.UUID
    wave_id: uuid.UUID
    order_id: uuid.UUID
    sku: str
    product_name: str
    bin_location: str
    fefo_batch: Optional[str] = None
    expiry_date: datetime
    days_until_expiry: int
    urgency: str


class ExpiryAlertsResponse(BaseResponseSchema):
    total_alerts: int
    days_threshold: int
    alerts: List[ExpiryAlert]
