"""Pydantic schemas for rider handover and LMS sync."""
from pydantic import Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema
from typing import Any, Dict, Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.handover import HandoverStatus


class AssignRiderRequest(BaseCreateSchema):
    job_id: uuid.UUID
    rider_id: uuid.UUID
    special_instructions: Optional[str] = None


class ConfirmHandoverRequest(BaseCreateSchema):
    handover_id: uuid.UUID
    rider_id: uuid.UUID
    confirmation_code: Optional[str] = None


class UpdateHandoverStatusRequest(BaseCreateSchema):
    status: HandoverStatus
    additional_data: Optional[Dict[str, Any]] = None


class RiderResponse(BaseResponseSchema):
    id: uuid.UUID
    rider_code: str
    name: str
    phone: str
    email: Optional[str] = None
    vehicle_type: str
    vehicle_number: Optional[str] = None
    availability_status: str
    rating: Decimal
    total_deliveries: int
    is_active: bool
    last_active_at: Optional[datetime] = None


class LMSShipmentResponse(BaseResponseSchema):
    id: uuid.UUID
    handover_id: uuid.UUID
    lms_reference: str
    status: str
    lms_response: Optional[Dict[str, Any]] = None
    retry_count: int
    created_at: datetime


class HandoverResponse(BaseResponseSchema):
    id: uuid.UUID
    job_id: uuid.UUID
    rider_id: uuid.UUID
    status: str
    assigned_at: datetime
    confirmed_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    lms_sync_status: str
    lms_sync_attempts: int
    lms_last_sync_at: Optional[datetime] = None
    lms_error_message: Optional[str] = None
    tracking_number: Optional[str] = None
    manifest_number: Optional[str] = None
    special_instructions: Optional[str] = None


class HandoverDetailResponse(HandoverResponse):
    shipments: List[LMSShipmentResponse] = Field(default_factory=list)


class LMSSyncOutcome(BaseResponseSchema):
    success: bool
    lms_sync_status: str
    tracking_number: Optional[str] = None
    manifest_number: Optional[str] = None
    error: Optional[str] = None


class AssignRiderResponse(BaseResponseSchema):
    handover: HandoverResponse
    lms_sync: LMSSyncOutcome


class LMSSyncEntry(BaseResponseSchema):
    id: uuid.UUID
    job_id: uuid.UUID
    status: str
    lms_sync_status: str
    lms_sync_attempts: int
    lms_last_sync_at: Optional[datetime] = None
    lms_error_message: Optional[str] = None


class LMSSyncStatusResponse(BaseResponseSchema):
    total_failed: int
    retry_queue: int
    failed: int
    pending: int
    handovers: List[LMSSyncEntry]


class LMSHealthResponse(BaseResponseSchema):
    healthy: bool
    system_status: Optional[Dict[str, Any]] = None
    transport_retry_queue: List[Dict[str, Any]] = Field(default_factory=list)
    pending_ledger_entries: int = 0
