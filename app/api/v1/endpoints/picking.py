"""Picking API endpoints: wave generation, assignment and pick execution."""
from typing import Optional, List
import uuid

from fastapi import APIRouter, Query, Depends, status

from app.api.deps import DB, CurrentUser, require_permissions
from app.models.picking import WaveStatus, WavePriority, ExceptionStatus
from app.schemas.base import ApiResponse, ok
from app.schemas.picking import (
    WaveGenerateRequest,
    WaveGenerateResponse,
    WaveCancelRequest,
    WaveResponse,
    WaveListResponse,
    WaveAssignResponse,
    PicklistItemResponse,
    StartPickingResponse,
    ScanItemRequest,
    ScanItemResponse,
    PartialPickRequest,
    PartialPickResponse,
    CompletePickingResponse,
    PickingExceptionResponse,
    ResolveExceptionRequest,
    WaveSLASummary,
    ExpiryAlertsResponse,
)
from app.services.wave_service import WaveService
from app.services.picking_service import PickingService
from app.services.sla_service import SLAService
from app.config import settings


router = APIRouter()


# ==================== WAVES ====================

@router.post(
    "/generate-waves",
    response_model=ApiResponse[WaveGenerateResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("picking:assign_manage"))]
)
async def generate_waves(
    data: WaveGenerateRequest,
    db: DB,
):
    """Batch orders into picking waves with picklist items."""
    service = WaveService(db)
    waves = await service.generate_waves(
        order_ids=data.order_ids,
        priority=data.priority,
        max_orders_per_wave=data.max_orders_per_wave,
        route_optimization=data.route_optimization,
        fefo_required=data.fefo_required,
        tags_and_bags=data.tags_and_bags,
    )

    payload = WaveGenerateResponse(
        waves=[WaveResponse.model_validate(w) for w in waves],
        total_waves=len(waves),
        total_orders=sum(w.total_orders for w in waves),
    )
    return ok(payload, f"Generated {len(waves)} waves", status_code=status.HTTP_201_CREATED)


@router.post(
    "/assign-waves",
    response_model=ApiResponse[WaveAssignResponse],
    dependencies=[Depends(require_permissions("picking:assign_manage"))]
)
async def assign_waves(
    db: DB,
    max_waves_per_picker: int = Query(settings.MAX_WAVES_PER_PICKER, ge=1, le=50, alias="maxWavesPerPicker"),
):
    """Distribute unassigned waves across available pickers."""
    service = WaveService(db)
    assignments, message = await service.assign_waves(max_waves_per_picker)

    payload = WaveAssignResponse.model_validate({
        "assignments": assignments,
        "total_assigned": len(assignments),
        "message": message,
    })
    return ok(payload, message)


@router.get(
    "/waves",
    response_model=ApiResponse[WaveListResponse],
    dependencies=[Depends(require_permissions("picking:view"))]
)
async def list_waves(
    db: DB,
    wave_status: Optional[WaveStatus] = Query(None, alias="status"),
    priority: Optional[WavePriority] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    """Paginated wave list, most urgent first."""
    service = WaveService(db)
    result = await service.list_waves(
        status=wave_status.value if wave_status else None,
        priority=priority.value if priority else None,
        page=page,
        limit=limit,
    )
    return ok(WaveListResponse.model_validate(result))


@router.get(
    "/waves/{wave_id}/items",
    response_model=ApiResponse[List[PicklistItemResponse]],
    dependencies=[Depends(require_permissions("picking:view"))]
)
async def get_wave_items(
    wave_id: uuid.UUID,
    db: DB,
):
    """Picklist items for a wave in scan order."""
    items = await WaveService(db).get_wave_items(wave_id)
    return ok([PicklistItemResponse.model_validate(i) for i in items])


@router.post(
    "/waves/{wave_id}/start",
    response_model=ApiResponse[StartPickingResponse],
    dependencies=[Depends(require_permissions("picking:execute"))]
)
async def start_picking(
    wave_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Begin picking an assigned wave."""
    wave, items = await PickingService(db).start_picking(wave_id, current_user.id)
    payload = StartPickingResponse(
        wave=WaveResponse.model_validate(wave),
        items=[PicklistItemResponse.model_validate(i) for i in items],
    )
    return ok(payload, "Picking started")


@router.post(
    "/waves/{wave_id}/scan",
    response_model=ApiResponse[ScanItemResponse],
    dependencies=[Depends(require_permissions("picking:execute"))]
)
async def scan_item(
    wave_id: uuid.UUID,
    data: ScanItemRequest,
    db: DB,
    current_user: CurrentUser,
):
    """Record a scan of a SKU at a bin."""
    result = await PickingService(db).scan_item(
        wave_id,
        current_user.id,
        sku=data.sku,
        bin_location=data.bin_location,
        quantity=data.quantity,
    )
    return ok(ScanItemResponse.model_validate(result))


@router.post(
    "/waves/{wave_id}/partial-pick",
    response_model=ApiResponse[PartialPickResponse],
    dependencies=[Depends(require_permissions("picking:execute"))]
)
async def report_partial_pick(
    wave_id: uuid.UUID,
    data: PartialPickRequest,
    db: DB,
    current_user: CurrentUser,
):
    """Report a short pick; stock-out, damage and expiry open an exception."""
    result = await PickingService(db).report_partial_pick(
        wave_id,
        current_user.id,
        sku=data.sku,
        bin_location=data.bin_location,
        reason=data.reason,
        picked_quantity=data.picked_quantity,
        photo=data.photo,
        notes=data.notes,
    )
    return ok(PartialPickResponse.model_validate(result), "Partial pick recorded")


@router.post(
    "/waves/{wave_id}/complete",
    response_model=ApiResponse[CompletePickingResponse],
    dependencies=[Depends(require_permissions("picking:execute"))]
)
async def complete_picking(
    wave_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    result = await PickingService(db).complete_picking(wave_id, current_user.id)
    return ok(CompletePickingResponse.model_validate(result), "Wave completed")


@router.post(
    "/waves/{wave_id}/cancel",
    response_model=ApiResponse[WaveResponse],
    dependencies=[Depends(require_permissions("picking:assign_manage"))]
)
async def cancel_wave(
    wave_id: uuid.UUID,
    data: WaveCancelRequest,
    db: DB,
):
    wave = await WaveService(db).cancel_wave(wave_id, data.reason)
    return ok(WaveResponse.model_validate(wave), "Wave cancelled")


# ==================== MONITORING ====================

@router.get(
    "/sla-status",
    response_model=ApiResponse[WaveSLASummary],
    dependencies=[Depends(require_permissions("picking:view"))]
)
async def get_wave_sla_status(
    db: DB,
    wave_id: Optional[uuid.UUID] = Query(None, alias="waveId"),
):
    """Wave SLA buckets: breached, at risk (under 2h) and on time."""
    result = await SLAService(db).wave_sla_status(wave_id)
    return ok(WaveSLASummary.model_validate(result))


@router.get(
    "/expiry-alerts",
    response_model=ApiResponse[ExpiryAlertsResponse],
    dependencies=[Depends(require_permissions("picking:view"))]
)
async def get_expiry_alerts(
    db: DB,
    days_threshold: int = Query(7, ge=0, le=365, alias="daysThreshold"),
):
    """Open picklist items expiring within the threshold, most urgent first."""
    result = await PickingService(db).get_expiry_alerts(days_threshold)
    return ok(ExpiryAlertsResponse.model_validate(result))


@router.get(
    "/exceptions",
    response_model=ApiResponse[List[PickingExceptionResponse]],
    dependencies=[Depends(require_permissions("picking:view"))]
)
async def list_exceptions(
    db: DB,
    exception_status: Optional[ExceptionStatus] = Query(None, alias="status"),
):
    exceptions = await PickingService(db).list_exceptions(
        exception_status.value if exception_status else None
    )
    return ok([PickingExceptionResponse.model_validate(e) for e in exceptions])


@router.post(
    "/exceptions/{exception_id}/resolve",
    response_model=ApiResponse[PickingExceptionResponse],
    dependencies=[Depends(require_permissions("picking:assign_manage"))]
)
async def resolve_exception(
    exception_id: uuid.UUID,
    data: ResolveExceptionRequest,
    db: DB,
):
    exception = await PickingService(db).resolve_exception(
        exception_id, data.resolution, data.status
    )
    return ok(PickingExceptionResponse.model_validate(exception), "Exception updated")
