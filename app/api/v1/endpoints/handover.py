"""Handover API endpoints: rider assignment, handover status and LMS sync."""
from typing import List
import uuid

from fastapi import APIRouter, Depends, status

from app.api.deps import DB, CurrentUser, require_permissions
from app.schemas.base import ApiResponse, ok
from app.schemas.handover import (
    AssignRiderRequest,
    AssignRiderResponse,
    ConfirmHandoverRequest,
    UpdateHandoverStatusRequest,
    HandoverResponse,
    HandoverDetailResponse,
    LMSShipmentResponse,
    LMSSyncOutcome,
    LMSSyncStatusResponse,
    LMSHealthResponse,
    RiderResponse,
)
from app.services.handover_service import HandoverService
from app.services.lms_client import LMSClient, get_lms_client


router = APIRouter()


@router.post(
    "/assign-rider",
    response_model=ApiResponse[AssignRiderResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("handover:manage"))]
)
async def assign_rider(
    data: AssignRiderRequest,
    db: DB,
    current_user: CurrentUser,
    lms_client: LMSClient = Depends(get_lms_client),
):
    """
    Assign an available rider to a packed job.

    The handover is created even when the LMS shipment cannot be created;
    the outcome is reported in ``lmsSync``.
    """
    result = await HandoverService(db, lms_client).assign_rider(
        job_id=data.job_id,
        rider_id=data.rider_id,
        special_instructions=data.special_instructions,
        user_id=current_user.id,
    )
    payload = AssignRiderResponse(
        handover=HandoverResponse.model_validate(result["handover"]),
        lms_sync=LMSSyncOutcome.model_validate(result["lms_sync"].as_dict()),
    )
    return ok(payload, "Rider assigned", status_code=status.HTTP_201_CREATED)


@router.post(
    "/confirm",
    response_model=ApiResponse[HandoverResponse],
    dependencies=[Depends(require_permissions("handover:execute"))]
)
async def confirm_handover(
    data: ConfirmHandoverRequest,
    db: DB,
    current_user: CurrentUser,
    lms_client: LMSClient = Depends(get_lms_client),
):
    handover = await HandoverService(db, lms_client).confirm_handover(
        handover_id=data.handover_id,
        rider_id=data.rider_id,
        confirmation_code=data.confirmation_code,
        user_id=current_user.id,
    )
    return ok(HandoverResponse.model_validate(handover), "Handover confirmed")


@router.get(
    "/riders/available",
    response_model=ApiResponse[List[RiderResponse]],
    dependencies=[Depends(require_permissions("handover:view"))]
)
async def get_available_riders(
    db: DB,
    lms_client: LMSClient = Depends(get_lms_client),
):
    """Active riders ready for a job, best rated first."""
    riders = await HandoverService(db, lms_client).get_available_riders()
    return ok([RiderResponse.model_validate(r) for r in riders])


@router.get(
    "/lms-sync-status",
    response_model=ApiResponse[LMSSyncStatusResponse],
    dependencies=[Depends(require_permissions("handover:view"))]
)
async def get_lms_sync_status(
    db: DB,
    lms_client: LMSClient = Depends(get_lms_client),
):
    result = await HandoverService(db, lms_client).get_lms_sync_status()
    return ok(LMSSyncStatusResponse.model_validate(result))


@router.get(
    "/lms/health",
    response_model=ApiResponse[LMSHealthResponse],
    dependencies=[Depends(require_permissions("handover:view"))]
)
async def get_lms_health(
    db: DB,
    lms_client: LMSClient = Depends(get_lms_client),
):
    result = await HandoverService(db, lms_client).get_lms_health()
    return ok(LMSHealthResponse.model_validate(result))


@router.put(
    "/{handover_id}/status",
    response_model=ApiResponse[HandoverResponse],
    dependencies=[Depends(require_permissions("handover:execute"))]
)
async def update_handover_status(
    handover_id: uuid.UUID,
    data: UpdateHandoverStatusRequest,
    db: DB,
    current_user: CurrentUser,
    lms_client: LMSClient = Depends(get_lms_client),
):
    handover = await HandoverService(db, lms_client).update_handover_status(
        handover_id,
        data.status,
        additional_data=data.additional_data,
        user_id=current_user.id,
    )
    return ok(HandoverResponse.model_validate(handover), f"Handover {handover.status}")


@router.post(
    "/{handover_id}/retry-lms-sync",
    response_model=ApiResponse[LMSSyncOutcome],
    dependencies=[Depends(require_permissions("handover:manage"))]
)
async def retry_lms_sync(
    handover_id: uuid.UUID,
    db: DB,
    lms_client: LMSClient = Depends(get_lms_client),
):
    """Re-issue LMS shipment creation; the outcome is returned, not raised."""
    outcome = await HandoverService(db, lms_client).retry_lms_sync(handover_id)
    message = "LMS sync succeeded" if outcome.success else "LMS sync failed"
    return ok(LMSSyncOutcome.model_validate(outcome.as_dict()), message)


@router.get(
    "/{handover_id}",
    response_model=ApiResponse[HandoverDetailResponse],
    dependencies=[Depends(require_permissions("handover:view"))]
)
async def get_handover(
    handover_id: uuid.UUID,
    db: DB,
    lms_client: LMSClient = Depends(get_lms_client),
):
    result = await HandoverService(db, lms_client).get_handover_details(handover_id)
    handover = HandoverResponse.model_validate(result["handover"])
    payload = HandoverDetailResponse(
        **handover.model_dump(),
        shipments=[LMSShipmentResponse.model_validate(s) for s in result["shipments"]],
    )
    return ok(payload)
