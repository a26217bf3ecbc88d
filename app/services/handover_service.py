"""
Handover coordination service.

Assigns riders to packed jobs and walks the handover through its state
machine, keeping rider availability and packing job status in step. LMS
sync runs after the local change is committed and never fails the call.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError, NotFoundError, ConflictError, ForbiddenError
from app.models.handover import (
    Handover, Rider, LMSShipment, HandoverStatus, RiderAvailability, LMSSyncStatus,
)
from app.models.packing import PackingJob, PackingEvent, PackingJobStatus, PackingEventType
from app.services.lms_client import LMSClient
from app.services.lms_sync_service import LMSSyncService, SyncResult

logger = logging.getLogger(__name__)


VALID_TRANSITIONS: Dict[str, tuple] = {
    HandoverStatus.ASSIGNED.value: (HandoverStatus.CONFIRMED.value, HandoverStatus.CANCELLED.value),
    HandoverStatus.CONFIRMED.value: (HandoverStatus.IN_TRANSIT.value, HandoverStatus.CANCELLED.value),
    HandoverStatus.IN_TRANSIT.value: (HandoverStatus.DELIVERED.value, HandoverStatus.CANCELLED.value),
    HandoverStatus.DELIVERED.value: (),
    HandoverStatus.CANCELLED.value: (),
}


def is_valid_transition(current: str, new: str) -> bool:
    return new in VALID_TRANSITIONS.get(current, ())


class HandoverService:
    """Rider assignment and handover state machine."""

    def __init__(self, db: AsyncSession, lms_client: Optional[LMSClient] = None):
        self.db = db
        self.lms = LMSSyncService(db, lms_client)

    def _log_event(
        self,
        job_id: uuid.UUID,
        event_type: PackingEventType,
        event_data: Dict[str, Any],
        user_id: Optional[uuid.UUID] = None,
    ) -> None:
        self.db.add(PackingEvent(
            job_id=job_id,
            event_type=event_type.value,
            event_data=event_data,
            user_id=user_id,
            timestamp=datetime.now(timezone.utc),
        ))

    async def get_handover(self, handover_id: uuid.UUID) -> Handover:
        result = await self.db.execute(select(Handover).where(Handover.id == handover_id))
        handover = result.scalar_one_or_none()
        if not handover:
            raise NotFoundError("Handover not found")
        return handover

    async def get_handover_details(self, handover_id: uuid.UUID) -> Dict[str, Any]:
        handover = await self.get_handover(handover_id)
        shipments = (await self.db.execute(
            select(LMSShipment)
            .where(LMSShipment.handover_id == handover_id)
            .order_by(LMSShipment.created_at.asc())
        )).scalars().all()
        return {"handover": handover, "shipments": list(shipments)}

    # ========================================================================
    # ASSIGNMENT
    # ========================================================================

    async def assign_rider(
        self,
        job_id: uuid.UUID,
        rider_id: uuid.UUID,
        special_instructions: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """
        Hand a packed job to an available rider.

        Local state is committed before the LMS shipment is created, so an
        LMS failure only shows up in the handover's sync fields.
        """
        job = await self.db.get(PackingJob, job_id)
        if not job:
            raise NotFoundError("Packing job not found")

        if job.status != PackingJobStatus.AWAITING_HANDOVER.value:
            raise ConflictError("Packing job is not ready for handover")

        existing = await self.db.execute(select(Handover.id).where(Handover.job_id == job_id))
        if existing.scalar_one_or_none():
            raise ConflictError("Handover already exists for this job", status_code=409)

        rider = await self.db.get(Rider, rider_id)
        if not rider:
            raise NotFoundError("Rider not found")

        if rider.availability_status != RiderAvailability.AVAILABLE.value:
            raise ConflictError("Rider is not available")

        now = datetime.now(timezone.utc)
        handover = Handover(
            job_id=job_id,
            rider_id=rider_id,
            status=HandoverStatus.ASSIGNED.value,
            assigned_at=now,
            special_instructions=special_instructions,
            lms_sync_status=LMSSyncStatus.PENDING.value,
            lms_sync_attempts=0,
        )
        self.db.add(handover)

        # Unique job_id index guards against a concurrent assignment
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Handover already exists for this job", status_code=409)

        rider.availability_status = RiderAvailability.BUSY.value
        rider.last_active_at = now

        job.status = PackingJobStatus.HANDOVER_ASSIGNED.value
        job.handover_at = now

        self._log_event(
            job_id,
            PackingEventType.HANDOVER_ASSIGNED,
            {"riderId": str(rider_id), "specialInstructions": special_instructions},
            user_id,
        )

        await self.db.commit()
        logger.info(f"Rider {rider.rider_code} assigned to packing job {job.job_number}")

        sync = await self._sync_safely(handover)
        await self.db.refresh(handover)
        return {"handover": handover, "lms_sync": sync}

    async def _sync_safely(self, handover: Handover) -> SyncResult:
        try:
            return await self.lms.sync_handover(handover)
        except Exception as e:
            # Local state is already committed; record and move on
            logger.exception(f"Unexpected LMS sync error for handover {handover.id}")
            await self.db.rollback()
            handover = await self.get_handover(handover.id)
            handover.lms_sync_status = LMSSyncStatus.FAILED.value
            handover.lms_error_message = str(e)
            handover.lms_sync_attempts = (handover.lms_sync_attempts or 0) + 1
            handover.lms_last_sync_at = datetime.now(timezone.utc)
            await self.db.commit()
            return SyncResult(success=False, lms_sync_status=handover.lms_sync_status, error=str(e))

    async def _push_safely(self, handover: Handover, status: str, additional_data: Optional[Dict[str, Any]] = None) -> None:
        try:
            await self.lms.push_status(handover, status, additional_data)
        except Exception:
            logger.exception(f"Unexpected LMS status push error for handover {handover.id}")
            await self.db.rollback()

    # ========================================================================
    # STATE MACHINE
    # ========================================================================

    async def confirm_handover(
        self,
        handover_id: uuid.UUID,
        rider_id: uuid.UUID,
        confirmation_code: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Handover:
        handover = await self.get_handover(handover_id)

        if handover.rider_id != rider_id:
            raise ForbiddenError("Rider ID mismatch")

        if handover.status != HandoverStatus.ASSIGNED.value:
            raise ConflictError("Handover is not in assigned status")

        handover.status = HandoverStatus.CONFIRMED.value
        handover.confirmed_at = datetime.now(timezone.utc)

        self._log_event(
            handover.job_id,
            PackingEventType.HANDOVER_CONFIRMED,
            {
                "handoverId": str(handover_id),
                "riderId": str(rider_id),
                "confirmationCode": confirmation_code,
            },
            user_id,
        )

        await self.db.commit()
        logger.info(f"Handover {handover_id} confirmed by rider {rider_id}")

        await self._push_safely(handover, HandoverStatus.CONFIRMED.value)
        await self.db.refresh(handover)
        return handover

    async def update_handover_status(
        self,
        handover_id: uuid.UUID,
        status: HandoverStatus,
        additional_data: Optional[Dict[str, Any]] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Handover:
        """
        Move a handover along the transition table.

        DELIVERED completes the packing job and frees the rider (with a
        delivery counted); CANCELLED frees the rider.
        """
        handover = await self.get_handover(handover_id)
        new_status = status.value if isinstance(status, HandoverStatus) else str(status)

        if not is_valid_transition(handover.status, new_status):
            raise ConflictError(f"Invalid status transition from {handover.status} to {new_status}")

        now = datetime.now(timezone.utc)
        handover.status = new_status

        if new_status == HandoverStatus.IN_TRANSIT.value:
            handover.picked_up_at = now
        elif new_status == HandoverStatus.DELIVERED.value:
            handover.delivered_at = now
        elif new_status == HandoverStatus.CANCELLED.value:
            handover.cancelled_at = now
            handover.cancelled_by = user_id
            handover.cancellation_reason = (additional_data or {}).get("reason")

        rider = await self.db.get(Rider, handover.rider_id)

        if new_status == HandoverStatus.DELIVERED.value:
            job = await self.db.get(PackingJob, handover.job_id)
            if job:
                job.status = PackingJobStatus.COMPLETED.value
            if rider:
                rider.availability_status = RiderAvailability.AVAILABLE.value
                rider.total_deliveries = (rider.total_deliveries or 0) + 1
                rider.last_active_at = now
        elif new_status == HandoverStatus.CANCELLED.value and rider:
            rider.availability_status = RiderAvailability.AVAILABLE.value
            rider.last_active_at = now

        self._log_event(
            handover.job_id,
            PackingEventType.HANDOVER_STATUS_UPDATED,
            {"status": new_status, "additionalData": additional_data},
            user_id,
        )

        await self.db.commit()
        logger.info(f"Handover {handover_id} -> {new_status}")

        await self._push_safely(handover, new_status, additional_data)
        await self.db.refresh(handover)
        return handover

    # ========================================================================
    # LMS
    # ========================================================================

    async def retry_lms_sync(self, handover_id: uuid.UUID) -> SyncResult:
        """Re-issue shipment creation for a handover that is not yet synced."""
        handover = await self.get_handover(handover_id)

        if handover.lms_sync_status == LMSSyncStatus.SYNCED.value:
            raise ValidationError("LMS sync is already successful")

        return await self._sync_safely(handover)

    async def get_lms_sync_status(self) -> Dict[str, Any]:
        handovers = (await self.db.execute(
            select(Handover)
            .where(Handover.lms_sync_status != LMSSyncStatus.SYNCED.value)
            .order_by(Handover.lms_last_sync_at.asc())
        )).scalars().all()

        return {
            "total_failed": len(handovers),
            "retry_queue": sum(1 for h in handovers if h.lms_sync_status == LMSSyncStatus.RETRY.value),
            "failed": sum(1 for h in handovers if h.lms_sync_status == LMSSyncStatus.FAILED.value),
            "pending": sum(1 for h in handovers if h.lms_sync_status == LMSSyncStatus.PENDING.value),
            "handovers": handovers,
        }

    async def get_lms_health(self) -> Dict[str, Any]:
        healthy = await self.lms.client.health_check()
        system_status = None
        if healthy:
            response = await self.lms.client.get_system_status()
            if response.success and isinstance(response.data, dict):
                system_status = response.data

        return {
            "healthy": healthy,
            "system_status": system_status,
            "transport_retry_queue": self.lms.client.get_retry_queue_status(),
            "pending_ledger_entries": await self.lms.pending_entry_count(),
        }

    # ========================================================================
    # RIDERS
    # ========================================================================

    async def get_available_riders(self) -> List[Rider]:
        result = await self.db.execute(
            select(Rider)
            .where(
                Rider.availability_status == RiderAvailability.AVAILABLE.value,
                Rider.is_active == True,  # noqa: E712
            )
            .order_by(Rider.rating.desc(), Rider.total_deliveries.asc())
        )
        return list(result.scalars().all())
