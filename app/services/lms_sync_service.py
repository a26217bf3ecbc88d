"""
LMS synchronisation for rider handovers.

Creates the LMS shipment for a handover, pushes handover status changes,
and replays failed calls from the persisted retry ledger. Failures are
recorded on the handover and never raised to the business call that
triggered the sync.
"""
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.handover import (
    Handover, Rider, LMSShipment, LMSRetryEntry, HandoverStatus,
    LMSSyncStatus, LMSShipmentStatus, LMSRetryOperation, LMSRetryStatus,
)
from app.models.packing import PackingJob, PackingItem, PackingEvent, PackingEventType
from app.services.lms_client import LMSClient, ShipmentData, ShipmentItem, get_lms_client

logger = logging.getLogger(__name__)

EXPECTED_DELIVERY_HOURS = 24


@dataclass
class SyncResult:
    success: bool
    lms_sync_status: str
    tracking_number: Optional[str] = None
    manifest_number: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "lms_sync_status": self.lms_sync_status,
            "tracking_number": self.tracking_number,
            "manifest_number": self.manifest_number,
            "error": self.error,
        }


def retry_backoff(attempts: int, base_seconds: Optional[int] = None) -> timedelta:
    """Ledger backoff: base * 2^(attempts-1)."""
    base = settings.LMS_RETRY_INTERVAL_SECONDS if base_seconds is None else base_seconds
    return timedelta(seconds=base * (2 ** max(attempts - 1, 0)))


class LMSSyncService:
    """Keeps handovers and LMS shipments in step."""

    def __init__(self, db: AsyncSession, client: Optional[LMSClient] = None):
        self.db = db
        self.client = client or get_lms_client()

    def _log_event(self, job_id: uuid.UUID, event_type: PackingEventType, data: Dict[str, Any]) -> None:
        self.db.add(PackingEvent(
            job_id=job_id,
            event_type=event_type.value,
            event_data=data,
            timestamp=datetime.now(timezone.utc),
        ))

    async def _build_shipment(self, handover: Handover, job: PackingJob) -> ShipmentData:
        epoch_ms = int(time.time() * 1000)
        items = (await self.db.execute(
            select(PackingItem).where(PackingItem.job_id == job.id)
        )).scalars().all()

        return ShipmentData(
            tracking_number=f"TRK-{handover.id}-{epoch_ms}",
            manifest_number=f"MF-{handover.id}-{epoch_ms}",
            origin=settings.WAREHOUSE_NAME or "Warehouse",
            destination="Customer",
            items=[
                ShipmentItem(
                    sku=item.sku,
                    quantity=item.packed_quantity or item.quantity,
                    description=item.product_name or item.sku,
                )
                for item in items
            ],
            special_instructions=handover.special_instructions,
            expected_delivery=datetime.now(timezone.utc) + timedelta(hours=EXPECTED_DELIVERY_HOURS),
        )

    async def enqueue(
        self,
        handover_id: uuid.UUID,
        operation: LMSRetryOperation,
        payload: Optional[Dict[str, Any]] = None,
    ) -> LMSRetryEntry:
        """Schedule a ledger replay; one pending CREATE_SHIPMENT per handover."""
        if operation == LMSRetryOperation.CREATE_SHIPMENT:
            existing = (await self.db.execute(
                select(LMSRetryEntry).where(
                    LMSRetryEntry.handover_id == handover_id,
                    LMSRetryEntry.operation == operation.value,
                    LMSRetryEntry.status == LMSRetryStatus.PENDING.value,
                )
            )).scalars().first()
            if existing:
                return existing

        entry = LMSRetryEntry(
            handover_id=handover_id,
            operation=operation.value,
            payload=payload,
            attempts=0,
            max_attempts=settings.LMS_RETRY_MAX_ATTEMPTS,
            next_attempt_at=datetime.now(timezone.utc) + retry_backoff(1),
            status=LMSRetryStatus.PENDING.value,
        )
        self.db.add(entry)
        return entry

    # ========================================================================
    # SHIPMENT CREATION
    # ========================================================================

    async def sync_handover(self, handover: Handover, enqueue_retry: bool = True) -> SyncResult:
        """
        Create the LMS shipment for ``handover``.

        Success stores tracking/manifest numbers and appends an LMSShipment;
        failure marks the handover FAILED, bumps ``lms_sync_attempts`` once
        and (unless replaying) schedules a ledger retry. Commits either way.
        """
        now = datetime.now(timezone.utc)
        job = await self.db.get(PackingJob, handover.job_id)
        rider = await self.db.get(Rider, handover.rider_id)

        if not job or not rider:
            response_error = "Invalid handover data"
            response = None
        else:
            shipment = await self._build_shipment(handover, job)
            response = await self.client.create_shipment(shipment)
            response_error = response.error

        handover.lms_last_sync_at = now

        if response is not None and response.success:
            handover.lms_sync_status = LMSSyncStatus.SYNCED.value
            handover.lms_error_message = None
            handover.tracking_number = shipment.tracking_number
            handover.manifest_number = shipment.manifest_number

            raw = response.data if isinstance(response.data, dict) else {"data": response.data}
            self.db.add(LMSShipment(
                handover_id=handover.id,
                lms_reference=response.lms_reference or shipment.tracking_number,
                status=LMSShipmentStatus.CREATED.value,
                lms_response=raw,
                retry_count=handover.lms_sync_attempts,
            ))
            self._log_event(job.id, PackingEventType.LMS_SYNCED, {
                "handoverId": str(handover.id),
                "trackingNumber": shipment.tracking_number,
                "lmsReference": response.lms_reference,
            })
            await self.db.commit()

            logger.info(f"Handover {handover.id} synced to LMS as {shipment.tracking_number}")
            return SyncResult(
                success=True,
                lms_sync_status=handover.lms_sync_status,
                tracking_number=handover.tracking_number,
                manifest_number=handover.manifest_number,
            )

        handover.lms_sync_status = LMSSyncStatus.FAILED.value
        handover.lms_error_message = response_error
        handover.lms_sync_attempts = (handover.lms_sync_attempts or 0) + 1

        self._log_event(handover.job_id, PackingEventType.LMS_SYNC_FAILED, {
            "handoverId": str(handover.id),
            "error": response_error,
            "attempts": handover.lms_sync_attempts,
        })
        if enqueue_retry:
            await self.enqueue(handover.id, LMSRetryOperation.CREATE_SHIPMENT)

        await self.db.commit()

        logger.warning(
            f"LMS sync failed for handover {handover.id} "
            f"(attempt {handover.lms_sync_attempts}): {response_error}"
        )
        return SyncResult(
            success=False,
            lms_sync_status=handover.lms_sync_status,
            error=response_error,
        )

    # ========================================================================
    # STATUS PUSH
    # ========================================================================

    async def push_status(
        self,
        handover: Handover,
        status: str,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[bool]:
        """
        Push a handover status to the LMS.

        No-op (None) while the handover has no tracking number. A failed push
        is logged and queued on the ledger.
        """
        if not handover.tracking_number:
            return None

        response = await self.client.update_shipment_status(
            handover.tracking_number, status, additional_data
        )
        if response.success:
            return True

        logger.warning(
            f"LMS status push {status} failed for handover {handover.id}: {response.error}"
        )
        await self.enqueue(
            handover.id,
            LMSRetryOperation.UPDATE_STATUS,
            {"status": status, "additionalData": additional_data},
        )
        await self.db.commit()
        return False

    # ========================================================================
    # RETRY LEDGER
    # ========================================================================

    async def process_retry_queue(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, int]:
        """Replay due ledger entries; returns counts by outcome."""
        now = now or datetime.now(timezone.utc)
        limit = limit or settings.LMS_RETRY_BATCH_SIZE

        entries = (await self.db.execute(
            select(LMSRetryEntry)
            .where(
                LMSRetryEntry.status == LMSRetryStatus.PENDING.value,
                LMSRetryEntry.next_attempt_at <= now,
            )
            .order_by(LMSRetryEntry.next_attempt_at.asc())
            .limit(limit)
        )).scalars().all()

        summary = {"processed": 0, "succeeded": 0, "rescheduled": 0, "exhausted": 0}
        for entry in entries:
            outcome = await self._replay(entry, now)
            summary["processed"] += 1
            summary[outcome] += 1

        if summary["processed"]:
            logger.info(f"LMS retry ledger: {summary}")
        return summary

    async def _replay(self, entry: LMSRetryEntry, now: datetime) -> str:
        handover = await self.db.get(Handover, entry.handover_id)
        if handover is None:
            entry.status = LMSRetryStatus.EXHAUSTED.value
            entry.last_error = "Handover not found"
            await self.db.commit()
            return "exhausted"

        if (
            entry.operation == LMSRetryOperation.CREATE_SHIPMENT.value
            and handover.status == HandoverStatus.CANCELLED.value
            and handover.lms_sync_status != LMSSyncStatus.SYNCED.value
        ):
            # No shipment for a handover that will never leave the dock
            entry.status = LMSRetryStatus.EXHAUSTED.value
            entry.last_error = "Handover cancelled"
            await self.db.commit()
            logger.info(f"Dropped LMS shipment retry for cancelled handover {handover.id}")
            return "exhausted"

        if entry.operation == LMSRetryOperation.CREATE_SHIPMENT.value:
            if handover.lms_sync_status == LMSSyncStatus.SYNCED.value:
                success, error = True, None
            else:
                result = await self.sync_handover(handover, enqueue_retry=False)
                success, error = result.success, result.error
        else:
            payload = entry.payload or {}
            if not handover.tracking_number:
                success, error = False, "Handover has no tracking number"
            else:
                response = await self.client.update_shipment_status(
                    handover.tracking_number,
                    payload.get("status", handover.status),
                    payload.get("additionalData"),
                )
                success, error = response.success, response.error

        entry.attempts += 1
        entry.last_error = error

        if success:
            entry.status = LMSRetryStatus.DONE.value
            outcome = "succeeded"
        elif entry.attempts >= entry.max_attempts:
            entry.status = LMSRetryStatus.EXHAUSTED.value
            if entry.operation == LMSRetryOperation.CREATE_SHIPMENT.value:
                handover.lms_sync_status = LMSSyncStatus.FAILED.value
            outcome = "exhausted"
            logger.error(
                f"LMS {entry.operation} for handover {handover.id} exhausted "
                f"after {entry.attempts} attempts: {error}"
            )
        else:
            entry.next_attempt_at = now + retry_backoff(entry.attempts + 1)
            if entry.operation == LMSRetryOperation.CREATE_SHIPMENT.value:
                handover.lms_sync_status = LMSSyncStatus.RETRY.value
            outcome = "rescheduled"

        await self.db.commit()
        return outcome

    async def pending_entry_count(self) -> int:
        return (await self.db.execute(
            select(func.count(LMSRetryEntry.id)).where(
                LMSRetryEntry.status == LMSRetryStatus.PENDING.value
            )
        )).scalar() or 0
