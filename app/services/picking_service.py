"""
Picking execution service.

Drives a wave through PICKING on the floor: start, scan, short picks,
completion, plus FEFO expiry alerts and the picking exception queue.
"""
import uuid
from datetime import datetime, timezone, timedelta
from typing import Optional, List, Dict, Any, Tuple
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ValidationError, NotFoundError, ConflictError, ForbiddenError
from app.models.picking import (
    PickingWave, PicklistItem, PickingException,
    WaveStatus, PicklistItemStatus, ExceptionType, ExceptionSeverity, ExceptionStatus,
    OPEN_ITEM_STATUSES,
)

logger = logging.getLogger(__name__)

# Short-pick reasons that open an exception ticket
EXCEPTION_REASONS = (
    ExceptionType.OOS.value,
    ExceptionType.DAMAGED.value,
    ExceptionType.EXPIRY.value,
)

URGENCY_ORDER = {"EXPIRED": 0, "CRITICAL": 1, "HIGH": 2, "MEDIUM": 3}


def expiry_urgency(expiry_date: datetime, now: datetime) -> str:
    if expiry_date <= now:
        return "EXPIRED"
    if expiry_date <= now + timedelta(days=1):
        return "CRITICAL"
    if expiry_date <= now + timedelta(days=3):
        return "HIGH"
    return "MEDIUM"


def picking_accuracy(picked: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(picked / total * 100, 2)


class PickingService:
    """Picker-facing wave execution."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_wave(self, wave_id: uuid.UUID) -> PickingWave:
        result = await self.db.execute(select(PickingWave).where(PickingWave.id == wave_id))
        wave = result.scalar_one_or_none()
        if not wave:
            raise NotFoundError("Wave not found")
        return wave

    @staticmethod
    def _ensure_picker(wave: PickingWave, picker_id: uuid.UUID) -> None:
        if wave.picker_id != picker_id:
            raise ForbiddenError("You are not assigned to this wave")

    async def _count_items(self, wave_id: uuid.UUID, statuses: Optional[Tuple[str, ...]] = None) -> int:
        stmt = select(func.count(PicklistItem.id)).where(PicklistItem.wave_id == wave_id)
        if statuses:
            stmt = stmt.where(PicklistItem.status.in_(statuses))
        return (await self.db.execute(stmt)).scalar() or 0

    async def _items_by_sequence(self, wave_id: uuid.UUID) -> List[PicklistItem]:
        result = await self.db.execute(
            select(PicklistItem)
            .where(PicklistItem.wave_id == wave_id)
            .order_by(PicklistItem.scan_sequence.asc(), PicklistItem.created_at.asc())
        )
        return list(result.scalars().all())

    # ========================================================================
    # PICKING FLOW
    # ========================================================================

    async def start_picking(
        self,
        wave_id: uuid.UUID,
        picker_id: uuid.UUID
    ) -> Tuple[PickingWave, List[PicklistItem]]:
        wave = await self._get_wave(wave_id)

        if wave.status != WaveStatus.ASSIGNED.value:
            raise ConflictError(f"Wave is not ready for picking (status {wave.status})")
        self._ensure_picker(wave, picker_id)

        wave.status = WaveStatus.PICKING.value
        wave.started_at = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(wave)

        logger.info(f"Picker {picker_id} started wave {wave.wave_number}")
        return wave, await self._items_by_sequence(wave_id)

    async def scan_item(
        self,
        wave_id: uuid.UUID,
        picker_id: uuid.UUID,
        sku: Optional[str],
        bin_location: Optional[str],
        quantity: int = 1,
    ) -> Dict[str, Any]:
        """
        Record a scan of ``sku`` at ``bin_location``.

        The wave completes automatically once no PENDING/PICKING items remain.
        """
        if not sku or not bin_location:
            raise ValidationError("SKU and bin location are required")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        wave = await self._get_wave(wave_id)
        if wave.status != WaveStatus.PICKING.value:
            raise ConflictError("Wave is not in picking status")
        self._ensure_picker(wave, picker_id)

        result = await self.db.execute(
            select(PicklistItem)
            .where(
                PicklistItem.wave_id == wave_id,
                PicklistItem.sku == sku,
                PicklistItem.bin_location == bin_location,
                PicklistItem.status.in_(OPEN_ITEM_STATUSES),
            )
            .order_by(PicklistItem.scan_sequence.asc())
            .limit(1)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Item not found in picklist")

        now = datetime.now(timezone.utc)
        picked = min(quantity, item.quantity)
        item.picked_quantity = picked
        item.status = (
            PicklistItemStatus.PICKED.value if picked == item.quantity
            else PicklistItemStatus.PARTIAL.value
        )
        item.picked_at = now
        item.picked_by = picker_id
        await self.db.flush()

        remaining = await self._count_items(wave_id, OPEN_ITEM_STATUSES)
        if remaining == 0:
            wave.status = WaveStatus.COMPLETED.value
            wave.completed_at = now
            logger.info(f"Wave {wave.wave_number} completed on last scan")

        await self.db.commit()
        await self.db.refresh(item)

        return {
            "item": item,
            "wave_completed": remaining == 0,
            "remaining_items": remaining,
        }

    async def report_partial_pick(
        self,
        wave_id: uuid.UUID,
        picker_id: uuid.UUID,
        sku: Optional[str],
        bin_location: Optional[str],
        reason: str,
        picked_quantity: int = 0,
        photo: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Mark an item PARTIAL; OOS/DAMAGED/EXPIRY also open an exception."""
        if not sku or not bin_location or not reason:
            raise ValidationError("SKU, bin location, and reason are required")

        wave = await self._get_wave(wave_id)
        if wave.status != WaveStatus.PICKING.value:
            raise ConflictError("Wave is not in picking status")
        self._ensure_picker(wave, picker_id)

        # Prefer an open line when the same sku/bin appears more than once
        result = await self.db.execute(
            select(PicklistItem)
            .where(
                PicklistItem.wave_id == wave_id,
                PicklistItem.sku == sku,
                PicklistItem.bin_location == bin_location,
            )
            .order_by(PicklistItem.status.in_(OPEN_ITEM_STATUSES).desc(), PicklistItem.scan_sequence.asc())
            .limit(1)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Item not found in picklist")

        now = datetime.now(timezone.utc)
        item.status = PicklistItemStatus.PARTIAL.value
        item.picked_quantity = max(0, min(picked_quantity, item.quantity))
        item.partial_reason = reason
        item.partial_photo = photo
        item.notes = notes
        item.picked_at = now
        item.picked_by = picker_id

        exception = None
        if reason in EXCEPTION_REASONS:
            exception = PickingException(
                wave_id=wave_id,
                order_id=item.order_id,
                sku=item.sku,
                exception_type=reason,
                severity=(
                    ExceptionSeverity.HIGH.value if reason == ExceptionType.EXPIRY.value
                    else ExceptionSeverity.MEDIUM.value
                ),
                description=f"Partial pick reported: {reason}. {notes or ''}".strip(),
                reported_by=picker_id,
                reported_at=now,
                status=ExceptionStatus.OPEN.value,
                sla_deadline=now + timedelta(minutes=settings.EXCEPTION_SLA_MINUTES),
            )
            self.db.add(exception)

        await self.db.commit()
        await self.db.refresh(item)
        if exception:
            await self.db.refresh(exception)

        logger.info(
            f"Partial pick on wave {wave.wave_number}: {sku}@{bin_location} "
            f"{item.picked_quantity}/{item.quantity} ({reason})"
        )
        return {"item": item, "exception": exception}

    async def complete_picking(self, wave_id: uuid.UUID, picker_id: uuid.UUID) -> Dict[str, Any]:
        """
        Close out a wave and report pick accuracy.

        Calling again on a COMPLETED wave returns the same metrics and keeps
        the original ``completed_at``.
        """
        wave = await self._get_wave(wave_id)
        self._ensure_picker(wave, picker_id)

        if wave.status != WaveStatus.COMPLETED.value:
            if wave.status != WaveStatus.PICKING.value:
                raise ConflictError("Wave is not in picking status")

            pending = await self._count_items(wave_id, OPEN_ITEM_STATUSES)
            if pending > 0:
                raise ConflictError(f"Cannot complete: {pending} items still pending")

            wave.status = WaveStatus.COMPLETED.value
            wave.completed_at = datetime.now(timezone.utc)
            await self.db.commit()
            await self.db.refresh(wave)
            logger.info(f"Wave {wave.wave_number} completed by picker {picker_id}")

        total = await self._count_items(wave_id)
        picked = await self._count_items(wave_id, (PicklistItemStatus.PICKED.value,))
        partial = await self._count_items(wave_id, (PicklistItemStatus.PARTIAL.value,))

        return {
            "wave_id": wave.id,
            "wave_number": wave.wave_number,
            "status": wave.status,
            "completed_at": wave.completed_at,
            "metrics": {
                "total_items": total,
                "picked_items": picked,
                "partial_items": partial,
                "accuracy": picking_accuracy(picked, total),
            },
        }

    # ========================================================================
    # MONITORING
    # ========================================================================

    async def get_expiry_alerts(
        self,
        days_threshold: int = 7,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        threshold = now + timedelta(days=days_threshold)

        result = await self.db.execute(
            select(PicklistItem)
            .where(
                PicklistItem.expiry_date.is_not(None),
                PicklistItem.expiry_date <= threshold,
                PicklistItem.status.in_(OPEN_ITEM_STATUSES),
            )
            .order_by(PicklistItem.expiry_date.asc())
        )

        alerts = []
        for item in result.scalars().all():
            seconds = (item.expiry_date - now).total_seconds()
            alerts.append({
                "id": item.id,
                "wave_id": item.wave_id,
                "order_id": item.order_id,
                "sku": item.sku,
                "product_name": item.product_name,
                "bin_location": item.bin_location,
                "fefo_batch": item.fefo_batch,
                "expiry_date": item.expiry_date,
                "days_until_expiry": int(-(-seconds // 86400)),
                "urgency": expiry_urgency(item.expiry_date, now),
            })

        alerts.sort(key=lambda a: (URGENCY_ORDER[a["urgency"]], a["expiry_date"]))
        return {
            "total_alerts": len(alerts),
            "days_threshold": days_threshold,
            "alerts": alerts,
        }

    async def list_exceptions(self, status: Optional[str] = None) -> List[PickingException]:
        stmt = select(PickingException).order_by(
            PickingException.sla_deadline.asc(), PickingException.reported_at.asc()
        )
        if status:
            stmt = stmt.where(PickingException.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def resolve_exception(
        self,
        exception_id: uuid.UUID,
        resolution: str,
        status: ExceptionStatus = ExceptionStatus.RESOLVED,
    ) -> PickingException:
        result = await self.db.execute(
            select(PickingException).where(PickingException.id == exception_id)
        )
        exception = result.scalar_one_or_none()
        if not exception:
            raise NotFoundError("Picking exception not found")

        if exception.status == ExceptionStatus.RESOLVED.value:
            raise ConflictError("Exception is already resolved")

        status_value = status.value if isinstance(status, ExceptionStatus) else str(status)
        if status_value == ExceptionStatus.OPEN.value:
            raise ValidationError("Cannot move an exception back to OPEN")

        exception.status = status_value
        exception.resolution = resolution
        if status_value == ExceptionStatus.RESOLVED.value:
            exception.resolved_at = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(exception)

        logger.info(f"Picking exception {exception.id} -> {status_value}")
        return exception
