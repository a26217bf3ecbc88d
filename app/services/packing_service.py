"""
Packing job service.

Turns a completed picking wave into a packing job, verifies packed
quantities line by line, and closes the job with photo evidence and seals
so it can be handed to a rider.
"""
import random
import string
import time
import uuid
from datetime import datetime, timezone, timedelta
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy import select, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ValidationError, NotFoundError, ConflictError
from app.core.storage import PhotoStorage
from app.models.picking import PickingWave, PicklistItem, WaveStatus, WavePriority, PRIORITY_RANK
from app.models.packing import (
    PackingJob, PackingItem, PhotoEvidence, Seal, PackingEvent,
    PackingJobStatus, PackingItemStatus, PackingEventType, WorkflowType,
    PhotoType, SealType,
)
from app.services import sla_service
from app.services.seal_service import to_base36

logger = logging.getLogger(__name__)

# Jobs past packing; verification and completion are closed for these
CLOSED_JOB_STATUSES = (
    PackingJobStatus.COMPLETED.value,
    PackingJobStatus.CANCELLED.value,
    PackingJobStatus.AWAITING_HANDOVER.value,
    PackingJobStatus.HANDOVER_ASSIGNED.value,
)


def generate_job_number() -> str:
    """PKG-<base36 epoch ms>-<6 random chars>, upper-cased."""
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"PKG-{timestamp}-{suffix}".upper()


def estimate_packing_minutes(item_count: int) -> int:
    """5 minutes base plus 2 per item."""
    return max(5, 5 + item_count * 2)


def progress_percentage(packed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(packed / total * 100)


def _value(enum_or_str) -> Optional[str]:
    if enum_or_str is None:
        return None
    return enum_or_str.value if hasattr(enum_or_str, "value") else str(enum_or_str)


class PackingService:
    """Packing job lifecycle from wave completion to handover readiness."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_job(self, job_id: uuid.UUID) -> PackingJob:
        result = await self.db.execute(select(PackingJob).where(PackingJob.id == job_id))
        job = result.scalar_one_or_none()
        if not job:
            raise NotFoundError("Packing job not found")
        return job

    async def get_job_items(self, job_id: uuid.UUID) -> List[PackingItem]:
        result = await self.db.execute(
            select(PackingItem)
            .where(PackingItem.job_id == job_id)
            .order_by(PackingItem.order_id, PackingItem.sku)
        )
        return list(result.scalars().all())

    def _log_event(
        self,
        job_id: uuid.UUID,
        event_type: PackingEventType,
        event_data: Optional[Dict[str, Any]] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> None:
        self.db.add(PackingEvent(
            job_id=job_id,
            event_type=event_type.value,
            event_data=event_data,
            user_id=user_id,
            timestamp=datetime.now(timezone.utc),
        ))

    # ========================================================================
    # JOB LIFECYCLE
    # ========================================================================

    async def start_packing(
        self,
        wave_id: uuid.UUID,
        packer_id: Optional[uuid.UUID] = None,
        priority: Optional[WavePriority] = None,
        workflow_type: Optional[WorkflowType] = None,
        special_instructions: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        result = await self.db.execute(select(PickingWave).where(PickingWave.id == wave_id))
        wave = result.scalar_one_or_none()
        if not wave:
            raise NotFoundError("Picking wave not found")

        if wave.status != WaveStatus.COMPLETED.value:
            raise ConflictError("Picking wave must be completed before starting packing")

        existing = await self.db.execute(select(PackingJob.id).where(PackingJob.wave_id == wave_id))
        if existing.scalar_one_or_none():
            raise ConflictError("Packing job already exists for this wave", status_code=409)

        picklist = (await self.db.execute(
            select(PicklistItem)
            .where(PicklistItem.wave_id == wave_id)
            .order_by(PicklistItem.scan_sequence.asc())
        )).scalars().all()

        now = datetime.now(timezone.utc)
        workflow = _value(workflow_type) or WorkflowType.DEDICATED_PACKER.value
        job = PackingJob(
            job_number=generate_job_number(),
            wave_id=wave_id,
            packer_id=packer_id,
            status=PackingJobStatus.PENDING.value,
            priority=_value(priority) or WavePriority.MEDIUM.value,
            workflow_type=workflow,
            special_instructions=special_instructions,
            total_items=len(picklist),
            packed_items=0,
            verified_items=0,
            estimated_duration=estimate_packing_minutes(len(picklist)),
            sla_deadline=now + timedelta(minutes=settings.PACKING_SLA_MINUTES),
            assigned_at=now if packer_id else None,
        )
        self.db.add(job)

        # Unique wave_id index guards against a concurrent start for the same wave
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Packing job already exists for this wave", status_code=409)

        items = [
            PackingItem(
                job_id=job.id,
                order_id=line.order_id,
                sku=line.sku,
                product_name=line.product_name,
                quantity=line.quantity,
                picked_quantity=line.picked_quantity,
                packed_quantity=0,
                verified_quantity=0,
                status=PackingItemStatus.PENDING.value,
            )
            for line in picklist
        ]
        self.db.add_all(items)

        self._log_event(
            job.id,
            PackingEventType.PACKING_STARTED,
            {
                "waveId": str(wave_id),
                "packerId": str(packer_id) if packer_id else None,
                "priority": job.priority,
                "workflowType": workflow,
            },
            user_id,
        )

        if workflow == WorkflowType.PICKER_PACKS.value and packer_id:
            wave.status = WaveStatus.PACKING.value

        await self.db.commit()
        await self.db.refresh(job)

        logger.info(f"Started packing job {job.job_number} for wave {wave.wave_number} ({len(items)} items)")
        return {"job": job, "items": items}

    async def verify_item(
        self,
        job_id: uuid.UUID,
        order_id: uuid.UUID,
        sku: str,
        packed_quantity: int,
        notes: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """
        Record the packed quantity for one line.

        Rejects over-packing before anything is written; job counters are
        recomputed from all of the job's items.
        """
        result = await self.db.execute(
            select(PackingItem).where(
                PackingItem.job_id == job_id,
                PackingItem.order_id == order_id,
                PackingItem.sku == sku,
            )
        )
        item = result.scalars().first()
        if not item:
            raise NotFoundError("Packing item not found")

        if packed_quantity < 0:
            raise ValidationError("Packed quantity cannot be negative")
        if packed_quantity > item.picked_quantity:
            raise ValidationError("Packed quantity cannot exceed picked quantity")

        job = await self.get_job(job_id)
        if job.status in CLOSED_JOB_STATUSES:
            raise ConflictError(f"Packing job is {job.status}")

        item.packed_quantity = packed_quantity
        item.verified_quantity = packed_quantity
        item.status = (
            PackingItemStatus.COMPLETED.value if packed_quantity == item.quantity
            else PackingItemStatus.VERIFIED.value
        )
        item.verification_notes = notes
        await self.db.flush()

        await self._update_job_progress(job)

        self._log_event(
            job_id,
            PackingEventType.ITEM_VERIFIED,
            {
                "orderId": str(order_id),
                "sku": sku,
                "packedQuantity": packed_quantity,
                "verificationNotes": notes,
            },
            user_id,
        )

        await self.db.commit()
        await self.db.refresh(item)

        return {"item": item, "progress": self._progress(job)}

    async def _update_job_progress(self, job: PackingJob) -> None:
        items = await self.get_job_items(job.id)
        job.packed_items = sum(
            1 for i in items
            if i.status in (PackingItemStatus.VERIFIED.value, PackingItemStatus.COMPLETED.value)
        )
        job.verified_items = sum(1 for i in items if i.status == PackingItemStatus.COMPLETED.value)

    @staticmethod
    def _progress(job: PackingJob) -> Dict[str, int]:
        return {
            "total_items": job.total_items,
            "packed_items": job.packed_items,
            "verified_items": job.verified_items,
            "percentage": progress_percentage(job.packed_items, job.total_items),
        }

    async def complete_packing(
        self,
        job_id: uuid.UUID,
        photos: Optional[List[Dict[str, Any]]] = None,
        seals: Optional[List[Dict[str, Any]]] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """Persist evidence and move the job to AWAITING_HANDOVER in one commit."""
        photos = photos or []
        seals = seals or []

        job = await self.get_job(job_id)
        if job.status in CLOSED_JOB_STATUSES:
            raise ConflictError("Packing job is already completed")

        items = await self.get_job_items(job_id)
        incomplete = [i for i in items if i.status != PackingItemStatus.COMPLETED.value]
        if incomplete:
            raise ConflictError(f"Cannot complete packing: {len(incomplete)} items are not completed")

        now = datetime.now(timezone.utc)

        photo_rows = []
        for photo in photos:
            metadata = photo.get("photo_metadata") or {}
            photo_rows.append(PhotoEvidence(
                job_id=job_id,
                order_id=photo.get("order_id"),
                photo_type=_value(photo["photo_type"]),
                photo_url=photo["photo_url"],
                thumbnail_url=photo.get("thumbnail_url"),
                photo_metadata={
                    "timestamp": now.isoformat(),
                    "location": metadata.get("location"),
                    "device": metadata.get("device"),
                    "coordinates": metadata.get("coordinates"),
                },
            ))

        seal_rows = [
            Seal(
                seal_number=seal["seal_number"],
                job_id=job_id,
                order_id=seal.get("order_id"),
                seal_type=_value(seal.get("seal_type")) or SealType.PLASTIC.value,
                applied_at=now,
                applied_by=user_id,
            )
            for seal in seals
        ]

        self.db.add_all(photo_rows)
        self.db.add_all(seal_rows)

        job.status = PackingJobStatus.AWAITING_HANDOVER.value
        job.completed_at = now
        job.packed_items = job.total_items
        job.verified_items = job.total_items

        self._log_event(
            job_id,
            PackingEventType.PACKING_COMPLETED,
            {"photosCount": len(photo_rows), "sealsCount": len(seal_rows)},
            user_id,
        )

        await self.db.commit()
        await self.db.refresh(job)

        logger.info(
            f"Packing job {job.job_number} completed with "
            f"{len(photo_rows)} photos and {len(seal_rows)} seals"
        )
        return {"job": job, "photos": photo_rows, "seals": seal_rows}

    async def reassign_job(
        self,
        job_id: uuid.UUID,
        new_packer_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> PackingJob:
        job = await self.get_job(job_id)
        if job.status == PackingJobStatus.COMPLETED.value:
            raise ConflictError("Cannot reassign completed job")

        old_packer_id = job.packer_id
        job.packer_id = new_packer_id
        job.assigned_at = datetime.now(timezone.utc)

        self._log_event(
            job_id,
            PackingEventType.PACKING_REASSIGNED,
            {
                "oldPackerId": str(old_packer_id) if old_packer_id else None,
                "newPackerId": str(new_packer_id),
                "reason": reason,
                "reassignedBy": str(user_id) if user_id else None,
            },
            user_id,
        )

        await self.db.commit()
        await self.db.refresh(job)

        logger.info(f"Packing job {job.job_number} reassigned {old_packer_id} -> {new_packer_id}: {reason}")
        return job

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def get_job_status(self, job_id: uuid.UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        job = await self.get_job(job_id)
        items = await self.get_job_items(job_id)

        photos = (await self.db.execute(
            select(PhotoEvidence).where(PhotoEvidence.job_id == job_id).order_by(PhotoEvidence.created_at)
        )).scalars().all()
        seals = (await self.db.execute(
            select(Seal).where(Seal.job_id == job_id).order_by(Seal.applied_at)
        )).scalars().all()

        sla = sla_service.evaluate_deadline(job.sla_deadline, now)
        return {
            "id": job.id,
            "job_number": job.job_number,
            "status": job.status,
            "packer_id": job.packer_id,
            "progress": self._progress(job),
            "sla": {
                "deadline": job.sla_deadline,
                "remaining": max(0, sla.remaining_minutes),
                "status": sla.status,
                "is_critical": sla.is_critical,
            },
            "items": items,
            "photos": list(photos),
            "seals": list(seals),
        }

    async def get_jobs_awaiting_handover(self) -> List[PackingJob]:
        result = await self.db.execute(
            select(PackingJob)
            .where(PackingJob.status == PackingJobStatus.AWAITING_HANDOVER.value)
            .order_by(
                case(PRIORITY_RANK, value=PackingJob.priority, else_=0).desc(),
                PackingJob.completed_at.asc(),
            )
        )
        return list(result.scalars().all())

    # ========================================================================
    # PHOTO EVIDENCE
    # ========================================================================

    async def upload_photo(
        self,
        job_id: uuid.UUID,
        content: bytes,
        photo_type: PhotoType,
        storage: PhotoStorage,
        content_type: str = "image/jpeg",
        order_id: Optional[uuid.UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PhotoEvidence:
        """Store a photo through the storage collaborator and record it."""
        if not content:
            raise ValidationError("Photo file is empty")

        job = await self.get_job(job_id)
        photo_type_value = _value(photo_type)

        uploaded = await storage.upload_photo(
            content, job.id, photo_type_value, content_type=content_type, metadata=metadata
        )

        photo = PhotoEvidence(
            job_id=job.id,
            order_id=order_id,
            photo_type=photo_type_value,
            photo_url=uploaded.photo_url,
            thumbnail_url=uploaded.thumbnail_url,
            photo_metadata=uploaded.metadata,
        )
        self.db.add(photo)
        await self.db.commit()
        await self.db.refresh(photo)

        logger.info(f"Stored {photo_type_value} photo for packing job {job.job_number}")
        return photo
