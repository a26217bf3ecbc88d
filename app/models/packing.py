"""Packing job models: verification, photo evidence, seals and audit events."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, ForeignKey, Integer, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, UTCDateTime, JSONType


class PackingJobStatus(str, Enum):
    PENDING = "PENDING"
    PACKING = "PACKING"
    VERIFYING = "VERIFYING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    AWAITING_HANDOVER = "AWAITING_HANDOVER"
    HANDOVER_ASSIGNED = "HANDOVER_ASSIGNED"


class WorkflowType(str, Enum):
    PICKER_PACKS = "PICKER_PACKS"           # Same person picks and packs
    DEDICATED_PACKER = "DEDICATED_PACKER"   # Separate packing station


class PackingItemStatus(str, Enum):
    PENDING = "PENDING"
    PACKING = "PACKING"
    VERIFIED = "VERIFIED"
    COMPLETED = "COMPLETED"


class PhotoType(str, Enum):
    PRE_PACK = "PRE_PACK"
    POST_PACK = "POST_PACK"
    SEALED = "SEALED"
    HANDOVER = "HANDOVER"


class PhotoVerificationStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class SealType(str, Enum):
    PLASTIC = "PLASTIC"
    PAPER = "PAPER"
    METAL = "METAL"
    ELECTRONIC = "ELECTRONIC"


class SealVerificationStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    TAMPERED = "TAMPERED"


class PackingEventType(str, Enum):
    PACKING_STARTED = "PACKING_STARTED"
    ITEM_VERIFIED = "ITEM_VERIFIED"
    PACKING_COMPLETED = "PACKING_COMPLETED"
    PACKING_REASSIGNED = "PACKING_REASSIGNED"
    HANDOVER_ASSIGNED = "HANDOVER_ASSIGNED"
    HANDOVER_CONFIRMED = "HANDOVER_CONFIRMED"
    HANDOVER_STATUS_UPDATED = "HANDOVER_STATUS_UPDATED"
    LMS_SYNCED = "LMS_SYNCED"
    LMS_SYNC_FAILED = "LMS_SYNC_FAILED"


class PackingJob(Base):
    """
    Packing job for one completed picking wave.
    A wave has at most one packing job (unique wave_id).
    """
    __tablename__ = "packing_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    job_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="PKG-<base36 ts>-<rand>"
    )
    wave_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("picking_waves.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False
    )
    packer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(30),
        default=PackingJobStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="PENDING, PACKING, VERIFYING, COMPLETED, CANCELLED, AWAITING_HANDOVER, HANDOVER_ASSIGNED"
    )
    priority: Mapped[str] = mapped_column(String(10), default="MEDIUM", nullable=False)
    workflow_type: Mapped[str] = mapped_column(
        String(30),
        default=WorkflowType.DEDICATED_PACKER.value,
        nullable=False
    )

    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    packed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    verified_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    estimated_duration: Mapped[int] = mapped_column(
        Integer,
        default=5,
        nullable=False,
        comment="Minutes"
    )
    sla_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    handover_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<PackingJob(job_number='{self.job_number}', status='{self.status}')>"


class PackingItem(Base):
    """Per-line packing verification record."""
    __tablename__ = "packing_items"
    __table_args__ = (
        CheckConstraint("packed_quantity <= picked_quantity", name="ck_packing_packed_le_picked"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("packing_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False
    )
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    picked_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    packed_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    verified_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PackingItemStatus.PENDING.value,
        nullable=False,
        comment="PENDING, PACKING, VERIFIED, COMPLETED"
    )
    verification_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<PackingItem(sku='{self.sku}', status='{self.status}')>"


class PhotoEvidence(Base):
    """Photo captured during packing or handover. Additive only."""
    __tablename__ = "photo_evidence"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("packing_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True
    )
    photo_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="PRE_PACK, POST_PACK, SEALED, HANDOVER"
    )
    photo_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    photo_metadata: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="timestamp, location, device, coordinates"
    )
    verification_status: Mapped[str] = mapped_column(
        String(20),
        default=PhotoVerificationStatus.PENDING.value,
        nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<PhotoEvidence(job_id='{self.job_id}', type='{self.photo_type}')>"


class Seal(Base):
    """Tamper seal applied to a package. Additive only."""
    __tablename__ = "seals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    seal_number: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("packing_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True
    )
    seal_type: Mapped[str] = mapped_column(
        String(20),
        default=SealType.PLASTIC.value,
        nullable=False,
        comment="PLASTIC, PAPER, METAL, ELECTRONIC"
    )
    applied_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    applied_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    verification_status: Mapped[str] = mapped_column(
        String(20),
        default=SealVerificationStatus.PENDING.value,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Seal(seal_number='{self.seal_number}')>"


class PackingEvent(Base):
    """Append-only audit trail for packing and handover."""
    __tablename__ = "packing_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("packing_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    event_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<PackingEvent(type='{self.event_type}', job_id='{self.job_id}')>"
