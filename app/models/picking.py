"""Picking wave models for batched warehouse order picking."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Boolean, ForeignKey, Integer, Text, CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, UTCDateTime


class WaveStatus(str, Enum):
    """Picking wave lifecycle."""
    GENERATED = "GENERATED"     # Created, waiting for a picker
    ASSIGNED = "ASSIGNED"       # Picker assigned
    PICKING = "PICKING"         # Picker is on the floor
    PACKING = "PACKING"         # Handed to packing
    COMPLETED = "COMPLETED"     # All items picked
    CANCELLED = "CANCELLED"


class WavePriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# Higher rank is served first
PRIORITY_RANK = {
    WavePriority.URGENT.value: 4,
    WavePriority.HIGH.value: 3,
    WavePriority.MEDIUM.value: 2,
    WavePriority.LOW.value: 1,
}


class PicklistItemStatus(str, Enum):
    PENDING = "PENDING"
    PICKING = "PICKING"
    PICKED = "PICKED"
    PARTIAL = "PARTIAL"
    OOS = "OOS"
    DAMAGED = "DAMAGED"


OPEN_ITEM_STATUSES = (PicklistItemStatus.PENDING.value, PicklistItemStatus.PICKING.value)


class ExceptionType(str, Enum):
    OOS = "OOS"
    DAMAGED = "DAMAGED"
    EXPIRY = "EXPIRY"
    WRONG_LOCATION = "WRONG_LOCATION"
    QUANTITY_MISMATCH = "QUANTITY_MISMATCH"
    OTHER = "OTHER"


class ExceptionSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ExceptionStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"


class PickingWave(Base):
    """
    A batch of orders picked together by one picker.
    Waves are never deleted, only cancelled.
    """
    __tablename__ = "picking_waves"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    wave_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="W<epochMillis>-<chunkIndex>"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=WaveStatus.GENERATED.value,
        nullable=False,
        index=True,
        comment="GENERATED, ASSIGNED, PICKING, PACKING, COMPLETED, CANCELLED"
    )
    priority: Mapped[str] = mapped_column(
        String(10),
        default=WavePriority.MEDIUM.value,
        nullable=False,
        comment="LOW, MEDIUM, HIGH, URGENT"
    )

    picker_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_items: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Sum of picklist quantities"
    )
    estimated_duration: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Minutes"
    )
    sla_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    # Picking options
    route_optimization: Mapped[bool] = mapped_column(Boolean, default=True)
    fefo_required: Mapped[bool] = mapped_column(Boolean, default=False)
    tags_and_bags: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
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
    started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PickingWave(wave_number='{self.wave_number}', status='{self.status}')>"


class PicklistItem(Base):
    """One cart line to pick from a bin within a wave."""
    __tablename__ = "picklist_items"
    __table_args__ = (
        CheckConstraint("picked_quantity >= 0", name="ck_picklist_picked_non_negative"),
        CheckConstraint("picked_quantity <= quantity", name="ck_picklist_picked_le_quantity"),
        CheckConstraint(
            "status <> 'PICKED' OR picked_quantity = quantity",
            name="ck_picklist_picked_means_full"
        ),
        Index("ix_picklist_items_wave_sku_bin", "wave_id", "sku", "bin_location"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    wave_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("picking_waves.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    bin_location: Mapped[str] = mapped_column(String(50), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    picked_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PicklistItemStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="PENDING, PICKING, PICKED, PARTIAL, OOS, DAMAGED"
    )

    # FEFO
    fefo_batch: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    scan_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    partial_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    partial_photo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    picked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    picked_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def pending_quantity(self) -> int:
        return self.quantity - self.picked_quantity

    def __repr__(self) -> str:
        return f"<PicklistItem(sku='{self.sku}', bin='{self.bin_location}', status='{self.status}')>"


class PickingException(Base):
    """Exception raised on the floor (stock-out, damage, expiry)."""
    __tablename__ = "picking_exceptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    wave_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("picking_waves.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False
    )
    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    exception_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="OOS, DAMAGED, EXPIRY, WRONG_LOCATION, QUANTITY_MISMATCH, OTHER"
    )
    severity: Mapped[str] = mapped_column(
        String(10),
        default=ExceptionSeverity.MEDIUM.value,
        nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)

    reported_by: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )
    reported_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=ExceptionStatus.OPEN.value,
        nullable=False,
        index=True,
        comment="OPEN, IN_PROGRESS, RESOLVED, ESCALATED"
    )
    sla_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<PickingException(type='{self.exception_type}', status='{self.status}')>"
