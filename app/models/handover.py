"""Rider handover and LMS synchronisation models."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, ForeignKey, Integer, Text, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, UTCDateTime, JSONType


class VehicleType(str, Enum):
    BIKE = "BIKE"
    SCOOTER = "SCOOTER"
    CAR = "CAR"
    VAN = "VAN"


class RiderAvailability(str, Enum):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"
    BREAK = "BREAK"


class HandoverStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    CONFIRMED = "CONFIRMED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class LMSSyncStatus(str, Enum):
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"
    RETRY = "RETRY"


class LMSShipmentStatus(str, Enum):
    PENDING = "PENDING"
    CREATED = "CREATED"
    MANIFESTED = "MANIFESTED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"


class LMSRetryOperation(str, Enum):
    CREATE_SHIPMENT = "CREATE_SHIPMENT"
    UPDATE_STATUS = "UPDATE_STATUS"


class LMSRetryStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"
    EXHAUSTED = "EXHAUSTED"


class Rider(Base):
    """Delivery rider who collects packed orders from the dock."""
    __tablename__ = "riders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    rider_code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    vehicle_type: Mapped[str] = mapped_column(
        String(10),
        default=VehicleType.BIKE.value,
        nullable=False,
        comment="BIKE, SCOOTER, CAR, VAN"
    )
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    availability_status: Mapped[str] = mapped_column(
        String(10),
        default=RiderAvailability.AVAILABLE.value,
        nullable=False,
        index=True,
        comment="AVAILABLE, BUSY, OFFLINE, BREAK"
    )
    rating: Mapped[Decimal] = mapped_column(Numeric(3, 2), default=Decimal("5.00"), nullable=False)
    total_deliveries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_active_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Rider(rider_code='{self.rider_code}', status='{self.availability_status}')>"


class Handover(Base):
    """
    Transfer of a packed job to a rider.
    One handover per packing job (unique job_id).
    """
    __tablename__ = "handovers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("packing_jobs.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False
    )
    rider_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("riders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=HandoverStatus.ASSIGNED.value,
        nullable=False,
        index=True,
        comment="ASSIGNED, CONFIRMED, IN_TRANSIT, DELIVERED, CANCELLED"
    )

    assigned_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # LMS sync state
    lms_sync_status: Mapped[str] = mapped_column(
        String(10),
        default=LMSSyncStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="PENDING, SYNCED, FAILED, RETRY"
    )
    lms_sync_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lms_last_sync_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    lms_error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    manifest_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
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

    def __repr__(self) -> str:
        return f"<Handover(job_id='{self.job_id}', status='{self.status}')>"


class LMSShipment(Base):
    """Shipment record returned by the LMS. Append-only."""
    __tablename__ = "lms_shipments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    handover_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("handovers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    lms_reference: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=LMSShipmentStatus.PENDING.value,
        nullable=False,
        comment="PENDING, CREATED, MANIFESTED, IN_TRANSIT, DELIVERED"
    )
    lms_response: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<LMSShipment(lms_reference='{self.lms_reference}', status='{self.status}')>"


class LMSRetryEntry(Base):
    """
    Persisted LMS sync retry ledger.

    Failed shipment creations and status pushes are queued here and replayed
    by the scheduler with exponential backoff.
    """
    __tablename__ = "lms_retry_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    handover_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("handovers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    operation: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="CREATE_SHIPMENT, UPDATE_STATUS"
    )
    payload: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    next_attempt_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(10),
        default=LMSRetryStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="PENDING, DONE, EXHAUSTED"
    )

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

    def __repr__(self) -> str:
        return f"<LMSRetryEntry(operation='{self.operation}', status='{self.status}', attempts={self.attempts})>"
