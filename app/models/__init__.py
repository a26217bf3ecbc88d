from app.models.user import User, UserRole, UserAvailability
from app.models.role import Role
from app.models.permission import Permission, RolePermission
from app.models.order import Order
from app.models.picking import (
    PickingWave,
    PicklistItem,
    PickingException,
    WaveStatus,
    WavePriority,
    PicklistItemStatus,
    ExceptionType,
    ExceptionSeverity,
    ExceptionStatus,
    PRIORITY_RANK,
)
from app.models.packing import (
    PackingJob,
    PackingItem,
    PhotoEvidence,
    Seal,
    PackingEvent,
    PackingJobStatus,
    PackingItemStatus,
    WorkflowType,
    PhotoType,
    SealType,
    PackingEventType,
)
from app.models.handover import (
    Rider,
    Handover,
    LMSShipment,
    LMSRetryEntry,
    VehicleType,
    RiderAvailability,
    HandoverStatus,
    LMSSyncStatus,
    LMSShipmentStatus,
    LMSRetryOperation,
    LMSRetryStatus,
)

__all__ = [
    # Staff directory
    "User",
    "UserRole",
    "UserAvailability",
    "Role",
    "Permission",
    "RolePermission",
    # Orders
    "Order",
    # Picking
    "PickingWave",
    "PicklistItem",
    "PickingException",
    "WaveStatus",
    "WavePriority",
    "PicklistItemStatus",
    "ExceptionType",
    "ExceptionSeverity",
    "ExceptionStatus",
    "PRIORITY_RANK",
    # Packing
    "PackingJob",
    "PackingItem",
    "PhotoEvidence",
    "Seal",
    "PackingEvent",
    "PackingJobStatus",
    "PackingItemStatus",
    "WorkflowType",
    "PhotoType",
    "SealType",
    "PackingEventType",
    # Handover / LMS
    "Rider",
    "Handover",
    "LMSShipment",
    "LMSRetryEntry",
    "VehicleType",
    "RiderAvailability",
    "HandoverStatus",
    "LMSSyncStatus",
    "LMSShipmentStatus",
    "LMSRetryOperation",
    "LMSRetryStatus",
]
