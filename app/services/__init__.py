# Services module
from app.services.wave_service import WaveService
from app.services.picking_service import PickingService
from app.services.packing_service import PackingService
from app.services.sla_service import SLAService
from app.services.handover_service import HandoverService

# LMS integration
from app.services.lms_client import LMSClient, get_lms_client
from app.services.lms_sync_service import LMSSyncService

__all__ = [
    "WaveService",
    "PickingService",
    "PackingService",
    "SLAService",
    "HandoverService",
    # LMS
    "LMSClient",
    "get_lms_client",
    "LMSSyncService",
]
