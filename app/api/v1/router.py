from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Picking waves & pick execution
    picking,
    # Packing jobs, evidence & seals
    packing,
    # Rider handover & LMS sync
    handover,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Picking ====================
api_router.include_router(
    picking.router,
    prefix="/picking",
    tags=["Picking"]
)

# ==================== Packing ====================
api_router.include_router(
    packing.router,
    prefix="/packing",
    tags=["Packing"]
)

# ==================== Handover ====================
api_router.include_router(
    handover.router,
    prefix="/handover",
    tags=["Handover"]
)
