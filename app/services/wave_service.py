"""
Wave generation and assignment service.

Batches orders into picking waves, expands each order's cart into picklist
items, and distributes unassigned waves across available pickers.
"""
import json
import math
import random
import time
import uuid
from datetime import datetime, timezone, timedelta
from typing import Optional, List, Dict, Any, Tuple
import logging

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ValidationError, NotFoundError, ConflictError
from app.core.permissions import PICKING_PERMISSIONS
from app.models.order import Order
from app.models.picking import (
    PickingWave, PicklistItem, WaveStatus, WavePriority, PRIORITY_RANK
)
from app.models.user import User, UserRole, UserAvailability
from app.models.role import Role
from app.models.permission import Permission, RolePermission

logger = logging.getLogger(__name__)

DEFAULT_SKU = "SKU001"
DEFAULT_PRODUCT_NAME = "Product"
DEFAULT_BIN_LOCATION = "A1-B2-C3"
FEFO_SHELF_LIFE_DAYS = 7
MINUTES_PER_ORDER = 2

# Waves a picker is currently working on count against the cap
ACTIVE_WAVE_STATUSES = (WaveStatus.ASSIGNED.value, WaveStatus.PICKING.value)


def priority_order():
    """ORDER BY expression: URGENT > HIGH > MEDIUM > LOW."""
    return case(PRIORITY_RANK, value=PickingWave.priority, else_=0).desc()


def parse_cart(order: Order) -> List[Dict[str, Any]]:
    """
    Parse an order's cart JSON into a list of line dicts.

    Malformed or non-list carts are treated as empty.
    """
    if not order.cart:
        return []
    try:
        cart = json.loads(order.cart) if isinstance(order.cart, str) else order.cart
    except (TypeError, ValueError):
        logger.warning(f"Order {order.order_number} has malformed cart JSON, treating as empty")
        return []

    if not isinstance(cart, list):
        logger.warning(f"Order {order.order_number} cart is not a list, treating as empty")
        return []

    return [line for line in cart if isinstance(line, dict)]


def line_quantity(line: Dict[str, Any]) -> int:
    raw = line.get("amount") or line.get("quantity")
    try:
        quantity = int(raw)
    except (TypeError, ValueError):
        return 1
    return quantity if quantity > 0 else 1


class WaveService:
    """Wave generation, assignment and listing."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # GENERATION
    # ========================================================================

    async def generate_waves(
        self,
        order_ids: List[uuid.UUID],
        priority: WavePriority = WavePriority.MEDIUM,
        max_orders_per_wave: int = 20,
        route_optimization: bool = True,
        fefo_required: bool = False,
        tags_and_bags: bool = False,
    ) -> List[PickingWave]:
        """
        Batch orders into waves of at most ``max_orders_per_wave``.

        All orders must exist; nothing is written otherwise.
        """
        if not order_ids:
            raise ValidationError("Order IDs array is required")
        if max_orders_per_wave < 1:
            raise ValidationError("maxOrdersPerWave must be at least 1")

        # Preserve request order, drop repeats
        unique_ids = list(dict.fromkeys(order_ids))

        result = await self.db.execute(select(Order).where(Order.id.in_(unique_ids)))
        orders_by_id = {order.id: order for order in result.scalars().all()}

        missing = [str(oid) for oid in unique_ids if oid not in orders_by_id]
        if missing:
            raise NotFoundError("Some orders not found", details={"missingOrderIds": missing})

        orders = [orders_by_id[oid] for oid in unique_ids]
        priority_value = priority.value if isinstance(priority, WavePriority) else str(priority)

        now = datetime.now(timezone.utc)
        epoch_ms = int(time.time() * 1000)
        sla_deadline = now + timedelta(hours=settings.WAVE_SLA_HOURS)

        waves: List[PickingWave] = []
        for chunk_index, start in enumerate(range(0, len(orders), max_orders_per_wave), start=1):
            chunk = orders[start:start + max_orders_per_wave]

            wave = PickingWave(
                wave_number=f"W{epoch_ms}-{chunk_index}",
                status=WaveStatus.GENERATED.value,
                priority=priority_value,
                total_orders=len(chunk),
                total_items=0,
                estimated_duration=math.ceil(len(chunk) * MINUTES_PER_ORDER),
                sla_deadline=sla_deadline,
                route_optimization=route_optimization,
                fefo_required=fefo_required,
                tags_and_bags=tags_and_bags,
            )
            self.db.add(wave)
            await self.db.flush()

            items = self._build_picklist(wave, chunk, fefo_required, epoch_ms, now)
            self.db.add_all(items)
            wave.total_items = sum(item.quantity for item in items)

            waves.append(wave)

        await self.db.commit()
        for wave in waves:
            await self.db.refresh(wave)

        logger.info(
            f"Generated {len(waves)} waves for {len(orders)} orders "
            f"(max {max_orders_per_wave} per wave)"
        )
        return waves

    def _build_picklist(
        self,
        wave: PickingWave,
        orders: List[Order],
        fefo_required: bool,
        epoch_ms: int,
        now: datetime,
    ) -> List[PicklistItem]:
        items: List[PicklistItem] = []
        for order in orders:
            for line in parse_cart(order):
                item = PicklistItem(
                    wave_id=wave.id,
                    order_id=order.id,
                    sku=line.get("sku") or DEFAULT_SKU,
                    product_name=line.get("productName") or line.get("product_name") or DEFAULT_PRODUCT_NAME,
                    bin_location=line.get("binLocation") or line.get("bin_location") or DEFAULT_BIN_LOCATION,
                    quantity=line_quantity(line),
                    picked_quantity=0,
                    status="PENDING",
                    scan_sequence=random.randint(1, 100),
                )
                if fefo_required:
                    item.fefo_batch = f"BATCH-{epoch_ms}"
                    item.expiry_date = now + timedelta(days=FEFO_SHELF_LIFE_DAYS)
                items.append(item)
        return items

    # ========================================================================
    # ASSIGNMENT
    # ========================================================================

    async def get_available_pickers(self) -> List[User]:
        """Active, available staff holding any picking permission."""
        stmt = (
            select(User)
            .join(UserRole, UserRole.user_id == User.id)
            .join(Role, Role.id == UserRole.role_id)
            .join(RolePermission, RolePermission.role_id == Role.id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                User.is_active == True,  # noqa: E712
                User.availability_status == UserAvailability.AVAILABLE.value,
                Role.is_active == True,  # noqa: E712
                Permission.code.in_(PICKING_PERMISSIONS),
            )
            .distinct()
            .order_by(User.created_at.asc(), User.email.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _active_wave_counts(self, picker_ids: List[uuid.UUID]) -> Dict[uuid.UUID, int]:
        stmt = (
            select(PickingWave.picker_id, func.count(PickingWave.id))
            .where(
                PickingWave.picker_id.in_(picker_ids),
                PickingWave.status.in_(ACTIVE_WAVE_STATUSES),
            )
            .group_by(PickingWave.picker_id)
        )
        result = await self.db.execute(stmt)
        return {picker_id: count for picker_id, count in result.all()}

    async def assign_waves(self, max_waves_per_picker: int = 3) -> Tuple[List[Dict[str, Any]], str]:
        """
        Round-robin unassigned waves over available pickers.

        A single running index walks the picker list; a picker at capacity is
        skipped for that wave and the index still advances, so a pass can
        leave waves unassigned while other pickers have room.
        """
        pickers = await self.get_available_pickers()
        if not pickers:
            raise NotFoundError("No available pickers found")

        result = await self.db.execute(
            select(PickingWave)
            .where(PickingWave.status == WaveStatus.GENERATED.value)
            .order_by(priority_order(), PickingWave.sla_deadline.asc())
        )
        waves = result.scalars().all()
        if not waves:
            return [], "No unassigned waves found"

        active_counts = await self._active_wave_counts([p.id for p in pickers])
        now = datetime.now(timezone.utc)
        assignments: List[Dict[str, Any]] = []

        for index, wave in enumerate(waves):
            picker = pickers[index % len(pickers)]
            if active_counts.get(picker.id, 0) >= max_waves_per_picker:
                continue

            wave.status = WaveStatus.ASSIGNED.value
            wave.picker_id = picker.id
            wave.assigned_at = now
            active_counts[picker.id] = active_counts.get(picker.id, 0) + 1

            assignments.append({
                "wave_id": wave.id,
                "wave_number": wave.wave_number,
                "picker_id": picker.id,
                "picker_email": picker.email,
                "assigned_at": now,
            })

        await self.db.commit()

        message = f"Assigned {len(assignments)} waves to pickers"
        logger.info(message)
        return assignments, message

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def get_wave(self, wave_id: uuid.UUID) -> PickingWave:
        result = await self.db.execute(select(PickingWave).where(PickingWave.id == wave_id))
        wave = result.scalar_one_or_none()
        if not wave:
            raise NotFoundError("Wave not found")
        return wave

    async def list_waves(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        query = select(PickingWave)
        count_query = select(func.count(PickingWave.id))

        if status:
            query = query.where(PickingWave.status == status)
            count_query = count_query.where(PickingWave.status == status)
        if priority:
            query = query.where(PickingWave.priority == priority)
            count_query = count_query.where(PickingWave.priority == priority)

        total = (await self.db.execute(count_query)).scalar() or 0

        skip = (page - 1) * limit
        query = (
            query.order_by(priority_order(), PickingWave.sla_deadline.asc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(query)
        waves = result.scalars().all()

        return {
            "items": waves,
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total > 0 else 1,
        }

    async def get_wave_items(self, wave_id: uuid.UUID) -> List[PicklistItem]:
        await self.get_wave(wave_id)
        result = await self.db.execute(
            select(PicklistItem)
            .where(PicklistItem.wave_id == wave_id)
            .order_by(PicklistItem.scan_sequence.asc(), PicklistItem.created_at.asc())
        )
        return list(result.scalars().all())

    async def cancel_wave(self, wave_id: uuid.UUID, reason: str) -> PickingWave:
        wave = await self.get_wave(wave_id)

        if wave.status in (WaveStatus.COMPLETED.value, WaveStatus.CANCELLED.value):
            raise ConflictError(f"Cannot cancel wave in {wave.status} status")

        wave.status = WaveStatus.CANCELLED.value
        wave.cancelled_at = datetime.now(timezone.utc)
        wave.cancellation_reason = reason

        await self.db.commit()
        await self.db.refresh(wave)

        logger.info(f"Cancelled wave {wave.wave_number}: {reason}")
        return wave
