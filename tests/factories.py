"""Seed helpers shared by the test modules."""

import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.models.handover import Rider, RiderAvailability
from app.models.order import Order
from app.models.picking import PickingWave, PicklistItem, WaveStatus
from app.models.user import User, UserRole
from app.services.packing_service import PackingService

PICKER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")


async def add_picker(db, role, email, user_id=None, created_at=None, **kwargs):
    user = User(
        id=user_id or uuid.uuid4(),
        email=email,
        first_name=email.split("@")[0].title(),
        created_at=created_at or datetime.now(timezone.utc),
        **kwargs,
    )
    db.add(user)
    await db.flush()
    db.add(UserRole(user_id=user.id, role_id=role.id))
    await db.commit()
    return user


async def add_order(db, number, cart):
    order = Order(
        order_number=number,
        cart=cart if isinstance(cart, str) or cart is None else json.dumps(cart),
        order_amount=Decimal("100.00"),
    )
    db.add(order)
    await db.commit()
    return order


async def add_rider(db, code, rating="4.50", deliveries=0, availability=RiderAvailability.AVAILABLE.value, **kwargs):
    rider = Rider(
        rider_code=code,
        name=f"Rider {code}",
        phone="+910000000000",
        rating=Decimal(rating),
        total_deliveries=deliveries,
        availability_status=availability,
        **kwargs,
    )
    db.add(rider)
    await db.commit()
    return rider


async def add_wave(
    db,
    lines,
    status=WaveStatus.ASSIGNED.value,
    picker_id=PICKER_ID,
    priority="MEDIUM",
    sla_deadline=None,
    picked=False,
):
    """
    Wave with one picklist item per (sku, bin, quantity) line.

    ``picked=True`` seeds fully picked items (for packing tests).
    """
    now = datetime.now(timezone.utc)
    wave = PickingWave(
        wave_number=f"W-TEST-{uuid.uuid4().hex[:8]}",
        status=status,
        priority=priority,
        picker_id=picker_id,
        total_orders=1,
        total_items=sum(q for _, _, q in lines),
        estimated_duration=2,
        sla_deadline=sla_deadline or now + timedelta(hours=24),
        assigned_at=now if picker_id else None,
    )
    db.add(wave)
    await db.flush()

    order_id = uuid.uuid4()
    items = []
    for sequence, (sku, bin_location, quantity) in enumerate(lines, start=1):
        items.append(PicklistItem(
            wave_id=wave.id,
            order_id=order_id,
            sku=sku,
            product_name=f"Product {sku}",
            bin_location=bin_location,
            quantity=quantity,
            picked_quantity=quantity if picked else 0,
            status="PICKED" if picked else "PENDING",
            scan_sequence=sequence,
        ))
    db.add_all(items)
    await db.commit()
    return wave, items


async def packed_job(db, lines=(("SKU-A", "A1", 2), ("SKU-B", "B1", 1))):
    """Completed wave turned into a packing job with every line verified and packed."""
    wave, _ = await add_wave(db, list(lines), status=WaveStatus.COMPLETED.value, picked=True)
    service = PackingService(db)
    started = await service.start_packing(wave.id)
    job = started["job"]
    for item in started["items"]:
        await service.verify_item(job.id, item.order_id, item.sku, item.quantity)
    await service.complete_packing(job.id)
    return job
