"""
SLA tracking for picking waves and packing jobs.

The bucket functions are pure and take ``now`` explicitly so callers and
tests can evaluate them at any instant. ``SLAService`` loads open records
and summarises them.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Dict, Any
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.picking import PickingWave
from app.models.packing import PackingJob, PackingJobStatus

logger = logging.getLogger(__name__)


# Minute buckets (packing jobs, handovers)
BREACHED = "BREACHED"
AT_RISK = "AT_RISK"
ON_TRACK = "ON_TRACK"

AT_RISK_MINUTES = 30
CRITICAL_MINUTES = 15

# Hour buckets (waves)
WAVE_BREACHED = "breached"
WAVE_AT_RISK = "atRisk"
WAVE_ON_TIME = "onTime"

WAVE_AT_RISK_HOURS = 2


@dataclass
class MinuteSLA:
    remaining_minutes: int
    status: str
    is_critical: bool


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def remaining_minutes(deadline: datetime, now: Optional[datetime] = None) -> int:
    """Minutes until ``deadline``, rounded to the nearest minute (negative once passed)."""
    delta = deadline - _now(now)
    return round(delta.total_seconds() / 60)


def minute_bucket(remaining: int) -> MinuteSLA:
    """Bucket a remaining-minutes value: <=0 breached, <=30 at risk (<=15 critical)."""
    if remaining <= 0:
        return MinuteSLA(remaining, BREACHED, False)
    if remaining <= AT_RISK_MINUTES:
        return MinuteSLA(remaining, AT_RISK, remaining <= CRITICAL_MINUTES)
    return MinuteSLA(remaining, ON_TRACK, False)


def evaluate_deadline(deadline: datetime, now: Optional[datetime] = None) -> MinuteSLA:
    return minute_bucket(remaining_minutes(deadline, now))


def hours_to_deadline(deadline: datetime, now: Optional[datetime] = None) -> float:
    delta = deadline - _now(now)
    return round(delta.total_seconds() / 3600, 2)


def wave_bucket(hours: float) -> str:
    if hours < 0:
        return WAVE_BREACHED
    if hours < WAVE_AT_RISK_HOURS:
        return WAVE_AT_RISK
    return WAVE_ON_TIME


def percentage(part: int, total: int) -> int:
    """Whole-number percentage; 0 for an empty set."""
    if total <= 0:
        return 0
    return round(part / total * 100)


def summarize_waves(waves: Iterable[PickingWave], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = _now(now)
    entries: List[Dict[str, Any]] = []
    counts = {WAVE_ON_TIME: 0, WAVE_AT_RISK: 0, WAVE_BREACHED: 0}

    for wave in waves:
        # Bucket on the unrounded value so -0.001h still counts as breached
        raw_hours = (wave.sla_deadline - now).total_seconds() / 3600
        bucket = wave_bucket(raw_hours)
        counts[bucket] += 1
        entries.append({
            "id": wave.id,
            "wave_number": wave.wave_number,
            "status": wave.status,
            "priority": wave.priority,
            "sla_deadline": wave.sla_deadline,
            "sla_status": bucket,
            "hours_to_deadline": round(raw_hours, 2),
        })

    total = len(entries)
    return {
        "total": total,
        "on_time": counts[WAVE_ON_TIME],
        "at_risk": counts[WAVE_AT_RISK],
        "breached": counts[WAVE_BREACHED],
        "on_time_percentage": percentage(counts[WAVE_ON_TIME], total),
        "at_risk_percentage": percentage(counts[WAVE_AT_RISK], total),
        "breached_percentage": percentage(counts[WAVE_BREACHED], total),
        "waves": entries,
    }


def summarize_jobs(jobs: Iterable[PackingJob], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = _now(now)
    entries: List[Dict[str, Any]] = []
    on_track = at_risk = breached = critical = 0
    total_remaining = 0

    for job in jobs:
        sla = evaluate_deadline(job.sla_deadline, now)
        total_remaining += sla.remaining_minutes
        if sla.status == BREACHED:
            breached += 1
        elif sla.status == AT_RISK:
            at_risk += 1
            if sla.is_critical:
                critical += 1
        else:
            on_track += 1
        entries.append({
            "id": job.id,
            "job_number": job.job_number,
            "status": job.status,
            "sla_deadline": job.sla_deadline,
            "remaining_minutes": sla.remaining_minutes,
            "sla_status": sla.status,
            "is_critical": sla.is_critical,
        })

    total = len(entries)
    return {
        "total_jobs": total,
        "on_track": on_track,
        "at_risk": at_risk,
        "breached": breached,
        "critical_jobs": critical,
        "average_remaining_time": round(total_remaining / total) if total else 0,
        "on_track_percentage": percentage(on_track, total),
        "at_risk_percentage": percentage(at_risk, total),
        "breached_percentage": percentage(breached, total),
        "jobs": entries,
    }


class SLAService:
    """Read-side SLA reports over waves and packing jobs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def wave_sla_status(
        self,
        wave_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        stmt = select(PickingWave).order_by(PickingWave.sla_deadline.asc())
        if wave_id:
            stmt = stmt.where(PickingWave.id == wave_id)
        result = await self.db.execute(stmt)
        return summarize_waves(result.scalars().all(), now)

    async def packing_sla_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Open packing jobs (not COMPLETED/CANCELLED), breached ones included."""
        stmt = (
            select(PackingJob)
            .where(PackingJob.status.notin_([
                PackingJobStatus.COMPLETED.value,
                PackingJobStatus.CANCELLED.value,
            ]))
            .order_by(PackingJob.sla_deadline.asc())
        )
        result = await self.db.execute(stmt)
        return summarize_jobs(result.scalars().all(), now)
