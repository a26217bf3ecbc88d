"""
Tests for SLA bucketing.

The bucket functions take ``now`` explicitly, so these are evaluated at a
fixed instant.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.services import sla_service
from app.services.sla_service import (
    AT_RISK, BREACHED, ON_TRACK, SLAService, evaluate_deadline, percentage, summarize_jobs,
    summarize_waves, wave_bucket,
)
from app.services.packing_service import PackingService
from app.models.picking import WaveStatus
from factories import add_wave, packed_job

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _in(minutes=0, hours=0):
    return NOW + timedelta(minutes=minutes, hours=hours)


class TestMinuteBuckets:
    def test_ten_minutes_is_at_risk_and_critical(self):
        sla = evaluate_deadline(_in(minutes=10), NOW)
        assert sla.status == AT_RISK
        assert sla.is_critical is True

    def test_fourteen_minutes_is_critical(self):
        assert evaluate_deadline(_in(minutes=14), NOW).is_critical is True

    def test_twenty_minutes_is_at_risk_not_critical(self):
        sla = evaluate_deadline(_in(minutes=20), NOW)
        assert sla.status == AT_RISK
        assert sla.is_critical is False

    def test_thirty_minutes_is_still_at_risk(self):
        assert evaluate_deadline(_in(minutes=30), NOW).status == AT_RISK

    def test_past_deadline_is_breached(self):
        sla = evaluate_deadline(_in(minutes=-10), NOW)
        assert sla.status == BREACHED
        assert sla.remaining_minutes == -10
        assert sla.is_critical is False

    def test_deadline_now_is_breached(self):
        assert evaluate_deadline(NOW, NOW).status == BREACHED

    def test_five_hours_is_on_track(self):
        sla = evaluate_deadline(_in(hours=5), NOW)
        assert sla.status == ON_TRACK
        assert sla.remaining_minutes == 300


class TestWaveBuckets:
    @pytest.mark.parametrize("hours,expected", [
        (-0.01, "breached"),
        (0, "atRisk"),
        (1.99, "atRisk"),
        (2, "onTime"),
        (30, "onTime"),
    ])
    def test_boundaries(self, hours, expected):
        assert wave_bucket(hours) == expected

    def test_summary_counts_and_percentages(self):
        waves = [
            SimpleNamespace(id=i, wave_number=f"W-{i}", status="ASSIGNED", priority="MEDIUM",
                            sla_deadline=deadline)
            for i, deadline in enumerate([_in(hours=-1), _in(minutes=30), _in(hours=3), _in(hours=4)])
        ]

        summary = summarize_waves(waves, NOW)

        assert (summary["breached"], summary["at_risk"], summary["on_time"]) == (1, 1, 2)
        assert summary["on_time_percentage"] == 50
        assert summary["breached_percentage"] == 25
        assert summary["waves"][1]["hours_to_deadline"] == 0.5


class TestSummaries:
    def test_empty_set_has_zero_percentages(self):
        summary = summarize_jobs([], NOW)
        assert summary["total_jobs"] == 0
        assert summary["on_track_percentage"] == 0
        assert summary["average_remaining_time"] == 0

        waves = summarize_waves([], NOW)
        assert waves["total"] == 0
        assert waves["on_time_percentage"] == 0

    def test_percentage_rounds(self):
        assert percentage(2, 3) == 67
        assert percentage(1, 0) == 0

    def test_job_summary(self):
        jobs = [
            SimpleNamespace(id=1, job_number="PKG-1", status="PENDING", sla_deadline=_in(minutes=10)),
            SimpleNamespace(id=2, job_number="PKG-2", status="PENDING", sla_deadline=_in(minutes=25)),
            SimpleNamespace(id=3, job_number="PKG-3", status="PENDING", sla_deadline=_in(minutes=-5)),
            SimpleNamespace(id=4, job_number="PKG-4", status="PENDING", sla_deadline=_in(hours=2)),
        ]

        summary = summarize_jobs(jobs, NOW)

        assert summary["at_risk"] == 2
        assert summary["critical_jobs"] == 1
        assert summary["breached"] == 1
        assert summary["on_track"] == 1
        assert summary["average_remaining_time"] == round((10 + 25 - 5 + 120) / 4)


@pytest.mark.asyncio
class TestSLAService:

    async def test_packing_report_excludes_closed_jobs(self, test_db):
        await packed_job(test_db)
        wave, _ = await add_wave(test_db, [("SKU-C", "C1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)
        open_job = (await PackingService(test_db).start_packing(wave.id))["job"]
        open_job.status = "CANCELLED"
        await test_db.commit()

        summary = await SLAService(test_db).packing_sla_status()

        # AWAITING_HANDOVER is still open for SLA purposes; CANCELLED is not
        assert summary["total_jobs"] == 1
        assert summary["jobs"][0]["status"] == "AWAITING_HANDOVER"

    async def test_wave_report_for_single_wave(self, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1)])
        await add_wave(test_db, [("SKU-B", "B1", 1)])

        summary = await SLAService(test_db).wave_sla_status(wave.id)

        assert summary["total"] == 1
        assert summary["waves"][0]["id"] == wave.id


def test_remaining_minutes_rounds_to_nearest():
    assert sla_service.remaining_minutes(NOW + timedelta(seconds=89), NOW) == 1
    assert sla_service.remaining_minutes(NOW + timedelta(seconds=91), NOW) == 2
