"""Tests for the LMS retry background job."""

import importlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app import database
from app.config import settings
from app.models.handover import LMSRetryEntry, LMSRetryStatus
from app.services import lms_sync_service as lms_sync_module
from app.services.handover_service import HandoverService
from factories import add_rider, packed_job

# app.jobs re-exports the scheduler instance under the submodule name
scheduler_module = importlib.import_module("app.jobs.scheduler")


def test_scheduler_not_started_when_disabled(monkeypatch):
    monkeypatch.setattr(settings, "LMS_RETRY_WORKER_ENABLED", False)

    scheduler_module.start_scheduler()

    assert scheduler_module.scheduler.running is False
    assert scheduler_module.get_job_status() == []


@pytest.mark.asyncio
async def test_retry_job_replays_due_entries(test_db, fake_lms, monkeypatch):
    fake_lms.status_code = 500
    client = fake_lms.client(retry_attempts=0)
    job = await packed_job(test_db)
    rider = await add_rider(test_db, "R-1")
    handover = (await HandoverService(test_db, client).assign_rider(job.id, rider.id))["handover"]

    entry = (await test_db.execute(select(LMSRetryEntry))).scalar_one()
    entry.next_attempt_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    await test_db.commit()

    @asynccontextmanager
    async def session_override():
        yield test_db
        await test_db.commit()

    monkeypatch.setattr(database, "get_db_session", session_override)
    monkeypatch.setattr(lms_sync_module, "get_lms_client", lambda: client)
    fake_lms.status_code = 201

    await scheduler_module.process_lms_retry_queue()

    await test_db.refresh(entry)
    await test_db.refresh(handover)
    assert entry.status == LMSRetryStatus.DONE.value
    assert handover.lms_sync_status == "SYNCED"


@pytest.mark.asyncio
async def test_retry_job_logs_and_swallows_errors(monkeypatch, caplog):
    @asynccontextmanager
    async def broken_session():
        raise RuntimeError("database down")
        yield

    monkeypatch.setattr(database, "get_db_session", broken_session)
    caplog.set_level(logging.ERROR, logger="app.jobs.scheduler")

    await scheduler_module.process_lms_retry_queue()

    assert "LMS retry job failed: database down" in caplog.text
