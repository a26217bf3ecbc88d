"""
Tests for the LMS client and the sync engine.

Covers:
  - Request signing and the in-process 5xx retry loop
  - Error mapping (4xx, transport failures)
  - Persisted retry ledger replay, backoff and exhaustion
"""

import hashlib
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select

from app.models.handover import HandoverStatus, LMSRetryEntry, LMSRetryOperation, LMSRetryStatus
from app.services.handover_service import HandoverService
from app.services.lms_client import LMSClient, ShipmentData, ShipmentItem
from app.services.lms_sync_service import LMSSyncService, retry_backoff
from factories import add_rider, packed_job


def _shipment():
    return ShipmentData(
        tracking_number="TRK-1",
        manifest_number="MF-1",
        origin="Warehouse",
        destination="Customer",
        items=[ShipmentItem(sku="SKU-A", quantity=2, description="Apples")],
    )


@pytest.mark.asyncio
class TestLMSClient:

    async def test_signed_headers(self, fake_lms, lms_client):
        response = await lms_client.create_shipment(_shipment())

        assert response.success is True
        assert response.lms_reference == "LMS-1"

        request = fake_lms.requests[0]
        body = request.content.decode()
        timestamp = request.headers["X-Timestamp"]
        expected = hashlib.sha256(f"{body}{timestamp}test-api-key".encode()).hexdigest()
        assert request.headers["X-API-Key"] == "test-api-key"
        assert request.headers["X-Signature"] == expected
        assert json.loads(body)["items"] == [{"sku": "SKU-A", "quantity": 2, "description": "Apples"}]

    async def test_get_requests_are_unsigned(self, fake_lms, lms_client):
        await lms_client.get_shipment("LMS-9")

        request = fake_lms.requests[0]
        assert "X-Signature" not in request.headers
        assert request.url.path == "/api/shipments/LMS-9"

    async def test_server_errors_retried_then_reported(self, fake_lms):
        fake_lms.status_code = 500
        client = fake_lms.client(retry_attempts=2)

        response = await client.create_shipment(_shipment())

        assert response.success is False
        assert response.status_code == 500
        assert response.error == "LMS unavailable"
        assert len(fake_lms.requests) == 3
        assert client.get_retry_queue_status() == []

    async def test_client_errors_not_retried(self, fake_lms):
        fake_lms.status_code = 422
        client = fake_lms.client(retry_attempts=3)

        response = await client.update_shipment_status("LMS-1", "CONFIRMED")

        assert response.success is False
        assert response.status_code == 422
        assert len(fake_lms.requests) == 1

    async def test_transport_error_maps_to_status_zero(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = LMSClient(
            base_url="http://lms.test/api", api_key="k", retry_attempts=1, retry_delay_ms=0,
            transport=httpx.MockTransport(handler),
        )

        response = await client.create_shipment(_shipment())

        assert response.success is False
        assert response.status_code == 0
        assert response.error == "No response from LMS"

    async def test_retry_map_cleared_after_transport_error_mid_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(500, json={"message": "LMS unavailable"})
            raise httpx.ConnectTimeout("timed out", request=request)

        client = LMSClient(
            base_url="http://lms.test/api", api_key="k", retry_attempts=3, retry_delay_ms=0,
            transport=httpx.MockTransport(handler),
        )

        response = await client.create_shipment(_shipment())

        assert response.success is False
        assert response.status_code == 0
        assert len(calls) == 2
        assert client.get_retry_queue_status() == []

    async def test_identical_request_gets_full_budget_again(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"message": "LMS unavailable"})

        client = LMSClient(
            base_url="http://lms.test/api", api_key="k", retry_attempts=2, retry_delay_ms=0,
            transport=httpx.MockTransport(handler),
        )

        await client.update_shipment_status("LMS-1", "CONFIRMED")
        await client.update_shipment_status("LMS-1", "CONFIRMED")

        assert len(calls) == 6

    async def test_health_check_false_when_down(self, fake_lms):
        def handler(request):
            return httpx.Response(404)

        client = LMSClient(base_url="http://lms.test/api", api_key="k", transport=httpx.MockTransport(handler))

        assert await client.health_check() is False

    async def test_status_update_keeps_reference(self, lms_client, fake_lms):
        response = await lms_client.update_shipment_status("LMS-7", "IN_TRANSIT", {"location": "Hub"})

        assert response.lms_reference == "LMS-7"
        assert json.loads(fake_lms.requests[0].content) == {"status": "IN_TRANSIT", "location": "Hub"}


class TestBackoff:
    def test_doubles_per_attempt(self):
        assert retry_backoff(1, 60) == timedelta(seconds=60)
        assert retry_backoff(2, 60) == timedelta(seconds=120)
        assert retry_backoff(4, 60) == timedelta(seconds=480)

    def test_zero_attempts_uses_base(self):
        assert retry_backoff(0, 30) == timedelta(seconds=30)


@pytest.mark.asyncio
class TestSyncEngine:

    async def _failed_handover(self, db, fake_lms):
        fake_lms.status_code = 500
        client = fake_lms.client(retry_attempts=0)
        job = await packed_job(db)
        rider = await add_rider(db, "R-1")
        result = await HandoverService(db, client).assign_rider(job.id, rider.id)
        return result["handover"], client

    async def test_failure_records_one_attempt_and_ledger_entry(self, test_db, fake_lms):
        handover, _ = await self._failed_handover(test_db, fake_lms)

        assert handover.lms_sync_status == "FAILED"
        assert handover.lms_sync_attempts == 1
        entry = (await test_db.execute(select(LMSRetryEntry))).scalar_one()
        assert entry.operation == LMSRetryOperation.CREATE_SHIPMENT.value
        assert entry.attempts == 0
        assert entry.next_attempt_at > datetime.now(timezone.utc)

    async def test_enqueue_is_idempotent_for_create(self, test_db, fake_lms):
        handover, client = await self._failed_handover(test_db, fake_lms)
        service = LMSSyncService(test_db, client)

        again = await service.enqueue(handover.id, LMSRetryOperation.CREATE_SHIPMENT)
        await test_db.commit()

        entries = (await test_db.execute(select(LMSRetryEntry))).scalars().all()
        assert [e.id for e in entries] == [again.id]

    async def test_entries_not_due_are_skipped(self, test_db, fake_lms):
        _, client = await self._failed_handover(test_db, fake_lms)

        summary = await LMSSyncService(test_db, client).process_retry_queue()

        assert summary["processed"] == 0

    async def test_replay_success_marks_synced(self, test_db, fake_lms):
        handover, client = await self._failed_handover(test_db, fake_lms)
        fake_lms.status_code = 201

        summary = await LMSSyncService(test_db, client).process_retry_queue(
            now=datetime.now(timezone.utc) + timedelta(hours=1)
        )

        assert summary == {"processed": 1, "succeeded": 1, "rescheduled": 0, "exhausted": 0}
        entry = (await test_db.execute(select(LMSRetryEntry))).scalar_one()
        assert entry.status == LMSRetryStatus.DONE.value
        assert entry.attempts == 1
        await test_db.refresh(handover)
        assert handover.lms_sync_status == "SYNCED"
        assert handover.tracking_number is not None

    async def test_replay_failure_reschedules_with_backoff(self, test_db, fake_lms):
        handover, client = await self._failed_handover(test_db, fake_lms)
        later = datetime.now(timezone.utc) + timedelta(hours=1)

        summary = await LMSSyncService(test_db, client).process_retry_queue(now=later)

        assert summary["rescheduled"] == 1
        entry = (await test_db.execute(select(LMSRetryEntry))).scalar_one()
        assert entry.status == LMSRetryStatus.PENDING.value
        assert entry.attempts == 1
        assert entry.next_attempt_at == later + retry_backoff(2)
        await test_db.refresh(handover)
        assert handover.lms_sync_status == "RETRY"
        assert handover.lms_sync_attempts == 2

    async def test_replay_exhaustion_marks_failed(self, test_db, fake_lms):
        handover, client = await self._failed_handover(test_db, fake_lms)
        entry = (await test_db.execute(select(LMSRetryEntry))).scalar_one()
        entry.max_attempts = 1
        await test_db.commit()

        summary = await LMSSyncService(test_db, client).process_retry_queue(
            now=datetime.now(timezone.utc) + timedelta(hours=1)
        )

        assert summary["exhausted"] == 1
        await test_db.refresh(entry)
        await test_db.refresh(handover)
        assert entry.status == LMSRetryStatus.EXHAUSTED.value
        assert entry.last_error == "LMS unavailable"
        assert handover.lms_sync_status == "FAILED"

    async def test_cancelled_handover_shipment_retry_is_dropped(self, test_db, fake_lms):
        handover, client = await self._failed_handover(test_db, fake_lms)
        await HandoverService(test_db, client).update_handover_status(
            handover.id, HandoverStatus.CANCELLED, {"reason": "customer cancelled"}
        )
        fake_lms.status_code = 201
        requests_before = len(fake_lms.requests)

        summary = await LMSSyncService(test_db, client).process_retry_queue(
            now=datetime.now(timezone.utc) + timedelta(hours=1)
        )

        assert summary["exhausted"] == 1
        assert len(fake_lms.requests) == requests_before
        entry = (await test_db.execute(select(LMSRetryEntry))).scalar_one()
        assert entry.status == LMSRetryStatus.EXHAUSTED.value
        assert entry.last_error == "Handover cancelled"
        await test_db.refresh(handover)
        assert handover.tracking_number is None

    async def test_push_status_without_tracking_number_is_noop(self, test_db, fake_lms):
        handover, client = await self._failed_handover(test_db, fake_lms)
        requests_before = len(fake_lms.requests)

        result = await LMSSyncService(test_db, client).push_status(handover, "CONFIRMED")

        assert result is None
        assert len(fake_lms.requests) == requests_before

    async def test_status_replay_delivers_queued_update(self, test_db, fake_lms):
        client = fake_lms.client(retry_attempts=0)
        job = await packed_job(test_db)
        rider = await add_rider(test_db, "R-1")
        handover = (await HandoverService(test_db, client).assign_rider(job.id, rider.id))["handover"]
        fake_lms.status_code = 500
        sync = LMSSyncService(test_db, client)
        assert await sync.push_status(handover, "CONFIRMED", {"note": "gate 3"}) is False

        fake_lms.status_code = 200
        summary = await sync.process_retry_queue(now=datetime.now(timezone.utc) + timedelta(hours=1))

        assert summary["succeeded"] == 1
        last = fake_lms.requests[-1]
        assert last.method == "PUT"
        assert json.loads(last.content) == {"status": "CONFIRMED", "note": "gate 3"}
