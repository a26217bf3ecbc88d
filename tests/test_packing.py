"""
Tests for packing jobs.

Covers:
  - Starting a job from a completed wave (and the duplicate guard)
  - Line verification and progress counters
  - Completion with photo/seal evidence
  - Reassignment, status view, photo upload
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from app.config import settings
from app.core.exceptions import ConflictError, NotFoundError, StorageUnavailableError, ValidationError
from app.core.storage import PhotoStorage, StorageClient, get_photo_storage
from app.main import app
from app.models.packing import (
    PackingEvent, PackingItem, PackingJob, PackingJobStatus, PhotoEvidence, Seal,
)
from app.models.picking import WaveStatus
from app.services.packing_service import (
    PackingService, estimate_packing_minutes, generate_job_number, progress_percentage,
)
from app.services.seal_service import generate_seal
from factories import add_wave, packed_job

BASE = "/api/v1/packing"


class TestPackingHelpers:
    def test_job_number_format(self):
        number = generate_job_number()
        prefix, stamp, suffix = number.split("-")
        assert prefix == "PKG"
        assert len(suffix) == 6
        assert number == number.upper()

    def test_estimate_is_base_plus_two_per_item(self):
        assert estimate_packing_minutes(0) == 5
        assert estimate_packing_minutes(3) == 11

    def test_progress_percentage(self):
        assert progress_percentage(1, 3) == 33
        assert progress_percentage(0, 0) == 0


@pytest.mark.asyncio
class TestStartPacking:

    async def test_start_copies_picklist(self, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 2), ("SKU-B", "B1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)

        result = await PackingService(test_db).start_packing(wave.id)

        job = result["job"]
        assert job.status == PackingJobStatus.PENDING.value
        assert job.total_items == 2
        assert job.packed_items == 0
        assert job.estimated_duration == 9
        assert job.job_number.startswith("PKG-")
        assert [(i.sku, i.picked_quantity) for i in result["items"]] == [("SKU-A", 2), ("SKU-B", 1)]

        events = (await test_db.execute(select(PackingEvent))).scalars().all()
        assert [e.event_type for e in events] == ["PACKING_STARTED"]

    async def test_wave_must_be_completed(self, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1)], status=WaveStatus.PICKING.value)

        with pytest.raises(ConflictError):
            await PackingService(test_db).start_packing(wave.id)

    async def test_unknown_wave(self, test_db):
        with pytest.raises(NotFoundError):
            await PackingService(test_db).start_packing(uuid.uuid4())

    async def test_second_start_is_409(self, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)
        service = PackingService(test_db)
        await service.start_packing(wave.id)

        with pytest.raises(ConflictError) as exc:
            await service.start_packing(wave.id)

        assert exc.value.status_code == 409
        count = (await test_db.execute(select(func.count(PackingJob.id)))).scalar()
        assert count == 1

    async def test_picker_packs_moves_wave_to_packing(self, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)

        await PackingService(test_db).start_packing(
            wave.id, packer_id=uuid.uuid4(), workflow_type="PICKER_PACKS"
        )

        await test_db.refresh(wave)
        assert wave.status == WaveStatus.PACKING.value


@pytest.mark.asyncio
class TestVerifyItem:

    async def _job(self, db):
        wave, _ = await add_wave(db, [("SKU-A", "A1", 3), ("SKU-B", "B1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)
        started = await PackingService(db).start_packing(wave.id)
        return started["job"], started["items"]

    async def test_full_quantity_completes_line(self, test_db):
        job, items = await self._job(test_db)

        result = await PackingService(test_db).verify_item(job.id, items[0].order_id, "SKU-A", 3)

        assert result["item"].status == "COMPLETED"
        assert result["progress"] == {
            "total_items": 2, "packed_items": 1, "verified_items": 1, "percentage": 50,
        }

    async def test_short_quantity_is_verified_not_completed(self, test_db):
        job, items = await self._job(test_db)

        result = await PackingService(test_db).verify_item(job.id, items[0].order_id, "SKU-A", 2)

        assert result["item"].status == "VERIFIED"
        assert result["progress"]["packed_items"] == 1
        assert result["progress"]["verified_items"] == 0

    async def test_over_pack_rejected_without_changes(self, test_db):
        job, items = await self._job(test_db)

        with pytest.raises(ValidationError):
            await PackingService(test_db).verify_item(job.id, items[0].order_id, "SKU-A", 4)

        item = (await test_db.execute(
            select(PackingItem).where(PackingItem.sku == "SKU-A")
        )).scalar_one()
        assert item.packed_quantity == 0
        await test_db.refresh(job)
        assert job.packed_items == 0

    async def test_unknown_line(self, test_db):
        job, items = await self._job(test_db)

        with pytest.raises(NotFoundError):
            await PackingService(test_db).verify_item(job.id, items[0].order_id, "SKU-Z", 1)

    async def test_closed_job_rejects_verification(self, test_db):
        job = await packed_job(test_db)
        item = (await test_db.execute(
            select(PackingItem).where(PackingItem.job_id == job.id, PackingItem.sku == "SKU-A")
        )).scalar_one()

        with pytest.raises(ConflictError):
            await PackingService(test_db).verify_item(job.id, item.order_id, "SKU-A", 1)


@pytest.mark.asyncio
class TestCompletePacking:

    async def test_incomplete_lines_block_completion(self, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1), ("SKU-B", "B1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)
        service = PackingService(test_db)
        started = await service.start_packing(wave.id)
        job = started["job"]
        await service.verify_item(job.id, started["items"][0].order_id, "SKU-A", 1)

        with pytest.raises(ConflictError) as exc:
            await service.complete_packing(job.id)

        assert "1 items are not completed" in exc.value.message
        await test_db.refresh(job)
        assert job.status == PackingJobStatus.PENDING.value

    async def test_complete_records_evidence(self, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)
        service = PackingService(test_db)
        started = await service.start_packing(wave.id)
        job = started["job"]
        await service.verify_item(job.id, started["items"][0].order_id, "SKU-A", 1)
        seal = generate_seal()

        result = await service.complete_packing(
            job.id,
            photos=[{"photo_type": "POST_PACK", "photo_url": "https://cdn.test/p.jpg",
                     "photo_metadata": {"device": "TC52"}}],
            seals=[{"seal_number": seal.seal_number}],
        )

        assert result["job"].status == PackingJobStatus.AWAITING_HANDOVER.value
        assert result["job"].completed_at is not None
        assert result["photos"][0].photo_metadata["device"] == "TC52"
        assert result["seals"][0].seal_type == "PLASTIC"
        assert (await test_db.execute(select(func.count(Seal.id)))).scalar() == 1

    async def test_cannot_complete_twice(self, test_db):
        job = await packed_job(test_db)

        with pytest.raises(ConflictError):
            await PackingService(test_db).complete_packing(job.id)


@pytest.mark.asyncio
class TestPackingEndpoints:

    async def test_full_flow_over_http(self, client: AsyncClient, test_db):
        wave, items = await add_wave(test_db, [("SKU-A", "A1", 2)],
                                     status=WaveStatus.COMPLETED.value, picked=True)

        started = await client.post(f"{BASE}/start", json={"waveId": str(wave.id), "priority": "HIGH"})
        assert started.status_code == 201
        job_id = started.json()["data"]["job"]["id"]

        verified = await client.post(f"{BASE}/verify", json={
            "jobId": job_id, "orderId": str(items[0].order_id), "sku": "SKU-A", "packedQuantity": 2,
        })
        assert verified.json()["data"]["progress"]["percentage"] == 100

        completed = await client.post(f"{BASE}/complete", json={"jobId": job_id})
        assert completed.status_code == 200
        assert completed.json()["data"]["job"]["status"] == "AWAITING_HANDOVER"

        awaiting = await client.get(f"{BASE}/awaiting-handover")
        assert [j["id"] for j in awaiting.json()["data"]] == [job_id]

    async def test_duplicate_start_is_409(self, client: AsyncClient, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)

        await client.post(f"{BASE}/start", json={"waveId": str(wave.id)})
        response = await client.post(f"{BASE}/start", json={"waveId": str(wave.id)})

        assert response.status_code == 409
        assert response.json()["success"] is False

    async def test_negative_quantity_is_400(self, client: AsyncClient, test_db):
        response = await client.post(f"{BASE}/verify", json={
            "jobId": str(uuid.uuid4()), "orderId": str(uuid.uuid4()), "sku": "SKU-A", "packedQuantity": -1,
        })

        assert response.status_code == 400

    async def test_job_status(self, client: AsyncClient, test_db):
        job = await packed_job(test_db)

        response = await client.get(f"{BASE}/status/{job.id}")

        data = response.json()["data"]
        assert data["status"] == "AWAITING_HANDOVER"
        assert data["progress"]["percentage"] == 100
        assert len(data["items"]) == 2
        assert data["sla"]["status"] in ("ON_TRACK", "AT_RISK", "BREACHED")

    async def test_reassign(self, client: AsyncClient, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)
        job = (await PackingService(test_db).start_packing(wave.id))["job"]
        new_packer = uuid.uuid4()

        response = await client.put(f"{BASE}/{job.id}/reassign", json={
            "newPackerId": str(new_packer), "reason": "Shift change",
        })

        assert response.status_code == 200
        assert response.json()["data"]["packerId"] == str(new_packer)
        events = (await test_db.execute(
            select(PackingEvent.event_type).where(PackingEvent.job_id == job.id)
        )).scalars().all()
        assert "PACKING_REASSIGNED" in events

    async def test_photo_upload(self, client: AsyncClient, test_db, photo_storage):
        job = await packed_job(test_db)

        response = await client.post(
            f"{BASE}/{job.id}/photos",
            data={"photoType": "SEALED", "device": "TC52"},
            files={"file": ("box.jpg", b"\xff\xd8\xff" + b"0" * 64, "image/jpeg")},
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["photoType"] == "SEALED"
        assert data["photoUrl"].startswith("https://storage.test/")
        assert photo_storage.uploads == [(job.id, "SEALED", 67)]
        assert (await test_db.execute(select(func.count(PhotoEvidence.id)))).scalar() == 1

    async def test_photo_upload_rejects_other_types(self, client: AsyncClient, test_db, photo_storage):
        job = await packed_job(test_db)

        response = await client.post(
            f"{BASE}/{job.id}/photos",
            data={"photoType": "SEALED"},
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400
        assert photo_storage.uploads == []

    async def test_photo_upload_passes_real_content_type(self, client: AsyncClient, test_db, photo_storage):
        job = await packed_job(test_db)

        response = await client.post(
            f"{BASE}/{job.id}/photos",
            data={"photoType": "PRE_PACK"},
            files={"file": ("box.png", b"\x89PNG" + b"0" * 32, "image/png")},
        )

        assert response.status_code == 201
        assert photo_storage.content_types == ["image/png"]

    async def test_photo_upload_without_storage_config_is_503(self, client: AsyncClient, test_db, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_URL", "")
        monkeypatch.setattr(StorageClient, "_client", None)
        app.dependency_overrides[get_photo_storage] = lambda: PhotoStorage()
        job = await packed_job(test_db)

        response = await client.post(
            f"{BASE}/{job.id}/photos",
            data={"photoType": "SEALED"},
            files={"file": ("box.jpg", b"\xff\xd8\xff" + b"0" * 16, "image/jpeg")},
        )

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert "Photo storage not configured" in body["error"]
        assert (await test_db.execute(select(func.count(PhotoEvidence.id)))).scalar() == 0

    async def test_seal_generate_and_verify(self, client: AsyncClient):
        generated = (await client.post(f"{BASE}/seals/generate")).json()["data"]

        good = await client.post(f"{BASE}/seals/verify", json={
            "sealNumber": generated["sealNumber"], "expectedHash": generated["hash"],
        })
        bad = await client.post(f"{BASE}/seals/verify", json={
            "sealNumber": generated["sealNumber"], "expectedHash": "0" * 64,
        })

        assert good.json()["data"]["valid"] is True
        assert good.json()["data"]["expired"] is False
        assert bad.json()["data"]["valid"] is False

    async def test_packing_sla_status(self, client: AsyncClient, test_db):
        wave, _ = await add_wave(test_db, [("SKU-A", "A1", 1)],
                                 status=WaveStatus.COMPLETED.value, picked=True)
        await PackingService(test_db).start_packing(wave.id)

        response = await client.get(f"{BASE}/sla-status")

        data = response.json()["data"]
        assert data["totalJobs"] == 1
        assert data["onTrack"] == 1


class RecordingStorageClient:
    calls = []

    @classmethod
    def upload(cls, content, path, content_type):
        cls.calls.append((path, content_type))
        return f"https://bucket.test/{path}"


@pytest.mark.asyncio
class TestPhotoStorage:

    async def test_png_keeps_extension_and_content_type(self):
        RecordingStorageClient.calls = []
        storage = PhotoStorage(client=RecordingStorageClient)
        job_id = uuid.uuid4()

        result = await storage.upload_photo(b"png-bytes", job_id, "SEALED", content_type="image/png")

        path, content_type = RecordingStorageClient.calls[0]
        assert content_type == "image/png"
        assert path.startswith(f"jobs/{job_id}/SEALED/")
        assert path.endswith(".png")
        assert result.photo_url.endswith(".png")
        assert result.metadata["content_type"] == "image/png"

    async def test_webp_extension(self):
        RecordingStorageClient.calls = []
        storage = PhotoStorage(client=RecordingStorageClient)

        await storage.upload_photo(b"webp", uuid.uuid4(), "PRE_PACK", content_type="image/webp")

        assert RecordingStorageClient.calls[0][0].endswith(".webp")

    def test_unconfigured_client_raises_mapped_error(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_URL", "")
        monkeypatch.setattr(StorageClient, "_client", None)

        with pytest.raises(StorageUnavailableError) as exc:
            StorageClient.get_client()

        assert exc.value.status_code == 503
