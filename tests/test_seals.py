"""Tests for tamper seal numbers."""

import re

from app.services import seal_service
from app.services.seal_service import (
    SEAL_MAX_AGE, generate_batch, generate_seal, is_expired, parse_seal, seal_hash, to_base36,
    verify_seal,
)

SEAL_PATTERN = re.compile(r"^OZI-[0-9a-z]+-[0-9a-f]{8}-[0-9a-f]{32}$")
ISSUED_MS = 1_760_000_000_000


class TestGenerate:
    def test_format(self):
        seal = generate_seal()
        assert SEAL_PATTERN.match(seal.seal_number)

    def test_timestamp_is_base36_epoch_ms(self):
        seal = generate_seal(now_ms=ISSUED_MS)
        assert seal.seal_number.split("-")[1] == to_base36(ISSUED_MS)
        assert seal.timestamp == ISSUED_MS

    def test_hash_is_sha256_of_number_and_secret(self):
        seal = generate_seal()
        assert seal.hash == seal_hash(seal.seal_number)
        assert len(seal.hash) == 64

    def test_batch_is_unique(self):
        seals = generate_batch(25)
        assert len({s.seal_number for s in seals}) == 25

    def test_expires_a_day_after_issue(self):
        seal = generate_seal(now_ms=ISSUED_MS)
        assert (seal.expires_at.timestamp() * 1000) - ISSUED_MS == SEAL_MAX_AGE.total_seconds() * 1000


class TestVerify:
    def test_round_trip(self):
        seal = generate_seal()
        assert verify_seal(seal.seal_number, seal.hash) is True

    def test_tampered_number_fails(self):
        seal = generate_seal()
        tampered = seal.seal_number[:-1] + ("0" if seal.seal_number[-1] != "0" else "1")
        assert verify_seal(tampered, seal.hash) is False

    def test_other_secret_fails(self, monkeypatch):
        seal = generate_seal()
        monkeypatch.setattr(seal_service.settings, "SEAL_SECRET", "rotated")
        assert verify_seal(seal.seal_number, seal.hash) is False


class TestParse:
    def test_parse_parts(self):
        seal = generate_seal(now_ms=ISSUED_MS)
        parsed = parse_seal(seal.seal_number)
        assert parsed.prefix == "OZI"
        assert parsed.timestamp == ISSUED_MS
        assert parsed.nonce == seal.nonce

    def test_malformed(self):
        assert parse_seal("OZI-only-three") is None
        assert parse_seal("ABC-1-2-3") is None
        assert parse_seal("OZI-!!-abcd1234-ff") is None


class TestExpiry:
    def test_fresh_seal(self):
        seal = generate_seal(now_ms=ISSUED_MS)
        assert is_expired(seal.seal_number, now_ms=ISSUED_MS + 1000) is False

    def test_old_seal(self):
        seal = generate_seal(now_ms=ISSUED_MS)
        day_ms = int(SEAL_MAX_AGE.total_seconds() * 1000)
        assert is_expired(seal.seal_number, now_ms=ISSUED_MS + day_ms + 1) is True

    def test_unparseable_counts_as_expired(self):
        assert is_expired("garbage") is True
