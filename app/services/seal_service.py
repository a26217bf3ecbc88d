"""
Tamper seal number generation and verification.

Seal numbers look like ``OZI-<base36 epoch ms>-<nonce8>-<hex32>``. The
integrity hash is sha256(seal_number + SEAL_SECRET) and is kept by the
caller; seals older than 24 hours are considered expired.
"""
import hashlib
import hmac
import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import List, Optional

from app.config import settings

SEAL_PREFIX = "OZI"
SEAL_RANDOM_BYTES = 16
SEAL_MAX_AGE = timedelta(hours=24)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass
class SealNumber:
    seal_number: str
    hash: str
    timestamp: int
    nonce: str

    @property
    def expires_at(self) -> datetime:
        issued = datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)
        return issued + SEAL_MAX_AGE


@dataclass
class ParsedSeal:
    prefix: str
    timestamp: int
    nonce: str
    random_part: str


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def seal_hash(seal_number: str, secret: Optional[str] = None) -> str:
    secret = settings.SEAL_SECRET if secret is None else secret
    return hashlib.sha256(f"{seal_number}{secret}".encode("utf-8")).hexdigest()


def generate_seal(prefix: str = SEAL_PREFIX, now_ms: Optional[int] = None) -> SealNumber:
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    nonce = uuid.uuid4().hex[:8]
    random_part = secrets.token_hex(SEAL_RANDOM_BYTES)

    seal_number = f"{prefix}-{to_base36(timestamp)}-{nonce}-{random_part}"
    return SealNumber(
        seal_number=seal_number,
        hash=seal_hash(seal_number),
        timestamp=timestamp,
        nonce=nonce,
    )


def generate_batch(count: int) -> List[SealNumber]:
    return [generate_seal() for _ in range(count)]


def verify_seal(seal_number: str, expected_hash: str) -> bool:
    return hmac.compare_digest(seal_hash(seal_number), expected_hash)


def parse_seal(seal_number: str, prefix: str = SEAL_PREFIX) -> Optional[ParsedSeal]:
    """Split a seal number into its parts; None when it is not well formed."""
    parts = seal_number.split("-")
    if len(parts) != 4:
        return None

    seal_prefix, timestamp_str, nonce, random_part = parts
    if seal_prefix != prefix:
        return None

    try:
        timestamp = int(timestamp_str, 36)
    except ValueError:
        return None

    return ParsedSeal(
        prefix=seal_prefix,
        timestamp=timestamp,
        nonce=nonce,
        random_part=random_part,
    )


def is_expired(seal_number: str, now_ms: Optional[int] = None) -> bool:
    """Unparseable seals count as expired."""
    parsed = parse_seal(seal_number)
    if parsed is None:
        return True

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    age_ms = now_ms - parsed.timestamp
    return age_ms > SEAL_MAX_AGE.total_seconds() * 1000
