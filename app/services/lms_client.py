"""
LMS (Logistics Management System) Integration Client.

Handles all LMS API interactions:
- Request signing (X-API-Key, X-Signature, X-Timestamp)
- Shipment creation, status updates and lookup
- Health and system status checks

Server errors (5xx) are retried in-process with exponential backoff. Every
public operation returns an ``LMSResponse``; transport failures never raise.
"""
import asyncio
import hashlib
import json
import time
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, List, Dict, Any

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LMSResponse:
    """Outcome of an LMS call."""
    success: bool
    status_code: int
    data: Optional[Any] = None
    error: Optional[str] = None
    lms_reference: Optional[str] = None


@dataclass
class ShipmentItem:
    sku: str
    quantity: int
    description: str = ""


@dataclass
class ShipmentData:
    """Shipment creation payload."""
    tracking_number: str
    manifest_number: str
    origin: str
    destination: str
    items: List[ShipmentItem] = field(default_factory=list)
    special_instructions: Optional[str] = None
    expected_delivery: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "trackingNumber": self.tracking_number,
            "manifestNumber": self.manifest_number,
            "origin": self.origin,
            "destination": self.destination,
            "items": [
                {"sku": i.sku, "quantity": i.quantity, "description": i.description}
                for i in self.items
            ],
            "specialInstructions": self.special_instructions,
            "expectedDelivery": self.expected_delivery.isoformat() if self.expected_delivery else None,
        }


@dataclass
class RetryInfo:
    attempts: int = 0
    last_retry: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LMSAPIError(Exception):
    """LMS API error."""

    def __init__(self, status_code: int, message: str, data: Any = None):
        self.status_code = status_code
        self.message = message
        self.data = data
        super().__init__(f"LMS API Error ({status_code}): {message}")


class LMSClient:
    """
    Client for the LMS HTTP API.

    Usage:
        client = LMSClient()

        # Create shipment
        response = await client.create_shipment(shipment_data)
        if response.success:
            reference = response.lms_reference
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.LMS_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.LMS_API_KEY
        self.timeout = timeout if timeout is not None else settings.LMS_TIMEOUT
        self.retry_attempts = retry_attempts if retry_attempts is not None else settings.LMS_RETRY_ATTEMPTS
        self.retry_delay_ms = retry_delay_ms if retry_delay_ms is not None else settings.LMS_RETRY_DELAY
        self._transport = transport
        # operation id -> retry bookkeeping, process-local
        self._retry_queue: Dict[str, RetryInfo] = {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={
                "Content-Type": "application/json",
                "X-API-Key": self.api_key,
            },
            transport=self._transport,
        )

    def generate_signature(self, body: str, timestamp: str) -> str:
        """sha256 over body + timestamp + api key."""
        message = f"{body}{timestamp}{self.api_key}"
        return hashlib.sha256(message.encode("utf-8")).hexdigest()

    @staticmethod
    def operation_id(method: str, url: str, body: Optional[str]) -> str:
        data_hash = hashlib.md5(body.encode("utf-8")).hexdigest() if body else ""
        return f"{method.lower()}_{url}_{data_hash}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Make a signed request, retrying 5xx responses with backoff.

        Raises LMSAPIError for 4xx responses and for 5xx once the retry budget
        is spent; httpx transport errors propagate.
        """
        body = json.dumps(data, separators=(",", ":"), default=str) if data is not None else None
        url = f"/{endpoint.lstrip('/')}"
        op_id = self.operation_id(method, url, body)

        async with self._client() as client:
            try:
                while True:
                    headers: Dict[str, str] = {}
                    if body is not None:
                        timestamp = str(int(time.time() * 1000))
                        headers["X-Signature"] = self.generate_signature(body, timestamp)
                        headers["X-Timestamp"] = timestamp

                    response = await client.request(method, url, content=body, headers=headers)

                    if response.status_code >= 500:
                        info = self._retry_queue.setdefault(op_id, RetryInfo())
                        if info.attempts < self.retry_attempts:
                            info.attempts += 1
                            info.last_retry = datetime.now(timezone.utc)
                            delay = self.retry_delay_ms * (2 ** (info.attempts - 1)) / 1000
                            logger.warning(
                                f"LMS {method} {url} returned {response.status_code}, "
                                f"retry {info.attempts}/{self.retry_attempts} in {delay:.2f}s"
                            )
                            await asyncio.sleep(delay)
                            continue

                    if response.status_code >= 400:
                        raise LMSAPIError(response.status_code, self._error_message(response), self._json(response))

                    return response
            finally:
                # Entry lives only for the duration of one logical request
                self._retry_queue.pop(op_id, None)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    def _error_message(self, response: httpx.Response) -> str:
        payload = self._json(response)
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return response.text or f"HTTP {response.status_code}"

    async def _call(
        self,
        operation: str,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        reference_keys: tuple = (),
        reference: Optional[str] = None,
    ) -> LMSResponse:
        try:
            response = await self._request(method, endpoint, data)
        except LMSAPIError as e:
            logger.error(f"LMS {operation} error: {e}")
            return LMSResponse(success=False, status_code=e.status_code, error=e.message, data=e.data)
        except httpx.HTTPError as e:
            logger.error(f"LMS {operation} transport error: {e!r}")
            return LMSResponse(success=False, status_code=0, error="No response from LMS")

        payload = self._json(response)
        lms_reference = reference
        if isinstance(payload, dict):
            for key in reference_keys:
                if payload.get(key):
                    lms_reference = str(payload[key])
                    break

        return LMSResponse(
            success=True,
            status_code=response.status_code,
            data=payload,
            lms_reference=lms_reference,
        )

    # ==================== SHIPMENTS ====================

    async def create_shipment(self, shipment: ShipmentData) -> LMSResponse:
        return await self._call(
            "createShipment", "POST", "/shipments",
            data=shipment.to_payload(),
            reference_keys=("reference", "id"),
        )

    async def update_shipment_status(
        self,
        lms_reference: str,
        status: str,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> LMSResponse:
        return await self._call(
            "updateShipmentStatus", "PUT", f"/shipments/{lms_reference}/status",
            data={"status": status, **(additional_data or {})},
            reference=lms_reference,
        )

    async def get_shipment(self, lms_reference: str) -> LMSResponse:
        return await self._call(
            "getShipment", "GET", f"/shipments/{lms_reference}",
            reference=lms_reference,
        )

    # ==================== SYSTEM ====================

    async def health_check(self) -> bool:
        try:
            response = await self._request("GET", "/health")
        except (LMSAPIError, httpx.HTTPError) as e:
            logger.error(f"LMS health check failed: {e!r}")
            return False
        return response.status_code == 200

    async def get_system_status(self) -> LMSResponse:
        return await self._call("getSystemStatus", "GET", "/system/status")

    def get_retry_queue_status(self) -> List[Dict[str, Any]]:
        return [
            {"operation_id": op_id, "attempts": info.attempts, "last_retry": info.last_retry.isoformat()}
            for op_id, info in self._retry_queue.items()
        ]


@lru_cache()
def get_lms_client() -> LMSClient:
    """Process-wide LMS client."""
    return LMSClient()
