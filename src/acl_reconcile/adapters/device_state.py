"""
Device state adapter — read the live card list of each controller over HTTP.

Adapter layer — implements the DeviceStateSource port against a controller
REST gateway using httpx, one request per device:

    GET {gateway_url}/device/{device_id}/cards

    {"cards": [{"card-number": 8165538,
                "start-date": "2024-01-01",
                "end-date": "2024-12-31",
                "doors": {"Front Door": true, "Back Door": false}}]}

Devices are independent, so they are polled concurrently in a thread pool.
The snapshot is only returned once every device has answered; a single
failure turns the whole call into DEVICE_STATE_ERROR naming every device
that could not be read.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import httpx
import structlog
from railway import ErrorCode
from railway.result import Result
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from acl_reconcile.domain.models import ACL, CardRecord, parse_date

log = structlog.get_logger()


def card_from_json(item: dict[str, Any]) -> CardRecord:
    """Convert one gateway card object into a CardRecord. Raises on bad data."""
    doors = item.get("doors") or {}
    return CardRecord(
        card_number=int(item["card-number"]),
        start_date=parse_date(item["start-date"]),
        end_date=parse_date(item["end-date"]),
        doors=frozenset(name for name, granted in doors.items() if granted),
    )


def _drop_duplicates(device_id: str, records: list[CardRecord]) -> list[CardRecord]:
    """Keep the first record per card number; log the rest."""
    seen: set[int] = set()
    unique: list[CardRecord] = []
    for record in records:
        if record.key in seen:
            log.warning("device.duplicate_card", device=device_id, card=record.card_number)
            continue
        seen.add(record.key)
        unique.append(record)
    return unique


class HttpDeviceStateSource:
    """
    Retrieve current ACLs from a controller gateway.

    Implements the DeviceStateSource port.
    Uses tenacity retry on transient network errors only.
    """

    def __init__(
        self,
        gateway_url: str,
        timeout: int = 60,
        max_workers: int = 4,
    ) -> None:
        self._gateway_url = gateway_url.rstrip("/")
        self._timeout = timeout
        self._max_workers = max_workers

    def current_acl(self, devices: Sequence[str]) -> Result[ACL]:
        """
        Return every device's current records, or DEVICE_STATE_ERROR.

        The result always covers all requested devices; devices holding no
        cards map to an empty list.
        """
        if not devices:
            return Result.success({})

        with ThreadPoolExecutor(max_workers=max(1, self._max_workers)) as pool:
            futures = {device_id: pool.submit(self._read_device, device_id) for device_id in devices}
            results = {device_id: future.result() for device_id, future in futures.items()}

        failed = [device_id for device_id, result in results.items() if result.is_failure()]
        if failed:
            first = results[failed[0]].error()
            return Result.failure(
                ErrorCode.DEVICE_STATE_ERROR,
                f"Could not retrieve current ACL from device(s) {', '.join(failed)}",
                first.exception,
            )

        acl: ACL = {device_id: result.value() for device_id, result in results.items()}
        log.info(
            "devices.acl_retrieved",
            devices=len(acl),
            records=sum(len(records) for records in acl.values()),
        )
        return Result.success(acl)

    def _read_device(self, device_id: str) -> Result[list[CardRecord]]:
        return Result.from_computation(
            lambda: self._do_read(device_id),
            ErrorCode.DEVICE_STATE_ERROR,
            f"Could not retrieve cards from device {device_id}",
        ).peek_failure(
            lambda err: log.error("device.read_failed", device=device_id, error=str(err))
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=0.1, max=30),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    def _do_read(self, device_id: str) -> list[CardRecord]:
        """HTTP GET with retry — exceptions caught by from_computation."""
        with httpx.Client(timeout=self._timeout) as client:
            response = client.get(f"{self._gateway_url}/device/{device_id}/cards")
            response.raise_for_status()
            records = _drop_duplicates(
                device_id, [card_from_json(item) for item in response.json()["cards"]]
            )
            log.info("device.cards_retrieved", device=device_id, records=len(records))
            return records
