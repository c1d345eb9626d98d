"""
Ports — Protocol-based interfaces for infrastructure adapters.

The pipeline depends only on these contracts; the concrete adapters are
chosen in the composition root (main.py):

  BlobTransport      → http(s):// (httpx), s3:// (boto3), file://
  DeviceStateSource  → controller gateway over HTTP

Each port is a Protocol (structural typing) so adapters and test fakes
satisfy it by implementing the methods, without inheritance.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from railway.result import Result

from acl_reconcile.domain.models import ACL


@runtime_checkable
class BlobTransport(Protocol):
    """
    Port: byte-oriented fetch/store addressed by URI.

    Failures come back as Result.failure(TRANSPORT_ERROR, ...) whose message
    says "Fetch failed" or "Store failed" and names the URI.
    """

    def fetch(self, uri: str) -> Result[bytes]: ...

    def store(self, uri: str, data: bytes) -> Result[None]: ...


@runtime_checkable
class DeviceStateSource(Protocol):
    """
    Port: retrieve the records currently held by the given controllers.

    Must return either a complete snapshot covering every requested device
    or a DEVICE_STATE_ERROR failure naming the devices that could not be
    read. Partial snapshots are never returned.
    """

    def current_acl(self, devices: Sequence[str]) -> Result[ACL]: ...
