"""
Blob transports — fetch/store raw bytes by URI, selected by URI scheme.

Adapter layer — implements the BlobTransport port three ways:

  http://, https://  httpx (sync), GET to fetch, POST to store
  s3://bucket/key    boto3 get_object / put_object
  file:///path       local filesystem

HTTP retries transient errors (timeouts, network) via tenacity. Every
failure is captured into Result.failure(TRANSPORT_ERROR, ...) whose message
starts with "Fetch failed" or "Store failed" and names the URI; no exception
reaches the pipeline.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import boto3
import botocore.session
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

from acl_reconcile.domain.ports import BlobTransport

log = structlog.get_logger()

_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=0.1, max=30),
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
    reraise=True,
)


class HttpBlobTransport:
    """
    Fetch/store blobs over HTTP(S).

    Implements the BlobTransport port.
    Uses tenacity retry on transient network errors only.
    """

    def __init__(self, timeout: int = 60) -> None:
        self._timeout = timeout

    def fetch(self, uri: str) -> Result[bytes]:
        return Result.from_computation(
            lambda: self._do_fetch(uri),
            ErrorCode.TRANSPORT_ERROR,
            f"Fetch failed for {uri}",
        )

    def store(self, uri: str, data: bytes) -> Result[None]:
        return Result.from_computation(
            lambda: self._do_store(uri, data),
            ErrorCode.TRANSPORT_ERROR,
            f"Store failed for {uri}",
        )

    @_transient
    def _do_fetch(self, uri: str) -> bytes:
        """HTTP GET with retry — exceptions caught by from_computation."""
        with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
            response = client.get(uri)
            response.raise_for_status()
            data = response.content
            log.info("blob.fetched", uri=uri, size_bytes=len(data))
            return data

    @_transient
    def _do_store(self, uri: str, data: bytes) -> None:
        """HTTP POST with retry — exceptions caught by from_computation."""
        with httpx.Client(timeout=self._timeout) as client:
            response = client.post(
                uri,
                content=data,
                headers={"Content-Type": "binary/octet-stream"},
            )
            response.raise_for_status()
            log.info("blob.stored", uri=uri, size_bytes=len(data))


def parse_s3_uri(uri: str) -> tuple[str, str]:
    """Split s3://bucket/key into (bucket, key). Raises ValueError if malformed."""
    parsed = urlparse(uri)
    bucket = parsed.netloc
    key = parsed.path.lstrip("/")
    if parsed.scheme != "s3" or not bucket or not key:
        raise ValueError(f"Invalid S3 URI {uri!r} (expected s3://<bucket>/<key>)")
    return bucket, key


class S3BlobTransport:
    """
    Fetch/store blobs in S3.

    Implements the BlobTransport port. The boto3 client is created lazily on
    first use (or injected, for tests) so that a run that never touches S3
    needs no AWS credentials. Credentials are resolved by botocore; a
    credentials file and profile, when given, replace the default lookup.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        credentials_file: Path | None = None,
        profile: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._region = region
        self._credentials_file = credentials_file
        self._profile = profile
        self._client = client

    def _session(self) -> boto3.Session:
        core = botocore.session.Session()
        if self._credentials_file is not None:
            core.set_config_variable("credentials_file", str(self._credentials_file))
        return boto3.Session(
            botocore_session=core,
            profile_name=self._profile,
            region_name=self._region,
        )

    def _s3(self) -> Any:
        if self._client is None:
            self._client = self._session().client("s3")
        return self._client

    def fetch(self, uri: str) -> Result[bytes]:
        return Result.from_computation(
            lambda: self._do_fetch(uri),
            ErrorCode.TRANSPORT_ERROR,
            f"Fetch failed for {uri}",
        )

    def store(self, uri: str, data: bytes) -> Result[None]:
        return Result.from_computation(
            lambda: self._do_store(uri, data),
            ErrorCode.TRANSPORT_ERROR,
            f"Store failed for {uri}",
        )

    def _do_fetch(self, uri: str) -> bytes:
        bucket, key = parse_s3_uri(uri)
        response = self._s3().get_object(Bucket=bucket, Key=key)
        data: bytes = response["Body"].read()
        log.info("blob.fetched", uri=uri, size_bytes=len(data))
        return data

    def _do_store(self, uri: str, data: bytes) -> None:
        bucket, key = parse_s3_uri(uri)
        self._s3().put_object(Bucket=bucket, Key=key, Body=data)
        log.info("blob.stored", uri=uri, size_bytes=len(data))


class FileBlobTransport:
    """Fetch/store blobs on the local filesystem (file:///absolute/path)."""

    @staticmethod
    def _path(uri: str) -> Path:
        parsed = urlparse(uri)
        if parsed.scheme != "file" or not parsed.path:
            raise ValueError(f"Invalid file URI {uri!r}")
        return Path(unquote(parsed.path))

    def fetch(self, uri: str) -> Result[bytes]:
        return Result.from_computation(
            lambda: self._path(uri).read_bytes(),
            ErrorCode.TRANSPORT_ERROR,
            f"Fetch failed for {uri}",
        ).peek(lambda data: log.info("blob.fetched", uri=uri, size_bytes=len(data)))

    def store(self, uri: str, data: bytes) -> Result[None]:
        def _write() -> None:
            path = self._path(uri)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            log.info("blob.stored", uri=uri, size_bytes=len(data))

        return Result.from_computation(
            _write,
            ErrorCode.TRANSPORT_ERROR,
            f"Store failed for {uri}",
        )


class BlobTransports:
    """
    Registry of transports keyed by URI scheme.

        transports = BlobTransports({"https": HttpBlobTransport(), "s3": S3BlobTransport()})
        transports.fetch("s3://bucket/acl.tar.gz")
    """

    def __init__(self, by_scheme: Mapping[str, BlobTransport]) -> None:
        self._by_scheme = {scheme.lower(): transport for scheme, transport in by_scheme.items()}

    def for_uri(self, uri: str) -> Result[BlobTransport]:
        scheme = urlparse(uri).scheme.lower()
        transport = self._by_scheme.get(scheme)
        if transport is None:
            return Result.failure(
                ErrorCode.TRANSPORT_ERROR,
                f"Unsupported URI scheme {scheme!r} for {uri}",
            )
        return Result.success(transport)

    def fetch(self, uri: str) -> Result[bytes]:
        return self.for_uri(uri).flat_map(lambda transport: transport.fetch(uri))

    def store(self, uri: str, data: bytes) -> Result[None]:
        return self.for_uri(uri).flat_map(lambda transport: transport.store(uri, data))


def default_transports(
    timeout: int = 60,
    s3_region: str = "us-east-1",
    s3_credentials_file: Path | None = None,
    s3_profile: str | None = None,
) -> BlobTransports:
    """All built-in transports, keyed by the schemes they serve."""
    http = HttpBlobTransport(timeout=timeout)
    return BlobTransports(
        {
            "http": http,
            "https": http,
            "s3": S3BlobTransport(
                region=s3_region,
                credentials_file=s3_credentials_file,
                profile=s3_profile,
            ),
            "file": FileBlobTransport(),
        }
    )
