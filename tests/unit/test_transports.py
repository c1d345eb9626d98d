"""
Unit tests for the blob transports.

Uses respx to mock httpx HTTP calls (never makes real HTTP requests) and a
MagicMock in place of the boto3 S3 client.

Test categories per transport:
  - Success: fetch returns the exact bytes, store sends them
  - Failure: HTTP errors, timeouts, missing objects → TRANSPORT_ERROR (never raises)
  - Scheme registry: dispatch by URI scheme, unsupported schemes
"""

from __future__ import annotations

import io
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
import respx
from railway import ErrorCode
from railway.assertions import ResultAssertions
from railway.result import Result

from acl_reconcile.adapters.transports import (
    BlobTransports,
    FileBlobTransport,
    HttpBlobTransport,
    S3BlobTransport,
    default_transports,
    parse_s3_uri,
)

ACL_URL = "https://acl.example.com/acl/qwerty.tar.gz"
REPORT_URL = "https://acl.example.com/reports/upload"
BLOB = b"\x1f\x8b\x00binary\x00payload"


# ─────────────────────── HTTP ───────────────────────


class TestHttpFetch:
    """GET the archive bytes."""

    @respx.mock
    def test_returns_body_bytes(self) -> None:
        respx.get(ACL_URL).mock(return_value=httpx.Response(200, content=BLOB))

        result = HttpBlobTransport(timeout=5).fetch(ACL_URL)

        assert ResultAssertions.assert_success(result) == BLOB

    @respx.mock
    def test_follows_redirects(self) -> None:
        moved = "https://cdn.example.com/qwerty.tar.gz"
        respx.get(ACL_URL).mock(return_value=httpx.Response(302, headers={"Location": moved}))
        respx.get(moved).mock(return_value=httpx.Response(200, content=BLOB))

        assert ResultAssertions.assert_success(HttpBlobTransport().fetch(ACL_URL)) == BLOB

    @respx.mock
    def test_not_found(self) -> None:
        """
        GIVEN the server answers 404
        WHEN fetching
        THEN TRANSPORT_ERROR naming the URI.
        """
        respx.get(ACL_URL).mock(return_value=httpx.Response(404))

        result = HttpBlobTransport(timeout=5).fetch(ACL_URL)

        ResultAssertions.assert_failure(result, ErrorCode.TRANSPORT_ERROR)
        ResultAssertions.assert_failure_message_contains(result, f"Fetch failed for {ACL_URL}")

    @respx.mock
    def test_timeout_is_retried_then_fails(self) -> None:
        route = respx.get(ACL_URL).mock(side_effect=httpx.ConnectTimeout("timed out"))

        result = HttpBlobTransport(timeout=5).fetch(ACL_URL)

        ResultAssertions.assert_failure(result, ErrorCode.TRANSPORT_ERROR)
        assert route.call_count == 3


class TestHttpStore:
    """POST the report archive."""

    @respx.mock
    def test_posts_octet_stream(self) -> None:
        """
        GIVEN a reachable upload URL
        WHEN storing a blob
        THEN it is POSTed verbatim as binary/octet-stream.
        """
        route = respx.post(REPORT_URL).mock(return_value=httpx.Response(200))

        result = HttpBlobTransport(timeout=5).store(REPORT_URL, BLOB)

        ResultAssertions.assert_success(result)
        request = route.calls.last.request
        assert request.content == BLOB
        assert request.headers["Content-Type"] == "binary/octet-stream"

    @respx.mock
    def test_server_error(self) -> None:
        respx.post(REPORT_URL).mock(return_value=httpx.Response(500))

        result = HttpBlobTransport(timeout=5).store(REPORT_URL, BLOB)

        ResultAssertions.assert_failure(result, ErrorCode.TRANSPORT_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "Store failed")


# ─────────────────────── S3 ───────────────────────


class TestS3:
    """get_object / put_object through an injected client."""

    def test_parse_uri(self) -> None:
        assert parse_s3_uri("s3://bucket/acl/qwerty.tar.gz") == ("bucket", "acl/qwerty.tar.gz")

    @pytest.mark.parametrize("uri", ["s3://bucket", "s3:///key", "https://bucket/key"])
    def test_parse_invalid_uri(self, uri: str) -> None:
        with pytest.raises(ValueError):
            parse_s3_uri(uri)

    def test_fetch(self) -> None:
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(BLOB)}

        result = S3BlobTransport(client=client).fetch("s3://acls/qwerty.tar.gz")

        assert ResultAssertions.assert_success(result) == BLOB
        client.get_object.assert_called_once_with(Bucket="acls", Key="qwerty.tar.gz")

    def test_store(self) -> None:
        client = MagicMock()

        result = S3BlobTransport(client=client).store("s3://reports/acl.rpt.tar.gz", BLOB)

        ResultAssertions.assert_success(result)
        client.put_object.assert_called_once_with(
            Bucket="reports", Key="acl.rpt.tar.gz", Body=BLOB
        )

    def test_client_error(self) -> None:
        client = MagicMock()
        client.get_object.side_effect = RuntimeError("NoSuchKey")

        result = S3BlobTransport(client=client).fetch("s3://acls/missing")

        ResultAssertions.assert_failure(result, ErrorCode.TRANSPORT_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "s3://acls/missing")

    def test_invalid_uri_is_a_transport_error(self) -> None:
        result = S3BlobTransport(client=MagicMock()).fetch("s3://bucket-only")
        ResultAssertions.assert_failure(result, ErrorCode.TRANSPORT_ERROR)

    @pytest.fixture()
    def aws_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
        for name in (
            "AWS_ACCESS_KEY_ID",
            "AWS_SECRET_ACCESS_KEY",
            "AWS_SESSION_TOKEN",
            "AWS_PROFILE",
            "AWS_DEFAULT_PROFILE",
            "AWS_SHARED_CREDENTIALS_FILE",
        ):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "no-config"))
        credentials = tmp_path / "credentials"
        credentials.write_text(
            "[default]\n"
            "aws_access_key_id = AKIADEFAULT\n"
            "aws_secret_access_key = default-secret\n"
            "\n"
            "[prod]\n"
            "aws_access_key_id = ASIAPROD\n"
            "aws_secret_access_key = prod-secret\n"
            "aws_session_token = prod-token\n"
        )
        return credentials

    def test_session_reads_named_profile(self, aws_env: Path) -> None:
        """
        GIVEN a credentials file with a [prod] profile carrying a session token
        WHEN a session is built for that profile
        THEN botocore resolves key, secret and token from it, in the configured region.
        """
        session = S3BlobTransport(
            region="eu-west-1", credentials_file=aws_env, profile="prod"
        )._session()

        credentials = session.get_credentials().get_frozen_credentials()
        assert credentials.access_key == "ASIAPROD"
        assert credentials.secret_key == "prod-secret"
        assert credentials.token == "prod-token"
        assert session.region_name == "eu-west-1"

    def test_session_defaults_to_default_profile(self, aws_env: Path) -> None:
        session = S3BlobTransport(credentials_file=aws_env)._session()

        credentials = session.get_credentials().get_frozen_credentials()
        assert credentials.access_key == "AKIADEFAULT"
        assert credentials.token is None
        assert session.region_name == "us-east-1"


# ─────────────────────── File ───────────────────────


class TestFile:
    """file:// URIs."""

    def test_store_then_fetch(self, tmp_path: Path) -> None:
        uri = (tmp_path / "out" / "report.tar.gz").as_uri()
        transport = FileBlobTransport()

        ResultAssertions.assert_success(transport.store(uri, BLOB))

        assert ResultAssertions.assert_success(transport.fetch(uri)) == BLOB

    def test_missing_file(self, tmp_path: Path) -> None:
        result = FileBlobTransport().fetch((tmp_path / "absent").as_uri())
        ResultAssertions.assert_failure(result, ErrorCode.TRANSPORT_ERROR)


# ─────────────────────── Registry ───────────────────────


class TestBlobTransports:
    """Dispatch by URI scheme."""

    def test_dispatches_by_scheme(self) -> None:
        s3 = MagicMock()
        s3.fetch.return_value = Result.success(BLOB)
        http = MagicMock()

        transports = BlobTransports({"S3": s3, "https": http})
        result = transports.fetch("s3://acls/qwerty.tar.gz")

        assert ResultAssertions.assert_success(result) == BLOB
        s3.fetch.assert_called_once_with("s3://acls/qwerty.tar.gz")
        http.fetch.assert_not_called()

    def test_unsupported_scheme(self) -> None:
        """
        GIVEN a URI whose scheme has no transport
        WHEN fetching or storing
        THEN TRANSPORT_ERROR naming the URI.
        """
        transports = BlobTransports({"file": FileBlobTransport()})

        fetched = transports.fetch("ftp://host/acl.tar.gz")
        stored = transports.store("ftp://host/report.tar.gz", BLOB)

        ResultAssertions.assert_failure(fetched, ErrorCode.TRANSPORT_ERROR)
        ResultAssertions.assert_failure_message_contains(fetched, "ftp://host/acl.tar.gz")
        ResultAssertions.assert_failure(stored, ErrorCode.TRANSPORT_ERROR)

    def test_default_transports_cover_builtin_schemes(self) -> None:
        transports = default_transports()
        for uri in ("http://h/a", "https://h/a", "s3://b/k", "file:///tmp/a"):
            ResultAssertions.assert_success(transports.for_uri(uri))
