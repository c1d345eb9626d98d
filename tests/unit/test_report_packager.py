"""
Unit tests for the report packager.

A packaged report must be consumable the same way an ACL archive is:
unpack with the report extension, then verify against <signer>.pub.
"""

from __future__ import annotations

from pathlib import Path

from railway import ErrorCode
from railway.assertions import ResultAssertions

from acl_reconcile.adapters import archive_codec, signatures
from acl_reconcile.adapters.report_packager import ReportPackager
from tests.conftest import SIGNER

REPORT = "ACL DIFF REPORT 2024-05-06 07:08:09\n\n  DEVICE 1\n"


class TestPackage:
    """Signing and bundling a rendered report."""

    def test_consumer_can_unpack_and_verify(self, private_key_file: Path, keys_dir: Path) -> None:
        """
        GIVEN a packager holding the qwerty private key
        WHEN a report is packaged
        THEN unpacking yields qwerty.rpt with the report bytes
        AND the signature verifies against qwerty.pub.
        """
        packager = ReportPackager(SIGNER, private_key_file)

        blob = ResultAssertions.assert_success(packager.package(REPORT))
        archive = ResultAssertions.assert_success(
            archive_codec.unpack(blob, extensions=(archive_codec.REPORT_EXTENSION,))
        )

        assert archive.payload_name == "qwerty.rpt"
        assert archive.signer_id == SIGNER
        assert archive.payload == REPORT.encode("utf-8")
        ResultAssertions.assert_success(
            signatures.verify(archive.signer_id, archive.payload, archive.signature, keys_dir)
        )

    def test_is_deterministic(self, private_key_file: Path) -> None:
        packager = ReportPackager(SIGNER, private_key_file)
        assert packager.package(REPORT) == packager.package(REPORT)

    def test_entry_name(self, tmp_path: Path) -> None:
        assert ReportPackager("reports", tmp_path / "k").entry_name == "reports.rpt"

    def test_missing_key(self, tmp_path: Path) -> None:
        result = ReportPackager(SIGNER, tmp_path / "absent.key").package(REPORT)
        ResultAssertions.assert_failure(result, ErrorCode.SIGNING_ERROR)

    def test_empty_signer_is_not_attributable(self, private_key_file: Path) -> None:
        """
        GIVEN an empty signer id
        WHEN a report is packaged
        THEN a consumer unpacking it gets MISSING_SIGNER_IDENTITY_ERROR.
        """
        blob = ResultAssertions.assert_success(ReportPackager("", private_key_file).package(REPORT))
        result = archive_codec.unpack(blob, extensions=(archive_codec.REPORT_EXTENSION,))
        ResultAssertions.assert_failure(result, ErrorCode.MISSING_SIGNER_IDENTITY_ERROR)
