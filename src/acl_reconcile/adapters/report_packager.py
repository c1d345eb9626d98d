"""
Report packager — sign a rendered report and bundle it for upload.

The report archive has the same shape as an authoritative ACL archive:

    <signer_id>.rpt   report text (UTF-8)
    signature         RSA PKCS#1 v1.5 / SHA-256 over the report bytes

so a downstream consumer can run archive_codec.unpack(..., extensions=(".rpt",))
followed by signatures.verify() against <signer_id>.pub.
"""

from __future__ import annotations

from pathlib import Path

import structlog
from railway import ErrorCode
from railway.result import Result

from acl_reconcile.adapters import archive_codec, signatures

log = structlog.get_logger()


class ReportPackager:
    """Holds the private half of the report-signing keypair."""

    def __init__(self, signer_id: str, key_file: Path) -> None:
        self._signer_id = signer_id
        self._key_file = key_file

    @property
    def entry_name(self) -> str:
        return f"{self._signer_id}{archive_codec.REPORT_EXTENSION}"

    def package(self, report_text: str) -> Result[bytes]:
        """
        Sign the report and return the archive bytes.

        Returns Result.failure(SIGNING_ERROR) if the report cannot be signed
        or bundled.
        """
        report = report_text.encode("utf-8")
        return (
            signatures.sign(report, self._key_file)
            .flat_map(
                lambda signature: Result.from_computation(
                    lambda: archive_codec.pack(
                        [
                            (self.entry_name, report),
                            (archive_codec.SIGNATURE_NAME, signature),
                        ]
                    ),
                    ErrorCode.SIGNING_ERROR,
                    f"Could not bundle signed report '{self.entry_name}'",
                )
            )
            .peek(
                lambda archive: log.info(
                    "report.packaged",
                    entry=self.entry_name,
                    report_bytes=len(report),
                    archive_bytes=len(archive),
                )
            )
        )
