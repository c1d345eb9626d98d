"""
Pipeline — the reconciliation workflow as a railway of Result stages.

  fetch(acl_uri)
    → unpack (payload, signature, signer)
      → verify signature (or logged bypass when no_verify is set)
        → parse TSV into the authoritative ACL
          → read the current ACL from the controllers
            → diff
              → render → write local report (or print it)
                → sign + bundle + store report (only if report_uri is set)

Failures short-circuit: nothing is diffed unless the archive was unpacked,
authenticated and parsed, and no report file exists unless the diff was
computed. A signing/upload failure happens after the local report has been
written and leaves it in place.

All I/O is injected (BlobTransport, DeviceStateSource); the settings object
is passed in explicitly.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import TextIO

import structlog
from railway.failure import FailureDescription
from railway.result import Result

from acl_reconcile.adapters import archive_codec, report, signatures, tsv_parser
from acl_reconcile.adapters.report_packager import ReportPackager
from acl_reconcile.config import ReconcileSettings
from acl_reconcile.domain.diff import compare
from acl_reconcile.domain.models import ACL, ParsedAcl, ReconcileOutcome, UnpackedArchive
from acl_reconcile.domain.ports import BlobTransport, DeviceStateSource

log = structlog.get_logger()


def _annotate(uri: str) -> Callable[[FailureDescription], FailureDescription]:
    """Append the archive URI to failures that don't already mention it."""

    def _mapper(err: FailureDescription) -> FailureDescription:
        if uri in err.message:
            return err
        return FailureDescription(err.code, f"{err.message} [{uri}]", err.exception)

    return _mapper


class ReconcilePipeline:
    """
    One reconciliation run per call to run().

    Holds no state between runs; identical archive bytes and device state
    produce an identical outcome (apart from the timestamp).
    """

    def __init__(
        self,
        settings: ReconcileSettings,
        transports: BlobTransport,
        device_source: DeviceStateSource,
        output: TextIO | None = None,
    ) -> None:
        self._settings = settings
        self._transports = transports
        self._device_source = device_source
        self._output = output
        self._packager = ReportPackager(settings.signer_id, settings.key_file)

    def run(self, now: datetime | None = None) -> Result[ReconcileOutcome]:
        """
        Execute the full pipeline.

        Returns Result[ReconcileOutcome] on success, or the failure of the
        first stage that failed.
        """
        timestamp = now or datetime.now()
        uri = self._settings.acl_uri
        log.info("acl.fetching", uri=uri)

        return (
            self._transports.fetch(uri)
            .flat_map(archive_codec.unpack)
            .flat_map(self._authenticate)
            .flat_map(self._parse)
            .map_failure(_annotate(uri))
            .flat_map(lambda parsed: self._reconcile(parsed, timestamp))
            .flat_map(self._publish)
        )

    # ──────────────────────── Integrity ────────────────────────

    def _authenticate(self, archive: UnpackedArchive) -> Result[UnpackedArchive]:
        if self._settings.no_verify:
            log.warning(
                "signature.bypassed",
                signer=archive.signer_id,
                uri=self._settings.acl_uri,
                reason="signature verification disabled by no_verify",
            )
            return Result.success(archive)

        return signatures.verify(
            archive.signer_id,
            archive.payload,
            archive.signature,
            self._settings.keys_dir,
        ).map(lambda _: archive)

    def _parse(self, archive: UnpackedArchive) -> Result[ParsedAcl]:
        return tsv_parser.parse(archive.payload, self._settings.devices).peek(self._log_parsed)

    @staticmethod
    def _log_parsed(parsed: ParsedAcl) -> None:
        for device_id, records in parsed.acl.items():
            log.info("acl.device_records", device=device_id, records=len(records))
        if parsed.rejected:
            log.warning("acl.rows_skipped", count=len(parsed.rejected))

    # ──────────────────────── Reconciliation ────────────────────────

    def _reconcile(self, parsed: ParsedAcl, timestamp: datetime) -> Result[ReconcileOutcome]:
        def _outcome(current: ACL) -> ReconcileOutcome:
            diffs = compare(current, parsed.acl)
            log.info(
                "acl.compared",
                devices=len(diffs),
                out_of_sync=sum(1 for diff in diffs.values() if diff.has_changes),
            )
            return ReconcileOutcome(
                timestamp=timestamp,
                diffs=diffs,
                rejected_rows=len(parsed.rejected),
                verified=not self._settings.no_verify,
            )

        return self._device_source.current_acl(self._settings.devices).map(_outcome)

    # ──────────────────────── Reporting ────────────────────────

    def _publish(self, outcome: ReconcileOutcome) -> Result[ReconcileOutcome]:
        return (
            report.load_template(self._settings.template_file)
            .flat_map(lambda template: report.render(outcome.timestamp, outcome.diffs, template))
            .flat_map(
                lambda text: self._write_local(text, outcome.timestamp).flat_map(
                    lambda path: self._upload(text).map(
                        lambda uri: replace(outcome, report_path=path, report_uri=uri)
                    )
                )
            )
        )

    def _write_local(self, text: str, timestamp: datetime) -> Result[Path | None]:
        if self._settings.no_report:
            output = self._output or sys.stdout
            output.write(text)
            output.flush()
            return Result.success(None)
        return report.write_report(text, self._settings.workdir, timestamp)

    def _upload(self, text: str) -> Result[str | None]:
        uri = self._settings.report_uri
        if not uri:
            return Result.success(None)

        return (
            self._packager.package(text)
            .flat_map(lambda archive: self._transports.store(uri, archive))
            .map(lambda _: uri)
            .peek(lambda stored: log.info("report.uploaded", uri=stored))
        )
