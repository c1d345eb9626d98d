"""
Failure description — structured error information for the failure track.

Every failure carries an ErrorCode, a human-readable message and, when the
failure came from an exception at an I/O boundary, the original exception.

The codes mirror the reconciliation error taxonomy so that operators can tell
apart failures that need different responses (e.g. an unknown signer means
"rotate trust", a signature mismatch means "investigate tampering").
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Fatal to the whole run unless noted otherwise:
    - Exchange: TRANSPORT_ERROR
    - Archive structure: MALFORMED_ARCHIVE_ERROR, MISSING_SIGNER_IDENTITY_ERROR
    - Integrity: UNKNOWN_SIGNER_ERROR, INVALID_KEY_ERROR, SIGNATURE_MISMATCH_ERROR
    - Table: SCHEMA_ERROR, VALIDATION_ERROR (per row, recovered locally)
    - Devices: DEVICE_STATE_ERROR
    - Output: SIGNING_ERROR (upload only), REPORT_ERROR
    - Misc: CONFIGURATION_ERROR, UNKNOWN_ERROR
    """

    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    """Blob fetch or store failed."""

    MALFORMED_ARCHIVE_ERROR = "MALFORMED_ARCHIVE_ERROR"
    """Container unreadable, or payload/signature blobs missing."""

    MISSING_SIGNER_IDENTITY_ERROR = "MISSING_SIGNER_IDENTITY_ERROR"
    """Payload blob name has no stem to derive the signer from."""

    UNKNOWN_SIGNER_ERROR = "UNKNOWN_SIGNER_ERROR"
    """No public key file for the signer."""

    INVALID_KEY_ERROR = "INVALID_KEY_ERROR"
    """Public key file exists but is not a usable RSA public key."""

    SIGNATURE_MISMATCH_ERROR = "SIGNATURE_MISMATCH_ERROR"
    """Signature does not verify against the payload."""

    SCHEMA_ERROR = "SCHEMA_ERROR"
    """ACL table lacks required structure."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """A single row or value is malformed."""

    DEVICE_STATE_ERROR = "DEVICE_STATE_ERROR"
    """Live records could not be retrieved for one or more devices."""

    SIGNING_ERROR = "SIGNING_ERROR"
    """Outgoing report could not be signed."""

    REPORT_ERROR = "REPORT_ERROR"
    """Report could not be rendered or written."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """System misconfiguration."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unexpected/unclassified failures."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.UNKNOWN_SIGNER_ERROR, "No key for 'qwerty'")
    >>> desc.code
    <ErrorCode.UNKNOWN_SIGNER_ERROR: 'UNKNOWN_SIGNER_ERROR'>
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        if self.exception is None:
            return f"{self.code.value}: {self.message}"
        return f"{self.code.value}: {self.message} ({self.exception})"
