"""
Archive codec — bundle/unbundle a payload and its detached signature.

Adapter layer — uses the standard library tarfile/gzip modules.

Container layout (gzip-compressed tar, uncompressed tar also accepted on read):

    <signer>.acl   the payload (ACL table, or <signer>.rpt for reports)
    signature      detached signature over the exact payload bytes

The signer identity travels in the payload's file name. Packing is
deterministic (zeroed mtime/uid/gid, fixed mode, gzip mtime 0) so the same
input always yields the same bytes. Blob contents are copied verbatim in both
directions; there is no text handling anywhere in this module.
"""

from __future__ import annotations

import gzip
import io
import posixpath
import tarfile
from collections.abc import Iterable, Sequence

import structlog
from railway import ErrorCode
from railway.result import Result

from acl_reconcile.domain.models import UnpackedArchive

log = structlog.get_logger()

SIGNATURE_NAME = "signature"
ACL_EXTENSION = ".acl"
REPORT_EXTENSION = ".rpt"


def _member_info(name: str, size: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name=name)
    info.size = size
    info.mtime = 0
    info.uid = 0
    info.gid = 0
    info.uname = ""
    info.gname = ""
    info.mode = 0o644
    return info


def pack(files: Iterable[tuple[str, bytes]]) -> bytes:
    """
    Bundle named blobs, in the given order, into a .tar.gz container.

    Raises ValueError on an empty or duplicated name; callers wrap this in
    Result.from_computation.
    """
    tar_buffer = io.BytesIO()
    seen: set[str] = set()
    with tarfile.open(fileobj=tar_buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for name, data in files:
            if not name or name in seen:
                raise ValueError(f"Invalid or duplicate archive entry name: {name!r}")
            seen.add(name)
            tar.addfile(_member_info(name, len(data)), io.BytesIO(data))

    out = io.BytesIO()
    with gzip.GzipFile(filename="", mode="wb", fileobj=out, mtime=0) as gz:
        gz.write(tar_buffer.getvalue())
    return out.getvalue()


def _read_members(blob: bytes) -> list[tuple[str, bytes]]:
    """Read every regular-file member, in archive order. May raise."""
    entries: list[tuple[str, bytes]] = []
    with tarfile.open(fileobj=io.BytesIO(blob), mode="r:*") as tar:
        for member in tar.getmembers():
            if not member.isfile():
                continue
            extracted = tar.extractfile(member)
            if extracted is None:
                continue
            with extracted:
                entries.append((member.name, extracted.read()))
    return entries


def _signer_of(payload_name: str, extension: str) -> str:
    return posixpath.basename(payload_name)[: -len(extension)]


def _select(
    entries: list[tuple[str, bytes]],
    extensions: Sequence[str],
) -> Result[UnpackedArchive]:
    signatures = [data for name, data in entries if posixpath.basename(name) == SIGNATURE_NAME]
    if len(signatures) != 1:
        return Result.failure(
            ErrorCode.MALFORMED_ARCHIVE_ERROR,
            f"Archive must contain exactly one '{SIGNATURE_NAME}' entry, found {len(signatures)}",
        )

    for name, data in entries:
        for extension in extensions:
            if name.endswith(extension):
                signer_id = _signer_of(name, extension)
                if not signer_id:
                    return Result.failure(
                        ErrorCode.MISSING_SIGNER_IDENTITY_ERROR,
                        f"Payload entry '{name}' has no signer name before '{extension}'",
                    )
                return Result.success(
                    UnpackedArchive(
                        payload=data,
                        payload_name=name,
                        signature=signatures[0],
                        signer_id=signer_id,
                    )
                )

    return Result.failure(
        ErrorCode.MALFORMED_ARCHIVE_ERROR,
        f"Archive has no payload entry ending in {', '.join(extensions)}",
    )


def unpack(
    blob: bytes,
    extensions: Sequence[str] = (ACL_EXTENSION,),
) -> Result[UnpackedArchive]:
    """
    Extract payload, payload name, signature and signer id from a container.

    Returns Result.failure(MALFORMED_ARCHIVE_ERROR) if the bytes are not a
    readable tar (plain or gzip), there is no payload entry, or there is not
    exactly one signature entry. If several payload entries exist the first
    one in archive order is used. A payload named only by its extension fails
    with MISSING_SIGNER_IDENTITY_ERROR.
    """
    return (
        Result.from_computation(
            lambda: _read_members(blob),
            ErrorCode.MALFORMED_ARCHIVE_ERROR,
            "Archive is not a readable tar container",
        )
        .flat_map(lambda entries: _select(entries, extensions))
        .peek(
            lambda archive: log.info(
                "archive.unpacked",
                payload=archive.payload_name,
                payload_bytes=len(archive.payload),
                signature_bytes=len(archive.signature),
                signer=archive.signer_id,
            )
        )
    )
