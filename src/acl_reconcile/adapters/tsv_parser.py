"""
ACL table parser — tab-separated text into per-device card records.

Adapter layer — standard library only (the format is plain TSV).

Expected layout (header names are matched ignoring case and spaces):

    Device ID   Card Number   From         To           Front Door   Back Door
    405419896   8165538       2024-01-01   2024-12-31   Y            N

Device ID, Card Number, From and To are required. Every other column is a
door column and the cell says whether the card may open that door.

Two kinds of failure:
  - SCHEMA_ERROR (fatal): the table as a whole is unusable
  - row rejections (non-fatal): the row is skipped, logged, and returned in
    ParsedAcl.rejected so the caller can surface the count
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import date

import structlog
from railway import ErrorCode
from railway.result import Result

from acl_reconcile.domain.models import ACL, CardRecord, ParsedAcl, RowRejection, parse_date

log = structlog.get_logger()

DEVICE_ID = "deviceid"
CARD_NUMBER = "cardnumber"
FROM = "from"
TO = "to"
REQUIRED_COLUMNS = (DEVICE_ID, CARD_NUMBER, FROM, TO)

_TRUE = frozenset({"y", "yes", "1", "true"})
_FALSE = frozenset({"", "n", "no", "0", "false"})


class RowError(ValueError):
    """Raised inside row parsing; converted into a RowRejection."""


def normalise_header(name: str) -> str:
    return "".join(name.split()).lower()


def _decode(payload: bytes) -> Result[str]:
    return Result.from_computation(
        lambda: payload.decode("utf-8-sig"),
        ErrorCode.SCHEMA_ERROR,
        "ACL table is not valid UTF-8 text",
    )


def _parse_header(line: str) -> Result[tuple[dict[str, int], list[tuple[int, str]]]]:
    """Map required column → index, plus the (index, name) door columns."""
    names = [cell.strip() for cell in line.split("\t")]
    normalised = [normalise_header(name) for name in names]

    if "" in normalised:
        return Result.failure(ErrorCode.SCHEMA_ERROR, "ACL table header has an empty column name")

    duplicates = sorted({n for n in normalised if normalised.count(n) > 1})
    if duplicates:
        return Result.failure(
            ErrorCode.SCHEMA_ERROR,
            f"ACL table header repeats column(s): {', '.join(duplicates)}",
        )

    missing = [column for column in REQUIRED_COLUMNS if column not in normalised]
    if missing:
        return Result.failure(
            ErrorCode.SCHEMA_ERROR,
            f"ACL table header is missing required column(s): {', '.join(missing)}",
        )

    required = {column: normalised.index(column) for column in REQUIRED_COLUMNS}
    doors = [
        (index, names[index])
        for index, column in enumerate(normalised)
        if column not in REQUIRED_COLUMNS
    ]
    return Result.success((required, doors))


def _parse_date(value: str, column: str) -> date:
    try:
        return parse_date(value)
    except ValueError:
        raise RowError(f"invalid {column} date {value!r} (expected YYYY-MM-DD)") from None


def _parse_card_number(value: str) -> int:
    if not (value.isascii() and value.isdigit()) or int(value) == 0:
        raise RowError(f"invalid card number {value!r}")
    return int(value)


def _parse_flag(value: str, door: str) -> bool:
    flag = value.strip().lower()
    if flag in _TRUE:
        return True
    if flag in _FALSE:
        return False
    raise RowError(f"invalid value {value!r} for door '{door}'")


def _parse_row(
    cells: list[str],
    width: int,
    required: dict[str, int],
    doors: list[tuple[int, str]],
    known_devices: Collection[str],
) -> tuple[str, CardRecord]:
    if len(cells) != width:
        raise RowError(f"expected {width} columns, got {len(cells)}")

    cells = [cell.strip() for cell in cells]
    device_id = cells[required[DEVICE_ID]]
    if device_id not in known_devices:
        raise RowError(f"unknown device '{device_id}'")

    start = _parse_date(cells[required[FROM]], "from")
    end = _parse_date(cells[required[TO]], "to")
    if start > end:
        raise RowError(f"from date {start} is after to date {end}")

    record = CardRecord(
        card_number=_parse_card_number(cells[required[CARD_NUMBER]]),
        start_date=start,
        end_date=end,
        doors=frozenset(name for index, name in doors if _parse_flag(cells[index], name)),
    )
    return device_id, record


def _parse_rows(
    lines: list[str],
    known_devices: Collection[str],
) -> Result[ParsedAcl]:
    if not lines or not lines[0].strip():
        return Result.failure(ErrorCode.SCHEMA_ERROR, "ACL table has no header row")

    def _build(header: tuple[dict[str, int], list[tuple[int, str]]]) -> ParsedAcl:
        required, doors = header
        width = len(required) + len(doors)
        acl: ACL = {}
        seen: dict[str, set[int]] = {}
        rejected: list[RowRejection] = []

        for number, line in enumerate(lines[1:], start=2):
            if not line.strip():
                continue
            cells = line.split("\t")
            try:
                device_id, record = _parse_row(cells, width, required, doors, known_devices)
                if record.key in seen.setdefault(device_id, set()):
                    raise RowError(f"duplicate card number {record.key}")
            except RowError as e:
                rejection = RowRejection(
                    line=number,
                    reason=str(e),
                    device_id=cells[required[DEVICE_ID]].strip()
                    if len(cells) > required[DEVICE_ID]
                    else None,
                )
                log.warning(
                    "acl.row_rejected",
                    code=ErrorCode.VALIDATION_ERROR.value,
                    line=rejection.line,
                    device=rejection.device_id,
                    reason=rejection.reason,
                )
                rejected.append(rejection)
                continue

            seen[device_id].add(record.key)
            acl.setdefault(device_id, []).append(record)

        return ParsedAcl(acl=acl, rejected=rejected)

    return _parse_header(lines[0]).map(_build)


def parse(payload: bytes, known_devices: Collection[str]) -> Result[ParsedAcl]:
    """
    Parse a TSV ACL table into one ordered record list per device.

    Rows naming a device outside `known_devices`, or carrying a malformed
    value, are skipped and recorded in ParsedAcl.rejected. Devices with no
    rows are absent from the result.
    """
    return (
        _decode(payload)
        .flat_map(lambda text: _parse_rows(text.splitlines(), known_devices))
        .peek(
            lambda parsed: log.info(
                "acl.parsed",
                devices=len(parsed.acl),
                records=parsed.record_count,
                rejected=len(parsed.rejected),
            )
        )
    )
