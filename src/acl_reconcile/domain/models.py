"""
Domain models — immutable value objects for ACLs, archives and diffs.

These are pure data structures with no I/O. Both the authoritative ACL
(parsed from the signed archive) and the current ACL (read from the
controllers) are built from the same CardRecord shape, which is what makes
them comparable field by field.

All models are frozen dataclasses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import TypeAlias

_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)


def parse_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD date. Raises ValueError for any other shape."""
    if not _ISO_DATE.fullmatch(value):
        raise ValueError(f"not a YYYY-MM-DD date: {value!r}")
    return date.fromisoformat(value)


@dataclass(frozen=True, slots=True)
class CardRecord:
    """
    One access record on one controller.

    Identified by `card_number` within a device's record list. The compared
    fields are the validity window and the set of doors the card may open.
    """

    card_number: int
    start_date: date
    end_date: date
    doors: frozenset[str] = frozenset()

    @property
    def key(self) -> int:
        return self.card_number

    def compared_fields(self) -> dict[str, object]:
        """Field name → value, in the order fields are reported."""
        return {
            "from": self.start_date,
            "to": self.end_date,
            "doors": self.doors,
        }

    def __str__(self) -> str:
        return (
            f"{self.card_number} {self.start_date.isoformat()} "
            f"{self.end_date.isoformat()} {_format_doors(self.doors)}"
        )


ACL: TypeAlias = dict[str, list[CardRecord]]


def _format_value(value: object) -> str:
    if isinstance(value, frozenset):
        return _format_doors(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _format_doors(doors: frozenset[str]) -> str:
    return ",".join(sorted(doors)) if doors else "-"


@dataclass(frozen=True, slots=True)
class UpdatedRecord:
    """A card present on both sides whose fields differ (controller → authoritative)."""

    current: CardRecord
    authoritative: CardRecord

    @property
    def card_number(self) -> int:
        return self.authoritative.card_number

    def changed_fields(self) -> tuple[str, ...]:
        old = self.current.compared_fields()
        new = self.authoritative.compared_fields()
        return tuple(name for name in new if old[name] != new[name])

    def __str__(self) -> str:
        old = self.current.compared_fields()
        new = self.authoritative.compared_fields()
        changes = " ".join(
            f"{name}:{_format_value(old[name])}->{_format_value(new[name])}"
            for name in self.changed_fields()
        )
        return f"{self.card_number} {changes}"


@dataclass(frozen=True, slots=True)
class DeviceDiff:
    """
    Classification of every card known to either side for one device.

    The four collections are disjoint and together cover the union of card
    numbers from the current and authoritative record lists.
      - unchanged: on both sides, all fields equal
      - updated:   on both sides, at least one field differs
      - added:     only in the authoritative ACL (missing from the controller)
      - deleted:   only on the controller (unexpected)
    """

    unchanged: tuple[CardRecord, ...] = ()
    updated: tuple[UpdatedRecord, ...] = ()
    added: tuple[CardRecord, ...] = ()
    deleted: tuple[CardRecord, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.updated or self.added or self.deleted)


@dataclass(frozen=True, slots=True)
class UnpackedArchive:
    """Contents of a signed archive after unbundling."""

    payload: bytes = field(repr=False)
    payload_name: str
    signature: bytes = field(repr=False)
    signer_id: str


@dataclass(frozen=True, slots=True)
class RowRejection:
    """A table row that failed validation and was skipped."""

    line: int
    reason: str
    device_id: str | None = None


@dataclass(frozen=True, slots=True)
class ParsedAcl:
    """The authoritative ACL plus the rows that were rejected on the way."""

    acl: ACL = field(default_factory=dict)
    rejected: list[RowRejection] = field(default_factory=list)

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self.acl.values())


@dataclass(frozen=True, slots=True)
class ReconcileOutcome:
    """Summary of one completed reconciliation run."""

    timestamp: datetime
    diffs: dict[str, DeviceDiff]
    rejected_rows: int = 0
    verified: bool = True
    report_path: Path | None = None
    report_uri: str | None = None

    @property
    def devices_out_of_sync(self) -> list[str]:
        return [device_id for device_id, diff in self.diffs.items() if diff.has_changes]
