"""
Diff engine — classify every card per device as unchanged/updated/added/deleted.

Domain layer — a pure function of its two inputs. Identical inputs always
produce identical output (reports are kept as compliance evidence, so the
ordering is part of the contract):

  - devices are ordered by ascending device id (numeric ids numerically)
  - unchanged, updated and added follow the authoritative record order
  - deleted follows the controller's record order

Classification is keyed by card number, never by position. If a side lists a
card more than once, its first occurrence is the one compared.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from acl_reconcile.domain.models import CardRecord, DeviceDiff, UpdatedRecord


def device_sort_key(device_id: str) -> tuple[int, int, str]:
    """Numeric ids first (by value), then everything else lexically."""
    if device_id.isascii() and device_id.isdigit():
        return (0, int(device_id), device_id)
    return (1, 0, device_id)


def sorted_devices(device_ids: Iterable[str]) -> list[str]:
    return sorted(set(device_ids), key=device_sort_key)


def _first_per_card(records: Iterable[CardRecord]) -> dict[int, CardRecord]:
    by_key: dict[int, CardRecord] = {}
    for record in records:
        by_key.setdefault(record.key, record)
    return by_key


def compare_device(
    current: Sequence[CardRecord],
    authoritative: Sequence[CardRecord],
) -> DeviceDiff:
    """Classify the records of a single device."""
    current_by_key = _first_per_card(current)
    authoritative_by_key = _first_per_card(authoritative)

    unchanged: list[CardRecord] = []
    updated: list[UpdatedRecord] = []
    added: list[CardRecord] = []

    for record in authoritative_by_key.values():
        existing = current_by_key.get(record.key)
        if existing is None:
            added.append(record)
        elif existing.compared_fields() == record.compared_fields():
            unchanged.append(record)
        else:
            updated.append(UpdatedRecord(current=existing, authoritative=record))

    deleted = [
        record
        for key, record in current_by_key.items()
        if key not in authoritative_by_key
    ]

    return DeviceDiff(
        unchanged=tuple(unchanged),
        updated=tuple(updated),
        added=tuple(added),
        deleted=tuple(deleted),
    )


def compare(
    current: Mapping[str, Sequence[CardRecord]],
    authoritative: Mapping[str, Sequence[CardRecord]],
) -> dict[str, DeviceDiff]:
    """
    Compare the live ACL against the authoritative ACL, device by device.

    Every device present in either mapping gets an entry. A device missing
    from `current` (never polled or offline) gets all its authoritative
    records as `added`; a device missing from `authoritative` gets all its
    controller records as `deleted`.
    """
    return {
        device_id: compare_device(
            current.get(device_id, ()),
            authoritative.get(device_id, ()),
        )
        for device_id in sorted_devices([*current, *authoritative])
    }
