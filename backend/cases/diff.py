"""
Field-level diff between two value snapshots.

Used by the lifecycle engine when an existing consultation note is
revised.  The result is stored verbatim in ``AuditEntry.diff``.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

FieldChange = dict[str, Any]


def compute_field_diff(
    old: Mapping[str, Any],
    new: Mapping[str, Any],
    fields: Sequence[str],
) -> list[FieldChange]:
    """
    Compare ``old`` and ``new`` on ``fields``.

    Returns one ``{"field", "old_value", "new_value"}`` entry per changed
    field, in the order of ``fields``.  An unchanged pair of snapshots
    yields ``[]``, never ``None``.
    """
    changes: list[FieldChange] = []
    for field in fields:
        before = old.get(field)
        after = new.get(field)
        if before != after:
            changes.append({"field": field, "old_value": before, "new_value": after})
    return changes


def apply_field_diff(old: Mapping[str, Any], diff: Sequence[FieldChange]) -> dict[str, Any]:
    """
    Replay ``diff`` over ``old``.

    Raises:
        ValueError: If an entry's ``old_value`` does not match ``old``.
    """
    result = dict(old)
    for change in diff:
        field = change["field"]
        if result.get(field) != change["old_value"]:
            raise ValueError(
                f"Diff does not apply: {field!r} is {result.get(field)!r}, "
                f"expected {change['old_value']!r}"
            )
        result[field] = change["new_value"]
    return result
