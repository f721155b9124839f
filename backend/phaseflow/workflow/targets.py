"""
Helpers for the opaque item references a bulk phase acts on.

``describe_targets`` produces the compact summary used in status text and
logs; ``chunked`` partitions targets for batched collaborator calls.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

# Submission ids are a letter followed by alphanumerics, e.g. "u1a2b3c4d".
SID_PATTERN = re.compile(r"^[a-z][a-z0-9]{5,}$", re.IGNORECASE)

# Classification order used when rendering mixed target lists.
TARGET_CLASSES = ("id", "sid", "item")


def classify_target(target: Any) -> tuple[str, str]:
    """
    Return ``(class, label)`` for one target.

    ``id`` covers integers, numeric strings and records with an ``id``;
    ``sid`` covers submission id strings and records with a
    ``submission_id``; anything else is an ``item`` shown by its string form.
    """
    if isinstance(target, bool):
        return "item", str(target)
    if isinstance(target, int):
        return "id", str(target)
    if isinstance(target, str):
        if target.isdigit():
            return "id", target
        if SID_PATTERN.match(target) and any(c.isdigit() for c in target):
            return "sid", target
        return "item", target

    if isinstance(target, Mapping):
        sid, rid = target.get("submission_id"), target.get("id")
    else:
        sid, rid = getattr(target, "submission_id", None), getattr(target, "id", None)
    if sid:
        return "sid", str(sid)
    if rid is not None:
        return "id", str(rid)
    return "item", str(target)


def describe_targets(targets: Iterable[Any]) -> str:
    """
    Render a compact, human-readable summary of *targets*.

    All one class::

        >>> describe_targets([7, 9, 12])
        'ids 7, 9, 12'

    Mixed::

        >>> describe_targets([7, "u1a2b3c4d"])
        '1 ids: 7; 1 sids: u1a2b3c4d'
    """
    groups: dict[str, list[str]] = {}
    for target in targets:
        cls, label = classify_target(target)
        groups.setdefault(cls, []).append(label)

    if not groups:
        return ""
    if len(groups) == 1:
        (cls, labels), = groups.items()
        return f"{cls}s {', '.join(labels)}"

    return "; ".join(
        f"{len(groups[cls])} {cls}s: {', '.join(groups[cls])}"
        for cls in TARGET_CLASSES
        if cls in groups
    )


def chunked(targets: Sequence[Any], size: int) -> Iterator[tuple[Any, ...]]:
    """Yield successive tuples of at most *size* targets, preserving order."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(targets), size):
        yield tuple(targets[start:start + size])
