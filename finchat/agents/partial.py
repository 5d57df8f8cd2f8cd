# =============================================================================
# Partial-Object Reducer — Monotonic Deltas for a Streamed JSON Object
# =============================================================================
#
# stream_object() yields growing snapshots of the FinalAnswer. The client
# must never receive a snapshot twice or see a field shrink, so the
# synthesizer sends only what changed:
#
#   diff_partial(emitted, snapshot)  → the delta not yet sent
#   merge_partial(previous, delta)   → what the client holds afterwards
#
# MERGE RULES (the client applies the same ones):
#   strings  grow by suffix          "Apple is" + " up 3%"
#   lists    grow by appended items  [A] + [B, C]
#   scalars  are set once            bools, numbers, null, objects
#
# Any snapshot that would need a field to shrink or change raises
# ValueError instead of producing a delta.
#
# DESIGN DECISION: The last key of a snapshot is open.
# Partial JSON parsing returns the list item or number currently being
# written in an incomplete state ({"ticker": "AA"} without its values, or
# 12 that will become 1234). Lists and scalars under the last key are held
# back until a later key appears or `final=True`. Strings are exempt: their
# growth is already expressed as an appended suffix.
# =============================================================================

from __future__ import annotations

from typing import Any

_MISSING = object()


def diff_partial(
    emitted: dict[str, Any],
    snapshot: dict[str, Any],
    final: bool = False,
) -> dict[str, Any]:
    """
    Return the part of `snapshot` not yet covered by `emitted`.

    Raises ValueError when `snapshot` contradicts something already emitted.
    """
    keys = list(snapshot)
    open_key = None if final or not keys else keys[-1]
    delta: dict[str, Any] = {}

    for key, value in snapshot.items():
        previous = emitted.get(key, _MISSING)

        if isinstance(value, str) and (previous is _MISSING or isinstance(previous, str)):
            sent = "" if previous is _MISSING else previous
            if not value.startswith(sent):
                raise ValueError(f"'{key}' changed from {sent!r} to {value!r}")
            if previous is _MISSING or len(value) > len(sent):
                delta[key] = value[len(sent):]

        elif isinstance(value, list) and (previous is _MISSING or isinstance(previous, list)):
            sent = [] if previous is _MISSING else previous
            if value[:len(sent)] != sent:
                raise ValueError(f"'{key}' no longer starts with the items already sent")
            complete = value[:-1] if key == open_key and value else value
            added = complete[len(sent):]
            if added or (previous is _MISSING and key != open_key):
                delta[key] = added

        else:
            if key == open_key:
                continue
            if previous is _MISSING:
                delta[key] = value
            elif previous != value:
                raise ValueError(f"'{key}' changed from {previous!r} to {value!r}")

    return delta


def merge_partial(previous: dict[str, Any], delta: dict[str, Any]) -> dict[str, Any]:
    """Apply one delta; returns a new dict and leaves `previous` untouched."""
    merged = dict(previous)
    for key, value in delta.items():
        if key not in merged:
            merged[key] = list(value) if isinstance(value, list) else value
            continue

        current = merged[key]
        if isinstance(value, str) and isinstance(current, str):
            merged[key] = current + value
        elif isinstance(value, list) and isinstance(current, list):
            merged[key] = current + value
        elif current != value:
            raise ValueError(f"'{key}' is already set to {current!r}")
    return merged
