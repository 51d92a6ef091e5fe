"""
Pure transforms for Phoenix presence payloads.

`presence_state` carries a full snapshot and `presence_diff` incremental
joins/leaves, both shaped `{key: {"metas": [meta, ...]}}`. Metas are
identified by their `phx_ref`.
"""
from typing import Any, Mapping

from .base import PresenceState

Transition = tuple[PresenceState, list[str], list[str]]


def _metas(entry: Mapping[str, Any]) -> list[dict[str, Any]]:
    return [dict(meta) for meta in entry.get("metas", [])]


def apply_state(current: PresenceState, snapshot: Mapping[str, Mapping[str, Any]]) -> Transition:
    """
    Replaces `current` with a full snapshot.

    Returns the new state, the keys that joined (new keys, or known keys
    with metas not seen before) and the keys that left entirely.
    """
    state: PresenceState = {key: _metas(entry) for key, entry in snapshot.items()}
    state = {key: metas for key, metas in state.items() if metas}

    joined = []
    for key, metas in state.items():
        known_refs = {m.get("phx_ref") for m in current.get(key, [])}
        if key not in current or any(m.get("phx_ref") not in known_refs for m in metas):
            joined.append(key)
    left = [key for key in current if key not in state]
    return state, joined, left


def apply_diff(current: PresenceState, diff: Mapping[str, Any]) -> Transition:
    """
    Applies a `{"joins": ..., "leaves": ...}` diff to `current`.

    Leaves are applied first so a re-track (leave of the old meta plus join
    of the new one) ends with only the new meta.
    """
    state: PresenceState = {key: list(metas) for key, metas in current.items()}

    left = []
    for key, entry in diff.get("leaves", {}).items():
        refs = {m.get("phx_ref") for m in entry.get("metas", [])}
        remaining = [m for m in state.get(key, []) if m.get("phx_ref") not in refs]
        if remaining:
            state[key] = remaining
        elif key in state:
            del state[key]
            left.append(key)

    joined = []
    for key, entry in diff.get("joins", {}).items():
        new_metas = _metas(entry)
        if not new_metas:
            continue
        known_refs = {m.get("phx_ref") for m in state.get(key, [])}
        state[key] = state.get(key, []) + [m for m in new_metas if m.get("phx_ref") not in known_refs]
        joined.append(key)
        if key in left:
            left.remove(key)

    return state, joined, left
