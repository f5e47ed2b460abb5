"""Client-side rescue list: keyed by id, ordered newest first, merged from deltas."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from rescue_engine.core.clock import as_utc

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _created(item: dict[str, Any]) -> datetime:
    raw = item.get("createdAt")
    if not raw:
        return _EPOCH
    if isinstance(raw, datetime):
        return as_utc(raw)
    try:
        return as_utc(datetime.fromisoformat(str(raw).replace("Z", "+00:00")))
    except ValueError:
        return _EPOCH


class RescueCollection:
    """Local copy of the rescues in view.

    ``apply`` merges a stream frame's partial record onto the stored one and
    drops frames whose sequence number is not newer than the last one seen
    for that rescue. Gaps are accepted: a filtered viewport does not receive
    every delta.
    """

    def __init__(self, *, drop_resolved: bool = True) -> None:
        self.drop_resolved = drop_resolved
        self._items: dict[int, dict[str, Any]] = {}
        self._seq: dict[int, int] = {}

    def load(self, rescues: Iterable[dict[str, Any]]) -> None:
        """Merge a snapshot from the bounding-box query.

        The snapshot decides which rescues are in view. A row is skipped in
        favour of the stored record when a newer delta was already applied.
        """
        items: dict[int, dict[str, Any]] = {}
        seqs: dict[int, int] = {}
        for rescue in rescues:
            rescue_id = rescue["id"]
            version = rescue.get("version")
            last = self._seq.get(rescue_id)
            if last is not None and rescue_id in self._items and (version is None or last > version):
                items[rescue_id] = self._items[rescue_id]
                seqs[rescue_id] = last
                continue
            items[rescue_id] = dict(rescue)
            if version is not None:
                seqs[rescue_id] = version
        self._items = items
        self._seq = seqs

    def apply(self, frame: dict[str, Any]) -> bool:
        """Merge one delta frame. Returns False if it was stale, malformed or
        a partial update for a rescue not in view."""
        patch = frame.get("rescue") or {}
        rescue_id = patch.get("id", frame.get("rescueId"))
        if rescue_id is None:
            return False
        seq = frame.get("seq")
        last = self._seq.get(rescue_id)
        if seq is not None and last is not None and seq <= last:
            return False
        if rescue_id not in self._items and frame.get("kind") != "created" and "latitude" not in patch:
            return False

        merged = {**self._items.get(rescue_id, {}), **patch}
        if seq is not None:
            self._seq[rescue_id] = seq
        if self.drop_resolved and merged.get("status") == "resolved":
            self._items.pop(rescue_id, None)
        else:
            self._items[rescue_id] = merged
        return True

    def get(self, rescue_id: int) -> dict[str, Any] | None:
        return self._items.get(rescue_id)

    def last_seq(self, rescue_id: int) -> int | None:
        return self._seq.get(rescue_id)

    def items(self) -> list[dict[str, Any]]:
        """Newest first by creation time, then by id."""
        return sorted(self._items.values(), key=lambda r: (_created(r), r["id"]), reverse=True)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, rescue_id: object) -> bool:
        return rescue_id in self._items
