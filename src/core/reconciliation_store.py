"""
Reconciliation Store

Session-scoped key/value store remembering layout state across protocol and
stage changes:

    hanging               HangingKey(study, protocol)         -> HPInfo last used
    viewport_grid_store   StageKey(study, protocol, stage)    -> custom grid snapshot
    reuse_id_map          ReuseKey(study, reuse id)           -> display set UID
    toggle_snapshot       StageKey(study, protocol, stage)    -> ToggleSnapshot
    viewports_by_position position id                         -> cell snapshot

Every map is overwrite-only per key. reduce() merges a partial state into the
named maps in one step; it never replaces the store as a whole.

Inputs:
    - Partial states computed by the navigation controller

Outputs:
    - Snapshot copies of the maps

Requirements:
    - typing for NamedTuple keys
"""

from typing import Any, Dict, NamedTuple, Optional


ACTIVE_DISPLAY_SET_REUSE_ID = "activeDisplaySet"


class HangingKey(NamedTuple):
    study_uid: str
    protocol_id: str

    def __str__(self) -> str:
        return f"{self.study_uid}:{self.protocol_id}"


class StageKey(NamedTuple):
    study_uid: str
    protocol_id: str
    stage_index: int

    def __str__(self) -> str:
        return f"{self.study_uid}:{self.protocol_id}:{self.stage_index}"


class ReuseKey(NamedTuple):
    study_uid: str
    reuse_id: str

    def __str__(self) -> str:
        return f"{self.study_uid}:{self.reuse_id}"


class ToggleSnapshot:
    """Protocol/stage to return to when a toggled protocol is toggled off."""

    def __init__(self, protocol_id: str, stage_index: Optional[int] = None):
        self.protocol_id = protocol_id
        self.stage_index = stage_index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ToggleSnapshot):
            return NotImplemented
        return (self.protocol_id, self.stage_index) == (other.protocol_id, other.stage_index)

    def __repr__(self) -> str:
        return f"ToggleSnapshot({self.protocol_id!r}, {self.stage_index!r})"


class ReconciliationStore:
    """
    Explicitly passed, session-scoped store.

    Create one per viewing session and clear() it when the session ends.
    """

    MAP_NAMES = ("hanging", "viewport_grid_store", "reuse_id_map", "toggle_snapshot", "viewports_by_position")

    def __init__(self):
        """Initialize an empty store."""
        self._maps: Dict[str, Dict[Any, Any]] = {name: {} for name in self.MAP_NAMES}

    def get_state(self) -> Dict[str, Dict[Any, Any]]:
        """
        Get a consistent snapshot of every map.

        Returns:
            Map name -> shallow copy of that map
        """
        return {name: dict(values) for name, values in self._maps.items()}

    def get(self, map_name: str) -> Dict[Any, Any]:
        """Shallow copy of one map."""
        if map_name not in self._maps:
            raise KeyError(f"unknown reconciliation map '{map_name}'")
        return dict(self._maps[map_name])

    def reduce(self, partial_state: Dict[str, Dict[Any, Any]]) -> None:
        """
        Merge a partial state into the named maps.

        All map names are checked before anything is written, so an invalid
        partial state leaves the store unchanged.

        Args:
            partial_state: Map name -> entries to set

        Raises:
            KeyError: if a map name is unknown
        """
        unknown = [name for name in partial_state if name not in self._maps]
        if unknown:
            raise KeyError(f"unknown reconciliation map(s): {', '.join(unknown)}")
        for name, entries in partial_state.items():
            self._maps[name].update(entries)

    def clear(self) -> None:
        """Forget everything (end of session)."""
        for values in self._maps.values():
            values.clear()

    def __len__(self) -> int:
        return sum(len(values) for values in self._maps.values())
