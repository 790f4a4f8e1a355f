"""
Viewport Grid State

This module defines the grid state exchanged with the rendering layer: an
ordered list of viewport cells, the active viewport index and the grid layout.
The hanging protocol core never changes a state in place; planners return new
states and snapshots are deep copies.

Inputs:
    - Cell contents from the viewport planner or the grid service

Outputs:
    - ViewportCell and ViewportGridState objects
    - Dictionary form for logging and comparison

Requirements:
    - core.hanging_protocol_model for option types
"""

import copy
from typing import Any, Dict, List, Optional

from core.hanging_protocol_model import DisplaySetOptions, StackViewportOptions, ViewportOptions


class ViewportCell:
    """One viewport of the grid."""

    def __init__(
        self,
        viewport_index: int,
        position_id: str,
        display_set_instance_uids: Optional[List[str]] = None,
        display_set_options: Optional[List[DisplaySetOptions]] = None,
        viewport_options: Optional[ViewportOptions] = None,
    ):
        self.viewport_index = viewport_index
        self.position_id = position_id
        self.display_set_instance_uids: List[str] = list(display_set_instance_uids or [])
        self.display_set_options: List[DisplaySetOptions] = list(display_set_options or [])
        self.viewport_options: ViewportOptions = viewport_options or StackViewportOptions()

    @property
    def is_empty(self) -> bool:
        return not self.display_set_instance_uids

    @property
    def presentation_id(self) -> Optional[str]:
        return self.viewport_options.presentation_id

    def copy(self) -> "ViewportCell":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "viewportIndex": self.viewport_index,
            "positionId": self.position_id,
            "displaySetInstanceUIDs": list(self.display_set_instance_uids),
            "displaySetOptions": [options.to_dict() for options in self.display_set_options],
            "viewportOptions": self.viewport_options.to_dict(),
        }

    def __repr__(self) -> str:
        return f"ViewportCell({self.viewport_index}, {self.position_id!r}, {self.display_set_instance_uids!r})"


class ViewportGridState:
    """Complete grid: cells in row-major order, active index and layout."""

    def __init__(
        self,
        viewports: Optional[List[ViewportCell]] = None,
        active_viewport_index: int = 0,
        num_rows: int = 1,
        num_cols: int = 1,
    ):
        self.viewports: List[ViewportCell] = list(viewports or [])
        self.active_viewport_index = active_viewport_index
        self.num_rows = num_rows
        self.num_cols = num_cols

    @property
    def layout(self) -> Dict[str, int]:
        return {"numRows": self.num_rows, "numCols": self.num_cols}

    @property
    def active_viewport(self) -> Optional[ViewportCell]:
        if 0 <= self.active_viewport_index < len(self.viewports):
            return self.viewports[self.active_viewport_index]
        return None

    def get_display_set_instance_uids(self) -> List[str]:
        """All display set UIDs shown, in viewport order (duplicates kept)."""
        uids: List[str] = []
        for viewport in self.viewports:
            uids.extend(viewport.display_set_instance_uids)
        return uids

    def copy(self) -> "ViewportGridState":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activeViewportIndex": self.active_viewport_index,
            "layout": self.layout,
            "viewports": [viewport.to_dict() for viewport in self.viewports],
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ViewportGridState):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"ViewportGridState({self.num_rows}x{self.num_cols}, viewports={self.viewports!r})"
