"""
Viewport Grid Service

This module holds the viewport grid shown by the rendering layer. The hanging
protocol controller publishes planned grids here; the user can substitute
display sets manually and change the active viewport.

Inputs:
    - Planned ViewportGridState objects
    - Cached custom layouts to restore
    - Manual display set substitutions and active viewport changes

Outputs:
    - Snapshot copies of the current grid
    - grid_state_changed / layout_changed / active_viewport_changed signals

Requirements:
    - PySide6 for signals
    - core.viewport_grid_state for the state types
"""

from PySide6.QtCore import QObject, Signal
from typing import List, Optional

from core.hanging_protocol_model import DisplaySetOptions, StackViewportOptions, grid_position_id
from core.presentation_id import DEFAULT_MAX_DISPLAY_INSTANCES, get_presentation_id
from core.viewport_grid_state import ViewportCell, ViewportGridState


class ViewportGridService(QObject):
    """
    Owns the current viewport grid state.

    get_state() always returns a copy, so callers can never change the
    published grid in place.
    """

    # Signals
    grid_state_changed = Signal(object)  # Emitted with a copy of the new ViewportGridState
    layout_changed = Signal(int, int)  # Emitted when rows/columns change (num_rows, num_cols)
    active_viewport_changed = Signal(int)  # Emitted with the new active viewport index

    def __init__(self, max_display_instances: int = DEFAULT_MAX_DISPLAY_INSTANCES):
        """
        Initialize with an empty 1x1 grid.

        Args:
            max_display_instances: Ordinal limit for presentation ids
        """
        super().__init__()
        self.max_display_instances = max_display_instances
        self._state = ViewportGridState(
            [ViewportCell(0, grid_position_id(0, 1), viewport_options=StackViewportOptions(viewport_id="viewport-0"))]
        )

    def get_state(self) -> ViewportGridState:
        """Copy of the current grid state."""
        return self._state.copy()

    def set_state(self, state: ViewportGridState) -> None:
        """
        Publish a new grid state.

        Args:
            state: New grid (copied before storing)
        """
        previous_layout = (self._state.num_rows, self._state.num_cols)
        self._state = state.copy()
        self.grid_state_changed.emit(self._state.copy())
        if (state.num_rows, state.num_cols) != previous_layout:
            self.layout_changed.emit(state.num_rows, state.num_cols)

    def set_layout(self, state: ViewportGridState) -> None:
        """Publish a grid produced by the planner for a protocol stage or resize."""
        self.set_state(state)

    def restore_cached_layout(self, state: ViewportGridState) -> None:
        """
        Restore a cached custom layout verbatim.

        Args:
            state: Grid snapshot from the reconciliation store
        """
        print(f"[LAYOUT CACHE] Restoring cached {state.num_rows}x{state.num_cols} layout")
        self.set_state(state)

    def set_active_viewport_index(self, index: int) -> None:
        """
        Change the active viewport.

        Args:
            index: Viewport index (ignored if out of range)
        """
        if not 0 <= index < len(self._state.viewports) or index == self._state.active_viewport_index:
            return
        self._state.active_viewport_index = index
        self.active_viewport_changed.emit(index)
        self.grid_state_changed.emit(self._state.copy())

    def set_display_sets_for_viewport(
        self,
        viewport_index: int,
        display_set_instance_uids: List[str],
        display_set_options: Optional[List[DisplaySetOptions]] = None,
    ) -> bool:
        """
        Manually substitute the display sets of one viewport.

        The viewport keeps its display set options unless new ones are given,
        so a reuse id declared for the slot now refers to the substituted
        display set the next time the layout is cached.

        Args:
            viewport_index: Index of the viewport to change
            display_set_instance_uids: Display sets to show
            display_set_options: Optional replacement options

        Returns:
            True if the viewport exists and was updated
        """
        if not 0 <= viewport_index < len(self._state.viewports):
            print(f"[VIEWPORT GRID] No viewport at index {viewport_index}")
            return False
        state = self._state.copy()
        cell = state.viewports[viewport_index]
        cell.display_set_instance_uids = list(display_set_instance_uids)
        if display_set_options is not None:
            cell.display_set_options = list(display_set_options)
        cell.viewport_options.presentation_id = None
        cell.viewport_options.presentation_id = get_presentation_id(
            cell, state.viewports, self.max_display_instances
        )
        self.set_state(state)
        return True
