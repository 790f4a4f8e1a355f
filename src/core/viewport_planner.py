"""
Viewport Assignment Planner

Maps the viewport slots of a stage, the resolved display set matches, the
reuse id map and the position cache onto a concrete viewport grid.

For each grid position, in row-major order:
    1. A slot reference whose reuseId is in the reuse map uses that display set
       directly (validated against the selector when validateReuseId is set).
    2. Otherwise a live position cache entry for the position id is copied
       (only supplied when resizing the grid).
    3. Otherwise the display set is chosen from the selector's ranked matches,
       skipping display sets already placed unless displaySetIndex is explicit.
    4. Nothing found leaves the position empty.

Positions beyond the stage's declared slots use the stage's or protocol's
default viewport. Every filled cell gets a unique presentation id.

Inputs:
    - Protocol, stage and DisplaySetResolver for the pass
    - Reuse id map, prior grid and position cache
    - Optional grid dimensions override

Outputs:
    - New ViewportGridState plus non-fatal warnings

Requirements:
    - core.display_set_resolver, core.presentation_id
"""

from typing import Any, Dict, List, Optional, Tuple

from core.display_set_resolver import DisplaySetResolver, select_display_set
from core.hanging_protocol_errors import HangingProtocolError, InvalidReuseReferenceError
from core.hanging_protocol_model import (
    DisplaySetOptions,
    Protocol,
    Stage,
    StackViewportOptions,
    ViewportSlot,
    grid_position_id,
)
from core.presentation_id import DEFAULT_MAX_DISPLAY_INSTANCES, get_presentation_id
from core.reconciliation_store import ReuseKey
from core.viewport_grid_state import ViewportCell, ViewportGridState


class ViewportAssignmentPlanner:
    """
    Plans viewport grids for stages.

    Stateless between calls; the display set catalog is only read.
    """

    def __init__(
        self,
        display_set_service: Any,
        max_display_instances: int = DEFAULT_MAX_DISPLAY_INSTANCES,
        strict_reuse_validation: bool = False,
    ):
        """
        Initialize the planner.

        Args:
            display_set_service: Catalog providing get_display_set_by_uid
            max_display_instances: Ordinal limit for presentation ids
            strict_reuse_validation: Raise InvalidReuseReferenceError instead of
                falling back to fresh matching when a reuse id fails its
                validateReuseId check
        """
        self.display_set_service = display_set_service
        self.max_display_instances = max_display_instances
        self.strict_reuse_validation = strict_reuse_validation

    def plan(
        self,
        protocol: Protocol,
        stage: Stage,
        resolver: DisplaySetResolver,
        reuse_id_map: Optional[Dict[ReuseKey, str]] = None,
        prior_grid: Optional[ViewportGridState] = None,
        viewports_by_position: Optional[Dict[str, ViewportCell]] = None,
        num_rows: Optional[int] = None,
        num_cols: Optional[int] = None,
        in_display: Optional[List[str]] = None,
    ) -> Tuple[ViewportGridState, List[HangingProtocolError]]:
        """
        Plan the grid for a stage.

        Args:
            protocol: Protocol owning the stage
            stage: Stage to lay out
            resolver: Resolver for this evaluation pass
            reuse_id_map: ReuseKey -> display set UID
            prior_grid: Grid currently shown (keeps the active viewport index)
            viewports_by_position: Position cache (grid resize only)
            num_rows: Rows override (grid resize)
            num_cols: Columns override (grid resize)
            in_display: Display set UIDs treated as already shown

        Returns:
            (new grid state, warnings)

        Raises:
            InvalidReuseReferenceError: strict validation and a reuse id fails validateReuseId
        """
        structure = stage.viewport_structure
        resized = num_rows is not None and num_cols is not None
        rows = num_rows if resized else structure.rows
        cols = num_cols if resized else structure.columns
        cell_count = rows * cols if resized else structure.cell_count

        reuse_id_map = reuse_id_map or {}
        viewports_by_position = viewports_by_position or {}
        placed: List[str] = list(in_display or [])
        warnings: List[HangingProtocolError] = []
        cells: List[ViewportCell] = []

        for pos in range(cell_count):
            position_id = grid_position_id(pos, cols) if resized else structure.position_id(pos)
            slot = self._slot_for_position(protocol, stage, pos)
            cell = self._plan_cell(
                pos, position_id, slot, resolver, reuse_id_map, viewports_by_position, placed, warnings
            )
            cells.append(cell)

        for cell in cells:
            cell.viewport_options.presentation_id = None
        for cell in cells:
            cell.viewport_options.presentation_id = get_presentation_id(cell, cells, self.max_display_instances)

        active_index = 0
        if prior_grid is not None and 0 <= prior_grid.active_viewport_index < cell_count:
            active_index = prior_grid.active_viewport_index
        return ViewportGridState(cells, active_index, rows, cols), warnings

    def _slot_for_position(self, protocol: Protocol, stage: Stage, pos: int) -> Optional[ViewportSlot]:
        if pos < len(stage.viewports):
            return stage.viewports[pos]
        return stage.default_viewport or protocol.default_viewport

    def _plan_cell(
        self,
        pos: int,
        position_id: str,
        slot: Optional[ViewportSlot],
        resolver: DisplaySetResolver,
        reuse_id_map: Dict[ReuseKey, str],
        viewports_by_position: Dict[str, ViewportCell],
        placed: List[str],
        warnings: List[HangingProtocolError],
    ) -> ViewportCell:
        reused: Dict[int, str] = {}
        if slot is not None:
            for i, display_set_options in enumerate(slot.display_sets):
                uid = self._reuse_display_set(display_set_options, resolver, reuse_id_map, warnings)
                if uid:
                    reused[i] = uid

        if not reused:
            cached = viewports_by_position.get(position_id)
            if cached is not None and self._is_live(cached):
                cell = cached.copy()
                cell.viewport_index = pos
                cell.position_id = position_id
                if not cell.viewport_options.viewport_id:
                    cell.viewport_options.viewport_id = f"viewport-{pos}"
                placed.extend(uid for uid in cell.display_set_instance_uids if uid not in placed)
                return cell

        if slot is None:
            return ViewportCell(pos, position_id, viewport_options=StackViewportOptions(viewport_id=f"viewport-{pos}"))

        uids: List[str] = []
        options: List[DisplaySetOptions] = []
        for i, display_set_options in enumerate(slot.display_sets):
            uid = reused.get(i)
            if uid is None:
                match = select_display_set(
                    display_set_options, resolver.get_matches(display_set_options.selector_id), placed
                )
                uid = match.display_set_instance_uid if match else None
            if uid is None:
                continue
            if uid not in placed:
                placed.append(uid)
            uids.append(uid)
            options.append(display_set_options)

        viewport_options = slot.viewport_options.copy()
        if not viewport_options.viewport_id:
            viewport_options.viewport_id = f"viewport-{pos}"
        return ViewportCell(pos, position_id, uids, options, viewport_options)

    def _reuse_display_set(
        self,
        display_set_options: DisplaySetOptions,
        resolver: DisplaySetResolver,
        reuse_id_map: Dict[ReuseKey, str],
        warnings: List[HangingProtocolError],
    ) -> Optional[str]:
        reuse_id = display_set_options.reuse_id
        if not reuse_id:
            return None
        uid = reuse_id_map.get(ReuseKey(resolver.active_study_uid, reuse_id))
        if not uid:
            return None
        error = InvalidReuseReferenceError(reuse_id, uid, display_set_options.selector_id)
        if self.display_set_service.get_display_set_by_uid(uid) is not None:
            if not display_set_options.validate_reuse_id or resolver.display_set_satisfies(
                display_set_options.selector_id, uid
            ):
                return uid
            # Only a failed validateReuseId check is an error in strict mode
            if self.strict_reuse_validation:
                raise error
        print(f"[HANGING PROTOCOL] Ignoring reuse id: {error}")
        warnings.append(error)
        return None

    def _is_live(self, cell: ViewportCell) -> bool:
        """A cached cell is live if it shows something and all its display sets still exist."""
        if cell.is_empty:
            return False
        return all(
            self.display_set_service.get_display_set_by_uid(uid) is not None
            for uid in cell.display_set_instance_uids
        )
