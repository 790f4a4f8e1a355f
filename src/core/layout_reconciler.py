"""
Layout Reconciler

Computes speculative reconciliation store updates from the current grid
before a layout change is applied. The navigation controller commits the
returned partial states only once the new layout has been applied.

reuse_cached_layouts records:
    - the current HPInfo as the last used stage for its protocol/study
    - a snapshot of the grid when it deviates from the stage's declared shape
    - the reuse id of every displayed display set, plus the active viewport's
      first display set under the "activeDisplaySet" reuse id

find_viewports_by_position records the current cells by position id and the
display sets that will initially remain in view after a resize.

Inputs:
    - Current ViewportGridState and HPInfo
    - Active stage definition
    - Reconciliation store snapshot

Outputs:
    - Partial states for ReconciliationStore.reduce()

Requirements:
    - core.reconciliation_store key types
"""

from typing import Any, Dict, List, Tuple

from core.hanging_protocol_model import HPInfo, Stage, grid_position_id
from core.reconciliation_store import (
    ACTIVE_DISPLAY_SET_REUSE_ID,
    HangingKey,
    ReuseKey,
    StageKey,
)
from core.viewport_grid_state import ViewportGridState
from utils.debug_log import debug_log


def is_custom_layout(state: ViewportGridState, stage: Stage) -> bool:
    """True if the grid differs from the stage's declared viewport count or rows/columns."""
    structure = stage.viewport_structure
    return (
        len(state.viewports) != structure.cell_count
        or state.num_rows != structure.rows
        or state.num_cols != structure.columns
    )


def reuse_cached_layouts(
    state: ViewportGridState,
    hp_info: HPInfo,
    stage: Stage,
    store_state: Dict[str, Dict[Any, Any]],
) -> Dict[str, Dict[Any, Any]]:
    """
    Compute the store update describing the currently applied layout.

    Args:
        state: Current grid state
        hp_info: Currently applied protocol/stage
        stage: The applied stage definition
        store_state: Snapshot from ReconciliationStore.get_state()

    Returns:
        Partial state with hanging, viewport_grid_store and reuse_id_map entries
    """
    study_uid = hp_info.active_study_uid
    store_key = StageKey(study_uid, hp_info.protocol_id, hp_info.stage_index)
    hanging = {HangingKey(study_uid, hp_info.protocol_id): hp_info}
    viewport_grid_store: Dict[StageKey, Any] = {}
    reuse_id_map: Dict[ReuseKey, str] = {}

    if is_custom_layout(state, stage):
        viewport_grid_store[store_key] = state.copy()
    elif store_state.get("viewport_grid_store", {}).get(store_key) is not None:
        # Back to the declared shape: overwrite the stale custom snapshot
        viewport_grid_store[store_key] = None

    for idx, viewport in enumerate(state.viewports):
        for i, display_set_uid in enumerate(viewport.display_set_instance_uids):
            if not display_set_uid:
                continue
            if idx == state.active_viewport_index and i == 0:
                reuse_id_map[ReuseKey(study_uid, ACTIVE_DISPLAY_SET_REUSE_ID)] = display_set_uid
            if i < len(viewport.display_set_options):
                reuse_id = viewport.display_set_options[i].reuse_id
                if reuse_id:
                    reuse_id_map[ReuseKey(study_uid, reuse_id)] = display_set_uid

    debug_log(
        "layout_reconciler.py:reuse_cached_layouts",
        "Computed cache update",
        {
            "stageKey": str(store_key),
            "custom": store_key in viewport_grid_store and viewport_grid_store[store_key] is not None,
            "reuseIds": {str(key): value for key, value in reuse_id_map.items()},
        },
    )
    return {"hanging": hanging, "viewport_grid_store": viewport_grid_store, "reuse_id_map": reuse_id_map}


def find_viewports_by_position(
    state: ViewportGridState,
    num_rows: int,
    num_cols: int,
    store_state: Dict[str, Dict[Any, Any]],
) -> Tuple[Dict[str, Dict[Any, Any]], List[str]]:
    """
    Record the current cells by position id ahead of a grid resize.

    Args:
        state: Current grid state
        num_rows: New number of rows
        num_cols: New number of columns
        store_state: Snapshot from ReconciliationStore.get_state()

    Returns:
        (partial state with viewports_by_position entries,
         display set UIDs that stay in view at the new size)
    """
    by_position: Dict[str, Any] = {}
    for viewport in state.viewports:
        if viewport.position_id and not viewport.is_empty:
            stored = viewport.copy()
            stored.viewport_options.viewport_id = None
            stored.viewport_options.presentation_id = None
            by_position[viewport.position_id] = stored

    merged = dict(store_state.get("viewports_by_position", {}))
    merged.update(by_position)

    initial_in_display: List[str] = []
    for pos in range(num_rows * num_cols):
        cached = merged.get(grid_position_id(pos, num_cols))
        if cached is not None:
            initial_in_display.extend(cached.display_set_instance_uids)

    return {"viewports_by_position": by_position}, initial_in_display
