"""
Stage Enablement

Computes whether a protocol stage can be applied to the current display sets:
disabled stages are missing required content, passive stages have the required
viewports filled, enabled stages have at least the preferred viewports filled.

The status is derived fresh on every call and never cached, since display set
availability can change between navigation events.

Inputs:
    - Stage definition
    - Viewport match details for the stage
    - Resolver (for requiredDisplaySets checks)

Outputs:
    - "disabled", "passive" or "enabled"

Requirements:
    - core.display_set_resolver types
"""

from typing import Dict, Optional

from core.display_set_resolver import DisplaySetResolver, ViewportMatchDetails, match_stage_viewports
from core.hanging_protocol_model import Stage, StageStatus


STAGE_DISABLED: StageStatus = "disabled"
STAGE_PASSIVE: StageStatus = "passive"
STAGE_ENABLED: StageStatus = "enabled"


def count_filled_viewports(viewport_match_details: Dict[int, ViewportMatchDetails]) -> int:
    """Number of viewport slots with at least one resolved display set."""
    return sum(1 for details in viewport_match_details.values() if details.is_filled)


def compute_stage_status(
    stage: Stage,
    viewport_match_details: Dict[int, ViewportMatchDetails],
    resolver: Optional[DisplaySetResolver] = None,
) -> StageStatus:
    """
    Compute the status of a stage.

    Args:
        stage: Stage definition
        viewport_match_details: Slot index -> resolved display sets
        resolver: Resolver used to check requiredDisplaySets (skipped if None)

    Returns:
        "disabled", "passive" or "enabled"
    """
    if resolver is not None:
        for selector_id in stage.required_display_sets:
            if not resolver.get_matches(selector_id):
                return STAGE_DISABLED

    filled = count_filled_viewports(viewport_match_details)
    if filled < stage.required_viewports:
        return STAGE_DISABLED
    if filled >= stage.preferred_viewports:
        return STAGE_ENABLED
    return STAGE_PASSIVE


def evaluate_stage_status(stage: Stage, resolver: DisplaySetResolver) -> StageStatus:
    """Match a stage's viewports and compute its status in one step."""
    return compute_stage_status(stage, match_stage_viewports(stage, resolver), resolver)
