"""
Presentation Id

Builds the presentation id of a viewport: the key under which view state
(zoom, pan, camera, window/level) is saved and restored. The same display set
can be shown in several viewports at once, so an ordinal ("display instance")
is bumped until the id is not used by any other viewport.

Format: "&"-joined [viewportType, ordinal, orientation?, *displaySetInstanceUIDs,
presentationPrefix?]

Inputs:
    - The viewport cell needing an id
    - The other cells of the grid

Outputs:
    - Presentation id string, or None for empty viewports

Requirements:
    - core.viewport_grid_state types
"""

from typing import List, Optional, Sequence

from core.viewport_grid_state import ViewportCell


DEFAULT_MAX_DISPLAY_INSTANCES = 128


def get_presentation_id(
    viewport: Optional[ViewportCell],
    viewports: Optional[Sequence[ViewportCell]] = None,
    max_display_instances: int = DEFAULT_MAX_DISPLAY_INSTANCES,
) -> Optional[str]:
    """
    Select a presentation id for a viewport.

    Args:
        viewport: Viewport to name
        viewports: Other viewports whose presentation ids are already taken
        max_display_instances: Upper bound (exclusive) on the ordinal

    Returns:
        Presentation id, or None if nothing is displayed
    """
    if viewport is None or not viewport.display_set_instance_uids:
        return None
    options = viewport.viewport_options
    id_parts: List[str] = [options.viewport_type or "stack", "0"]
    if options.orientation:
        id_parts.append(options.orientation)
    id_parts.extend(viewport.display_set_instance_uids)
    if options.presentation_prefix:
        id_parts.append(options.presentation_prefix)

    if viewports is None:
        return "&".join(id_parts)

    taken = {
        other.viewport_options.presentation_id
        for other in viewports
        if other is not viewport and other.viewport_options.presentation_id
    }
    for display_instance in range(max_display_instances):
        id_parts[1] = str(display_instance)
        candidate = "&".join(id_parts)
        if candidate not in taken:
            return candidate
    return "&".join(id_parts)
