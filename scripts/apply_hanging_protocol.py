"""
Hanging Protocol Inspection Tool

This script loads a DICOM folder, applies the best matching hanging protocol
(or a named one) and prints the resulting viewport grid, the status of every
stage, and the grid after stepping through the stages.

Usage:
    python scripts/apply_hanging_protocol.py <dicom_folder> [protocol_id] [protocol_dir ...]
"""

import sys
import os
import io
import tempfile

# Force UTF-8 encoding for stdout on Windows
if sys.platform == 'win32':
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.hanging_protocol_session import HangingProtocolSession
from utils.config_manager import ConfigManager


def print_grid(session: HangingProtocolSession) -> None:
    """Print the current grid of a session."""
    state = session.viewport_grid_service.get_state()
    hp_info = session.controller.get_hp_info()
    if hp_info is not None:
        print(f"Protocol: {hp_info.protocol_id}  Stage: {hp_info.stage_index} ({hp_info.stage_id})")
    print(f"Layout: {state.num_rows}x{state.num_cols}  Active viewport: {state.active_viewport_index}")
    for cell in state.viewports:
        descriptions = []
        for uid in cell.display_set_instance_uids:
            display_set = session.display_set_service.get_display_set_by_uid(uid)
            if display_set is None:
                descriptions.append(uid)
            else:
                descriptions.append(
                    f"{display_set.modality} #{display_set.get_attribute('SeriesNumber')} "
                    f"'{display_set.get_attribute('SeriesDescription', '')}'"
                )
        content = ", ".join(descriptions) if descriptions else "(empty)"
        print(f"   [{cell.position_id}] {content}")
        if cell.presentation_id:
            print(f"          presentation: {cell.presentation_id}")


def inspect_folder(folder: str, protocol_id: str = None, protocol_dirs=None) -> None:
    """Load a folder and walk through the stages of the applied protocol."""
    print(f"\n{'='*60}")
    print(f"Hanging Protocol Inspection")
    print(f"{'='*60}")
    print(f"Folder: {folder}\n")

    # Use a throwaway config so the user's settings are not changed
    config = ConfigManager(config_dir=tempfile.mkdtemp(prefix="hp_inspect_"))
    for directory in protocol_dirs or []:
        config.add_protocol_directory(directory)

    session = HangingProtocolSession(config)
    display_sets = session.load_paths([folder])
    print(f"Display sets: {len(display_sets)}")
    for study_uid in session.display_set_service.get_study_uids():
        attributes = session.display_set_service.get_study_attributes(study_uid)
        print(f"   Study {study_uid} {attributes.get('StudyDescription', '')} "
              f"modalities={attributes.get('ModalitiesInStudy')}")

    if protocol_id:
        applied = session.controller.set_hanging_protocol(protocol_id=protocol_id)
    else:
        applied = session.apply_initial_protocol()
    if not applied:
        print("\nNo hanging protocol could be applied.")
        session.close()
        return

    print()
    print_grid(session)
    print(f"\nStage status: {session.controller.get_stages_status()}")

    while session.controller.next_stage():
        print()
        print_grid(session)

    session.close()
    print(f"\n{'='*60}")
    print(f"Inspection Complete")
    print(f"{'='*60}\n")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python apply_hanging_protocol.py <dicom_folder> [protocol_id] [protocol_dir ...]")
        print("\nExample:")
        print("  python scripts/apply_hanging_protocol.py path/to/study default")
        sys.exit(1)

    folder = sys.argv[1]
    if not os.path.isdir(folder):
        print(f"Error: Folder not found: {folder}")
        sys.exit(1)

    inspect_folder(folder, sys.argv[2] if len(sys.argv) > 2 else None, sys.argv[3:])
