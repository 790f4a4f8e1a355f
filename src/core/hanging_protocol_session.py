"""
Hanging Protocol Session

This module wires the hanging protocol engine for one viewing session: the
display set catalog, protocol registry, planner, services, reconciliation
store and navigation controller. Closing the session clears the store so no
layout state outlives it.

Inputs:
    - Optional ConfigManager (settings and protocol directories)
    - DICOM files/directories or pydicom datasets to catalog

Outputs:
    - A ready HangingProtocolController and its collaborators

Requirements:
    - core modules of the hanging protocol engine
    - utils.config_manager for settings
"""

import os
from typing import List, Optional

from pydicom.dataset import Dataset

from core.dicom_loader import DICOMLoader
from core.display_set_service import DisplaySet, DisplaySetService
from core.hanging_protocol_controller import HangingProtocolController
from core.hanging_protocol_service import HangingProtocolService
from core.notification_service import NotificationService
from core.protocol_registry import ProtocolRegistry
from core.reconciliation_store import ReconciliationStore
from core.viewport_grid_service import ViewportGridService
from core.viewport_planner import ViewportAssignmentPlanner
from utils.config_manager import ConfigManager


class HangingProtocolSession:
    """
    Composition root for one viewing session.
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """
        Create the session context.

        Args:
            config_manager: Settings (a ConfigManager for the user config directory if None)
        """
        self.config_manager = config_manager or ConfigManager()

        self.dicom_loader = DICOMLoader()
        self.display_set_service = DisplaySetService(self.config_manager.get_single_image_modalities())
        self.registry = ProtocolRegistry()
        for directory in self.config_manager.get_protocol_directories():
            self.registry.load_directory(directory)

        max_display_instances = self.config_manager.get_max_display_instances()
        self.planner = ViewportAssignmentPlanner(
            self.display_set_service,
            max_display_instances=max_display_instances,
            strict_reuse_validation=self.config_manager.get_strict_reuse_validation(),
        )
        self.hanging_protocol_service = HangingProtocolService(
            self.registry,
            self.display_set_service,
            self.planner,
            default_protocol_id=self.config_manager.get_default_protocol_id(),
        )
        self.store = ReconciliationStore()
        self.viewport_grid_service = ViewportGridService(max_display_instances)
        self.notification_service = NotificationService()
        self.controller = HangingProtocolController(
            self.hanging_protocol_service,
            self.viewport_grid_service,
            self.store,
            self.notification_service,
            self.config_manager,
        )

    def load_datasets(self, datasets: List[Dataset]) -> List[DisplaySet]:
        """Catalog already loaded datasets."""
        return self.display_set_service.add_datasets(datasets)

    def load_paths(self, paths: List[str]) -> List[DisplaySet]:
        """
        Load DICOM files and directories and catalog them.

        Args:
            paths: Files or directories (directories are searched recursively)

        Returns:
            Display sets created
        """
        datasets: List[Dataset] = []
        for path in paths:
            if os.path.isdir(path):
                datasets.extend(self.dicom_loader.load_directory(path))
            else:
                dataset = self.dicom_loader.load_file(path)
                if dataset is not None:
                    datasets.append(dataset)
        return self.load_datasets(datasets)

    def apply_initial_protocol(self, study_uid: Optional[str] = None) -> bool:
        """
        Apply the protocol matching a study (the first cataloged study if None).

        Returns:
            True if a layout was applied
        """
        return self.controller.set_hanging_protocol(active_study_uid=study_uid)

    def close(self) -> None:
        """End the session: forget all cached layouts and display sets."""
        self.store.clear()
        self.display_set_service.clear()
        self.dicom_loader.clear()
        self.controller.hp_info = None
        print("[HANGING PROTOCOL] Session closed")
