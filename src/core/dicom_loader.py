"""
DICOM Header Loader

This module loads DICOM headers (no pixel data) from files and directories so
display sets can be built and matched against hanging protocols.

Inputs:
    - File paths (single or multiple)
    - Directory paths

Outputs:
    - List of successfully loaded DICOM datasets (header only)
    - List of files that failed to load (with error messages)

Requirements:
    - pydicom library for DICOM file reading
    - pathlib for path handling
"""

from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pydicom
from pydicom.errors import InvalidDicomError


class DICOMLoader:
    """
    Loads DICOM headers from files and directories.

    Files are tried regardless of extension; files that are not DICOM are
    recorded in failed_files rather than raising.
    """

    def __init__(self):
        """Initialize the DICOM loader."""
        self.loaded_files: List[pydicom.Dataset] = []
        self.failed_files: List[Tuple[str, str]] = []  # (path, error_message)

    def load_file(self, file_path: str) -> Optional[pydicom.Dataset]:
        """
        Load the header of a single DICOM file.

        Args:
            file_path: Path to the file

        Returns:
            Dataset, or None if the file could not be read as DICOM
        """
        try:
            return pydicom.dcmread(file_path, stop_before_pixels=True)
        except InvalidDicomError as e:
            self.failed_files.append((file_path, f"Not a DICOM file: {e}"))
        except (OSError, ValueError, EOFError) as e:
            self.failed_files.append((file_path, f"{type(e).__name__}: {e}"))
        return None

    def load_directory(
        self,
        directory_path: str,
        recursive: bool = True,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> List[pydicom.Dataset]:
        """
        Load all DICOM headers from a directory.

        Args:
            directory_path: Path to the directory
            recursive: If True, search subdirectories recursively
            progress_callback: Optional (current, total, filename) callback

        Returns:
            List of successfully loaded datasets
        """
        self.loaded_files = []
        self.failed_files = []

        dir_path = Path(directory_path)
        if not dir_path.exists() or not dir_path.is_dir():
            self.failed_files.append((directory_path, "Directory does not exist or is not a directory"))
            return []

        if recursive:
            file_paths = sorted(str(p) for p in dir_path.rglob('*') if p.is_file())
        else:
            file_paths = sorted(str(p) for p in dir_path.iterdir() if p.is_file())

        total_files = len(file_paths)
        for idx, file_path in enumerate(file_paths):
            if progress_callback:
                progress_callback(idx + 1, total_files, Path(file_path).name)
            dataset = self.load_file(file_path)
            if dataset is not None:
                self.loaded_files.append(dataset)

        if self.failed_files:
            print(f"[DICOM LOADER] Skipped {len(self.failed_files)} of {total_files} file(s) in {directory_path}")
        return list(self.loaded_files)

    def get_failed_files(self) -> List[Tuple[str, str]]:
        """
        Get list of files that failed to load.

        Returns:
            List of (file_path, error_message) tuples
        """
        return self.failed_files.copy()

    def clear(self) -> None:
        """Clear loaded and failed file lists."""
        self.loaded_files = []
        self.failed_files = []
