"""
DICOM Utility Functions

This module provides helper functions for reading DICOM header values used by
display set creation:
- Safe tag value lookup
- Frame counts for multi-frame instances
- Composite series keys

Inputs:
    - pydicom.Dataset objects

Outputs:
    - Tag values, frame counts and series keys

Requirements:
    - pydicom library
"""

from typing import Any

from pydicom.dataset import Dataset


def get_tag_value(dataset: Dataset, tag_name: str, default: Any = None) -> Any:
    """
    Get tag value from dataset.

    Args:
        dataset: pydicom Dataset
        tag_name: Tag keyword
        default: Default value if tag not found or empty

    Returns:
        Tag value or default
    """
    if tag_name not in dataset:
        return default
    value = dataset.get(tag_name, default)
    if value is None or value == "":
        return default
    return value


def get_frame_count(dataset: Dataset) -> int:
    """
    Get the number of frames in a DICOM dataset.

    Args:
        dataset: pydicom Dataset

    Returns:
        Number of frames (1 for single-frame or unreadable NumberOfFrames)
    """
    num_frames = get_tag_value(dataset, "NumberOfFrames")
    if num_frames is None:
        return 1
    try:
        return max(1, int(num_frames))
    except (ValueError, TypeError):
        return 1


def get_composite_series_key(dataset: Dataset) -> str:
    """
    Build the series grouping key.

    The same SeriesInstanceUID seen with different SeriesNumber values is kept
    apart, so the key combines both when SeriesNumber is present.

    Args:
        dataset: pydicom Dataset

    Returns:
        "SeriesInstanceUID_SeriesNumber" or "SeriesInstanceUID"
    """
    series_uid = str(get_tag_value(dataset, "SeriesInstanceUID", ""))
    series_number = get_tag_value(dataset, "SeriesNumber")
    if series_number is None:
        return series_uid
    return f"{series_uid}_{series_number}"
