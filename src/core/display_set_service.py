"""
Display Set Service

This module builds and catalogs display sets: the logical groups of image
instances (normally one series) that hanging protocols place into viewports.

Datasets are grouped by StudyInstanceUID and composite series key, sorted by
InstanceNumber, and split so that multi-frame instances and single-image
modalities (CR, MG, DX by default) get their own display sets. The rest of
each series becomes one stack display set.

Inputs:
    - pydicom.Dataset objects (headers are enough)
    - Externally built DisplaySet objects

Outputs:
    - DisplaySet objects with attribute bags for rule matching
    - Per-study display set lists and study-level attributes

Requirements:
    - pydicom library (datasets, deterministic UID generation)
    - numpy for orientation comparison
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
from pydicom.dataset import Dataset
from pydicom.uid import generate_uid

from utils.dicom_utils import get_composite_series_key, get_frame_count, get_tag_value


DEFAULT_SINGLE_IMAGE_MODALITIES = ("CR", "MG", "DX")
RECONSTRUCTABLE_MODALITIES = ("CT", "MR", "PT", "NM")


class DisplaySet:
    """
    A displayable group of instances.

    Attributes used by matching rules live in the attributes dictionary under
    their protocol-facing names; anything not found there is looked up by DICOM
    keyword on the first instance.
    """

    def __init__(
        self,
        display_set_instance_uid: str,
        study_instance_uid: str,
        series_instance_uid: str = "",
        instances: Optional[List[Dataset]] = None,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        self.display_set_instance_uid = display_set_instance_uid
        self.study_instance_uid = study_instance_uid
        self.series_instance_uid = series_instance_uid
        self.instances: List[Dataset] = list(instances or [])
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self.attributes["displaySetInstanceUID"] = display_set_instance_uid
        self.attributes["StudyInstanceUID"] = study_instance_uid
        self.attributes.setdefault("SeriesInstanceUID", series_instance_uid)
        self.attributes.setdefault("numImageFrames", len(self.instances))

    def get_attribute(self, key: str, default: Any = None) -> Any:
        """Get a matching attribute, falling back to the first instance's DICOM keyword."""
        if key in self.attributes:
            return self.attributes[key]
        if self.instances:
            first = self.instances[0]
            if key in first.dir():
                return first.get(key, default)
        return default

    @property
    def modality(self) -> str:
        return str(self.attributes.get("Modality", ""))

    @property
    def num_image_frames(self) -> int:
        return int(self.attributes.get("numImageFrames", 0) or 0)

    def __repr__(self) -> str:
        return (
            f"DisplaySet({self.display_set_instance_uid!r}, modality={self.modality!r}, "
            f"frames={self.num_image_frames})"
        )


def _instance_sort_key(dataset: Dataset) -> Tuple[float, float]:
    instance_number = get_tag_value(dataset, "InstanceNumber")
    slice_location = get_tag_value(dataset, "SliceLocation")
    try:
        primary = float(instance_number)
    except (TypeError, ValueError):
        primary = float('inf')
    try:
        secondary = float(slice_location)
    except (TypeError, ValueError):
        secondary = float('inf')
    return primary, secondary


def _is_reconstructable(instances: List[Dataset], modality: str) -> bool:
    """Stacks of 3+ single-frame slices sharing one orientation can be shown as a volume."""
    if modality not in RECONSTRUCTABLE_MODALITIES or len(instances) < 3:
        return False
    orientations = []
    for dataset in instances:
        orientation = get_tag_value(dataset, "ImageOrientationPatient")
        if orientation is None or len(orientation) != 6:
            return False
        orientations.append([float(value) for value in orientation])
    values = np.asarray(orientations)
    return bool(np.allclose(values, values[0], atol=1e-3))


class DisplaySetService:
    """
    Catalog of display sets per study.

    Display sets keep insertion order within a study; that order is the ordinal
    used to break score ties during matching.
    """

    def __init__(self, single_image_modalities: Iterable[str] = DEFAULT_SINGLE_IMAGE_MODALITIES):
        """
        Initialize the service.

        Args:
            single_image_modalities: Modalities whose instances each get their own display set
        """
        self.single_image_modalities = tuple(single_image_modalities)
        self._display_sets: "OrderedDict[str, DisplaySet]" = OrderedDict()
        self._study_attributes: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    def add_datasets(self, datasets: List[Dataset]) -> List[DisplaySet]:
        """
        Create display sets from DICOM datasets.

        Args:
            datasets: pydicom datasets (any mix of studies and series)

        Returns:
            The newly created display sets in catalog order
        """
        studies: "OrderedDict[str, OrderedDict[str, List[Dataset]]]" = OrderedDict()
        for dataset in datasets:
            study_uid = str(get_tag_value(dataset, "StudyInstanceUID", "") or "")
            series_uid = str(get_tag_value(dataset, "SeriesInstanceUID", "") or "")
            if not study_uid or not series_uid:
                continue
            series_key = get_composite_series_key(dataset)
            studies.setdefault(study_uid, OrderedDict()).setdefault(series_key, []).append(dataset)
            if study_uid not in self._study_attributes:
                self._study_attributes[study_uid] = self._study_attributes_from(dataset)

        created: List[DisplaySet] = []
        for study_uid, series_dict in studies.items():
            ordered_series = sorted(
                series_dict.items(),
                key=lambda item: _series_sort_key(item[1]),
            )
            for series_key, instances in ordered_series:
                instances = sorted(instances, key=_instance_sort_key)
                created.extend(self._make_display_sets(study_uid, series_key, instances))

        self.add_display_sets(created)
        print(f"[DISPLAY SETS] Created {len(created)} display set(s) from {len(datasets)} dataset(s)")
        return created

    def _make_display_sets(self, study_uid: str, series_key: str, instances: List[Dataset]) -> List[DisplaySet]:
        display_sets = []
        first = instances[0]
        modality = str(get_tag_value(first, "Modality", "") or "")
        stackable = []
        for dataset in instances:
            frames = get_frame_count(dataset)
            if frames > 1 or modality in self.single_image_modalities:
                sop_uid = str(get_tag_value(dataset, "SOPInstanceUID", "") or len(display_sets))
                display_sets.append(
                    self._make_display_set(study_uid, series_key, [dataset], frames, sop_uid)
                )
            else:
                stackable.append(dataset)
        if stackable:
            display_sets.append(self._make_display_set(study_uid, series_key, stackable, len(stackable), "stack"))
        return display_sets

    def _make_display_set(
        self, study_uid: str, series_key: str, instances: List[Dataset], num_frames: int, split_key: str
    ) -> DisplaySet:
        first = instances[0]
        modality = str(get_tag_value(first, "Modality", "") or "")
        series_number = get_tag_value(first, "SeriesNumber")
        attributes = {
            "SeriesNumber": int(series_number) if series_number not in (None, "") else None,
            "SeriesDescription": str(get_tag_value(first, "SeriesDescription", "") or ""),
            "SeriesDate": str(get_tag_value(first, "SeriesDate", "") or ""),
            "Modality": modality,
            "BodyPartExamined": str(get_tag_value(first, "BodyPartExamined", "") or ""),
            "numImageFrames": num_frames,
            "isMultiFrame": get_frame_count(first) > 1,
            "isReconstructable": _is_reconstructable(instances, modality),
            "FrameRate": _frame_rate(first),
            "InstanceNumber": get_tag_value(first, "InstanceNumber"),
        }
        uid = generate_uid(entropy_srcs=[study_uid, series_key, split_key])
        return DisplaySet(
            display_set_instance_uid=uid,
            study_instance_uid=study_uid,
            series_instance_uid=str(get_tag_value(first, "SeriesInstanceUID", "")),
            instances=instances,
            attributes=attributes,
        )

    def _study_attributes_from(self, dataset: Dataset) -> Dict[str, Any]:
        patient_name = get_tag_value(dataset, "PatientName", "")
        return {
            "StudyInstanceUID": str(get_tag_value(dataset, "StudyInstanceUID", "")),
            "StudyDescription": str(get_tag_value(dataset, "StudyDescription", "") or ""),
            "StudyDate": str(get_tag_value(dataset, "StudyDate", "") or ""),
            "PatientID": str(get_tag_value(dataset, "PatientID", "") or ""),
            "PatientName": str(patient_name or ""),
            "PatientSex": str(get_tag_value(dataset, "PatientSex", "") or ""),
        }

    def add_display_sets(self, display_sets: Iterable[DisplaySet]) -> None:
        """
        Register display sets built elsewhere (replaces entries with the same uid).

        Args:
            display_sets: DisplaySet objects
        """
        for display_set in display_sets:
            self._display_sets[display_set.display_set_instance_uid] = display_set
            self._study_attributes.setdefault(
                display_set.study_instance_uid, {"StudyInstanceUID": display_set.study_instance_uid}
            )

    def set_study_attributes(self, study_uid: str, attributes: Dict[str, Any]) -> None:
        """Merge study-level attributes used by study and protocol matching rules."""
        current = self._study_attributes.setdefault(study_uid, {"StudyInstanceUID": study_uid})
        current.update(attributes)

    def get_display_sets_for_study(self, study_uid: str) -> List[DisplaySet]:
        """
        Get the display sets of one study in catalog order.

        Args:
            study_uid: StudyInstanceUID

        Returns:
            List of DisplaySet (empty for unknown studies)
        """
        return [ds for ds in self._display_sets.values() if ds.study_instance_uid == study_uid]

    def get_display_set_by_uid(self, display_set_instance_uid: str) -> Optional[DisplaySet]:
        return self._display_sets.get(display_set_instance_uid)

    def get_active_display_sets(self) -> List[DisplaySet]:
        return list(self._display_sets.values())

    def get_study_uids(self) -> List[str]:
        """Study UIDs in the order they were first seen."""
        return list(self._study_attributes.keys())

    def get_study_attributes(self, study_uid: str) -> Dict[str, Any]:
        """
        Get study-level attributes, including derived ModalitiesInStudy and
        NumberOfStudyRelatedSeries.

        Args:
            study_uid: StudyInstanceUID

        Returns:
            Attribute dictionary (empty for unknown studies)
        """
        if study_uid not in self._study_attributes:
            return {}
        attributes = dict(self._study_attributes[study_uid])
        display_sets = self.get_display_sets_for_study(study_uid)
        modalities = []
        series_uids = set()
        for display_set in display_sets:
            if display_set.modality and display_set.modality not in modalities:
                modalities.append(display_set.modality)
            series_uids.add(display_set.series_instance_uid)
        attributes.setdefault("ModalitiesInStudy", modalities)
        attributes.setdefault("NumberOfStudyRelatedSeries", len(series_uids))
        return attributes

    def clear(self) -> None:
        """Remove all display sets and study attributes."""
        self._display_sets.clear()
        self._study_attributes.clear()


def _frame_rate(dataset: Dataset) -> Optional[float]:
    """Frames per second from RecommendedDisplayFrameRate, CineRate or FrameTime (ms)."""
    for keyword in ("RecommendedDisplayFrameRate", "CineRate"):
        value = get_tag_value(dataset, keyword)
        if value not in (None, ""):
            try:
                return float(value)
            except (TypeError, ValueError):
                pass
    frame_time = get_tag_value(dataset, "FrameTime")
    try:
        frame_time = float(frame_time)
    except (TypeError, ValueError):
        return None
    return 1000.0 / frame_time if frame_time > 0 else None


def _series_sort_key(instances: List[Dataset]) -> Tuple[float, str]:
    series_number = get_tag_value(instances[0], "SeriesNumber")
    try:
        number = float(series_number)
    except (TypeError, ValueError):
        number = float('inf')
    return number, str(get_tag_value(instances[0], "SeriesInstanceUID", ""))
