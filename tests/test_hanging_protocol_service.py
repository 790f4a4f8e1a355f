"""
Tests for hanging protocol evaluation passes (core.hanging_protocol_service)
and session loading (core.hanging_protocol_session).
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from PySide6.QtCore import QCoreApplication
from pydicom.dataset import FileDataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

from core.hanging_protocol_errors import NoApplicableStageError, ProtocolNotFoundError
from core.hanging_protocol_model import HPInfo
from core.hanging_protocol_service import HangingProtocolService
from core.protocol_registry import ProtocolRegistry
from core.reconciliation_store import ReuseKey, StageKey
from core.viewport_grid_state import ViewportCell, ViewportGridState
from hanging_protocol_fixtures import (
    PRIOR_STUDY_UID,
    STUDY_UID,
    ct_compare_protocol,
    grid,
    make_catalog,
    make_display_set,
    make_session,
    stack_slot,
)


def prior_protocol():
    """Protocol comparing the current study with one prior."""
    return {
        "id": "withPrior",
        "numberOfPriorsReferenced": 1,
        "displaySetSelectors": {
            "current": {"seriesMatchingRules": [{"attribute": "StudyInstanceUID", "constraint": {"equals": STUDY_UID}, "required": True}]},
            "prior": {"seriesMatchingRules": [{"attribute": "StudyInstanceUID", "constraint": {"equals": PRIOR_STUDY_UID}, "required": True}]},
        },
        "stages": [
            {
                "id": "compare",
                "viewportStructure": grid(1, 2),
                "viewports": [stack_slot("current"), stack_slot("prior")],
            },
        ],
    }


class TestHangingProtocolService(unittest.TestCase):
    """Tests for matching and apply_protocol."""

    def _service(self, display_sets, protocols=()):
        registry = ProtocolRegistry()
        for protocol in protocols:
            registry.add_protocol(protocol)
        return HangingProtocolService(registry, make_catalog(display_sets))

    def test_best_scoring_protocol_matches(self):
        service = self._service([make_display_set("ds-1")], [ct_compare_protocol()])
        self.assertEqual(service.find_matching_protocol(STUDY_UID).protocol_id, "ctCompare")

    def test_unmatched_study_gets_default(self):
        service = self._service([make_display_set("ds-1", modality="MR")], [ct_compare_protocol()])
        self.assertEqual(service.find_matching_protocol(STUDY_UID).protocol_id, "default")

    def test_missing_default_raises(self):
        registry = ProtocolRegistry(include_default=False)
        service = HangingProtocolService(registry, make_catalog([make_display_set("ds-1")]))
        with self.assertRaises(ProtocolNotFoundError):
            service.find_matching_protocol(STUDY_UID)

    def test_protocol_needing_priors(self):
        without_prior = self._service([make_display_set("ds-1")], [prior_protocol()])
        self.assertEqual(without_prior.find_matching_protocol(STUDY_UID).protocol_id, "default")
        result = without_prior.apply_protocol("withPrior", STUDY_UID)
        self.assertFalse(result.success)
        self.assertIsInstance(result.error, NoApplicableStageError)

        with_prior = self._service(
            [make_display_set("ds-1"), make_display_set("ds-p", study_uid=PRIOR_STUDY_UID)],
            [prior_protocol()],
        )
        self.assertEqual(with_prior.get_prior_study_uids(STUDY_UID), [PRIOR_STUDY_UID])
        result = with_prior.apply_protocol("withPrior", STUDY_UID)
        self.assertTrue(result.success)
        self.assertEqual(result.grid_state.get_display_set_instance_uids(), ["ds-1", "ds-p"])

    def test_unknown_protocol_and_stage(self):
        service = self._service([make_display_set("ds-1")])
        self.assertIsInstance(service.apply_protocol("nope", STUDY_UID).error, ProtocolNotFoundError)
        self.assertIsInstance(service.apply_protocol("default", STUDY_UID, stage_index=9).error, NoApplicableStageError)
        self.assertIsNone(service.get_stage_index("default", stage_id="missing"))
        self.assertEqual(service.get_stage_index("default", stage_id="1x2"), 1)

    def test_apply_does_not_touch_inputs(self):
        service = self._service([make_display_set("ds-1"), make_display_set("ds-2")])
        reuse_id_map = {ReuseKey(STUDY_UID, "position-0,0"): "ds-2"}
        result = service.apply_protocol("default", STUDY_UID, reuse_id_map=reuse_id_map)
        self.assertEqual(result.grid_state.get_display_set_instance_uids(), ["ds-2"])
        self.assertEqual(result.hp_info, HPInfo("default", "default", 0, STUDY_UID))
        self.assertEqual(reuse_id_map, {ReuseKey(STUDY_UID, "position-0,0"): "ds-2"})

    def test_cached_layout_restored_as_copy(self):
        service = self._service([make_display_set("ds-1")])
        cached = ViewportGridState([ViewportCell(0, "0-0", ["ds-1"]), ViewportCell(1, "1-0", [])], 0, 1, 2)
        store = {StageKey(STUDY_UID, "default", 0): cached}
        result = service.apply_protocol("default", STUDY_UID, viewport_grid_store=store)
        self.assertTrue(result.restored)
        self.assertEqual(result.grid_state, cached)
        self.assertIsNot(result.grid_state, cached)

    def test_stages_status_reflect_catalog(self):
        service = self._service([make_display_set("ds-1")], [ct_compare_protocol()])
        protocol = service.get_protocol_by_id("ctCompare")
        self.assertEqual(service.get_stages_status(protocol, STUDY_UID), ["enabled", "disabled"])
        service.display_set_service.add_display_sets([make_display_set("ds-2")])
        self.assertEqual(service.get_stages_status(protocol, STUDY_UID), ["enabled", "enabled"])


def write_dicom(path: Path, series_uid: str, instance_number: int) -> None:
    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = "1.2.840.10008.5.1.4.1.1.2"
    meta.MediaStorageSOPInstanceUID = generate_uid()
    meta.TransferSyntaxUID = ExplicitVRLittleEndian
    ds = FileDataset(str(path), {}, file_meta=meta, preamble=b"\0" * 128)
    ds.SOPClassUID = meta.MediaStorageSOPClassUID
    ds.SOPInstanceUID = meta.MediaStorageSOPInstanceUID
    ds.StudyInstanceUID = STUDY_UID
    ds.SeriesInstanceUID = series_uid
    ds.SeriesNumber = 1
    ds.InstanceNumber = instance_number
    ds.Modality = "CT"
    ds.save_as(str(path))


class TestHangingProtocolSession(unittest.TestCase):
    """Loading DICOM files into a session."""

    @classmethod
    def setUpClass(cls):
        cls.app = QCoreApplication.instance() or QCoreApplication(sys.argv)

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_load_paths_and_apply(self):
        data_dir = self.root / "data"
        data_dir.mkdir()
        for i in range(1, 4):
            write_dicom(data_dir / f"ct{i}.dcm", "1.2.840.99999.1.1", i)
        single = self.root / "single.dcm"
        write_dicom(single, "1.2.840.99999.1.2", 1)

        session = make_session(str(self.root / "config"), protocols=[ct_compare_protocol()])
        created = session.load_paths([str(data_dir), str(single)])
        self.assertEqual(len(created), 2)
        self.assertEqual([ds.num_image_frames for ds in created], [3, 1])

        self.assertTrue(session.apply_initial_protocol())
        self.assertEqual(session.controller.get_hp_info().protocol_id, "ctCompare")
        self.assertEqual(
            session.viewport_grid_service.get_state().get_display_set_instance_uids(),
            [created[0].display_set_instance_uid],
        )

    def test_protocol_directories_loaded_from_config(self):
        protocol_dir = self.root / "protocols"
        protocol_dir.mkdir()
        (protocol_dir / "ct.json").write_text(
            '{"id": "fromDisk", "stages": [{"id": "one", "viewports": []}]}', encoding="utf-8"
        )
        session = make_session(str(self.root / "config"), protocol_directories=[str(protocol_dir)])
        self.assertIn("fromDisk", session.registry)


if __name__ == '__main__':
    unittest.main()
