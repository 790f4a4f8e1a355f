"""
Unit tests for DICOM loader module.

Tests header loading from files and directories and error handling. DICOM
files are written to a temporary directory with pydicom.
"""

import unittest
import os
import tempfile
from pathlib import Path

# Add src to path
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pydicom.dataset import FileDataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

from core.dicom_loader import DICOMLoader


def write_dicom(path: Path, modality: str = "CT") -> None:
    """Write a minimal header-only DICOM file."""
    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = "1.2.840.10008.5.1.4.1.1.2"
    meta.MediaStorageSOPInstanceUID = generate_uid()
    meta.TransferSyntaxUID = ExplicitVRLittleEndian
    ds = FileDataset(str(path), {}, file_meta=meta, preamble=b"\0" * 128)
    ds.SOPClassUID = meta.MediaStorageSOPClassUID
    ds.SOPInstanceUID = meta.MediaStorageSOPInstanceUID
    ds.StudyInstanceUID = "1.2.3"
    ds.SeriesInstanceUID = "1.2.3.1"
    ds.Modality = modality
    ds.save_as(str(path))


class TestDICOMLoader(unittest.TestCase):
    """Test cases for DICOMLoader."""

    def setUp(self):
        """Set up test fixtures."""
        self.loader = DICOMLoader()
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_loader_initialization(self):
        """Test loader initialization."""
        self.assertEqual(len(self.loader.loaded_files), 0)
        self.assertEqual(len(self.loader.failed_files), 0)

    def test_load_nonexistent_file(self):
        """Test loading a non-existent file."""
        result = self.loader.load_file("/nonexistent/file.dcm")
        self.assertIsNone(result)
        self.assertEqual(len(self.loader.failed_files), 1)

    def test_load_file_reads_header(self):
        path = self.root / "image.dcm"
        write_dicom(path, modality="MR")
        dataset = self.loader.load_file(str(path))
        self.assertIsNotNone(dataset)
        self.assertEqual(dataset.Modality, "MR")

    def test_load_directory_recursive_skips_non_dicom(self):
        (self.root / "sub").mkdir()
        write_dicom(self.root / "a.dcm")
        write_dicom(self.root / "sub" / "b")
        (self.root / "notes.txt").write_text("not dicom", encoding="utf-8")

        datasets = self.loader.load_directory(str(self.root))
        self.assertEqual(len(datasets), 2)
        failed = self.loader.get_failed_files()
        self.assertEqual(len(failed), 1)
        self.assertTrue(failed[0][0].endswith("notes.txt"))

    def test_load_directory_not_recursive(self):
        (self.root / "sub").mkdir()
        write_dicom(self.root / "a.dcm")
        write_dicom(self.root / "sub" / "b.dcm")
        self.assertEqual(len(self.loader.load_directory(str(self.root), recursive=False)), 1)

    def test_progress_callback(self):
        write_dicom(self.root / "a.dcm")
        calls = []
        self.loader.load_directory(str(self.root), progress_callback=lambda *args: calls.append(args))
        self.assertEqual(calls, [(1, 1, "a.dcm")])

    def test_missing_directory(self):
        self.assertEqual(self.loader.load_directory("/nonexistent/dir"), [])
        self.assertEqual(len(self.loader.get_failed_files()), 1)

    def test_clear(self):
        """Test clearing loaded files."""
        self.loader.load_file("/nonexistent/file.dcm")
        self.loader.clear()
        self.assertEqual(len(self.loader.loaded_files), 0)
        self.assertEqual(len(self.loader.failed_files), 0)


if __name__ == '__main__':
    unittest.main()
