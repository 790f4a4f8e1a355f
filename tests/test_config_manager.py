"""
Tests for ConfigManager hanging protocol engine settings.

Covers default values, get/set round-trips, persistence and recovery from a
corrupted file. Uses a temporary config directory so the user config is never
touched.
"""

import os
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from utils.config_manager import ConfigManager


TEST_CONFIG_FILENAME = "hanging_protocol_config_test.json"


class TestConfigManager(unittest.TestCase):
    """Tests for ConfigManager getters, setters and persistence."""

    def setUp(self):
        """Create a ConfigManager in a temporary directory."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config = ConfigManager(config_filename=TEST_CONFIG_FILENAME, config_dir=self.temp_dir.name)
        self.config_path = self.config.config_path

    def tearDown(self):
        self.temp_dir.cleanup()

    def _reload(self):
        return ConfigManager(config_filename=TEST_CONFIG_FILENAME, config_dir=self.temp_dir.name)

    def test_defaults(self):
        """A new manager with no existing file gets defaults."""
        self.assertFalse(self.config_path.exists())
        self.assertEqual(self.config.get_default_protocol_id(), "default")
        self.assertEqual(self.config.get_notification_duration_ms(), 3000)
        self.assertEqual(self.config.get_max_display_instances(), 128)
        self.assertFalse(self.config.get_strict_reuse_validation())
        self.assertEqual(self.config.get_protocol_directories(), [])
        self.assertEqual(self.config.get_single_image_modalities(), ["CR", "MG", "DX"])
        self.assertEqual(self.config.get_last_protocol_id(), "")

    def test_set_default_protocol_persists(self):
        self.config.set_default_protocol_id("ctCompare")
        self.assertTrue(self.config_path.exists(), "Config file should exist after set")
        self.assertEqual(self._reload().get_default_protocol_id(), "ctCompare")

    def test_empty_default_protocol_ignored(self):
        self.config.set_default_protocol_id("")
        self.assertEqual(self.config.get_default_protocol_id(), "default")

    def test_notification_duration_must_be_positive(self):
        self.config.set_notification_duration_ms(5000)
        self.config.set_notification_duration_ms(0)
        self.assertEqual(self._reload().get_notification_duration_ms(), 5000)

    def test_strict_reuse_validation_round_trip(self):
        self.config.set_strict_reuse_validation(True)
        self.assertTrue(self._reload().get_strict_reuse_validation())
        self.config.set_strict_reuse_validation(False)
        self.assertFalse(self._reload().get_strict_reuse_validation())

    def test_protocol_directories_without_duplicates(self):
        self.config.add_protocol_directory("/protocols/ct")
        self.config.add_protocol_directory("/protocols/ct")
        self.config.add_protocol_directory("/protocols/mr")
        self.assertEqual(self._reload().get_protocol_directories(), ["/protocols/ct", "/protocols/mr"])

    def test_set_does_not_save(self):
        """set() changes the value in memory only until save_config()."""
        self.config.set("last_protocol_id", "chest")
        self.assertEqual(self.config.get("last_protocol_id"), "chest")
        self.assertEqual(self._reload().get_last_protocol_id(), "")
        self.assertTrue(self.config.save_config())
        self.assertEqual(self._reload().get_last_protocol_id(), "chest")

    def test_partial_file_merged_with_defaults(self):
        self.config_path.write_text('{"notification_duration_ms": 1500}', encoding="utf-8")
        config = self._reload()
        self.assertEqual(config.get_notification_duration_ms(), 1500)
        self.assertEqual(config.get_default_protocol_id(), "default")

    def test_corrupted_file_uses_defaults(self):
        self.config_path.write_text("{not json", encoding="utf-8")
        config = self._reload()
        self.assertEqual(config.get_default_protocol_id(), "default")
        self.assertEqual(config.get_protocol_directories(), [])


if __name__ == "__main__":
    unittest.main()
