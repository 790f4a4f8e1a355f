"""
Unit tests for the hanging protocol model (core.hanging_protocol_model) and
protocol registry (core.protocol_registry).

Covers parsing of protocol definitions, viewport option variants, validation
errors, stage lookups and loading protocols from JSON files.
"""

import json
import os
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from core.default_protocol import DEFAULT_PROTOCOL, DEFAULT_PROTOCOL_ID
from core.hanging_protocol_errors import MatchingRuleError
from core.hanging_protocol_model import (
    DisplaySetOptions,
    HPInfo,
    Protocol,
    StackViewportOptions,
    Stage,
    ViewportStructure,
    VolumeViewportOptions,
    create_viewport_options,
    grid_position_id,
)
from core.protocol_registry import ProtocolRegistry
from hanging_protocol_fixtures import ct_compare_protocol, grid, stack_slot


class TestViewportOptions(unittest.TestCase):
    """Tests for the tagged viewport option variants."""

    def test_stack_is_default(self):
        options = create_viewport_options({"toolGroupId": "ctTools", "initialImageOptions": {"preset": "middle"}})
        self.assertIsInstance(options, StackViewportOptions)
        self.assertEqual(options.tool_group_id, "ctTools")
        self.assertEqual(options.initial_image_options, {"preset": "middle"})
        self.assertIsNone(options.orientation)

    def test_volume_orientation(self):
        options = create_viewport_options({"viewportType": "volume", "orientation": "sagittal", "id": "mpr-1"})
        self.assertIsInstance(options, VolumeViewportOptions)
        self.assertEqual(options.orientation, "sagittal")
        self.assertEqual(options.viewport_id, "mpr-1")

    def test_sync_groups_parsed(self):
        options = create_viewport_options({"syncGroups": [{"type": "voi", "id": "ctWL", "source": True}]})
        self.assertEqual(options.sync_groups[0].group_type, "voi")
        self.assertTrue(options.sync_groups[0].target)

    def test_unknown_type_rejected(self):
        with self.assertRaises(MatchingRuleError):
            create_viewport_options({"viewportType": "video"})

    def test_field_of_other_variant_rejected(self):
        with self.assertRaises(MatchingRuleError):
            create_viewport_options({"viewportType": "stack", "orientation": "axial"})
        with self.assertRaises(MatchingRuleError):
            create_viewport_options({"viewportType": "volume", "initialImageOptions": {}})

    def test_copy_is_independent(self):
        options = StackViewportOptions(viewport_id="a", custom_viewport_props={"x": 1})
        clone = options.copy(viewport_id="b")
        clone.custom_viewport_props["x"] = 2
        self.assertEqual(options.viewport_id, "a")
        self.assertEqual(options.custom_viewport_props, {"x": 1})


class TestDisplaySetOptions(unittest.TestCase):
    """Tests for display set references."""

    def test_minus_one_means_unset(self):
        self.assertIsNone(DisplaySetOptions("s", display_set_index=-1).display_set_index)
        self.assertEqual(DisplaySetOptions("s", display_set_index=2).display_set_index, 2)

    def test_invalid_index_rejected(self):
        with self.assertRaises(MatchingRuleError):
            DisplaySetOptions("s", display_set_index=-2)
        with self.assertRaises(MatchingRuleError):
            DisplaySetOptions("s", display_set_index="1")

    def test_reference_needs_selector_id(self):
        with self.assertRaises(MatchingRuleError):
            DisplaySetOptions.from_dict({"reuseId": "x"})


class TestStageAndStructure(unittest.TestCase):
    """Tests for stages and viewport structures."""

    def test_position_ids_are_column_row(self):
        structure = ViewportStructure(2, 3)
        self.assertEqual(structure.cell_count, 6)
        self.assertEqual([structure.position_id(i) for i in range(6)], ["0-0", "1-0", "2-0", "0-1", "1-1", "2-1"])
        self.assertEqual(grid_position_id(4, 2), "0-2")

    def test_layout_options_define_cells(self):
        structure = ViewportStructure.from_dict({
            "layoutType": "grid",
            "properties": {
                "rows": 1,
                "columns": 2,
                "layoutOptions": [
                    {"x": 0, "y": 0, "width": 0.5, "height": 1, "positionId": "left"},
                    {"x": 0.5, "y": 0, "width": 0.5, "height": 0.5},
                    {"x": 0.5, "y": 0.5, "width": 0.5, "height": 0.5},
                ],
            },
        })
        self.assertEqual(structure.cell_count, 3)
        self.assertEqual(structure.position_id(0), "left")
        self.assertEqual(structure.position_id(1), "1-0")

    def test_stage_defaults(self):
        stage = Stage.from_dict({
            "name": "twoUp",
            "viewportStructure": grid(1, 2),
            "viewports": [stack_slot("s"), stack_slot("s")],
        })
        self.assertEqual(stage.stage_id, "twoUp")
        self.assertEqual(stage.required_viewports, 1)
        self.assertEqual(stage.preferred_viewports, 2)

    def test_required_ds_alias(self):
        stage = Stage.from_dict({"id": "a", "requiredDs": ["s"], "viewports": [stack_slot("s")]})
        self.assertEqual(stage.required_display_sets, ["s"])

    def test_too_many_viewports_rejected(self):
        with self.assertRaises(MatchingRuleError):
            Stage.from_dict({"id": "a", "viewportStructure": grid(1, 1), "viewports": [stack_slot("s"), stack_slot("s")]})


class TestProtocol(unittest.TestCase):
    """Tests for protocol parsing."""

    def test_parse_ct_compare(self):
        protocol = Protocol.from_dict(ct_compare_protocol())
        self.assertEqual(protocol.protocol_id, "ctCompare")
        self.assertEqual(len(protocol.stages), 2)
        self.assertEqual(protocol.number_of_priors_referenced, -1)
        self.assertEqual(protocol.get_stage_index(stage_id="sideBySide"), 1)
        self.assertEqual(protocol.get_stage_index(stage_index=0), 0)
        self.assertIsNone(protocol.get_stage_index(stage_index=5))
        self.assertIsNone(protocol.get_stage_index(stage_id="missing"))
        self.assertIsNone(protocol.get_stage_index())
        rules = protocol.display_set_selectors["ctSeries"].series_matching_rules
        self.assertTrue(rules[0].required)
        self.assertEqual(rules[1].weight, 2)

    def test_default_protocol(self):
        protocol = Protocol.from_dict(DEFAULT_PROTOCOL)
        self.assertEqual(protocol.protocol_id, DEFAULT_PROTOCOL_ID)
        self.assertEqual([stage.stage_id for stage in protocol.stages], ["default", "1x2"])
        self.assertEqual(protocol.stages[1].preferred_viewports, 2)
        self.assertIsNone(protocol.default_viewport.display_sets[0].display_set_index)
        self.assertEqual(protocol.stages[1].viewports[1].display_sets[0].display_set_index, 1)
        self.assertTrue(protocol.locked)

    def test_unknown_selector_reference_rejected(self):
        definition = ct_compare_protocol()
        definition["stages"][0]["viewports"] = [stack_slot("mrSeries")]
        with self.assertRaises(MatchingRuleError):
            Protocol.from_dict(definition)

    def test_unknown_constraint_rejected(self):
        definition = ct_compare_protocol()
        definition["displaySetSelectors"]["ctSeries"]["seriesMatchingRules"][0]["constraint"] = {"matches": "CT"}
        with self.assertRaises(MatchingRuleError):
            Protocol.from_dict(definition)

    def test_malformed_attribute_path_rejected(self):
        for attribute in ("Series..Number", ".Modality", "Modality.", "   "):
            definition = ct_compare_protocol()
            definition["displaySetSelectors"]["ctSeries"]["seriesMatchingRules"][0]["attribute"] = attribute
            with self.assertRaises(MatchingRuleError):
                Protocol.from_dict(definition)

    def test_protocol_without_stages_rejected(self):
        with self.assertRaises(MatchingRuleError):
            Protocol.from_dict({"id": "empty", "stages": []})

    def test_hp_info_equality(self):
        self.assertEqual(HPInfo("p", "s", 0, "study"), HPInfo("p", "s", 0, "study"))
        self.assertNotEqual(HPInfo("p", "s", 0, "study"), HPInfo("p", "s", 1, "study"))


class TestProtocolRegistry(unittest.TestCase):
    """Tests for ProtocolRegistry."""

    def test_default_protocol_registered(self):
        registry = ProtocolRegistry()
        self.assertIn(DEFAULT_PROTOCOL_ID, registry)
        self.assertEqual(len(ProtocolRegistry(include_default=False)), 0)

    def test_add_keeps_registration_order(self):
        registry = ProtocolRegistry()
        registry.add_protocol(ct_compare_protocol("b"))
        registry.add_protocol(ct_compare_protocol("a"))
        self.assertEqual(registry.get_protocol_ids(), [DEFAULT_PROTOCOL_ID, "b", "a"])
        self.assertIsNone(registry.get_protocol_by_id("missing"))

    def test_load_directory_skips_invalid_files(self):
        with tempfile.TemporaryDirectory() as directory:
            Path(directory, "ct.json").write_text(json.dumps(ct_compare_protocol()), encoding="utf-8")
            Path(directory, "broken.json").write_text("{not json", encoding="utf-8")
            Path(directory, "notes.txt").write_text("ignored", encoding="utf-8")
            registry = ProtocolRegistry()
            loaded = registry.load_directory(directory)
        self.assertEqual([protocol.protocol_id for protocol in loaded], ["ctCompare"])
        self.assertIn("ctCompare", registry)

    def test_load_missing_directory(self):
        self.assertEqual(ProtocolRegistry().load_directory("/nonexistent/protocols"), [])


if __name__ == '__main__':
    unittest.main()
