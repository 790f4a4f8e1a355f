"""
Unit tests for presentation id generation (core.presentation_id).
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from core.hanging_protocol_model import StackViewportOptions, VolumeViewportOptions
from core.presentation_id import get_presentation_id
from core.viewport_grid_state import ViewportCell


class TestPresentationId(unittest.TestCase):
    """Tests for get_presentation_id."""

    def test_empty_viewport_has_none(self):
        self.assertIsNone(get_presentation_id(None))
        self.assertIsNone(get_presentation_id(ViewportCell(0, "0-0")))

    def test_stack_id_parts(self):
        viewport = ViewportCell(0, "0-0", ["ds-1", "ds-2"])
        self.assertEqual(get_presentation_id(viewport), "stack&0&ds-1&ds-2")

    def test_volume_orientation_and_prefix(self):
        options = VolumeViewportOptions(volume_orientation="axial", presentation_prefix="fusion")
        viewport = ViewportCell(0, "0-0", ["ct-1", "pt-1"], viewport_options=options)
        self.assertEqual(get_presentation_id(viewport), "volume&0&axial&ct-1&pt-1&fusion")

    def test_ordinal_skips_taken_ids(self):
        first = ViewportCell(0, "0-0", ["ds-7"], viewport_options=StackViewportOptions(presentation_id="stack&0&ds-7"))
        second = ViewportCell(1, "1-0", ["ds-7"], viewport_options=StackViewportOptions(presentation_id="stack&1&ds-7"))
        third = ViewportCell(2, "2-0", ["ds-7"])
        self.assertEqual(get_presentation_id(third, [first, second, third]), "stack&2&ds-7")

    def test_own_id_not_counted_as_taken(self):
        viewport = ViewportCell(0, "0-0", ["ds-7"], viewport_options=StackViewportOptions(presentation_id="stack&0&ds-7"))
        self.assertEqual(get_presentation_id(viewport, [viewport]), "stack&0&ds-7")


if __name__ == '__main__':
    unittest.main()
