"""
Tests for the viewport grid and notification services.

Requires PySide6 (QCoreApplication for signals).
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from PySide6.QtCore import QCoreApplication

from core.hanging_protocol_model import DisplaySetOptions, StackViewportOptions
from core.notification_service import NotificationService
from core.viewport_grid_service import ViewportGridService
from core.viewport_grid_state import ViewportCell, ViewportGridState


def two_by_one():
    return ViewportGridState(
        [
            ViewportCell(0, "0-0", ["ds-1"], [DisplaySetOptions("sel", reuse_id="left")],
                         StackViewportOptions(viewport_id="viewport-0", presentation_id="stack&0&ds-1")),
            ViewportCell(1, "1-0", ["ds-2"], [], StackViewportOptions(viewport_id="viewport-1")),
        ],
        0, 1, 2,
    )


class TestViewportGridService(unittest.TestCase):
    """Tests for ViewportGridService."""

    @classmethod
    def setUpClass(cls):
        cls.app = QCoreApplication.instance() or QCoreApplication(sys.argv)

    def setUp(self):
        self.service = ViewportGridService()
        self.states = []
        self.layouts = []
        self.service.grid_state_changed.connect(self.states.append)
        self.service.layout_changed.connect(lambda rows, cols: self.layouts.append((rows, cols)))

    def test_initial_state(self):
        state = self.service.get_state()
        self.assertEqual(len(state.viewports), 1)
        self.assertEqual(state.viewports[0].position_id, "0-0")
        self.assertTrue(state.viewports[0].is_empty)

    def test_state_is_copied(self):
        self.service.set_layout(two_by_one())
        state = self.service.get_state()
        state.viewports[0].display_set_instance_uids.append("ds-9")
        self.assertEqual(self.service.get_state().viewports[0].display_set_instance_uids, ["ds-1"])

    def test_layout_signal_only_on_shape_change(self):
        self.service.set_layout(two_by_one())
        self.service.restore_cached_layout(two_by_one())
        self.assertEqual(self.layouts, [(1, 2)])
        self.assertEqual(len(self.states), 2)

    def test_active_viewport(self):
        self.service.set_layout(two_by_one())
        active = []
        self.service.active_viewport_changed.connect(active.append)
        self.service.set_active_viewport_index(1)
        self.service.set_active_viewport_index(1)
        self.service.set_active_viewport_index(5)
        self.assertEqual(active, [1])
        self.assertEqual(self.service.get_state().active_viewport_index, 1)

    def test_substitute_display_sets_keeps_options(self):
        self.service.set_layout(two_by_one())
        self.assertTrue(self.service.set_display_sets_for_viewport(0, ["ds-3"]))
        cell = self.service.get_state().viewports[0]
        self.assertEqual(cell.display_set_instance_uids, ["ds-3"])
        self.assertEqual(cell.display_set_options[0].reuse_id, "left")
        self.assertEqual(cell.presentation_id, "stack&0&ds-3")
        self.assertFalse(self.service.set_display_sets_for_viewport(7, ["ds-3"]))


class TestNotificationService(unittest.TestCase):
    """Tests for NotificationService."""

    @classmethod
    def setUpClass(cls):
        cls.app = QCoreApplication.instance() or QCoreApplication(sys.argv)

    def test_show_emits_and_records(self):
        service = NotificationService()
        received = []
        service.notification_shown.connect(received.append)
        notification = service.show("Change Stage", "No more stages", type="error", duration=3000)
        self.assertEqual(received, [notification])
        self.assertEqual(notification["type"], "error")
        self.assertEqual(service.history, [notification])

    def test_history_is_capped(self):
        service = NotificationService(max_history=2)
        for i in range(3):
            service.show("Title", f"message {i}")
        self.assertEqual([item["message"] for item in service.history], ["message 1", "message 2"])
        service.clear_history()
        self.assertEqual(service.history, [])


if __name__ == '__main__':
    unittest.main()
