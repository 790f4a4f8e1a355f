"""
Notification Service

This module provides the notification sink used by the hanging protocol
navigation controller to report failed protocol applications and stage
navigation boundaries.

Inputs:
    - show(title, message, type, duration) requests

Outputs:
    - notification_shown signal carrying the notification dictionary
    - Console line per notification
    - History of shown notifications for inspection

Requirements:
    - PySide6 for signals
"""

from PySide6.QtCore import QObject, Signal
from typing import Any, Dict, List, Literal


NotificationType = Literal["info", "success", "warning", "error"]

DEFAULT_DURATION_MS = 3000


class NotificationService(QObject):
    """
    Collects user-facing notifications and forwards them to listeners.

    The rendering layer connects to notification_shown to display toasts;
    without listeners notifications are only printed and kept in history.
    """

    # Signals
    notification_shown = Signal(dict)  # {"title", "message", "type", "duration"}

    def __init__(self, max_history: int = 100):
        """
        Initialize the notification service.

        Args:
            max_history: Number of notifications kept in history
        """
        super().__init__()
        self.max_history = max_history
        self.history: List[Dict[str, Any]] = []

    def show(
        self,
        title: str,
        message: str,
        type: NotificationType = "info",
        duration: int = DEFAULT_DURATION_MS,
    ) -> Dict[str, Any]:
        """
        Show a notification.

        Args:
            title: Notification title
            message: Notification text
            type: "info", "success", "warning" or "error"
            duration: Display duration in milliseconds

        Returns:
            The notification dictionary that was emitted
        """
        notification = {"title": title, "message": message, "type": type, "duration": duration}
        self.history.append(notification)
        if len(self.history) > self.max_history:
            del self.history[: len(self.history) - self.max_history]
        print(f"[NOTIFICATION] {type.upper()}: {title}: {message}")
        self.notification_shown.emit(notification)
        return notification

    def clear_history(self) -> None:
        self.history.clear()
