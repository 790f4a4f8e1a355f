"""
Configuration Manager

This module handles persistent storage and retrieval of hanging protocol
engine settings. Settings are stored in a JSON file in the user's application
data directory.

Inputs:
    - Engine preferences (default protocol, notification duration, reuse
      validation strictness, protocol directories, etc.)

Outputs:
    - Loaded configuration values
    - Saved configuration file

Requirements:
    - json module (standard library)
    - pathlib module (standard library)
    - os module (standard library)
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional


class ConfigManager:
    """
    Manages hanging protocol engine configuration.

    Handles loading and saving of settings including:
    - Default protocol used when toggling off
    - Notification duration
    - Presentation id ordinal limit
    - Reuse id validation strictness
    - Directories holding protocol JSON files
    - Single-image modalities for display set creation
    """

    def __init__(self, config_filename: str = "hanging_protocol_config.json", config_dir: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_filename: Name of the configuration file to use
            config_dir: Optional directory override (defaults to the per-user config directory)
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
        elif os.name == 'nt':  # Windows
            app_data = os.getenv('APPDATA', os.path.expanduser('~'))
            self.config_dir = Path(app_data) / "HangingProtocolEngine"
        else:  # Mac/Linux
            self.config_dir = Path.home() / ".config" / "HangingProtocolEngine"

        # Create config directory if it doesn't exist
        self.config_dir.mkdir(parents=True, exist_ok=True)

        # Full path to config file
        self.config_path = self.config_dir / config_filename

        # Default configuration values
        self.default_config = {
            "default_protocol_id": "default",  # Protocol restored when toggling off with no snapshot
            "notification_duration_ms": 3000,
            "max_display_instances": 128,  # Presentation id ordinal limit
            "strict_reuse_validation": False,  # Fail the apply instead of ignoring invalid reuse ids
            "protocol_directories": [],  # Directories scanned for *.json protocol definitions
            "single_image_modalities": ["CR", "MG", "DX"],
            "last_protocol_id": "",
        }

        # Load configuration
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from file, or return defaults if file doesn't exist.

        Returns:
            Dictionary containing configuration values
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                    # Merge with defaults to ensure all keys exist
                    config = self.default_config.copy()
                    config.update(loaded_config)
                    return config
            except (json.JSONDecodeError, IOError) as e:
                # If file is corrupted, use defaults
                print(f"Warning: Could not load config file: {e}")
                return self.default_config.copy()
        else:
            # File doesn't exist, use defaults
            return self.default_config.copy()

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            True if save was successful, False otherwise
        """
        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=4, ensure_ascii=False)
            return True
        except IOError as e:
            print(f"Error saving config file: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key to retrieve
            default: Default value if key doesn't exist

        Returns:
            Configuration value or default
        """
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            key: Configuration key to set
            value: Value to set
        """
        self.config[key] = value

    def get_default_protocol_id(self) -> str:
        """
        Get the protocol restored when toggling off without a recorded snapshot.

        Returns:
            Protocol id
        """
        return self.config.get("default_protocol_id", "default") or "default"

    def set_default_protocol_id(self, protocol_id: str) -> None:
        """
        Set the default protocol id.

        Args:
            protocol_id: Protocol id (ignored if empty)
        """
        if protocol_id:
            self.config["default_protocol_id"] = protocol_id
            self.save_config()

    def get_notification_duration_ms(self) -> int:
        """
        Get how long failure notifications are shown.

        Returns:
            Duration in milliseconds
        """
        return int(self.config.get("notification_duration_ms", 3000))

    def set_notification_duration_ms(self, duration_ms: int) -> None:
        """
        Set the notification duration.

        Args:
            duration_ms: Duration in milliseconds (must be positive)
        """
        if duration_ms > 0:
            self.config["notification_duration_ms"] = int(duration_ms)
            self.save_config()

    def get_max_display_instances(self) -> int:
        return int(self.config.get("max_display_instances", 128))

    def get_strict_reuse_validation(self) -> bool:
        """
        Get whether invalid reuse ids fail the protocol application.

        Returns:
            True for strict validation
        """
        return bool(self.config.get("strict_reuse_validation", False))

    def set_strict_reuse_validation(self, enabled: bool) -> None:
        self.config["strict_reuse_validation"] = bool(enabled)
        self.save_config()

    def get_protocol_directories(self) -> List[str]:
        """
        Get directories scanned for protocol JSON files.

        Returns:
            List of directory paths
        """
        return list(self.config.get("protocol_directories", []))

    def add_protocol_directory(self, directory: str) -> None:
        """
        Add a protocol directory (no duplicates).

        Args:
            directory: Directory path
        """
        directories = self.get_protocol_directories()
        if directory and directory not in directories:
            directories.append(directory)
            self.config["protocol_directories"] = directories
            self.save_config()

    def get_single_image_modalities(self) -> List[str]:
        return list(self.config.get("single_image_modalities", ["CR", "MG", "DX"]))

    def get_last_protocol_id(self) -> str:
        return self.config.get("last_protocol_id", "")

    def set_last_protocol_id(self, protocol_id: str) -> None:
        """
        Remember the last applied protocol id.

        Args:
            protocol_id: Protocol id
        """
        self.config["last_protocol_id"] = protocol_id
        self.save_config()
