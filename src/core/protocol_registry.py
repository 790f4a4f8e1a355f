"""
Protocol Registry

This module keeps the hanging protocols known to a session. Protocols are
registered from dictionaries, parsed Protocol objects or JSON files; the
built-in default protocol is always present.

Inputs:
    - Protocol definition dictionaries or Protocol objects
    - Directories containing *.json protocol definitions

Outputs:
    - Protocols by id, in registration order

Requirements:
    - json module (standard library)
    - core.hanging_protocol_model for parsing
"""

import json
import copy
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.default_protocol import DEFAULT_PROTOCOL
from core.hanging_protocol_errors import MatchingRuleError
from core.hanging_protocol_model import Protocol


class ProtocolRegistry:
    """
    Registered hanging protocols keyed by id.

    Re-registering an id replaces the earlier definition but keeps its
    registration position.
    """

    def __init__(self, include_default: bool = True):
        """
        Initialize the registry.

        Args:
            include_default: Register the built-in default protocol
        """
        self._protocols: Dict[str, Protocol] = {}
        if include_default:
            self.add_protocol(copy.deepcopy(DEFAULT_PROTOCOL))

    def add_protocol(self, protocol: Union[Protocol, Dict[str, Any]]) -> Protocol:
        """
        Register a protocol.

        Args:
            protocol: Protocol object or definition dictionary

        Returns:
            The registered Protocol

        Raises:
            MatchingRuleError: if the definition is malformed
        """
        if not isinstance(protocol, Protocol):
            protocol = Protocol.from_dict(protocol)
        self._protocols[protocol.protocol_id] = protocol
        return protocol

    def get_protocol_by_id(self, protocol_id: Optional[str]) -> Optional[Protocol]:
        if protocol_id is None:
            return None
        return self._protocols.get(protocol_id)

    def get_protocols(self) -> List[Protocol]:
        """All protocols in registration order."""
        return list(self._protocols.values())

    def get_protocol_ids(self) -> List[str]:
        return list(self._protocols)

    def load_file(self, file_path: Union[str, Path]) -> Protocol:
        """
        Load one protocol from a JSON file.

        Args:
            file_path: Path to the JSON definition

        Returns:
            The registered Protocol

        Raises:
            MatchingRuleError: if the file is not valid JSON or not a valid protocol
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise MatchingRuleError(f"{file_path}: invalid JSON ({e})") from e
        return self.add_protocol(data)

    def load_directory(self, directory: Union[str, Path]) -> List[Protocol]:
        """
        Load every *.json protocol file of a directory (sorted by name).

        Invalid files are reported and skipped.

        Args:
            directory: Directory to scan

        Returns:
            Protocols that were registered
        """
        directory = Path(directory)
        if not directory.is_dir():
            print(f"[HANGING PROTOCOL] Protocol directory not found: {directory}")
            return []

        loaded: List[Protocol] = []
        for file_path in sorted(directory.glob("*.json")):
            try:
                loaded.append(self.load_file(file_path))
            except (MatchingRuleError, OSError) as e:
                print(f"[HANGING PROTOCOL] Skipping {file_path.name}: {e}")
        print(f"[HANGING PROTOCOL] Loaded {len(loaded)} protocol(s) from {directory}")
        return loaded

    def __contains__(self, protocol_id: object) -> bool:
        return protocol_id in self._protocols

    def __len__(self) -> int:
        return len(self._protocols)
