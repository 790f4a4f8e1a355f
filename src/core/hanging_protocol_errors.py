"""
Hanging Protocol Errors

This module defines the error taxonomy for hanging protocol matching and
viewport reconciliation, and the ApplyResult value returned by protocol
application passes.

Expected, recoverable outcomes (protocol not found, no applicable stage) are
returned inside an ApplyResult rather than raised. Malformed protocol
definitions (MatchingRuleError) and strict reuse validation failures
(InvalidReuseReferenceError) are raised and caught at the navigation
controller boundary.

Inputs:
    - Error details from the model, evaluator, planner and service

Outputs:
    - Exception classes
    - ApplyResult values

Requirements:
    - typing for type hints
"""

from typing import Any, List, Optional


class HangingProtocolError(Exception):
    """Base class for all hanging protocol errors."""

    title = "Apply Hanging Protocol"


class ProtocolNotFoundError(HangingProtocolError):
    """The requested protocol id is not registered."""

    def __init__(self, protocol_id: Optional[str]):
        self.protocol_id = protocol_id
        super().__init__(f"protocol '{protocol_id}' was not found")


class NoApplicableStageError(HangingProtocolError):
    """No stage of the protocol can be applied to the current display sets."""

    def __init__(self, protocol_id: str, stage_index: Optional[int] = None, reason: str = ""):
        self.protocol_id = protocol_id
        self.stage_index = stage_index
        self.reason = reason
        if stage_index is None:
            message = f"protocol '{protocol_id}' has no applicable stage"
        else:
            message = f"stage {stage_index} of protocol '{protocol_id}' is not applicable"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidReuseReferenceError(HangingProtocolError):
    """A reuse id points at a display set that fails its selector's rules."""

    def __init__(self, reuse_id: str, display_set_instance_uid: str, selector_id: str):
        self.reuse_id = reuse_id
        self.display_set_instance_uid = display_set_instance_uid
        self.selector_id = selector_id
        super().__init__(
            f"reuse id '{reuse_id}' references display set {display_set_instance_uid} "
            f"which does not satisfy selector '{selector_id}'"
        )


class MatchingRuleError(HangingProtocolError):
    """A matching rule, attribute path or protocol field is malformed."""


class ApplyResult:
    """
    Outcome of one protocol application pass.

    Exactly one of grid_state/error is set. Warnings collect non-fatal problems
    (e.g. ignored reuse references) found while planning.
    """

    def __init__(
        self,
        grid_state: Any = None,
        hp_info: Any = None,
        error: Optional[HangingProtocolError] = None,
        restored: bool = False,
        warnings: Optional[List[HangingProtocolError]] = None,
    ):
        self.grid_state = grid_state
        self.hp_info = hp_info
        self.error = error
        self.restored = restored
        self.warnings: List[HangingProtocolError] = list(warnings or [])

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: HangingProtocolError) -> "ApplyResult":
        return cls(error=error)

    def __repr__(self) -> str:
        if self.error is not None:
            return f"ApplyResult(error={self.error!r})"
        return f"ApplyResult(hp_info={self.hp_info!r}, restored={self.restored})"
