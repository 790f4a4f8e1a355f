"""
Hanging Protocol Service

This module runs hanging protocol evaluation passes: protocol lookups, stage
index resolution, stage status evaluation, protocol matching for a study, and
the planning of a stage or a resized grid into a new ViewportGridState.

The service holds no navigation state. Every pass creates a fresh
DisplaySetResolver, so stage statuses and matches always reflect the display
sets available at the time of the call.

Inputs:
    - ProtocolRegistry with the known protocols
    - DisplaySetService catalog
    - ViewportAssignmentPlanner
    - Reuse id map, prior grid, cached custom layouts and position cache
      supplied by the navigation controller

Outputs:
    - ApplyResult values (grid state + HPInfo, or the error)
    - Stage statuses and matching protocols

Requirements:
    - core modules for model, resolver, enablement and planning
"""

from typing import Any, Dict, List, Optional

from core.display_set_resolver import DisplaySetResolver
from core.hanging_protocol_errors import ApplyResult, NoApplicableStageError, ProtocolNotFoundError
from core.hanging_protocol_model import HPInfo, Protocol, StageStatus
from core.protocol_registry import ProtocolRegistry
from core.reconciliation_store import ReuseKey, StageKey
from core.rule_evaluator import evaluate
from core.stage_enablement import STAGE_DISABLED, evaluate_stage_status
from core.viewport_grid_state import ViewportCell, ViewportGridState
from core.viewport_planner import ViewportAssignmentPlanner
from core.default_protocol import DEFAULT_PROTOCOL_ID
from utils.debug_log import debug_log


class HangingProtocolService:
    """
    Evaluates protocols against the display set catalog.
    """

    def __init__(
        self,
        registry: ProtocolRegistry,
        display_set_service: Any,
        planner: Optional[ViewportAssignmentPlanner] = None,
        default_protocol_id: str = DEFAULT_PROTOCOL_ID,
    ):
        """
        Initialize the service.

        Args:
            registry: Registered protocols
            display_set_service: Display set catalog
            planner: Viewport planner (created with defaults if None)
            default_protocol_id: Protocol used when no other protocol matches
        """
        self.registry = registry
        self.display_set_service = display_set_service
        self.planner = planner or ViewportAssignmentPlanner(display_set_service)
        self.default_protocol_id = default_protocol_id

    def get_protocol_by_id(self, protocol_id: Optional[str]) -> Optional[Protocol]:
        return self.registry.get_protocol_by_id(protocol_id)

    def get_protocols(self) -> List[Protocol]:
        return self.registry.get_protocols()

    def get_stage_index(
        self,
        protocol_id: str,
        stage_id: Optional[str] = None,
        stage_index: Optional[int] = None,
    ) -> Optional[int]:
        """
        Get the index of a stage by explicit index or stage id.

        Args:
            protocol_id: Protocol id
            stage_id: Stage id
            stage_index: Stage index (takes precedence over stage_id)

        Returns:
            Stage index, or None if the protocol or stage is unknown
        """
        protocol = self.get_protocol_by_id(protocol_id)
        if protocol is None:
            return None
        return protocol.get_stage_index(stage_id, stage_index)

    def get_default_study_uid(self) -> str:
        """First study of the catalog, or an empty string."""
        study_uids = self.display_set_service.get_study_uids()
        return study_uids[0] if study_uids else ""

    def get_prior_study_uids(self, active_study_uid: str) -> List[str]:
        return [uid for uid in self.display_set_service.get_study_uids() if uid != active_study_uid]

    def create_resolver(self, protocol: Protocol, active_study_uid: str) -> DisplaySetResolver:
        """Fresh resolver for one evaluation pass."""
        return DisplaySetResolver(
            protocol,
            self.display_set_service,
            active_study_uid,
            self.get_prior_study_uids(active_study_uid),
        )

    def get_stage_status(
        self,
        protocol: Protocol,
        stage_index: int,
        active_study_uid: str,
        resolver: Optional[DisplaySetResolver] = None,
    ) -> StageStatus:
        """
        Compute the current status of one stage.

        Args:
            protocol: Protocol owning the stage
            stage_index: Stage index
            active_study_uid: Active study
            resolver: Resolver to share within a pass (fresh one if None)

        Returns:
            "disabled", "passive" or "enabled"
        """
        resolver = resolver or self.create_resolver(protocol, active_study_uid)
        if not resolver.has_required_priors():
            return STAGE_DISABLED
        return evaluate_stage_status(protocol.stages[stage_index], resolver)

    def get_stages_status(self, protocol: Protocol, active_study_uid: str) -> List[StageStatus]:
        """Status of every stage of a protocol, evaluated in a single pass."""
        resolver = self.create_resolver(protocol, active_study_uid)
        return [
            self.get_stage_status(protocol, index, active_study_uid, resolver)
            for index in range(len(protocol.stages))
        ]

    def find_matching_protocol(self, active_study_uid: str) -> Protocol:
        """
        Find the protocol best matching a study.

        Protocol matching rules are evaluated against the study attributes; a
        protocol referencing more priors than are available does not match.
        Ties keep registration order.

        Args:
            active_study_uid: Study to match

        Returns:
            Best matching protocol (the default protocol if nothing else matches)

        Raises:
            ProtocolNotFoundError: if nothing matches and the default protocol is missing
        """
        study_attributes = self.display_set_service.get_study_attributes(active_study_uid)
        best: Optional[Protocol] = None
        best_score = float('-inf')
        for protocol in self.registry.get_protocols():
            evaluation = evaluate(protocol.protocol_matching_rules, study_attributes)
            if not evaluation.satisfied:
                continue
            if not self.create_resolver(protocol, active_study_uid).has_required_priors():
                continue
            if evaluation.score > best_score:
                best, best_score = protocol, evaluation.score

        if best is None:
            best = self.get_protocol_by_id(self.default_protocol_id)
            if best is None:
                raise ProtocolNotFoundError(self.default_protocol_id)
        print(f"[HANGING PROTOCOL] Study {active_study_uid} matched protocol '{best.protocol_id}'")
        return best

    def apply_protocol(
        self,
        protocol_id: str,
        active_study_uid: str,
        stage_index: Optional[int] = None,
        explicit_stage: bool = False,
        reuse_id_map: Optional[Dict[ReuseKey, str]] = None,
        prior_grid: Optional[ViewportGridState] = None,
        viewport_grid_store: Optional[Dict[StageKey, Any]] = None,
    ) -> ApplyResult:
        """
        Compute the grid for a protocol stage without changing any state.

        A disabled stage fails when it was explicitly requested; otherwise the
        first non-disabled stage from stage_index onwards (then from the start)
        is used. A cached custom layout for the final stage key is returned
        verbatim instead of a planned grid.

        Args:
            protocol_id: Protocol to apply
            active_study_uid: Active study
            stage_index: Target stage index (0 if None)
            explicit_stage: True if the caller named the stage
            reuse_id_map: Reuse map (None plans from scratch)
            prior_grid: Grid currently shown
            viewport_grid_store: Cached custom layouts

        Returns:
            ApplyResult with the grid and HPInfo, or the error

        Raises:
            InvalidReuseReferenceError: strict reuse validation failed
        """
        protocol = self.get_protocol_by_id(protocol_id)
        if protocol is None:
            return ApplyResult.failure(ProtocolNotFoundError(protocol_id))

        index = 0 if stage_index is None else stage_index
        if not 0 <= index < len(protocol.stages):
            return ApplyResult.failure(NoApplicableStageError(protocol_id, index, "no such stage"))

        resolver = self.create_resolver(protocol, active_study_uid)
        if not resolver.has_required_priors():
            return ApplyResult.failure(
                NoApplicableStageError(protocol_id, reason="not enough prior studies available")
            )

        if self.get_stage_status(protocol, index, active_study_uid, resolver) == STAGE_DISABLED:
            if explicit_stage:
                return ApplyResult.failure(NoApplicableStageError(protocol_id, index, "stage is disabled"))
            index = self._first_enabled_stage(protocol, index, active_study_uid, resolver)
            if index is None:
                return ApplyResult.failure(NoApplicableStageError(protocol_id))

        stage = protocol.stages[index]
        hp_info = HPInfo(protocol.protocol_id, stage.stage_id, index, active_study_uid)

        cached = (viewport_grid_store or {}).get(StageKey(active_study_uid, protocol.protocol_id, index))
        if cached is not None:
            debug_log(
                "hanging_protocol_service.py:apply_protocol",
                "Restoring cached layout",
                {"protocolId": protocol.protocol_id, "stageIndex": index},
            )
            return ApplyResult(grid_state=cached.copy(), hp_info=hp_info, restored=True)

        grid_state, warnings = self.planner.plan(
            protocol,
            stage,
            resolver,
            reuse_id_map=reuse_id_map,
            prior_grid=prior_grid,
        )
        debug_log(
            "hanging_protocol_service.py:apply_protocol",
            "Planned stage",
            {
                "protocolId": protocol.protocol_id,
                "stageIndex": index,
                "displaySets": grid_state.get_display_set_instance_uids(),
                "warnings": [str(warning) for warning in warnings],
            },
        )
        return ApplyResult(grid_state=grid_state, hp_info=hp_info, warnings=warnings)

    def plan_layout(
        self,
        hp_info: HPInfo,
        num_rows: int,
        num_cols: int,
        prior_grid: Optional[ViewportGridState] = None,
        viewports_by_position: Optional[Dict[str, ViewportCell]] = None,
        in_display: Optional[List[str]] = None,
    ) -> ApplyResult:
        """
        Compute a resized grid for the applied stage.

        Positions found in the position cache keep their content; other
        positions are filled from the stage's slots or default viewport.

        Args:
            hp_info: Currently applied protocol/stage
            num_rows: New number of rows
            num_cols: New number of columns
            prior_grid: Grid currently shown
            viewports_by_position: Position cache
            in_display: Display sets that stay in view

        Returns:
            ApplyResult with the resized grid (HPInfo unchanged)
        """
        if num_rows < 1 or num_cols < 1:
            return ApplyResult.failure(
                NoApplicableStageError(hp_info.protocol_id, hp_info.stage_index, f"invalid layout {num_rows}x{num_cols}")
            )
        protocol = self.get_protocol_by_id(hp_info.protocol_id)
        if protocol is None:
            return ApplyResult.failure(ProtocolNotFoundError(hp_info.protocol_id))
        if not 0 <= hp_info.stage_index < len(protocol.stages):
            return ApplyResult.failure(NoApplicableStageError(hp_info.protocol_id, hp_info.stage_index, "no such stage"))

        resolver = self.create_resolver(protocol, hp_info.active_study_uid)
        grid_state, warnings = self.planner.plan(
            protocol,
            protocol.stages[hp_info.stage_index],
            resolver,
            prior_grid=prior_grid,
            viewports_by_position=viewports_by_position,
            num_rows=num_rows,
            num_cols=num_cols,
            in_display=in_display,
        )
        return ApplyResult(grid_state=grid_state, hp_info=hp_info, warnings=warnings)

    def _first_enabled_stage(
        self,
        protocol: Protocol,
        start_index: int,
        active_study_uid: str,
        resolver: DisplaySetResolver,
    ) -> Optional[int]:
        order = list(range(start_index + 1, len(protocol.stages))) + list(range(0, start_index))
        for index in order:
            if self.get_stage_status(protocol, index, active_study_uid, resolver) != STAGE_DISABLED:
                return index
        return None
