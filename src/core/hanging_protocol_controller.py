"""
Hanging Protocol Controller

This module handles hanging protocol navigation commands: applying a
protocol/stage, toggling a protocol on and off, moving to the next or previous
applicable stage, and resizing the viewport grid.

Every command reads a snapshot of the reconciliation store and the current
grid, computes the complete result, and only then publishes the new grid and
commits the store update in a single reduce(). A failed command leaves the
applied protocol and the store unchanged, shows one error notification and
asks listeners to resynchronize with the last good protocol.

Inputs:
    - Navigation commands from the UI or scripts
    - HangingProtocolService for evaluation passes
    - ViewportGridService with the shown grid
    - ReconciliationStore for the session

Outputs:
    - New grid states published to the grid service
    - protocol_changed / protocol_restored / protocol_resync_requested signals
    - Notifications for failures and stage boundaries

Requirements:
    - PySide6 for signals
    - core.layout_reconciler for cache updates
"""

from PySide6.QtCore import QObject, Signal
from typing import Any, Dict, List, Optional

from core.hanging_protocol_errors import ApplyResult, HangingProtocolError, NoApplicableStageError
from core.hanging_protocol_model import HPInfo, Protocol
from core.hanging_protocol_service import HangingProtocolService
from core.layout_reconciler import find_viewports_by_position, reuse_cached_layouts
from core.notification_service import NotificationService
from core.reconciliation_store import HangingKey, ReconciliationStore, StageKey, ToggleSnapshot
from core.stage_enablement import STAGE_DISABLED
from core.viewport_grid_service import ViewportGridService
from utils.debug_log import debug_log


APPLY_FAILED_TITLE = "Apply Hanging Protocol"
CHANGE_STAGE_TITLE = "Change Stage"
NO_MORE_STAGES_MESSAGE = "The hanging protocol has no more applicable stages"


class HangingProtocolController(QObject):
    """
    Navigation controller owning the applied HPInfo.

    Commands return True when the new layout was applied.
    """

    # Signals
    protocol_changed = Signal(object)  # Emitted with the new HPInfo after a protocol/stage is applied
    protocol_restored = Signal(object)  # Emitted with the HPInfo when a cached custom layout was restored
    protocol_resync_requested = Signal(object)  # Emitted with the last good HPInfo (or None) after a failure

    def __init__(
        self,
        hanging_protocol_service: HangingProtocolService,
        viewport_grid_service: ViewportGridService,
        store: ReconciliationStore,
        notification_service: Optional[NotificationService] = None,
        config_manager: Optional[Any] = None,
    ):
        """
        Initialize the controller.

        Args:
            hanging_protocol_service: Service running evaluation passes
            viewport_grid_service: Grid store shown by the rendering layer
            store: Session reconciliation store
            notification_service: Notification sink (a new one if None)
            config_manager: Optional ConfigManager for default protocol and durations
        """
        super().__init__()
        self.hanging_protocol_service = hanging_protocol_service
        self.viewport_grid_service = viewport_grid_service
        self.store = store
        self.notification_service = notification_service or NotificationService()
        self.config_manager = config_manager
        self.hp_info: Optional[HPInfo] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_hp_info(self) -> Optional[HPInfo]:
        return self.hp_info

    def get_active_protocol(self) -> Optional[Protocol]:
        if self.hp_info is None:
            return None
        return self.hanging_protocol_service.get_protocol_by_id(self.hp_info.protocol_id)

    def get_stages_status(self) -> List[str]:
        """Current status of every stage of the applied protocol (empty if none)."""
        protocol = self.get_active_protocol()
        if protocol is None:
            return []
        return self.hanging_protocol_service.get_stages_status(protocol, self.hp_info.active_study_uid)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_hanging_protocol(
        self,
        protocol_id: Optional[str] = None,
        stage_id: Optional[str] = None,
        stage_index: Optional[int] = None,
        active_study_uid: Optional[str] = None,
    ) -> bool:
        """
        Apply a protocol stage.

        Without a protocol id the applied protocol is re-applied (keeping its
        stage unless one is named); before any protocol was applied the best
        matching protocol for the study is used. Without a stage the stage last
        used for the protocol and study is taken, else stage 0. Re-applying the
        current protocol and stage resets it to its declared layout.

        Args:
            protocol_id: Protocol to apply
            stage_id: Stage id
            stage_index: Stage index (takes precedence over stage_id)
            active_study_uid: Study to switch to

        Returns:
            True if the layout was applied
        """
        return self._apply(protocol_id, stage_id, stage_index, active_study_uid)

    def toggle_hanging_protocol(self, protocol_id: str, stage_index: Optional[int] = None) -> bool:
        """
        Toggle a protocol on or off.

        Toggling on remembers the protocol/stage shown before; toggling off
        returns to it, or to the configured default protocol.

        Args:
            protocol_id: Protocol to toggle
            stage_index: Optional stage of the protocol

        Returns:
            True if a layout was applied
        """
        hp_info = self.hp_info
        study_uid = hp_info.active_study_uid if hp_info else self.hanging_protocol_service.get_default_study_uid()
        toggle_key = StageKey(study_uid, protocol_id, stage_index or 0)

        if hp_info is not None and hp_info.protocol_id == protocol_id and (
            stage_index is None or stage_index == hp_info.stage_index
        ):
            snapshot = self.store.get("toggle_snapshot").get(toggle_key)
            if snapshot is None:
                print(f"[HANGING PROTOCOL] Toggling '{protocol_id}' off to the default protocol")
                return self.set_hanging_protocol(protocol_id=self._default_protocol_id())
            print(f"[HANGING PROTOCOL] Toggling '{protocol_id}' off to '{snapshot.protocol_id}'")
            return self.set_hanging_protocol(protocol_id=snapshot.protocol_id, stage_index=snapshot.stage_index)

        extra_state = {}
        if hp_info is not None:
            extra_state["toggle_snapshot"] = {toggle_key: ToggleSnapshot(hp_info.protocol_id, hp_info.stage_index)}
        return self._apply(protocol_id, None, stage_index, None, extra_state=extra_state)

    def delta_stage(self, direction: int) -> bool:
        """
        Move to the nearest non-disabled stage in a direction.

        Args:
            direction: +1 for the next stage, -1 for the previous stage

        Returns:
            True if a stage was applied
        """
        hp_info = self.hp_info
        protocol = self.get_active_protocol()
        if hp_info is None or protocol is None or direction == 0:
            self._notify_no_more_stages()
            return False

        service = self.hanging_protocol_service
        index = hp_info.stage_index + direction
        target_index = None
        try:
            resolver = service.create_resolver(protocol, hp_info.active_study_uid)
            while 0 <= index < len(protocol.stages):
                if service.get_stage_status(protocol, index, hp_info.active_study_uid, resolver) != STAGE_DISABLED:
                    target_index = index
                    break
                index += direction
        except HangingProtocolError as e:
            self._report_failure(e)
            return False

        if target_index is None:
            self._notify_no_more_stages()
            return False
        return self.set_hanging_protocol(protocol_id=protocol.protocol_id, stage_index=target_index)

    def next_stage(self) -> bool:
        return self.delta_stage(1)

    def previous_stage(self) -> bool:
        return self.delta_stage(-1)

    def set_viewport_grid_layout(self, num_rows: int, num_cols: int) -> bool:
        """
        Resize the grid of the applied stage.

        Positions that exist in both layouts keep their content; new positions
        are filled from the stage. The applied protocol is unchanged, so the
        resized layout is cached as custom on the next protocol change.

        Args:
            num_rows: New number of rows
            num_cols: New number of columns

        Returns:
            True if the resized grid was applied
        """
        if self.hp_info is None:
            print("[HANGING PROTOCOL] Cannot change layout before a protocol is applied")
            return False

        state = self.viewport_grid_service.get_state()
        store_state = self.store.get_state()
        partial_state, initial_in_display = find_viewports_by_position(state, num_rows, num_cols, store_state)
        viewports_by_position = dict(store_state["viewports_by_position"])
        viewports_by_position.update(partial_state["viewports_by_position"])

        try:
            result = self.hanging_protocol_service.plan_layout(
                self.hp_info,
                num_rows,
                num_cols,
                prior_grid=state,
                viewports_by_position=viewports_by_position,
                in_display=initial_in_display,
            )
        except HangingProtocolError as e:
            result = ApplyResult.failure(e)

        if not result.success:
            self._report_failure(result.error)
            return False

        self.viewport_grid_service.set_layout(result.grid_state)
        self.store.reduce(partial_state)
        print(f"[HANGING PROTOCOL] Grid layout changed to {num_rows}x{num_cols}")
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        protocol_id: Optional[str],
        stage_id: Optional[str],
        stage_index: Optional[int],
        active_study_uid: Optional[str],
        extra_state: Optional[Dict[str, Dict[Any, Any]]] = None,
    ) -> bool:
        """
        Compute and commit a protocol change.

        Args:
            extra_state: Store maps committed in the same reduce() as the
                cache update, only if the change is applied
        """
        try:
            result, partial_state = self._compute_set_protocol(protocol_id, stage_id, stage_index, active_study_uid)
        except HangingProtocolError as e:
            result, partial_state = ApplyResult.failure(e), {}

        if not result.success:
            self._report_failure(result.error)
            return False

        if extra_state:
            partial_state = {**partial_state, **extra_state}
        self._commit(result, partial_state)
        return True

    def _compute_set_protocol(
        self,
        protocol_id: Optional[str],
        stage_id: Optional[str],
        stage_index: Optional[int],
        active_study_uid: Optional[str],
    ):
        service = self.hanging_protocol_service
        hp_info = self.hp_info
        state = self.viewport_grid_service.get_state()
        store_state = self.store.get_state()

        study_uid = active_study_uid or (hp_info.active_study_uid if hp_info else service.get_default_study_uid())
        study_changed = hp_info is not None and study_uid != hp_info.active_study_uid

        # Speculative cache update describing the layout being left
        partial_state: Dict[str, Dict[Any, Any]] = {}
        if hp_info is not None:
            current_protocol = service.get_protocol_by_id(hp_info.protocol_id)
            if current_protocol is not None and 0 <= hp_info.stage_index < len(current_protocol.stages):
                partial_state = reuse_cached_layouts(
                    state, hp_info, current_protocol.stages[hp_info.stage_index], store_state
                )

        hanging = dict(store_state["hanging"])
        hanging.update(partial_state.get("hanging", {}))
        reuse_id_map = dict(store_state["reuse_id_map"])
        reuse_id_map.update(partial_state.get("reuse_id_map", {}))
        viewport_grid_store = dict(store_state["viewport_grid_store"])
        viewport_grid_store.update(partial_state.get("viewport_grid_store", {}))

        if not protocol_id:
            if hp_info is not None:
                protocol_id = hp_info.protocol_id
                if stage_id is None and stage_index is None:
                    stage_index = hp_info.stage_index
            else:
                protocol_id = service.find_matching_protocol(study_uid).protocol_id

        explicit_stage = stage_id is not None or stage_index is not None
        if explicit_stage:
            resolved_index = service.get_stage_index(protocol_id, stage_id, stage_index)
            if resolved_index is None and service.get_protocol_by_id(protocol_id) is not None:
                return ApplyResult.failure(
                    _unknown_stage_error(protocol_id, stage_id, stage_index)
                ), partial_state
        else:
            cached_info = hanging.get(HangingKey(study_uid, protocol_id))
            resolved_index = cached_info.stage_index if cached_info is not None else 0

        is_reset = (
            hp_info is not None
            and not study_changed
            and protocol_id == hp_info.protocol_id
            and resolved_index == hp_info.stage_index
        )

        debug_log(
            "hanging_protocol_controller.py:set_hanging_protocol",
            "Resolved target",
            {
                "protocolId": protocol_id,
                "stageIndex": resolved_index,
                "studyUID": study_uid,
                "reset": is_reset,
            },
        )

        if is_reset:
            result = service.apply_protocol(
                protocol_id,
                study_uid,
                stage_index=resolved_index,
                explicit_stage=explicit_stage,
                prior_grid=state,
            )
        else:
            result = service.apply_protocol(
                protocol_id,
                study_uid,
                stage_index=resolved_index,
                explicit_stage=explicit_stage,
                reuse_id_map=reuse_id_map,
                prior_grid=state,
                viewport_grid_store=viewport_grid_store,
            )
        return result, partial_state

    def _commit(self, result: ApplyResult, partial_state: Dict[str, Dict[Any, Any]]) -> None:
        if result.restored:
            self.viewport_grid_service.restore_cached_layout(result.grid_state)
        else:
            self.viewport_grid_service.set_layout(result.grid_state)
        if partial_state:
            self.store.reduce(partial_state)
        self.hp_info = result.hp_info

        if self.config_manager is not None:
            self.config_manager.set_last_protocol_id(result.hp_info.protocol_id)

        print(
            f"[HANGING PROTOCOL] Applied protocol '{result.hp_info.protocol_id}' "
            f"stage {result.hp_info.stage_index} ({result.hp_info.stage_id})"
        )
        for warning in result.warnings:
            debug_log("hanging_protocol_controller.py:_commit", "Warning", {"warning": str(warning)})

        if result.restored:
            self.protocol_restored.emit(result.hp_info)
        self.protocol_changed.emit(result.hp_info)

    def _report_failure(self, error: HangingProtocolError) -> None:
        print(f"[HANGING PROTOCOL] Could not apply hanging protocol: {error}")
        self.notification_service.show(
            title=APPLY_FAILED_TITLE,
            message=f"The hanging protocol could not be applied due to {error}",
            type="error",
            duration=self._notification_duration(),
        )
        self.protocol_resync_requested.emit(self.hp_info)

    def _notify_no_more_stages(self) -> None:
        self.notification_service.show(
            title=CHANGE_STAGE_TITLE,
            message=NO_MORE_STAGES_MESSAGE,
            type="error",
            duration=self._notification_duration(),
        )

    def _notification_duration(self) -> int:
        if self.config_manager is None:
            return 3000
        return self.config_manager.get_notification_duration_ms()

    def _default_protocol_id(self) -> str:
        if self.config_manager is None:
            return self.hanging_protocol_service.default_protocol_id
        return self.config_manager.get_default_protocol_id()


def _unknown_stage_error(protocol_id: str, stage_id: Optional[str], stage_index: Optional[int]) -> HangingProtocolError:
    if stage_index is not None:
        return NoApplicableStageError(protocol_id, stage_index, "no such stage")
    return NoApplicableStageError(protocol_id, reason=f"no stage with id '{stage_id}'")
