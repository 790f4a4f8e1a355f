"""
Hanging Protocol Model

This module holds the typed, read-only representation of hanging protocols:
protocols, stages, viewport slots, display set selectors, matching rules and
viewport option variants. Protocol definitions arrive as JSON-compatible
dictionaries using camelCase field names and are validated while parsing.

Inputs:
    - Protocol definition dictionaries (from JSON files or code)

Outputs:
    - Protocol, Stage, ViewportSlot, DisplaySetOptions, DisplaySetSelector,
      MatchingRule, ViewportStructure and ViewportOptions objects
    - HPInfo records describing the currently applied protocol/stage

Requirements:
    - typing for type hints
    - MatchingRuleError for malformed definitions
"""

import copy
from typing import Any, Dict, List, Literal, Optional

from core.hanging_protocol_errors import MatchingRuleError


ViewportType = Literal["stack", "volume"]
StageStatus = Literal["disabled", "passive", "enabled"]

VIEWPORT_TYPE_STACK: ViewportType = "stack"
VIEWPORT_TYPE_VOLUME: ViewportType = "volume"

CONSTRAINT_OPERATORS = ("equals", "notEquals", "contains", "containsI", "greaterThan")


def _check_keys(data: Dict[str, Any], allowed: tuple, what: str) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise MatchingRuleError(f"{what} has unknown field(s): {', '.join(unknown)}")


class MatchingRule:
    """
    A single weighted rule matched against one attribute of a candidate.

    The constraint maps one or more operator names to a value; the value may be
    given bare or wrapped as {"value": x}.
    """

    def __init__(
        self,
        attribute: str,
        constraint: Dict[str, Any],
        weight: float = 1,
        required: bool = False,
        rule_id: Optional[str] = None,
    ):
        if not isinstance(attribute, str) or not attribute.strip():
            raise MatchingRuleError(f"matching rule attribute must be a non-empty string, got {attribute!r}")
        if any(not segment for segment in attribute.split(".")):
            raise MatchingRuleError(f"matching rule has invalid attribute path {attribute!r}")
        if not isinstance(constraint, dict) or not constraint:
            raise MatchingRuleError(f"matching rule on '{attribute}' has no constraint")
        for operator in constraint:
            if operator not in CONSTRAINT_OPERATORS:
                raise MatchingRuleError(f"matching rule on '{attribute}' uses unknown constraint '{operator}'")
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            raise MatchingRuleError(f"matching rule on '{attribute}' has non-numeric weight {weight!r}")
        self.attribute = attribute
        self.constraint = dict(constraint)
        self.weight = weight
        self.required = bool(required)
        self.rule_id = rule_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchingRule":
        if not isinstance(data, dict):
            raise MatchingRuleError(f"matching rule must be an object, got {type(data).__name__}")
        _check_keys(data, ("id", "attribute", "constraint", "weight", "required"), "matching rule")
        return cls(
            attribute=data.get("attribute"),
            constraint=data.get("constraint"),
            weight=data.get("weight", 1),
            required=data.get("required", False),
            rule_id=data.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "attribute": self.attribute,
            "constraint": copy.deepcopy(self.constraint),
            "weight": self.weight,
            "required": self.required,
        }
        if self.rule_id is not None:
            result["id"] = self.rule_id
        return result

    def __repr__(self) -> str:
        return f"MatchingRule({self.attribute!r}, {self.constraint!r}, weight={self.weight}, required={self.required})"


def _parse_rules(rules: Optional[List[Dict[str, Any]]], what: str) -> List[MatchingRule]:
    if rules is None:
        return []
    if not isinstance(rules, list):
        raise MatchingRuleError(f"{what} must be a list")
    return [MatchingRule.from_dict(rule) for rule in rules]


class DisplaySetSelector:
    """
    Named set of rules choosing display sets for viewport slots.

    Image matching rules are carried for round-tripping but never evaluated.
    """

    def __init__(
        self,
        selector_id: str,
        series_matching_rules: Optional[List[MatchingRule]] = None,
        study_matching_rules: Optional[List[MatchingRule]] = None,
        image_matching_rules: Optional[List[MatchingRule]] = None,
    ):
        self.selector_id = selector_id
        self.series_matching_rules = list(series_matching_rules or [])
        self.study_matching_rules = list(study_matching_rules or [])
        self.image_matching_rules = list(image_matching_rules or [])

    @classmethod
    def from_dict(cls, selector_id: str, data: Dict[str, Any]) -> "DisplaySetSelector":
        if not isinstance(data, dict):
            raise MatchingRuleError(f"display set selector '{selector_id}' must be an object")
        _check_keys(
            data,
            ("id", "seriesMatchingRules", "studyMatchingRules", "imageMatchingRules"),
            f"display set selector '{selector_id}'",
        )
        return cls(
            selector_id=data.get("id", selector_id),
            series_matching_rules=_parse_rules(data.get("seriesMatchingRules"), f"{selector_id}.seriesMatchingRules"),
            study_matching_rules=_parse_rules(data.get("studyMatchingRules"), f"{selector_id}.studyMatchingRules"),
            image_matching_rules=_parse_rules(data.get("imageMatchingRules"), f"{selector_id}.imageMatchingRules"),
        )


class SyncGroup:
    """Synchronization group membership of a viewport (camera, VOI, ...)."""

    def __init__(self, group_type: str, group_id: str, source: bool = True, target: bool = True):
        self.group_type = group_type
        self.group_id = group_id
        self.source = source
        self.target = target

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncGroup":
        if not isinstance(data, dict) or "type" not in data or "id" not in data:
            raise MatchingRuleError(f"sync group needs 'type' and 'id', got {data!r}")
        _check_keys(data, ("type", "id", "source", "target"), "sync group")
        return cls(data["type"], data["id"], data.get("source", True), data.get("target", True))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.group_type, "id": self.group_id, "source": self.source, "target": self.target}


class ViewportOptions:
    """
    Base class for viewport options.

    Each subclass declares a closed set of fields, keyed by viewport type.
    FIELDS maps the camelCase definition name to the attribute name.
    """

    viewport_type: ViewportType = VIEWPORT_TYPE_STACK

    FIELDS: Dict[str, str] = {
        "toolGroupId": "tool_group_id",
        "viewportId": "viewport_id",
        "syncGroups": "sync_groups",
        "presentationId": "presentation_id",
        "presentationPrefix": "presentation_prefix",
        "allowUnmatchedView": "allow_unmatched_view",
        "customViewportProps": "custom_viewport_props",
    }

    def __init__(
        self,
        tool_group_id: str = "default",
        viewport_id: Optional[str] = None,
        sync_groups: Optional[List[SyncGroup]] = None,
        presentation_id: Optional[str] = None,
        presentation_prefix: Optional[str] = None,
        allow_unmatched_view: bool = False,
        custom_viewport_props: Optional[Dict[str, Any]] = None,
    ):
        self.tool_group_id = tool_group_id
        self.viewport_id = viewport_id
        self.sync_groups: List[SyncGroup] = list(sync_groups or [])
        self.presentation_id = presentation_id
        self.presentation_prefix = presentation_prefix
        self.allow_unmatched_view = allow_unmatched_view
        self.custom_viewport_props: Dict[str, Any] = dict(custom_viewport_props or {})

    @property
    def orientation(self) -> Optional[str]:
        return None

    @classmethod
    def _kwargs_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        allowed = tuple(cls.FIELDS) + ("viewportType", "id")
        _check_keys(data, allowed, f"{cls.viewport_type} viewport options")
        kwargs = {}
        for key, attr in cls.FIELDS.items():
            if key in data:
                kwargs[attr] = data[key]
        # "id" is accepted as an alias of viewportId
        if "id" in data and "viewport_id" not in kwargs:
            kwargs["viewport_id"] = data["id"]
        if "sync_groups" in kwargs:
            kwargs["sync_groups"] = [SyncGroup.from_dict(group) for group in kwargs["sync_groups"] or []]
        return kwargs

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ViewportOptions":
        return cls(**cls._kwargs_from_dict(data))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"viewportType": self.viewport_type}
        for key, attr in self.FIELDS.items():
            value = getattr(self, attr)
            if value is None or value == [] or value == {}:
                continue
            if key == "syncGroups":
                value = [group.to_dict() for group in value]
            result[key] = copy.deepcopy(value)
        return result

    def copy(self, **changes) -> "ViewportOptions":
        """Return a copy with the given attributes replaced."""
        clone = copy.deepcopy(self)
        for attr, value in changes.items():
            if attr not in self.FIELDS.values():
                raise AttributeError(f"{type(self).__name__} has no field '{attr}'")
            setattr(clone, attr, value)
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ViewportOptions):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_dict()!r})"


class StackViewportOptions(ViewportOptions):
    """Options for a stack (2D image series) viewport."""

    viewport_type: ViewportType = VIEWPORT_TYPE_STACK

    FIELDS = dict(ViewportOptions.FIELDS, initialImageOptions="initial_image_options")

    def __init__(self, initial_image_options: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(**kwargs)
        self.initial_image_options: Dict[str, Any] = dict(initial_image_options or {})


class VolumeViewportOptions(ViewportOptions):
    """Options for a volume (reconstructed 3D) viewport."""

    viewport_type: ViewportType = VIEWPORT_TYPE_VOLUME

    FIELDS = dict(ViewportOptions.FIELDS, orientation="volume_orientation")

    def __init__(self, volume_orientation: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.volume_orientation = volume_orientation

    @property
    def orientation(self) -> Optional[str]:
        return self.volume_orientation


VIEWPORT_OPTION_TYPES = {
    VIEWPORT_TYPE_STACK: StackViewportOptions,
    VIEWPORT_TYPE_VOLUME: VolumeViewportOptions,
}


def create_viewport_options(data: Optional[Dict[str, Any]]) -> ViewportOptions:
    """
    Build the viewport options variant named by data["viewportType"].

    Args:
        data: Viewport options dictionary (None gives default stack options)

    Returns:
        StackViewportOptions or VolumeViewportOptions
    """
    if data is None:
        return StackViewportOptions()
    if isinstance(data, ViewportOptions):
        return copy.deepcopy(data)
    if not isinstance(data, dict):
        raise MatchingRuleError(f"viewport options must be an object, got {type(data).__name__}")
    viewport_type = data.get("viewportType", VIEWPORT_TYPE_STACK)
    options_class = VIEWPORT_OPTION_TYPES.get(viewport_type)
    if options_class is None:
        raise MatchingRuleError(f"unknown viewportType '{viewport_type}'")
    return options_class.from_dict(data)


class DisplaySetOptions:
    """
    Reference from a viewport slot to a display set selector.

    display_set_index None means "best candidate not already displayed";
    an explicit index >= 0 picks that rank and may repeat a display set.
    """

    def __init__(
        self,
        selector_id: str,
        display_set_index: Optional[int] = None,
        reuse_id: Optional[str] = None,
        validate_reuse_id: bool = False,
        options: Optional[Dict[str, Any]] = None,
    ):
        if display_set_index is not None and (
            isinstance(display_set_index, bool) or not isinstance(display_set_index, int) or display_set_index < -1
        ):
            raise MatchingRuleError(f"displaySetIndex must be an integer >= -1, got {display_set_index!r}")
        self.selector_id = selector_id
        self.display_set_index = None if display_set_index == -1 else display_set_index
        self.reuse_id = reuse_id
        self.validate_reuse_id = bool(validate_reuse_id)
        self.options: Dict[str, Any] = dict(options or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DisplaySetOptions":
        if not isinstance(data, dict) or not data.get("id"):
            raise MatchingRuleError(f"display set reference needs a selector 'id', got {data!r}")
        _check_keys(data, ("id", "displaySetIndex", "reuseId", "validateReuseId", "options"), "display set reference")
        return cls(
            selector_id=data["id"],
            display_set_index=data.get("displaySetIndex"),
            reuse_id=data.get("reuseId"),
            validate_reuse_id=data.get("validateReuseId", False),
            options=data.get("options"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.selector_id}
        if self.display_set_index is not None:
            result["displaySetIndex"] = self.display_set_index
        if self.reuse_id:
            result["reuseId"] = self.reuse_id
        if self.validate_reuse_id:
            result["validateReuseId"] = True
        if self.options:
            result["options"] = copy.deepcopy(self.options)
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DisplaySetOptions):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"DisplaySetOptions({self.to_dict()!r})"


class ViewportSlot:
    """One declared viewport of a stage: options plus display set references."""

    def __init__(self, viewport_options: ViewportOptions, display_sets: List[DisplaySetOptions]):
        self.viewport_options = viewport_options
        self.display_sets = list(display_sets)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ViewportSlot":
        if not isinstance(data, dict):
            raise MatchingRuleError("viewport must be an object")
        _check_keys(data, ("viewportOptions", "displaySets"), "viewport")
        display_sets = data.get("displaySets") or []
        if not isinstance(display_sets, list):
            raise MatchingRuleError("viewport displaySets must be a list")
        return cls(
            viewport_options=create_viewport_options(data.get("viewportOptions")),
            display_sets=[DisplaySetOptions.from_dict(item) for item in display_sets],
        )


class ViewportStructure:
    """Grid shape of a stage, optionally with explicit sub-rectangles."""

    def __init__(
        self,
        rows: int = 1,
        columns: int = 1,
        layout_type: str = "grid",
        layout_options: Optional[List[Dict[str, Any]]] = None,
    ):
        if not isinstance(rows, int) or not isinstance(columns, int) or rows < 1 or columns < 1:
            raise MatchingRuleError(f"viewport structure needs positive rows/columns, got {rows}x{columns}")
        self.rows = rows
        self.columns = columns
        self.layout_type = layout_type
        self.layout_options: List[Dict[str, Any]] = [dict(item) for item in layout_options or []]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ViewportStructure":
        if not data:
            return cls()
        properties = data.get("properties", {})
        return cls(
            rows=properties.get("rows", 1),
            columns=properties.get("columns", 1),
            layout_type=data.get("layoutType", "grid"),
            layout_options=properties.get("layoutOptions"),
        )

    @property
    def cell_count(self) -> int:
        if self.layout_options:
            return len(self.layout_options)
        return self.rows * self.columns

    def position_id(self, index: int) -> str:
        """Position id of the cell at a row-major index."""
        if index < len(self.layout_options) and self.layout_options[index].get("positionId"):
            return str(self.layout_options[index]["positionId"])
        return grid_position_id(index, self.columns)


def grid_position_id(index: int, num_cols: int) -> str:
    """Position id "col-row" for a row-major grid index."""
    row, col = divmod(index, num_cols)
    return f"{col}-{row}"


class Stage:
    """
    One layout of a protocol.

    The status (disabled/passive/enabled) is derived on every evaluation and is
    intentionally not an attribute of this class.
    """

    def __init__(
        self,
        stage_id: str,
        name: str,
        viewport_structure: ViewportStructure,
        viewports: List[ViewportSlot],
        required_viewports: int = 1,
        preferred_viewports: Optional[int] = None,
        required_display_sets: Optional[List[str]] = None,
        default_viewport: Optional[ViewportSlot] = None,
    ):
        if len(viewports) > viewport_structure.cell_count:
            raise MatchingRuleError(
                f"stage '{stage_id}' declares {len(viewports)} viewports for {viewport_structure.cell_count} cells"
            )
        self.stage_id = stage_id
        self.name = name
        self.viewport_structure = viewport_structure
        self.viewports = list(viewports)
        self.required_viewports = required_viewports
        self.preferred_viewports = len(self.viewports) if preferred_viewports is None else preferred_viewports
        self.required_display_sets = list(required_display_sets or [])
        self.default_viewport = default_viewport

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "Stage":
        if not isinstance(data, dict):
            raise MatchingRuleError(f"stage {index} must be an object")
        _check_keys(
            data,
            (
                "id", "name", "viewportStructure", "viewports", "requiredViewports",
                "preferredViewports", "requiredDisplaySets", "requiredDs", "defaultViewport",
                "createdDate", "enable", "status",
            ),
            f"stage {index}",
        )
        name = data.get("name") or data.get("id") or str(index)
        default_viewport = data.get("defaultViewport")
        return cls(
            stage_id=data.get("id") or name,
            name=name,
            viewport_structure=ViewportStructure.from_dict(data.get("viewportStructure")),
            viewports=[ViewportSlot.from_dict(item) for item in data.get("viewports") or []],
            required_viewports=data.get("requiredViewports", 1),
            preferred_viewports=data.get("preferredViewports"),
            required_display_sets=data.get("requiredDisplaySets", data.get("requiredDs")),
            default_viewport=ViewportSlot.from_dict(default_viewport) if default_viewport else None,
        )

    def __repr__(self) -> str:
        return f"Stage({self.stage_id!r}, {self.viewport_structure.rows}x{self.viewport_structure.columns})"


class Protocol:
    """Top level hanging protocol: selectors plus ordered stages."""

    def __init__(
        self,
        protocol_id: str,
        stages: List[Stage],
        display_set_selectors: Dict[str, DisplaySetSelector],
        name: Optional[str] = None,
        protocol_matching_rules: Optional[List[MatchingRule]] = None,
        number_of_priors_referenced: int = -1,
        default_viewport: Optional[ViewportSlot] = None,
        tool_group_ids: Optional[List[str]] = None,
        locked: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        if not protocol_id:
            raise MatchingRuleError("protocol needs an 'id'")
        if not stages:
            raise MatchingRuleError(f"protocol '{protocol_id}' has no stages")
        self.protocol_id = protocol_id
        self.name = name or protocol_id
        self.stages = list(stages)
        self.display_set_selectors = dict(display_set_selectors)
        self.protocol_matching_rules = list(protocol_matching_rules or [])
        self.number_of_priors_referenced = number_of_priors_referenced
        self.default_viewport = default_viewport
        self.tool_group_ids = list(tool_group_ids or [])
        self.locked = locked
        self.metadata = dict(metadata or {})
        self._check_selector_references()

    def _check_selector_references(self) -> None:
        slots: List[ViewportSlot] = []
        for stage in self.stages:
            slots.extend(stage.viewports)
            if stage.default_viewport is not None:
                slots.append(stage.default_viewport)
            for selector_id in stage.required_display_sets:
                if selector_id not in self.display_set_selectors:
                    raise MatchingRuleError(
                        f"stage '{stage.stage_id}' requires unknown display set selector '{selector_id}'"
                    )
        if self.default_viewport is not None:
            slots.append(self.default_viewport)
        for slot in slots:
            for ref in slot.display_sets:
                if ref.selector_id not in self.display_set_selectors:
                    raise MatchingRuleError(
                        f"protocol '{self.protocol_id}' references unknown display set selector '{ref.selector_id}'"
                    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Protocol":
        """
        Parse a protocol definition dictionary.

        Args:
            data: JSON-compatible protocol definition

        Returns:
            Protocol

        Raises:
            MatchingRuleError: if the definition is malformed
        """
        if not isinstance(data, dict):
            raise MatchingRuleError("protocol definition must be an object")
        selectors_data = data.get("displaySetSelectors") or {}
        if not isinstance(selectors_data, dict):
            raise MatchingRuleError("displaySetSelectors must be an object")
        selectors = {
            selector_id: DisplaySetSelector.from_dict(selector_id, selector)
            for selector_id, selector in selectors_data.items()
        }
        default_viewport = data.get("defaultViewport")
        metadata = {
            key: data[key]
            for key in ("createdDate", "modifiedDate", "availableTo", "editableBy", "imageLoadStrategy",
                        "hasUpdatedPriorsInformation", "syncDataForViewports")
            if key in data
        }
        return cls(
            protocol_id=data.get("id"),
            name=data.get("name"),
            stages=[Stage.from_dict(stage, index) for index, stage in enumerate(data.get("stages") or [])],
            display_set_selectors=selectors,
            protocol_matching_rules=_parse_rules(data.get("protocolMatchingRules"), "protocolMatchingRules"),
            number_of_priors_referenced=data.get("numberOfPriorsReferenced", -1),
            default_viewport=ViewportSlot.from_dict(default_viewport) if default_viewport else None,
            tool_group_ids=data.get("toolGroupIds"),
            locked=data.get("locked", False),
            metadata=metadata,
        )

    def get_stage_index(self, stage_id: Optional[str] = None, stage_index: Optional[int] = None) -> Optional[int]:
        """Index of a stage by id or position, or None if neither identifies one."""
        if stage_index is not None:
            return stage_index if 0 <= stage_index < len(self.stages) else None
        if stage_id is not None:
            for index, stage in enumerate(self.stages):
                if stage.stage_id == stage_id:
                    return index
            return None
        return None

    def __repr__(self) -> str:
        return f"Protocol({self.protocol_id!r}, stages={len(self.stages)})"


class HPInfo:
    """What is currently applied: protocol, stage and active study."""

    def __init__(self, protocol_id: str, stage_id: str, stage_index: int, active_study_uid: str):
        self.protocol_id = protocol_id
        self.stage_id = stage_id
        self.stage_index = stage_index
        self.active_study_uid = active_study_uid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocolId": self.protocol_id,
            "stageId": self.stage_id,
            "stageIndex": self.stage_index,
            "activeStudyUID": self.active_study_uid,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HPInfo):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.protocol_id, self.stage_id, self.stage_index, self.active_study_uid))

    def __repr__(self) -> str:
        return (
            f"HPInfo(protocol_id={self.protocol_id!r}, stage_id={self.stage_id!r}, "
            f"stage_index={self.stage_index}, active_study_uid={self.active_study_uid!r})"
        )
