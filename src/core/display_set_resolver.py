"""
Display Set Resolver

This module turns display set selectors into ranked candidate lists and
resolves the display sets each viewport slot of a stage would show.

Selectors are evaluated lazily: a DisplaySetResolver covers one evaluation
pass and only scores a selector when a stage being matched references it.
Results are memoized for the pass only, so repeated passes over the same
inputs give the same output.

Inputs:
    - Protocol and its display set selectors
    - Display set catalog (get_display_sets_for_study, get_study_attributes)
    - Active study UID and prior study UIDs

Outputs:
    - Ranked DisplaySetMatchDetails per selector id
    - ViewportMatchDetails per stage viewport slot

Requirements:
    - core.rule_evaluator for scoring
"""

from typing import Any, Dict, List, Optional, Sequence

from core.hanging_protocol_model import DisplaySetOptions, DisplaySetSelector, Protocol, Stage, ViewportOptions
from core.rule_evaluator import RuleEvaluation, evaluate


class DisplaySetMatchDetails:
    """One satisfied candidate of a selector with its score and ordinal."""

    def __init__(
        self,
        display_set_instance_uid: str,
        study_instance_uid: str,
        score: float,
        ordinal: int,
        evaluation: Optional[RuleEvaluation] = None,
    ):
        self.display_set_instance_uid = display_set_instance_uid
        self.study_instance_uid = study_instance_uid
        self.score = score
        self.ordinal = ordinal
        self.evaluation = evaluation

    def __repr__(self) -> str:
        return f"DisplaySetMatchDetails({self.display_set_instance_uid!r}, score={self.score}, ordinal={self.ordinal})"


class DisplaySetInfo:
    """A resolved display set (or None) for one display set reference of a slot."""

    def __init__(self, display_set_instance_uid: Optional[str], display_set_options: DisplaySetOptions):
        self.display_set_instance_uid = display_set_instance_uid
        self.display_set_options = display_set_options

    def __repr__(self) -> str:
        return f"DisplaySetInfo({self.display_set_instance_uid!r}, {self.display_set_options.selector_id!r})"


class ViewportMatchDetails:
    """Resolved display sets and effective viewport options for one viewport slot."""

    def __init__(self, viewport_options: ViewportOptions, display_sets_info: List[DisplaySetInfo]):
        self.viewport_options = viewport_options
        self.display_sets_info = display_sets_info

    @property
    def display_set_instance_uids(self) -> List[str]:
        return [info.display_set_instance_uid for info in self.display_sets_info if info.display_set_instance_uid]

    @property
    def is_filled(self) -> bool:
        return bool(self.display_set_instance_uids)


def resolve(
    selector: DisplaySetSelector,
    display_sets: Sequence[Any],
    study_attributes: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[DisplaySetMatchDetails]:
    """
    Rank display sets for a selector.

    Study matching rules gate every display set of a study: a study failing a
    required study rule contributes no candidates, otherwise its study score is
    added to each of its display sets' series scores.

    Args:
        selector: Display set selector
        display_sets: Candidate display sets in ordinal order
        study_attributes: StudyInstanceUID -> study attribute bag

    Returns:
        Satisfied candidates, descending score, ascending ordinal on ties
    """
    study_attributes = study_attributes or {}
    study_scores: Dict[str, Optional[float]] = {}
    matches: List[DisplaySetMatchDetails] = []
    for ordinal, display_set in enumerate(display_sets):
        study_uid = display_set.study_instance_uid
        if study_uid not in study_scores:
            if selector.study_matching_rules:
                study_evaluation = evaluate(selector.study_matching_rules, study_attributes.get(study_uid, {}))
                study_scores[study_uid] = study_evaluation.score if study_evaluation.satisfied else None
            else:
                study_scores[study_uid] = 0
        study_score = study_scores[study_uid]
        if study_score is None:
            continue
        evaluation = evaluate(selector.series_matching_rules, display_set)
        if not evaluation.satisfied:
            continue
        matches.append(
            DisplaySetMatchDetails(
                display_set.display_set_instance_uid,
                study_uid,
                evaluation.score + study_score,
                ordinal,
                evaluation,
            )
        )
    matches.sort(key=lambda match: (-match.score, match.ordinal))
    return matches


def select_display_set(
    display_set_options: DisplaySetOptions,
    ranked: Sequence[DisplaySetMatchDetails],
    in_display: Sequence[str],
) -> Optional[DisplaySetMatchDetails]:
    """
    Pick a ranked candidate for one display set reference.

    An explicit displaySetIndex picks that rank even if it is already shown;
    without one the best candidate not yet in display is used.

    Args:
        display_set_options: The slot's display set reference
        ranked: Ranked candidates of the referenced selector
        in_display: Display set UIDs already placed in this pass

    Returns:
        The chosen candidate or None
    """
    index = display_set_options.display_set_index
    if index is not None:
        return ranked[index] if index < len(ranked) else None
    for match in ranked:
        if match.display_set_instance_uid not in in_display:
            return match
    return None


class DisplaySetResolver:
    """
    Lazily resolves selectors of one protocol for one evaluation pass.

    Candidate studies follow numberOfPriorsReferenced: -1 uses the active
    study only, 0 adds every known prior, N adds the first N priors.
    """

    def __init__(
        self,
        protocol: Protocol,
        display_set_service: Any,
        active_study_uid: str,
        prior_study_uids: Sequence[str] = (),
    ):
        self.protocol = protocol
        self.display_set_service = display_set_service
        self.active_study_uid = active_study_uid
        self.prior_study_uids = [uid for uid in prior_study_uids if uid != active_study_uid]
        self._matches: Dict[str, List[DisplaySetMatchDetails]] = {}
        self._candidates: Optional[List[Any]] = None
        self._study_attributes: Optional[Dict[str, Dict[str, Any]]] = None

    @property
    def study_uids(self) -> List[str]:
        priors = self.protocol.number_of_priors_referenced
        if priors is None or priors < 0:
            return [self.active_study_uid]
        if priors == 0:
            return [self.active_study_uid] + self.prior_study_uids
        return [self.active_study_uid] + self.prior_study_uids[:priors]

    def has_required_priors(self) -> bool:
        """False when the protocol references more priors than are available."""
        priors = self.protocol.number_of_priors_referenced or 0
        return priors <= 0 or len(self.prior_study_uids) >= priors

    @property
    def evaluated_selector_ids(self) -> List[str]:
        return list(self._matches)

    def _load_candidates(self) -> None:
        if self._candidates is not None:
            return
        self._candidates = []
        self._study_attributes = {}
        for study_uid in self.study_uids:
            self._candidates.extend(self.display_set_service.get_display_sets_for_study(study_uid))
            self._study_attributes[study_uid] = self.display_set_service.get_study_attributes(study_uid)

    def get_matches(self, selector_id: str) -> List[DisplaySetMatchDetails]:
        """
        Ranked candidates for a selector id, computed on first request.

        Args:
            selector_id: Display set selector id

        Returns:
            Ranked DisplaySetMatchDetails (empty for unknown selectors)
        """
        if selector_id not in self._matches:
            selector = self.protocol.display_set_selectors.get(selector_id)
            if selector is None:
                self._matches[selector_id] = []
            else:
                self._load_candidates()
                self._matches[selector_id] = resolve(selector, self._candidates, self._study_attributes)
        return self._matches[selector_id]

    def display_set_satisfies(self, selector_id: str, display_set_instance_uid: str) -> bool:
        """True if the display set is among the selector's satisfied candidates."""
        return any(
            match.display_set_instance_uid == display_set_instance_uid
            for match in self.get_matches(selector_id)
        )

    def get_display_set_match_details(self) -> Dict[str, Optional[DisplaySetMatchDetails]]:
        """Best candidate for every selector evaluated so far."""
        return {selector_id: (matches[0] if matches else None) for selector_id, matches in self._matches.items()}


def match_stage_viewports(stage: Stage, resolver: DisplaySetResolver) -> Dict[int, ViewportMatchDetails]:
    """
    Resolve every declared viewport slot of a stage without any reuse map.

    Args:
        stage: Stage to match
        resolver: Resolver for the current pass

    Returns:
        Viewport slot index -> ViewportMatchDetails
    """
    in_display: List[str] = []
    details: Dict[int, ViewportMatchDetails] = {}
    for index, slot in enumerate(stage.viewports):
        infos = []
        for display_set_options in slot.display_sets:
            match = select_display_set(
                display_set_options, resolver.get_matches(display_set_options.selector_id), in_display
            )
            uid = match.display_set_instance_uid if match else None
            if uid:
                in_display.append(uid)
            infos.append(DisplaySetInfo(uid, display_set_options))
        details[index] = ViewportMatchDetails(slot.viewport_options, infos)
    return details
