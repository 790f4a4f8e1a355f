"""
Matching Rule Evaluator

This module scores candidates (display sets, studies) against hanging protocol
matching rules. Each satisfied rule adds its weight to the score; a failed
required rule rejects the candidate outright.

Inputs:
    - MatchingRule lists
    - Candidates: dictionaries, DisplaySet objects (get_attribute), pydicom
      Datasets (keyword lookup) or plain objects

Outputs:
    - RuleEvaluation (score, satisfied, passed/failed rule lists)
    - Ranked candidate lists

Requirements:
    - numpy for array normalization
    - pydicom for MultiValue/PersonName handling
"""

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from pydicom.datadict import tag_for_keyword
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue
from pydicom.valuerep import PersonName

from core.hanging_protocol_errors import MatchingRuleError
from core.hanging_protocol_model import MatchingRule


class _Missing:
    """Marker for an attribute path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class RuleEvaluation:
    """Result of evaluating a rule list against one candidate."""

    def __init__(self, score: float, satisfied: bool, passed: List[MatchingRule], failed: List[MatchingRule]):
        self.score = score
        self.satisfied = satisfied
        self.passed = passed
        self.failed = failed

    def __repr__(self) -> str:
        return f"RuleEvaluation(score={self.score}, satisfied={self.satisfied})"


def _lookup(candidate: Any, key: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(key, MISSING)
    if isinstance(candidate, Dataset):
        # Datasets are addressed by DICOM keyword
        if tag_for_keyword(key) is None:
            return MISSING
        if key in candidate:
            return candidate.get(key)
        return MISSING
    if hasattr(candidate, "get_attribute"):
        return candidate.get_attribute(key, MISSING)
    return getattr(candidate, key, MISSING)


def get_attribute_value(candidate: Any, path: str) -> Any:
    """
    Resolve a dot path against a candidate.

    Args:
        candidate: Attribute bag to read from
        path: Dot-separated attribute path (e.g. "Modality" or "study.StudyDate")

    Returns:
        The resolved value, or MISSING if any segment does not resolve

    Raises:
        MatchingRuleError: if the path is empty or has an empty segment
    """
    if not isinstance(path, str) or not path:
        raise MatchingRuleError(f"invalid attribute path {path!r}")
    segments = path.split(".")
    if any(not segment for segment in segments):
        raise MatchingRuleError(f"invalid attribute path {path!r}")
    value = candidate
    for segment in segments:
        if value is None or value is MISSING:
            return MISSING
        if isinstance(value, (list, tuple, MultiValue)) and segment.isdigit():
            index = int(segment)
            value = value[index] if index < len(value) else MISSING
            continue
        value = _lookup(value, segment)
    if value is None:
        return MISSING
    return value


def _normalize(value: Any) -> Any:
    """Convert DICOM/numpy value types to plain Python for comparison."""
    if isinstance(value, PersonName):
        return str(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (list, tuple, MultiValue)):
        return [_normalize(item) for item in value]
    return value


def _constraint_value(raw: Any) -> Any:
    if isinstance(raw, dict) and "value" in raw:
        return raw["value"]
    return raw


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _values_equal(actual: Any, expected: Any) -> bool:
    actual = _normalize(actual)
    expected = _normalize(expected)
    if isinstance(actual, list) or isinstance(expected, list):
        if not isinstance(actual, list) or not isinstance(expected, list):
            return False
        return len(actual) == len(expected) and all(
            _values_equal(a, e) for a, e in zip(actual, expected)
        )
    if actual == expected:
        return True
    # DICOM numeric strings ("3") compare equal to numbers
    if isinstance(actual, str) != isinstance(expected, str):
        left, right = _to_number(actual), _to_number(expected)
        return left is not None and right is not None and left == right
    return False


def _contains(actual: Any, expected: Any, caseless: bool) -> bool:
    actual = _normalize(actual)
    expected = _normalize(expected)
    wanted = expected if isinstance(expected, list) else [expected]
    if isinstance(actual, list):
        if caseless:
            folded = [str(item).casefold() for item in actual]
            return all(str(item).casefold() in folded for item in wanted)
        return all(any(_values_equal(item, want) for item in actual) for want in wanted)
    text = str(actual)
    if caseless:
        text = text.casefold()
        return all(str(want).casefold() in text for want in wanted)
    return all(str(want) in text for want in wanted)


def check_constraint(operator: str, actual: Any, raw_expected: Any) -> bool:
    """
    Check one constraint operator against a resolved attribute value.

    Args:
        operator: One of equals, notEquals, contains, containsI, greaterThan
        actual: Resolved candidate value (MISSING never matches)
        raw_expected: Constraint value, bare or {"value": x}

    Returns:
        True if the constraint holds
    """
    if actual is MISSING:
        return False
    expected = _constraint_value(raw_expected)
    if operator == "equals":
        return _values_equal(actual, expected)
    if operator == "notEquals":
        return not _values_equal(actual, expected)
    if operator == "contains":
        return _contains(actual, expected, caseless=False)
    if operator == "containsI":
        return _contains(actual, expected, caseless=True)
    if operator == "greaterThan":
        left, right = _to_number(_normalize(actual)), _to_number(expected)
        return left is not None and right is not None and left > right
    raise MatchingRuleError(f"unknown constraint operator '{operator}'")


def evaluate_rule(rule: MatchingRule, candidate: Any) -> bool:
    """Return True if every operator of the rule's constraint holds for the candidate."""
    actual = get_attribute_value(candidate, rule.attribute)
    return all(check_constraint(operator, actual, value) for operator, value in rule.constraint.items())


def evaluate(rules: Sequence[MatchingRule], candidate: Any) -> RuleEvaluation:
    """
    Score a candidate against a rule list.

    Args:
        rules: Matching rules
        candidate: Attribute bag

    Returns:
        RuleEvaluation; score is 0 and satisfied False when a required rule fails
    """
    score = 0
    passed: List[MatchingRule] = []
    failed: List[MatchingRule] = []
    for rule in rules:
        if evaluate_rule(rule, candidate):
            score += rule.weight
            passed.append(rule)
        else:
            failed.append(rule)
    if any(rule.required for rule in failed):
        return RuleEvaluation(0, False, passed, failed)
    return RuleEvaluation(score, True, passed, failed)


def rank(rules: Sequence[MatchingRule], candidates: Iterable[Any]) -> List[Tuple[int, Any, RuleEvaluation]]:
    """
    Rank satisfied candidates by descending score, earliest ordinal first on ties.

    Returns:
        List of (ordinal, candidate, evaluation) tuples
    """
    scored = []
    for ordinal, candidate in enumerate(candidates):
        evaluation = evaluate(rules, candidate)
        if evaluation.satisfied:
            scored.append((ordinal, candidate, evaluation))
    scored.sort(key=lambda item: (-item[2].score, item[0]))
    return scored
