"""
Shared test data for the hanging protocol engine tests.

Builds in-memory display sets, catalogs and protocol definitions so tests do
not need DICOM files.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from core.display_set_service import DisplaySet, DisplaySetService
from core.hanging_protocol_session import HangingProtocolSession
from utils.config_manager import ConfigManager


STUDY_UID = "1.2.840.99999.1"
PRIOR_STUDY_UID = "1.2.840.99999.0"


def make_display_set(uid, study_uid=STUDY_UID, modality="CT", series_number=1, description="", frames=10, **attributes):
    """DisplaySet without instances; attributes are used directly by matching rules."""
    values = {
        "Modality": modality,
        "SeriesNumber": series_number,
        "SeriesDescription": description,
        "numImageFrames": frames,
    }
    values.update(attributes)
    return DisplaySet(uid, study_uid, f"series-{uid}", attributes=values)


def make_catalog(display_sets, study_attributes=None):
    """DisplaySetService holding the given display sets."""
    service = DisplaySetService()
    service.add_display_sets(display_sets)
    for study_uid, values in (study_attributes or {}).items():
        service.set_study_attributes(study_uid, values)
    return service


def make_session(config_dir, display_sets=(), protocols=(), **config_values):
    """Session over an in-memory catalog with a config stored in config_dir."""
    config = ConfigManager(config_dir=config_dir)
    for key, value in config_values.items():
        config.set(key, value)
    session = HangingProtocolSession(config)
    session.display_set_service.add_display_sets(display_sets)
    for protocol in protocols:
        session.registry.add_protocol(protocol)
    return session


def stack_slot(selector_id, reuse_id=None, display_set_index=None, **viewport_options):
    """Viewport slot definition with one display set reference."""
    reference = {"id": selector_id}
    if reuse_id:
        reference["reuseId"] = reuse_id
    if display_set_index is not None:
        reference["displaySetIndex"] = display_set_index
    options = {"viewportType": "stack", "toolGroupId": "default"}
    options.update(viewport_options)
    return {"viewportOptions": options, "displaySets": [reference]}


def grid(rows, columns):
    return {"layoutType": "grid", "properties": {"rows": rows, "columns": columns}}


def ct_compare_protocol(protocol_id="ctCompare"):
    """
    CT protocol with a single-viewport stage and a side-by-side stage needing
    two CT series.
    """
    return {
        "id": protocol_id,
        "name": "CT Compare",
        "protocolMatchingRules": [
            {"attribute": "ModalitiesInStudy", "constraint": {"contains": "CT"}, "required": True},
        ],
        "displaySetSelectors": {
            "ctSeries": {
                "seriesMatchingRules": [
                    {"attribute": "Modality", "constraint": {"equals": "CT"}, "required": True},
                    {"attribute": "numImageFrames", "constraint": {"greaterThan": {"value": 20}}, "weight": 2},
                ],
            },
        },
        "stages": [
            {
                "id": "single",
                "viewportStructure": grid(1, 1),
                "viewports": [stack_slot("ctSeries", reuse_id="ctPrimary")],
            },
            {
                "id": "sideBySide",
                "requiredViewports": 2,
                "viewportStructure": grid(1, 2),
                "viewports": [
                    stack_slot("ctSeries", reuse_id="ctPrimary"),
                    stack_slot("ctSeries"),
                ],
            },
        ],
    }
