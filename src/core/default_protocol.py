"""
Default Hanging Protocol

Built-in protocol used when no registered protocol matches a study and as the
fallback target when a toggled protocol is switched off.

Stages:
    - "default": one stack viewport showing the best display set with images
    - "1x2": two stack viewports side by side (passive with a single display set)

Positions not declared by a stage are filled from the defaultViewport, which
always takes the next display set not already shown.
"""

from typing import Any, Dict

DEFAULT_PROTOCOL_ID = "default"

DEFAULT_PROTOCOL: Dict[str, Any] = {
    "id": DEFAULT_PROTOCOL_ID,
    "name": "Default",
    "locked": True,
    "numberOfPriorsReferenced": 0,
    "protocolMatchingRules": [],
    "toolGroupIds": ["default"],
    "defaultViewport": {
        "viewportOptions": {
            "viewportType": "stack",
            "toolGroupId": "default",
            "allowUnmatchedView": True,
        },
        "displaySets": [
            {
                "id": "defaultDisplaySetId",
                "displaySetIndex": -1,
            },
        ],
    },
    "displaySetSelectors": {
        "defaultDisplaySetId": {
            "seriesMatchingRules": [
                {
                    "attribute": "numImageFrames",
                    "constraint": {"greaterThan": {"value": 0}},
                },
            ],
        },
    },
    "stages": [
        {
            "id": "default",
            "name": "default",
            "viewportStructure": {
                "layoutType": "grid",
                "properties": {"rows": 1, "columns": 1},
            },
            "viewports": [
                {
                    "viewportOptions": {
                        "viewportType": "stack",
                        "viewportId": "default",
                        "toolGroupId": "default",
                    },
                    "displaySets": [
                        {
                            "id": "defaultDisplaySetId",
                            "reuseId": "position-0,0",
                        },
                    ],
                },
            ],
        },
        {
            "id": "1x2",
            "name": "1x2",
            "requiredViewports": 1,
            "preferredViewports": 2,
            "viewportStructure": {
                "layoutType": "grid",
                "properties": {"rows": 1, "columns": 2},
            },
            "viewports": [
                {
                    "viewportOptions": {
                        "viewportType": "stack",
                        "toolGroupId": "default",
                    },
                    "displaySets": [
                        {
                            "id": "defaultDisplaySetId",
                            "reuseId": "position-0,0",
                        },
                    ],
                },
                {
                    "viewportOptions": {
                        "viewportType": "stack",
                        "toolGroupId": "default",
                    },
                    "displaySets": [
                        {
                            "id": "defaultDisplaySetId",
                            "displaySetIndex": 1,
                            "reuseId": "position-1,0",
                        },
                    ],
                },
            ],
        },
    ],
}
