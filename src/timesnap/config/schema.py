from __future__ import annotations

from typing import Any

import jsonschema

_DIMENSION = {"type": "integer", "minimum": 1}

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "url": {"type": "string", "minLength": 1},
        "outputDirectory": {"type": "string"},
        "outputPattern": {"type": "string", "pattern": "%[0-9]*d"},
        "start": {"type": "number", "minimum": 0},
        "startDelay": {"type": "number", "minimum": 0},
        "frames": {"type": "integer", "minimum": 0},
        "duration": {"type": "number", "exclusiveMinimum": 0},
        "fps": {"type": "number", "exclusiveMinimum": 0},
        "maximumAnimationFrameDuration": {"type": "number", "exclusiveMinimum": 0},
        "canvasCaptureMode": {"type": ["string", "boolean"]},
        "selector": {"type": "string", "minLength": 1},
        "unrandomize": {
            "oneOf": [
                {"type": "boolean"},
                {"type": "integer"},
                {"const": "random-seed"},
                {
                    "type": "array",
                    "items": {"type": "integer"},
                    "minItems": 4,
                    "maxItems": 4,
                },
            ]
        },
        "viewport": {
            "type": "object",
            "properties": {
                "width": _DIMENSION,
                "height": _DIMENSION,
            },
            "additionalProperties": False,
        },
        "captureWhileSelectorExists": {"type": "string", "minLength": 1},
        "screenshotType": {"enum": ["png", "jpeg"]},
        "screenshotQuality": {"type": "integer", "minimum": 0, "maximum": 100},
        "transparentBackground": {"type": "boolean"},
        "clip": {"$ref": "#/definitions/rect"},
        "headless": {"type": "boolean"},
        "executablePath": {"type": "string"},
        "launchArguments": {"type": "array", "items": {"type": "string"}},
        "remoteUrl": {"type": "string"},
        "quiet": {"type": "boolean"},
        "logToStdErr": {"type": "boolean"},
    },
    "additionalProperties": False,
    "definitions": {
        "rect": {
            "type": "object",
            "required": ["x", "y", "width", "height"],
            "properties": {
                "x": {"type": "number"},
                "y": {"type": "number"},
                "width": {"type": "number", "exclusiveMinimum": 0},
                "height": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        }
    },
}


def validate_config(payload: dict[str, Any]) -> None:
    jsonschema.validate(instance=payload, schema=CONFIG_SCHEMA)
