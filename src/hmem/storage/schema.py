from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft202012Validator

ENTRIES_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "hmem entries document",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "timestamp", "role", "content"],
        "properties": {
            "id": {"type": "integer", "minimum": 0, "maximum": 2**63 - 1},
            "timestamp": {"type": "string"},
            "role": {"type": "string"},
            "content": {"type": "string"},
        },
    },
}

_validator = Draft202012Validator(ENTRIES_SCHEMA)


def validate_entries(payload: Any) -> None:
    """Raise jsonschema.ValidationError when payload is not an entries document."""
    _validator.validate(payload)
