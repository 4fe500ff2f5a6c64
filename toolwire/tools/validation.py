"""Optional JSON-schema check of tool arguments against a tool's inputSchema.

Kept apart from argument normalization: defaults are guessed from names,
while this pass only reports whether the final arguments fit the schema.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError


def validate_arguments(arguments: Mapping[str, Any], input_schema: Optional[Dict[str, Any]]) -> List[str]:
    """Return human-readable schema violations; an empty list means valid.

    A missing or empty schema accepts anything. An invalid schema is reported
    as a single violation rather than raised.
    """
    if not input_schema:
        return []
    try:
        Draft202012Validator.check_schema(input_schema)
    except SchemaError as e:
        return [f"Invalid input schema: {e.message}"]

    validator = Draft202012Validator(input_schema)
    errors = sorted(validator.iter_errors(dict(arguments)), key=lambda err: [str(p) for p in err.path])
    messages = []
    for err in errors:
        location = ".".join(str(p) for p in err.path)
        messages.append(f"{location}: {err.message}" if location else err.message)
    return messages
