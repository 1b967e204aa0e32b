"""Socket payload shaping.

Learn: The REST API speaks snake_case (pydantic field names). WebSocket
frames speak camelCase, the same as channel events, so a client sees one
shape whether a frame came from the acting process or was mirrored from
another one. camelize() converts a JSON-ready snapshot recursively.
"""

from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


def camelize(value: Any) -> Any:
    """Recursively rename dict keys to camelCase. Models are dumped first."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value
