"""Shared serialization helpers.

Provides the ``snake_to_camel`` alias generator used by every
Pydantic model, and ``to_document`` which turns a model into the
JSON-encodable dict handed back to tool callers.
"""

from __future__ import annotations

from typing import Any

import pydantic


def snake_to_camel(name: str) -> str:
    """Convert a snake_case string to camelCase.

    Args:
        name: A snake_case identifier such as
            ``"average_request_time"``.

    Returns:
        The camelCase equivalent, e.g. ``"averageRequestTime"``.
    """
    parts = name.split("_")
    return parts[0] + "".join(w.capitalize() for w in parts[1:])


def to_document(model: pydantic.BaseModel) -> dict[str, Any]:
    """Dump *model* with camelCase keys and JSON-safe values."""
    return model.model_dump(by_alias=True, mode="json", exclude_none=True)
