"""
Key case conversion for API responses.
Stored payloads are snake_case; the frontend consumes camelCase.
"""
from typing import Any

from pydantic.alias_generators import to_camel


def dict_keys_to_camel(obj: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase."""
    if isinstance(obj, dict):
        return {to_camel(k): dict_keys_to_camel(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [dict_keys_to_camel(x) for x in obj]
    return obj
