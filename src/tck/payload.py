"""JSON parameter payloads sent to the system under test.

Payloads are typed as pydantic's recursive ``JsonValue`` union (str, int, float, bool,
None, list, str-keyed dict) and validated before they go on the wire, so a stray
``bytes`` or ``set`` fails locally instead of as an opaque server error.
"""

from typing import Any

from pydantic import JsonValue, TypeAdapter, ValidationError

Params = dict[str, JsonValue]

_params = TypeAdapter(Params)


def validate_params(params: Any) -> Params:
    """Return ``params`` as a JSON object, raising ValueError if it is not one."""
    if params is None:
        return {}
    try:
        return _params.validate_python(params, strict=True)
    except ValidationError as e:
        raise ValueError(f"invalid RPC params: {e}") from e


def drop_unset(value: Any) -> Any:
    """Recursively remove ``None`` values from mappings, so unset fields are omitted."""
    if isinstance(value, dict):
        return {k: drop_unset(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [drop_unset(v) for v in value]
    return value
