import json
import typing
from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Any, Dict

from .contracts.base import IDENTIFIER_TYPES, PROVENANCE_TYPES
from .contracts.effects import EFFECT_TYPES, Belief
from .contracts.actions import ACTION_TYPES


ACTION_REGISTRY = {cls.__name__: cls for cls in ACTION_TYPES}
RECORD_REGISTRY = {
    cls.__name__: cls for cls in EFFECT_TYPES + PROVENANCE_TYPES + (Belief,)
}


def to_plain(obj: Any) -> Any:
    """
    Reduce records to JSON-ready values.

    RULES:
    1. Identifiers become their integer value.
    2. Enums MUST use their .value.
    3. Dataclasses become dicts tagged with "type" (the class name); no record
       field may be named "type".
    4. Sets -> Lists (sorted for determinism).
    """
    if isinstance(obj, IDENTIFIER_TYPES):
        return obj.value
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        data = {"type": type(obj).__name__}
        for f in fields(obj):
            data[f.name] = to_plain(getattr(obj, f.name))
        return data
    if isinstance(obj, (set, frozenset)):
        return sorted(to_plain(item) for item in obj)
    if isinstance(obj, (list, tuple)):
        return [to_plain(item) for item in obj]
    if isinstance(obj, dict):
        return {str(to_plain(k)): to_plain(v) for k, v in obj.items()}
    return obj


class StrictForensicEncoder(json.JSONEncoder):
    """
    JSON Encoder that prioritizes Fidelity over Flexibility.

    Anything json cannot encode natively goes through to_plain, so the
    same rules apply whether a record is nested or top-level.
    """

    def default(self, obj: Any) -> Any:
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        plain = to_plain(obj)
        if plain is obj:
            return super().default(obj)
        return plain


def canonical_json(obj: Any) -> str:
    """Byte-stable JSON: sorted keys, no whitespace."""
    return json.dumps(obj, cls=StrictForensicEncoder, sort_keys=True, separators=(",", ":"))


# =============================================================================
# ACTION CODEC
# =============================================================================

def action_to_dict(action: Any) -> Dict[str, Any]:
    if type(action) not in ACTION_TYPES:
        raise TypeError(f"Unknown action variant: {type(action).__name__}")
    return to_plain(action)


def action_from_dict(data: Dict[str, Any]) -> Any:
    """Rebuild an action from its tagged dict, using the field type hints."""
    kind = data.get("type")
    cls = ACTION_REGISTRY.get(kind)
    if cls is None:
        raise TypeError(f"Unknown action variant: {kind!r}")
    return _decode_record(cls, data)


def _decode_record(cls: type, data: Dict[str, Any]) -> Any:
    hints = typing.get_type_hints(cls)
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            raise ValueError(f"{cls.__name__} is missing field {f.name!r}")
        kwargs[f.name] = _decode(hints[f.name], data[f.name])
    return cls(**kwargs)


def _decode(hint: Any, value: Any) -> Any:
    origin = typing.get_origin(hint)
    args = typing.get_args(hint)

    if origin is typing.Union:
        if value is None and type(None) in args:
            return None
        if isinstance(value, dict) and "type" in value:
            cls = RECORD_REGISTRY.get(value["type"])
            if cls is None:
                raise TypeError(f"Unknown record variant: {value['type']!r}")
            return _decode_record(cls, value)
        for arg in args:
            if arg is not type(None):
                return _decode(arg, value)
    if origin is frozenset:
        return frozenset(_decode(args[0], item) for item in value)
    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(_decode(args[0], item) for item in value)
        return tuple(_decode(a, item) for a, item in zip(args, value))
    if hint in IDENTIFIER_TYPES:
        return hint(int(value))
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(value)
    if isinstance(hint, type) and is_dataclass(hint):
        return _decode_record(hint, value)
    if hint is float:
        return float(value)
    return value
