"""Replace absent tool arguments with protocol-safe defaults.

MCP servers reject `null` for most typed parameters, so every absent value
is swapped for an empty value of the kind the parameter most likely has.
The kind is guessed from the parameter name by a pluggable strategy; the
default strategy only looks at naming conventions, never at the schema.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

from toolwire.core.events import EventLog


class ValueKind(str, Enum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    STRING = "string"


_DEFAULT_FACTORIES: Dict[ValueKind, Callable[[], Any]] = {
    ValueKind.NUMBER: lambda: 0,
    ValueKind.BOOLEAN: lambda: False,
    ValueKind.SEQUENCE: list,
    ValueKind.MAPPING: dict,
    ValueKind.STRING: str,
}


def default_for(kind: ValueKind) -> Any:
    """Fresh empty value for `kind` (containers are never shared between calls)."""
    return _DEFAULT_FACTORIES[kind]()


class DefaultingStrategy(Protocol):
    def infer_kind(self, name: str) -> ValueKind:
        ...


@dataclass(frozen=True)
class NameRule:
    kind: ValueKind
    contains: Tuple[str, ...] = ()
    prefixes: Tuple[str, ...] = ()
    suffixes: Tuple[str, ...] = ()

    def matches(self, name: str) -> bool:
        return (
            any(part in name for part in self.contains)
            or name.startswith(self.prefixes)
            or name.endswith(self.suffixes)
        )


class NameConventionStrategy:
    """Guess a parameter's kind from its name; first matching rule wins."""

    RULES: Tuple[NameRule, ...] = (
        NameRule(ValueKind.NUMBER, contains=("number",), suffixes=("Count", "Id", "Limit")),
        NameRule(ValueKind.BOOLEAN, contains=("bool",), prefixes=("is", "has", "should")),
        NameRule(ValueKind.SEQUENCE, contains=("array",), suffixes=("s", "List", "Items")),
        NameRule(ValueKind.MAPPING, contains=("object",), suffixes=("Options", "Config", "Settings")),
    )

    def __init__(self, rules: Optional[Tuple[NameRule, ...]] = None, fallback: ValueKind = ValueKind.STRING):
        self.rules = self.RULES if rules is None else rules
        self.fallback = fallback

    def infer_kind(self, name: str) -> ValueKind:
        for rule in self.rules:
            if rule.matches(name):
                return rule.kind
        return self.fallback


def normalize_arguments(
    arguments: Optional[Mapping[str, Any]],
    tool_name: str = "",
    *,
    strategy: Optional[DefaultingStrategy] = None,
    events: Optional[EventLog] = None,
) -> Dict[str, Any]:
    """Return a new argument map with every `None` value replaced by a default.

    Non-mapping input yields an empty map. Present values pass through untouched.
    """
    if not isinstance(arguments, Mapping):
        return {}

    strategy = strategy or NameConventionStrategy()
    normalized: Dict[str, Any] = {}
    for key, value in arguments.items():
        if value is not None:
            normalized[key] = value
            continue
        kind = strategy.infer_kind(key)
        normalized[key] = default_for(kind)
        if events is not None:
            events.debug(
                f"Using default {kind.value} value for parameter '{key}' in tool '{tool_name}'",
                parameter=key,
                kind=kind.value,
                tool=tool_name,
            )
    return normalized
