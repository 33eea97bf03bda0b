"""Mapping helpers between arcwire tool specs, results, and provider schemas."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import json
import math
import re
import uuid
from types import MappingProxyType
from typing import Any

from ..errors import AdapterError
from ..message import ToolResult, ToolResultStatus, ensure_json_compatible, is_json_compatible

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Canonical tool/function description sent alongside a prompt."""

    name: str
    parameters: Mapping[str, Any]
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _NAME_PATTERN.fullmatch(self.name):
            msg = "tool name must match ^[a-zA-Z0-9_-]{1,64}$"
            raise AdapterError(msg)

        normalized_description: str | None = None
        if self.description is not None:
            if not isinstance(self.description, str):
                msg = "tool description must be a string when provided"
                raise AdapterError(msg)
            stripped = self.description.strip()
            if not stripped:
                msg = "tool description cannot be empty"
                raise AdapterError(msg)
            normalized_description = stripped

        if not isinstance(self.parameters, Mapping):
            msg = "tool parameters must be a mapping"
            raise AdapterError(msg)

        raw_parameters = _thaw_json_structure(self.parameters)
        try:
            ensure_json_compatible(raw_parameters, path=f"ToolSpec('{self.name}').parameters")
        except (TypeError, ValueError) as exc:
            raise AdapterError(str(exc)) from exc

        try:
            sanitized = json.loads(json.dumps(raw_parameters, allow_nan=False))
        except (TypeError, ValueError) as exc:  # pragma: no cover
            msg = "tool parameters must be JSON serializable"
            raise AdapterError(msg) from exc

        if sanitized.get("type") != "object":
            msg = "tool parameters must describe a JSON object"
            raise AdapterError(msg)

        properties = sanitized.get("properties", {})
        if not isinstance(properties, dict):
            msg = "tool parameters 'properties' must be a mapping"
            raise AdapterError(msg)

        required = sanitized.get("required")
        if required is not None:
            if not isinstance(required, list):
                msg = "tool parameter 'required' must be a list of strings"
                raise AdapterError(msg)
            for index, item in enumerate(required):
                if not isinstance(item, str) or not item:
                    msg = f"required parameter names must be non-empty strings (index {index})"
                    raise AdapterError(msg)
                if item not in properties:
                    msg = f"required parameter '{item}' is not defined"
                    raise AdapterError(msg)

        if normalized_description is not None:
            object.__setattr__(self, "description", normalized_description)
        object.__setattr__(self, "parameters", _freeze_json_structure(sanitized))

    def schema(self) -> dict[str, Any]:
        """Return a mutable copy of the JSON schema."""

        return _thaw_json_structure(self.parameters)


def tool_specs_to_openai(tool_specs: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    """Convert tool specifications to the chat-completions ``tools`` schema."""

    normalized_tools: list[dict[str, Any]] = []
    for spec in _validated_specs(tool_specs):
        function_payload: dict[str, Any] = {
            "name": spec.name,
            "parameters": spec.schema(),
        }
        if spec.description is not None:
            function_payload["description"] = spec.description
        normalized_tools.append({"type": "function", "function": function_payload})
    return normalized_tools


def tool_specs_to_anthropic(tool_specs: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    """Convert tool specifications to the Anthropic messages ``tools`` schema."""

    normalized_tools: list[dict[str, Any]] = []
    for spec in _validated_specs(tool_specs):
        tool_payload: dict[str, Any] = {"name": spec.name}
        if spec.description is not None:
            tool_payload["description"] = spec.description
        tool_payload["input_schema"] = spec.schema()
        normalized_tools.append(tool_payload)
    return normalized_tools


def format_tool_result_content(result: ToolResult) -> str:
    """Render a tool result as the string content providers expect."""

    if result.status is ToolResultStatus.ERROR:
        detail = _dump_json(result.data) if result.data is not None else ""
        return f"Error: {result.message or 'Unknown error'}\n{detail}".strip()
    if isinstance(result.data, str):
        return result.data
    return _dump_json(result.data)


def safe_json_parse(raw: str) -> Any:
    """Strict ``json.loads`` that returns ``raw`` unchanged when it cannot be decoded.

    ``NaN``, ``Infinity`` and numbers that overflow a float are rejected, so
    anything returned besides ``raw`` is plain JSON.
    """

    try:
        return json.loads(raw, parse_float=_finite_float, parse_constant=_reject_constant)
    except (TypeError, ValueError):
        return raw


def parse_tool_arguments(raw: str) -> Any:
    """Decode streamed/returned tool arguments; empty input means no arguments."""

    if not raw or not raw.strip():
        return {}
    return safe_json_parse(raw)


def tool_arguments_from_object(value: Any) -> Any:
    """Accept already-decoded tool arguments, or fall back to their JSON text."""

    if value is None:
        return {}
    if is_json_compatible(value):
        return value
    return _dump_json(value)


def encode_tool_arguments(input_args: Any) -> str:
    """Encode tool arguments as the JSON string chat-completions expects."""

    if isinstance(input_args, str):
        return input_args
    return _dump_json({} if input_args is None else input_args)


def tool_input_object(input_args: Any) -> dict[str, Any]:
    """Coerce tool arguments into the JSON object Anthropic requires."""

    if input_args is None:
        return {}
    if isinstance(input_args, Mapping):
        return dict(input_args)
    if isinstance(input_args, str):
        parsed = parse_tool_arguments(input_args)
        if isinstance(parsed, dict):
            return parsed
    return {"raw": input_args}


def _validated_specs(tool_specs: Sequence[ToolSpec]) -> list[ToolSpec]:
    if isinstance(tool_specs, (str, bytes, bytearray, Mapping)):
        msg = "tools must be provided as a sequence of ToolSpec instances"
        raise AdapterError(msg)

    specs = list(tool_specs)
    seen_names: set[str] = set()
    for index, spec in enumerate(specs):
        if not isinstance(spec, ToolSpec):
            msg = f"tools[{index}] must be a ToolSpec"
            raise AdapterError(msg)
        if spec.name in seen_names:
            msg = f"duplicate tool name '{spec.name}'"
            raise AdapterError(msg)
        seen_names.add(spec.name)
    return specs


def _dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        msg = f"number {text} is out of range"
        raise ValueError(msg)
    return value


def _reject_constant(token: str) -> Any:
    msg = f"unsupported JSON constant {token}"
    raise ValueError(msg)


def _freeze_json_structure(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({key: _freeze_json_structure(inner) for key, inner in value.items()})
    if isinstance(value, list):
        return tuple(_freeze_json_structure(inner) for inner in value)
    return value


def _thaw_json_structure(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw_json_structure(inner) for key, inner in value.items()}
    if isinstance(value, tuple):
        return [_thaw_json_structure(inner) for inner in value]
    return value


def generate_call_id(prefix: str) -> str:
    """Return a fresh tool-call id such as ``call_<hex>`` or ``toolu_<hex>``."""

    return f"{prefix}_{uuid.uuid4().hex}"
