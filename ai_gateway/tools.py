"""
Tool Schema Adapter
===================
One canonical tool definition, many wire formats.

A ToolDefinition is written once and registered once (validation happens at
registration). At call time the adapter produces the function-calling schema
each provider expects, degrading rather than failing: names are sanitized and
truncated, long descriptions are cut at a sentence or word boundary, features
a provider cannot express (nullable, defaults, enums, deep nesting) are
dropped. In the other direction, each provider's tool-invocation payload is
normalized into ToolCall objects.

Wire formats:
- claude:            {name, description, input_schema}
- openai / deepseek: {type: "function", function: {name, description, parameters}}
- ollama:            same as openai
- gemini:            {name, description, parameters} with upper-case types
"""

from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from .errors import ValidationFailed
from .models import ProviderID, ToolCall

logger = logging.getLogger(__name__)

JSON_TYPES = ("string", "number", "integer", "boolean", "array", "object", "null")
NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
MAX_CANONICAL_NAME_LENGTH = 64
MAX_CANONICAL_DESCRIPTION_LENGTH = 1024


@dataclass
class PropertySchema:
    """One parameter of a tool, JSON-schema flavoured"""

    type: str
    description: str = ""
    enum: list[Any] | None = None
    items: PropertySchema | None = None
    properties: dict[str, PropertySchema] | None = None
    required: list[str] | None = None
    default: Any = None
    nullable: bool = False
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    format: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PropertySchema:
        items = data.get("items")
        properties = data.get("properties")
        return cls(
            type=str(data.get("type", "")),
            description=data.get("description", "") or "",
            enum=list(data["enum"]) if data.get("enum") is not None else None,
            items=cls.from_dict(items) if isinstance(items, dict) else None,
            properties=(
                {k: cls.from_dict(v) for k, v in properties.items()}
                if isinstance(properties, dict)
                else None
            ),
            required=list(data["required"]) if data.get("required") else None,
            default=data.get("default"),
            nullable=bool(data.get("nullable", False)),
            minimum=data.get("minimum"),
            maximum=data.get("maximum"),
            min_length=data.get("minLength"),
            max_length=data.get("maxLength"),
            pattern=data.get("pattern"),
            format=data.get("format"),
        )


@dataclass
class ToolMetadata:
    dangerous: bool = False
    is_async: bool = False
    cacheable: bool = False
    category: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class ToolDefinition:
    """Provider-agnostic tool definition (source of truth for a capability)"""

    name: str
    description: str
    properties: dict[str, PropertySchema] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)
    metadata: ToolMetadata = field(default_factory=ToolMetadata)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolDefinition:
        """Accepts inputSchema / input_schema / parameters as the schema key"""
        schema = (
            data.get("inputSchema") or data.get("input_schema") or data.get("parameters") or {}
        )
        meta = data.get("metadata") or {}
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            properties={
                k: PropertySchema.from_dict(v)
                for k, v in (schema.get("properties") or {}).items()
            },
            required=list(schema.get("required") or []),
            metadata=ToolMetadata(
                dangerous=bool(meta.get("dangerous", False)),
                is_async=bool(meta.get("async", False)),
                cacheable=bool(meta.get("cacheable", False)),
                category=meta.get("category"),
                tags=list(meta.get("tags") or []),
            ),
        )


@dataclass(frozen=True)
class ProviderToolCapabilities:
    """What a provider's function-calling API can express"""

    wire_format: str
    max_name_length: int = 64
    max_description_length: int = 1024
    supported_types: tuple[str, ...] = (
        "string",
        "number",
        "integer",
        "boolean",
        "array",
        "object",
    )
    supports_enums: bool = True
    supports_nullable: bool = False
    supports_defaults: bool = False
    supports_async_tools: bool = True
    max_nesting_depth: int = 5
    uppercase_types: bool = False
    requires_object_properties: bool = False

    def wire_type(self, json_type: str) -> str:
        return json_type.upper() if self.uppercase_types else json_type


PROVIDER_CAPABILITIES: dict[ProviderID, ProviderToolCapabilities] = {
    ProviderID.CLAUDE: ProviderToolCapabilities(
        wire_format="anthropic",
        supports_nullable=True,
    ),
    ProviderID.OPENAI: ProviderToolCapabilities(wire_format="openai"),
    ProviderID.DEEPSEEK: ProviderToolCapabilities(wire_format="openai"),
    ProviderID.GEMINI: ProviderToolCapabilities(
        wire_format="gemini",
        max_description_length=512,
        supports_nullable=True,
        supports_async_tools=False,
        max_nesting_depth=3,
        uppercase_types=True,
        requires_object_properties=True,
    ),
    ProviderID.OLLAMA: ProviderToolCapabilities(
        wire_format="openai",
        max_description_length=512,
        supports_async_tools=False,
        max_nesting_depth=3,
    ),
}


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: str  # critical | error | warning | info
    suggestion: str | None = None


@dataclass
class ToolValidationResult:
    valid: bool
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]
    suggestions: list[str]
    score: int  # 0-100


@dataclass(frozen=True)
class CompatibilityCheck:
    provider: str
    compatible: bool
    limitations: tuple[str, ...]
    required_modifications: tuple[str, ...]
    confidence: float


class ToolSchemaAdapter:
    """Converts, checks and validates tool schemas across providers"""

    ELLIPSIS = "..."

    def capabilities(self, provider: ProviderID | str) -> ProviderToolCapabilities:
        return PROVIDER_CAPABILITIES[ProviderID.parse(provider)]

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_provider_format(
        self, tool: ToolDefinition, provider: ProviderID | str
    ) -> dict[str, Any]:
        """Adapt a canonical tool into the provider's wire schema"""
        caps = self.capabilities(provider)
        name = self.sanitize_name(tool.name, caps.max_name_length)
        description = self.smart_truncate(tool.description or name, caps.max_description_length)
        if name != tool.name:
            logger.debug(f"Tool name '{tool.name}' adapted to '{name}' for {provider}")

        properties = {
            key: self._convert_property(prop, caps, depth=1)
            for key, prop in tool.properties.items()
        }
        required = [r for r in tool.required if r in properties]
        parameters: dict[str, Any] = {
            "type": caps.wire_type("object"),
            "properties": properties,
        }
        if required:
            parameters["required"] = required

        if caps.wire_format == "anthropic":
            return {"name": name, "description": description, "input_schema": parameters}

        if caps.wire_format == "gemini":
            declaration: dict[str, Any] = {"name": name, "description": description}
            if properties:
                declaration["parameters"] = parameters
            return declaration

        parameters.setdefault("required", [])
        return {
            "type": "function",
            "function": {"name": name, "description": description, "parameters": parameters},
        }

    def to_provider_format_batch(
        self, tools: list[ToolDefinition], provider: ProviderID | str
    ) -> list[dict[str, Any]]:
        return [self.to_provider_format(tool, provider) for tool in tools]

    def wire_names(
        self, tools: list[ToolDefinition], provider: ProviderID | str
    ) -> dict[str, str]:
        """Map adapted (wire) names back to canonical tool names"""
        caps = self.capabilities(provider)
        return {self.sanitize_name(t.name, caps.max_name_length): t.name for t in tools}

    def _convert_property(
        self, prop: PropertySchema, caps: ProviderToolCapabilities, depth: int
    ) -> dict[str, Any]:
        json_type = prop.type if prop.type in caps.supported_types else "string"
        if json_type != prop.type:
            logger.debug(f"Unsupported type '{prop.type}' mapped to string")

        converted: dict[str, Any] = {"type": caps.wire_type(json_type)}
        description = prop.description

        if prop.enum and caps.supports_enums:
            converted["enum"] = list(prop.enum)
        if prop.nullable and caps.supports_nullable:
            converted["nullable"] = True
        if prop.default is not None and caps.supports_defaults:
            converted["default"] = copy.deepcopy(prop.default)

        if json_type in ("number", "integer"):
            if prop.minimum is not None:
                converted["minimum"] = prop.minimum
            if prop.maximum is not None:
                converted["maximum"] = prop.maximum
        elif json_type == "string":
            if prop.min_length is not None:
                converted["minLength"] = prop.min_length
            if prop.max_length is not None:
                converted["maxLength"] = prop.max_length
            if prop.pattern:
                converted["pattern"] = prop.pattern
            if prop.format:
                converted["format"] = prop.format
        elif json_type == "object":
            if prop.properties and depth < caps.max_nesting_depth:
                converted["properties"] = {
                    key: self._convert_property(child, caps, depth + 1)
                    for key, child in prop.properties.items()
                }
                nested_required = [r for r in prop.required or [] if r in prop.properties]
                if nested_required:
                    converted["required"] = nested_required
            elif caps.requires_object_properties:
                # Bare objects are rejected; pass the value as encoded JSON instead
                converted = {"type": caps.wire_type("string")}
                description = f"{description} (JSON-encoded object)".strip()
        elif json_type == "array":
            # Items sit at the array's own nesting level
            converted["items"] = self._convert_property(
                prop.items or PropertySchema(type="string"), caps, depth
            )

        if description:
            converted["description"] = description
        return converted

    @staticmethod
    def sanitize_name(name: str, max_length: int) -> str:
        """Coerce to [A-Za-z_][A-Za-z0-9_]* within max_length"""
        sanitized = re.sub(r"[^A-Za-z0-9_]", "_", name or "")
        if not sanitized or not re.match(r"[A-Za-z_]", sanitized[0]):
            sanitized = "_" + sanitized
        return sanitized[:max_length]

    @classmethod
    def smart_truncate(cls, text: str, max_length: int) -> str:
        """Cut at a sentence boundary, else a word boundary, then add an ellipsis"""
        if len(text) <= max_length:
            return text

        budget = max_length - len(cls.ELLIPSIS)
        truncated = ""
        for sentence in re.findall(r"[^.!?]+[.!?]+", text):
            if len(truncated) + len(sentence) > budget:
                break
            truncated += sentence
        truncated = truncated.strip()

        if not truncated:
            cut = text[:budget]
            if not text[budget].isspace():
                last_space = cut.rfind(" ")
                if last_space > 0:
                    cut = cut[:last_space]
            truncated = cut.rstrip()

        return truncated + cls.ELLIPSIS

    def optimize_for_provider(
        self, tool: ToolDefinition, provider: ProviderID | str
    ) -> ToolDefinition:
        """Return a canonical copy with provider-unsupported features removed"""
        caps = self.capabilities(provider)
        optimized = copy.deepcopy(tool)
        optimized.description = self.smart_truncate(
            optimized.description, caps.max_description_length
        )
        self._strip_unsupported(optimized.properties, caps)
        return optimized

    def _strip_unsupported(
        self, properties: dict[str, PropertySchema], caps: ProviderToolCapabilities
    ) -> None:
        for prop in properties.values():
            if not caps.supports_nullable:
                prop.nullable = False
            if not caps.supports_defaults:
                prop.default = None
            if not caps.supports_enums:
                prop.enum = None
            if prop.properties:
                self._strip_unsupported(prop.properties, caps)
            if prop.items is not None:
                self._strip_unsupported({"items": prop.items}, caps)

    # ------------------------------------------------------------------
    # Compatibility
    # ------------------------------------------------------------------

    def check_compatibility(
        self, tool: ToolDefinition, provider: ProviderID | str
    ) -> CompatibilityCheck:
        """Dry-run assessment; never mutates the tool"""
        provider_id = ProviderID.parse(provider)
        caps = PROVIDER_CAPABILITIES[provider_id]
        limitations: list[str] = []
        modifications: list[str] = []
        compatible = True
        confidence = 1.0

        if len(tool.name) > caps.max_name_length:
            compatible = False
            modifications.append(f"Shorten name to {caps.max_name_length} characters")
            confidence *= 0.5
        elif tool.name and not NAME_PATTERN.match(tool.name):
            modifications.append("Name will be sanitized to letters, digits and underscores")
            confidence *= 0.9

        if len(tool.description) > caps.max_description_length:
            limitations.append(
                f"Description will be truncated to {caps.max_description_length} characters"
            )
            confidence *= 0.9

        if tool.metadata.is_async and not caps.supports_async_tools:
            limitations.append("Provider may not handle async operations optimally")
            confidence *= 0.8

        unsupported = self._find_unsupported_types(tool.properties, caps)
        if unsupported:
            compatible = False
            modifications.append(f"Convert unsupported types: {', '.join(unsupported)}")
            confidence *= 0.6

        if not caps.supports_nullable and self._any_property(
            tool.properties, lambda p: p.nullable
        ):
            limitations.append("Nullable properties will be treated as optional")
            confidence *= 0.9

        if not caps.supports_defaults and self._any_property(
            tool.properties, lambda p: p.default is not None
        ):
            limitations.append("Default values will be dropped")
            confidence *= 0.95

        depth = self._max_depth(tool.properties)
        if depth > caps.max_nesting_depth:
            limitations.append(
                f"Nesting deeper than {caps.max_nesting_depth} levels will be flattened"
            )
            confidence *= 0.85

        return CompatibilityCheck(
            provider=provider_id.value,
            compatible=compatible,
            limitations=tuple(limitations),
            required_modifications=tuple(modifications),
            confidence=round(confidence, 4),
        )

    def check_all_compatibility(self, tool: ToolDefinition) -> dict[str, CompatibilityCheck]:
        return {p.value: self.check_compatibility(tool, p) for p in PROVIDER_CAPABILITIES}

    def _find_unsupported_types(
        self,
        properties: dict[str, PropertySchema],
        caps: ProviderToolCapabilities,
        prefix: str = "",
    ) -> list[str]:
        unsupported: list[str] = []
        for key, prop in properties.items():
            path = f"{prefix}{key}"
            if prop.type not in caps.supported_types:
                unsupported.append(f"{path}:{prop.type}")
            if prop.properties:
                unsupported.extend(
                    self._find_unsupported_types(prop.properties, caps, f"{path}.")
                )
            if prop.items is not None:
                unsupported.extend(
                    self._find_unsupported_types({"items": prop.items}, caps, f"{path}.")
                )
        return unsupported

    def _any_property(self, properties: dict[str, PropertySchema], predicate: Any) -> bool:
        for prop in properties.values():
            if predicate(prop):
                return True
            if prop.properties and self._any_property(prop.properties, predicate):
                return True
            if prop.items is not None and self._any_property({"items": prop.items}, predicate):
                return True
        return False

    def _max_depth(self, properties: dict[str, PropertySchema], depth: int = 1) -> int:
        deepest = depth if properties else depth - 1
        for prop in properties.values():
            if prop.properties:
                deepest = max(deepest, self._max_depth(prop.properties, depth + 1))
            if prop.items is not None:
                deepest = max(deepest, self._max_depth({"items": prop.items}, depth))
        return deepest

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_tool(self, tool: ToolDefinition) -> ToolValidationResult:
        """Structural checks run once when a tool is registered"""
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        suggestions: list[str] = []

        if not tool.name or not tool.name.strip():
            errors.append(ValidationIssue("name", "Tool name is required", "critical"))
        else:
            if len(tool.name) > MAX_CANONICAL_NAME_LENGTH:
                errors.append(
                    ValidationIssue(
                        "name",
                        f"Tool name exceeds maximum length of {MAX_CANONICAL_NAME_LENGTH} characters",
                        "error",
                        "Use a shorter, more concise name",
                    )
                )
            if not NAME_PATTERN.match(tool.name):
                errors.append(
                    ValidationIssue(
                        "name",
                        "Tool name must be a valid identifier (alphanumeric + underscore)",
                        "error",
                        "Use only letters, numbers, and underscores",
                    )
                )
            if "__" in tool.name:
                warnings.append(
                    ValidationIssue(
                        "name",
                        "Double underscores in name may cause issues",
                        "warning",
                        "Avoid consecutive underscores",
                    )
                )

        description = tool.description or ""
        if not description.strip():
            errors.append(
                ValidationIssue("description", "Tool description is required", "critical")
            )
        else:
            if len(description) < 20:
                warnings.append(
                    ValidationIssue(
                        "description",
                        "Description is too brief",
                        "warning",
                        "Provide more detailed description for better AI understanding",
                    )
                )
            if len(description) > MAX_CANONICAL_DESCRIPTION_LENGTH:
                warnings.append(
                    ValidationIssue(
                        "description",
                        "Description is very long",
                        "info",
                        "Consider condensing to key information",
                    )
                )

        schema_errors, schema_warnings = self._validate_properties(
            tool.properties, tool.required, "inputSchema"
        )
        errors.extend(schema_errors)
        warnings.extend(schema_warnings)

        if tool.metadata.dangerous and "danger" not in description.lower():
            warnings.append(
                ValidationIssue(
                    "metadata.dangerous",
                    "Dangerous tool should mention risks in description",
                    "warning",
                    "Add warning about dangerous operations in description",
                )
            )

        if not errors:
            if not tool.metadata.category:
                suggestions.append("Consider adding a category to help organize tools")
            if not tool.metadata.tags:
                suggestions.append("Add tags to improve discoverability")
            if len(tool.properties) > 10:
                suggestions.append("Consider splitting into multiple tools for simplicity")
            if tool.properties and not tool.required:
                suggestions.append("Specify required parameters to prevent errors")

        penalties = {"critical": 30, "error": 15, "warning": 5, "info": 2}
        score = 100 - sum(penalties[i.severity] for i in errors + warnings)

        return ToolValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            suggestions=suggestions,
            score=max(0, score),
        )

    def _validate_properties(
        self,
        properties: dict[str, PropertySchema],
        required: list[str] | None,
        path: str,
    ) -> tuple[list[ValidationIssue], list[ValidationIssue]]:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        for key, prop in properties.items():
            prop_path = f"{path}.{key}"
            prop_errors, prop_warnings = self._validate_property(prop, prop_path)
            errors.extend(prop_errors)
            warnings.extend(prop_warnings)

        for name in required or []:
            if name not in properties:
                errors.append(
                    ValidationIssue(
                        f"{path}.required",
                        f"Required field '{name}' not found in properties",
                        "error",
                    )
                )
        return errors, warnings

    def _validate_property(
        self, prop: PropertySchema, path: str
    ) -> tuple[list[ValidationIssue], list[ValidationIssue]]:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if not prop.type:
            errors.append(ValidationIssue(path, "Property type is required", "error"))
        elif prop.type not in JSON_TYPES:
            errors.append(ValidationIssue(path, f"Unknown property type '{prop.type}'", "error"))

        if not prop.description or len(prop.description) < 10:
            warnings.append(
                ValidationIssue(
                    path,
                    "Property should have descriptive explanation",
                    "warning",
                    "Add clear description to help AI use this parameter correctly",
                )
            )

        if prop.type == "array":
            if prop.items is None:
                errors.append(ValidationIssue(path, "Array type must define items schema", "error"))
            else:
                item_errors, item_warnings = self._validate_property(prop.items, f"{path}.items")
                errors.extend(item_errors)
                # Item descriptions are optional
                warnings.extend(w for w in item_warnings if w.field != f"{path}.items")

        if prop.type == "object" and prop.properties:
            nested_errors, nested_warnings = self._validate_properties(
                prop.properties, prop.required, path
            )
            errors.extend(nested_errors)
            warnings.extend(nested_warnings)

        if prop.enum is not None and len(prop.enum) == 0:
            errors.append(ValidationIssue(path, "Enum must have at least one value", "error"))

        if (
            prop.minimum is not None
            and prop.maximum is not None
            and prop.minimum > prop.maximum
        ):
            errors.append(
                ValidationIssue(path, "Minimum value cannot be greater than maximum", "error")
            )

        if (
            prop.min_length is not None
            and prop.max_length is not None
            and prop.min_length > prop.max_length
        ):
            errors.append(
                ValidationIssue(
                    path, "Minimum length cannot be greater than maximum length", "error"
                )
            )

        return errors, warnings

    def validate_provider_schema(
        self, schema: dict[str, Any], provider: ProviderID | str
    ) -> list[str]:
        """Check an adapted schema against the provider's own constraints"""
        caps = self.capabilities(provider)
        problems: list[str] = []

        if caps.wire_format == "openai":
            if schema.get("type") != "function" or "function" not in schema:
                return ["Missing function envelope"]
            body = schema["function"]
            parameters = body.get("parameters")
        elif caps.wire_format == "anthropic":
            body = schema
            parameters = schema.get("input_schema")
        else:
            body = schema
            parameters = schema.get("parameters")

        name = body.get("name", "")
        if not NAME_PATTERN.match(name):
            problems.append(f"Invalid name '{name}'")
        if len(name) > caps.max_name_length:
            problems.append(f"Name longer than {caps.max_name_length}")
        if len(body.get("description", "")) > caps.max_description_length:
            problems.append(f"Description longer than {caps.max_description_length}")

        if parameters is None:
            if caps.wire_format != "gemini":
                problems.append("Missing parameters schema")
            return problems

        if parameters.get("type") != caps.wire_type("object"):
            problems.append("Top-level parameters must be an object")
        problems.extend(self._check_wire_node(parameters, caps, depth=0, path="parameters"))
        return problems

    def _check_wire_node(
        self,
        node: dict[str, Any],
        caps: ProviderToolCapabilities,
        depth: int,
        path: str,
    ) -> list[str]:
        problems: list[str] = []
        allowed = {caps.wire_type(t) for t in caps.supported_types}
        node_type = node.get("type")
        if node_type not in allowed:
            problems.append(f"{path}: unsupported type {node_type!r}")
        if depth > caps.max_nesting_depth:
            problems.append(f"{path}: nested deeper than {caps.max_nesting_depth}")
        if "nullable" in node and not caps.supports_nullable:
            problems.append(f"{path}: nullable not supported")
        if "default" in node and not caps.supports_defaults:
            problems.append(f"{path}: default not supported")
        if "enum" in node and not caps.supports_enums:
            problems.append(f"{path}: enum not supported")

        if node_type == caps.wire_type("array") and "items" not in node:
            problems.append(f"{path}: array without items")
        if node_type == caps.wire_type("object"):
            properties = node.get("properties") or {}
            if caps.requires_object_properties and not properties:
                problems.append(f"{path}: object without properties")
            for name in node.get("required") or []:
                if name not in properties:
                    problems.append(f"{path}: required '{name}' not in properties")
            for key, child in properties.items():
                problems.extend(
                    self._check_wire_node(child, caps, depth + 1, f"{path}.{key}")
                )
        if "items" in node:
            problems.extend(
                self._check_wire_node(node["items"], caps, depth, f"{path}.items")
            )
        return problems

    # ------------------------------------------------------------------
    # Tool-call normalization
    # ------------------------------------------------------------------

    def parse_tool_calls(
        self,
        provider: ProviderID | str,
        payload: dict[str, Any],
        name_map: dict[str, str] | None = None,
    ) -> list[ToolCall]:
        """Normalize a provider's tool-invocation payload into ToolCalls.

        payload is the provider's response body (or, for OpenAI-style APIs, the
        assistant message). name_map turns adapted wire names back into
        canonical names.
        """
        caps = self.capabilities(provider)
        names = name_map or {}

        if caps.wire_format == "anthropic":
            calls = [
                ToolCall(
                    id=str(block.get("id", f"call_{i}")),
                    name=names.get(block.get("name", ""), block.get("name", "")),
                    arguments=dict(block.get("input") or {}),
                )
                for i, block in enumerate(payload.get("content") or [])
                if isinstance(block, dict) and block.get("type") == "tool_use"
            ]
            return calls

        if caps.wire_format == "gemini":
            content = payload.get("content")
            if content is None:
                candidates = payload.get("candidates") or [{}]
                content = candidates[0].get("content") or {}
            calls = []
            for i, part in enumerate(content.get("parts") or []):
                function_call = part.get("functionCall") if isinstance(part, dict) else None
                if not function_call:
                    continue
                name = function_call.get("name", "")
                calls.append(
                    ToolCall(
                        id=str(function_call.get("id") or f"call_{i}"),
                        name=names.get(name, name),
                        arguments=dict(function_call.get("args") or {}),
                    )
                )
            return calls

        message = payload
        if "choices" in payload:
            message = (payload.get("choices") or [{}])[0].get("message") or {}
        elif "message" in payload:
            message = payload.get("message") or {}

        calls = []
        for i, raw in enumerate(message.get("tool_calls") or []):
            function = raw.get("function") or {}
            name = function.get("name", "")
            calls.append(
                ToolCall(
                    id=str(raw.get("id") or f"call_{i}"),
                    name=names.get(name, name),
                    arguments=self._decode_arguments(function.get("arguments")),
                )
            )
        return calls

    @staticmethod
    def _decode_arguments(arguments: Any) -> dict[str, Any]:
        if isinstance(arguments, dict):
            return arguments
        if not arguments:
            return {}
        try:
            decoded = json.loads(arguments)
        except (TypeError, ValueError):
            logger.warning("Tool call arguments are not valid JSON; passing raw text")
            return {"_raw": str(arguments)}
        return decoded if isinstance(decoded, dict) else {"value": decoded}


class ToolRegistry:
    """Canonical tool definitions, validated once at registration"""

    def __init__(self, adapter: ToolSchemaAdapter | None = None) -> None:
        self.adapter = adapter or ToolSchemaAdapter()
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition | dict[str, Any]) -> ToolValidationResult:
        definition = ToolDefinition.from_dict(tool) if isinstance(tool, dict) else tool
        result = self.adapter.validate_tool(definition)
        if not result.valid:
            messages = [f"{e.field}: {e.message}" for e in result.errors]
            raise ValidationFailed(
                f"Tool '{definition.name}' is invalid: {'; '.join(messages)}",
                errors=messages,
            )
        for warning in result.warnings:
            logger.info(f"Tool '{definition.name}' {warning.field}: {warning.message}")

        self._tools[definition.name] = copy.deepcopy(definition)
        logger.debug(f"Registered tool: {definition.name} (score {result.score})")
        return result

    def register_many(self, tools: list[ToolDefinition | dict[str, Any]]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self, names: list[str] | tuple[str, ...] | None = None) -> list[ToolDefinition]:
        if names is None:
            return list(self._tools.values())
        return [self._tools[n] for n in names if n in self._tools]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
