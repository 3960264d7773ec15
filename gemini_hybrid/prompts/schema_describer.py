"""Natural-language rendering of a Schema for prompt-engineered generation."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
import json
from typing import Any

from ..analysis.schema_analyzer import fingerprint
from ..schema import Schema, SchemaKind

_RULES = (
    "You MUST respond with ONLY valid JSON.",
    "Do not wrap the JSON in markdown code fences and do not add any text "
    "before or after it.",
    "All string values must be properly escaped JSON strings.",
)

_PLACEHOLDERS = {
    "string": "...",
    "integer": 0,
    "number": 0,
    "boolean": True,
}


@dataclass(frozen=True, slots=True)
class TaggedUnion:
    """A place in the schema where the variant name must be used as the key."""

    path: str
    variants: tuple[tuple[str, Schema], ...]


class SchemaDescriber:
    """Builds instruction text that makes a model emit schema-shaped JSON.

    Tagged unions keyed by variant name are the shape models most often get
    wrong, so each one found in the tree gets an explicit CORRECT example and
    two WRONG counter-examples. Descriptions are memoized per fingerprint.
    """

    def __init__(self) -> None:
        self._memo: dict[str, str] = {}

    def describe(self, schema: Schema) -> str:
        key = fingerprint(schema)
        cached = self._memo.get(key)
        if cached is None:
            cached = self._memo[key] = self._render(schema)
        return cached

    def _render(self, schema: Schema) -> str:
        prompt_parts = list(_RULES)
        prompt_parts.append("")
        prompt_parts.append(self._root_sentence(schema))
        prompt_parts.extend(self._outline(schema, indent=0))

        for union in find_tagged_unions(schema):
            prompt_parts.append("")
            prompt_parts.extend(self._contrast(union))

        prompt_parts.append("")
        prompt_parts.append("Respond with valid JSON only.")
        return "\n".join(prompt_parts)

    @staticmethod
    def _root_sentence(schema: Schema) -> str:
        if schema.kind is SchemaKind.ARRAY:
            return "The response must be a single JSON array. Each item:"
        if schema.kind is SchemaKind.UNION:
            return "The response must be a single JSON value matching one of these shapes:"
        if schema.kind is SchemaKind.SCALAR:
            return f"The response must be a single JSON {type_label(schema)}."
        return "The response must be a single JSON object with these fields:"

    def _outline(self, schema: Schema, indent: int) -> Iterator[str]:
        pad = "  " * indent
        if schema.kind is SchemaKind.OBJECT:
            for name, prop in schema.properties:
                state = "required" if schema.is_required(name) else "optional"
                line = f'{pad}- "{name}": {type_label(prop)} ({state})'
                if prop.description:
                    line += f" - {prop.description}"
                if prop.enum is not None:
                    line += " - one of: " + ", ".join(json.dumps(v) for v in prop.enum)
                yield line
                yield from self._nested(prop, indent + 1)
        else:
            yield from self._nested(schema, indent)

    def _nested(self, schema: Schema, indent: int) -> Iterator[str]:
        pad = "  " * indent
        if schema.kind is SchemaKind.OBJECT:
            yield from self._outline(schema, indent)
        elif schema.kind is SchemaKind.ARRAY and schema.items is not None:
            if schema.items.kind is not SchemaKind.SCALAR:
                yield f"{pad}each item:"
                yield from self._nested(schema.items, indent + 1)
        elif schema.kind is SchemaKind.UNION:
            for i, variant in enumerate(schema.variants, 1):
                label = variant.title or type_label(variant)
                yield f"{pad}option {i}: {label}"
                yield from self._nested(variant, indent + 1)

    @staticmethod
    def _contrast(union: TaggedUnion) -> list[str]:
        tag, payload_schema = union.variants[0]
        payload = example_value(payload_schema)
        payload_fields = payload if isinstance(payload, dict) else {"value": payload}
        names = ", ".join(f'"{name}"' for name, _ in union.variants)

        correct = {tag: payload}
        wrong_sibling = {"action": tag, **payload_fields}
        wrong_typed = {"type": tag, "params": payload}
        return [
            f"At {union.path}, use the variant name itself as the only key of "
            f"the object. Valid keys: {names}.",
            f"CORRECT: {json.dumps(correct)}",
            f"WRONG: {json.dumps(wrong_sibling)}",
            f"WRONG: {json.dumps(wrong_typed)}",
            "Never put the variant name in a property value such as "
            '"action" or "type".',
        ]


def type_label(schema: Schema) -> str:
    """Short type phrase such as ``array of object`` or ``string or null``."""
    if schema.kind is SchemaKind.OBJECT:
        label = "object"
    elif schema.kind is SchemaKind.ARRAY:
        label = f"array of {type_label(schema.items)}" if schema.items else "array"
    elif schema.kind is SchemaKind.UNION:
        label = f"one of {len(schema.variants)} shapes"
    else:
        label = schema.type or "any"
    return f"{label} or null" if schema.nullable else label


def find_tagged_unions(schema: Schema, path: str = "$") -> list[TaggedUnion]:
    """Locate every variant-keyed union in the tree.

    Two shapes qualify: a union whose variants are all single-key objects,
    and an object whose properties are all optional objects (pick one).
    """
    found: list[TaggedUnion] = []
    if schema.kind is SchemaKind.UNION:
        if all(
            v.kind is SchemaKind.OBJECT and len(v.properties) == 1 for v in schema.variants
        ):
            found.append(
                TaggedUnion(path, tuple(v.properties[0] for v in schema.variants))
            )
        for v in schema.variants:
            found.extend(find_tagged_unions(v, path))
    elif schema.kind is SchemaKind.OBJECT:
        if (
            len(schema.properties) >= 2
            and not schema.required
            and all(p.kind is SchemaKind.OBJECT for _, p in schema.properties)
        ):
            found.append(TaggedUnion(path, schema.properties))
        for name, prop in schema.properties:
            found.extend(find_tagged_unions(prop, f"{path}.{name}"))
    elif schema.kind is SchemaKind.ARRAY and schema.items is not None:
        found.extend(find_tagged_unions(schema.items, f"{path}[]"))
    return _dedupe(found)


def _dedupe(unions: list[TaggedUnion]) -> list[TaggedUnion]:
    seen: set[tuple[str, tuple[str, ...]]] = set()
    out = []
    for union in unions:
        key = (union.path, tuple(name for name, _ in union.variants))
        if key not in seen:
            seen.add(key)
            out.append(union)
    return out


def example_value(schema: Schema, depth: int = 0) -> Any:
    """Placeholder value shaped like ``schema``, for prompt examples."""
    if schema.enum:
        return schema.enum[0]
    if schema.kind is SchemaKind.OBJECT:
        if depth >= 2:
            return {}
        return {
            name: example_value(prop, depth + 1)
            for name, prop in schema.properties
            if schema.is_required(name) or not schema.required
        }
    if schema.kind is SchemaKind.ARRAY:
        return []
    if schema.kind is SchemaKind.UNION:
        return example_value(schema.variants[0], depth)
    return _PLACEHOLDERS.get(schema.type or "", None)
