"""Immutable output schema model.

``Schema`` is the one schema representation the runtime works with. It can be
built directly, or coerced from a JSON Schema document or a Pydantic model.
Coercion inlines ``$ref`` targets and folds ``anyOf [X, null]`` into a
nullable ``X``, so the resulting tree is acyclic and free of references.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
import json
import logging
from typing import Any

from pydantic import BaseModel

from .constants import MAX_REF_DEPTH

log = logging.getLogger(__name__)


class SchemaKind(StrEnum):
    OBJECT = "object"
    ARRAY = "array"
    UNION = "union"
    SCALAR = "scalar"


@dataclass(frozen=True, slots=True)
class Schema:
    """A node of an output schema tree.

    Object nodes keep their properties in declaration order as
    ``(name, schema)`` pairs. Unions hold their alternatives in ``variants``.
    A root coerced from a Pydantic model keeps the class in ``model``; it
    takes no part in equality or fingerprints.
    """

    kind: SchemaKind
    type: str | None = None
    properties: tuple[tuple[str, Schema], ...] = ()
    required: frozenset[str] = frozenset()
    items: Schema | None = None
    variants: tuple[Schema, ...] = ()
    description: str | None = None
    enum: tuple[Any, ...] | None = None
    nullable: bool = False
    title: str | None = None
    model: type[BaseModel] | None = field(default=None, compare=False, repr=False)

    # --- Constructors ---

    @classmethod
    def object(
        cls,
        properties: Mapping[str, Schema] | Iterable[tuple[str, Schema]],
        *,
        required: Iterable[str] | None = None,
        description: str | None = None,
        title: str | None = None,
    ) -> Schema:
        """Object node. ``required`` defaults to every property."""
        pairs = tuple(
            properties.items() if isinstance(properties, Mapping) else properties
        )
        names = [name for name, _ in pairs]
        req = frozenset(names if required is None else required)
        missing = req - set(names)
        if missing:
            raise ValueError(f"Required properties not declared: {sorted(missing)}")
        return cls(
            SchemaKind.OBJECT,
            type="object",
            properties=pairs,
            required=req,
            description=description,
            title=title,
        )

    @classmethod
    def array(cls, items: Schema | None = None, *, description: str | None = None) -> Schema:
        return cls(SchemaKind.ARRAY, type="array", items=items, description=description)

    @classmethod
    def union(
        cls, *variants: Schema, description: str | None = None, title: str | None = None
    ) -> Schema:
        if len(variants) < 2:
            raise ValueError("A union needs at least two variants")
        return cls(
            SchemaKind.UNION, variants=tuple(variants), description=description, title=title
        )

    @classmethod
    def scalar(
        cls,
        type: str = "string",  # noqa: A002
        *,
        description: str | None = None,
        enum: Iterable[Any] | None = None,
        nullable: bool = False,
    ) -> Schema:
        return cls(
            SchemaKind.SCALAR,
            type=type,
            description=description,
            enum=tuple(enum) if enum is not None else None,
            nullable=nullable,
        )

    @classmethod
    def string(cls, description: str | None = None, **kwargs: Any) -> Schema:
        return cls.scalar("string", description=description, **kwargs)

    @classmethod
    def integer(cls, description: str | None = None, **kwargs: Any) -> Schema:
        return cls.scalar("integer", description=description, **kwargs)

    @classmethod
    def number(cls, description: str | None = None, **kwargs: Any) -> Schema:
        return cls.scalar("number", description=description, **kwargs)

    @classmethod
    def boolean(cls, description: str | None = None, **kwargs: Any) -> Schema:
        return cls.scalar("boolean", description=description, **kwargs)

    # --- Accessors ---

    @property
    def name(self) -> str:
        """Human-readable name used in error context."""
        return self.title or self.type or self.kind.value

    @property
    def property_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.properties)

    def get(self, name: str) -> Schema | None:
        for prop_name, prop in self.properties:
            if prop_name == name:
                return prop
        return None

    def is_required(self, name: str) -> bool:
        return name in self.required

    @property
    def root_is_array(self) -> bool:
        return self.kind is SchemaKind.ARRAY

    # --- Serialization ---

    def to_json_schema(self) -> dict[str, Any]:
        """Render a cleaned JSON Schema suitable for constrained decoding.

        The output never contains ``$schema``, ``$defs``, ``$ref`` or
        ``additionalProperties``.
        """
        if self.kind is SchemaKind.OBJECT:
            out: dict[str, Any] = {
                "type": "object",
                "properties": {n: p.to_json_schema() for n, p in self.properties},
            }
            required = [n for n in self.property_names if n in self.required]
            if required:
                out["required"] = required
        elif self.kind is SchemaKind.ARRAY:
            out = {"type": "array"}
            if self.items is not None:
                out["items"] = self.items.to_json_schema()
        elif self.kind is SchemaKind.UNION:
            out = {"anyOf": [v.to_json_schema() for v in self.variants]}
        else:
            out = {"type": self.type or "string"}
            if self.enum is not None:
                out["enum"] = list(self.enum)

        if self.description:
            out["description"] = self.description
        if self.nullable:
            out = {"anyOf": [out, {"type": "null"}]}
        return out

    def canonical(self) -> dict[str, Any]:
        """Order-independent structural form, used for fingerprinting."""
        data: dict[str, Any] = {"kind": self.kind.value}
        if self.type is not None:
            data["type"] = self.type
        if self.properties:
            data["properties"] = {n: p.canonical() for n, p in self.properties}
        if self.required:
            data["required"] = sorted(self.required)
        if self.items is not None:
            data["items"] = self.items.canonical()
        if self.variants:
            data["variants"] = sorted(
                (v.canonical() for v in self.variants),
                key=lambda c: json.dumps(c, sort_keys=True, default=str),
            )
        if self.description:
            data["description"] = self.description
        if self.enum is not None:
            data["enum"] = list(self.enum)
        if self.nullable:
            data["nullable"] = True
        return data

    # --- Coercion ---

    @classmethod
    def from_json_schema(cls, document: Mapping[str, Any]) -> Schema:
        """Build a schema tree from a JSON Schema document.

        ``$ref`` targets under ``$defs`` or ``definitions`` are inlined.
        Recursive references are cut after a bounded number of expansions.
        """
        if not isinstance(document, Mapping):
            raise TypeError("JSON Schema document must be a mapping")
        defs: dict[str, Any] = {}
        defs.update(document.get("definitions", {}))
        defs.update(document.get("$defs", {}))
        return _from_node(document, defs, ref_depth=0)


def _resolve_ref(ref: str, defs: Mapping[str, Any]) -> Mapping[str, Any]:
    for prefix in ("#/$defs/", "#/definitions/"):
        if ref.startswith(prefix):
            key = ref[len(prefix):]
            if key in defs:
                return defs[key]
    raise ValueError(f"Unresolvable $ref: {ref}")


def _from_node(node: Any, defs: Mapping[str, Any], ref_depth: int) -> Schema:
    if node is True or node == {}:
        return Schema.scalar("any")
    if not isinstance(node, Mapping):
        raise TypeError(f"Unsupported JSON Schema node: {node!r}")

    description = node.get("description")
    title = node.get("title")

    if "$ref" in node:
        if ref_depth >= MAX_REF_DEPTH:
            log.debug("Cutting recursive $ref %s at depth %d", node["$ref"], ref_depth)
            return Schema.scalar("object", description=description)
        target = _from_node(_resolve_ref(node["$ref"], defs), defs, ref_depth + 1)
        return _overlay(target, description=description, title=title)

    all_of = node.get("allOf")
    if all_of and len(all_of) == 1:
        return _overlay(_from_node(all_of[0], defs, ref_depth), description=description, title=title)

    options = node.get("anyOf") or node.get("oneOf")
    if options:
        non_null = [o for o in options if not _is_null(o)]
        nullable = len(non_null) < len(options)
        if len(non_null) == 1:
            inner = _from_node(non_null[0], defs, ref_depth)
            return _overlay(
                inner, description=description, title=title, nullable=nullable or inner.nullable
            )
        variants = tuple(_from_node(o, defs, ref_depth) for o in non_null)
        return replace(
            Schema.union(*variants, description=description, title=title),
            nullable=nullable,
        )

    node_type = node.get("type")
    nullable = False
    if isinstance(node_type, list):
        types = [t for t in node_type if t != "null"]
        nullable = len(types) < len(node_type)
        if len(types) > 1:
            return replace(
                Schema.union(*(Schema.scalar(t) for t in types), description=description),
                nullable=nullable,
            )
        node_type = types[0] if types else "null"

    if node_type == "object" or (node_type is None and "properties" in node):
        props = tuple(
            (name, _from_node(sub, defs, ref_depth))
            for name, sub in node.get("properties", {}).items()
        )
        names = {name for name, _ in props}
        required = frozenset(r for r in node.get("required", ()) if r in names)
        return replace(
            Schema.object(props, required=required, description=description, title=title),
            nullable=nullable,
        )

    if node_type == "array":
        items = node.get("items")
        return replace(
            Schema.array(
                _from_node(items, defs, ref_depth) if items is not None else None,
                description=description,
            ),
            nullable=nullable,
            title=title,
        )

    enum = node.get("enum")
    if enum is None and "const" in node:
        enum = [node["const"]]
    if node_type is None:
        node_type = "string" if enum is not None else "any"
    return replace(
        Schema.scalar(node_type, description=description, enum=enum, nullable=nullable),
        title=title,
    )


def _is_null(node: Any) -> bool:
    return isinstance(node, Mapping) and node.get("type") == "null"


def _overlay(
    schema: Schema,
    *,
    description: str | None = None,
    title: str | None = None,
    nullable: bool | None = None,
) -> Schema:
    changes: dict[str, Any] = {}
    if description:
        changes["description"] = description
    if title and not schema.title:
        changes["title"] = title
    if nullable is not None:
        changes["nullable"] = nullable
    return replace(schema, **changes) if changes else schema


def coerce_schema(value: Schema | Mapping[str, Any] | type[BaseModel]) -> Schema:
    """Accept a ``Schema``, a JSON Schema mapping or a Pydantic model class."""
    if isinstance(value, Schema):
        return value
    if isinstance(value, Mapping):
        return Schema.from_json_schema(value)
    if isinstance(value, type) and issubclass(value, BaseModel):
        return replace(Schema.from_json_schema(value.model_json_schema()), model=value)
    raise TypeError(
        f"Unsupported schema type {type(value).__name__}; "
        "expected Schema, JSON Schema mapping or Pydantic model"
    )
