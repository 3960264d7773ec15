"""
Structural validation of parsed payloads against a Schema
"""

from typing import Any

from pydantic import ValidationError

from ..exceptions import InvalidJSONError
from ..schema import Schema, SchemaKind

_SCALAR_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "null": lambda v: v is None,
}


def conformance_errors(data: Any, schema: Schema, path: str = "$") -> list[str]:
    """Return every way ``data`` deviates from ``schema``; empty when it conforms.

    Extra object keys are tolerated, missing required keys are not.
    """
    if data is None and (schema.nullable or schema.type == "null"):
        return []

    if schema.kind is SchemaKind.OBJECT:
        if not isinstance(data, dict):
            return [f"{path}: expected object, got {type(data).__name__}"]
        errors = [
            f"{path}: missing required property '{name}'"
            for name in schema.property_names
            if schema.is_required(name) and name not in data
        ]
        for name, prop in schema.properties:
            if name in data:
                errors.extend(conformance_errors(data[name], prop, f"{path}.{name}"))
        return errors

    if schema.kind is SchemaKind.ARRAY:
        if not isinstance(data, list):
            return [f"{path}: expected array, got {type(data).__name__}"]
        if schema.items is None:
            return []
        errors = []
        for i, item in enumerate(data):
            errors.extend(conformance_errors(item, schema.items, f"{path}[{i}]"))
        return errors

    if schema.kind is SchemaKind.UNION:
        for variant in schema.variants:
            if not conformance_errors(data, variant, path):
                return []
        return [f"{path}: value matches none of {len(schema.variants)} variants"]

    check = _SCALAR_CHECKS.get(schema.type or "")
    if check is not None and not check(data):
        return [f"{path}: expected {schema.type}, got {type(data).__name__}"]
    if schema.enum is not None and data not in schema.enum:
        return [f"{path}: value is not one of the allowed values"]
    return []


def _model_errors(error: ValidationError) -> list[str]:
    """Paths and messages of a Pydantic validation failure, without input values."""
    return [
        "$" + "".join(f"[{p}]" if isinstance(p, int) else f".{p}" for p in err["loc"])
        + f": {err['msg']}"
        for err in error.errors(include_url=False, include_context=False, include_input=False)
    ]


def ensure_conforms(data: Any, schema: Schema, **context: Any) -> Any:
    """Return ``data`` unchanged, or raise ``InvalidJSONError`` listing deviations.

    Schemas coerced from a Pydantic model are checked with the model itself.
    """
    if schema.model is not None:
        try:
            schema.model.model_validate(data)
        except ValidationError as e:
            errors = _model_errors(e)
        else:
            errors = []
    else:
        errors = conformance_errors(data, schema)
    if errors:
        shown = "; ".join(errors[:5])
        more = f" (+{len(errors) - 5} more)" if len(errors) > 5 else ""
        raise InvalidJSONError(
            f"Response does not match schema '{schema.name}': {shown}{more}",
            **context,
        )
    return data
