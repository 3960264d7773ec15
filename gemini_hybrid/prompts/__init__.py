"""Prompt engineering for schema-shaped output."""

from .schema_describer import SchemaDescriber, find_tagged_unions

__all__ = ["SchemaDescriber", "find_tagged_unions"]
