"""Parsing module for the entity schema DSL."""

from sqlgraft.parsing.schema_parser import EntitySpec, FieldSpec, SchemaParser

__all__ = [
    "EntitySpec",
    "FieldSpec",
    "SchemaParser",
]
