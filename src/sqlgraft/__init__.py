"""sqlgraft - Fluent SQL builders and a recursive, metadata-driven object persister."""

from sqlgraft.errors import (
    ConfigurationError,
    EmptyInputError,
    FieldNotFoundError,
    MisuseError,
    SqlGraftError,
)
from sqlgraft.executor import IdentifierAllocator, RecordingExecutor, StatementExecutor
from sqlgraft.metadata import (
    EntityDefinition,
    EntityRegistry,
    FieldDefinition,
    ManyToManyLink,
    Relation,
    column,
    find_by_column_name,
    parse_tag,
)
from sqlgraft.parsing import SchemaParser
from sqlgraft.persister import Persister, persist_tree
from sqlgraft.statements import Delete, Insert, Query, Select, Update, sub_query

__all__ = [
    # Statements
    "Query",
    "Select",
    "Insert",
    "Update",
    "Delete",
    "sub_query",
    # Metadata
    "EntityDefinition",
    "EntityRegistry",
    "FieldDefinition",
    "ManyToManyLink",
    "Relation",
    "SchemaParser",
    "column",
    "find_by_column_name",
    "parse_tag",
    # Persistence
    "Persister",
    "persist_tree",
    "StatementExecutor",
    "RecordingExecutor",
    "IdentifierAllocator",
    # Errors
    "SqlGraftError",
    "ConfigurationError",
    "MisuseError",
    "EmptyInputError",
    "FieldNotFoundError",
]

__version__ = "0.1.0"
