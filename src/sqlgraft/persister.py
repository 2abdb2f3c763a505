"""Recursive persistence of object graphs.

Each object becomes one INSERT into the table named after its entity. The
identifier returned by the executor for a parent is handed to every child of
its one-to-many fields as an extra foreign-key column, so inserts run
depth-first with the parent always first.

Many-to-many fields are resolved (join table name included) but no join
rows are written; pass a ``many_to_many`` handler to act on them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from sqlgraft.executor import StatementExecutor
from sqlgraft.metadata import (
    EntityDefinition,
    EntityRegistry,
    ManyToManyLink,
    Relation,
    default_registry,
)
from sqlgraft.statements import Insert

logger = logging.getLogger(__name__)

# Called as handler(link, parent_identifier, element) for each many-to-many element
ManyToManyHandler = Callable[[ManyToManyLink, Any, Any], None]


class Persister:
    """Walks an object graph and submits one insert per object."""

    def __init__(
        self,
        executor: StatementExecutor,
        registry: EntityRegistry | None = None,
        many_to_many: ManyToManyHandler | None = None,
    ) -> None:
        """Initialize a persister.

        Args:
            executor: Runs each insert and returns its generated identifier.
            registry: Entity metadata; defaults to the shared dataclass registry.
            many_to_many: Optional hook invoked per many-to-many element.
        """
        self.executor = executor
        self.registry = registry if registry is not None else default_registry
        self.many_to_many = many_to_many

    def persist_tree(
        self,
        obj: Any,
        extra_columns: Mapping[str, Any] | None = None,
        entity: str | EntityDefinition | None = None,
    ) -> Any:
        """Insert ``obj`` and, recursively, its one-to-many children.

        Args:
            obj: A dataclass instance, or a mapping when ``entity`` is given.
            extra_columns: Additional column/value pairs for this row only.
            entity: Entity name or definition for non-dataclass objects.

        Returns:
            The identifier generated for ``obj``.

        Raises:
            ConfigurationError: If any field in the tree lacks a column
                annotation. Traversal stops at once; inserts already
                submitted are not undone.
        """
        definition = self.registry.definition_for(obj, entity)
        statement = self.build_insert(definition, obj, extra_columns)
        identifier = self.executor.execute(statement)
        logger.debug("persisted %s as %r", definition.name, identifier)

        for field_def in definition.relation_fields(Relation.ONE_TO_MANY):
            for child in definition.value_of(obj, field_def) or []:
                self.persist_tree(
                    child,
                    extra_columns={field_def.foreign_key: identifier},
                    entity=field_def.element_type,
                )

        for field_def in definition.relation_fields(Relation.MANY_TO_MANY):
            elements = definition.value_of(obj, field_def) or []
            link = self.registry.resolve_many_to_many(definition, field_def, elements)
            logger.debug(
                "%s.%s: many-to-many with %s via join table %s",
                definition.name,
                field_def.name,
                link.element_type,
                link.join_table,
            )
            if self.many_to_many is not None:
                for element in elements:
                    self.many_to_many(link, identifier, element)

        return identifier

    def build_insert(
        self,
        definition: EntityDefinition,
        obj: Any,
        extra_columns: Mapping[str, Any] | None = None,
    ) -> Insert:
        """Build the single-row insert for one object (relations excluded)."""
        # Every field needs its annotation, relation fields included
        for field_def in definition.fields:
            field_def.require_column(definition.name)

        columns: list[str] = []
        values: list[Any] = []
        for field_def in definition.column_fields:
            columns.append(field_def.column)
            values.append(definition.value_of(obj, field_def))

        for column, value in (extra_columns or {}).items():
            columns.append(column)
            values.append(value)

        return Insert().into(definition.name, *columns).values(*values)


def persist_tree(
    obj: Any,
    executor: StatementExecutor,
    extra_columns: Mapping[str, Any] | None = None,
    entity: str | EntityDefinition | None = None,
    registry: EntityRegistry | None = None,
) -> Any:
    """Persist ``obj`` and its one-to-many children with ``executor``."""
    return Persister(executor, registry=registry).persist_tree(obj, extra_columns, entity=entity)
