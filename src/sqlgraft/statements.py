"""Fluent builders for parameterized SQL statements.

Every builder mutates itself and returns ``self``, so calls chain::

    q = Select("id", "name").from_("users").where("age > ?", 18).limit(10)
    q.render()  # 'SELECT id, name FROM users WHERE age > ? LIMIT 10'
    q.args()    # [18]

Chaining never copies: two names bound to the same builder see each other's
changes. Use :meth:`Query.clone` to branch a statement.

Positional arguments are appended in call order and always line up with the
left-to-right order of the ``?`` placeholders in the rendered text.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from sqlgraft.errors import EmptyInputError, MisuseError
from sqlgraft.metadata import EntityDefinition, EntityRegistry, default_registry

PLACEHOLDER = "?"


class Query(ABC):
    """Base for all statements: owns the positional argument list."""

    def __init__(self) -> None:
        self._args: list[Any] = []

    def args(self) -> list[Any]:
        """Return the positional arguments, in placeholder order."""
        return self._args

    @abstractmethod
    def render(self) -> str:
        """Render the SQL text."""

    def clone(self):
        """Return an independent copy of this statement."""
        return copy.deepcopy(self)

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.render()!r}, args={self._args!r})"


def sub_query(statement: Query) -> str:
    """Render a statement wrapped in parentheses for embedding in another one."""
    return f"({statement.render()})"


class Select(Query):
    """SELECT statement builder."""

    def __init__(self, *columns: str) -> None:
        super().__init__()
        self._select = ""
        self._from = ""
        self._join = ""
        self._where = ""
        self._group = ""
        self._having = ""
        self._order = ""
        self._limit = ""
        self._offset = ""
        if columns:
            self.select(*columns)

    def select(self, *columns: str) -> Select:
        """Add columns to the select list (cumulative)."""
        if self._select:
            self._select += ", "
        self._select += ", ".join(columns)
        return self

    def from_(self, table: str) -> Select:
        self._from = table
        return self

    def join(self, table: str, on_condition: str) -> Select:
        self._join += f" JOIN {table} ON {on_condition}"
        return self

    def left_join(self, table: str, on_condition: str) -> Select:
        self._join += f" LEFT JOIN {table} ON {on_condition}"
        return self

    def where(self, condition: str, *args: Any) -> Select:
        """AND a condition onto the WHERE clause and append its arguments."""
        if self._where:
            self._where += " AND "
        self._where += condition
        self._args.extend(args)
        return self

    def group_by(self, *columns: str) -> Select:
        self._group = ", ".join(columns)
        return self

    def having(self, condition: str, *args: Any) -> Select:
        """Replace the HAVING clause; its arguments are still appended."""
        self._having = condition
        self._args.extend(args)
        return self

    def order_by(self, order: str) -> Select:
        self._order = order
        return self

    def limit(self, n: int) -> Select:
        self._limit = str(int(n))
        return self

    def offset(self, n: int) -> Select:
        self._offset = str(int(n))
        return self

    def render(self) -> str:
        parts = [f"SELECT {self._select}"]
        if self._from:
            parts.append(f" FROM {self._from}")
        parts.append(self._join)
        if self._where:
            parts.append(f" WHERE {self._where}")
        if self._group:
            parts.append(f" GROUP BY {self._group}")
        if self._having:
            parts.append(f" HAVING {self._having}")
        if self._order:
            parts.append(f" ORDER BY {self._order}")
        if self._limit:
            parts.append(f" LIMIT {self._limit}")
        if self._offset:
            parts.append(f" OFFSET {self._offset}")
        return "".join(parts)


class Insert(Query):
    """INSERT statement builder.

    Row arity is not checked against the column list: a row with the wrong
    number of values still renders ``len(columns)`` placeholders.
    """

    def __init__(self) -> None:
        super().__init__()
        self.table = ""
        self.columns: list[str] = []
        self.rows: list[list[Any]] = []

    def into(self, table: str, *columns: str) -> Insert:
        self.table = table
        self.columns = list(columns)
        return self

    def values(self, *values: Any) -> Insert:
        """Append one row and its arguments."""
        self.rows.append(list(values))
        self._args.extend(values)
        return self

    def _check_fresh(self, operation: str) -> None:
        if self.columns:
            raise MisuseError(f"{operation} cannot be called after the insert already has columns")
        if self.rows:
            raise MisuseError(f"{operation} must provide the first row of the insert")

    def from_object(
        self,
        obj: Any,
        entity: str | EntityDefinition | None = None,
        registry: EntityRegistry | None = None,
    ) -> Insert:
        """Take columns and the first row from every annotated field of ``obj``.

        The table is set to the entity name unless one was given with
        :meth:`into`.

        Raises:
            MisuseError: If the insert already has columns or rows.
            ConfigurationError: If a field has no column annotation.
        """
        self._check_fresh("from_object")
        definition = (registry or default_registry).definition_for(obj, entity)
        columns = definition.columns()
        row = definition.row(obj)
        if not self.table:
            self.table = definition.name
        self.columns = columns
        return self.values(*row)

    def from_many_objects(
        self,
        objects: Iterable[Any],
        entity: str | EntityDefinition | None = None,
        registry: EntityRegistry | None = None,
    ) -> Insert:
        """Insert several objects sharing the shape of the first one.

        Columns come from the first object; every later object contributes
        its raw field values in the same order, without shape validation.

        Raises:
            MisuseError: If the insert already has columns or rows.
            EmptyInputError: If ``objects`` is empty.
        """
        self._check_fresh("from_many_objects")
        objects = list(objects)
        if not objects:
            raise EmptyInputError("from_many_objects needs at least one object")

        definition = (registry or default_registry).definition_for(objects[0], entity)
        self.from_object(objects[0], entity=definition)
        for obj in objects[1:]:
            self.values(*definition.row(obj))
        return self

    def render(self) -> str:
        group = "(" + ", ".join([PLACEHOLDER] * len(self.columns)) + ")"
        values = ", ".join(group for _ in self.rows)
        return f"INSERT INTO {self.table} ({', '.join(self.columns)}) VALUES {values}"


class Update(Query):
    """UPDATE statement builder."""

    def __init__(self) -> None:
        super().__init__()
        self._table = ""
        self._set = ""
        self._where = ""

    def table(self, table: str) -> Update:
        self._table = table
        return self

    def set(self, assignments: str, *args: Any) -> Update:
        """Replace the SET clause and append its arguments."""
        self._set = assignments
        self._args.extend(args)
        return self

    def where(self, condition: str, *args: Any) -> Update:
        if self._where:
            self._where += " AND "
        self._where += condition
        self._args.extend(args)
        return self

    def render(self) -> str:
        sql = f"UPDATE {self._table} SET {self._set}"
        if self._where:
            sql += f" WHERE {self._where}"
        return sql


class Delete(Query):
    """DELETE statement builder."""

    def __init__(self) -> None:
        super().__init__()
        self._table = ""
        self._where = ""

    def from_(self, table: str) -> Delete:
        self._table = table
        return self

    def where(self, condition: str, *args: Any) -> Delete:
        if self._where:
            self._where += " AND "
        self._where += condition
        self._args.extend(args)
        return self

    def render(self) -> str:
        sql = f"DELETE FROM {self._table}"
        if self._where:
            sql += f" WHERE {self._where}"
        return sql

