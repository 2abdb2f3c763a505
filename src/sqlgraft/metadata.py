"""Entity and field metadata for persisted types.

Field annotations use the struct-tag vocabulary::

    json:"<column>"                   column name (required)
    one-to-many:"<foreignKeyColumn>"  children get a FK column to this row
    many-to-many:"<role>-<otherRole>" two-sided relationship tag

They can be attached to dataclass fields (as a raw ``tag`` string in the field
metadata, or through :func:`column`) or declared in a schema file parsed by
:class:`sqlgraft.parsing.SchemaParser`. Either way the result is an
:class:`EntityDefinition` held by an :class:`EntityRegistry`.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import typing
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlgraft.errors import ConfigurationError, FieldNotFoundError

logger = logging.getLogger(__name__)

TAG_COLUMN = "json"
TAG_ONE_TO_MANY = "one-to-many"
TAG_MANY_TO_MANY = "many-to-many"

TAG_KEYS: tuple[str, ...] = (TAG_COLUMN, TAG_ONE_TO_MANY, TAG_MANY_TO_MANY)

# Field-metadata key holding a raw struct tag string
METADATA_TAG = "tag"

_TAG_PAIR_RE = re.compile(r'([^\s:"]+):"((?:[^"\\]|\\.)*)"')
_ELEMENT_NAME_RE = re.compile(r"\[\s*['\"]?([A-Za-z_][\w.]*)")


def parse_tag(tag: str) -> dict[str, str]:
    """Parse a struct tag such as ``json:"name" one-to-many:"refered_by"``.

    Returns a mapping of key to unquoted value. When a key repeats, the
    first occurrence wins.

    Raises:
        ConfigurationError: If the text is not a sequence of ``key:"value"`` pairs.
    """
    tags: dict[str, str] = {}
    pos = 0
    while pos < len(tag):
        if tag[pos].isspace():
            pos += 1
            continue
        m = _TAG_PAIR_RE.match(tag, pos)
        if m is None:
            raise ConfigurationError(f"Malformed tag at position {pos}: {tag!r}")
        value = m.group(2).replace('\\"', '"').replace("\\\\", "\\")
        tags.setdefault(m.group(1), value)
        pos = m.end()
    return tags


def split_relationship(tag: str | None, field_name: str) -> tuple[str, str]:
    """Split a ``"<role>-<otherRole>"`` relationship tag into its two roles."""
    parts = (tag or "").split("-")
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError(
            f"Relationship tag {tag!r} on field '{field_name}' must look like '<role>-<otherRole>'"
        )
    return parts[0], parts[1]


class Relation(Enum):
    """How a field maps onto the relational schema."""

    COLUMN = "column"
    ONE_TO_MANY = TAG_ONE_TO_MANY
    MANY_TO_MANY = TAG_MANY_TO_MANY


@dataclass
class FieldDefinition:
    """Definition of a field on a persisted entity.

    ``column`` is None when the field carries no column annotation; that is
    only reported (as ConfigurationError) once the field is actually used.
    Relation fields of dataclasses point at their element class; for classes
    declared inside a function that class may only be known by
    ``element_qualname`` until it is registered.
    """

    name: str
    column: str | None
    relation: Relation = Relation.COLUMN
    foreign_key: str | None = None
    relationship: str | None = None
    element_type: str | None = None
    element_class: type | None = None
    type_name: str | None = None
    # "<module>.<qualname>" of an element class whose annotation could not be evaluated
    element_qualname: str | None = None

    @property
    def is_relation(self) -> bool:
        return self.relation is not Relation.COLUMN

    @property
    def roles(self) -> tuple[str, str]:
        """Return ``(this_role, other_role)`` of a many-to-many field."""
        return split_relationship(self.relationship, self.name)

    def require_column(self, entity_name: str) -> str:
        """Return the column name, raising if the annotation is missing."""
        if self.column is None:
            raise ConfigurationError(
                f"Field '{self.name}' of '{entity_name}' has no '{TAG_COLUMN}' column annotation"
            )
        return self.column


def field_from_tags(
    name: str,
    tags: Mapping[str, str],
    type_name: str | None = None,
    element_type: str | None = None,
    element_class: type | None = None,
) -> FieldDefinition:
    """Build a FieldDefinition from parsed struct tags."""
    one_to_many = tags.get(TAG_ONE_TO_MANY)
    many_to_many = tags.get(TAG_MANY_TO_MANY)
    if one_to_many and many_to_many:
        raise ConfigurationError(
            f"Field '{name}' cannot be both {TAG_ONE_TO_MANY} and {TAG_MANY_TO_MANY}"
        )

    if one_to_many:
        relation = Relation.ONE_TO_MANY
    elif many_to_many:
        relation = Relation.MANY_TO_MANY
    else:
        relation = Relation.COLUMN

    return FieldDefinition(
        name=name,
        column=tags.get(TAG_COLUMN) or None,
        relation=relation,
        foreign_key=one_to_many or None,
        relationship=many_to_many or None,
        element_type=element_type if relation is not Relation.COLUMN else None,
        element_class=element_class if relation is not Relation.COLUMN else None,
        type_name=type_name,
    )


def tags_from_metadata(metadata: Mapping[str, Any]) -> dict[str, str]:
    """Collect struct tags from dataclass field metadata.

    A raw ``tag`` string is parsed first; explicit ``json`` / ``one-to-many``
    / ``many-to-many`` keys override it.
    """
    tags: dict[str, str] = {}
    raw = metadata.get(METADATA_TAG)
    if raw:
        tags.update(parse_tag(raw))
    for key in TAG_KEYS:
        if metadata.get(key):
            tags[key] = metadata[key]
    return tags


def column(
    name: str | None = None,
    *,
    one_to_many: str | None = None,
    many_to_many: str | None = None,
    **kwargs: Any,
) -> Any:
    """Declare a dataclass field together with its column annotation.

    Remaining keyword arguments go to :func:`dataclasses.field`. Relation
    fields default to an empty list.

    Example::

        @dataclass
        class User:
            name: str = column("name")
            referred: list[User] = column("othersRefered", one_to_many="refered_by")
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    if name is not None:
        metadata[TAG_COLUMN] = name
    if one_to_many is not None:
        metadata[TAG_ONE_TO_MANY] = one_to_many
    if many_to_many is not None:
        metadata[TAG_MANY_TO_MANY] = many_to_many

    if (one_to_many or many_to_many) and "default" not in kwargs and "default_factory" not in kwargs:
        kwargs["default_factory"] = list
    return dataclasses.field(metadata=metadata, **kwargs)


@dataclass
class EntityDefinition:
    """A persisted entity: its table name and fields in declaration order."""

    name: str
    fields: list[FieldDefinition] = field(default_factory=list)
    python_type: type | None = None

    def get_field(self, name: str) -> FieldDefinition | None:
        """Get a field by attribute name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def column_fields(self) -> list[FieldDefinition]:
        """Fields stored as plain columns of this entity's table."""
        return [f for f in self.fields if not f.is_relation]

    def relation_fields(self, relation: Relation) -> list[FieldDefinition]:
        return [f for f in self.fields if f.relation is relation]

    def value_of(self, obj: Any, field_def: FieldDefinition) -> Any:
        """Read a field's raw value from an object or mapping."""
        if isinstance(obj, Mapping):
            return obj.get(field_def.name, [] if field_def.is_relation else None)
        try:
            return getattr(obj, field_def.name)
        except AttributeError as exc:
            raise ConfigurationError(
                f"Cannot read field '{field_def.name}' of '{self.name}' from a "
                f"{type(obj).__name__!r} value"
            ) from exc

    def columns(self) -> list[str]:
        """Column names of every field, in declaration order."""
        return [f.require_column(self.name) for f in self.fields]

    def row(self, obj: Any) -> list[Any]:
        """Raw values of every field of ``obj``, in declaration order."""
        return [self.value_of(obj, f) for f in self.fields]


def find_by_column_name(entity: EntityDefinition, column_name: str) -> FieldDefinition:
    """Find the field of ``entity`` annotated with ``column_name``.

    Raises:
        FieldNotFoundError: If no declared field carries that column name.
    """
    for f in entity.fields:
        if f.column == column_name:
            return f
    raise FieldNotFoundError(f"No field with column '{column_name}' on '{entity.name}'")


@dataclass
class ManyToManyLink:
    """Resolved metadata of one many-to-many field.

    ``join_table`` is ``<this_role>_<reciprocal_role>`` where the reciprocal
    role is the own-role half of the element entity's reciprocal field tag.
    """

    entity: str
    field: FieldDefinition
    element_type: str
    this_role: str
    other_role: str
    reciprocal: FieldDefinition
    reciprocal_role: str

    @property
    def join_table(self) -> str:
        return f"{self.this_role}_{self.reciprocal_role}"


def _type_name(annotation: Any) -> str:
    if isinstance(annotation, str):
        return annotation
    return getattr(annotation, "__name__", repr(annotation))


def _element_class(hint: Any) -> type | None:
    args = typing.get_args(hint)
    if args and isinstance(args[0], type):
        return args[0]
    return None


def _element_name(annotation: Any) -> str | None:
    m = _ELEMENT_NAME_RE.search(annotation if isinstance(annotation, str) else repr(annotation))
    return m.group(1).rsplit(".", 1)[-1] if m else None


def _full_qualname(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def _sibling_qualname(cls: type, name: str) -> str:
    """Qualified name a class called ``name`` would have next to ``cls``."""
    scope = cls.__qualname__.rpartition(".")[0]
    return f"{cls.__module__}.{scope}.{name}" if scope else f"{cls.__module__}.{name}"


class EntityRegistry:
    """Registry of entity definitions, built once per type and looked up afterwards."""

    def __init__(self) -> None:
        self._entities: dict[str, EntityDefinition] = {}
        self._by_class: dict[type, EntityDefinition] = {}

    def register(self, entity: EntityDefinition) -> None:
        """Register an entity definition."""
        if entity.name in self._entities:
            raise ConfigurationError(f"Entity '{entity.name}' is already defined")
        self._entities[entity.name] = entity

    def register_stub(self, name: str) -> EntityDefinition:
        """Pre-register an empty entity so self and mutual references resolve.

        Idempotent for an existing empty entity.
        """
        existing = self._entities.get(name)
        if existing is not None:
            if not existing.fields:
                return existing
            raise ConfigurationError(f"Entity '{name}' is already defined")
        stub = EntityDefinition(name=name)
        self._entities[name] = stub
        return stub

    def register_dataclass(self, cls: type) -> EntityDefinition:
        """Build (once) and return the definition of a dataclass type."""
        cached = self._by_class.get(cls)
        if cached is not None:
            return cached
        if not dataclasses.is_dataclass(cls):
            raise ConfigurationError(f"'{cls.__name__}' is not a dataclass")

        existing = self._entities.get(cls.__name__)
        if existing is not None and existing.python_type is not cls:
            raise ConfigurationError(
                f"Entity '{cls.__name__}' is already defined; {_full_qualname(cls)} needs a separate registry"
            )

        hints = self._type_hints(cls)

        entity = EntityDefinition(name=cls.__name__, python_type=cls)
        for f in dataclasses.fields(cls):
            tags = tags_from_metadata(f.metadata)
            element_class = None
            element_type = None
            if tags.get(TAG_ONE_TO_MANY) or tags.get(TAG_MANY_TO_MANY):
                element_class = _element_class(hints.get(f.name))
                element_type = element_class.__name__ if element_class else _element_name(f.type)
            field_def = field_from_tags(
                f.name,
                tags,
                type_name=_type_name(f.type),
                element_type=element_type,
                element_class=element_class,
            )
            if field_def.is_relation and element_class is None and element_type is not None:
                field_def.element_qualname = _sibling_qualname(cls, element_type)
            entity.fields.append(field_def)

        self._by_class[cls] = entity
        self._entities[entity.name] = entity
        logger.debug("registered entity %s with %d fields", entity.name, len(entity.fields))
        return entity

    def _type_hints(self, cls: type) -> dict[str, Any]:
        try:
            return typing.get_type_hints(cls)
        except NameError:
            pass
        # Classes declared inside a function: retry with the registered
        # classes of the same scope and the class itself
        scope = cls.__qualname__.rpartition(".")[0]
        localns = {
            known.__name__: known
            for known in self._by_class
            if known.__module__ == cls.__module__ and known.__qualname__.rpartition(".")[0] == scope
        }
        localns[cls.__name__] = cls
        try:
            return typing.get_type_hints(cls, localns=localns)
        except NameError:
            return {}

    def get(self, name: str) -> EntityDefinition | None:
        return self._entities.get(name)

    def get_or_raise(self, name: str) -> EntityDefinition:
        """Get an entity by name, raising if not found."""
        entity = self._entities.get(name)
        if entity is None:
            raise ConfigurationError(f"Entity '{name}' not found")
        return entity

    def list_entities(self) -> list[str]:
        return list(self._entities.keys())

    def definition_for(self, obj: Any, entity: str | EntityDefinition | None = None) -> EntityDefinition:
        """Return the definition describing ``obj``.

        Dataclass instances are described by their own class. Other objects
        (mappings) need an entity, given by name or definition.
        """
        if isinstance(entity, EntityDefinition):
            return entity
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return self.register_dataclass(type(obj))
        if entity is None:
            raise ConfigurationError(
                f"Cannot infer entity metadata for a {type(obj).__name__!r} object; "
                "use a dataclass or pass an entity name"
            )
        return self.get_or_raise(entity)

    def element_definition(
        self, field_def: FieldDefinition, elements: Iterable[Any] = ()
    ) -> EntityDefinition:
        """Return the entity stored in a relation field.

        An element class known only by qualified name is looked up among
        the registered classes, then among the classes of ``elements``.
        """
        if field_def.element_class is None and field_def.element_qualname is not None:
            candidates = list(self._by_class) + [
                type(e) for e in elements if dataclasses.is_dataclass(e) and not isinstance(e, type)
            ]
            for candidate in candidates:
                if _full_qualname(candidate) == field_def.element_qualname:
                    field_def.element_class = candidate
                    break
            else:
                raise ConfigurationError(
                    f"Element class '{field_def.element_qualname}' of field '{field_def.name}' "
                    "is not registered; register it with register_dataclass() first"
                )
        if field_def.element_class is not None:
            return self.register_dataclass(field_def.element_class)
        if field_def.element_type is None:
            raise ConfigurationError(f"Relation field '{field_def.name}' has no element type")
        return self.get_or_raise(field_def.element_type)

    def resolve_many_to_many(
        self, entity: EntityDefinition, field_def: FieldDefinition, elements: Iterable[Any] = ()
    ) -> ManyToManyLink:
        """Resolve a many-to-many field against its reciprocal field.

        ``elements`` are the field's current values, used to find an element
        class that has not been registered yet.

        Raises:
            ConfigurationError: On malformed tags or a reciprocal without a
                many-to-many tag.
            FieldNotFoundError: If the element entity has no field whose
                column is this field's other role.
        """
        this_role, other_role = field_def.roles
        element = self.element_definition(field_def, elements)
        reciprocal = find_by_column_name(element, other_role)
        if reciprocal.relation is not Relation.MANY_TO_MANY:
            raise ConfigurationError(
                f"Field '{reciprocal.name}' of '{element.name}' is not a {TAG_MANY_TO_MANY} "
                f"relation (reciprocal of '{entity.name}.{field_def.name}')"
            )
        reciprocal_role, _ = reciprocal.roles
        return ManyToManyLink(
            entity=entity.name,
            field=field_def,
            element_type=element.name,
            this_role=this_role,
            other_role=other_role,
            reciprocal=reciprocal,
            reciprocal_role=reciprocal_role,
        )

    def __contains__(self, name: str) -> bool:
        return name in self._entities


default_registry = EntityRegistry()
