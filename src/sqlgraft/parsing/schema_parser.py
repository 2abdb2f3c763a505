"""Parser for the entity schema DSL.

A schema declares persisted entities and the struct tags of their fields::

    User {
        name: string `json:"name"`,
        age: int `json:"age"`,
        othersRefered: User[] `json:"othersRefered" one-to-many:"refered_by"`,
    }

Commas between fields are optional; ``#`` starts a comment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import ply.yacc as yacc

from sqlgraft.errors import ConfigurationError
from sqlgraft.metadata import (
    EntityRegistry,
    TAG_MANY_TO_MANY,
    TAG_ONE_TO_MANY,
    field_from_tags,
    parse_tag,
)
from sqlgraft.parsing.schema_lexer import SchemaLexer


@dataclass
class TypeRef:
    """Reference to a declared type, possibly as an array."""

    name: str
    is_array: bool = False

    def __str__(self) -> str:
        return f"{self.name}[]" if self.is_array else self.name


@dataclass
class FieldSpec:
    """A field as written in the schema, before resolution."""

    name: str
    type_ref: TypeRef
    tag: str | None = None
    lineno: int = 0
    lexpos: int = 0


@dataclass
class EntitySpec:
    """An entity as written in the schema, before resolution."""

    name: str
    fields: list[FieldSpec] = field(default_factory=list)
    lineno: int = 0


class SchemaParser:
    """Parser for the entity schema DSL."""

    tokens = SchemaLexer.tokens

    def __init__(self) -> None:
        self.lexer = SchemaLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_schema(self, p: yacc.YaccProduction) -> None:
        """schema : entity_list"""
        p[0] = p[1]

    def p_schema_empty(self, p: yacc.YaccProduction) -> None:
        """schema :"""
        p[0] = []

    def p_entity_list_single(self, p: yacc.YaccProduction) -> None:
        """entity_list : entity_def"""
        p[0] = [p[1]]

    def p_entity_list_multiple(self, p: yacc.YaccProduction) -> None:
        """entity_list : entity_list entity_def"""
        p[0] = p[1] + [p[2]]

    def p_entity_def(self, p: yacc.YaccProduction) -> None:
        """entity_def : IDENTIFIER LBRACE field_list RBRACE
                      | IDENTIFIER LBRACE field_list COMMA RBRACE"""
        p[0] = EntitySpec(name=p[1], fields=p[3], lineno=p.lineno(1))

    def p_entity_def_empty(self, p: yacc.YaccProduction) -> None:
        """entity_def : IDENTIFIER LBRACE RBRACE"""
        p[0] = EntitySpec(name=p[1], fields=[], lineno=p.lineno(1))

    def p_field_list_single(self, p: yacc.YaccProduction) -> None:
        """field_list : field"""
        p[0] = [p[1]]

    def p_field_list_multiple(self, p: yacc.YaccProduction) -> None:
        """field_list : field_list COMMA field
                      | field_list field"""
        p[0] = p[1] + [p[len(p) - 1]]

    def p_field(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER COLON type_ref"""
        p[0] = FieldSpec(name=p[1], type_ref=p[3], lineno=p.lineno(1), lexpos=p.lexpos(1))

    def p_field_tagged(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER COLON type_ref TAG"""
        p[0] = FieldSpec(
            name=p[1], type_ref=p[3], tag=p[4], lineno=p.lineno(1), lexpos=p.lexpos(1)
        )

    def p_type_ref_simple(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER"""
        p[0] = TypeRef(name=p[1])

    def p_type_ref_array(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER LBRACKET RBRACKET"""
        p[0] = TypeRef(name=p[1], is_array=True)

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(
                f"Syntax error at '{p.value}' (line {p.lineno}, position {p.lexpos})"
            )
        raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse_specs(self, data: str) -> list[EntitySpec]:
        """Parse a schema into unresolved entity specs."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)
        self.lexer.lexer.lineno = 1
        specs = self.parser.parse(data, lexer=self.lexer.lexer)
        return specs or []

    def parse(self, data: str, registry: EntityRegistry | None = None) -> EntityRegistry:
        """Parse a schema and return a registry holding its entities.

        Raises:
            SyntaxError: On malformed input.
            ConfigurationError: On duplicate entities, malformed tags, or
                relation fields that are not arrays of a declared entity.
        """
        return self.resolve(self.parse_specs(data), registry)

    def resolve(
        self, specs: list[EntitySpec], registry: EntityRegistry | None = None
    ) -> EntityRegistry:
        """Resolve specs in two phases so entities can reference each other and themselves."""
        registry = registry if registry is not None else EntityRegistry()
        for spec in specs:
            if spec.name in registry:
                raise ConfigurationError(f"Entity '{spec.name}' is already defined")
            registry.register_stub(spec.name)

        for spec in specs:
            entity = registry.get_or_raise(spec.name)
            seen: set[str] = set()
            for fspec in spec.fields:
                if fspec.name in seen:
                    raise ConfigurationError(
                        f"Field '{fspec.name}' declared twice in '{spec.name}' (line {fspec.lineno})"
                    )
                seen.add(fspec.name)

                try:
                    tags = parse_tag(fspec.tag) if fspec.tag else {}
                except ConfigurationError as exc:
                    raise ConfigurationError(f"{exc} (line {fspec.lineno})") from exc
                element_type = None
                if tags.get(TAG_ONE_TO_MANY) or tags.get(TAG_MANY_TO_MANY):
                    if not fspec.type_ref.is_array or fspec.type_ref.name not in registry:
                        raise ConfigurationError(
                            f"Relation field '{spec.name}.{fspec.name}' must be an array of a "
                            f"declared entity, got '{fspec.type_ref}' (line {fspec.lineno})"
                        )
                    element_type = fspec.type_ref.name

                entity.fields.append(
                    field_from_tags(
                        fspec.name,
                        tags,
                        type_name=str(fspec.type_ref),
                        element_type=element_type,
                    )
                )

        return registry
