"""Tests for the schema DSL parser."""

import pytest

from sqlgraft.errors import ConfigurationError
from sqlgraft.metadata import EntityRegistry, Relation
from sqlgraft.parsing import SchemaParser
from sqlgraft.parsing.schema_lexer import SchemaLexer


USER_SCHEMA = """
# A user refers other users and works for bosses
User {
    name: string `json:"name"`,
    email: string `json:"email"`,
    age: int `json:"age"`,
    othersRefered: User[] `json:"othersRefered" one-to-many:"refered_by"`,
    worksFor: User[] `json:"worksFor" many-to-many:"boss-workers"`,
    workers: User[] `json:"workers" many-to-many:"worker-worksFor"`,
}
"""


class TestSchemaLexer:
    """Tests for the schema lexer."""

    def test_tokenize_entity(self):
        """Test tokenizing an entity with a tagged field."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize('User { name: string `json:"name"` }')
        token_types = [t.type for t in tokens]

        assert token_types == [
            "IDENTIFIER",
            "LBRACE",
            "IDENTIFIER",
            "COLON",
            "IDENTIFIER",
            "TAG",
            "RBRACE",
        ]
        assert tokens[5].value == 'json:"name"'

    def test_tokenize_array(self):
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("kids: User[]")
        assert [t.type for t in tokens] == ["IDENTIFIER", "COLON", "IDENTIFIER", "LBRACKET", "RBRACKET"]

    def test_comments_and_newlines_ignored(self):
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("# header\nUser {\n}  # trailing\n")
        assert [t.type for t in tokens] == ["IDENTIFIER", "LBRACE", "RBRACE"]

    def test_line_numbers(self):
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("A {\n\n  x: int\n}")
        assert tokens[2].lineno == 3

    def test_illegal_character(self):
        """Test error on illegal character."""
        lexer = SchemaLexer()
        lexer.build()

        with pytest.raises(SyntaxError, match="line 1"):
            lexer.tokenize("User { name: string @ }")


class TestSchemaParser:
    """Tests for the schema parser."""

    def test_parse_user(self):
        """Test fields, columns and relations of a self-referential entity."""
        registry = SchemaParser().parse(USER_SCHEMA)
        user = registry.get_or_raise("User")

        assert [f.name for f in user.fields] == [
            "name",
            "email",
            "age",
            "othersRefered",
            "worksFor",
            "workers",
        ]
        assert [f.column for f in user.column_fields] == ["name", "email", "age"]
        assert user.get_field("age").type_name == "int"

        referred = user.get_field("othersRefered")
        assert referred.relation is Relation.ONE_TO_MANY
        assert referred.foreign_key == "refered_by"
        assert referred.element_type == "User"
        assert referred.type_name == "User[]"

    def test_many_to_many_join_table(self):
        registry = SchemaParser().parse(USER_SCHEMA)
        user = registry.get_or_raise("User")

        link = registry.resolve_many_to_many(user, user.get_field("worksFor"))
        assert link.join_table == "boss_worker"

    def test_commas_optional(self):
        registry = SchemaParser().parse(
            """
            Point {
                x: int `json:"x"`
                y: int `json:"y"`
            }
            """
        )
        assert [f.column for f in registry.get_or_raise("Point").fields] == ["x", "y"]

    def test_untagged_field(self):
        """Test that a field without a tag is kept with no column."""
        registry = SchemaParser().parse("Thing { name: string }")
        assert registry.get_or_raise("Thing").fields[0].column is None

    def test_empty_entity_and_schema(self):
        assert SchemaParser().parse("").list_entities() == []
        assert SchemaParser().parse("Empty {}").get_or_raise("Empty").fields == []

    def test_forward_reference(self):
        """Test an entity referring to one declared later."""
        registry = SchemaParser().parse(
            """
            Author { books: Book[] `json:"books" one-to-many:"author_id"` }
            Book { title: string `json:"title"` }
            """
        )
        books = registry.get_or_raise("Author").get_field("books")

        assert books.element_type == "Book"
        assert registry.element_definition(books) is registry.get_or_raise("Book")

    def test_parser_reusable(self):
        """Test that one parser instance parses several schemas independently."""
        parser = SchemaParser()
        first = parser.parse("A { x: int `json:\"x\"` }")
        second = parser.parse("B { y: int `json:\"y\"` }")

        assert first.list_entities() == ["A"]
        assert second.list_entities() == ["B"]

    def test_parse_into_existing_registry(self):
        registry = EntityRegistry()
        SchemaParser().parse("A { x: int `json:\"x\"` }", registry)
        assert "A" in registry

    def test_relation_must_be_array(self):
        with pytest.raises(ConfigurationError, match="array"):
            SchemaParser().parse('A { b: B `json:"b" one-to-many:"a_id"` } B {}')

    def test_relation_to_undeclared_entity(self):
        with pytest.raises(ConfigurationError, match="Ghost"):
            SchemaParser().parse('A { b: Ghost[] `json:"b" one-to-many:"a_id"` }')

    def test_duplicate_entity(self):
        with pytest.raises(ConfigurationError, match="already defined"):
            SchemaParser().parse("A {} A {}")

    def test_duplicate_field(self):
        with pytest.raises(ConfigurationError, match="twice"):
            SchemaParser().parse('A { x: int `json:"x"`, x: int `json:"y"` }')

    def test_malformed_tag(self):
        """Test that tag errors carry the field's line."""
        with pytest.raises(ConfigurationError, match="line 3"):
            SchemaParser().parse('A {\n  ok: int `json:"ok"`\n  bad: int `json=bad`\n}')

    def test_syntax_error(self):
        with pytest.raises(SyntaxError, match="line 2"):
            SchemaParser().parse("A {\n  name string\n}")

    def test_unexpected_end(self):
        with pytest.raises(SyntaxError, match="end of input"):
            SchemaParser().parse("A { x: int")
