"""Tests for recursive persistence of object graphs."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from sqlgraft import (
    ConfigurationError,
    EntityRegistry,
    FieldNotFoundError,
    IdentifierAllocator,
    Persister,
    RecordingExecutor,
    SchemaParser,
    column,
    persist_tree,
)


@dataclass
class User:
    name: str = column("name")
    email: str = column("email")
    age: int = column("age")
    others_refered: list[User] = column("othersRefered", one_to_many="refered_by")
    works_for: list[User] = column("worksFor", many_to_many="boss-workers")
    workers: list[User] = column("workers", many_to_many="worker-worksFor")


@dataclass
class Node:
    label: str = column("label")
    children: list[Node] = column("children", one_to_many="parent_id")


@dataclass
class Broken:
    label: str = column("label")
    secret: str = ""


@dataclass
class Orphan:
    name: str = column("name")
    peers: list[Orphan] = column("peers", many_to_many="peer-missing")


SCHEMA = """
# Blog schema
Author {
    name: string `json:"name"`
    books: Book[] `json:"books" one-to-many:"author_id"`
}

Book {
    title: string `json:"title"`,
    chapters: Chapter[] `json:"chapters" one-to-many:"book_id"`,
}

Chapter {
    heading: string `json:"heading"`
}
"""


def referral_tree() -> User:
    return User(
        name="shmuli",
        email="shmuli@example.com",
        age=30,
        others_refered=[
            User(name="berel", email="berel@example.com", age=30),
            User(
                name="lev",
                email="lev@example.com",
                age=30,
                others_refered=[User(name="fayvl", email="fayvl@example.com", age=21)],
            ),
        ],
    )


@pytest.fixture
def executor():
    return RecordingExecutor(IdentifierAllocator(start=12))


class TestPersistTree:
    """Tests for the recursive persister on dataclass graphs."""

    def test_single_object(self, executor):
        """Test one insert with relation fields excluded."""
        identifier = Persister(executor).persist_tree(User(name="a", email="b", age=1))

        assert identifier == 12
        assert len(executor.submissions) == 1
        submission = executor.submissions[0]
        assert submission.sql == "INSERT INTO User (name, email, age) VALUES (?, ?, ?)"
        assert submission.args == ["a", "b", 1]

    def test_nested_one_to_many(self, executor):
        """Test parent-before-child order and foreign keys to the immediate parent."""
        root_id = Persister(executor).persist_tree(referral_tree())

        assert root_id == 12
        subs = executor.submissions
        assert len(subs) == 4
        assert [s.args[0] for s in subs] == ["shmuli", "berel", "lev", "fayvl"]
        assert [s.identifier for s in subs] == [12, 13, 14, 15]

        assert subs[0].sql == "INSERT INTO User (name, email, age) VALUES (?, ?, ?)"
        for child in subs[1:]:
            assert child.sql == "INSERT INTO User (name, email, age, refered_by) VALUES (?, ?, ?, ?)"
        assert subs[1].args[-1] == 12
        assert subs[2].args[-1] == 12
        assert subs[3].args[-1] == 14

    def test_extra_columns_on_root(self, executor):
        """Test caller-supplied extra columns appended after field columns."""
        Persister(executor).persist_tree(Node(label="root"), {"tenant": "acme", "rev": 3})

        sub = executor.submissions[0]
        assert sub.sql == "INSERT INTO Node (label, tenant, rev) VALUES (?, ?, ?)"
        assert sub.args == ["root", "acme", 3]

    def test_extra_columns_not_mutated(self, executor):
        """Test that children get a fresh foreign-key map."""
        extras = {"tenant": "acme"}
        Persister(executor).persist_tree(Node(label="root", children=[Node(label="a")]), extras)

        assert extras == {"tenant": "acme"}
        assert executor.submissions[1].sql == "INSERT INTO Node (label, parent_id) VALUES (?, ?)"

    def test_identifiers_continue_from_allocator(self):
        """Test that identifiers follow the allocator's current value across calls."""
        allocator = IdentifierAllocator(start=100)
        executor = RecordingExecutor(allocator)
        persister = Persister(executor)

        assert persister.persist_tree(Node(label="a")) == 100
        assert persister.persist_tree(Node(label="b", children=[Node(label="c")])) == 101
        assert allocator.current == 103

    def test_missing_annotation_aborts(self, executor):
        """Test that traversal stops at the first unannotated field."""
        root = Node(
            label="root",
            children=[Node(label="a"), Broken(label="bad"), Node(label="c")],
        )

        with pytest.raises(ConfigurationError, match="secret"):
            Persister(executor).persist_tree(root)

        assert [s.args[0] for s in executor.submissions] == ["root", "a"]

    def test_missing_annotation_on_root_submits_nothing(self, executor):
        with pytest.raises(ConfigurationError):
            Persister(executor).persist_tree(Broken(label="x"))

        assert executor.submissions == []

    def test_module_level_persist_tree(self, executor):
        assert persist_tree(Node(label="solo"), executor) == 12
        assert executor.submissions[0].args == ["solo"]


class TestManyToMany:
    """Tests for many-to-many handling during persistence."""

    def test_many_to_many_elements_not_persisted(self, executor):
        """Test that many-to-many elements get no insert of their own."""
        boss = User(name="boss", email="b@x", age=50)
        worker = User(name="w", email="w@x", age=20, works_for=[boss])

        Persister(executor).persist_tree(worker)

        assert len(executor.submissions) == 1

    def test_handler_receives_links(self, executor):
        """Test the optional many-to-many hook."""
        calls = []

        def handler(link, parent_id, element):
            calls.append((link.join_table, parent_id, element.name))

        bosses = [User(name="b1", email="", age=1), User(name="b2", email="", age=2)]
        worker = User(name="w", email="", age=3, works_for=bosses)

        Persister(executor, many_to_many=handler).persist_tree(worker)

        assert calls == [("boss_worker", 12, "b1"), ("boss_worker", 12, "b2")]

    def test_missing_reciprocal(self, executor):
        """Test FieldNotFoundError when the reciprocal column does not exist."""
        with pytest.raises(FieldNotFoundError):
            Persister(executor).persist_tree(Orphan(name="x"))


class TestSchemaEntities:
    """Tests for persisting mappings described by a schema file."""

    def test_nested_mappings(self, executor):
        registry = SchemaParser().parse(SCHEMA)
        author = {
            "name": "Sholem",
            "books": [
                {"title": "Tevye", "chapters": [{"heading": "One"}, {"heading": "Two"}]},
                {"title": "Menakhem-Mendl"},
            ],
        }

        root_id = Persister(executor, registry=registry).persist_tree(author, entity="Author")

        assert root_id == 12
        assert [s.sql for s in executor.submissions] == [
            "INSERT INTO Author (name) VALUES (?)",
            "INSERT INTO Book (title, author_id) VALUES (?, ?)",
            "INSERT INTO Chapter (heading, book_id) VALUES (?, ?)",
            "INSERT INTO Chapter (heading, book_id) VALUES (?, ?)",
            "INSERT INTO Book (title, author_id) VALUES (?, ?)",
        ]
        assert [s.args for s in executor.submissions] == [
            ["Sholem"],
            ["Tevye", 12],
            ["One", 13],
            ["Two", 13],
            ["Menakhem-Mendl", 12],
        ]

    def test_mapping_without_entity(self, executor):
        registry = SchemaParser().parse(SCHEMA)
        with pytest.raises(ConfigurationError):
            Persister(executor, registry=registry).persist_tree({"name": "x"})

    def test_untagged_schema_field(self, executor):
        """Test that a schema field without a json tag aborts persistence."""
        registry = SchemaParser().parse("Thing { name: string }")

        with pytest.raises(ConfigurationError, match="name"):
            Persister(executor, registry=registry).persist_tree({"name": "x"}, entity="Thing")
        assert executor.submissions == []

    def test_separate_registry(self, executor):
        """Test that a given registry is used for dataclasses too."""
        registry = EntityRegistry()
        Persister(executor, registry=registry).persist_tree(Node(label="x"))

        assert "Node" in registry


class TestLocalDataclasses:
    """Tests for persisting dataclasses declared inside a function."""

    def test_mutually_referencing_many_to_many(self, executor):
        """Test a many-to-many element class known only from the persisted values."""

        @dataclass
        class Team:
            name: str = column("name")
            players: list[Player] = column("players", many_to_many="roster-teams")

        @dataclass
        class Player:
            name: str = column("name")
            teams: list[Team] = column("teams", many_to_many="member-players")

        calls = []
        persister = Persister(
            executor,
            registry=EntityRegistry(),
            many_to_many=lambda link, parent_id, element: calls.append((link.join_table, element.name)),
        )

        assert persister.persist_tree(Team(name="t", players=[Player(name="p")])) == 12
        assert executor.submissions[0].sql == "INSERT INTO Team (name) VALUES (?)"
        assert calls == [("roster_member", "p")]

    def test_shadowing_class_rejected(self, executor):
        """Test that a second class with a registered name is not resolved as the first."""

        @dataclass
        class Peer:
            name: str = column("name")

        registry = EntityRegistry()
        registry.register_dataclass(Peer)

        @dataclass
        class Peer:  # noqa: F811
            name: str = column("name")
            friends: list[Peer] = column("friends", many_to_many="friend-friends")

        with pytest.raises(ConfigurationError, match="already defined"):
            Persister(executor, registry=registry).persist_tree(Peer(name="x"))
        assert executor.submissions == []
