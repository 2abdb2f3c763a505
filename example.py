"""Example usage of the sqlgraft library."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlgraft import Delete, IdentifierAllocator, Persister, RecordingExecutor, Select, Update, column

logging.basicConfig(level=logging.INFO, format="%(message)s")


@dataclass
class User:
    name: str = column("name")
    email: str = column("email")
    age: int = column("age")
    others_refered: list[User] = column("othersRefered", one_to_many="refered_by")
    works_for: list[User] = column("worksFor", many_to_many="boss-workers")
    workers: list[User] = column("workers", many_to_many="worker-worksFor")


def show(label, statement):
    print(f"{label}:")
    print("SQL: ", statement.render())
    print("ARGS:", statement.args())
    print()


show(
    "Select",
    Select("u.name", "u.email")
    .from_("users u")
    .left_join("orders o", "o.user_id = u.id")
    .where("u.age > ?", 21)
    .where("u.email LIKE ?", "%@example.com")
    .order_by("u.name")
    .limit(10),
)
show("Update", Update().table("users").set("age = ?", 31).where("name = ?", "shmuli"))
show("Delete", Delete().from_("users").where("age < ?", 18))

# Persist a small referral tree: 4 inserts, children carry refered_by
root = User(
    name="shmuli",
    email="shmuli@example.com",
    age=30,
    others_refered=[
        User(name="berel", email="berel@example.com", age=30),
        User(
            name="lev",
            email="lev@example.com",
            age=30,
            others_refered=[User(name="dovid", email="dovid@example.com", age=21)],
        ),
    ],
)

executor = RecordingExecutor(IdentifierAllocator(start=12))
root_id = Persister(executor).persist_tree(root)
print("root id:", root_id)
