"""Statement executors: the seam between statement building and a database."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from sqlgraft.statements import Insert

logger = logging.getLogger(__name__)


class StatementExecutor(Protocol):
    """Anything that runs a rendered insert and returns the generated identifier."""

    def execute(self, statement: Insert) -> Any: ...


class IdentifierAllocator:
    """Hands out increasing integer identifiers.

    ``next()`` is guarded by a lock, so one allocator may be shared between
    threads.
    """

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self._lock = threading.Lock()

    @property
    def current(self) -> int:
        """The identifier the next call to :meth:`next` will return."""
        with self._lock:
            return self._next

    def next(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value


@dataclass
class Submission:
    """One statement seen by a RecordingExecutor."""

    sql: str
    args: list[Any]
    identifier: Any


class RecordingExecutor:
    """Fake executor: logs and records each insert, returns allocated identifiers."""

    def __init__(self, allocator: IdentifierAllocator | None = None) -> None:
        self.allocator = allocator if allocator is not None else IdentifierAllocator()
        self.submissions: list[Submission] = []

    def execute(self, statement: Insert) -> int:
        sql = statement.render()
        args = list(statement.args())
        identifier = self.allocator.next()
        logger.info("(fake) executing %s with args %r -> %s", sql, args, identifier)
        self.submissions.append(Submission(sql=sql, args=args, identifier=identifier))
        return identifier
