from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Protocol

from ipd.domain.errors import CommitError


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Resolved to the store's clock when the batch commits, not when the write is built.
SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    amount: float


@dataclass(frozen=True)
class Write:
    op: str  # create | update | delete
    collection: str
    doc_id: str
    fields: dict[str, Any] = field(default_factory=dict)


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def create(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...
    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...
    def delete(self, collection: str, doc_id: str) -> None: ...
    def add(self, write: Write | None) -> None: ...


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work collecting document writes into one atomic batch.

    Writes are buffered while the block runs and handed to the repository's
    ``commit_batch`` on a clean exit. If the block raises, nothing is sent.
    Store failures surface as ``CommitError`` chained from the original error.
    """

    repo: object
    writes: list[Write] = field(default_factory=list)

    def __enter__(self) -> "RepositoryUnitOfWork":
        self.writes = []
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.writes = []
            return None
        self.commit()
        return None

    def create(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self.writes.append(Write("create", collection, doc_id, dict(fields)))

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self.writes.append(Write("update", collection, doc_id, dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self.writes.append(Write("delete", collection, doc_id))

    def add(self, write: Write | None) -> None:
        if write is not None:
            self.writes.append(write)

    def commit(self) -> None:
        writes, self.writes = self.writes, []
        if not writes:
            return
        try:
            self.repo.commit_batch(writes)
        except (sqlite3.Error, ValueError, OSError) as e:
            raise CommitError(str(e)) from e
