"""
Datastore Interface

The relational+vector store the pipeline reads from. ``Store`` is the
contract; ``InMemoryStore`` is a process-local implementation backed by
plain dict rows and numpy cosine similarity, seedable from a JSON file.

Rows are returned as copies with the ``embedding`` column stripped.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

logger = logging.getLogger("discovery.common.store")

Row = Dict[str, Any]

TABLES = (
    "profiles",
    "skills",
    "experiences",
    "educations",
    "posts",
    "post_mentions",
    "post_projects",
    "projects",
    "contributions",
    "project_requests",
    "chat_sessions",
    "chat_messages",
)


class StoreError(RuntimeError):
    """Raised for unknown tables and failed writes"""


class Store(ABC):
    """Abstract store used by search strategies and the orchestrator."""

    @abstractmethod
    async def match_by_embedding(self, table: str, vector: Sequence[float], top_n: int) -> List[Row]:
        """Top ``top_n`` rows by similarity, each carrying a ``similarity`` key."""

    @abstractmethod
    async def search_text(
        self,
        table: str,
        fields: Sequence[str],
        terms: Sequence[str],
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
    ) -> List[Row]:
        """Rows where any of ``fields`` contains any of ``terms`` (case-insensitive)."""

    @abstractmethod
    async def find_where(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Rows matching every filter. A list/tuple/set filter value means "in"."""

    @abstractmethod
    async def get(self, table: str, row_id: str) -> Optional[Row]:
        pass

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        pass

    @abstractmethod
    async def update(self, table: str, row_id: str, values: Row) -> Row:
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete matching rows, returning how many were removed."""


def _matches(row: Row, filters: Dict[str, Any]) -> bool:
    for key, expected in filters.items():
        value = row.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sorted(rows: List[Row], order_by: Optional[str], descending: bool) -> List[Row]:
    if not order_by:
        return rows
    return sorted(rows, key=lambda r: str(r.get(order_by) or ""), reverse=descending)


class InMemoryStore(Store):
    """Dict-backed store. Safe for concurrent use within one event loop."""

    def __init__(self, tables: Optional[Dict[str, Iterable[Row]]] = None) -> None:
        self._tables: Dict[str, List[Row]] = {name: [] for name in TABLES}
        for name, rows in (tables or {}).items():
            self._table(name).extend(dict(row) for row in rows)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "InMemoryStore":
        """Create a store seeded from a JSON object of ``{table: [rows]}``."""
        with open(path) as f:
            data = json.load(f)
        store = cls(data)
        logger.info(
            "Loaded store seed from %s (%s)",
            path,
            ", ".join(f"{name}={len(rows)}" for name, rows in store._tables.items() if rows),
        )
        return store

    def _table(self, name: str) -> List[Row]:
        if name not in self._tables:
            raise StoreError(f"Unknown table: {name}")
        return self._tables[name]

    @staticmethod
    def _public(row: Row) -> Row:
        return {k: v for k, v in row.items() if k != "embedding"}

    async def match_by_embedding(self, table: str, vector: Sequence[float], top_n: int) -> List[Row]:
        rows = [r for r in self._table(table) if r.get("embedding") is not None]
        if not rows or top_n <= 0:
            return []

        query = np.asarray(vector, dtype=np.float32)
        matrix = np.asarray([r["embedding"] for r in rows], dtype=np.float32)
        if matrix.shape[1] != query.shape[0]:
            raise StoreError(
                f"Vector dimension mismatch for {table}: {matrix.shape[1]} vs {query.shape[0]}"
            )

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        similarities = matrix @ query / norms

        results = []
        for idx in np.argsort(-similarities)[:top_n]:
            row = self._public(rows[idx])
            row["similarity"] = float(similarities[idx])
            results.append(row)
        return results

    async def search_text(
        self,
        table: str,
        fields: Sequence[str],
        terms: Sequence[str],
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
    ) -> List[Row]:
        needles = [t.lower() for t in terms if t]
        if not needles:
            return []

        hits = []
        for row in self._table(table):
            haystacks = [str(row.get(f) or "").lower() for f in fields]
            if any(n in h for n in needles for h in haystacks):
                hits.append(self._public(row))

        hits = _sorted(hits, order_by, descending)
        return hits[:limit] if limit is not None else hits

    async def find_where(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        rows = [self._public(r) for r in self._table(table) if _matches(r, filters or {})]
        rows = _sorted(rows, order_by, descending)
        return rows[:limit] if limit is not None else rows

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        for row in self._table(table):
            if row.get("id") == row_id:
                return self._public(row)
        return None

    async def insert(self, table: str, row: Row) -> Row:
        stored = dict(row)
        stored.setdefault("id", str(uuid.uuid4()))
        self._table(table).append(stored)
        return self._public(stored)

    async def update(self, table: str, row_id: str, values: Row) -> Row:
        for row in self._table(table):
            if row.get("id") == row_id:
                row.update(values)
                return self._public(row)
        raise StoreError(f"No row {row_id} in {table}")

    async def delete(self, table: str, filters: Dict[str, Any]) -> int:
        rows = self._table(table)
        kept = [r for r in rows if not _matches(r, filters)]
        removed = len(rows) - len(kept)
        rows[:] = kept
        return removed
