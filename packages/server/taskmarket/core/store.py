"""
Async document store over SQLAlchemy with change-stream subscriptions.

Documents are JSON objects addressed by (collection, id). Writes accept
sentinels that the store resolves at commit time:

- ``SERVER_TIMESTAMP``: a store-assigned timestamp, strictly increasing per store
- ``array_union(...)`` / ``array_remove(...)``: set-like edits of a list field

``subscribe`` delivers the full current result set of a query on every change
to the collection (not a diff), starting with the current snapshot.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Iterable, Literal, Optional, Tuple, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from taskmarket.core.database import create_engine, create_session_factory, init_db
from taskmarket.core.errors import NotFound, StoreUnavailable
from taskmarket.core.feed import ChangeFeed, SnapshotCallback, Subscription
from taskmarket.models.document import Document

log = structlog.get_logger()

FilterOp = Literal["==", "array_contains"]


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class ArrayUnion:
    values: tuple


@dataclass(frozen=True)
class ArrayRemove:
    values: tuple


def array_union(*values: Any) -> ArrayUnion:
    return ArrayUnion(values)


def array_remove(*values: Any) -> ArrayRemove:
    return ArrayRemove(values)


# ---------------------------------------------------------------------------
# Filters and snapshots
# ---------------------------------------------------------------------------


FieldPath = Union[str, Tuple[str, ...]]


def _segments(path: FieldPath) -> list[str]:
    # A tuple is taken literally, so segments may themselves contain dots
    if isinstance(path, tuple):
        return list(path)
    return path.split(".")


def _get_path(data: Any, path: FieldPath) -> Any:
    current = data
    for part in _segments(path):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _set_path(data: dict, path: FieldPath, value: Any) -> None:
    parts = _segments(path)
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


@dataclass(frozen=True)
class Filter:
    field: str
    op: FilterOp
    value: Any

    def matches(self, data: dict) -> bool:
        actual = _get_path(data, self.field)
        if self.op == "==":
            return actual == self.value
        return isinstance(actual, list) and self.value in actual


def where(field: str, op: FilterOp, value: Any) -> Filter:
    if op not in ("==", "array_contains"):
        raise ValueError(f"Unsupported filter operator: {op!r}")
    return Filter(field, op, value)


@dataclass(frozen=True)
class Snapshot:
    id: str
    seq: int
    data: dict

    def get(self, field: FieldPath, default: Any = None) -> Any:
        value = _get_path(self.data, field)
        return default if value is None else value

    def to_dict(self) -> dict:
        return {"id": self.id, **self.data}


def _to_snapshot(row: Document) -> Snapshot:
    return Snapshot(id=row.doc_id, seq=row.seq, data=copy.deepcopy(row.data))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DocumentStore:
    """
    Collection/document API on top of a single ``documents`` table.

    Writes are serialized through one lock (SQLite allows a single writer);
    reads run concurrently. Filters are evaluated over the rows of the
    collection in commit order.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        engine: Optional[AsyncEngine] = None,
        feed: Optional[ChangeFeed] = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine
        self.feed = feed or ChangeFeed()
        self._write_lock = asyncio.Lock()
        self._last_timestamp: Optional[datetime] = None

    @classmethod
    async def connect(cls, database_url: str, echo: bool = False) -> "DocumentStore":
        """Create the engine, ensure the schema exists and return a store."""
        engine = create_engine(database_url, echo=echo)
        try:
            await init_db(engine)
        except SQLAlchemyError as exc:
            await engine.dispose()
            raise StoreUnavailable("Document store unavailable", reason=str(exc)) from exc
        return cls(create_session_factory(engine), engine=engine)

    async def close(self) -> None:
        self.feed.close()
        if self._engine is not None:
            await self._engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            log.error("store.unavailable", error=str(exc))
            raise StoreUnavailable("Document store unavailable", reason=str(exc)) from exc

    def _next_timestamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _resolve(self, value: Any, existing: Any, ts: datetime) -> Any:
        if value is SERVER_TIMESTAMP:
            return ts.isoformat()
        if isinstance(value, ArrayUnion):
            current = list(existing) if isinstance(existing, list) else []
            for item in value.values:
                if item not in current:
                    current.append(item)
            return current
        if isinstance(value, ArrayRemove):
            current = list(existing) if isinstance(existing, list) else []
            return [item for item in current if item not in value.values]
        if isinstance(value, dict):
            base = existing if isinstance(existing, dict) else {}
            return {k: self._resolve(v, base.get(k), ts) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._resolve(v, None, ts) for v in value]
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    async def _fetch_row(
        self, session: AsyncSession, collection: str, doc_id: str
    ) -> Optional[Document]:
        result = await session.execute(
            select(Document).where(
                Document.collection == collection,
                Document.doc_id == doc_id,
            )
        )
        return result.scalar_one_or_none()

    # --- Reads ---

    async def get(self, collection: str, doc_id: str) -> Optional[Snapshot]:
        async with self._session() as session:
            row = await self._fetch_row(session, collection, doc_id)
            return _to_snapshot(row) if row else None

    async def get_or_raise(
        self, collection: str, doc_id: str, label: Optional[str] = None
    ) -> Snapshot:
        snapshot = await self.get(collection, doc_id)
        if snapshot is None:
            raise NotFound(
                f"{label or collection} not found", collection=collection, id=doc_id
            )
        return snapshot

    async def query(self, collection: str, *filters: Filter) -> list[Snapshot]:
        async with self._session() as session:
            result = await session.execute(
                select(Document)
                .where(Document.collection == collection)
                .order_by(Document.seq)
            )
            rows = result.scalars().all()
            snapshots = [_to_snapshot(r) for r in rows]
        return [s for s in snapshots if all(f.matches(s.data) for f in filters)]

    # --- Writes ---

    async def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        async with self._write_lock:
            ts = self._next_timestamp()
            async with self._session() as session:
                session.add(
                    Document(
                        collection=collection,
                        doc_id=doc_id,
                        data=self._resolve(data, {}, ts),
                    )
                )
                await session.commit()
        self.feed.publish(collection)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        async with self._write_lock:
            ts = self._next_timestamp()
            async with self._session() as session:
                row = await self._fetch_row(session, collection, doc_id)
                resolved = self._resolve(data, {}, ts)
                if row is None:
                    session.add(Document(collection=collection, doc_id=doc_id, data=resolved))
                else:
                    row.data = resolved
                    session.add(row)
                await session.commit()
        self.feed.publish(collection)

    async def update(self, collection: str, doc_id: str, partial: dict) -> None:
        """Merge ``partial`` into an existing document.

        Keys are dotted paths (``"last_read_by.alice"``) or tuples of path
        segments (``("last_read_by", user_id)``) for segments that may contain dots.
        """
        async with self._write_lock:
            ts = self._next_timestamp()
            async with self._session() as session:
                row = await self._fetch_row(session, collection, doc_id)
                if row is None:
                    raise NotFound(
                        f"{collection} not found", collection=collection, id=doc_id
                    )
                merged = copy.deepcopy(row.data)
                for path, value in partial.items():
                    _set_path(merged, path, self._resolve(value, _get_path(merged, path), ts))
                row.data = merged
                session.add(row)
                await session.commit()
        self.feed.publish(collection)

    # --- Change streams ---

    def subscribe(
        self,
        collection: str,
        filters: Iterable[Filter],
        on_snapshot: SnapshotCallback,
    ) -> Callable[[], None]:
        """Deliver ``query(collection, *filters)`` to ``on_snapshot`` on every change.

        Must be called from a running event loop. Returns an idempotent
        unsubscribe handle.
        """
        filters = tuple(filters)

        async def fetch() -> list[Snapshot]:
            return await self.query(collection, *filters)

        subscription = Subscription(collection, fetch, on_snapshot)
        self.feed.register(subscription)
        subscription.start()

        def unsubscribe() -> None:
            self.feed.unregister(subscription)
            subscription.cancel()

        return unsubscribe
