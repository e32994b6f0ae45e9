"""Ledger store: document contract plus its SQLAlchemy implementation.

Documents are plain JSON objects grouped into collections and keyed by a
string id. Values are encoded so that string comparison on timestamps and
dates follows time order, which is what range filters and ordering rely on.
"""

import logging
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.core.clock import as_utc
from app.core.exceptions import ConflictError, ServiceError, StoreError
from app.core.models import LedgerDocument
from app.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

# Fixed width so lexicographic order equals chronological order.
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_COMPARISONS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}
OPERATORS = tuple(_COMPARISONS) + ("in",)


def encode_value(value: Any) -> Any:
    """Convert Python values into their stored JSON representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return as_utc(value).strftime(TIMESTAMP_FORMAT)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [encode_value(v) for v in value]
    return value


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


def where(field: str, op: str, value: Any) -> Filter:
    return Filter(field, op, value)


@dataclass
class _Write:
    kind: str  # create, set, update, delete
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False
    expected: Optional[Dict[str, Any]] = None


class WriteBatch(ABC):
    """Queued writes applied all together by ``commit`` or not at all."""

    def __init__(self) -> None:
        self._writes: List[_Write] = []

    def __len__(self) -> int:
        return len(self._writes)

    def create(self, collection: str, doc_id: str, doc: Mapping[str, Any]) -> "WriteBatch":
        self._writes.append(_Write("create", collection, doc_id, encode_value(doc)))
        return self

    def set(
        self,
        collection: str,
        doc_id: str,
        doc: Mapping[str, Any],
        merge: bool = False,
    ) -> "WriteBatch":
        self._writes.append(_Write("set", collection, doc_id, encode_value(doc), merge=merge))
        return self

    def update(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> "WriteBatch":
        """Patch an existing document.

        ``expected`` maps field names to an allowed value (or a tuple of
        allowed values); the write is rejected with ConflictError when the
        stored document no longer matches at commit time.
        """
        self._writes.append(
            _Write(
                "update",
                collection,
                doc_id,
                encode_value(fields),
                expected=dict(expected) if expected else None,
            )
        )
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._writes.append(_Write("delete", collection, doc_id))
        return self

    @abstractmethod
    async def commit(self) -> None:
        raise NotImplementedError


class LedgerStore(ABC):
    """Document store consumed by the fee and attendance ledgers."""

    @abstractmethod
    def batch(self) -> WriteBatch:
        raise NotImplementedError

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def create(self, collection: str, doc_id: str, doc: Mapping[str, Any]) -> None:
        await self.batch().create(collection, doc_id, doc).commit()

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        await self.batch().update(collection, doc_id, fields).commit()

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.batch().delete(collection, doc_id).commit()


# ----- SQLAlchemy implementation -----
def _json_element(field: str, sample: Any):
    element = LedgerDocument.data[field]
    if isinstance(sample, bool):
        return element.as_boolean()
    if isinstance(sample, (int, float)):
        return element.as_float()
    return element.as_string()


def _compile_filter(flt: Filter):
    value = encode_value(flt.value)
    if flt.op == "in":
        values = list(value)
        return _json_element(flt.field, values[0] if values else "").in_(values)
    column = _json_element(flt.field, value)
    if value is None:
        if flt.op == "==":
            return column.is_(None)
        if flt.op == "!=":
            return column.isnot(None)
        raise ValueError(f"Operator {flt.op} cannot compare against None")
    return _COMPARISONS[flt.op](column, value)


def _check_expected(row: LedgerDocument, expected: Mapping[str, Any]) -> None:
    for field, allowed in expected.items():
        options = allowed if isinstance(allowed, (tuple, list, set, frozenset)) else (allowed,)
        options = [encode_value(o) for o in options]
        current = row.data.get(field)
        if current not in options:
            raise ConflictError(
                f"{row.collection}/{row.id} changed concurrently: {field} is {current!r}"
            )


class SqlWriteBatch(WriteBatch):
    def __init__(self, session_factory: async_sessionmaker) -> None:
        super().__init__()
        self._session_factory = session_factory

    async def commit(self) -> None:
        if not self._writes:
            return
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for write in self._writes:
                        await self._apply(session, write)
        except ServiceError:
            raise
        except StaleDataError as e:
            raise ConflictError("Document was modified by another writer") from e
        except SQLAlchemyError as e:
            logger.error("Batch of %d writes failed: %s", len(self._writes), e)
            raise StoreError(f"Store write failed: {e.__class__.__name__}") from e

    async def _apply(self, session: AsyncSession, write: _Write) -> None:
        key: Tuple[str, str] = (write.collection, write.doc_id)
        row = await session.get(LedgerDocument, key)
        if write.kind == "create":
            if row is not None:
                raise StoreError(f"Document {write.collection}/{write.doc_id} already exists")
            session.add(LedgerDocument(collection=write.collection, id=write.doc_id, data=write.data))
        elif write.kind == "set":
            if row is None:
                session.add(LedgerDocument(collection=write.collection, id=write.doc_id, data=write.data))
            elif write.merge:
                row.data = {**row.data, **write.data}
            else:
                row.data = dict(write.data)
        elif write.kind == "update":
            if row is None:
                raise StoreError(f"No document to update: {write.collection}/{write.doc_id}")
            if write.expected:
                _check_expected(row, write.expected)
            row.data = {**row.data, **write.data}
        elif write.kind == "delete":
            if row is not None:
                await session.delete(row)
        else:
            raise ValueError(f"Unknown write kind: {write.kind}")
        await session.flush()


class SqlDocumentStore(LedgerStore):
    """LedgerStore over one SQL table; every call opens its own session."""

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal) -> None:
        self._session_factory = session_factory

    def batch(self) -> SqlWriteBatch:
        return SqlWriteBatch(self._session_factory)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            async with self._session_factory() as session:
                row = await session.get(LedgerDocument, (collection, doc_id))
                return dict(row.data) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"Store read failed: {e.__class__.__name__}") from e

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(LedgerDocument.data).where(
            LedgerDocument.collection == collection,
            *[_compile_filter(f) for f in filters],
        )
        if order_by is not None:
            column = _json_element(order_by.field, "")
            stmt = stmt.order_by(column.desc() if order_by.descending else column.asc())
        stmt = stmt.order_by(LedgerDocument.id)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [dict(data) for data in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Store query failed: {e.__class__.__name__}") from e


def get_store() -> LedgerStore:
    return SqlDocumentStore(AsyncSessionLocal)
