"""
Book repositories.

``BookRepository`` is the only way request handlers reach stored books.
``SqlAlchemyBookRepository`` backs it with a relational table and
``InMemoryBookRepository`` with a dict, for tests and local experiments.
"""

import itertools
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .entities import BookRecord
from .errors import ConcurrencyConflict, StoreAccessError
from .models import Book, CreateBook, UpdateBook


# Largest value a 64-bit INTEGER column or LIMIT/OFFSET parameter can hold.
MAX_ROW_ID = 2**63 - 1


def fits_row_id(value: int) -> bool:
    return -MAX_ROW_ID - 1 <= value <= MAX_ROW_ID


def page_offset(page: int, page_size: int) -> int:
    if page < 1:
        raise ValueError("page must be >= 1")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    return (page - 1) * page_size


class BookRepository(ABC):
    """
    Data access contract for books.

    Every method may raise ``StoreAccessError``. Missing books are reported
    as ``None`` (or ``False`` from ``exists``), never as an exception.
    """

    @abstractmethod
    def list_all(self) -> list[Book]:
        """Return every book in store order (ascending id)."""

    @abstractmethod
    def get_by_id(self, book_id: int) -> Optional[Book]:
        """Return the book with ``book_id`` or ``None``."""

    @abstractmethod
    def create(self, payload: CreateBook) -> Book:
        """
        Insert a new book.

        Any id carried by the payload is ignored; the store assigns one.
        """

    @abstractmethod
    def update(self, payload: UpdateBook) -> None:
        """
        Replace all fields of the book ``payload.id``.

        Raises:
            ConcurrencyConflict: no row was updated
        """

    @abstractmethod
    def delete(self, book: Book) -> None:
        """Remove a book previously fetched with ``get_by_id``."""

    @abstractmethod
    def exists(self, book_id: int) -> bool:
        """Whether a book with ``book_id`` is currently stored."""

    @abstractmethod
    def page(self, page: int, page_size: int) -> list[Book]:
        """
        Return one page of books in store order.

        Args:
            page: 1-based page number
            page_size: maximum number of books on the page

        Returns:
            At most ``page_size`` books, skipping ``(page - 1) * page_size``
        """

    @abstractmethod
    def by_author(self, author: str) -> list[Book]:
        """Books whose author equals ``author`` exactly (case-sensitive)."""

    @abstractmethod
    def by_category(self, category: str) -> list[Book]:
        """Books whose category equals ``category`` exactly (case-sensitive)."""


class SqlAlchemyBookRepository(BookRepository):
    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _store_access(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreAccessError(operation, type(exc).__name__) from exc

    def list_all(self) -> list[Book]:
        with self._store_access("list_all"):
            records = self.session.execute(select(BookRecord).order_by(BookRecord.id)).scalars().all()
        return [self._to_schema(record) for record in records]

    def get_by_id(self, book_id: int) -> Optional[Book]:
        if not fits_row_id(book_id):
            return None
        with self._store_access("get_by_id"):
            record = self.session.get(BookRecord, book_id)
        if record is None:
            return None
        return self._to_schema(record)

    def create(self, payload: CreateBook) -> Book:
        with self._store_access("create"):
            record = BookRecord(**payload.model_dump(exclude={"id"}))
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        return self._to_schema(record)

    def update(self, payload: UpdateBook) -> None:
        if not fits_row_id(payload.id):
            raise ConcurrencyConflict(payload.id)
        with self._store_access("update"):
            stmt = (
                update(BookRecord)
                .where(BookRecord.id == payload.id)
                .values(**payload.model_dump(exclude={"id"}))
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            if result.rowcount == 0:
                self.session.rollback()
                raise ConcurrencyConflict(payload.id)
            self.session.commit()
        # Drop any cached copy so later reads see the new row.
        self.session.expire_all()

    def delete(self, book: Book) -> None:
        with self._store_access("delete"):
            self.session.execute(
                delete(BookRecord).where(BookRecord.id == book.id).execution_options(synchronize_session=False)
            )
            self.session.commit()
        self.session.expire_all()

    def exists(self, book_id: int) -> bool:
        if not fits_row_id(book_id):
            return False
        with self._store_access("exists"):
            found = self.session.execute(select(BookRecord.id).where(BookRecord.id == book_id)).first()
        return found is not None

    def page(self, page: int, page_size: int) -> list[Book]:
        offset = page_offset(page, page_size)
        if not fits_row_id(offset):
            return []
        with self._store_access("page"):
            records = (
                self.session.execute(select(BookRecord).order_by(BookRecord.id).offset(offset).limit(page_size))
                .scalars()
                .all()
            )
        return [self._to_schema(record) for record in records]

    def by_author(self, author: str) -> list[Book]:
        with self._store_access("by_author"):
            records = (
                self.session.execute(select(BookRecord).where(BookRecord.author == author).order_by(BookRecord.id))
                .scalars()
                .all()
            )
        return [self._to_schema(record) for record in records]

    def by_category(self, category: str) -> list[Book]:
        with self._store_access("by_category"):
            records = (
                self.session.execute(
                    select(BookRecord).where(BookRecord.category == category).order_by(BookRecord.id)
                )
                .scalars()
                .all()
            )
        return [self._to_schema(record) for record in records]

    @staticmethod
    def _to_schema(record: BookRecord) -> Book:
        return Book.model_validate(record, from_attributes=True)


class InMemoryBookRepository(BookRepository):
    def __init__(self):
        self._books: dict[int, Book] = {}
        # Ids only move forward so a deleted id is never handed out again.
        self._ids = itertools.count(1)

    def list_all(self) -> list[Book]:
        return [self._books[book_id].model_copy() for book_id in sorted(self._books)]

    def get_by_id(self, book_id: int) -> Optional[Book]:
        book = self._books.get(book_id)
        return book.model_copy() if book is not None else None

    def create(self, payload: CreateBook) -> Book:
        book = Book(id=next(self._ids), **payload.model_dump(exclude={"id"}))
        self._books[book.id] = book
        return book.model_copy()

    def update(self, payload: UpdateBook) -> None:
        if payload.id not in self._books:
            raise ConcurrencyConflict(payload.id)
        self._books[payload.id] = Book(**payload.model_dump())

    def delete(self, book: Book) -> None:
        self._books.pop(book.id, None)

    def exists(self, book_id: int) -> bool:
        return book_id in self._books

    def page(self, page: int, page_size: int) -> list[Book]:
        offset = page_offset(page, page_size)
        return self.list_all()[offset : offset + page_size]

    def by_author(self, author: str) -> list[Book]:
        return [book for book in self.list_all() if book.author == author]

    def by_category(self, category: str) -> list[Book]:
        return [book for book in self.list_all() if book.category == category]
