from __future__ import annotations
import logging
from typing import Optional
from frigo.backend import SupabaseBackend
from frigo.errors import BackendError, PersistenceError
from frigo.models import Book, BookMetadata, Chef

logger = logging.getLogger(__name__)


def _first_book(rows: list[dict]) -> Optional[Book]:
    return Book.model_validate(rows[0]) if rows else None


def find_book(backend: SupabaseBackend, metadata: BookMetadata) -> Optional[Book]:
    """Look a book up by ISBN-13, ISBN-10, title and author, then title alone."""
    if metadata.isbn13:
        book = _first_book(backend.select("books", eq={"isbn13": metadata.isbn13}, limit=1))
        if book:
            return book
    if metadata.isbn:
        book = _first_book(backend.select("books", eq={"isbn": metadata.isbn}, limit=1))
        if book:
            return book
    if metadata.book_title and metadata.author:
        book = _first_book(backend.select(
            "books",
            ilike={"title": f"*{metadata.book_title}*", "author": f"*{metadata.author}*"},
            limit=1,
        ))
        if book:
            return book
    if metadata.book_title:
        book = _first_book(backend.select("books", ilike={"title": metadata.book_title}, limit=1))
        if book:
            return book
        book = _first_book(backend.select("books", ilike={"title": f"*{metadata.book_title}*"}, limit=1))
        if book:
            logger.info("Matched book by partial title only: %s", book.title)
            return book
    return None


def create_book(backend: SupabaseBackend, metadata: BookMetadata) -> Book:
    if not metadata.book_title:
        raise ValueError("A book title is required to create a book")
    rows = backend.insert("books", {
        "title": metadata.book_title,
        "author": metadata.author,
        "isbn": metadata.isbn,
        "isbn13": metadata.isbn13,
        "is_verified": False,
    })
    logger.info("Created book '%s'", metadata.book_title)
    return Book.model_validate(rows[0])


def get_or_create_book(backend: SupabaseBackend, metadata: BookMetadata) -> Book:
    return find_book(backend, metadata) or create_book(backend, metadata)


def user_owns_book(backend: SupabaseBackend, user_id: str, book_id: str) -> bool:
    return bool(backend.select("user_books", columns="id", eq={"user_id": user_id, "book_id": book_id}, limit=1))


def claim_ownership(backend: SupabaseBackend, user_id: str, book_id: str) -> None:
    backend.insert("user_books", {"user_id": user_id, "book_id": book_id, "ownership_claimed": False})


def get_or_create_chef(backend: SupabaseBackend, name: Optional[str]) -> Optional[Chef]:
    if not name or not name.strip():
        return None
    name = name.strip()
    try:
        rows = backend.select("chefs", ilike={"name": name}, limit=1)
        if rows:
            return Chef.model_validate(rows[0])
        chef = Chef.model_validate(backend.insert("chefs", {"name": name})[0])
    except BackendError as e:
        raise PersistenceError(f"Could not record chef '{name}': {e}") from e
    logger.info("Created chef '%s' (%s)", chef.name, chef.id)
    return chef
