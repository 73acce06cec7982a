import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from books_api.errors import ConcurrencyConflict, StoreAccessError
from books_api.models import CreateBook, UpdateBook
from books_api.repository import SqlAlchemyBookRepository


@pytest.fixture(params=["sql", "memory"])
def repo(request):
    return request.getfixturevalue(f"{request.param}_repository")


def seed(repo, *rows):
    return [
        repo.create(CreateBook(title=title, author=author, language="English", category=category))
        for title, author, category in rows
    ]


def test_create_assigns_unique_ids_that_round_trip(repo):
    created = seed(repo, ("A", "X", "Fiction"), ("B", "Y", "Fiction"), ("C", "X", "Poetry"))
    assert len({book.id for book in created}) == 3
    for book in created:
        assert repo.get_by_id(book.id) == book


def test_get_missing_returns_none(repo):
    assert repo.get_by_id(404) is None
    assert repo.exists(404) is False


def test_list_all_is_in_insertion_order(repo):
    created = seed(repo, ("A", "X", "Fiction"), ("B", "Y", "Fiction"))
    assert repo.list_all() == created


def test_update_replaces_all_fields(repo):
    (book,) = seed(repo, ("A", "X", "Fiction"))
    repo.update(UpdateBook(id=book.id, title="A2", author="Z", language="German", category="Drama"))
    stored = repo.get_by_id(book.id)
    assert stored.model_dump() == {
        "id": book.id,
        "title": "A2",
        "author": "Z",
        "language": "German",
        "category": "Drama",
    }


def test_update_missing_row_is_a_conflict(repo):
    with pytest.raises(ConcurrencyConflict) as exc:
        repo.update(UpdateBook(id=77, title="A", author="X", language="English", category="Fiction"))
    assert exc.value.book_id == 77
    assert repo.list_all() == []


def test_delete_then_get_is_absent(repo):
    first, second = seed(repo, ("A", "X", "Fiction"), ("B", "Y", "Fiction"))
    repo.delete(second)
    assert repo.get_by_id(second.id) is None
    assert repo.exists(first.id) is True
    assert repo.exists(second.id) is False


def test_ids_are_not_reused_after_delete(repo):
    first, second = seed(repo, ("A", "X", "Fiction"), ("B", "Y", "Fiction"))
    repo.delete(second)
    (third,) = seed(repo, ("C", "Z", "Fiction"))
    assert third.id > second.id


def test_page_slices_in_store_order(repo):
    created = seed(repo, *[(f"T{n}", "X", "Fiction") for n in range(7)])
    assert repo.page(1, 3) == created[:3]
    assert repo.page(3, 3) == created[6:]
    assert repo.page(4, 3) == []


@pytest.mark.parametrize("page,page_size", [(0, 5), (1, 0), (-1, 5)])
def test_page_rejects_invalid_bounds(repo, page, page_size):
    with pytest.raises(ValueError):
        repo.page(page, page_size)


def test_filters_are_exact_and_case_sensitive(repo):
    seed(repo, ("A", "Author 1", "Fiction"), ("B", "author 1", "fiction"), ("C", "Author 1", "Poetry"))
    assert [book.title for book in repo.by_author("Author 1")] == ["A", "C"]
    assert [book.title for book in repo.by_category("fiction")] == ["B"]
    assert repo.by_author("Nobody") == []


def test_sql_errors_become_store_access_errors():
    # A fresh database with no tables makes every query fail.
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    repo = SqlAlchemyBookRepository(session)
    try:
        with pytest.raises(StoreAccessError) as exc:
            repo.list_all()
        assert exc.value.operation == "list_all"
        assert exc.value.__cause__ is not None

        with pytest.raises(StoreAccessError) as exc:
            repo.create(CreateBook(title="A", author="X", language="English", category="Fiction"))
        assert exc.value.operation == "create"
    finally:
        session.close()
        engine.dispose()


def test_out_of_range_ids_are_absent(repo):
    seed(repo, ("A", "X", "Fiction"))
    assert repo.get_by_id(2**64) is None
    assert repo.exists(2**64) is False
    assert repo.page(10**18, 100) == []
    with pytest.raises(ConcurrencyConflict):
        repo.update(UpdateBook(id=2**64, title="A", author="X", language="English", category="Fiction"))
