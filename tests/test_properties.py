from hypothesis import given, strategies as st

from books_api.models import CreateBook
from books_api.repository import InMemoryBookRepository

authors = st.sampled_from(["Author 1", "Author 2", "author 1", "Orwell"])
books = st.lists(
    st.builds(
        CreateBook,
        title=st.text(min_size=1, max_size=100),
        author=authors,
        language=st.just("English"),
        category=st.sampled_from(["Fiction", "Non-Fiction"]),
    ),
    max_size=25,
)


def seeded(payloads) -> InMemoryBookRepository:
    repo = InMemoryBookRepository()
    for payload in payloads:
        repo.create(payload)
    return repo


@given(books, st.integers(min_value=1, max_value=10), st.integers(min_value=1, max_value=10))
def test_page_size_matches_remaining_rows(payloads, page, page_size):
    repo = seeded(payloads)
    expected = min(page_size, max(0, len(payloads) - (page - 1) * page_size))
    assert len(repo.page(page, page_size)) == expected


@given(books, st.integers(min_value=1, max_value=10))
def test_pages_concatenate_to_full_listing(payloads, page_size):
    repo = seeded(payloads)
    pages = []
    page = 1
    while chunk := repo.page(page, page_size):
        pages.extend(chunk)
        page += 1
    assert pages == repo.list_all()


@given(books, authors)
def test_by_author_is_exact_subset_of_listing(payloads, author):
    repo = seeded(payloads)
    assert repo.by_author(author) == [book for book in repo.list_all() if book.author == author]
