import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from books_api import entities  # noqa: F401
from books_api.app import app, get_book_repository, token_issuer
from books_api.db import Base
from books_api.repository import InMemoryBookRepository, SqlAlchemyBookRepository


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    # Recreate the table per test so autoincrement starts at 1 again.
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def sql_repository(db_session):
    return SqlAlchemyBookRepository(db_session)


@pytest.fixture()
def memory_repository():
    return InMemoryBookRepository()


@pytest.fixture()
def repository(sql_repository):
    return sql_repository


@pytest.fixture()
def overrides(repository):
    app.dependency_overrides[get_book_repository] = lambda: repository
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer {token_issuer.issue('test')}"}


@pytest.fixture()
async def client(auth_headers):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver", headers=auth_headers) as client:
        yield client


@pytest.fixture()
async def anonymous_client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

