import logging
import uuid
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .auth import AuthVerifier, TokenIssuer, check_credentials
from .config import get_settings
from .db import get_engine, get_session, init_db
from .errors import ConcurrencyConflict, StoreAccessError
from .models import Book, CreateBook, LoginRequest, Token, UpdateBook
from .otel import configure_logging, configure_otel
from .repository import BookRepository, SqlAlchemyBookRepository

settings = get_settings()
configure_logging(settings.log_level)

logger = logging.getLogger("books_api.app")
request_logger = logging.getLogger("books_api.requests")


def get_book_repository(session=Depends(get_session)) -> BookRepository:
    return SqlAlchemyBookRepository(session)


auth_verifier = AuthVerifier(
    secret=settings.jwt_secret_key,
    issuer=settings.jwt_issuer,
    audience=settings.jwt_audience,
    allowed_algs={settings.jwt_algorithm},
    clock_skew_seconds=settings.clock_skew_seconds,
)
token_issuer = TokenIssuer(
    secret=settings.jwt_secret_key,
    issuer=settings.jwt_issuer,
    audience=settings.jwt_audience,
    algorithm=settings.jwt_algorithm,
    ttl_seconds=settings.token_ttl_seconds,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="A minimal Books API with bearer-token access and SQL persistence.",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)
if settings.otel_enabled:
    configure_otel(app, engine=get_engine())

health_router = APIRouter(tags=["health"])
auth_router = APIRouter(prefix="/auth", tags=["auth"])
books_router = APIRouter(prefix="/books", tags=["books"], dependencies=[Depends(auth_verifier)])


@health_router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@auth_router.post("/login", response_model=Token)
def login(payload: LoginRequest) -> Token:
    if not check_credentials(
        payload.username,
        payload.password,
        expected_username=settings.demo_username,
        expected_password=settings.demo_password,
    ):
        logger.warning("login.rejected", extra={"username": payload.username})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Token(token=token_issuer.issue(payload.username))


@books_router.get("", response_model=List[Book])
def list_books(
    author: Optional[str] = None,
    category: Optional[str] = None,
    repository: BookRepository = Depends(get_book_repository),
) -> List[Book]:
    if author is not None:
        books = repository.by_author(author)
        if category is not None:
            books = [book for book in books if book.category == category]
        return books
    if category is not None:
        return repository.by_category(category)
    return repository.list_all()


# The fixed paths below must be registered before /{book_id}.
@books_router.get("/page", response_model=List[Book])
def list_books_page(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=5, alias="pageSize", ge=1, le=settings.max_page_size),
    repository: BookRepository = Depends(get_book_repository),
) -> List[Book]:
    return repository.page(page, page_size)


@books_router.get("/author", response_model=List[Book])
def list_books_by_author(
    author: Optional[str] = None,
    repository: BookRepository = Depends(get_book_repository),
) -> List[Book]:
    if author is None:
        return []
    return repository.by_author(author)


@books_router.get("/category", response_model=List[Book])
def list_books_by_category(
    category: Optional[str] = None,
    repository: BookRepository = Depends(get_book_repository),
) -> List[Book]:
    if category is None:
        return []
    return repository.by_category(category)


@books_router.get("/{book_id}", response_model=Book)
def get_book(book_id: int, repository: BookRepository = Depends(get_book_repository)) -> Book:
    book = repository.get_by_id(book_id)
    if book is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return book


@books_router.post("", response_model=Book, status_code=status.HTTP_201_CREATED)
def create_book(
    payload: CreateBook,
    request: Request,
    response: Response,
    repository: BookRepository = Depends(get_book_repository),
) -> Book:
    book = repository.create(payload)
    response.headers["Location"] = str(request.url_for("get_book", book_id=book.id))
    return book


@books_router.put("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_book(
    book_id: int,
    payload: UpdateBook,
    repository: BookRepository = Depends(get_book_repository),
) -> None:
    if payload.id != book_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Book id does not match path")
    try:
        repository.update(payload)
    except ConcurrencyConflict as exc:
        if not repository.exists(book_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found") from exc
        logger.error("book.update.conflict", extra={"book_id": book_id}, exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error"
        ) from exc


@books_router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(book_id: int, repository: BookRepository = Depends(get_book_repository)) -> None:
    book = repository.get_by_id(book_id)
    if book is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    repository.delete(book)


app.include_router(health_router)
app.include_router(auth_router)
app.include_router(books_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.setdefault(".".join(loc) or "body", []).append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": errors},
    )


@app.exception_handler(StoreAccessError)
async def store_access_error_handler(request: Request, exc: StoreAccessError) -> JSONResponse:
    logger.error(
        "store.error",
        extra={"operation": exc.operation, "path": request.url.path, "method": request.method},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.middleware("http")
async def request_logging_middleware(request, call_next):
    request_logger.info("request.start", extra={"path": request.url.path, "method": request.method})
    response = await call_next(request)
    request_logger.info(
        "request.end",
        extra={"path": request.url.path, "method": request.method, "status": response.status_code},
    )
    return response


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response
