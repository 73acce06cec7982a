from pydantic import BaseModel, Field


class Book(BaseModel):
    id: int
    title: str = Field(min_length=1, max_length=100)
    author: str = Field(min_length=1, max_length=100)
    language: str = Field(min_length=1, max_length=50)
    category: str = Field(min_length=1, max_length=50)


class CreateBook(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    author: str = Field(min_length=1, max_length=100)
    language: str = Field(min_length=1, max_length=50)
    category: str = Field(min_length=1, max_length=50)


class UpdateBook(CreateBook):
    id: int


class LoginRequest(BaseModel):
    username: str
    password: str


class Token(BaseModel):
    token: str
