from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Author:
    id: str  # e.g. "a1"
    name: str
    country: str = ""
    born: int | None = None


@dataclass
class Book:
    id: str  # e.g. "b7"
    title: str
    author_id: str
    published_year: int
    genre: str = ""


@dataclass
class Review:
    id: str
    book_id: str
    rating: int  # 1..5
    body: str = ""
