from __future__ import annotations


class Book:
    """A catalog entry together with its copy counters."""

    def __init__(self, id: str, title: str, author: str, isbn: str, subject: str, rack_number: str,
                 total_copies: int = 1, available_copies: int | None = None,
                 published_year: int | None = None, description: str | None = None,
                 cover_image_url: str | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.subject = subject.strip()
        self.rack_number = rack_number.strip()
        self.total_copies = total_copies
        self.available_copies = total_copies if available_copies is None else available_copies
        self.published_year = published_year
        self.description = description
        self.cover_image_url = cover_image_url
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "subject": self.subject,
            "rack_number": self.rack_number,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "is_available": self.is_available,
            "published_year": self.published_year,
            "description": self.description,
            "cover_image_url": self.cover_image_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            subject=data["subject"],
            rack_number=data["rack_number"],
            total_copies=data["total_copies"],
            available_copies=data["available_copies"],
            published_year=data.get("published_year"),
            description=data.get("description"),
            cover_image_url=data.get("cover_image_url"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
