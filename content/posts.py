"""
Post model.

A post is what the static site generator renders: front matter (title, date,
optional description, tags) plus a Markdown body. Posts are immutable once
loaded; editing happens in the source files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


class FrontMatterError(ValueError):
    """Raised when a document's front matter is missing or invalid."""

    def __init__(self, message: str, source: Path | str | None = None):
        self.source = source
        if source is not None:
            message = f"{source}: {message}"
        super().__init__(message)


@dataclass(frozen=True)
class Post:
    slug: str
    title: str
    date: datetime
    body: str = ""
    description: str | None = None
    tags: tuple[str, ...] = ()
    draft: bool = False
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    source: Path | None = field(default=None, compare=False, repr=False)

    def has_tag(self, tag: str) -> bool:
        wanted = tag.strip().lower()
        return any(t.lower() == wanted for t in self.tags)

    def summary(self) -> dict[str, Any]:
        """JSON-ready view of the post without its body."""
        return {
            "slug": self.slug,
            "title": self.title,
            "date": self.date.isoformat(),
            "description": self.description,
            "tags": list(self.tags),
            "draft": self.draft,
        }
