"""
Post loading and lookup.

Posts live in a directory tree of Markdown files, either as single files
(`hello-world.md`) or as page bundles (`hello-world/index.md`). The bundle
form takes its slug from the directory name.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator

from .frontmatter import parse_post
from .posts import FrontMatterError, Post

logger = logging.getLogger(__name__)

_BUNDLE_INDEX_NAMES = {"index.md", "_index.md"}


def _default_slug(path: Path) -> str:
    if path.name in _BUNDLE_INDEX_NAMES and path.parent.name:
        return path.parent.name
    return path.stem


def load_post(path: Path | str) -> Post:
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    return parse_post(text, slug=_default_slug(path), source=path)


def iter_post_paths(root: Path | str) -> Iterator[Path]:
    """Yield every Markdown file under `root`, in a stable order."""
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Posts directory not found: {root}")
    for path in sorted(root.rglob("*.md")):
        if path.is_file():
            yield path


def _sort_key(post: Post) -> tuple[datetime, str]:
    # Aware and naive datetimes can't be compared; treat naive dates as UTC.
    d = post.date
    if d.tzinfo is not None:
        d = d.astimezone(timezone.utc).replace(tzinfo=None)
    return d, post.slug


def load_posts(root: Path | str, *, include_drafts: bool = False, strict: bool = False) -> list[Post]:
    """
    Load every post under `root`, newest first.

    Invalid documents are logged and skipped unless `strict` is set. Two posts
    resolving to the same slug is always an error.
    """

    posts: dict[str, Post] = {}
    for path in iter_post_paths(root):
        try:
            post = load_post(path)
        except (FrontMatterError, UnicodeDecodeError) as e:
            if strict:
                raise
            logger.warning("Skipping %s: %s", path, e)
            continue

        if post.draft and not include_drafts:
            logger.debug("Skipping draft %s", path)
            continue

        if post.slug in posts:
            raise FrontMatterError(
                f"duplicate slug '{post.slug}' (also used by {posts[post.slug].source})", path
            )
        posts[post.slug] = post

    logger.info("Loaded %d posts from %s", len(posts), root)
    return sorted(posts.values(), key=_sort_key, reverse=True)


def find_post(posts: Iterable[Post], slug: str) -> Post | None:
    for post in posts:
        if post.slug == slug:
            return post
    return None


def filter_by_tag(posts: Iterable[Post], tag: str) -> list[Post]:
    return [p for p in posts if p.has_tag(tag)]


def tag_counts(posts: Iterable[Post]) -> dict[str, int]:
    """Count posts per tag, most used first (ties broken by name)."""
    counts = Counter(tag for post in posts for tag in post.tags)
    return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))
