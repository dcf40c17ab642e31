"""
Front matter parsing.

Posts start with a metadata block fenced the way static site generators
expect it:

  ---            YAML (PyYAML `safe_load`)
  title: ...
  ---

  +++            TOML (stdlib `tomllib`)
  title = "..."
  +++

Everything after the closing fence is the Markdown body.
"""

from __future__ import annotations

import re
import tomllib
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import yaml

from .posts import FrontMatterError, Post

_FENCES = {"---": "yaml", "+++": "toml"}
_OPENING = re.compile(r"\A(---|\+\+\+)[ \t]*\n")
_KNOWN_KEYS = {"title", "date", "description", "tags", "draft", "slug"}


def split_front_matter(text: str, source: Path | str | None = None) -> tuple[str, str, str]:
    """
    Split a document into `(format, raw_front_matter, body)`.

    `format` is "yaml" or "toml". A leading BOM and CRLF line endings are
    accepted.
    """

    text = text.lstrip("\ufeff").replace("\r\n", "\n")
    opening = _OPENING.match(text)
    if not opening:
        raise FrontMatterError("document does not start with a front matter fence ('---' or '+++')", source)

    fence = opening.group(1)
    closing = re.compile(rf"^{re.escape(fence)}[ \t]*$", re.MULTILINE).search(text, opening.end())
    if not closing:
        raise FrontMatterError(f"front matter opened with '{fence}' is never closed", source)

    raw = text[opening.end() : closing.start()]
    body = text[closing.end() :]
    if body.startswith("\n"):
        body = body[1:]
    return _FENCES[fence], raw, body


def parse_front_matter(text: str, source: Path | str | None = None) -> tuple[dict[str, Any], str]:
    """Decode the front matter block into a mapping; returns `(metadata, body)`."""

    fmt, raw, body = split_front_matter(text, source)
    try:
        if fmt == "yaml":
            meta = yaml.safe_load(raw)
        else:
            meta = tomllib.loads(raw)
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise FrontMatterError(f"invalid {fmt.upper()} front matter: {e}", source) from e

    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise FrontMatterError(f"front matter must be a mapping, got {type(meta).__name__}", source)
    return meta, body


def _coerce_date(value: Any, source: Path | str | None) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            raise FrontMatterError(f"unrecognized date {value!r}", source) from None
    if value is None:
        raise FrontMatterError("missing required field 'date'", source)
    raise FrontMatterError(f"unsupported date value {value!r}", source)


def _coerce_tags(value: Any, source: Path | str | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise FrontMatterError(f"tags must be a list or a comma-separated string, got {value!r}", source)

    tags: list[str] = []
    seen: set[str] = set()
    for item in items:
        if item is None:
            continue
        if isinstance(item, (dict, list)):
            raise FrontMatterError(f"invalid tag {item!r}", source)
        tag = str(item).strip()
        # first spelling wins; has_tag() compares case-insensitively
        if tag and tag.lower() not in seen:
            seen.add(tag.lower())
            tags.append(tag)
    return tuple(tags)


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_post(text: str, *, slug: str | None = None, source: Path | None = None) -> Post:
    """
    Parse a full document into a `Post`.

    A `slug` key in the front matter wins over the `slug` argument (which is
    normally derived from the file name).
    """

    meta, body = parse_front_matter(text, source)

    title = _optional_text(meta.get("title"))
    if not title:
        raise FrontMatterError("missing required field 'title'", source)

    draft = meta.get("draft", False)
    if not isinstance(draft, bool):
        raise FrontMatterError(f"draft must be true or false, got {draft!r}", source)

    final_slug = _optional_text(meta.get("slug")) or (slug.strip() if slug else None)
    if not final_slug:
        raise FrontMatterError("post has no slug", source)

    return Post(
        slug=final_slug,
        title=title,
        date=_coerce_date(meta.get("date"), source),
        body=body,
        description=_optional_text(meta.get("description")),
        tags=_coerce_tags(meta.get("tags"), source),
        draft=draft,
        extra={k: v for k, v in meta.items() if k not in _KNOWN_KEYS},
        source=source,
    )
