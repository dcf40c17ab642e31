"""
Blog content.

This package contains logic for:
  - splitting a Markdown document into its front matter and body
  - turning front matter into validated `Post` objects
  - loading a directory tree of posts and querying it by slug or tag
"""

from .frontmatter import parse_front_matter, parse_post, split_front_matter
from .loader import filter_by_tag, find_post, iter_post_paths, load_post, load_posts, tag_counts
from .posts import FrontMatterError, Post

__all__ = [
    "FrontMatterError",
    "Post",
    "filter_by_tag",
    "find_post",
    "iter_post_paths",
    "load_post",
    "load_posts",
    "parse_front_matter",
    "parse_post",
    "split_front_matter",
    "tag_counts",
]
