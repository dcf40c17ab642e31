"""
LLM output parsing.

Models don't always follow the requested output format. `RegexOutputParser`
extracts named fields with a regular expression and, when a default key is
configured, falls back to returning the whole text under that key instead of
failing the request.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import BaseOutputParser
from pydantic import Field

# SOURCES is only recognised on the last line of the reply.
ANSWER_PATTERN = r"ANSWER:\s*(.*?)\s*(?:^SOURCES:[ \t]*([^\n]*?)\s*)?\Z"
_IGNORED_SOURCES = {"", "none", "n/a", "na", "-"}


class RegexOutputParser(BaseOutputParser[dict[str, str]]):
    """Map regex groups to `output_keys`, with an optional fallback key."""

    regex: str
    output_keys: list[str]
    default_output_key: str | None = None
    regex_flags: int = 0

    @property
    def _type(self) -> str:
        return "regex_output_parser"

    def match(self, text: str) -> dict[str, str] | None:
        """Return the extracted fields, or None when the pattern is absent."""
        found = re.search(self.regex, text, self.regex_flags)
        if not found:
            return None
        groups = found.groups()
        if len(groups) != len(self.output_keys):
            raise ValueError(
                f"Pattern has {len(groups)} groups but {len(self.output_keys)} output keys were given."
            )
        return {key: (value or "").strip() for key, value in zip(self.output_keys, groups)}

    def parse(self, text: str) -> dict[str, str]:
        fields = self.match(text)
        if fields is not None:
            return fields
        if self.default_output_key is None:
            raise OutputParserException(f"Could not parse output: {text}", llm_output=text)
        return {key: text.strip() if key == self.default_output_key else "" for key in self.output_keys}


@dataclass(frozen=True)
class Answer:
    text: str
    sources: tuple[str, ...] = ()
    parsed: bool = True


def split_sources(raw: str) -> tuple[str, ...]:
    sources: list[str] = []
    for item in re.split(r"[,\n]", raw):
        slug = item.strip().lstrip("-*").strip().strip("[]`'\"").strip()
        if slug.lower() in _IGNORED_SOURCES or slug in sources:
            continue
        sources.append(slug)
    return tuple(sources)


def _answer_fields() -> RegexOutputParser:
    return RegexOutputParser(
        regex=ANSWER_PATTERN,
        output_keys=["answer", "sources"],
        default_output_key="answer",
        regex_flags=int(re.DOTALL | re.IGNORECASE | re.MULTILINE),
    )


class AnswerOutputParser(BaseOutputParser[Answer]):
    """
    Parse `ANSWER: ... SOURCES: slug-a, slug-b` replies.

    If the model ignores the format the raw reply becomes the answer, with no
    sources and `parsed=False`.
    """

    regex_parser: RegexOutputParser = Field(default_factory=_answer_fields)

    @property
    def _type(self) -> str:
        return "answer_output_parser"

    def get_format_instructions(self) -> str:
        return (
            "Reply in exactly this format:\n"
            "ANSWER: <your answer in Markdown>\n"
            "SOURCES: <comma-separated slugs of the posts you used, or NONE>"
        )

    def parse(self, text: str) -> Answer:
        matched = self.regex_parser.match(text)
        if matched is None:
            return Answer(text=self.regex_parser.parse(text)["answer"], sources=(), parsed=False)
        if not matched["answer"]:
            return Answer(text=text.strip(), sources=(), parsed=False)
        return Answer(text=matched["answer"], sources=split_sources(matched["sources"]), parsed=True)
