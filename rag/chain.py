"""
Question answering over the posts.

Retrieval pulls the most similar chunks from the FAISS index; the chunks are
stuffed into a prompt and sent to the chat model through LangChain runnables:

  ANSWER_PROMPT | llm | AnswerOutputParser()    (ask: structured answer + cited posts)
  STREAM_PROMPT | llm | StrOutputParser()       (stream: plain Markdown tokens)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

from langchain_core.documents import Document
from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable
from langchain_core.vectorstores import VectorStore

from rag.parser import Answer, AnswerOutputParser

logger = logging.getLogger(__name__)

NO_CONTEXT_ANSWER = "I couldn't find anything about that in the posts."

SYSTEM_PROMPT = """You are an assistant answering questions about a personal blog.

Use ONLY the information in the context below. Each snippet starts with the
post's slug in square brackets.
If the answer is not clearly contained in the context, say you don't know."""

ANSWER_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", SYSTEM_PROMPT),
        ("human", "Context:\n{context}\n\nQuestion:\n{question}\n\n{format_instructions}"),
    ]
)

STREAM_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", SYSTEM_PROMPT),
        ("human", "Context:\n{context}\n\nQuestion:\n{question}\n\nAnswer in Markdown."),
    ]
)


def format_docs(docs: Sequence[Document]) -> str:
    parts = []
    for doc in docs:
        slug = doc.metadata.get("slug", "unknown")
        title = doc.metadata.get("title", "")
        parts.append(f"[{slug}] {title}\n{doc.page_content}".strip())
    return "\n\n".join(parts)


def posts_for(docs: Sequence[Document]) -> list[dict[str, Any]]:
    """Unique posts behind the retrieved chunks, in rank order."""
    seen: dict[str, dict[str, Any]] = {}
    for doc in docs:
        slug = doc.metadata.get("slug")
        if slug and slug not in seen:
            seen[slug] = {"slug": slug, "title": doc.metadata.get("title"), "date": doc.metadata.get("date")}
    return list(seen.values())


def build_answer_chain(llm: BaseChatModel) -> Runnable:
    parser = AnswerOutputParser()
    prompt = ANSWER_PROMPT.partial(format_instructions=parser.get_format_instructions())
    return prompt | llm | parser


def build_stream_chain(llm: BaseChatModel) -> Runnable:
    return STREAM_PROMPT | llm | StrOutputParser()


def _clean_question(question: str | None) -> str:
    question = (question or "").strip()
    if not question:
        raise ValueError("Question must not be empty.")
    return question


@dataclass(frozen=True)
class AskResult:
    question: str
    answer: str
    sources: tuple[str, ...]
    documents: list[Document] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "sources": list(self.sources),
            "posts": posts_for(self.documents),
        }


class RagService:
    """Retrieval + generation over a single vectorstore."""

    def __init__(self, vectorstore: VectorStore, llm: BaseChatModel, k: int = 4):
        if k <= 0:
            raise ValueError("k must be positive.")
        self.vectorstore = vectorstore
        self.llm = llm
        self.k = k
        self._answer_chain = build_answer_chain(llm)
        self._stream_chain = build_stream_chain(llm)

    def retrieve(self, question: str) -> list[Document]:
        if not question or not question.strip():
            return []
        return self.vectorstore.similarity_search(question.strip(), k=self.k)

    @staticmethod
    def sources_for(docs: Sequence[Document]) -> tuple[str, ...]:
        return tuple(p["slug"] for p in posts_for(docs))

    def ask(self, question: str) -> AskResult:
        question = _clean_question(question)
        docs = self.retrieve(question)
        if not docs:
            return AskResult(question, NO_CONTEXT_ANSWER, (), [])

        answer: Answer = self._answer_chain.invoke({"context": format_docs(docs), "question": question})
        if not answer.parsed:
            logger.warning("Model reply did not follow the answer format; using raw text")

        retrieved = self.sources_for(docs)
        # Only trust citations that point at posts we actually retrieved.
        cited = tuple(s for s in answer.sources if s in retrieved)
        return AskResult(question, answer.text, cited or retrieved, docs)

    def stream(self, question: str) -> Iterator[dict[str, Any]]:
        """
        Stream an answer as events.

        The first event is `{"type": "meta", ...}` with the retrieved posts,
        followed by `{"type": "token", "content": ...}` events.
        """
        question = _clean_question(question)
        docs = self.retrieve(question)
        return self._events(question, docs)

    def _events(self, question: str, docs: list[Document]) -> Iterator[dict[str, Any]]:
        yield {"type": "meta", "sources": list(self.sources_for(docs)), "posts": posts_for(docs)}

        if not docs:
            yield {"type": "token", "content": NO_CONTEXT_ANSWER}
            return

        for chunk in self._stream_chain.stream({"context": format_docs(docs), "question": question}):
            if chunk:
                yield {"type": "token", "content": chunk}
