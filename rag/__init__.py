"""
RAG-related modules.

This package contains logic for:
  - building a FAISS index from the blog posts (`rag.ingest`)
  - loading vectorstores into a local cache for retrieval
  - answering questions with a chat model and parsing its replies
"""
