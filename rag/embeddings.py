"""
Embedding model factory.

The same embedding function must be used to build an index and to query it,
so both the ingest command and the web app go through `get_embeddings`.

Providers (EMBEDDINGS_PROVIDER):
  - huggingface: local SentenceTransformers model (EMBEDDINGS_MODEL)
  - azure: Azure OpenAI deployment (AZURE_OPENAI_EMBEDDING_DEPLOYMENT plus the
    usual AZURE_OPENAI_* endpoint settings)
"""

from __future__ import annotations

import logging
import os

from langchain_core.embeddings import Embeddings

from app_config import ConfigError, Settings, require_env

logger = logging.getLogger(__name__)


def _huggingface(model_name: str) -> Embeddings:
    from langchain_community.embeddings import HuggingFaceEmbeddings

    # Prefer persistent cache on App Service Linux (/home persists across restarts).
    if os.path.isdir("/home/site/wwwroot"):
        os.environ.setdefault("HF_HOME", "/home/site/wwwroot/.cache/huggingface")
        os.environ.setdefault("SENTENCE_TRANSFORMERS_HOME", "/home/site/wwwroot/.cache/sentence_transformers")

    return HuggingFaceEmbeddings(model_name=model_name, model_kwargs={"device": "cpu"})


def _azure() -> Embeddings:
    from langchain_openai import AzureOpenAIEmbeddings

    return AzureOpenAIEmbeddings(
        azure_deployment=require_env("AZURE_OPENAI_EMBEDDING_DEPLOYMENT"),
        api_key=require_env("AZURE_OPENAI_API_KEY"),
        azure_endpoint=require_env("AZURE_OPENAI_ENDPOINT"),
        api_version=require_env("AZURE_OPENAI_API_VERSION"),
    )


def get_embeddings(settings: Settings) -> Embeddings:
    provider = settings.embeddings_provider
    logger.info("Using %s embeddings", provider)
    if provider == "huggingface":
        return _huggingface(settings.embeddings_model)
    if provider == "azure":
        return _azure()
    raise ConfigError(f"Unknown EMBEDDINGS_PROVIDER {provider!r}; expected 'huggingface' or 'azure'.")
