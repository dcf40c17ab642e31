"""
Azure OpenAI chat model factory.

Credentials come from the environment; the deployment and temperature are
part of `Settings` (AZURE_OPENAI_DEPLOYMENT, AZURE_OPENAI_TEMPERATURE).

Environment variables:
  - AZURE_OPENAI_ENDPOINT
  - AZURE_OPENAI_API_KEY
  - AZURE_OPENAI_API_VERSION
"""

from __future__ import annotations

from langchain_openai import AzureChatOpenAI

from app_config import ConfigError, Settings, require_env


def get_chat_model(settings: Settings) -> AzureChatOpenAI:
    """
    Construct the chat model used to answer questions about the posts.

    Returns a LangChain `AzureChatOpenAI` instance that supports `.invoke()` and `.stream()`.
    """

    endpoint = require_env("AZURE_OPENAI_ENDPOINT")
    api_key = require_env("AZURE_OPENAI_API_KEY")
    api_version = require_env("AZURE_OPENAI_API_VERSION")
    if not settings.chat_deployment:
        raise ConfigError("Missing AZURE_OPENAI_DEPLOYMENT. Set it to the chat model deployment name.")

    return AzureChatOpenAI(
        azure_endpoint=endpoint,
        api_key=api_key,
        api_version=api_version,
        azure_deployment=settings.chat_deployment,
        temperature=settings.chat_temperature,
    )
