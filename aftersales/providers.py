"""
LLM Providers
=============
Builds the LangChain chat model that drives tool selection.

Auto-detection order: Groq → Azure OpenAI → OpenAI. Set LLM_PROVIDER to force
one. Provider packages are imported lazily so only the selected one has to be
installed.
"""
import logging
import os

logger = logging.getLogger(__name__)

PROVIDERS = ("groq", "azure", "openai")


def detect_provider(forced: str = "") -> str:
    forced = (forced or os.getenv("LLM_PROVIDER", "")).lower()
    if forced in PROVIDERS:
        return forced
    if forced:
        logger.warning("[LLM] Unknown LLM_PROVIDER %r, auto-detecting", forced)
    if os.getenv("GROQ_API_KEY"):
        return "groq"
    if os.getenv("AZURE_OPENAI_API_KEY"):
        return "azure"
    return "openai"


def _groq():
    from langchain_groq import ChatGroq
    return ChatGroq(
        model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),
        api_key=os.getenv("GROQ_API_KEY"),
        temperature=0,
    )


def _azure():
    from langchain_openai import AzureChatOpenAI
    # No temperature: o-series deployments reject it.
    return AzureChatOpenAI(
        azure_endpoint=os.getenv("AZURE_OPENAI_ENDPOINT"),
        azure_deployment=os.getenv("AZURE_OPENAI_DEPLOYMENT", "gpt-4o"),
        api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-12-01-preview"),
        api_key=os.getenv("AZURE_OPENAI_API_KEY"),
    )


def _openai():
    from langchain_openai import ChatOpenAI
    return ChatOpenAI(
        model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        api_key=os.getenv("OPENAI_API_KEY"),
        temperature=0,
    )


_FACTORIES = {"groq": _groq, "azure": _azure, "openai": _openai}


def build_llm(provider: str = ""):
    """Return a chat model for `provider` (or the auto-detected one)."""
    name = detect_provider(provider)
    logger.info("[LLM] Provider: %s", name)
    return _FACTORIES[name]()
