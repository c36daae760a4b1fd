# Environment and provider key helpers for the CLI.

import os
from typing import Dict, List, Tuple

from dotenv import load_dotenv, find_dotenv

# Model-name prefix -> (provider, env vars checked in order)
PROVIDER_KEYS: Dict[str, Tuple[str, List[str]]] = {
    "claude": ("anthropic", ["ANTHROPIC_API_KEY"]),
    "anthropic/": ("anthropic", ["ANTHROPIC_API_KEY"]),
    "gemini": ("gemini", ["GOOGLE_API_KEY", "GEMINI_API_KEY"]),
}
DEFAULT_PROVIDER = ("openai", ["OPENAI_API_KEY"])


def load_env():
    _ = load_dotenv(find_dotenv(usecwd=True))


def provider_for_model(model: str) -> Tuple[str, List[str]]:
    for prefix, provider in PROVIDER_KEYS.items():
        if model.startswith(prefix):
            return provider
    return DEFAULT_PROVIDER


def get_api_key_for_model(model: str) -> Tuple[str, str]:
    """
    Get the API key LiteLLM will use for ``model``.

    Returns:
        Tuple of (provider, api_key)

    Raises:
        ValueError: If none of the provider's key variables is set
    """
    load_env()
    provider, env_vars = provider_for_model(model)
    for name in env_vars:
        api_key = os.getenv(name)
        if api_key:
            return provider, api_key
    raise ValueError(f"{' or '.join(env_vars)} not set in environment")


def setup_api_keys_for_litellm():
    """
    Make provider keys from .env visible to LiteLLM.

    LiteLLM reads OPENAI_API_KEY, ANTHROPIC_API_KEY and GEMINI_API_KEY;
    GOOGLE_API_KEY is copied to GEMINI_API_KEY when only it is set.
    """
    load_env()
    if os.getenv("GOOGLE_API_KEY") and not os.getenv("GEMINI_API_KEY"):
        os.environ["GEMINI_API_KEY"] = os.environ["GOOGLE_API_KEY"]
