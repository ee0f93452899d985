"""OpenAI client construction for the intelligence providers."""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

try:  # Allow module import even when the OpenAI dependency is absent.
    from openai import OpenAI  # type: ignore
except Exception:  # pragma: no cover - optional dependency guard
    OpenAI = None  # type: ignore

__all__ = ["API_KEY_ENV", "ClientConfigError", "load_client"]

API_KEY_ENV = "OPENAI_API_KEY"


class ClientConfigError(RuntimeError):
    """Raised when an OpenAI client cannot be configured."""


def load_client(
    *,
    api_key: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    load_env_file: bool = True,
) -> Any:
    """Create an OpenAI client from an explicit key or the environment.

    A ``.env`` file is honoured unless ``load_env_file`` is false.
    """

    if OpenAI is None:
        raise ClientConfigError(
            "The 'openai' package is required to create a client. "
            "Install it and retry."
        )
    if load_env_file:
        load_dotenv()
    env_map = os.environ if env is None else env
    key = api_key or (env_map.get(API_KEY_ENV) or "").strip()
    if not key:
        raise ClientConfigError(
            f"{API_KEY_ENV} not found in environment. Set it or add to .env"
        )
    return OpenAI(api_key=key)
