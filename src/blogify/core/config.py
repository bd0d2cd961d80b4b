"""Client configuration.

Env vars:
- BLOGIFY_API_BASE_URL (default http://127.0.0.1:8000)
- BLOGIFY_CONNECT_TIMEOUT / BLOGIFY_READ_TIMEOUT (seconds)
- BLOGIFY_HTTP_RETRIES (default 2)
- BLOGIFY_TOKEN (bearer credential used by the CLI)
- BLOGIFY_CHAT_STORE_IMPL ("remote" or "memory")
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

DEFAULT_BASE_URL = "http://127.0.0.1:8000"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid integer for environment variable {name}: {raw!r}")


@dataclass
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    connect_timeout: int = 3
    read_timeout: int = 60
    retries: int = 2
    token: Optional[str] = None
    store_impl: str = "remote"

    @property
    def timeout(self) -> Tuple[int, int]:
        return (self.connect_timeout, self.read_timeout)

    @staticmethod
    def from_env() -> "ClientConfig":
        return ClientConfig(
            base_url=(os.getenv("BLOGIFY_API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            connect_timeout=_int_env("BLOGIFY_CONNECT_TIMEOUT", 3),
            read_timeout=_int_env("BLOGIFY_READ_TIMEOUT", 60),
            retries=_int_env("BLOGIFY_HTTP_RETRIES", 2),
            token=os.getenv("BLOGIFY_TOKEN") or None,
            store_impl=(os.getenv("BLOGIFY_CHAT_STORE_IMPL") or "remote").lower(),
        )
