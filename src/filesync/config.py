from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .constants import (
    DEBUG_API_KEY,
    DEBUG_CHUNK_SIZE,
    DEBUG_CLIENT_FOLDER,
    DEBUG_HOST,
    DEBUG_PORT,
    DEBUG_SERVER_FOLDER,
    DEFAULT_BIND_HOST,
)

ENV_HELP = """environment variables:
  SERVER_HOST     host of the server to connect to (client). Debug value: localhost
  SERVER_BIND     address the server listens on (server, optional). Default: 0.0.0.0
  SERVER_PORT     port of the server. Debug value: 8080
  CLIENT_FOLDER   folder synced by the client; must exist. Debug value: mounted-client-folder
  SERVER_FOLDER   folder shared by the server; must exist. Debug value: mounted-server-folder
  API_KEY         token sent by clients and checked by the server. Debug value: SUPER-SECRET-API-KEY
  CHUNK_SIZE      size in bytes of each file part frame. Debug value: 10000000
"""


class ConfigError(ValueError):
    pass


class _EnvReader:
    """Collects every missing or malformed variable before failing."""

    def __init__(self, environ: Mapping[str, str], debug: bool):
        self.environ = environ
        self.debug = debug
        self.problems: list[str] = []

    def text(self, name: str, debug_value: str) -> Optional[str]:
        value = self.environ.get(name) or None
        if value is None:
            if self.debug:
                return debug_value
            self.problems.append(f"{name}: missing")
        return value

    def positive_int(self, name: str, debug_value: int) -> Optional[int]:
        raw = self.environ.get(name) or None
        if raw is None:
            if self.debug:
                return debug_value
            self.problems.append(f"{name}: missing")
            return None
        try:
            value = int(raw)
        except ValueError:
            self.problems.append(f"{name}: not an integer: {raw!r}")
            return None
        if value <= 0:
            self.problems.append(f"{name}: must be positive: {value}")
            return None
        return value

    def check(self) -> None:
        if self.problems:
            raise ConfigError("missing or invalid environment variable(s): " + ", ".join(self.problems))


@dataclass(frozen=True, slots=True)
class ClientConfig:
    host: str
    port: int
    root: Path
    api_key: str = field(repr=False)
    chunk_size: int

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, debug: bool = False) -> "ClientConfig":
        env = _EnvReader(os.environ if environ is None else environ, debug)
        host = env.text("SERVER_HOST", DEBUG_HOST)
        port = env.positive_int("SERVER_PORT", DEBUG_PORT)
        root = env.text("CLIENT_FOLDER", DEBUG_CLIENT_FOLDER)
        api_key = env.text("API_KEY", DEBUG_API_KEY)
        chunk_size = env.positive_int("CHUNK_SIZE", DEBUG_CHUNK_SIZE)
        env.check()
        return cls(host=host, port=port, root=Path(root), api_key=api_key, chunk_size=chunk_size)


@dataclass(frozen=True, slots=True)
class ServerConfig:
    host: str
    port: int
    root: Path
    api_key: str = field(repr=False)
    chunk_size: int

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, debug: bool = False) -> "ServerConfig":
        environ = os.environ if environ is None else environ
        env = _EnvReader(environ, debug)
        host = environ.get("SERVER_BIND") or DEFAULT_BIND_HOST
        port = env.positive_int("SERVER_PORT", DEBUG_PORT)
        root = env.text("SERVER_FOLDER", DEBUG_SERVER_FOLDER)
        api_key = env.text("API_KEY", DEBUG_API_KEY)
        chunk_size = env.positive_int("CHUNK_SIZE", DEBUG_CHUNK_SIZE)
        env.check()
        return cls(host=host, port=port, root=Path(root), api_key=api_key, chunk_size=chunk_size)


def require_directory(root: Path) -> None:
    if not root.is_dir():
        raise ConfigError(f"sync folder does not exist: {root}")
