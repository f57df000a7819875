"""
Centralized configuration for the kg-memory server.

This module consolidates all configuration concerns (CLI args, environment
variables, and sensible defaults) into a single, validated settings object.

Precedence (highest first):
- CLI arguments
- Environment variables (optionally from .env)
- Defaults
"""

from __future__ import annotations

from dotenv import load_dotenv
from dataclasses import dataclass
import argparse
import os
from pathlib import Path
from typing import Literal, Sequence
import logging as lg

from .kg_logging import bootstrap_logger
from .security import validate_file_path

# Settings load before the context exists
logger = bootstrap_logger()


# Project root (repo root) and default memory file there
PROJECT_ROOT = Path(__file__).parents[2].resolve()
DEFAULT_MEMORY_PATH = PROJECT_ROOT / "memory.jsonl"
DEFAULT_PORT = 8000
DEFAULT_ENTITIES_TABLE = "kgEntities"
DEFAULT_RELATIONS_TABLE = "kgRelations"


Transport = Literal["stdio", "sse", "http"]
Backend = Literal["memory", "jsonl", "supabase"]

TRANSPORT_ENUM: dict[str, Transport] = {
    "stdio": "stdio",
    "http": "http",
    "sse": "sse",
    # Common aliases that normalize to http
    "streamable-http": "http",
    "streamablehttp": "http",
    "streamable_http": "http",
    "streamable http": "http",
}

BACKEND_ENUM: dict[str, Backend] = {
    "memory": "memory",
    "in-memory": "memory",
    "jsonl": "jsonl",
    "file": "jsonl",
    "supabase": "supabase",
}


@dataclass(frozen=True)
class SupabaseConfig:
    """Connection settings for the Supabase storage backend."""

    url: str
    key: str
    entities_table: str = DEFAULT_ENTITIES_TABLE
    relations_table: str = DEFAULT_RELATIONS_TABLE

    def __repr__(self) -> str:
        # Never print the key
        return (
            f"SupabaseConfig(url={self.url!r}, entities_table={self.entities_table!r}, "
            f"relations_table={self.relations_table!r})"
        )


class KGSettings:
    """kg-memory application settings loaded from CLI and environment.

    Attributes:
        debug: Enables verbose logging when True
        backend: Storage backend ("memory" | "jsonl" | "supabase")
        transport: Validated transport value ("stdio" | "sse" | "http")
        port: Server port (used when transport is http)
        streamable_http_host: Optional HTTP host
        streamable_http_path: Optional HTTP path
        memory_path: Absolute path to memory JSONL file
        project_root: Resolved project root path
        supabase: Supabase connection settings, or None if URL/key are not set
    """

    def __init__(
        self,
        *,
        debug: bool = False,
        backend: Backend = "jsonl",
        transport: Transport = "stdio",
        port: int = DEFAULT_PORT,
        memory_path: str | Path = DEFAULT_MEMORY_PATH,
        streamable_http_host: str | None = None,
        streamable_http_path: str | None = None,
        project_root: Path = PROJECT_ROOT,
        supabase: SupabaseConfig | None = None,
    ) -> None:
        self.debug = bool(debug)
        self.backend = backend
        self.transport = transport
        self.memory_path = Path(memory_path)
        self.port = int(port)
        self.streamable_http_host = streamable_http_host
        self.streamable_http_path = streamable_http_path
        self.project_root = Path(project_root)
        self.supabase = supabase

    # ---------- Construction ----------
    @classmethod
    def load(cls, argv: Sequence[str] | None = None) -> "KGSettings":
        """
        Create a kg-memory Settings instance from CLI args, env, and defaults.

        Args:
            argv: Arguments to parse instead of sys.argv. Unknown arguments are ignored.

        Raises:
            ValueError: On an invalid transport or backend, or a supabase backend
                without URL and key.
        """
        # CLI args > Env vars > Defaults
        parser = argparse.ArgumentParser(add_help=False)
        parser.add_argument("--backend", type=str)
        parser.add_argument("--memory-path", type=str)
        parser.add_argument("--debug", action="store_true", default=None)
        parser.add_argument("--transport", type=str)
        parser.add_argument("--port", type=int)
        parser.add_argument("--http-host", type=str)
        parser.add_argument("--http-path", type=str)
        args, _ = parser.parse_known_args(argv)

        # Load .env if available; existing environment variables win
        env_path = os.getenv("KG_ENV_PATH")
        if env_path and Path(env_path).exists():
            load_dotenv(env_path, verbose=False)
            logger.debug(f"Loaded .env from {env_path}")
        elif load_dotenv(verbose=False):
            logger.debug("Loaded .env from current directory")

        # Debug mode
        debug: bool = bool(args.debug) or os.environ.get("KG_DEBUG", "false").lower() == "true"
        if debug:
            logger.setLevel(lg.DEBUG)
            logger.debug(f"🐞 Debug mode: {debug}")

        # Transport
        transport_raw = (args.transport or os.getenv("KG_TRANSPORT", "stdio")).strip().lower()
        if transport_raw not in TRANSPORT_ENUM:
            valid = ", ".join(sorted({"stdio", "sse", "streamable-http", "http"}))
            raise ValueError(f"Invalid transport '{transport_raw}'. Valid options: {valid}")
        transport: Transport = TRANSPORT_ENUM[transport_raw]

        # Storage backend
        backend_raw = (args.backend or os.getenv("KG_BACKEND", "jsonl")).strip().lower()
        if backend_raw not in BACKEND_ENUM:
            valid = ", ".join(sorted(set(BACKEND_ENUM.values())))
            raise ValueError(f"Invalid backend '{backend_raw}'. Valid options: {valid}")
        backend: Backend = BACKEND_ENUM[backend_raw]

        # Port/Host/Path for HTTP
        http_port = args.port or int(os.getenv("KG_STREAMABLE_HTTP_PORT", DEFAULT_PORT))
        http_host = args.http_host or os.getenv("KG_STREAMABLE_HTTP_HOST")
        http_path = args.http_path or os.getenv("KG_STREAMABLE_HTTP_PATH")

        # Memory path precedence: CLI > env > default(project_root/memory.jsonl)
        memory_path_input = args.memory_path or os.getenv("KG_MEMORY_PATH", str(DEFAULT_MEMORY_PATH))
        memory_path = validate_file_path(memory_path_input)

        # Supabase
        supabase_url = os.getenv("KG_SUPABASE_URL")
        supabase_key = os.getenv("KG_SUPABASE_KEY")
        supabase: SupabaseConfig | None = None
        if supabase_url and supabase_key:
            supabase = SupabaseConfig(
                url=supabase_url,
                key=supabase_key,
                entities_table=os.getenv("KG_SUPABASE_ENTITIES_TABLE", DEFAULT_ENTITIES_TABLE),
                relations_table=os.getenv("KG_SUPABASE_RELATIONS_TABLE", DEFAULT_RELATIONS_TABLE),
            )
        elif backend == "supabase":
            raise ValueError("Supabase backend requires KG_SUPABASE_URL and KG_SUPABASE_KEY")

        return cls(
            debug=debug,
            backend=backend,
            transport=transport,
            port=http_port,
            streamable_http_host=http_host,
            streamable_http_path=http_path,
            memory_path=memory_path,
            project_root=PROJECT_ROOT,
            supabase=supabase,
        )

    def __repr__(self) -> str:
        return (
            f"KGSettings(backend={self.backend!r}, transport={self.transport!r}, "
            f"memory_path={str(self.memory_path)!r}, debug={self.debug})"
        )


__all__ = ["KGSettings", "SupabaseConfig", "TRANSPORT_ENUM", "BACKEND_ENUM"]
