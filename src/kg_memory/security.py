"""
Configuration safety checks for kg-memory.

Provides path validation for the memory file and startup checks for common
misconfigurations.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .settings import KGSettings


def validate_file_path(
    path: str | Path,
    allowed_base: str | Path | None = None,
    must_exist: bool = False,
) -> Path:
    """
    Validate and resolve a file path to prevent path traversal attacks.

    Args:
        path: The path to validate
        allowed_base: Optional base directory - path must be within this directory
        must_exist: If True, raises ValueError if path doesn't exist

    Returns:
        Resolved absolute Path object

    Raises:
        ValueError: If path is invalid, outside allowed_base, or doesn't exist when required
    """
    if not str(path).strip():
        raise ValueError("Path must not be empty")
    try:
        resolved_path = Path(path).expanduser().resolve()
    except (OSError, RuntimeError) as e:
        raise ValueError(f"Invalid path '{path}': {e}") from e

    if must_exist and not resolved_path.exists():
        raise ValueError(f"Path does not exist: {resolved_path}")

    if resolved_path.is_dir():
        raise ValueError(f"Path is a directory, expected a file: {resolved_path}")

    if allowed_base:
        allowed_base_resolved = Path(allowed_base).resolve()
        try:
            resolved_path.relative_to(allowed_base_resolved)
        except ValueError as e:
            raise ValueError(
                f"Path '{resolved_path}' is outside allowed directory '{allowed_base_resolved}'"
            ) from e

    return resolved_path


def check_configuration(settings: "KGSettings") -> list[str]:
    """
    Check the loaded settings for common misconfigurations.

    Returns:
        List of warnings (empty if all checks pass)
    """
    warnings = []

    if settings.backend == "memory":
        warnings.append("In-memory backend selected - the graph will be lost on shutdown")

    if settings.debug and settings.transport != "stdio":
        warnings.append("KG_DEBUG is enabled on a network transport - disable for production!")

    if settings.transport == "http" and settings.streamable_http_host == "0.0.0.0":
        warnings.append("HTTP transport is bound to all interfaces and has no authentication")

    if settings.backend == "supabase" and settings.supabase is not None:
        if not settings.supabase.url.startswith("https://"):
            warnings.append("KG_SUPABASE_URL does not use https")

    return warnings


__all__ = ["validate_file_path", "check_configuration"]
