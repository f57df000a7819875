"""Import a JSONL knowledge graph file into the configured storage backend.

Two line formats are accepted:

    {"type":"entity","name":"Alice","entityType":"person","observations":["..."]}
    {"type":"entity","data":{"name":"Alice","entityType":"person","observations":["..."]}}

and likewise for `"type":"relation"` lines with `from`, `to` and `relationType`.
Meta lines and blank lines are ignored; invalid lines are reported and skipped.
Existing entities and relations are left untouched, so importing twice is harmless.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from pydantic import ValidationError

from .kg_logging import logger
from .manager import KnowledgeGraphManager
from .models import CreateEntityRequest, ImportSummary, Relation


class ParsedGraph:
    """Entity and relation records read from a JSONL file, plus the count of rejected lines."""

    def __init__(self) -> None:
        self.entities: list[CreateEntityRequest] = []
        self.relations: list[Relation] = []
        self.invalid_lines: int = 0

    def __repr__(self) -> str:
        return (
            f"ParsedGraph(entities={len(self.entities)}, relations={len(self.relations)}, "
            f"invalid_lines={self.invalid_lines})"
        )


def _line_payload(obj: dict[str, Any]) -> dict[str, Any]:
    data = obj.get("data")
    if isinstance(data, dict):
        return data
    return {k: v for k, v in obj.items() if k != "type"}


def parse_jsonl(content: str) -> ParsedGraph:
    """Parse JSONL content into validated entity and relation records."""
    parsed = ParsedGraph()
    for i, line in enumerate(content.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
            if not isinstance(obj, dict):
                raise ValueError("line is not a JSON object")
            typ = obj.get("type")
            match typ:
                case "entity":
                    parsed.entities.append(CreateEntityRequest.model_validate(_line_payload(obj)))
                case "relation":
                    parsed.relations.append(Relation.model_validate(_line_payload(obj)))
                case "meta":
                    continue
                case _:
                    raise ValueError(f"Invalid type: {typ}")
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            parsed.invalid_lines += 1
            logger.warning(f"Skipping invalid line {i}: {e}")
    return parsed


async def import_file(path: str | Path, manager: KnowledgeGraphManager) -> ImportSummary:
    """Read a JSONL file and import its entities and relations through the manager."""
    content = Path(path).read_text(encoding="utf-8")
    parsed = parse_jsonl(content)
    logger.debug(f"Parsed {path}: {parsed!r}")
    return await manager.import_records(
        parsed.entities, parsed.relations, invalid_lines=parsed.invalid_lines
    )


def parse_args(argv: Sequence[str] | None = None) -> tuple[argparse.Namespace, list[str]]:
    """Parse command line arguments. Unrecognized arguments are left for the settings loader."""
    parser = argparse.ArgumentParser(
        prog="kg-memory-import",
        description="Import a JSONL knowledge graph file into the configured storage backend.",
    )
    parser.add_argument("path", type=str, help="Path to the JSONL file to import.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and validate the file, print what would be imported, and write nothing.",
    )
    return parser.parse_known_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Command line entry point."""
    from .context import ctx
    from .settings import KGSettings

    args, remaining = parse_args(argv)
    source = Path(args.path)
    if not source.is_file():
        print(f"File not found: {source}", file=sys.stderr)
        return 1

    if args.dry_run:
        parsed = parse_jsonl(source.read_text(encoding="utf-8"))
        print(
            f"Would import {len(parsed.entities)} entities and {len(parsed.relations)} relations "
            f"({parsed.invalid_lines} invalid lines)"
        )
        return 0

    settings = KGSettings.load(remaining)
    if settings.backend == "jsonl" and settings.memory_path == source.resolve():
        print("Source file is the configured memory file; nothing to import", file=sys.stderr)
        return 1

    ctx.init(settings)
    summary = asyncio.run(import_file(source, ctx.manager))
    print(f"Imported {source}: {summary}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
