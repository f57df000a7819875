"""
FastMCP server exposing the knowledge graph operations as tools.

Each tool is a thin wrapper: it hands its arguments to the graph manager and
returns plain JSON-compatible data. Invalid input and unexpected failures are
reported to the client as `ToolError`.
"""

import asyncio
import sys

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from .context import ctx
from .kg_logging import logger
from .manager import KnowledgeGraphManager
from .models import (
    CreateEntityRequest,
    DeleteObservationRequest,
    InvalidInputError,
    ObservationRequest,
    Relation,
)
from .security import check_configuration
from .version import KG_MEMORY_VERSION

# Set by tests or embedding code; falls back to the context's manager
manager: KnowledgeGraphManager | None = None

# Create FastMCP server instance
mcp = FastMCP(name="kg-memory", version=KG_MEMORY_VERSION)


def get_manager() -> KnowledgeGraphManager:
    if manager is not None:
        return manager
    return ctx.manager


def _tool_error(action: str, e: Exception) -> ToolError:
    if isinstance(e, InvalidInputError):
        return ToolError(f"Invalid input: {e}")
    logger.error(f"⛔ Failed to {action}: {e}")
    return ToolError(f"Failed to {action}: {e}")


async def create_entities(
    entities: list[CreateEntityRequest] = Field(
        description="Entities to create. Entities whose name already exists are skipped"
    ),
):
    """Create multiple new entities in the knowledge graph.

    Returns:
        The entities actually created
    """
    try:
        created = await get_manager().create_entities(entities)
    except Exception as e:
        raise _tool_error("create entities", e)
    return [e.to_dict() for e in created]


async def create_relations(
    relations: list[Relation] = Field(
        description="Relations to create between existing entities, in active voice"
    ),
):
    """Create multiple new relations between entities in the knowledge graph.

    Relations whose endpoints do not exist, and relations that already exist, are skipped.

    Returns:
        The relations actually created
    """
    try:
        created = await get_manager().create_relations(relations)
    except Exception as e:
        raise _tool_error("create relations", e)
    return [r.to_dict() for r in created]


async def add_observations(
    observations: list[ObservationRequest] = Field(
        description="Observations to add, grouped by entity name"
    ),
):
    """Add new observations to existing entities in the knowledge graph.

    Returns:
        For each request, the observations that were newly added
    """
    try:
        results = await get_manager().add_observations(observations)
    except Exception as e:
        raise _tool_error("add observations", e)
    return [r.to_dict() for r in results]


# Parameter names are the tool's argument names; memory-server clients send `entityNames`
async def delete_entities(
    entityNames: list[str] = Field(description="Names of the entities to delete"),
):
    """Delete multiple entities and their associated relations from the knowledge graph.

    Returns:
        The names of the entities actually deleted
    """
    try:
        return await get_manager().delete_entities(entityNames)
    except Exception as e:
        raise _tool_error("delete entities", e)


async def delete_observations(
    deletions: list[DeleteObservationRequest] = Field(
        description="Observations to delete, grouped by entity name"
    ),
):
    """Delete specific observations from entities in the knowledge graph.

    Returns:
        For each request, the observations that were actually removed
    """
    try:
        results = await get_manager().delete_observations(deletions)
    except Exception as e:
        raise _tool_error("delete observations", e)
    return [r.to_dict() for r in results]


async def delete_relations(
    relations: list[Relation] = Field(description="Relations to delete"),
):
    """Delete multiple relations from the knowledge graph.

    Returns:
        The relations actually deleted
    """
    try:
        deleted = await get_manager().delete_relations(relations)
    except Exception as e:
        raise _tool_error("delete relations", e)
    return [r.to_dict() for r in deleted]


async def read_graph():
    """Read the entire knowledge graph."""
    try:
        graph = await get_manager().read_graph()
    except Exception as e:
        raise _tool_error("read graph", e)
    return graph.to_dict()


async def search_nodes(
    query: str = Field(
        description="The search query to match against entity names, types, and observation content"
    ),
):
    """Search for nodes in the knowledge graph based on a query.

    Returns:
        The matching entities and the relations between them
    """
    try:
        graph = await get_manager().search_nodes(query)
    except Exception as e:
        raise _tool_error("search nodes", e)
    return graph.to_dict()


async def open_nodes(
    names: list[str] = Field(description="The names of the entities to retrieve"),
):
    """Open specific nodes in the knowledge graph by their names.

    Returns:
        The requested entities that exist and the relations between them
    """
    try:
        graph = await get_manager().open_nodes(names)
    except Exception as e:
        raise _tool_error("open nodes", e)
    return graph.to_dict()


TOOLS = [
    create_entities,
    create_relations,
    add_observations,
    delete_entities,
    delete_observations,
    delete_relations,
    read_graph,
    search_nodes,
    open_nodes,
]


def register_tools(mcp_server: FastMCP) -> None:
    """Register every knowledge graph tool on a FastMCP server."""
    for fn in TOOLS:
        mcp_server.tool(fn)


register_tools(mcp)


# ----- MAIN APPLICATION ENTRY POINT -----#


async def startup_check() -> None:
    """Check that the storage backend is usable. Raises if the server will not be able to start."""
    status = await get_manager().health_check()
    if status.status != "healthy":
        raise ToolError(f"{status.backend} storage is unavailable: {status.error}")


async def start_server():
    """Common entry point for the MCP server."""
    settings = ctx.settings
    validated_transport = settings.transport
    logger.debug(f"🚌 Transport selected: {validated_transport}")
    if validated_transport == "http":
        transport_kwargs = {
            "host": settings.streamable_http_host,
            "port": settings.port,
            "path": settings.streamable_http_path,
            "log_level": "debug" if settings.debug else "info",
        }
        # Unset host/path fall back to FastMCP's defaults
        transport_kwargs = {k: v for k, v in transport_kwargs.items() if v is not None}
    else:
        transport_kwargs = {}

    for warning in check_configuration(settings):
        logger.warning(f"⚠️ {warning}")

    try:
        await startup_check()
        logger.info(f"✅ Startup check passed: {settings.backend} storage healthy")
    except Exception as e:
        logger.error(f"🛑 Startup check failed: {e}")
        sys.exit(1)

    try:
        await mcp.run_async(transport=validated_transport, **transport_kwargs)
    finally:
        await get_manager().close()


def run_sync():
    """Synchronous entry point for the server."""
    ctx.init()
    asyncio.run(start_server())


__all__ = ["mcp", "TOOLS", "register_tools", "start_server", "startup_check", "run_sync"]
