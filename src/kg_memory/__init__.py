"""
kg-memory knowledge graph package.

Lightweight package init without importing heavy submodules to avoid side effects
during test discovery and simple metadata imports. Import submodules directly,
e.g. `from kg_memory.manager import KnowledgeGraphManager`.
"""

from .version import KG_MEMORY_VERSION

__version__ = KG_MEMORY_VERSION

__all__: list[str] = [
    "__version__",
]
