"""
Services package.
"""
from .generation_proxy import GenerationProxy, ProxyResult
from .generation_orchestrator import GenerationOrchestrator, GenerationSession
from .history_store import HistoryStore
from .user_directory import UserDirectory
from .structure_renderer import StructureRenderer

__all__ = [
    "GenerationProxy",
    "ProxyResult",
    "GenerationOrchestrator",
    "GenerationSession",
    "HistoryStore",
    "UserDirectory",
    "StructureRenderer",
]
