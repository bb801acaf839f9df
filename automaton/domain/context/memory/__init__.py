from .provider import MemoryProvider, WorkingMemoryProvider, has_working_memory
from .legacy_memory import LegacyMemoryProvider, build_context_messages, trim_context
from .session_memory import SessionMemoryProvider
from .registry import create_memory_provider, get_available_providers

__all__ = [
    "LegacyMemoryProvider",
    "MemoryProvider",
    "SessionMemoryProvider",
    "WorkingMemoryProvider",
    "build_context_messages",
    "create_memory_provider",
    "get_available_providers",
    "has_working_memory",
    "trim_context",
]
