"""
Memory provider registry. Maps configured provider names to factories.
"""

from typing import Callable, Dict, List

from automaton.config import AutomatonConfig, resolve_path
from automaton.domain.context.memory.embedding import HashingEmbedder
from automaton.domain.context.memory.legacy_memory import LegacyMemoryProvider
from automaton.domain.context.memory.provider import MemoryProvider
from automaton.domain.context.memory.session_memory import SessionMemoryProvider
from automaton.domain.models.interfaces import AutomatonDatabase
from automaton.errors import UnknownMemoryProviderError

ProviderFactory = Callable[[AutomatonConfig, AutomatonDatabase], MemoryProvider]

PROVIDERS: Dict[str, ProviderFactory] = {
    "legacy": lambda config, db: LegacyMemoryProvider(db),
    "session": lambda config, db: SessionMemoryProvider(
        resolve_path(config.memory_db_path),
        embedder=HashingEmbedder(),
    ),
}


def create_memory_provider(name: str, config: AutomatonConfig, db: AutomatonDatabase) -> MemoryProvider:
    factory = PROVIDERS.get(name)
    if factory is None:
        raise UnknownMemoryProviderError(name, get_available_providers())
    return factory(config, db)


def get_available_providers() -> List[str]:
    return list(PROVIDERS.keys())
