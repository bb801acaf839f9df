class AutomatonError(Exception):
    """Base error for the automaton runtime"""


class ConfigError(AutomatonError):
    """Raised when the configuration file or environment is invalid"""


class UnknownMemoryProviderError(AutomatonError, ValueError):
    """Raised when a memory provider name is not registered"""

    def __init__(self, name: str, available: list):
        self.name = name
        self.available = available
        super().__init__(
            f'Unknown memory provider: "{name}". Available: {", ".join(available)}'
        )


class SandboxError(AutomatonError):
    """Raised by execution backends when a sandbox operation fails"""


class InferenceError(AutomatonError):
    """Raised by reasoning backends when a chat request fails"""
