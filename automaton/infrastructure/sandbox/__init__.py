from .local_sandbox import LocalSandboxClient

__all__ = ["LocalSandboxClient"]
