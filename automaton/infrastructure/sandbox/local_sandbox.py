"""
Execution backend that runs commands on the local machine.

Useful for development and tests; production automatons talk to a remote
sandbox through the same ``SandboxClient`` contract.
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog

from automaton.domain.models.interfaces import ExecResult, SandboxClient
from automaton.errors import SandboxError

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
TIMEOUT_EXIT_CODE = 124


class LocalSandboxClient(SandboxClient):
    """Runs shell commands with asyncio subprocesses inside a working directory"""

    def __init__(self, root: Optional[str] = None, credits_cents: float = 0.0, shell: str = "/bin/sh"):
        self.root = Path(root).expanduser() if root else Path.cwd()
        self.credits_cents = credits_cents
        self.shell = shell

    async def exec(self, command: str, timeout: Optional[float] = None) -> ExecResult:
        logger.debug("exec_request", command=command[:200], timeout=timeout)

        try:
            process = await asyncio.create_subprocess_exec(
                self.shell, "-c", command,
                cwd=str(self.root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SandboxError(f"Failed to start command: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout or DEFAULT_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ExecResult(
                stdout="",
                stderr=f"Command timed out after {timeout or DEFAULT_TIMEOUT_SECONDS}s",
                exit_code=TIMEOUT_EXIT_CODE,
            )

        result = ExecResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
        )
        logger.debug("exec_result", exit_code=result.exit_code, stdout_length=len(result.stdout))
        return result

    async def write_file(self, path: str, content: str) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise SandboxError(f"Cannot write {path}: {e}") from e

    async def read_file(self, path: str) -> str:
        try:
            return self._resolve(path).read_text(encoding="utf-8")
        except OSError as e:
            raise SandboxError(f"Cannot read {path}: {e}") from e

    async def get_credits_balance(self) -> float:
        return self.credits_cents

    def _resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        return candidate if candidate.is_absolute() else self.root / candidate
