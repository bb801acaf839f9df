# Command validation for the exec action
import re
from typing import List, Optional, Tuple


FORBIDDEN_COMMAND_PATTERNS: List[Tuple[str, str]] = [
    # Self-destruction
    (r"rm\s+(-[a-zA-Z]+\s+)*[^;&|]*\.automaton", "deletes the automaton directory"),
    (r"rm\s+(-[a-zA-Z]+\s+)*[^;&|]*state\.db", "deletes the state database"),
    (r"rm\s+(-[a-zA-Z]+\s+)*[^;&|]*wallet\.json", "deletes the wallet"),
    (r"rm\s+(-[a-zA-Z]+\s+)*[^;&|]*automaton\.json", "deletes the configuration"),
    (r"rm\s+(-[a-zA-Z]+\s+)*[^;&|]*heartbeat\.yml", "deletes the heartbeat schedule"),
    (r"rm\s+(-[a-zA-Z]+\s+)*[^;&|]*SOUL\.md", "deletes the soul file"),
    (r">\s*~?/?[^;&|]*\.automaton/(state\.db|wallet\.json)", "truncates core automaton files"),
    # Process killing
    (r"kill\s+[^;&|]*automaton", "kills the automaton process"),
    (r"pkill\s+[^;&|]*automaton", "kills the automaton process"),
    (r"systemctl\s+(stop|disable)\s+[^;&|]*automaton", "stops the automaton service"),
    # Database destruction
    (r"DROP\s+TABLE", "drops a database table"),
    (r"DELETE\s+FROM\s+(turns|identity|kv|action_results|inbox_messages)\b", "wipes automaton history"),
    (r"TRUNCATE\s+", "truncates a database table"),
    # Safety infrastructure
    (r"sed\s+[^;&|]*-i[^;&|]*(action_validator|injection)", "modifies safety checks"),
    # Credential harvesting
    (r"cat\s+[^;&|]*\.ssh/", "reads ssh keys"),
    (r"cat\s+[^;&|]*\.gnupg", "reads gpg keys"),
    (r"cat\s+[^;&|]*\.env\b", "reads environment secrets"),
    (r"cat\s+[^;&|]*wallet\.json", "reads the wallet private key"),
]

_COMPILED_PATTERNS = [
    (re.compile(pattern, re.IGNORECASE), reason)
    for pattern, reason in FORBIDDEN_COMMAND_PATTERNS
]


def check_forbidden_command(command: str, sandbox_id: Optional[str] = None) -> Optional[str]:
    """Return the matched rule when a command is on the deny-list"""

    for pattern, reason in _COMPILED_PATTERNS:
        if pattern.search(command):
            return f"{reason} (pattern: {pattern.pattern})"

    # Deleting the sandbox the automaton lives in
    if sandbox_id and re.search(rf"sandbox[\w\s-]*delete[^;&|]*{re.escape(sandbox_id)}", command, re.IGNORECASE):
        return f"deletes its own sandbox (pattern: {sandbox_id})"

    return None
