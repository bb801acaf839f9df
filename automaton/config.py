"""
Automaton configuration.

Settings come from a JSON file (``~/.automaton/automaton.json`` unless
``AUTOMATON_CONFIG_FILE`` points elsewhere) with ``AUTOMATON_*`` environment
variables layered on top.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError

from automaton.errors import ConfigError

logger = structlog.get_logger(__name__)

AUTOMATON_DIR = "~/.automaton"
CONFIG_FILENAME = "automaton.json"

# env var -> config field
_ENV_OVERRIDES = {
    "AUTOMATON_NAME": "name",
    "AUTOMATON_SANDBOX_ID": "sandbox_id",
    "CONWAY_API_URL": "conway_api_url",
    "CONWAY_API_KEY": "conway_api_key",
    "AUTOMATON_INFERENCE_MODEL": "inference_model",
    "AUTOMATON_MAX_TOKENS_PER_TURN": "max_tokens_per_turn",
    "AUTOMATON_DB_PATH": "db_path",
    "AUTOMATON_MEMORY_DB_PATH": "memory_db_path",
    "AUTOMATON_MEMORY_PROVIDER": "memory_provider",
    "AUTOMATON_LOG_LEVEL": "log_level",
    "AUTOMATON_LOG_FORMAT": "log_format",
    "AUTOMATON_SOCIAL_RELAY_URL": "social_relay_url",
}


class AutomatonConfig(BaseModel):
    """Static tunables handed to the agent loop"""
    name: str = Field(description="Automaton name")
    genesis_prompt: str = Field(default="", description="Founding instructions from the creator")
    creator_message: Optional[str] = None
    creator_address: str = ""
    registered_with_conway: bool = False
    sandbox_id: str = ""
    conway_api_url: str = "https://api.conway.tech"
    conway_api_key: str = Field(default="", repr=False)
    inference_model: str = "gpt-4o"
    max_tokens_per_turn: int = Field(default=4096, gt=0)
    db_path: str = f"{AUTOMATON_DIR}/state.db"
    memory_db_path: str = f"{AUTOMATON_DIR}/memory.db"
    memory_provider: str = "legacy"
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["json", "console"] = "json"
    wallet_address: str = ""
    version: str = "0.1.0"
    skills_dir: str = f"{AUTOMATON_DIR}/skills"
    agent_id: Optional[str] = None
    max_children: int = 3
    parent_address: Optional[str] = None
    social_relay_url: Optional[str] = "https://social.conway.tech"


def resolve_path(path: str) -> str:
    """Expand ``~`` and environment variables in a configured path"""
    return str(Path(os.path.expandvars(path)).expanduser())


def get_config_path() -> Path:
    explicit_path = os.getenv("AUTOMATON_CONFIG_FILE")
    if explicit_path:
        return Path(resolve_path(explicit_path))
    return Path(resolve_path(AUTOMATON_DIR)) / CONFIG_FILENAME


def _read_config_file(path: Path) -> Optional[Dict[str, Any]]:
    if not path.is_file():
        return None
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(parsed, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return parsed


def _env_overrides() -> Dict[str, str]:
    return {
        field: os.environ[var]
        for var, field in _ENV_OVERRIDES.items()
        if os.environ.get(var)
    }


def load_config(path: Optional[str] = None) -> Optional[AutomatonConfig]:
    """Load the configuration, or None when the automaton is not set up yet"""

    config_path = Path(resolve_path(path)) if path else get_config_path()
    data = _read_config_file(config_path)
    if data is None:
        logger.info("No config file found", path=str(config_path))
        return None

    data.update(_env_overrides())

    try:
        return AutomatonConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {config_path}: {e}") from e


def save_config(config: AutomatonConfig, path: Optional[str] = None) -> Path:
    config_path = Path(resolve_path(path)) if path else get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    return config_path
