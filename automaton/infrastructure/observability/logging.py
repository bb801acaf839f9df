import structlog
import logging
import sys
from typing import Dict, Any, List, Optional
import os

# config.log_level -> stdlib level
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# Libraries that are chatty at DEBUG
QUIET_LOGGERS = ("aiosqlite", "httpx", "httpcore")

SECRET_FIELDS = {"api_key", "conway_api_key", "private_key", "authorization"}


def setup_logging(
    log_level: str = "info",
    log_format: str = "json",
    service_name: str = "automaton"
) -> None:
    """Route structlog through stdlib logging with the automaton's context attached"""

    level = LOG_LEVELS.get(log_level.lower(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=_build_processors(log_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        pid=os.getpid(),
    )


def _build_processors(log_format: str) -> List[Any]:
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]
    if log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def redact_secrets(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask credential-looking fields before rendering"""

    for key in SECRET_FIELDS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


class AgentLogger:
    """Event helpers for the agent loop"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_turn(self, turn) -> None:
        self.logger.info(
            "turn_complete",
            turn_id=turn.id,
            state=turn.state,
            input_source=turn.input_source,
            actions=len(turn.action_results),
            total_tokens=turn.token_usage.total_tokens,
            cost_cents=turn.cost_cents,
            thinking=turn.thinking[:300] if turn.thinking else None,
        )

    def log_action_execution(
        self,
        action_name: str,
        turn_id: str,
        arguments: Dict[str, Any],
        result: Optional[str] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None
    ):
        """One executed action; blocked commands show up with a ``Blocked:`` result"""

        log = self.logger.warning if error else self.logger.info
        log(
            "action_execution",
            action_name=action_name,
            turn_id=turn_id,
            arguments=arguments,
            result=result,
            duration_ms=duration_ms,
            success=error is None,
            error=error
        )

    def log_state_transition(self, from_state: str, to_state: str):
        self.logger.info("state_transition", from_state=from_state, to_state=to_state)


agent_logger = AgentLogger("automaton")


class MetricsCollector:
    """In-process counters and latency aggregates, exposed by the status API"""

    def __init__(self):
        self.latencies: Dict[str, Dict[str, float]] = {}
        self.counters: Dict[str, int] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        stats = self.latencies.setdefault(
            operation,
            {"count": 0, "sum": 0.0, "min": duration_ms, "max": duration_ms},
        )
        stats["count"] += 1
        stats["sum"] += duration_ms
        stats["min"] = min(stats["min"], duration_ms)
        stats["max"] = max(stats["max"], duration_ms)

        agent_logger.logger.debug("metric", metric_type="latency", operation=operation,
                                  duration_ms=round(duration_ms, 1), tags=tags or {})

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self.counters[name] = self.counters.get(name, 0) + value

    def get_metrics_summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = dict(self.counters)
        for operation, stats in self.latencies.items():
            summary[f"latency.{operation}"] = {
                "count": stats["count"],
                "avg": stats["sum"] / stats["count"],
                "min": stats["min"],
                "max": stats["max"],
            }
        return summary


metrics = MetricsCollector()
