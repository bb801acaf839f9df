"""
Read-only status API over the durable store.

Usage:
    app = create_app(db, config)
    uvicorn.run(app, port=8080)
"""

from typing import Any, Dict, List

import structlog
from fastapi import FastAPI, HTTPException, Query

from automaton.config import AutomatonConfig
from automaton.domain.models.interfaces import AutomatonDatabase
from automaton.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

DEFAULT_TURN_LIMIT = 20
MAX_TURN_LIMIT = 200


async def get_status(db: AutomatonDatabase, config: AutomatonConfig) -> Dict[str, Any]:
    """Snapshot of the automaton as seen from the store"""

    state = await db.get_agent_state()
    return {
        "name": config.name,
        "version": config.version,
        "state": state.value,
        "turn_count": await db.get_turn_count(),
        "start_time": await db.get_kv("start_time"),
        "sleep_until": await db.get_kv("sleep_until"),
        "sleep_reason": await db.get_kv("sleep_reason"),
        "wake_request": await db.get_kv("wake_request"),
        "inference_model": config.inference_model,
        "memory_provider": config.memory_provider,
        "metrics": metrics.get_metrics_summary(),
    }


def create_app(db: AutomatonDatabase, config: AutomatonConfig) -> FastAPI:
    app = FastAPI(
        title=f"{config.name} status",
        version=config.version,
        description="Introspection endpoints for a running automaton.",
    )

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": config.version}

    @app.get("/status", tags=["status"])
    async def status():
        return await get_status(db, config)

    @app.get("/turns", tags=["turns"])
    async def list_turns(limit: int = Query(DEFAULT_TURN_LIMIT, ge=1, le=MAX_TURN_LIMIT)) -> List[Dict[str, Any]]:
        turns = await db.get_recent_turns(limit)
        return [turn.to_record() for turn in turns]

    @app.get("/turns/{turn_id}", tags=["turns"])
    async def get_turn(turn_id: str) -> Dict[str, Any]:
        turn = await db.get_turn_by_id(turn_id)
        if turn is None:
            logger.info("Turn not found", turn_id=turn_id)
            raise HTTPException(status_code=404, detail=f"Turn {turn_id} not found")
        return turn.to_record()

    return app
