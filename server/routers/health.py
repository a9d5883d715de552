"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the app handle requests?)
- /metrics - Room metrics for monitoring
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response

from game import GamePhase

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_redis_client = None
_room_manager = None


def set_health_dependencies(
    redis_client=None,
    room_manager=None,
):
    """Set dependencies for health checks."""
    global _redis_client, _room_manager
    _redis_client = redis_client
    _room_manager = room_manager


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app handle requests?

    Returns 503 if Redis is configured but unreachable.
    """
    checks = {}
    overall_healthy = True

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            checks["redis"] = {"status": "ok"}
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["redis"] = {"status": "not_configured"}

    status_code = 200 if overall_healthy else 503
    return Response(
        content=json.dumps({
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=status_code,
        media_type="application/json",
    )


@router.get("/metrics")
async def metrics():
    """Room counts for dashboards."""
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if _room_manager is not None:
        try:
            room_ids = await _room_manager.room_ids()
            total_players = 0
            games_in_progress = 0
            for room_id in room_ids:
                room = await _room_manager.get_room(room_id)
                if room is None:
                    continue
                total_players += len(room.players)
                if room.phase not in (GamePhase.WAITING, GamePhase.GAME_OVER):
                    games_in_progress += 1
            metrics_data.update({
                "active_rooms": len(room_ids),
                "total_players": total_players,
                "games_in_progress": games_in_progress,
                "pending_round_resets": len(_room_manager.scheduler.pending()),
            })
        except Exception as e:
            logger.warning(f"Failed to collect room metrics: {e}")

    return metrics_data
