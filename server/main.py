"""FastAPI WebSocket server for Pass the Bluff."""

import asyncio
import logging
import os
import random
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
import redis.asyncio as redis

from ai import process_computer_turns
from config import config
from game import GamePhase
from handlers import ConnectionContext, dispatch
from logging_config import setup_logging
from room import RoomManager
from routers.health import router as health_router, set_health_dependencies
from stores.chat_log import RedisChatLog
from stores.room_store import RedisRoomStore

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


# In-memory stores until the lifespan swaps in Redis
room_manager = RoomManager()

_redis_client = None
_computer_task = None
_computer_rng = random.Random()


async def _computer_player_loop():
    """Periodic task letting computer players act in every active room."""
    while True:
        try:
            await asyncio.sleep(_computer_rng.uniform(
                config.computer.TICK_MIN_SECONDS,
                config.computer.TICK_MAX_SECONDS,
            ))
            for room_id in await room_manager.room_ids():
                room = await room_manager.get_room(room_id)
                if room is None or room.phase not in (GamePhase.MEMORIZING, GamePhase.PLAYING):
                    continue
                if not any(p.is_computer for p in room.players.values()):
                    continue
                await process_computer_turns(room_manager, room_id, _computer_rng)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Computer player tick failed: {e}", exc_info=True)


async def _init_redis():
    """Connect to Redis and move room and chat storage onto it."""
    global _redis_client
    _redis_client = redis.from_url(config.REDIS_URL, decode_responses=False)
    await _redis_client.ping()
    ttl = timedelta(hours=config.ROOM_TTL_HOURS)
    room_manager.store = RedisRoomStore(_redis_client, ttl)
    room_manager.chat_log = RedisChatLog(_redis_client, ttl)
    logger.info("Redis client connected, rooms stored in Redis")


async def _shutdown_services():
    """Gracefully shut down background work and connections."""
    if _computer_task:
        _computer_task.cancel()
        try:
            await _computer_task
        except asyncio.CancelledError:
            pass
        logger.info("Computer player loop stopped")

    await room_manager.shutdown()

    if _redis_client:
        await _redis_client.close()
        logger.info("Redis connection closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    global _computer_task

    if config.REDIS_URL:
        await _init_redis()
    else:
        logger.warning("REDIS_URL not configured - rooms are kept in memory")

    set_health_dependencies(
        redis_client=_redis_client,
        room_manager=room_manager,
    )

    _computer_task = asyncio.create_task(_computer_player_loop())

    logger.info(f"Pass the Bluff server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _shutdown_services()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Pass the Bluff",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=room_manager,
    )

    try:
        while True:
            data = await websocket.receive_json()
            await dispatch(data, ctx, **handler_deps)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket {connection_id} disconnected")
    finally:
        ctx.detach()


# Serve static files if client directory exists
client_path = os.path.join(os.path.dirname(__file__), "..", "client")
if os.path.exists(client_path):
    @app.get("/")
    async def serve_index():
        return FileResponse(os.path.join(client_path, "index.html"))

    app.mount("/", StaticFiles(directory=client_path), name="static")


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Pass the Bluff server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
