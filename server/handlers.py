"""WebSocket message handlers for Pass the Bluff.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict; dispatch() validates the
frame and turns rejected operations into error frames.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from fastapi import WebSocket
from pydantic import BaseModel, Field, ValidationError

from errors import GameError, NotHost, RoomNotFound
from game import ChatMessage, GameRoom, latest_declaration
from logging_config import player_id_var, request_id_var, room_code_var
from room import RoomManager

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    current_room_id: Optional[str] = None
    unsubscribers: list[Callable[[], None]] = field(default_factory=list)

    def detach(self) -> None:
        """Drop this connection's room and chat subscriptions."""
        for unsubscribe in self.unsubscribers:
            unsubscribe()
        self.unsubscribers.clear()
        self.current_room_id = None


# ---------------------------------------------------------------------------
# Message payloads
# ---------------------------------------------------------------------------

class CreateRoomMessage(BaseModel):
    player_name: str = Field(default="Player", min_length=1, max_length=32)
    room_code: Optional[str] = Field(default=None, min_length=1, max_length=16)


class JoinRoomMessage(BaseModel):
    room_code: str = Field(min_length=1, max_length=16)
    player_name: str = Field(default="Player", min_length=1, max_length=32)


class PassCardMessage(BaseModel):
    card_id: str
    declared_name: str = Field(max_length=64)


class CallBluffMessage(BaseModel):
    target_player_id: Optional[str] = None
    card_id: Optional[str] = None


class ChatPayload(BaseModel):
    text: str = Field(max_length=500)


class PreviewPassMessage(BaseModel):
    card_id: str


def _require_room(ctx: ConnectionContext) -> str:
    if not ctx.current_room_id:
        raise RoomNotFound("You are not in a room")
    return ctx.current_room_id


async def _enter_room(ctx: ConnectionContext, room: GameRoom, room_manager: RoomManager) -> None:
    """Subscribe the connection to a room and send it the current state."""
    ctx.detach()
    ctx.current_room_id = room.id

    async def push_room(snapshot: GameRoom) -> None:
        await ctx.websocket.send_json({
            "type": "room_state",
            "room": snapshot.to_client_dict(ctx.player_id),
        })

    async def push_chat(messages: list[ChatMessage]) -> None:
        await ctx.websocket.send_json({
            "type": "chat",
            "messages": [m.to_dict() for m in messages],
        })

    ctx.unsubscribers.append(room_manager.subscribe_to_room(room.id, push_room))
    ctx.unsubscribers.append(room_manager.subscribe_to_chat(room.id, push_chat))

    latest = await room_manager.get_room(room.id) or room
    await push_room(latest)
    await push_chat(await room_manager.get_chat_messages(room.id))


# ---------------------------------------------------------------------------
# Lobby handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    msg = CreateRoomMessage(**data)
    room_code = (msg.room_code or await room_manager.generate_room_code()).upper()
    room = await room_manager.create_room(room_code, ctx.player_id, msg.player_name.strip())

    await ctx.websocket.send_json({
        "type": "room_created",
        "room_code": room.id,
        "player_id": ctx.player_id,
    })
    await _enter_room(ctx, room, room_manager)


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    msg = JoinRoomMessage(**data)
    room = await room_manager.join_room(msg.room_code.upper(), ctx.player_id, msg.player_name.strip())

    await ctx.websocket.send_json({
        "type": "room_joined",
        "room_code": room.id,
        "player_id": ctx.player_id,
    })
    await _enter_room(ctx, room, room_manager)


async def handle_add_cpu(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room_id = _require_room(ctx)
    player = await room_manager.find_player(room_id, ctx.player_id)
    if not player.is_host:
        raise NotHost("Only the host can add computer players")
    await room_manager.add_computer_player(room_id)


# ---------------------------------------------------------------------------
# Round handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    await room_manager.start_game(_require_room(ctx), ctx.player_id)


async def handle_ready(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    await room_manager.set_ready(_require_room(ctx), ctx.player_id)


async def handle_pass_card(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    msg = PassCardMessage(**data)
    await room_manager.pass_card(_require_room(ctx), ctx.player_id, msg.card_id, msg.declared_name)


async def handle_call_bluff(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    """Call bluff. Target and card default to the latest declaration's pass."""
    msg = CallBluffMessage(**data)
    room_id = _require_room(ctx)
    target_id, card_id = msg.target_player_id, msg.card_id
    if target_id is None or card_id is None:
        declaration = latest_declaration(await room_manager.get_chat_messages(room_id))
        if declaration is not None:
            target_id = target_id or declaration.recipient_id
            card_id = card_id or declaration.card_id
    await room_manager.call_bluff(room_id, ctx.player_id, target_id or "", card_id or "")


async def handle_preview_pass(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    msg = PreviewPassMessage(**data)
    target = await room_manager.pass_target(_require_room(ctx), ctx.player_id, msg.card_id)
    await ctx.websocket.send_json({
        "type": "pass_preview",
        "card_id": msg.card_id,
        "target_player_id": target.id,
        "target_player_name": target.name,
    })


# ---------------------------------------------------------------------------
# Chat and state
# ---------------------------------------------------------------------------

async def handle_chat(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    msg = ChatPayload(**data)
    await room_manager.send_chat_message(_require_room(ctx), ctx.player_id, msg.text)


async def handle_get_state(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room_id = _require_room(ctx)
    room = await room_manager.get_room(room_id)
    if room is None:
        raise RoomNotFound(f"Room {room_id} not found")
    await ctx.websocket.send_json({
        "type": "room_state",
        "room": room.to_client_dict(ctx.player_id),
    })


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "add_cpu": handle_add_cpu,
    "start_game": handle_start_game,
    "ready": handle_ready,
    "pass_card": handle_pass_card,
    "call_bluff": handle_call_bluff,
    "preview_pass": handle_preview_pass,
    "chat": handle_chat,
    "get_state": handle_get_state,
}


async def dispatch(data: dict, ctx: ConnectionContext, **deps) -> None:
    """
    Route one client frame to its handler.

    Rejected operations and malformed payloads are reported to the sender
    as error frames; the connection stays open.
    """
    msg_type = data.get("type")
    handler = HANDLERS.get(msg_type)
    if handler is None:
        await ctx.websocket.send_json({
            "type": "error",
            "code": "UNKNOWN_MESSAGE",
            "message": f"Unknown message type: {msg_type}",
        })
        return

    payload = {k: v for k, v in data.items() if k not in ("type", "request_id")}
    request_token = request_id_var.set(data.get("request_id") or str(uuid.uuid4()))
    player_token = player_id_var.set(ctx.player_id)
    room_token = room_code_var.set(ctx.current_room_id)
    try:
        await handler(payload, ctx, **deps)
    except GameError as e:
        logger.debug(f"{msg_type} rejected: {e}")
        await ctx.websocket.send_json({
            "type": "error",
            "code": e.code,
            "message": e.message,
        })
    except ValidationError as e:
        await ctx.websocket.send_json({
            "type": "error",
            "code": "INVALID_MESSAGE",
            "message": f"Invalid {msg_type} message: {e.errors()[0].get('msg', 'bad payload')}",
        })
    finally:
        room_code_var.reset(room_token)
        player_id_var.reset(player_token)
        request_id_var.reset(request_token)
