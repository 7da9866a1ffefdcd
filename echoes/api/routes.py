from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from echoes.api.deps import get_game_session
from echoes.api.models import (
    ChatLine,
    ChatPostRequest,
    ChatPostResponse,
    CommandRequest,
    CommandResponse,
    TallyBoard,
    WorldSnapshot,
)
from echoes.chat import ChatMessage, parse_command, relay_message
from echoes.core.events import CommandKind
from echoes.game_state import ZoneNotFoundError
from echoes.session import GameSession
from echoes.websocket_hub import hub

router = APIRouter()


@router.websocket("/ws")
async def game_updates_ws(websocket: WebSocket) -> None:
    await hub.connect(websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/state", response_model=WorldSnapshot)
async def get_state_route(session: GameSession = Depends(get_game_session)) -> WorldSnapshot:
    return session.world.snapshot()


@router.get("/tallies", response_model=TallyBoard)
async def get_tallies_route(session: GameSession = Depends(get_game_session)) -> TallyBoard:
    return session.tally_board()


@router.post("/zones/{zone_id}/activate", response_model=WorldSnapshot)
async def activate_zone_route(zone_id: str, session: GameSession = Depends(get_game_session)) -> WorldSnapshot:
    """Move the player. Moving to a zone that isn't active is a no-op, not an error."""

    try:
        session.world.set_active_zone(zone_id)
    except ZoneNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return session.world.snapshot()


@router.post("/commands", response_model=CommandResponse)
async def submit_command_route(payload: CommandRequest, session: GameSession = Depends(get_game_session)) -> CommandResponse:
    """Dev endpoint: inject a chat command as if it came from the chat transport.

    Useful for manual testing without a live chat connection.
    """

    text = payload.command if payload.command.startswith("!") else f"!{payload.command}"
    message = ChatMessage(username=payload.username, text=text, badges=frozenset(payload.roles))
    if parse_command(message) is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown command: {payload.command}",
        )

    counted = relay_message(message, game=session.game, feed=session.chat_feed)
    return CommandResponse(counted=bool(counted))


@router.get("/chat", response_model=list[ChatLine])
async def get_chat_route(session: GameSession = Depends(get_game_session)) -> list[ChatLine]:
    """Most recent chat lines, oldest first."""

    return session.chat_lines()


@router.post("/chat", response_model=ChatPostResponse)
async def post_chat_route(payload: ChatPostRequest, session: GameSession = Depends(get_game_session)) -> ChatPostResponse:
    """Dev endpoint: post any chat line. `!command` lines also vote."""

    message = ChatMessage(username=payload.username, text=payload.text, badges=frozenset(payload.roles))
    event = parse_command(message)
    counted = relay_message(message, game=session.game, feed=session.chat_feed)
    return ChatPostResponse(
        command=CommandKind(event.command) if event is not None else None,
        counted=bool(counted),
    )
