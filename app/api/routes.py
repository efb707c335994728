from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status

from app.api.deps import controller
from app.api.models import (
    ActorRequest,
    BroadcastSummary,
    ChatMessageRequest,
    GameMetadataRequest,
    HostListResponse,
    HostRequest,
    HostResponse,
    InputRequest,
    InputResponse,
    LocalDisplayRequest,
    LockInputRequest,
    LogLevelRequest,
    MessageRequest,
    SessionStatus,
    Settings,
)
from app.errors import BroadcastError, ConflictError, PreconditionError, TransportFault, UnknownDestinationError
from app.fanout import BroadcastReport
from app.lock import LockBusyError
from app.registry import Destination
from app.session import SessionController
from app.websocket_hub import hub

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, (ConflictError, PreconditionError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, UnknownDestinationError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, (BroadcastError, TransportFault)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    if isinstance(e, LockBusyError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


_DOMAIN_ERRORS = (ValueError, UnknownDestinationError, BroadcastError, TransportFault, LockBusyError)


def _summary(report: BroadcastReport) -> BroadcastSummary:
    return BroadcastSummary(delivered=len(report.delivered), removed=report.removed)


def _host_response(dest: Destination) -> HostResponse:
    d = dest.to_descriptor()
    return HostResponse(community_id=d.community_id, stream_message=d.stream_message, status_message=d.status_message)


def _status_event(ctl: SessionController) -> dict[str, object]:
    return {"type": "session_updated", **ctl.status().model_dump(mode="json")}


async def _announce(ctl: SessionController) -> None:
    await hub.broadcast(_status_event(ctl))


@router.websocket("/ws/session")
async def session_updates_ws(websocket: WebSocket, ctl: SessionController = Depends(controller)) -> None:
    await hub.connect(websocket, hello=_status_event(ctl))

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


# ---- session ----


@router.get("/session", response_model=SessionStatus)
async def session_status_route(ctl: SessionController = Depends(controller)) -> SessionStatus:
    return ctl.status()


@router.post("/session/start", response_model=SessionStatus)
async def start_route(ctl: SessionController = Depends(controller)) -> SessionStatus:
    try:
        await ctl.start()
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e

    await _announce(ctl)
    return ctl.status()


@router.post("/session/stop", response_model=BroadcastSummary)
async def stop_route(ctl: SessionController = Depends(controller)) -> BroadcastSummary:
    try:
        report = await ctl.stop()
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    finally:
        # The session may already be stopped even when the offline broadcast failed.
        await _announce(ctl)
    return _summary(report)


@router.post("/session/input", response_model=InputResponse)
async def input_route(payload: InputRequest, ctl: SessionController = Depends(controller)) -> InputResponse:
    # Rejections are a normal outcome for the actor, not an HTTP error.
    return InputResponse(outcome=ctl.submit_input(payload.actor_id, payload.button))


@router.post("/session/lock-input", response_model=SessionStatus)
async def lock_input_route(payload: LockInputRequest, ctl: SessionController = Depends(controller)) -> SessionStatus:
    ctl.lock_input(payload.locked)
    await _announce(ctl)
    return ctl.status()


@router.post("/session/local-display", response_model=SessionStatus)
async def local_display_route(
    payload: LocalDisplayRequest,
    ctl: SessionController = Depends(controller),
) -> SessionStatus:
    if payload.activate:
        ctl.attach_local_observer(payload.sound)
    else:
        ctl.detach_local_observer()
    await _announce(ctl)
    return ctl.status()


@router.post("/session/global-message", response_model=SessionStatus)
async def global_message_route(payload: MessageRequest, ctl: SessionController = Depends(controller)) -> SessionStatus:
    try:
        ctl.set_global_message(payload.message)
    except ValueError as e:
        raise _to_http(e) from e

    await _announce(ctl)
    return ctl.status()


@router.post("/session/chat-message", response_model=BroadcastSummary)
async def chat_message_route(
    payload: ChatMessageRequest,
    ctl: SessionController = Depends(controller),
) -> BroadcastSummary:
    try:
        report = await ctl.send_chat_message(payload.message)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    return _summary(report)


# ---- hosts ----


@router.get("/hosts", response_model=HostListResponse)
async def list_hosts_route(ctl: SessionController = Depends(controller)) -> HostListResponse:
    return HostListResponse(hosts=[_host_response(d) for d in ctl.registry.snapshot()])


@router.post("/hosts", response_model=HostResponse, status_code=status.HTTP_201_CREATED)
async def host_route(payload: HostRequest, ctl: SessionController = Depends(controller)) -> HostResponse:
    try:
        dest = await ctl.host(payload.community_id, payload.channel_id)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    return _host_response(dest)


@router.delete("/hosts/{community_id}", response_model=HostResponse)
async def unhost_route(community_id: str, ctl: SessionController = Depends(controller)) -> HostResponse:
    try:
        dest = ctl.unhost(community_id)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    return _host_response(dest)


@router.post("/hosts/{community_id}/message")
async def community_message_route(
    community_id: str,
    payload: MessageRequest,
    ctl: SessionController = Depends(controller),
) -> dict[str, str]:
    try:
        await ctl.set_destination_message(community_id, payload.message)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    return {"community_id": community_id, "action": "cleared" if payload.message is None else "set"}


# ---- administration ----


@router.get("/settings", response_model=Settings)
async def settings_route(ctl: SessionController = Depends(controller)) -> Settings:
    return ctl.store.current


@router.post("/owners", response_model=Settings)
async def add_owner_route(payload: ActorRequest, ctl: SessionController = Depends(controller)) -> Settings:
    try:
        ctl.add_owner(payload.actor_id)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    return ctl.store.current


@router.post("/bans", response_model=Settings)
async def ban_route(payload: ActorRequest, ctl: SessionController = Depends(controller)) -> Settings:
    try:
        ctl.ban_user(payload.actor_id)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    return ctl.store.current


@router.delete("/bans/{actor_id}", response_model=Settings)
async def unban_route(actor_id: str, ctl: SessionController = Depends(controller)) -> Settings:
    try:
        ctl.unban_user(actor_id)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    return ctl.store.current


@router.post("/game-metadata", response_model=Settings)
async def game_metadata_route(payload: GameMetadataRequest, ctl: SessionController = Depends(controller)) -> Settings:
    try:
        return ctl.store.set_game_metadata(payload.entity, payload.value)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e


@router.post("/stats/clear", response_model=Settings)
async def clear_stats_route(ctl: SessionController = Depends(controller)) -> Settings:
    try:
        ctl.clear_statistics()
    except _DOMAIN_ERRORS as e:
        raise _to_http(e) from e
    return ctl.store.current


@router.post("/log-level")
async def log_level_route(payload: LogLevelRequest) -> dict[str, str]:
    level = payload.level.upper()
    if level not in logging.getLevelNamesMapping():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Unknown log level: {payload.level}")

    logging.getLogger().setLevel(level)
    logger.info("Set the log level to %s", level)
    return {"level": level}


# ---- render process ----


@router.get("/stream/overlay")
async def overlay_route(ctl: SessionController = Depends(controller)) -> dict[str, object]:
    return ctl.renderer.overlay()


@router.post("/stream/gif")
async def push_gif_route(request: Request, ctl: SessionController = Depends(controller)) -> dict[str, int]:
    data = await request.body()
    if not data:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Empty gif")
    return {"consumers": await ctl.renderer.push_gif(data)}


@router.post("/stream/frame")
async def push_frame_route(request: Request, ctl: SessionController = Depends(controller)) -> dict[str, int]:
    data = await request.body()
    if not data:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Empty frame")
    return {"consumers": await ctl.renderer.push_frame(data)}
