"""
WebSocket endpoint bridging a presentation client to a session coordinator.

Handles the WebSocket protocol:
- JSON messages for commands (connect, start_recording, video_frame, ...)
- Binary frames for microphone audio input (PCM16 LE mono)
- JSON state messages after every session change
- Binary frames for assistant audio output
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..core.coordinator import SessionCoordinator
from ..core.registry import session_registry
from ..observability.logging import session_context
from ..observability.metrics import record_session_ended, update_session_metrics
from ..protocol.errors import MaxSessionsReachedError
from ..protocol.messages import (
    ClientMessage,
    CommitAudioMessage,
    ConnectMessage,
    DisconnectMessage,
    DismissErrorMessage,
    ErrorCode,
    ErrorMessage,
    MessageType,
    SessionSnapshot,
    StartRecordingMessage,
    StateMessage,
    StopRecordingMessage,
    VideoFrameMessage,
)
from ..transport.base import QueueAudioSource
from . import deps

logger = logging.getLogger(__name__)

router = APIRouter()

Outbox = asyncio.Queue  # items: dict (JSON), bytes (audio) or None (stop)


def parse_message(data: dict[str, Any]) -> ClientMessage | None:
    """Parse incoming JSON message into typed message object."""
    msg_type = data.get("type")

    try:
        if msg_type == MessageType.CONNECT:
            return ConnectMessage.model_validate(data)
        elif msg_type == MessageType.DISCONNECT:
            return DisconnectMessage.model_validate(data)
        elif msg_type == MessageType.START_RECORDING:
            return StartRecordingMessage.model_validate(data)
        elif msg_type == MessageType.STOP_RECORDING:
            return StopRecordingMessage.model_validate(data)
        elif msg_type == MessageType.VIDEO_FRAME:
            return VideoFrameMessage.model_validate(data)
        elif msg_type == MessageType.COMMIT_AUDIO:
            return CommitAudioMessage.model_validate(data)
        elif msg_type == MessageType.DISMISS_ERROR:
            return DismissErrorMessage.model_validate(data)
        else:
            return None
    except ValidationError:
        return None


def dispatch_command(coordinator: SessionCoordinator, msg: ClientMessage) -> None:
    """
    Apply a client command to the coordinator.

    Raises:
        ValueError: If a video frame is not valid base64
    """
    if isinstance(msg, ConnectMessage):
        coordinator.connect()
    elif isinstance(msg, DisconnectMessage):
        coordinator.disconnect()
    elif isinstance(msg, StartRecordingMessage):
        coordinator.start_recording()
    elif isinstance(msg, StopRecordingMessage):
        coordinator.stop_recording()
    elif isinstance(msg, VideoFrameMessage):
        frame = None
        if msg.image is not None:
            frame = base64.b64decode(msg.image, validate=True)
        coordinator.update_video_frame(frame)
    elif isinstance(msg, CommitAudioMessage):
        coordinator.commit_pending_audio()
    elif isinstance(msg, DismissErrorMessage):
        coordinator.dismiss_error()


def error_payload(code: ErrorCode, message: str) -> dict[str, Any]:
    return ErrorMessage(code=code, message=message).model_dump(mode="json")


def state_payload(snapshot: SessionSnapshot) -> dict[str, Any]:
    return StateMessage(state=snapshot).model_dump(mode="json")


async def pump_outbox(websocket: WebSocket, outbox: Outbox) -> None:
    """Send queued state, error and audio messages in order."""
    while True:
        item = await outbox.get()
        if item is None:
            return

        try:
            if isinstance(item, bytes):
                await websocket.send_bytes(item)
            else:
                await websocket.send_json(item)
        except Exception:
            return  # Client might already be disconnected


async def receive_commands(
    websocket: WebSocket,
    coordinator: SessionCoordinator,
    audio_source: QueueAudioSource,
    outbox: Outbox,
) -> None:
    """Read client frames until the client disconnects."""
    while True:
        message = await websocket.receive()

        if message["type"] == "websocket.disconnect":
            return

        if message.get("bytes"):
            audio_source.push(message["bytes"])
            continue

        text = message.get("text")
        if not text:
            continue

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            outbox.put_nowait(error_payload(ErrorCode.INVALID_MESSAGE, "Invalid JSON"))
            continue

        msg = parse_message(data) if isinstance(data, dict) else None
        if msg is None:
            outbox.put_nowait(error_payload(
                ErrorCode.INVALID_MESSAGE,
                f"Unknown message type: {data.get('type') if isinstance(data, dict) else data}",
            ))
            continue

        try:
            dispatch_command(coordinator, msg)
        except (binascii.Error, ValueError) as e:
            outbox.put_nowait(error_payload(ErrorCode.INVALID_MESSAGE, f"Invalid video frame: {e}"))


@router.websocket("/ws/session")
async def websocket_session(websocket: WebSocket) -> None:
    """
    WebSocket endpoint hosting one realtime conversation.

    Protocol:
    1. Server sends the initial state
    2. Client sends connect, then start_recording
    3. Client streams binary audio frames and video_frame messages
    4. Server sends state after every change, plus assistant audio as binary
    5. Client closes the socket; the conversation is saved and torn down
    """
    await websocket.accept()

    session_id = f"session-{uuid4().hex[:8]}"
    with session_context(session_id):
        await serve_session(websocket, session_id)


async def serve_session(websocket: WebSocket, session_id: str) -> None:
    """Run one accepted presentation connection until it closes."""
    outbox: Outbox = asyncio.Queue()
    audio_source = QueueAudioSource()
    transport = deps.create_transport(audio_source, on_audio=outbox.put_nowait)
    coordinator = SessionCoordinator(transport, deps.history_store)

    try:
        await session_registry.register(session_id, coordinator)
    except MaxSessionsReachedError as e:
        await websocket.send_json(error_payload(e.code, e.message))
        record_session_ended("rejected")
        await websocket.close()
        return

    update_session_metrics(session_registry.active_sessions)
    sender = asyncio.create_task(pump_outbox(websocket, outbox))
    end_reason = "completed"

    try:
        async with coordinator:
            coordinator.subscribe(lambda snapshot: outbox.put_nowait(state_payload(snapshot)))
            outbox.put_nowait(state_payload(coordinator.snapshot()))
            logger.info(f"Session {session_id} started")

            await receive_commands(websocket, coordinator, audio_source, outbox)

    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {session_id}")
    except Exception:
        logger.exception(f"Unexpected error in session {session_id}")
        end_reason = "error"
    finally:
        audio_source.end()
        outbox.put_nowait(None)
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass

        await session_registry.unregister(session_id)
        update_session_metrics(session_registry.active_sessions)
        record_session_ended(end_reason)
        logger.info(f"Session {session_id} ended: {end_reason}")

        try:
            await websocket.close()
        except Exception:
            pass
