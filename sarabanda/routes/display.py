"""
Display routes (player screens).

- GET /display/state : read-only snapshot (remaining time recomputed on each call).
- WS  /ws/display    : stream of snapshots.
    * type=snapshot on connect and whenever the status slot changes,
    * type=tick every TIMER_TICK_SECONDS while a timer runs.

Each WebSocket gets its own read-only status handle: it polls the slot (so it
also follows an operator running in another process) and never writes.
"""
from __future__ import annotations

import math

import anyio
from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect

from sarabanda.config.settings import settings
from sarabanda.models.game import GameStatus
from sarabanda.services.display_view import DisplayView, build_snapshot
from sarabanda.services.io_utils import dumps_canonical

router = APIRouter(tags=["display"])


@router.get("/display/state")
async def display_state(request: Request):
    """Snapshot for a display screen (the rolled character stays hidden until confirmed)."""
    view: DisplayView = request.app.state.display
    return view.snapshot()


@router.websocket("/ws/display")
async def display_stream(ws: WebSocket):
    view = DisplayView(ws.app.state.store)
    send_stream, receive_stream = anyio.create_memory_object_stream(max_buffer_size=math.inf)

    def _on_status(status: GameStatus) -> None:
        send_stream.send_nowait(status)

    await ws.accept()
    unsubscribe = view.subscribe(_on_status)
    view.start()

    async def _send(kind: str, status: GameStatus) -> None:
        await ws.send_text(dumps_canonical({"type": kind, "payload": build_snapshot(status)}))

    async def _pump(scope: anyio.CancelScope) -> None:
        try:
            await _send("snapshot", view.status)
            async with receive_stream:
                while True:
                    changed = None
                    with anyio.move_on_after(settings.TIMER_TICK_SECONDS):
                        changed = await receive_stream.receive()
                    if changed is not None:
                        await _send("snapshot", changed)
                        continue
                    current = view.status
                    if current.is_timer_running:
                        await _send("tick", current)
        except WebSocketDisconnect:
            scope.cancel()

    async def _watch_client(scope: anyio.CancelScope) -> None:
        # display screens never talk; only the disconnect matters
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                scope.cancel()
                return

    try:
        async with anyio.create_task_group() as tg:
            tg.start_soon(_pump, tg.cancel_scope)
            tg.start_soon(_watch_client, tg.cancel_scope)
    finally:
        unsubscribe()
        send_stream.close()
        await view.aclose()
