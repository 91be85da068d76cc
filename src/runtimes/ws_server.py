from __future__ import annotations

import asyncio
import logging
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from src.execution.blocks import BlockRunResult, LiveCompileScheduler, run_block
from src.execution.orchestrator import iter_outputs
from src.execution.transpiler import get_transpiler
from src.execution.types import Variant
from src.runtimes.messages import Message, MessageType, parse_frame

# Load local env after imports to keep linting (E402) happy.
load_dotenv()

app = FastAPI(title="snippetbox", version="0.1.0")
logger = logging.getLogger(__name__)


class ExecuteRequest(BaseModel):
    code: str
    variant: str
    block_id: str | None = None


class OutputItemModel(BaseModel):
    id: str
    kind: str
    content: str
    created_at: int


class ExecuteResponse(BaseModel):
    block_id: str
    outputs: list[OutputItemModel]
    has_error: bool


@app.get("/")
async def root() -> dict[str, str]:
    return {"service": "snippetbox"}


@app.get("/healthz")
async def healthz(response: Response) -> dict[str, Any]:
    transpiler = get_transpiler().state()
    healthy = transpiler.get("status") != "failed"
    if not healthy:
        response.status_code = 503
    return {"status": "ok" if healthy else "degraded", "transpiler": transpiler}


@app.post("/api/execute", response_model=ExecuteResponse)
async def api_execute(req: ExecuteRequest):
    try:
        variant = Variant.parse(req.variant)
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    result = await run_block(req.block_id or "", req.code, variant)
    return ExecuteResponse(**result.to_dict())


async def _send(ws: WebSocket, msg: Message) -> None:
    await ws.send_json(msg.to_dict())


def _parse_request(data: dict[str, Any]) -> tuple[str, str, Variant]:
    code = data.get("code")
    if not isinstance(code, str):
        raise ValueError("missing code")
    block_id = str(data.get("block_id") or "")
    return block_id, code, Variant.parse(str(data.get("variant") or ""))


async def _stream_execution(ws: WebSocket, block_id: str, code: str, variant: Variant) -> None:
    try:
        has_error = False
        async for item in iter_outputs(code, variant):
            has_error = has_error or item.kind == "error"
            await _send(ws, Message.new(MessageType.OUTPUT, item.to_dict(), block_id=block_id))
        await _send(
            ws,
            Message.new(
                MessageType.EXECUTION_COMPLETE, {"has_error": has_error}, block_id=block_id
            ),
        )
    except Exception:
        logger.exception("Streaming execution failed (block=%s)", block_id)


async def _handle_ws(ws: WebSocket) -> None:
    await ws.accept()

    async def _send_live_result(result: BlockRunResult) -> None:
        await _send(
            ws,
            Message.new(MessageType.LIVE_RESULT, result.to_dict(), block_id=result.block_id),
        )

    live = LiveCompileScheduler(_send_live_result)
    # Executions run beside the receive loop so pings and edits are still read.
    runs: set[asyncio.Task[None]] = set()
    try:
        while True:
            try:
                raw = await ws.receive_text()
            except WebSocketDisconnect:
                return

            frame = parse_frame(raw)
            if frame is None:
                logger.debug("Ignoring malformed frame: %.200s", raw)
                continue
            mtype, data = frame

            if mtype == MessageType.PING.value:
                await _send(ws, Message.new(MessageType.PING, {}))
                continue

            if mtype not in (MessageType.EXECUTE.value, MessageType.LIVE_EDIT.value):
                await _send(
                    ws,
                    Message.new(MessageType.ERROR, {"error": "unknown_message_type", "type": mtype}),
                )
                continue

            try:
                block_id, code, variant = _parse_request(data)
            except ValueError as exc:
                await _send(
                    ws,
                    Message.new(
                        MessageType.ERROR,
                        {"error": "invalid_request", "detail": str(exc)},
                        block_id=str(data.get("block_id") or ""),
                    ),
                )
                continue

            if mtype == MessageType.LIVE_EDIT.value:
                live.schedule(block_id, code, variant)
                continue

            task = asyncio.ensure_future(_stream_execution(ws, block_id, code, variant))
            runs.add(task)
            task.add_done_callback(runs.discard)
    finally:
        for task in list(runs):
            task.cancel()
        if runs:
            await asyncio.gather(*list(runs), return_exceptions=True)
        await live.close()


@app.websocket("/ws")
async def websocket_ws(ws: WebSocket) -> None:
    await _handle_ws(ws)
