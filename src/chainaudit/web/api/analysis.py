"""REST API for contract analysis."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from chainaudit.analysis import run_analysis
from chainaudit.analysis.adapters import ProcessAdapter
from chainaudit.errors import ChainAuditError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])

# How often a running analysis checks whether the client went away
_DISCONNECT_POLL = 0.5


class AnalyzeRequest(BaseModel):
    source: str
    tools: list[str] | None = None
    dedup_key: str | None = None


@router.post("/analyze")
async def analyze(body: AnalyzeRequest, request: Request):
    config = request.app.state.config
    tools = body.tools if body.tools is not None else config.default_tools

    task = asyncio.create_task(
        run_analysis(
            body.source,
            tools,
            timeout=config.tool_timeout,
            dedup_key=body.dedup_key or config.dedup_key,
            registry=request.app.state.registry,
        )
    )
    try:
        while not task.done():
            await asyncio.wait({task}, timeout=_DISCONNECT_POLL)
            if not task.done() and await request.is_disconnected():
                logger.info("Client disconnected; cancelling analysis")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                return JSONResponse(
                    status_code=499,
                    content={"detail": "Client disconnected"},
                )
        results, report = task.result()
    except ChainAuditError as e:
        return JSONResponse(status_code=400, content={"detail": str(e)})
    finally:
        if not task.done():
            task.cancel()

    return {
        "results": [r.to_dict() for r in results],
        "consensus": report.to_dict(),
    }


@router.get("/tools")
async def list_tools(request: Request):
    registry = request.app.state.registry
    return [
        {
            "name": name,
            "kind": "external" if isinstance(analyzer, ProcessAdapter) else "built-in",
            "available": analyzer.is_available(),
        }
        for name, analyzer in registry.items()
    ]
