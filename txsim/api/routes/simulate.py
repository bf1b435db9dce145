"""Simulation endpoint.

The body is handed to the pipeline verbatim so malformed JSON is reported in
the ``SimulationResult`` itself (``status=error``, ``Invalid JSON: ...``)
rather than as an HTTP 422.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from txsim.core.config import get_settings
from txsim.replay.pipeline import SimulationPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pipeline() -> SimulationPipeline:
    return SimulationPipeline(settings=get_settings())


@router.post("/simulate")
async def simulate(request: Request, pipeline: SimulationPipeline = Depends(get_pipeline)) -> JSONResponse:
    raw = await request.body()
    result = await run_in_threadpool(pipeline.run, raw)
    return JSONResponse(status_code=200, content=result.to_wire())
